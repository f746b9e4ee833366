import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Sequence

from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, UpdateOne

from schemas import Installation, ResourceKind

logger = logging.getLogger(__name__)

INSTALLATION_COLLECTION = "installation"


class InstallationRepository:
    """Read access to droplet installations. Writes only happen on (re)install."""

    def __init__(self, db):
        self.db = db

    def get_installation(self, fluid_id: str) -> Optional[Installation]:
        doc = self.db[INSTALLATION_COLLECTION].find_one({"fluid_id": fluid_id}, {"_id": 0})
        return Installation(**doc) if doc else None

    def save_installation(self, installation: Installation) -> Installation:
        now = datetime.now(timezone.utc)
        fields = installation.model_dump(exclude={"id"})
        self.db[INSTALLATION_COLLECTION].update_one(
            {"fluid_id": installation.fluid_id},
            {
                "$set": {**fields, "updated_at": now},
                # the local id owns mirrored rows, so a reinstall must keep it
                "$setOnInsert": {"id": installation.id, "created_at": now},
            },
            upsert=True,
        )
        return self.get_installation(installation.fluid_id)

    def ensure_indexes(self):
        self.db[INSTALLATION_COLLECTION].create_index([("fluid_id", ASCENDING)], unique=True)


class MongoMirrorStore:
    """
    Mirrored products/orders, one collection per resource kind, unique on
    (installation_id, remote_id).
    """

    def __init__(self, db):
        self.db = db

    def ensure_indexes(self):
        for kind in ResourceKind:
            self.db[kind.collection].create_index(
                [("installation_id", ASCENDING), ("remote_id", ASCENDING)],
                unique=True,
                name="installation_remote_id",
            )

    def upsert_batch(self, kind: ResourceKind, rows: Sequence[BaseModel]) -> int:
        """
        Insert-or-update every row in a single bulk write.

        On conflict all projected fields are overwritten; created_at is only
        written on insert and updated_at is always refreshed. Raises on any
        write failure so the caller can count the batch as failed.
        """
        if not rows:
            return 0
        now = datetime.now(timezone.utc)
        ops = []
        for row in rows:
            doc = row.model_dump()
            key = {"installation_id": doc["installation_id"], "remote_id": doc["remote_id"]}
            ops.append(UpdateOne(
                key,
                {"$set": {**doc, "updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            ))
        self.db[kind.collection].bulk_write(ops, ordered=True)
        return len(ops)

    def list_records(self, installation_id: str, kind: ResourceKind, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        cursor = self.db[kind.collection].find({"installation_id": installation_id}, {"_id": 0}).sort("updated_at", DESCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)
