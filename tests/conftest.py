"""Shared pytest fixtures and in-memory fakes."""
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from config import Settings
from schemas import Installation, PageResult


class FakeMirrorStore:
    """In-memory stand-in for MongoMirrorStore, unique on (kind, installation_id, remote_id)."""

    def __init__(self, fail_on_calls=()):
        self.rows: Dict[tuple, dict] = {}
        self.calls = 0
        self.fail_on_calls = set(fail_on_calls)

    def upsert_batch(self, kind, rows):
        self.calls += 1
        if self.calls in self.fail_on_calls:
            raise RuntimeError(f"injected storage fault on batch {self.calls}")
        now = datetime.now(timezone.utc)
        for row in rows:
            doc = row.model_dump()
            key = (kind, doc["installation_id"], doc["remote_id"])
            existing = self.rows.get(key)
            created_at = existing["created_at"] if existing else now
            self.rows[key] = {**doc, "created_at": created_at, "updated_at": now}
        return len(rows)

    def list_records(self, installation_id, kind, limit=None):
        docs = [doc for (k, inst, _), doc in self.rows.items() if k == kind and inst == installation_id]
        docs.sort(key=lambda d: d["updated_at"], reverse=True)
        return docs[:limit] if limit else docs

    def snapshot(self):
        """Stored rows without the update timestamp."""
        return {key: {k: v for k, v in doc.items() if k != "updated_at"} for key, doc in self.rows.items()}


class FakeInstallations:
    def __init__(self, *installations: Installation):
        self.by_fluid_id = {inst.fluid_id: inst for inst in installations}

    def get_installation(self, fluid_id: str) -> Optional[Installation]:
        return self.by_fluid_id.get(fluid_id)


class FakeRemoteClient:
    """Serves pre-built pages (or raises pre-set errors) and records every request."""

    def __init__(self, pages: Dict[int, object]):
        self.pages = pages
        self.requested: List[int] = []
        self.calls = []

    def fetch_page(self, resource, endpoints, token, page=1, per_page=50):
        self.requested.append(page)
        self.calls.append({"resource": resource, "endpoints": endpoints, "token": token, "page": page, "per_page": per_page})
        outcome = self.pages[page]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_orders(count: int, start: int = 1) -> List[dict]:
    return [
        {
            "id": n,
            "order_number": f"#{1000 + n}",
            "amount": f"{n}.00",
            "status": "paid",
            "customer": {"email": f"c{n}@example.com", "first_name": "Ada", "last_name": f"Buyer{n}"},
            "items_count": 1,
        }
        for n in range(start, start + count)
    ]


def make_page(records, page: int, total_pages: Optional[int], per_page: int = 50) -> PageResult:
    return PageResult(records=records, page=page, per_page=per_page, total_pages=total_pages)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def installation() -> Installation:
    return Installation(
        id="inst-local-1",
        fluid_id="dri_abc123",
        fluid_shop="acme.fluid.app",
        company_name="Acme",
        authentication_token="dit_primarytoken123",
    )


@pytest.fixture
def store() -> FakeMirrorStore:
    return FakeMirrorStore()
