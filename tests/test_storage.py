"""Tests for the pymongo-backed repositories."""
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from pymongo import UpdateOne
from pymongo.errors import BulkWriteError

from reconciler import Reconciler, project_order
from schemas import Installation, ResourceKind
from storage import InstallationRepository, MongoMirrorStore


@pytest.fixture
def db():
    return MagicMock()


def _collection(db):
    return db.__getitem__.return_value


class TestMongoMirrorStore:

    def test_upsert_batch_is_one_bulk_write_keyed_on_installation_and_remote_id(self, db, monkeypatch):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        monkeypatch.setattr("storage.datetime", MagicMock(now=MagicMock(return_value=now)))
        rows = [project_order("inst-1", {"id": n, "status": "paid"}) for n in (1, 2)]

        written = MongoMirrorStore(db).upsert_batch(ResourceKind.ORDERS, rows)

        assert written == 2
        db.__getitem__.assert_called_with("order")
        expected = [
            UpdateOne(
                {"installation_id": "inst-1", "remote_id": row.remote_id},
                {"$set": {**row.model_dump(), "updated_at": now}, "$setOnInsert": {"created_at": now}},
                upsert=True,
            )
            for row in rows
        ]
        _collection(db).bulk_write.assert_called_once_with(expected, ordered=True)

    def test_empty_batch_skips_database(self, db):
        assert MongoMirrorStore(db).upsert_batch(ResourceKind.PRODUCTS, []) == 0
        _collection(db).bulk_write.assert_not_called()

    def test_write_error_propagates_and_reconciler_counts_batch(self, db):
        _collection(db).bulk_write.side_effect = BulkWriteError({"writeErrors": [], "nInserted": 0})
        result = Reconciler(MongoMirrorStore(db), batch_size=10).reconcile(
            "inst-1", ResourceKind.ORDERS, [{"id": n} for n in range(15)]
        )
        assert (result.synced, result.errors) == (0, 15)
        assert _collection(db).bulk_write.call_count == 2

    def test_ensure_indexes_unique_per_collection(self, db):
        MongoMirrorStore(db).ensure_indexes()
        calls = _collection(db).create_index.call_args_list
        assert len(calls) == 2
        for call in calls:
            assert call.args[0] == [("installation_id", 1), ("remote_id", 1)]
            assert call.kwargs["unique"] is True

    def test_list_records_newest_first(self, db):
        cursor = _collection(db).find.return_value.sort.return_value
        cursor.__iter__.return_value = iter([{"remote_id": "2"}, {"remote_id": "1"}])

        records = MongoMirrorStore(db).list_records("inst-1", ResourceKind.PRODUCTS)

        assert records == [{"remote_id": "2"}, {"remote_id": "1"}]
        _collection(db).find.assert_called_once_with({"installation_id": "inst-1"}, {"_id": 0})
        _collection(db).find.return_value.sort.assert_called_once_with("updated_at", -1)


class TestInstallationRepository:

    def test_get_installation(self, db):
        _collection(db).find_one.return_value = {
            "id": "local-1",
            "fluid_id": "dri_1",
            "active": True,
            "fluid_shop": "acme",
            "authentication_token": "dit_x",
        }
        installation = InstallationRepository(db).get_installation("dri_1")
        assert installation.id == "local-1"
        assert installation.authentication_token == "dit_x"
        db.__getitem__.assert_called_with("installation")

    def test_missing_installation(self, db):
        _collection(db).find_one.return_value = None
        assert InstallationRepository(db).get_installation("dri_missing") is None

    def test_save_keeps_local_id_on_reinstall(self, db):
        installation = Installation(id="local-1", fluid_id="dri_1", fluid_shop="acme")
        _collection(db).find_one.return_value = installation.model_dump()

        InstallationRepository(db).save_installation(installation)

        filter_, update = _collection(db).update_one.call_args.args
        assert filter_ == {"fluid_id": "dri_1"}
        assert "id" not in update["$set"]
        assert update["$setOnInsert"]["id"] == "local-1"
        assert _collection(db).update_one.call_args.kwargs["upsert"] is True
