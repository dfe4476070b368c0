"""
Unit tests for SupabaseRecordStore.

The Supabase client is a MagicMock; query chains resolve to the same
child mock regardless of arguments, so each test sets the chain it reads.

Run: pytest tests/unit/test_record_store.py -v
"""

import pytest
from unittest.mock import MagicMock, patch

from postgrest.exceptions import APIError

from exceptions import RecordStoreError
from services.batch_committer import is_conflict_error
from services.record_store import SupabaseRecordStore


def make_store(storage=None):
    client = MagicMock()
    return SupabaseRecordStore(client=client, storage_client=storage), client


class TestExistsAny:
    """Tests for SupabaseRecordStore.exists_any()"""

    def test_returns_trimmed_matches(self):
        # Arrange
        store, client = make_store()
        query = client.table.return_value.select.return_value.in_.return_value
        query.execute.return_value = MagicMock(data=[
            {"item_code": " BKR-1 "},
            {"item_code": None},
            {"item_code": "BKR-2"},
        ])

        # Act
        matched = store.exists_any("item_code", ["BKR-1", "BKR-2", "FLK-9"])

        # Assert
        assert matched == {"BKR-1", "BKR-2"}
        client.table.assert_called_with("items")
        client.table.return_value.select.return_value.in_.assert_called_once_with(
            "item_code", ["BKR-1", "BKR-2", "FLK-9"]
        )

    def test_empty_values_skip_query(self):
        store, client = make_store()

        assert store.exists_any("serial_number", []) == set()
        client.table.assert_not_called()


class TestWrites:
    """Insert and upsert error translation."""

    def test_insert_returns_ids(self):
        store, client = make_store()
        client.table.return_value.insert.return_value.execute.return_value = MagicMock(
            data=[{"id": "a"}, {"id": "b"}]
        )

        assert store.insert_many([{"name": "Beaker"}, {"name": "Flask"}]) == ["a", "b"]

    def test_unique_violation_keeps_sqlstate(self):
        # Arrange
        store, client = make_store()
        client.table.return_value.insert.return_value.execute.side_effect = APIError({
            "message": 'duplicate key value violates unique constraint "items_item_code_key"',
            "code": "23505",
            "hint": None,
            "details": None,
        })

        # Act
        with pytest.raises(RecordStoreError) as exc_info:
            store.insert_many([{"name": "Beaker", "item_code": "BKR-1"}])

        # Assert
        assert exc_info.value.db_code == "23505"
        assert is_conflict_error(exc_info.value)

    def test_other_failures_wrapped(self):
        store, client = make_store()
        client.table.return_value.upsert.return_value.execute.side_effect = TimeoutError("read timed out")

        with pytest.raises(RecordStoreError) as exc_info:
            store.upsert_many([{"name": "Beaker", "item_code": "BKR-1"}], "item_code")

        assert exc_info.value.db_code is None
        assert exc_info.value.store_message == "read timed out"
        assert not is_conflict_error(exc_info.value)

    def test_upsert_targets_conflict_column(self):
        store, client = make_store()
        client.table.return_value.upsert.return_value.execute.return_value = MagicMock(data=[{"id": "a"}])

        store.upsert_many([{"item_code": "BKR-1"}], "item_code")

        client.table.return_value.upsert.assert_called_once_with(
            [{"item_code": "BKR-1"}], on_conflict="item_code", ignore_duplicates=False
        )


class TestFindItemId:
    """Tests for SupabaseRecordStore.find_item_id()"""

    def test_code_match(self):
        store, client = make_store()
        by_code = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        by_code.execute.return_value = MagicMock(data=[{"id": "item-1"}])

        assert store.find_item_id(item_code="BKR-1", name="Beaker") == "item-1"

    def test_falls_back_to_name_in_department(self):
        # Arrange
        store, client = make_store()
        eq = client.table.return_value.select.return_value.eq
        eq.return_value.limit.return_value.execute.return_value = MagicMock(data=[])
        eq.return_value.eq.return_value.limit.return_value.execute.return_value = MagicMock(
            data=[{"id": "item-9"}]
        )

        # Act
        item_id = store.find_item_id(item_code="BKR-1", name="Beaker", department_id="dept-1")

        # Assert
        assert item_id == "item-9"
        eq.return_value.eq.assert_called_with("department_id", "dept-1")

    def test_nothing_to_search_by(self):
        store, client = make_store()

        assert store.find_item_id() is None
        client.table.assert_not_called()


class TestStorage:
    """Image uploads."""

    def test_upload_returns_public_url(self):
        # Arrange
        storage = MagicMock()
        bucket = storage.storage.from_.return_value
        bucket.get_public_url.return_value = "https://cdn.example.org/item-images/item-1/0.png"
        store, _ = make_store(storage=storage)

        # Act
        url = store.upload_image("item-1/0.png", b"png", "image/png")

        # Assert
        assert url == "https://cdn.example.org/item-images/item-1/0.png"
        storage.storage.from_.assert_called_once_with("item-images")
        bucket.upload.assert_called_once_with(
            "item-1/0.png", b"png", {"content-type": "image/png", "upsert": "true"}
        )

    def test_upload_failure_raises(self):
        storage = MagicMock()
        storage.storage.from_.return_value.upload.side_effect = RuntimeError("bucket not found")
        store, _ = make_store(storage=storage)

        with pytest.raises(RecordStoreError):
            store.upload_image("item-1/0.png", b"png", "image/png")

    def test_storage_client_resolved_lazily(self):
        storage = MagicMock()
        store, _ = make_store()

        with patch("services.record_store.get_storage_client", return_value=storage) as get_storage:
            assert store.storage_db is storage
            assert store.storage_db is storage

        get_storage.assert_called_once()
