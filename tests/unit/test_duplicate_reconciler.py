"""
Unit tests for the duplicate reconciler.
"""

from unittest.mock import patch
import pytest

from exceptions import ImportCancelledError
from models.bulk_import import ImportMode, RowStatusKind
from services.column_mapper import auto_detect_mapping
from services.duplicate_reconciler import query_in_chunks, reconcile_rows
from utils.cancellation import CancellationToken
from tests.conftest import FakeRecordStore
from tests.factories import ItemFactory, RowFactory


HEADERS = ["Item Name", "Item Code", "Serial Number"]


def rows_of(*values):
    return RowFactory.create_batch(HEADERS, list(values))


class TestReconcileRows:
    """Row classification."""

    @pytest.mark.asyncio
    async def test_insert_mode_marks_existing_as_duplicate(self):
        # Arrange
        store = FakeRecordStore([ItemFactory.create(item_code="X1")])
        rows = rows_of(("Beaker", "X1", None), ("Flask", "X2", None))

        # Act
        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, store)

        # Assert
        assert [s.status for s in result.statuses] == [RowStatusKind.DUPLICATE, RowStatusKind.NEW]
        assert result.statuses[0].message == "Exists: item_code=X1"
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_upsert_mode_marks_existing_as_update(self):
        store = FakeRecordStore([ItemFactory.create(item_code="X1")])
        rows = rows_of(("Beaker", "X1", None))

        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.UPSERT, store)

        assert result.statuses[0].status == RowStatusKind.UPDATE
        assert result.statuses[0].message == "Match: item_code=X1"
        assert result.mode == ImportMode.UPSERT

    @pytest.mark.asyncio
    async def test_serial_number_match(self):
        store = FakeRecordStore([ItemFactory.create(serial_number="SN-9")])
        rows = rows_of(("Scope", "NEW-1", "SN-9"))

        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, store)

        assert result.statuses[0].status == RowStatusKind.DUPLICATE
        assert result.statuses[0].message == "Exists: serial_number=SN-9"

    @pytest.mark.asyncio
    async def test_duplicates_within_file_both_flagged(self):
        store = FakeRecordStore([ItemFactory.create(item_code="X1")])
        rows = rows_of(("Beaker", "X1", None), ("Flask", "X1", None))

        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, store)

        assert [s.status for s in result.statuses] == [RowStatusKind.DUPLICATE] * 2
        # Distinct values are queried once
        assert store.exists_calls == [("item_code", ["X1"])]

    @pytest.mark.asyncio
    async def test_canonical_codes_checked_when_no_code_column(self):
        # Arrange
        store = FakeRecordStore([ItemFactory.create(item_code="FLA-002")])
        headers = ["Item Name", "Qty"]
        rows = RowFactory.create_batch(headers, [("Beaker", 1), ("Flask", 3)])

        # Act
        result = await reconcile_rows(
            rows, auto_detect_mapping(headers), ImportMode.UPSERT, store,
            item_codes=["BEA-001", "FLA-002"],
        )

        # Assert
        assert [s.status for s in result.statuses] == [RowStatusKind.NEW, RowStatusKind.UPDATE]
        assert result.statuses[1].message == "Match: item_code=FLA-002"
        assert store.exists_calls == [("item_code", ["BEA-001", "FLA-002"])]

    @pytest.mark.asyncio
    async def test_canonical_codes_replace_cells(self):
        store = FakeRecordStore([ItemFactory.create(item_code="X1")])
        rows = rows_of(("Beaker", " X1 ", None), ("Flask", None, None))

        result = await reconcile_rows(
            rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, store,
            item_codes=["X1", None],
        )

        assert [s.status for s in result.statuses] == [RowStatusKind.DUPLICATE, RowStatusKind.NEW]
        assert store.exists_calls == [("item_code", ["X1"])]

    @pytest.mark.asyncio
    async def test_blank_name_is_error(self, fake_store):
        rows = rows_of((None, "X1", None), ("Flask", None, None))

        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, fake_store)

        assert result.statuses[0].status == RowStatusKind.ERROR
        assert result.statuses[0].message == "Missing required field: Item Name"
        assert result.statuses[1].status == RowStatusKind.NEW

    @pytest.mark.asyncio
    async def test_no_unique_columns_mapped_means_no_queries(self, fake_store):
        headers = ["Item Name", "Qty"]
        rows = RowFactory.create_batch(headers, [("Beaker", "2")])

        result = await reconcile_rows(rows, auto_detect_mapping(headers), ImportMode.INSERT, fake_store)

        assert result.queries == 0
        assert fake_store.exists_calls == []
        assert result.statuses[0].status == RowStatusKind.NEW

    @pytest.mark.asyncio
    async def test_status_counts(self):
        store = FakeRecordStore([ItemFactory.create(item_code="X1")])
        rows = rows_of(("Beaker", "X1", None), ("Flask", "X2", None), (None, None, None))

        result = await reconcile_rows(rows, auto_detect_mapping(HEADERS), ImportMode.INSERT, store)

        assert result.status_counts() == {"new": 1, "update": 0, "duplicate": 1, "error": 1}


class TestChunkedExistence:
    """Chunked existence queries."""

    @pytest.mark.asyncio
    async def test_250_codes_use_three_queries(self):
        # Arrange
        existing = [ItemFactory.create(item_code=f"CODE-{i:04d}") for i in (5, 150, 240)]
        store = FakeRecordStore(existing)
        rows = RowFactory.named(250)

        # Act
        result = await reconcile_rows(rows, auto_detect_mapping(["Item Name", "Item Code"]), ImportMode.INSERT, store)

        # Assert
        assert [len(values) for _, values in store.exists_calls] == [100, 100, 50]
        assert result.queries == 3
        duplicates = [i for i, s in enumerate(result.statuses) if s.status == RowStatusKind.DUPLICATE]
        assert duplicates == [4, 149, 239]

    @pytest.mark.asyncio
    async def test_query_in_chunks_union_matches_single_call(self):
        store = FakeRecordStore([ItemFactory.create(item_code=c) for c in ("A", "D", "G")])
        values = list("ABCDEFG")

        chunked_lookup = await query_in_chunks(store, "item_code", values, chunk_size=2)
        single_lookup = await query_in_chunks(store, "item_code", values, chunk_size=100)

        assert chunked_lookup.queries == 4
        assert single_lookup.queries == 1
        assert chunked_lookup.matched == single_lookup.matched == {"A", "D", "G"}

    @pytest.mark.asyncio
    async def test_failed_chunk_degrades_result(self):
        # Arrange
        existing = [ItemFactory.create(item_code="CODE-0010"), ItemFactory.create(item_code="CODE-0120")]
        store = FakeRecordStore(existing)
        store.fail_exists_calls = {1}
        rows = RowFactory.named(150)

        # Act
        result = await reconcile_rows(rows, auto_detect_mapping(["Item Name", "Item Code"]), ImportMode.INSERT, store)

        # Assert
        assert result.degraded
        assert len(result.failed_chunks) == 1
        assert result.failed_chunks[0]["size"] == 50
        # First chunk still verified
        assert result.statuses[9].status == RowStatusKind.DUPLICATE
        # Second chunk treated as not found
        assert result.statuses[119].status == RowStatusKind.NEW
        assert result.statuses[119].message == "Not verified: existence check failed for item_code=CODE-0120"
        assert result.statuses[0].message is None

    @pytest.mark.asyncio
    async def test_unexpected_failure_marks_every_row_new(self, fake_store):
        rows = RowFactory.named(3)

        with patch("services.duplicate_reconciler._reconcile", side_effect=RuntimeError("boom")):
            result = await reconcile_rows(
                rows, auto_detect_mapping(["Item Name", "Item Code"]), ImportMode.UPSERT, fake_store
            )

        assert result.degraded
        assert [s.status for s in result.statuses] == [RowStatusKind.NEW] * 3
        assert result.mode == ImportMode.UPSERT

    @pytest.mark.asyncio
    async def test_cancelled_before_first_chunk(self, fake_store):
        token = CancellationToken("reconcile")
        token.cancel()

        with pytest.raises(ImportCancelledError) as exc_info:
            await reconcile_rows(
                RowFactory.named(5),
                auto_detect_mapping(["Item Name", "Item Code"]),
                ImportMode.INSERT,
                fake_store,
                cancel_token=token,
            )

        assert exc_info.value.status_code == 409
        assert fake_store.exists_calls == []
