"""
Shared test fixtures.

In-memory stand-ins for the record store and the lookup service, so the
pipeline can be exercised without Supabase or the network.
"""

import os
import sys
from pathlib import Path

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings require Supabase credentials; tests never connect
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import asyncio
from typing import Generator, Optional
from unittest.mock import patch
from uuid import uuid4

import httpx
import pytest

from exceptions import LookupServiceError, RecordStoreError
from services.enrichment_cache import EnrichmentCache
from services.enrichment_service import EnrichmentOrchestrator
from services.import_session_service import ImportService, ImportSessionStore
from services.lookup_client import LookupQuery, LookupResult

UNIQUE_COLUMNS = ("item_code", "serial_number")


# ===================
# FAKE RECORD STORE
# ===================

class FakeRecordStore:
    """
    In-memory items table with unique item_code / serial_number.

    Failure injection:
        fail_exists_calls: exists_any call numbers (0-based) that raise
        fail_batches: number of multi-row writes that fail as a whole
        hard_fail_names: item names whose writes fail with a non-conflict error
        fail_uploads: make every storage upload fail
    """

    def __init__(self, items: Optional[list[dict]] = None):
        self.items: list[dict] = []
        for item in items or []:
            self.items.append({"id": str(uuid4()), **item})
        self.images: list[dict] = []
        self.uploads: dict[str, bytes] = {}

        self.exists_calls: list[tuple[str, list]] = []
        self.write_calls: list[tuple[str, int]] = []

        self.fail_exists_calls: set[int] = set()
        self.fail_batches = 0
        self.hard_fail_names: set[str] = set()
        self.fail_uploads = False
        self.fail_image_insert = False

    # Read

    def exists_any(self, column: str, values) -> set[str]:
        call_number = len(self.exists_calls)
        self.exists_calls.append((column, list(values)))
        if call_number in self.fail_exists_calls:
            raise RecordStoreError("select", "canceling statement due to statement timeout", db_code="57014")
        present = {str(item.get(column)) for item in self.items if item.get(column)}
        return {v for v in values if v in present}

    def find_item_id(self, item_code=None, name=None, department_id=None) -> Optional[str]:
        for item in self.items:
            if item_code and item.get("item_code") == item_code:
                return item["id"]
        for item in self.items:
            if name and item.get("name") == name and (
                not department_id or item.get("department_id") == department_id
            ):
                return item["id"]
        return None

    def by_code(self, item_code: str) -> Optional[dict]:
        for item in self.items:
            if item.get("item_code") == item_code:
                return item
        return None

    # Write

    def insert_many(self, records: list[dict]) -> list[str]:
        self.write_calls.append(("insert", len(records)))
        self._maybe_fail_batch("insert", records)
        self._check_rows("insert", records, upsert=False)
        ids = []
        for record in records:
            item = {"id": str(uuid4()), **record}
            self.items.append(item)
            ids.append(item["id"])
        return ids

    def upsert_many(self, records: list[dict], conflict_column: str) -> list[str]:
        self.write_calls.append(("upsert", len(records)))
        self._maybe_fail_batch("upsert", records)
        self._check_rows("upsert", records, upsert=True)
        ids = []
        for record in records:
            existing = self.by_code(record.get(conflict_column))
            if existing is not None:
                existing.update(record)
                ids.append(existing["id"])
            else:
                item = {"id": str(uuid4()), **record}
                self.items.append(item)
                ids.append(item["id"])
        return ids

    def insert_item_images(self, records: list[dict]) -> None:
        if self.fail_image_insert:
            raise RecordStoreError("insert", "permission denied for table item_images", db_code="42501")
        self.images.extend(records)

    def upload_image(self, path: str, content: bytes, content_type: str) -> str:
        if self.fail_uploads:
            raise RecordStoreError("upload", "Bucket not found")
        self.uploads[path] = content
        return f"https://test-project.supabase.co/storage/v1/object/public/item-images/{path}"

    # Helpers

    def _maybe_fail_batch(self, operation: str, records: list[dict]) -> None:
        if len(records) > 1 and self.fail_batches > 0:
            self.fail_batches -= 1
            raise RecordStoreError(operation, "connection reset by peer")

    def _check_rows(self, operation: str, records: list[dict], upsert: bool) -> None:
        seen = {column: set() for column in UNIQUE_COLUMNS}
        for record in records:
            if record.get("name") in self.hard_fail_names:
                raise RecordStoreError(
                    operation,
                    'null value in column "department_id" violates not-null constraint',
                    db_code="23502",
                )
            for column in UNIQUE_COLUMNS:
                value = record.get(column)
                if not value:
                    continue
                clash = value in seen[column]
                for item in self.items:
                    if item.get(column) != value:
                        continue
                    # Upsert updates the row that owns the item_code
                    if upsert and item.get("item_code") == record.get("item_code"):
                        continue
                    clash = True
                if clash:
                    raise RecordStoreError(
                        operation,
                        f'duplicate key value violates unique constraint "items_{column}_key"',
                        db_code="23505",
                    )
                seen[column].add(value)


# ===================
# FAKE LOOKUP CLIENT
# ===================

class FakeLookupClient:
    """
    Lookup client answering from a name -> LookupResult table.

    Records every batch and the peak number of concurrent requests.
    """

    def __init__(
        self,
        results: Optional[dict[str, LookupResult]] = None,
        fail: bool = False,
        delay: float = 0.0,
    ):
        self.results = results or {}
        self.fail = fail
        self.delay = delay
        self.calls: list[list[LookupQuery]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def lookup(self, queries: list[LookupQuery]) -> list[Optional[LookupResult]]:
        self.calls.append(list(queries))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.fail:
                raise LookupServiceError("Lookup service unreachable: ConnectError")
            return [self.results.get(q.name) for q in queries]
        finally:
            self.in_flight -= 1

    @property
    def requested_names(self) -> list[str]:
        return [q.name for batch in self.calls for q in batch]


# ===================
# FIXTURES
# ===================

@pytest.fixture
def fake_store() -> FakeRecordStore:
    """Empty in-memory record store."""
    return FakeRecordStore()


@pytest.fixture
def fake_lookup() -> FakeLookupClient:
    """Lookup client with no known items."""
    return FakeLookupClient()


@pytest.fixture
def enrichment_cache() -> EnrichmentCache:
    return EnrichmentCache(ttl_minutes=60, max_entries=100)


@pytest.fixture
def orchestrator(fake_lookup, enrichment_cache) -> EnrichmentOrchestrator:
    """Orchestrator without inter-wave pauses."""
    return EnrichmentOrchestrator(
        lookup_client=fake_lookup,
        cache=enrichment_cache,
        wave_pause_seconds=0,
    )


@pytest.fixture
def image_http_client() -> httpx.AsyncClient:
    """Image downloads served in memory; URLs containing "missing" return 404."""
    def handler(request: httpx.Request) -> httpx.Response:
        if "missing" in str(request.url):
            return httpx.Response(404)
        return httpx.Response(200, content=b"img", headers={"content-type": "image/jpeg"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def import_service(fake_store, orchestrator, image_http_client) -> ImportService:
    """ImportService wired to the in-memory fakes."""
    return ImportService(
        sessions=ImportSessionStore(ttl_minutes=60),
        record_store=fake_store,
        orchestrator=orchestrator,
        image_http_client=image_http_client,
    )


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client(import_service) -> Generator:
    """
    FastAPI test client whose routes use the fake-backed ImportService.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/imports/template")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from main import app

    with patch("routes.imports.get_import_service", return_value=import_service):
        yield TestClient(app)
