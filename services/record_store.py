"""
Record store for imported items, backed by Supabase.

Narrow contract used by the import pipeline:
    exists_any(column, values) -> matched values
    insert_many(records) -> ids
    upsert_many(records, conflict_column) -> ids
plus the lookups and storage calls used to persist curated images.

Every failure is raised as RecordStoreError carrying the store's message
and SQLSTATE code, so the committer can recognise unique-key conflicts.
"""

from typing import Any, Callable, Optional, Sequence
import structlog

from postgrest.exceptions import APIError

from config import get_supabase_client, get_storage_client, settings
from exceptions import RecordStoreError
from utils.text_utils import cell_text

logger = structlog.get_logger(__name__)


class SupabaseRecordStore:
    """
    Items table access for bulk imports.

    Synchronous, like the Supabase client it wraps; the async pipeline
    calls it off the event loop.
    """

    def __init__(self, client=None, storage_client=None):
        self.db = client or get_supabase_client()
        self._storage_db = storage_client
        self.table = settings.items_table
        self.images_table = settings.item_images_table
        self.bucket = settings.item_images_bucket

    @property
    def storage_db(self):
        if self._storage_db is None:
            self._storage_db = get_storage_client()
        return self._storage_db

    # ===================
    # READ OPERATIONS
    # ===================

    def exists_any(self, column: str, values: Sequence[str]) -> set[str]:
        """
        Which of `values` already exist in `column`.

        Args:
            column: Unique column to probe (item_code, serial_number)
            values: Candidate values; callers keep this list short

        Returns:
            Set of matched values (trimmed)
        """
        if not values:
            return set()

        logger.debug("checking_existing_values", column=column, count=len(values))

        result = self._execute(
            "select",
            lambda: (
                self.db.table(self.table)
                .select(column)
                .in_(column, list(values))
                .execute()
            ),
        )

        matched = {cell_text(row.get(column)) for row in (result.data or [])}
        matched.discard("")
        return matched

    def find_item_id(
        self,
        item_code: Optional[str] = None,
        name: Optional[str] = None,
        department_id: Optional[str] = None,
    ) -> Optional[str]:
        """
        Id of a committed item, by code first, then by name in department.

        Returns:
            Item UUID or None if no match
        """
        if item_code:
            result = self._execute(
                "select",
                lambda: (
                    self.db.table(self.table)
                    .select("id")
                    .eq("item_code", item_code)
                    .limit(1)
                    .execute()
                ),
            )
            if result.data:
                return result.data[0]["id"]

        if name:
            def query():
                q = self.db.table(self.table).select("id").eq("name", name)
                if department_id:
                    q = q.eq("department_id", department_id)
                return q.limit(1).execute()

            result = self._execute("select", query)
            if result.data:
                return result.data[0]["id"]

        return None

    # ===================
    # WRITE OPERATIONS
    # ===================

    def insert_many(self, records: list[dict]) -> list[str]:
        """Insert records in one request. Returns created ids."""
        result = self._execute(
            "insert",
            lambda: self.db.table(self.table).insert(records).execute(),
        )
        return [row.get("id") for row in (result.data or [])]

    def upsert_many(self, records: list[dict], conflict_column: str) -> list[str]:
        """Insert-or-update records on a unique column. Returns ids."""
        result = self._execute(
            "upsert",
            lambda: (
                self.db.table(self.table)
                .upsert(records, on_conflict=conflict_column, ignore_duplicates=False)
                .execute()
            ),
        )
        return [row.get("id") for row in (result.data or [])]

    def insert_item_images(self, records: list[dict]) -> None:
        """Insert gallery rows for committed items."""
        if not records:
            return
        self._execute(
            "insert",
            lambda: self.db.table(self.images_table).insert(records).execute(),
        )

    def upload_image(self, path: str, content: bytes, content_type: str) -> str:
        """
        Upload image bytes to the item-images bucket.

        Returns:
            Public URL of the stored object
        """
        bucket = self.storage_db.storage.from_(self.bucket)
        try:
            bucket.upload(
                path,
                content,
                {"content-type": content_type, "upsert": "true"},
            )
            return bucket.get_public_url(path)
        except Exception as e:
            logger.warning("image_upload_failed", path=path, error=str(e))
            raise RecordStoreError("upload", str(e)) from e

    # ===================
    # HELPERS
    # ===================

    def _execute(self, operation: str, call: Callable[[], Any]) -> Any:
        """Run a query, translating client errors into RecordStoreError."""
        try:
            return call()
        except APIError as e:
            logger.warning(
                "record_store_error",
                operation=operation,
                error=e.message,
                code=e.code,
            )
            raise RecordStoreError(operation, e.message or str(e), db_code=e.code) from e
        except RecordStoreError:
            raise
        except Exception as e:
            logger.error(
                "record_store_failed",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RecordStoreError(operation, str(e)) from e


# Singleton instance for convenience
_record_store: Optional[SupabaseRecordStore] = None


def get_record_store() -> SupabaseRecordStore:
    """Get or create SupabaseRecordStore instance."""
    global _record_store
    if _record_store is None:
        _record_store = SupabaseRecordStore()
    return _record_store
