"""
Batch committer: writes canonical records to the store in chunks.

A failed chunk is retried row by row, once. Unique-key conflicts found on
that retry count as skipped; anything else counts as failed with the
store's own message. Every row handed in ends up in exactly one bucket:

    inserted + updated + skipped + failed == total
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional
import structlog

from exceptions import ImportCancelledError, RecordStoreError
from models.bulk_import import FailedRow, ImportMode, ImportResultResponse, RowStatusKind
from models.item_fields import TargetFieldKey
from utils.cancellation import CancellationToken, check_cancelled
from utils.chunking import chunked
from utils.text_utils import cell_text

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 25
CONFLICT_SQLSTATE = "23505"
CONFLICT_COLUMN = TargetFieldKey.ITEM_CODE.value

ProgressCallback = Callable[[int], None]


class CommitOutcome(str, Enum):
    """Final bucket of one row."""
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CommitEntry:
    """One row ready to write."""
    row_index: int
    record: dict
    status: RowStatusKind = RowStatusKind.NEW
    message: Optional[str] = None

    @property
    def row_number(self) -> int:
        return self.row_index + 2


@dataclass
class ImportResult:
    """Exact tally of a commit."""
    total: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0
    pre_skipped: int = 0
    failed_rows: list[FailedRow] = field(default_factory=list)
    row_outcomes: dict[int, CommitOutcome] = field(default_factory=dict)

    @property
    def submitted(self) -> int:
        """Rows actually sent to the store."""
        return self.total - self.pre_skipped

    @property
    def accounted(self) -> int:
        return self.inserted + self.updated + self.skipped + self.failed

    def record(self, entry: CommitEntry, outcome: CommitOutcome, error: Optional[str] = None) -> None:
        if outcome == CommitOutcome.INSERTED:
            self.inserted += 1
        elif outcome == CommitOutcome.UPDATED:
            self.updated += 1
        elif outcome == CommitOutcome.SKIPPED:
            self.skipped += 1
        else:
            self.failed += 1
            self.failed_rows.append(FailedRow(row=entry.row_number, error=error or "Unknown error"))
        self.row_outcomes[entry.row_index] = outcome

    def committed_indices(self) -> list[int]:
        """Row indices that were inserted or updated."""
        return [
            idx for idx, outcome in self.row_outcomes.items()
            if outcome in (CommitOutcome.INSERTED, CommitOutcome.UPDATED)
        ]

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "failed": self.failed,
            "pre_skipped": self.pre_skipped,
        }

    def to_response(self) -> ImportResultResponse:
        return ImportResultResponse(**self.to_dict(), failed_rows=list(self.failed_rows))


def is_conflict_error(exc: Exception) -> bool:
    """True for unique-key violations ("duplicate key", "unique constraint", 23505)."""
    if isinstance(exc, RecordStoreError):
        code, message = exc.db_code, exc.store_message
    else:
        code, message = getattr(exc, "code", None), str(exc)
    message = (message or "").lower()
    return (
        str(code) == CONFLICT_SQLSTATE
        or "duplicate key" in message
        or "unique constraint" in message
    )


def _error_message(exc: Exception) -> str:
    if isinstance(exc, RecordStoreError):
        return exc.store_message
    return str(exc)


class _CommitRun:
    """State of one commit_records call."""

    def __init__(
        self,
        store,
        result: ImportResult,
        chunk_size: int,
        on_progress: Optional[ProgressCallback],
        cancel_token: Optional[CancellationToken],
    ):
        self.store = store
        self.result = result
        self.chunk_size = chunk_size
        self.on_progress = on_progress
        self.cancel_token = cancel_token
        self.processed = 0
        self.chunks = 0

    def progress(self, count: int) -> None:
        self.processed += count
        if self.on_progress is not None:
            percent = round(self.processed / (self.result.total or 1) * 100)
            self.on_progress(min(percent, 100))

    async def write(
        self,
        entries: list[CommitEntry],
        upsert: bool,
        success: Callable[[CommitEntry], CommitOutcome],
    ) -> None:
        """Write entries chunk by chunk with per-row fallback."""
        for chunk in chunked(entries, self.chunk_size):
            check_cancelled(self.cancel_token, {"chunk": self.chunks, **self.result.to_dict()})
            self.chunks += 1
            records = [e.record for e in chunk]

            try:
                await self._call(upsert, records)
            except Exception as e:
                logger.warning(
                    "commit_chunk_failed",
                    chunk=self.chunks,
                    size=len(chunk),
                    upsert=upsert,
                    error=_error_message(e),
                )
                await self._write_individually(chunk, upsert, success)
            else:
                for entry in chunk:
                    self.result.record(entry, success(entry))

            self.progress(len(chunk))

    async def _write_individually(
        self,
        chunk: list[CommitEntry],
        upsert: bool,
        success: Callable[[CommitEntry], CommitOutcome],
    ) -> None:
        for entry in chunk:
            try:
                await self._call(upsert, [entry.record])
            except Exception as e:
                if is_conflict_error(e):
                    logger.info("commit_row_conflict", row=entry.row_number)
                    self.result.record(entry, CommitOutcome.SKIPPED)
                else:
                    logger.warning("commit_row_failed", row=entry.row_number, error=_error_message(e))
                    self.result.record(entry, CommitOutcome.FAILED, _error_message(e))
            else:
                self.result.record(entry, success(entry))

    async def _call(self, upsert: bool, records: list[dict]) -> None:
        if upsert:
            await asyncio.to_thread(self.store.upsert_many, records, CONFLICT_COLUMN)
        else:
            await asyncio.to_thread(self.store.insert_many, records)


async def commit_records(
    entries: list[CommitEntry],
    mode: ImportMode,
    store,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> ImportResult:
    """
    Commit canonical records.

    Insert mode: "duplicate" rows are skipped without a write; the rest are
    inserted. Upsert mode: rows with an item code are upserted on item_code
    (counted as updated when reconciliation said "update"); rows without a
    code are plain inserts. In both modes "error" rows are counted as
    failed and never written.

    Args:
        entries: Rows with their canonical record and reconciliation status
        mode: insert or upsert
        store: Object with insert_many / upsert_many
        chunk_size: Records per write call
        on_progress: Called with percent of rows handled after each chunk
        cancel_token: Checked before each chunk

    Returns:
        ImportResult whose buckets add up to len(entries)

    Raises:
        ImportCancelledError: Token cancelled; details carry the partial tally
    """
    result = ImportResult(total=len(entries))
    run = _CommitRun(store, result, chunk_size, on_progress, cancel_token)

    logger.info("commit_started", total=len(entries), mode=mode.value, chunk_size=chunk_size)

    writable: list[CommitEntry] = []
    for entry in entries:
        if entry.status == RowStatusKind.ERROR:
            result.record(entry, CommitOutcome.FAILED, entry.message or "Row is not importable")
        elif mode == ImportMode.INSERT and entry.status == RowStatusKind.DUPLICATE:
            result.pre_skipped += 1
            result.record(entry, CommitOutcome.SKIPPED)
        else:
            writable.append(entry)

    # Rows settled without a write count toward progress straight away
    run.processed = len(entries) - len(writable)

    try:
        if mode == ImportMode.INSERT:
            await run.write(writable, upsert=False, success=lambda e: CommitOutcome.INSERTED)
        else:
            with_code = [e for e in writable if cell_text(e.record.get(CONFLICT_COLUMN))]
            without_code = [e for e in writable if not cell_text(e.record.get(CONFLICT_COLUMN))]
            await run.write(
                with_code,
                upsert=True,
                success=lambda e: (
                    CommitOutcome.UPDATED if e.status == RowStatusKind.UPDATE
                    else CommitOutcome.INSERTED
                ),
            )
            await run.write(without_code, upsert=False, success=lambda e: CommitOutcome.INSERTED)
    except ImportCancelledError:
        logger.warning("commit_cancelled", **result.to_dict())
        raise

    logger.info("commit_complete", chunks=run.chunks, **result.to_dict())

    return result
