"""
Duplicate reconciler: classifies rows as new / update / duplicate / error
against the unique keys already in the record store.

Existence is checked with chunked queries (100 values per request by
default) so a large file never produces an oversized filter. A chunk that
fails is logged and its values are treated as not found; the affected
rows are flagged as unverified and the result is marked degraded, leaving
the final say to the store's unique constraints at commit time.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Sequence
import structlog

from exceptions import ImportCancelledError
from models.bulk_import import ImportMode, RowStatus, RowStatusKind
from models.item_fields import TargetFieldKey
from parsers.spreadsheet_parser import SourceRow
from services.column_mapper import ColumnMapping
from utils.cancellation import CancellationToken, check_cancelled
from utils.chunking import chunked
from utils.text_utils import cell_text

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE = 100

# Unique columns probed, in precedence order for match messages
UNIQUE_KEYS: tuple[TargetFieldKey, ...] = (
    TargetFieldKey.ITEM_CODE,
    TargetFieldKey.SERIAL_NUMBER,
)


@dataclass
class ChunkLookup:
    """Outcome of probing one column in chunks."""
    column: str
    matched: set[str] = field(default_factory=set)
    unverified: set[str] = field(default_factory=set)
    queries: int = 0
    failed_chunks: list[dict] = field(default_factory=list)


@dataclass
class ReconciliationResult:
    """Per-row statuses plus how trustworthy they are."""
    statuses: list[RowStatus] = field(default_factory=list)
    mode: ImportMode = ImportMode.INSERT
    queries: int = 0
    failed_chunks: list[dict] = field(default_factory=list)
    degraded: bool = False

    def status_counts(self) -> dict[str, int]:
        counts = {kind.value: 0 for kind in RowStatusKind}
        for status in self.statuses:
            counts[status.status.value] += 1
        return counts


async def query_in_chunks(
    store,
    column: str,
    values: list[str],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel_token: Optional[CancellationToken] = None,
) -> ChunkLookup:
    """
    Probe `values` against `column`, one sequential request per chunk.

    Issues ceil(len(values) / chunk_size) calls; the union of matches is
    what a single unchunked call would return.
    """
    lookup = ChunkLookup(column=column)

    for chunk_index, chunk in enumerate(chunked(values, chunk_size)):
        check_cancelled(cancel_token, {"column": column, "chunk": chunk_index})
        lookup.queries += 1
        try:
            found = await asyncio.to_thread(store.exists_any, column, list(chunk))
        except Exception as e:
            logger.warning(
                "existence_chunk_failed",
                column=column,
                chunk=chunk_index,
                size=len(chunk),
                error=str(e),
            )
            lookup.unverified.update(chunk)
            lookup.failed_chunks.append({
                "column": column,
                "chunk": chunk_index,
                "size": len(chunk),
                "error": str(e),
            })
            continue
        lookup.matched.update(cell_text(v) for v in found)

    logger.info(
        "existence_checked",
        column=column,
        values=len(values),
        matched=len(lookup.matched),
        queries=lookup.queries,
        failed_chunks=len(lookup.failed_chunks),
    )

    return lookup


async def reconcile_rows(
    rows: list[SourceRow],
    mapping: ColumnMapping,
    mode: ImportMode,
    store,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    cancel_token: Optional[CancellationToken] = None,
    item_codes: Optional[Sequence[Optional[str]]] = None,
) -> ReconciliationResult:
    """
    Classify every row against existing item codes and serial numbers.

    Args:
        rows: Parsed rows
        mapping: Current column mapping
        mode: insert (matches are duplicates) or upsert (matches are updates)
        store: Object with exists_any(column, values) -> set
        chunk_size: Values per existence query
        cancel_token: Checked before every chunk
        item_codes: Canonical item code per row, aligned with `rows`.
            Replaces the item code cell, so codes generated during
            enrichment are matched too.

    Returns:
        ReconciliationResult with one status per row. If reconciliation
        fails outright every row is "new" and the result is degraded.
    """
    logger.info("reconciling_rows", row_count=len(rows), mode=mode.value)

    try:
        result = await _reconcile(rows, mapping, mode, store, chunk_size, cancel_token, item_codes)
    except ImportCancelledError:
        raise
    except Exception as e:
        logger.error("reconciliation_failed", error=str(e), error_type=type(e).__name__)
        return ReconciliationResult(
            statuses=[
                RowStatus(
                    status=RowStatusKind.NEW,
                    message="Existence check unavailable; conflicts resolved at commit",
                )
                for _ in rows
            ],
            mode=mode,
            degraded=True,
        )

    logger.info("rows_reconciled", degraded=result.degraded, **result.status_counts())

    return result


async def _reconcile(
    rows: list[SourceRow],
    mapping: ColumnMapping,
    mode: ImportMode,
    store,
    chunk_size: int,
    cancel_token: Optional[CancellationToken],
    item_codes: Optional[Sequence[Optional[str]]] = None,
) -> ReconciliationResult:
    name_header = mapping.header_for(TargetFieldKey.NAME)
    key_headers = {key: mapping.header_for(key) for key in UNIQUE_KEYS}

    row_keys: list[dict[TargetFieldKey, str]] = []
    for position, row in enumerate(rows):
        keys = {
            key: cell_text(row.get(header))
            for key, header in key_headers.items()
            if header is not None
        }
        if item_codes is not None:
            keys[TargetFieldKey.ITEM_CODE] = cell_text(item_codes[position])
        row_keys.append(keys)

    # Distinct non-empty values per unique column, first-seen order
    file_values: dict[TargetFieldKey, list[str]] = {}
    for key in UNIQUE_KEYS:
        seen: dict[str, None] = {}
        for keys in row_keys:
            value = keys.get(key)
            if value:
                seen.setdefault(value, None)
        file_values[key] = list(seen)

    result = ReconciliationResult(mode=mode)
    lookups: dict[TargetFieldKey, ChunkLookup] = {}
    for key, values in file_values.items():
        if not values:
            continue
        lookup = await query_in_chunks(store, key.value, values, chunk_size, cancel_token)
        lookups[key] = lookup
        result.queries += lookup.queries
        result.failed_chunks.extend(lookup.failed_chunks)

    result.degraded = bool(result.failed_chunks)

    for row, keys in zip(rows, row_keys):
        if name_header is None or not cell_text(row.get(name_header)):
            result.statuses.append(RowStatus(
                status=RowStatusKind.ERROR,
                message="Missing required field: Item Name",
            ))
            continue

        match: Optional[str] = None
        unverified: Optional[str] = None
        for key in UNIQUE_KEYS:
            lookup = lookups.get(key)
            value = keys.get(key)
            if lookup is None or not value:
                continue
            if value in lookup.matched:
                match = f"{key.value}={value}"
                break
            if value in lookup.unverified and unverified is None:
                unverified = f"{key.value}={value}"

        if match is not None:
            if mode == ImportMode.UPSERT:
                result.statuses.append(RowStatus(status=RowStatusKind.UPDATE, message=f"Match: {match}"))
            else:
                result.statuses.append(RowStatus(status=RowStatusKind.DUPLICATE, message=f"Exists: {match}"))
        elif unverified is not None:
            result.statuses.append(RowStatus(
                status=RowStatusKind.NEW,
                message=f"Not verified: existence check failed for {unverified}",
            ))
        else:
            result.statuses.append(RowStatus(status=RowStatusKind.NEW))

    return result
