"""
Enrichment orchestrator.

Fills gaps in rows that lack a description or an item code, using the
lookup service where it answers and local keyword heuristics everywhere.
Cells the operator filled in are never overwritten.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Optional
import structlog

from config import settings
from exceptions import LookupServiceError
from models.bulk_import import (
    EnrichedValue,
    EnrichmentSource,
    EnrichmentSummary,
    ImageCandidate,
    ImageSearchStatus,
    RowEnrichment,
)
from models.item_fields import TargetFieldKey, VALID_SAFETY_LEVELS
from parsers.spreadsheet_parser import SourceRow
from services.column_mapper import ColumnMapping
from services.enrichment_cache import EnrichmentCache, get_enrichment_cache
from services.item_heuristics import generate_item_code, infer_item_type, infer_safety_level
from services.lookup_client import LookupClient, LookupQuery, LookupResult, get_lookup_client
from utils.cancellation import CancellationToken, check_cancelled
from utils.chunking import chunked
from utils.text_utils import cell_text, clean_text

logger = structlog.get_logger(__name__)

FOUND_IMAGE_THRESHOLD = 5


@dataclass
class EnrichmentOutcome:
    """Result of one enrichment pass, keyed by row index."""
    enrichments: dict[int, RowEnrichment] = field(default_factory=dict)
    selected_images: dict[int, list[ImageCandidate]] = field(default_factory=dict)
    image_search_status: dict[int, ImageSearchStatus] = field(default_factory=dict)
    summary: EnrichmentSummary = field(default_factory=EnrichmentSummary)


def needs_enrichment(row: SourceRow, mapping: ColumnMapping) -> bool:
    """Row has a name and is missing its description or item code."""
    if not _cell(row, mapping, TargetFieldKey.NAME):
        return False
    return (
        not _cell(row, mapping, TargetFieldKey.DESCRIPTION)
        or not _cell(row, mapping, TargetFieldKey.ITEM_CODE)
    )


def build_query(row: SourceRow, mapping: ColumnMapping) -> LookupQuery:
    return LookupQuery(
        name=_cell(row, mapping, TargetFieldKey.NAME),
        brand=_cell(row, mapping, TargetFieldKey.BRAND) or None,
        catalog_number=_cell(row, mapping, TargetFieldKey.MODEL_NUMBER) or None,
    )


def image_search_status_for(online: Optional[LookupResult], image_count: int) -> ImageSearchStatus:
    if online is not None and online.image_search_status is not None:
        return online.image_search_status
    if image_count >= FOUND_IMAGE_THRESHOLD:
        return ImageSearchStatus.FOUND
    if image_count > 0:
        return ImageSearchStatus.PARTIAL
    return ImageSearchStatus.NOT_FOUND


def build_row_enrichment(
    row: SourceRow,
    mapping: ColumnMapping,
    online: Optional[LookupResult],
    description_max_length: int = 500,
) -> RowEnrichment:
    """
    Merge lookup data and heuristics for one row.

    Only fields whose mapped cell is blank (or unmapped) are proposed.
    `online` is None when the service had nothing or was unreachable.
    """
    name = _cell(row, mapping, TargetFieldKey.NAME)
    online_description = online.description if online else None
    enriched: dict[TargetFieldKey, EnrichedValue] = {}

    def propose(key: TargetFieldKey, value, source: EnrichmentSource) -> None:
        if value is None or _cell(row, mapping, key):
            return
        enriched[key] = EnrichedValue(value=value, source=source)

    # Description
    if online_description:
        propose(
            TargetFieldKey.DESCRIPTION,
            clean_text(online_description, description_max_length),
            EnrichmentSource.ONLINE,
        )

    # Images, primary first
    images: list[ImageCandidate] = []
    if online is not None:
        if online.images:
            images = list(online.images)
        elif online.image_url:
            images = [ImageCandidate(url=online.image_url, source=online.source)]

    # Suggested quantity
    if online is not None and online.suggested_quantity and online.suggested_quantity > 1:
        propose(TargetFieldKey.CURRENT_QUANTITY, online.suggested_quantity, EnrichmentSource.HEURISTIC)

    # Item code
    propose(TargetFieldKey.ITEM_CODE, generate_item_code(name, row.index), EnrichmentSource.AUTO)

    # Item type
    if online is not None and online.item_type:
        propose(TargetFieldKey.ITEM_TYPE, online.item_type, EnrichmentSource.ONLINE)
    else:
        propose(
            TargetFieldKey.ITEM_TYPE,
            infer_item_type(name, online_description),
            EnrichmentSource.HEURISTIC,
        )

    # Safety level
    online_safety = (online.safety_level or "").lower() if online is not None else ""
    if online_safety in VALID_SAFETY_LEVELS:
        propose(TargetFieldKey.SAFETY_LEVEL, online_safety, EnrichmentSource.ONLINE)
    else:
        propose(
            TargetFieldKey.SAFETY_LEVEL,
            infer_safety_level(name, online_description),
            EnrichmentSource.HEURISTIC,
        )

    return RowEnrichment(
        enriched=enriched,
        all_images=images,
        image_search_status=image_search_status_for(online, len(images)),
    )


def _cell(row: SourceRow, mapping: ColumnMapping, key: TargetFieldKey) -> str:
    header = mapping.header_for(key)
    return cell_text(row.get(header)) if header is not None else ""


class EnrichmentOrchestrator:
    """
    Runs enrichment for a set of rows under bounded concurrency.

    Lookups go out in batches of up to `batch_limit` items; one request
    when everything fits, otherwise waves of at most `wave_size` requests
    with a pause between waves.
    """

    def __init__(
        self,
        lookup_client: Optional[LookupClient] = None,
        cache: Optional[EnrichmentCache] = None,
        wave_size: int = 5,
        wave_pause_seconds: float = 0.2,
        batch_limit: int = 50,
        description_max_length: int = 500,
    ):
        self.lookup_client = lookup_client or get_lookup_client()
        self.cache = cache if cache is not None else get_enrichment_cache()
        self.wave_size = wave_size
        self.wave_pause_seconds = wave_pause_seconds
        self.batch_limit = batch_limit
        self.description_max_length = description_max_length

    async def enrich(
        self,
        rows: list[SourceRow],
        mapping: ColumnMapping,
        cancel_token: Optional[CancellationToken] = None,
    ) -> EnrichmentOutcome:
        """
        Enrich every row that has a name but lacks a description or code.

        Never raises for lookup failures: affected rows fall back to
        heuristics and `summary.online_available` is False.

        Raises:
            ImportCancelledError: Token cancelled between waves
        """
        targets = [row for row in rows if needs_enrichment(row, mapping)]

        logger.info("enrichment_started", row_count=len(rows), targets=len(targets))

        queries = [build_query(row, mapping) for row in targets]
        online, online_available = await self._lookup_all(queries, cancel_token)

        outcome = EnrichmentOutcome()
        for row, result in zip(targets, online):
            self._apply(outcome, row, mapping, result)

        outcome.summary = self._summarize(outcome, len(targets), online_available)

        logger.info("enrichment_complete", **outcome.summary.model_dump())

        return outcome

    async def enrich_row(self, row: SourceRow, mapping: ColumnMapping) -> EnrichmentOutcome:
        """
        Re-enrich a single row on operator request, bypassing the cache.

        Runs even if the row already has a description and code; only
        blank cells get proposals.
        """
        outcome = EnrichmentOutcome()
        if not _cell(row, mapping, TargetFieldKey.NAME):
            outcome.summary = EnrichmentSummary()
            return outcome

        query = build_query(row, mapping)
        online_available = True
        try:
            results = await self.lookup_client.lookup([query])
            result = results[0] if results else None
        except LookupServiceError as e:
            logger.warning("row_lookup_unavailable", row=row.row_number, error=e.message)
            result = None
            online_available = False

        if result is not None:
            self.cache.put(query.cache_key, result)

        self._apply(outcome, row, mapping, result)
        outcome.summary = self._summarize(outcome, 1, online_available)
        return outcome

    # ===================
    # HELPERS
    # ===================

    async def _lookup_all(
        self,
        queries: list[LookupQuery],
        cancel_token: Optional[CancellationToken],
    ) -> tuple[list[Optional[LookupResult]], bool]:
        """Resolve each query from cache or the service; None where unknown."""
        results: dict[tuple, Optional[LookupResult]] = {}
        pending: list[LookupQuery] = []

        for query in queries:
            key = query.cache_key
            if key in results:
                continue
            cached = self.cache.get(key)
            if cached is not None:
                results[key] = cached
            else:
                results[key] = None
                pending.append(query)

        logger.debug("lookup_cache", hits=len(results) - len(pending), misses=len(pending))

        online_available = True
        batches = chunked(pending, self.batch_limit)
        waves = chunked(batches, self.wave_size)

        for wave_index, wave in enumerate(waves):
            check_cancelled(cancel_token, {"wave": wave_index})
            if wave_index > 0 and self.wave_pause_seconds > 0:
                await asyncio.sleep(self.wave_pause_seconds)

            responses = await asyncio.gather(
                *(self.lookup_client.lookup(list(batch)) for batch in wave),
                return_exceptions=True,
            )

            for batch, response in zip(wave, responses):
                if isinstance(response, Exception):
                    online_available = False
                    logger.warning(
                        "lookup_batch_unavailable",
                        wave=wave_index,
                        items=len(batch),
                        error=str(response),
                        error_type=type(response).__name__,
                    )
                    continue
                if isinstance(response, BaseException):
                    raise response
                for query, result in zip(batch, response):
                    if result is not None:
                        results[query.cache_key] = result
                        self.cache.put(query.cache_key, result)

        return [results.get(q.cache_key) for q in queries], online_available

    def _apply(
        self,
        outcome: EnrichmentOutcome,
        row: SourceRow,
        mapping: ColumnMapping,
        online: Optional[LookupResult],
    ) -> None:
        enrichment = build_row_enrichment(row, mapping, online, self.description_max_length)
        outcome.enrichments[row.index] = enrichment
        outcome.image_search_status[row.index] = enrichment.image_search_status
        if enrichment.all_images:
            # Every fetched image starts selected
            outcome.selected_images[row.index] = list(enrichment.all_images)

    def _summarize(
        self,
        outcome: EnrichmentOutcome,
        requested: int,
        online_available: bool,
    ) -> EnrichmentSummary:
        values = list(outcome.enrichments.values())
        return EnrichmentSummary(
            requested=requested,
            enriched=sum(1 for e in values if e.enriched or e.all_images),
            descriptions=sum(1 for e in values if TargetFieldKey.DESCRIPTION in e.enriched),
            with_images=sum(1 for e in values if e.all_images),
            generated_codes=sum(1 for e in values if TargetFieldKey.ITEM_CODE in e.enriched),
            online_available=online_available,
        )


def get_enrichment_orchestrator() -> EnrichmentOrchestrator:
    """Orchestrator configured from settings."""
    return EnrichmentOrchestrator(
        lookup_client=get_lookup_client(),
        cache=get_enrichment_cache(),
        wave_size=settings.enrichment_wave_size,
        wave_pause_seconds=settings.enrichment_wave_pause_seconds,
        batch_limit=settings.lookup_batch_limit,
        description_max_length=settings.description_max_length,
    )
