"""
Import session service.

Drives the pipeline stages for one operator session:
upload -> mapping -> validation -> enrichment -> reconciliation -> commit
-> image persistence. Sessions live in memory with a TTL and keep their
own rows, mapping, enrichments and results.

The one piece of state shared across sessions is the enrichment cache
held by the default orchestrator: a name looked up in one session is
reused by the next until its TTL runs out. Cached entries are read-only
lookup results, never session data. Pass an orchestrator with its own
EnrichmentCache to isolate a session completely.

After a commit the curated images are persisted once, best effort;
persist_images re-runs the jobs that are still pending or failed.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import BinaryIO, Optional, Union
import httpx
import structlog

from config import settings
from exceptions import (
    ImportAlreadyCommittedError,
    ImportCancelledError,
    ImportRowNotFoundError,
    ImportSessionNotFoundError,
    MissingNameMappingError,
)
from models.bulk_import import (
    EnrichmentSummary,
    ImageCandidate,
    ImageSearchStatus,
    ImportMode,
    ImportSessionResponse,
    RowEnrichment,
    RowWarning,
)
from models.item_fields import TargetFieldKey
from parsers.spreadsheet_parser import ParsedSpreadsheet, SourceRow, parse_spreadsheet
from services.batch_committer import CommitEntry, ImportResult, ProgressCallback, commit_records
from services.column_mapper import ColumnMapping, auto_detect_mapping
from services.duplicate_reconciler import ReconciliationResult, reconcile_rows
from services.enrichment_service import (
    EnrichmentOrchestrator,
    EnrichmentOutcome,
    get_enrichment_orchestrator,
)
from services.image_persistence_service import ImagePersistJob, build_image_jobs, run_image_jobs
from services.record_store import get_record_store
from services.row_materializer import materialize_row
from services.row_validator import validate_rows
from utils.cancellation import CancellationToken

logger = structlog.get_logger(__name__)


@dataclass
class ImportSession:
    """State of one import, from upload to image persistence."""
    session_id: str
    department_id: str
    spreadsheet: ParsedSpreadsheet
    mapping: ColumnMapping
    filename: Optional[str] = None
    created_by: Optional[str] = None
    warnings: list[RowWarning] = field(default_factory=list)
    mode: ImportMode = ImportMode.INSERT
    reconciliation: Optional[ReconciliationResult] = None
    reconciled_mapping: Optional[ColumnMapping] = None
    reconciled_codes: Optional[list[Optional[str]]] = None
    enrichments: dict[int, RowEnrichment] = field(default_factory=dict)
    selected_images: dict[int, list[ImageCandidate]] = field(default_factory=dict)
    image_search_status: dict[int, ImageSearchStatus] = field(default_factory=dict)
    enrichment_summary: Optional[EnrichmentSummary] = None
    result: Optional[ImportResult] = None
    image_jobs: list[ImagePersistJob] = field(default_factory=list)
    active_token: Optional[CancellationToken] = None

    @property
    def rows(self) -> list[SourceRow]:
        return self.spreadsheet.rows

    @property
    def committed(self) -> bool:
        return self.result is not None

    @property
    def can_commit(self) -> bool:
        return not self.committed and self.mapping.is_mapped(TargetFieldKey.NAME)

    def row(self, row_index: int) -> SourceRow:
        if row_index < 0 or row_index >= len(self.rows):
            raise ImportRowNotFoundError(row_index)
        return self.rows[row_index]

    def reconciliation_is_current(self, mode: ImportMode, item_codes: list[Optional[str]]) -> bool:
        return (
            self.reconciliation is not None
            and self.reconciliation.mode == mode
            and self.reconciled_mapping == self.mapping
            and self.reconciled_codes == item_codes
        )

    def start_phase(self, phase: str) -> CancellationToken:
        self.active_token = CancellationToken(phase)
        return self.active_token

    def end_phase(self, token: CancellationToken) -> None:
        if self.active_token is token:
            self.active_token = None


class ImportSessionStore:
    """In-memory sessions with TTL expiration."""

    def __init__(self, ttl_minutes: int = 60):
        self.ttl = timedelta(minutes=ttl_minutes)
        self._sessions: dict[str, tuple[datetime, ImportSession]] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def put(self, session: ImportSession) -> None:
        self._sessions[session.session_id] = (datetime.now() + self.ttl, session)
        self._cleanup_expired()

    def get(self, session_id: str) -> Optional[ImportSession]:
        """Session by id; None if expired or unknown. Access extends the TTL."""
        entry = self._sessions.get(session_id)
        if entry is None:
            return None
        expires_at, session = entry
        if datetime.now() > expires_at:
            del self._sessions[session_id]
            return None
        self._sessions[session_id] = (datetime.now() + self.ttl, session)
        return session

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def _cleanup_expired(self) -> None:
        now = datetime.now()
        expired = [k for k, (exp, _) in self._sessions.items() if now > exp]
        for k in expired:
            del self._sessions[k]


class ImportService:
    """Coordinates the import pipeline for sessions."""

    def __init__(
        self,
        sessions: Optional[ImportSessionStore] = None,
        record_store=None,
        orchestrator: Optional[EnrichmentOrchestrator] = None,
        image_http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.sessions = sessions or ImportSessionStore(settings.import_session_ttl_minutes)
        self._record_store = record_store
        self._orchestrator = orchestrator
        self.image_http_client = image_http_client

    @property
    def record_store(self):
        if self._record_store is None:
            self._record_store = get_record_store()
        return self._record_store

    @property
    def orchestrator(self) -> EnrichmentOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = get_enrichment_orchestrator()
        return self._orchestrator

    # ===================
    # SESSION LIFECYCLE
    # ===================

    def start_import(
        self,
        file: Union[str, BinaryIO],
        filename: Optional[str],
        department_id: str,
        created_by: Optional[str] = None,
    ) -> ImportSession:
        """
        Parse an uploaded spreadsheet and open a session.

        The mapping is proposed automatically and the rows validated
        against it straight away.

        Raises:
            SpreadsheetParseError: File could not be read
            EmptySpreadsheetError: No data rows
        """
        spreadsheet = parse_spreadsheet(file, filename)
        mapping = auto_detect_mapping(spreadsheet.headers)

        session = ImportSession(
            session_id=str(uuid.uuid4()),
            department_id=department_id,
            created_by=created_by,
            filename=filename,
            spreadsheet=spreadsheet,
            mapping=mapping,
        )
        session.warnings = validate_rows(session.rows, mapping)
        self.sessions.put(session)

        logger.info(
            "import_session_started",
            session_id=session.session_id,
            filename=filename,
            rows=spreadsheet.row_count,
            mapped=mapping.mapped_count(),
        )

        return session

    def get_session(self, session_id: str) -> ImportSession:
        """
        Raises:
            ImportSessionNotFoundError: Unknown or expired session
        """
        session = self.sessions.get(session_id)
        if session is None:
            raise ImportSessionNotFoundError(session_id)
        return session

    def cancel(self, session_id: str) -> ImportSession:
        """Cancel the running phase, if any. It stops at its next chunk or wave."""
        session = self.get_session(session_id)
        if session.active_token is not None:
            session.active_token.cancel()
            logger.info(
                "import_phase_cancel_requested",
                session_id=session_id,
                phase=session.active_token.phase,
            )
        return session

    def discard(self, session_id: str) -> None:
        """Cancel whatever is running and drop the session."""
        session = self.cancel(session_id)
        self.sessions.delete(session.session_id)
        logger.info("import_session_discarded", session_id=session_id)

    # ===================
    # MAPPING & VALIDATION
    # ===================

    def update_mapping(self, session_id: str, assignments: dict[str, str]) -> ImportSession:
        """
        Replace the column mapping and re-validate.

        Raises:
            MappingFrozenError: Session already committed
            MappingConflictError: Two headers point at one field
            UnknownColumnError: Header not in the file
        """
        session = self.get_session(session_id)
        session.mapping.replace(assignments)
        session.warnings = validate_rows(session.rows, session.mapping)
        return session

    def validate(self, session_id: str) -> ImportSession:
        session = self.get_session(session_id)
        session.warnings = validate_rows(session.rows, session.mapping)
        return session

    # ===================
    # ENRICHMENT
    # ===================

    async def enrich(self, session_id: str) -> ImportSession:
        """Enrich every row that lacks a description or item code."""
        session = self.get_session(session_id)
        token = session.start_phase("enrichment")
        try:
            outcome = await self.orchestrator.enrich(session.rows, session.mapping, token)
        finally:
            session.end_phase(token)

        session.enrichments = dict(outcome.enrichments)
        session.selected_images = dict(outcome.selected_images)
        session.image_search_status = dict(outcome.image_search_status)
        session.enrichment_summary = outcome.summary
        return session

    async def enrich_row(self, session_id: str, row_index: int) -> ImportSession:
        """Re-run enrichment for one row, replacing its previous proposals."""
        session = self.get_session(session_id)
        row = session.row(row_index)
        outcome: EnrichmentOutcome = await self.orchestrator.enrich_row(row, session.mapping)

        session.enrichments.pop(row_index, None)
        session.selected_images.pop(row_index, None)
        session.image_search_status.pop(row_index, None)
        session.enrichments.update(outcome.enrichments)
        session.selected_images.update(outcome.selected_images)
        session.image_search_status.update(outcome.image_search_status)

        logger.info("import_row_enriched", session_id=session_id, row=row.row_number)
        return session

    def set_selected_images(
        self,
        session_id: str,
        row_index: int,
        images: list[ImageCandidate],
    ) -> ImportSession:
        """Replace a row's curated gallery; the first image becomes primary."""
        session = self.get_session(session_id)
        session.row(row_index)
        if images:
            session.selected_images[row_index] = list(images)
        else:
            session.selected_images.pop(row_index, None)
        return session

    # ===================
    # RECONCILE & COMMIT
    # ===================

    async def reconcile(self, session_id: str, mode: ImportMode) -> ImportSession:
        session = self.get_session(session_id)
        await self._reconcile(session, mode)
        return session

    async def _reconcile(
        self,
        session: ImportSession,
        mode: ImportMode,
        item_codes: Optional[list[Optional[str]]] = None,
    ) -> None:
        if item_codes is None:
            item_codes = self.canonical_item_codes(session)
        token = session.start_phase("reconciliation")
        try:
            session.reconciliation = await reconcile_rows(
                session.rows,
                session.mapping,
                mode,
                self.record_store,
                chunk_size=settings.existence_chunk_size,
                cancel_token=token,
                item_codes=item_codes,
            )
        finally:
            session.end_phase(token)
        session.mode = mode
        session.reconciled_mapping = session.mapping.copy()
        session.reconciled_codes = item_codes

    def _materialize(self, session: ImportSession, row: SourceRow) -> dict:
        return materialize_row(
            row,
            session.mapping,
            session.department_id,
            created_by=session.created_by,
            enrichment=session.enrichments.get(row.index),
            selected_images=session.selected_images.get(row.index),
        )

    def canonical_item_codes(self, session: ImportSession) -> list[Optional[str]]:
        """Item code each row will be written with, generated codes included."""
        return [self._materialize(session, row).get("item_code") for row in session.rows]

    def build_entries(self, session: ImportSession) -> list[CommitEntry]:
        """Canonical records for every row, recomputed from current state."""
        statuses = session.reconciliation.statuses if session.reconciliation else []
        entries = []
        for row in session.rows:
            status = statuses[row.index] if row.index < len(statuses) else None
            record = self._materialize(session, row)
            entry = CommitEntry(row_index=row.index, record=record)
            if status is not None:
                entry.status = status.status
                entry.message = status.message
            entries.append(entry)
        return entries

    async def commit(
        self,
        session_id: str,
        mode: Optional[ImportMode] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ImportSession:
        """
        Write the session's rows to the record store.

        Reconciles first unless the last reconciliation used this mode,
        mapping and the same canonical item codes. The mapping is frozen
        from here on. Curated images are persisted once afterwards;
        image failures are left on the jobs and never change the result.

        Raises:
            ImportAlreadyCommittedError: Session was committed before
            MissingNameMappingError: No column is mapped to the item name
            ImportCancelledError: Cancelled between chunks
        """
        session = self.get_session(session_id)
        if session.committed:
            raise ImportAlreadyCommittedError(session_id)
        if not session.mapping.is_mapped(TargetFieldKey.NAME):
            raise MissingNameMappingError()

        mode = mode or session.mode
        item_codes = self.canonical_item_codes(session)
        if not session.reconciliation_is_current(mode, item_codes):
            await self._reconcile(session, mode, item_codes)

        session.mapping.freeze()
        entries = self.build_entries(session)

        token = session.start_phase("commit")
        try:
            result = await commit_records(
                entries,
                mode,
                self.record_store,
                chunk_size=settings.commit_chunk_size,
                on_progress=on_progress,
                cancel_token=token,
            )
        except ImportCancelledError:
            # Some rows may be written; reconcile again before the next attempt
            session.reconciliation = None
            raise
        finally:
            session.end_phase(token)

        session.result = result
        session.image_jobs = build_image_jobs(
            entries, result, session.selected_images, uploaded_by=session.created_by
        )

        logger.info(
            "import_session_committed",
            session_id=session_id,
            image_jobs=len(session.image_jobs),
            **result.to_dict(),
        )

        # Best effort: failed jobs stay on the session for persist_images
        if session.image_jobs:
            try:
                await self._run_image_jobs(session)
            except Exception as e:
                logger.warning(
                    "post_commit_images_failed",
                    session_id=session_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return session

    async def persist_images(self, session_id: str) -> ImportSession:
        """Run pending and failed image jobs."""
        session = self.get_session(session_id)
        await self._run_image_jobs(session)
        return session

    async def _run_image_jobs(self, session: ImportSession) -> None:
        token = session.start_phase("image_persistence")
        try:
            await run_image_jobs(
                session.image_jobs,
                self.record_store,
                http_client=self.image_http_client,
                max_images=settings.max_persisted_images,
                timeout=settings.image_download_timeout_seconds,
                cancel_token=token,
            )
        finally:
            session.end_phase(token)

    # ===================
    # SUMMARY
    # ===================

    def summarize(self, session: ImportSession) -> ImportSessionResponse:
        reconciliation = session.reconciliation
        return ImportSessionResponse(
            session_id=session.session_id,
            filename=session.filename,
            department_id=session.department_id,
            row_count=len(session.rows),
            headers=session.spreadsheet.headers,
            mapping=session.mapping.to_dict(),
            mapping_frozen=session.mapping.frozen,
            warnings=session.warnings,
            can_commit=session.can_commit,
            mode=session.mode,
            status_counts=reconciliation.status_counts() if reconciliation else {},
            row_statuses=reconciliation.statuses if reconciliation else [],
            reconciliation_degraded=reconciliation.degraded if reconciliation else False,
            enrichment=session.enrichment_summary,
            image_search_status=session.image_search_status,
            selected_images=session.selected_images,
            result=session.result.to_response() if session.result else None,
            image_jobs=[job.to_response() for job in session.image_jobs],
        )


# Singleton instance for convenience
_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create ImportService instance."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
