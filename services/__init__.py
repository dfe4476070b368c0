"""
Import pipeline services.

Each module handles one pipeline stage; import_session_service ties
them together for an operator session.
"""

from services.column_mapper import ColumnMapping, auto_detect_mapping
from services.row_validator import validate_rows
from services.duplicate_reconciler import ReconciliationResult, reconcile_rows
from services.enrichment_service import (
    EnrichmentOrchestrator,
    EnrichmentOutcome,
    get_enrichment_orchestrator,
)
from services.row_materializer import materialize_row
from services.batch_committer import CommitEntry, ImportResult, commit_records
from services.image_persistence_service import ImagePersistJob, build_image_jobs, run_image_jobs
from services.record_store import SupabaseRecordStore, get_record_store
from services.template_export_service import TemplateExportService, get_template_export_service
from services.import_session_service import ImportService, get_import_service

__all__ = [
    "ColumnMapping",
    "auto_detect_mapping",
    "validate_rows",
    "ReconciliationResult",
    "reconcile_rows",
    "EnrichmentOrchestrator",
    "EnrichmentOutcome",
    "get_enrichment_orchestrator",
    "materialize_row",
    "CommitEntry",
    "ImportResult",
    "commit_records",
    "ImagePersistJob",
    "build_image_jobs",
    "run_image_jobs",
    "SupabaseRecordStore",
    "get_record_store",
    "TemplateExportService",
    "get_template_export_service",
    "ImportService",
    "get_import_service",
]
