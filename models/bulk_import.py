"""
Bulk import schemas for validation and serialization.

Shared by the import pipeline services and the /api/imports routes.
"""

from pydantic import Field
from typing import Any, Optional
from enum import Enum

from models.base import BaseSchema, RequestSchema
from models.item_fields import TargetFieldKey


class ImportMode(str, Enum):
    """How rows that already exist in the store are handled."""
    INSERT = "insert"   # Existing rows are skipped
    UPSERT = "upsert"   # Existing rows are updated on item_code


class RowStatusKind(str, Enum):
    """Per-row classification against the record store."""
    NEW = "new"
    UPDATE = "update"
    DUPLICATE = "duplicate"
    ERROR = "error"


class EnrichmentSource(str, Enum):
    """Where an enriched value came from."""
    ONLINE = "online"
    HEURISTIC = "heuristic"
    AUTO = "auto"
    MANUAL = "manual"


class ImageSearchStatus(str, Enum):
    """Operator feedback on the online image search."""
    FOUND = "found"          # 5 or more candidates
    PARTIAL = "partial"      # 1-4 candidates
    NOT_FOUND = "not_found"  # nothing returned


class ImageJobStatus(str, Enum):
    """State of a post-commit image persistence job."""
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"


# ===================
# PIPELINE VALUES
# ===================

class ImageCandidate(BaseSchema):
    """One image offered for an item; the first selected image is primary."""
    url: str = Field(..., min_length=1, description="Image URL")
    source: str = Field("online", description="Origin of the image (online, manual, ...)")
    width: Optional[int] = Field(None, ge=0)
    height: Optional[int] = Field(None, ge=0)


class EnrichedValue(BaseSchema):
    """A value proposed by enrichment together with its origin."""
    value: Any
    source: EnrichmentSource


class RowEnrichment(BaseSchema):
    """Everything enrichment produced for one source row."""
    enriched: dict[TargetFieldKey, EnrichedValue] = Field(default_factory=dict)
    all_images: list[ImageCandidate] = Field(default_factory=list)
    image_search_status: Optional[ImageSearchStatus] = None


class RowStatus(BaseSchema):
    """Reconciliation outcome for one row."""
    status: RowStatusKind
    message: Optional[str] = None


class RowWarning(BaseSchema):
    """Validation finding; row 0 means the whole file."""
    row: int
    message: str


class FailedRow(BaseSchema):
    """A row the store rejected, with the store's own error text."""
    row: int
    error: str


# ===================
# REQUESTS
# ===================

class MappingUpdateRequest(RequestSchema):
    """Replace the column mapping. Values are field keys or 'skip'."""
    mapping: dict[str, str] = Field(
        ...,
        description="Header -> field key or 'skip'",
        examples=[{"Item Name": "name", "SKU": "item_code", "Qty": "current_quantity"}]
    )


class ReconcileRequest(RequestSchema):
    """Run duplicate detection for a mode."""
    mode: ImportMode = Field(ImportMode.INSERT, description="insert or upsert")


class CommitRequest(RequestSchema):
    """Commit the session's rows."""
    mode: Optional[ImportMode] = Field(
        None,
        description="Defaults to the mode used for reconciliation"
    )


class SelectedImagesRequest(RequestSchema):
    """Replace a row's curated gallery; index 0 becomes primary."""
    images: list[ImageCandidate] = Field(default_factory=list)


# ===================
# RESPONSES
# ===================

class ImportResultResponse(BaseSchema):
    """Exact tally of a commit."""
    total: int
    inserted: int
    updated: int
    skipped: int
    failed: int
    pre_skipped: int = 0
    failed_rows: list[FailedRow] = Field(default_factory=list)


class EnrichmentSummary(BaseSchema):
    """Counts shown after enrichment."""
    requested: int = 0
    enriched: int = 0
    descriptions: int = 0
    with_images: int = 0
    generated_codes: int = 0
    online_available: bool = True


class ImageJobResponse(BaseSchema):
    """Post-commit image persistence job."""
    row: int
    item_code: Optional[str] = None
    item_id: Optional[str] = None
    status: ImageJobStatus
    attempts: int = 0
    persisted: int = 0
    error: Optional[str] = None


class ImportSessionResponse(BaseSchema):
    """Snapshot of one import session."""
    session_id: str
    filename: Optional[str] = None
    department_id: str
    row_count: int
    headers: list[str]
    mapping: dict[str, str]
    mapping_frozen: bool = False
    warnings: list[RowWarning] = Field(default_factory=list)
    can_commit: bool = True
    mode: ImportMode = ImportMode.INSERT
    status_counts: dict[str, int] = Field(default_factory=dict)
    row_statuses: list[RowStatus] = Field(default_factory=list)
    reconciliation_degraded: bool = False
    enrichment: Optional[EnrichmentSummary] = None
    image_search_status: dict[int, ImageSearchStatus] = Field(default_factory=dict)
    selected_images: dict[int, list[ImageCandidate]] = Field(default_factory=dict)
    result: Optional[ImportResultResponse] = None
    image_jobs: list[ImageJobResponse] = Field(default_factory=list)
