"""
Item schema catalog and pydantic models for bulk imports.
"""

from models.base import BaseSchema, RequestSchema
from models.item_fields import (
    TargetFieldKey,
    FieldKind,
    FieldGroup,
    TargetField,
    TARGET_FIELDS,
    FIELD_ALIASES,
    SKIP,
    get_field,
    parse_field_key,
    required_fields,
    template_headers,
)
from models.bulk_import import (
    ImportMode,
    RowStatusKind,
    EnrichmentSource,
    ImageSearchStatus,
    ImageJobStatus,
    ImageCandidate,
    EnrichedValue,
    RowEnrichment,
    RowStatus,
    RowWarning,
    FailedRow,
    MappingUpdateRequest,
    ReconcileRequest,
    CommitRequest,
    SelectedImagesRequest,
    ImportResultResponse,
    EnrichmentSummary,
    ImageJobResponse,
    ImportSessionResponse,
)

__all__ = [
    # Base
    "BaseSchema",
    "RequestSchema",

    # Catalog
    "TargetFieldKey",
    "FieldKind",
    "FieldGroup",
    "TargetField",
    "TARGET_FIELDS",
    "FIELD_ALIASES",
    "SKIP",
    "get_field",
    "parse_field_key",
    "required_fields",
    "template_headers",

    # Bulk import
    "ImportMode",
    "RowStatusKind",
    "EnrichmentSource",
    "ImageSearchStatus",
    "ImageJobStatus",
    "ImageCandidate",
    "EnrichedValue",
    "RowEnrichment",
    "RowStatus",
    "RowWarning",
    "FailedRow",
    "MappingUpdateRequest",
    "ReconcileRequest",
    "CommitRequest",
    "SelectedImagesRequest",
    "ImportResultResponse",
    "EnrichmentSummary",
    "ImageJobResponse",
    "ImportSessionResponse",
]
