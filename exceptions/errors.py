"""
Custom exception classes for the application.

Every error carries a stable code, a human-readable message, an HTTP
status and optional details for the API envelope.
"""

from typing import Optional, Any
from datetime import datetime


class AppError(Exception):
    """
    Base exception for all application errors.

    All custom exceptions inherit from this.

    Attributes:
        code: Error code (e.g., "IMPORT_SESSION_NOT_FOUND")
        message: Human-readable message
        status_code: HTTP status code
        details: Additional context
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.timestamp = datetime.utcnow().isoformat()
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to API response format."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "timestamp": self.timestamp
            }
        }


class NotFoundError(AppError):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        identifier: str,
        code: Optional[str] = None
    ):
        super().__init__(
            code=code or f"{resource.upper()}_NOT_FOUND",
            message=f"{resource} not found",
            status_code=404,
            details={"id": identifier}
        )


class ValidationError(AppError):
    """Validation failed (422)."""

    def __init__(
        self,
        message: str,
        code: str = "VALIDATION_ERROR",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=422,
            details=details
        )


class ConflictError(AppError):
    """Conflict with existing resource or state (409)."""

    def __init__(
        self,
        message: str,
        code: str = "CONFLICT",
        details: Optional[dict] = None
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details
        )


class ExternalServiceError(AppError):
    """External service failure (503)."""

    def __init__(
        self,
        service: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code=f"{service.upper()}_ERROR",
            message=message,
            status_code=503,
            details={"service": service, **(details or {})}
        )


class DatabaseError(AppError):
    """Database operation failed (500)."""

    def __init__(
        self,
        operation: str,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="DATABASE_ERROR",
            message=f"Database {operation} failed: {message}",
            status_code=500,
            details={"operation": operation, **(details or {})}
        )


# ===================
# SPREADSHEET ERRORS
# ===================

class SpreadsheetParseError(ValidationError):
    """Spreadsheet could not be read."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        super().__init__(
            code="SPREADSHEET_PARSE_ERROR",
            message=message,
            details=details
        )


class EmptySpreadsheetError(ValidationError):
    """Spreadsheet has a header row but no data rows."""

    def __init__(self, sheet: Optional[str] = None):
        super().__init__(
            code="SPREADSHEET_EMPTY",
            message="The uploaded file contains no data rows",
            details={"sheet": sheet}
        )


# ===================
# MAPPING ERRORS
# ===================

class MappingConflictError(ConflictError):
    """Target field already assigned to another header."""

    def __init__(self, field: str, header: str, existing_header: str):
        super().__init__(
            code="MAPPING_FIELD_TAKEN",
            message=f"Field '{field}' is already mapped to column '{existing_header}'",
            details={"field": field, "header": header, "existing_header": existing_header}
        )


class MappingFrozenError(ConflictError):
    """Mapping can no longer change."""

    def __init__(self):
        super().__init__(
            code="MAPPING_FROZEN",
            message="Column mapping is frozen once an import has been committed"
        )


class UnknownColumnError(ValidationError):
    """Header is not part of the uploaded file."""

    def __init__(self, header: str):
        super().__init__(
            code="MAPPING_UNKNOWN_COLUMN",
            message=f"Unknown column: {header}",
            details={"header": header}
        )


class MissingNameMappingError(ValidationError):
    """No column is mapped to the item name, so rows have no identity."""

    def __init__(self):
        super().__init__(
            code="MAPPING_NAME_REQUIRED",
            message="Required field 'Item Name' is not mapped to any column."
        )


# ===================
# IMPORT SESSION ERRORS
# ===================

class ImportSessionNotFoundError(NotFoundError):
    """Import session expired or never existed."""

    def __init__(self, session_id: str):
        super().__init__(
            resource="Import session",
            identifier=session_id,
            code="IMPORT_SESSION_NOT_FOUND"
        )


class ImportRowNotFoundError(NotFoundError):
    """Row index outside the parsed file."""

    def __init__(self, row_index: int):
        super().__init__(
            resource="Import row",
            identifier=str(row_index),
            code="IMPORT_ROW_NOT_FOUND"
        )


class ImportCancelledError(ConflictError):
    """Operator cancelled the running phase."""

    def __init__(self, phase: str, details: Optional[dict] = None):
        super().__init__(
            code="IMPORT_CANCELLED",
            message=f"Import {phase} was cancelled",
            details={"phase": phase, **(details or {})}
        )


class ImportAlreadyCommittedError(ConflictError):
    """Session has already been committed."""

    def __init__(self, session_id: str):
        super().__init__(
            code="IMPORT_ALREADY_COMMITTED",
            message="This import session has already been committed",
            details={"session_id": session_id}
        )


# ===================
# COLLABORATOR ERRORS
# ===================

class LookupServiceError(ExternalServiceError):
    """Online lookup service unreachable or returned an error."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            service="lookup",
            message=message,
            details=details
        )


class RecordStoreError(DatabaseError):
    """
    Record store operation failed.

    Keeps the store's own message and SQLSTATE code so callers can tell
    unique-constraint conflicts from other failures.
    """

    def __init__(
        self,
        operation: str,
        message: str,
        db_code: Optional[str] = None,
        details: Optional[dict] = None
    ):
        super().__init__(
            operation=operation,
            message=message,
            details={"db_code": db_code, **(details or {})}
        )
        self.store_message = message
        self.db_code = db_code
