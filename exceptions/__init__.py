"""
Custom exceptions module.
"""

from exceptions.errors import (
    # Base exceptions
    AppError,
    NotFoundError,
    ValidationError,
    ConflictError,
    ExternalServiceError,
    DatabaseError,

    # Spreadsheet
    SpreadsheetParseError,
    EmptySpreadsheetError,

    # Mapping
    MappingConflictError,
    MappingFrozenError,
    UnknownColumnError,
    MissingNameMappingError,

    # Import sessions
    ImportSessionNotFoundError,
    ImportRowNotFoundError,
    ImportCancelledError,
    ImportAlreadyCommittedError,

    # Collaborators
    LookupServiceError,
    RecordStoreError,
)

__all__ = [
    # Base
    "AppError",
    "NotFoundError",
    "ValidationError",
    "ConflictError",
    "ExternalServiceError",
    "DatabaseError",

    # Spreadsheet
    "SpreadsheetParseError",
    "EmptySpreadsheetError",

    # Mapping
    "MappingConflictError",
    "MappingFrozenError",
    "UnknownColumnError",
    "MissingNameMappingError",

    # Import sessions
    "ImportSessionNotFoundError",
    "ImportRowNotFoundError",
    "ImportCancelledError",
    "ImportAlreadyCommittedError",

    # Collaborators
    "LookupServiceError",
    "RecordStoreError",
]
