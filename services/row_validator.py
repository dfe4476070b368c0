"""
Row validator for mapped spreadsheet rows.

Produces advisory warnings; rows are never modified and validation never
stops early, except when no column is mapped to the item name. In that
case a single file-level warning (row 0) is returned and the import must
not be committed.
"""

import math
from typing import Any, Optional
import structlog

from models.bulk_import import RowWarning
from models.item_fields import (
    TargetFieldKey,
    VALID_SAFETY_LEVELS,
    VALID_STATUSES,
    required_fields,
)
from parsers.spreadsheet_parser import SourceRow
from services.column_mapper import ColumnMapping
from utils.text_utils import cell_text, is_blank

logger = structlog.get_logger(__name__)

MISSING_NAME_MESSAGE = "Required field 'Item Name' is not mapped to any column."


def validate_rows(rows: list[SourceRow], mapping: ColumnMapping) -> list[RowWarning]:
    """
    Validate rows against the current mapping.

    Checks per row:
        - required fields present and non-blank
        - item code not repeated earlier in the file
        - status / safety level in the allowed vocabulary (case-insensitive)
        - quantity / price numeric and non-negative

    Returns:
        Warnings in row order; [RowWarning(row=0, ...)] alone when the
        name column is unmapped
    """
    if not mapping.is_mapped(TargetFieldKey.NAME):
        logger.warning("validation_name_unmapped")
        return [RowWarning(row=0, message=MISSING_NAME_MESSAGE)]

    required = [(f, mapping.header_for(f.key)) for f in required_fields()]
    code_header = mapping.header_for(TargetFieldKey.ITEM_CODE)
    status_header = mapping.header_for(TargetFieldKey.STATUS)
    safety_header = mapping.header_for(TargetFieldKey.SAFETY_LEVEL)
    qty_header = mapping.header_for(TargetFieldKey.CURRENT_QUANTITY)
    price_header = mapping.header_for(TargetFieldKey.PURCHASE_PRICE)

    warnings: list[RowWarning] = []
    seen_codes: set[str] = set()

    for row in rows:
        row_num = row.row_number

        # Required fields
        for target_field, header in required:
            if header is None or is_blank(row.get(header)):
                warnings.append(RowWarning(
                    row=row_num,
                    message=f"Missing required field: {target_field.label}"
                ))

        # Duplicate item code within the file
        if code_header is not None:
            code = cell_text(row.get(code_header))
            if code:
                if code in seen_codes:
                    warnings.append(RowWarning(
                        row=row_num,
                        message=f"Duplicate item code in file: {code}"
                    ))
                seen_codes.add(code)

        # Enum fields
        _check_enum(warnings, row, status_header, VALID_STATUSES, "status")
        _check_enum(warnings, row, safety_header, VALID_SAFETY_LEVELS, "safety level")

        # Numeric fields
        _check_non_negative(warnings, row, qty_header, "quantity")
        _check_non_negative(warnings, row, price_header, "price")

    logger.info("rows_validated", row_count=len(rows), warning_count=len(warnings))

    return warnings


# ===================
# HELPER FUNCTIONS
# ===================

def _check_enum(
    warnings: list[RowWarning],
    row: SourceRow,
    header: Optional[str],
    allowed: tuple[str, ...],
    label: str,
) -> None:
    if header is None:
        return
    raw = cell_text(row.get(header))
    if raw and raw.lower() not in allowed:
        warnings.append(RowWarning(
            row=row.row_number,
            message=f'Invalid {label} "{raw}". Expected: {", ".join(allowed)}'
        ))


def _check_non_negative(
    warnings: list[RowWarning],
    row: SourceRow,
    header: Optional[str],
    label: str,
) -> None:
    if header is None:
        return
    value = row.get(header)
    if is_blank(value):
        return
    if not is_non_negative_number(value):
        warnings.append(RowWarning(
            row=row.row_number,
            message=f'Invalid {label}: "{cell_text(value)}"'
        ))


def is_non_negative_number(value: Any) -> bool:
    """Check if a cell holds a finite number >= 0."""
    if isinstance(value, bool):
        return False
    try:
        num = float(cell_text(value))
    except (ValueError, TypeError):
        return False
    return math.isfinite(num) and num >= 0
