"""
Row materializer: turns a source row into a canonical item record.

Precedence, per field:
    1. mapped cell, coerced by the field's kind
    2. enrichment, only where step 1 left the field None/blank
    3. curated images (image_url + sub_images)
    4. record defaults for anything still missing
"""

import math
import re
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd

from models.bulk_import import ImageCandidate, RowEnrichment
from models.item_fields import (
    FALSE_VALUES,
    IMAGE_URL_FIELD,
    INTEGER_FALLBACKS,
    RECORD_DEFAULTS,
    SUB_IMAGES_FIELD,
    TRUE_VALUES,
    VALID_SAFETY_LEVELS,
    VALID_STATUSES,
    FieldKind,
    TargetFieldKey,
    get_field,
)
from parsers.spreadsheet_parser import SourceRow
from services.column_mapper import ColumnMapping
from utils.text_utils import cell_text, clean_text

_LEADING_INT = re.compile(r"^[+-]?\d+")
_LEADING_FLOAT = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?")


# ===================
# COERCION
# ===================

def parse_leading_int(value: Any) -> Optional[int]:
    """
    Integer from the start of a cell.

    25 -> 25, "25" -> 25, "25 pcs" -> 25, 7.9 -> 7, "abc" -> None
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = _LEADING_INT.match(cell_text(value))
    return int(match.group()) if match else None


def parse_leading_float(value: Any) -> Optional[float]:
    """Number from the start of a cell: "12.50 USD" -> 12.5, "" -> None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
        return num if math.isfinite(num) else None
    match = _LEADING_FLOAT.match(cell_text(value))
    return float(match.group()) if match else None


def parse_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    text = cell_text(value).lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    return None


def parse_enum(value: Any, allowed: tuple[str, ...]) -> Optional[str]:
    text = cell_text(value).lower()
    return text if text in allowed else None


def parse_date(value: Any) -> Optional[str]:
    """
    ISO date string from a date cell or a parseable date string.

    Unparseable text is dropped (None).
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = cell_text(value)
    if not text:
        return None
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date().isoformat()


def coerce_value(key: TargetFieldKey, value: Any) -> Any:
    """Coerce a raw cell for one field, dispatching on its kind."""
    kind = get_field(key).kind

    if kind == FieldKind.INTEGER:
        parsed = parse_leading_int(value)
        return parsed if parsed is not None else INTEGER_FALLBACKS.get(key)
    if kind == FieldKind.PRICE:
        return parse_leading_float(value)
    if kind == FieldKind.BOOLEAN:
        return parse_boolean(value)
    if kind == FieldKind.STATUS:
        return parse_enum(value, VALID_STATUSES)
    if kind == FieldKind.SAFETY_LEVEL:
        return parse_enum(value, VALID_SAFETY_LEVELS)
    if kind == FieldKind.DATE:
        return parse_date(value)
    if kind == FieldKind.TEXT:
        return clean_text(value)

    raise ValueError(f"No coercion for field kind {kind!r}")


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ===================
# MATERIALIZE
# ===================

def materialize_row(
    row: SourceRow,
    mapping: ColumnMapping,
    department_id: str,
    created_by: Optional[str] = None,
    enrichment: Optional[RowEnrichment] = None,
    selected_images: Optional[list[ImageCandidate]] = None,
) -> dict:
    """
    Build the canonical record for one row.

    Pure: the same inputs always give the same record.

    Args:
        row: Source row
        mapping: Column mapping (skipped headers are ignored)
        department_id: Always written to the record
        created_by: Importing user, written when known
        enrichment: Proposed values for this row, if any
        selected_images: Curated gallery, index 0 primary

    Returns:
        Record dict ready for the store
    """
    record: dict[str, Any] = {"department_id": department_id}
    if created_by:
        record["created_by"] = created_by

    # 1. Mapped cells
    for header, key in mapping.mapped_items():
        record[key.value] = coerce_value(key, row.get(header))

    # 2. Enrichment fills gaps only
    if enrichment is not None:
        for key, proposed in enrichment.enriched.items():
            if _is_empty(record.get(key.value)) and not _is_empty(proposed.value):
                record[key.value] = proposed.value

    # 3. Curated images
    if selected_images:
        record[IMAGE_URL_FIELD] = selected_images[0].url
        if len(selected_images) > 1:
            record[SUB_IMAGES_FIELD] = [img.url for img in selected_images[1:]]

    # 4. Defaults
    for field_name, default in RECORD_DEFAULTS:
        if _is_empty(record.get(field_name)):
            record[field_name] = default

    return record
