"""
Text utilities for spreadsheet cells.

Cells arrive as str, int, float, date or None depending on how the
workbook stored them; these helpers give every stage the same view.
"""

import math
from datetime import date, datetime
from typing import Any, Optional


def cell_text(value: Any) -> str:
    """
    Render a cell as trimmed text.

    - None / NaN -> ""
    - 25.0 -> "25" (integral floats lose the decimal part)
    - datetime(2024, 1, 15) -> "2024-01-15"
    - "  Beaker  " -> "Beaker"
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    if isinstance(value, datetime):
        if value.hour == 0 and value.minute == 0 and value.second == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def is_blank(value: Any) -> bool:
    """True when a cell has no usable content."""
    return cell_text(value) == ""


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a column header for alias matching.

    "  Item Name " -> "item name"
    "SKU" -> "sku"
    """
    if not header:
        return ""
    return str(header).strip().lower()


def clean_text(value: Any, max_length: Optional[int] = None) -> Optional[str]:
    """
    Clean a value for storage.

    - Strips whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only values
    """
    text = cell_text(value)
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        text = text[:max_length]
    return text
