"""
Spreadsheet parser for bulk item imports.

Reads the first sheet of an arbitrary user spreadsheet (header row = row 1)
into ordered header -> cell mappings. No column names are assumed; the
column mapper decides what each header means.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from io import BytesIO
from pathlib import Path
from typing import Any, Optional, Union
import structlog

import pandas as pd

from exceptions import SpreadsheetParseError, EmptySpreadsheetError

logger = structlog.get_logger(__name__)

CellValue = Union[str, int, float, bool, date, datetime, None]

CSV_SUFFIXES = (".csv", ".txt")


@dataclass(frozen=True)
class SourceRow:
    """One spreadsheet data row, as read."""
    index: int
    cells: dict[str, CellValue]

    @property
    def row_number(self) -> int:
        """Row number as the operator sees it (1-indexed + header)."""
        return self.index + 2

    def get(self, header: Optional[str]) -> CellValue:
        """Raw value under a header, or None when absent."""
        if header is None:
            return None
        return self.cells.get(header)


@dataclass
class ParsedSpreadsheet:
    """Result of parsing an uploaded spreadsheet."""
    headers: list[str] = field(default_factory=list)
    rows: list[SourceRow] = field(default_factory=list)
    sheet_name: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)


def parse_spreadsheet(
    file: Union[str, Path, BytesIO],
    filename: Optional[str] = None,
) -> ParsedSpreadsheet:
    """
    Parse the first sheet of an uploaded spreadsheet.

    Args:
        file: File path (str/Path) or file-like object (BytesIO)
        filename: Original filename, used to detect CSV uploads

    Returns:
        ParsedSpreadsheet with headers in file order and non-blank rows

    Raises:
        SpreadsheetParseError: If the file cannot be read
        EmptySpreadsheetError: If there are no data rows
    """
    name = filename or (str(file) if isinstance(file, (str, Path)) else "")
    is_csv = name.lower().endswith(CSV_SUFFIXES)

    logger.info("parsing_spreadsheet", filename=filename, csv=is_csv)

    try:
        if is_csv:
            sheet_name = None
            df = pd.read_csv(file, dtype=object)
        else:
            excel = pd.ExcelFile(file)
            if not excel.sheet_names:
                raise SpreadsheetParseError(message="Workbook has no sheets")
            sheet_name = excel.sheet_names[0]
            df = excel.parse(sheet_name, dtype=object)
    except SpreadsheetParseError:
        raise
    except Exception as e:
        logger.error("spreadsheet_read_failed", error=str(e), error_type=type(e).__name__)
        raise SpreadsheetParseError(
            message="Failed to read spreadsheet",
            details={"original_error": str(e)}
        )

    headers = _clean_headers(df)
    df = df[headers] if headers else df

    rows: list[SourceRow] = []
    for _, record in df.iterrows():
        cells = {header: _clean_cell(record[header]) for header in headers}

        # Skip fully blank rows
        if all(_is_blank(v) for v in cells.values()):
            continue

        rows.append(SourceRow(index=len(rows), cells=cells))

    if not rows:
        logger.warning("spreadsheet_empty", sheet=sheet_name)
        raise EmptySpreadsheetError(sheet=sheet_name)

    result = ParsedSpreadsheet(headers=headers, rows=rows, sheet_name=sheet_name)

    logger.info(
        "spreadsheet_parsed",
        sheet=sheet_name,
        header_count=len(headers),
        row_count=len(rows),
    )

    return result


# ===================
# HELPER FUNCTIONS
# ===================

def _clean_headers(df: pd.DataFrame) -> list[str]:
    """
    Header names in file order.

    Drops pandas placeholders for empty header cells ("Unnamed: 3")
    when the whole column is empty too.
    """
    headers = []
    for col in df.columns:
        header = str(col)
        if header.startswith("Unnamed:") and df[col].isna().all():
            continue
        headers.append(header)
    return headers


def _clean_cell(value: Any) -> CellValue:
    """Convert a pandas cell to a plain Python value (NaN -> None)."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        # Array-like cells; keep as text
        return str(value)

    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        # numpy scalar
        return value.item()
    return value


def _is_blank(value: CellValue) -> bool:
    """True for None and whitespace-only strings."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False
