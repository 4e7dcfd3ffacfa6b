"""Spreadsheet reading and writing for ledger and order uploads.

Uploads are logistics exports as `.xlsx` or `.csv`. Both are read into a
list of row dicts keyed by the header row (first non-empty row of the first
sheet). Header names are kept as-is apart from surrounding whitespace, since
callers look up exact column names such as "Product SKU".
"""

import csv
import io
import logging
import zipfile
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Sequence

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

logger = logging.getLogger(__name__)

Row = Dict[str, Any]


class SpreadsheetError(ValueError):
    """The uploaded file could not be read as a spreadsheet."""


def _rows_from_matrix(matrix: Iterable[Sequence[Any]]) -> List[Row]:
    rows: List[Row] = []
    header: List[str] = []

    for values in matrix:
        values = list(values)
        # Skip completely empty rows
        if not any(v not in (None, "") for v in values):
            continue
        if not header:
            header = [str(v).strip() if v is not None else "" for v in values]
            continue

        row: Row = {}
        for index, value in enumerate(values):
            if index >= len(header) or not header[index]:
                continue
            if isinstance(value, str):
                value = value.strip()
            row[header[index]] = value
        rows.append(row)

    return rows


def read_xlsx(content: bytes) -> List[Row]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise SpreadsheetError(f"Unable to read Excel file: {exc}") from exc
    try:
        return _rows_from_matrix(workbook.worksheets[0].iter_rows(values_only=True))
    finally:
        workbook.close()


def read_csv(content: bytes) -> List[Row]:
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = content.decode("latin-1")
    return _rows_from_matrix(csv.reader(io.StringIO(text)))


def read_spreadsheet(filename: str, content: bytes) -> List[Row]:
    """Read the first sheet of an uploaded file into row dicts.

    The format is picked from the file extension; anything that is not
    `.csv` is treated as Excel.

    Raises:
        SpreadsheetError: If the file cannot be parsed
    """
    if (filename or "").lower().endswith(".csv"):
        rows = read_csv(content)
    else:
        rows = read_xlsx(content)
    logger.info(f"[SPREADSHEET] Read {len(rows)} rows from {filename}")
    return rows


def first_value(row: Row, *columns: str) -> Any:
    """Return the first truthy value among `columns`, or None."""
    for column in columns:
        value = row.get(column)
        if value not in (None, ""):
            return value
    return None


def write_xlsx(headers: List[str], rows: Iterable[Sequence[Any]], sheet_title: str = "Sheet1") -> bytes:
    """Render rows to an .xlsx file and return its bytes."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title[:31]
    sheet.append(headers)
    for row in rows:
        sheet.append([
            value.isoformat() if isinstance(value, (date, datetime)) else value
            for value in row
        ])
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()
