"""Spreadsheet detection and first-sheet parsing for lead uploads."""

from __future__ import annotations

import logging
import zlib
from collections.abc import Iterable
from datetime import date, datetime, time
from pathlib import Path
from typing import Any
from xml.etree.ElementTree import ParseError
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.services.leads.errors import WorkbookReadError

logger = logging.getLogger(__name__)

SPREADSHEET_CONTENT_TYPES = frozenset(
    {
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-excel",
    }
)
SPREADSHEET_EXTENSIONS = frozenset({".xlsx", ".xls"})

_UNREADABLE_ERRORS = (
    InvalidFileException,
    BadZipFile,
    ParseError,
    zlib.error,
    EOFError,
    KeyError,
    OSError,
    ValueError,
)


def looks_like_spreadsheet(filename: str | None, content_type: str | None) -> bool:
    """Accept a file when either its MIME type or its extension says Excel."""
    if content_type and content_type.split(";")[0].strip().lower() in SPREADSHEET_CONTENT_TYPES:
        return True
    return Path(filename or "").suffix.lower() in SPREADSHEET_EXTENSIONS


def read_first_sheet(path: str | Path) -> list[dict[str, Any]]:
    """Return the data rows of the first worksheet as header -> cell text mappings.

    Row 1 holds the headers. Rows without any populated cell are skipped, and
    blank headers are named ``column_<n>`` so no cell value is lost. A repeated
    header gets a numeric suffix (``Notes``, ``Notes_1``, ``Notes_2``).

    The file is handed to openpyxl as an open handle so it is parsed by content
    whatever its name. Read-only sheets are parsed lazily, so errors raised
    while iterating rows are reported the same way as an unreadable archive.
    """
    try:
        with open(path, "rb") as handle:
            workbook = load_workbook(handle, read_only=True, data_only=True)
            try:
                return _sheet_records(workbook)
            finally:
                workbook.close()
    except _UNREADABLE_ERRORS as exc:
        logger.warning("ingestion.workbook.unreadable", extra={"path": str(path)})
        raise WorkbookReadError("Error reading Excel file", detail=str(exc)) from exc


def _sheet_records(workbook: Workbook) -> list[dict[str, Any]]:
    if not workbook.worksheets:
        return []
    rows = workbook.worksheets[0].iter_rows(values_only=True)
    header_cells = next(rows, None)
    if header_cells is None:
        return []
    header_cells = list(header_cells)
    while header_cells and not _cell_to_text(header_cells[-1]):
        header_cells.pop()
    headers = _unique_headers(
        _cell_to_text(cell) or f"column_{index}"
        for index, cell in enumerate(header_cells, start=1)
    )
    records: list[dict[str, Any]] = []
    for cells in rows:
        record: dict[str, Any] = {}
        for index, cell in enumerate(cells):
            text = _cell_to_text(cell)
            if index < len(headers):
                record[headers[index]] = text
            elif text:
                record[f"column_{index + 1}"] = text
        if any(value for value in record.values()):
            records.append(record)
    return records


def _unique_headers(names: Iterable[str]) -> list[str]:
    headers: list[str] = []
    seen: set[str] = set()
    for name in names:
        candidate = name
        suffix = 0
        while candidate in seen:
            suffix += 1
            candidate = f"{name}_{suffix}"
        seen.add(candidate)
        headers.append(candidate)
    return headers


def _cell_to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return str(value).strip()
