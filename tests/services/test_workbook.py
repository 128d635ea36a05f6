from __future__ import annotations

from datetime import datetime

import pytest

from app.services.leads.errors import WorkbookReadError
from app.services.leads.workbook import looks_like_spreadsheet, read_first_sheet
from tests.utils import truncate_sheet_xml, write_workbook


def test_read_first_sheet_returns_header_keyed_rows(tmp_path):
    path = write_workbook(
        tmp_path / "leads.xlsx",
        [
            ["Asha", 919034955557, 42.5],
            [None, None, None],
            ["Ravi", "09876543210", datetime(2026, 1, 15, 10, 30)],
        ],
        headers=["full_name", "phone_number", "score"],
    )

    rows = read_first_sheet(path)

    assert rows == [
        {"full_name": "Asha", "phone_number": "919034955557", "score": "42.5"},
        {"full_name": "Ravi", "phone_number": "09876543210", "score": "2026-01-15T10:30:00"},
    ]


def test_blank_headers_get_positional_names(tmp_path):
    path = write_workbook(
        tmp_path / "blank-header.xlsx",
        [["Asha", "north"]],
        headers=["full_name", None],
    )
    # Trailing blank headers are trimmed, so the value surfaces under its column index.
    assert read_first_sheet(path) == [{"full_name": "Asha", "column_2": "north"}]


def test_unreadable_file_raises_workbook_error(tmp_path):
    path = tmp_path / "broken.xlsx"
    path.write_bytes(b"not a zip archive")

    with pytest.raises(WorkbookReadError) as excinfo:
        read_first_sheet(path)

    assert excinfo.value.code == "400_UNREADABLE_WORKBOOK"
    assert excinfo.value.message == "Error reading Excel file"


def test_repeated_headers_keep_every_value(tmp_path):
    path = write_workbook(
        tmp_path / "notes.xlsx",
        [["9034955557", "first", "second", "third"]],
        headers=["phone", "Notes", "Notes", "Notes"],
    )

    assert read_first_sheet(path) == [
        {"phone": "9034955557", "Notes": "first", "Notes_1": "second", "Notes_2": "third"}
    ]


def test_workbook_without_spreadsheet_extension_is_read_by_content(tmp_path):
    source = write_workbook(
        tmp_path / "leads.xlsx", [["Asha", "9034955557"]], headers=["name", "phone"]
    )
    exported = tmp_path / "export"
    exported.write_bytes(source.read_bytes())

    assert read_first_sheet(exported) == [{"name": "Asha", "phone": "9034955557"}]


def test_truncated_sheet_xml_raises_workbook_error(tmp_path):
    path = write_workbook(
        tmp_path / "truncated.xlsx",
        [[f"Lead {index}", f"90349555{index:02d}"] for index in range(40)],
        headers=["name", "phone"],
    )
    truncate_sheet_xml(path)

    with pytest.raises(WorkbookReadError) as excinfo:
        read_first_sheet(path)

    assert excinfo.value.message == "Error reading Excel file"


@pytest.mark.parametrize(
    ("filename", "content_type", "expected"),
    [
        ("leads.xlsx", None, True),
        ("LEADS.XLS", "application/octet-stream", True),
        ("export", "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet", True),
        ("notes.csv", "text/csv", False),
        (None, None, False),
    ],
)
def test_looks_like_spreadsheet(filename, content_type, expected):
    assert looks_like_spreadsheet(filename, content_type) is expected
