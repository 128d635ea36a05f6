"""Test helpers for building workbooks and customer databases on disk."""

from __future__ import annotations

import zipfile
from collections.abc import Iterable, Sequence
from datetime import date
from pathlib import Path
from typing import Any

from openpyxl import Workbook
from sqlalchemy import create_engine, text

LEAD_HEADERS: tuple[str, ...] = (
    "created_time",
    "ad_id",
    "platform",
    "what_is_your_monthly_salary?",
    "phone_number",
    "pan_number",
    "email",
    "full_name",
    "utm_source",
)

QUALITY_CAMPAIGN = "120237694055210170"


def lead_row(
    phone: Any,
    *,
    pan: str | None = None,
    email: str | None = None,
    name: str = "Test Lead",
    salary: str = "₹50,000_to_₹70,000",
    ad_id: str = QUALITY_CAMPAIGN,
    source: str = "facebook",
) -> list[Any]:
    """One row matching LEAD_HEADERS."""
    return [
        "2026-01-15T10:30:00+0530",
        ad_id,
        "fb",
        salary,
        phone,
        pan,
        email,
        name,
        source,
    ]


def write_workbook(
    path: Path,
    rows: Iterable[Sequence[Any]],
    *,
    headers: Sequence[str] = LEAD_HEADERS,
    sheet_title: str = "Leads",
) -> Path:
    """Materialize an .xlsx file whose first sheet holds ``headers`` then ``rows``."""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(list(headers))
    for row in rows:
        sheet.append(list(row))
    workbook.save(path)
    return path


def truncate_sheet_xml(path: Path, member: str = "xl/worksheets/sheet1.xml") -> Path:
    """Rewrite a workbook archive with one worksheet part cut in half."""
    with zipfile.ZipFile(path) as source:
        parts = {info.filename: source.read(info.filename) for info in source.infolist()}
    parts[member] = parts[member][: len(parts[member]) // 2]
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as target:
        for name, data in parts.items():
            target.writestr(name, data)
    return path


def create_customer_database(
    path: Path,
    *,
    mobiles: Iterable[str | None] = (),
    leads: Iterable[dict[str, Any]] = (),
) -> str:
    """Create a SQLite stand-in for the customer database and return its URL."""
    url = f"sqlite:///{path}"
    engine = create_engine(url)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE customer_profile (id INTEGER PRIMARY KEY, cp_mobile TEXT)"))
        conn.execute(
            text(
                "CREATE TABLE leads ("
                "id INTEGER PRIMARY KEY, created_on TEXT, utm_campaign TEXT, "
                "monthly_salary_amount INTEGER, status TEXT, loan_amount REAL)"
            )
        )
        for mobile in mobiles:
            conn.execute(
                text("INSERT INTO customer_profile (cp_mobile) VALUES (:mobile)"),
                {"mobile": mobile},
            )
        for lead in leads:
            conn.execute(
                text(
                    "INSERT INTO leads (created_on, utm_campaign, monthly_salary_amount, "
                    "status, loan_amount) VALUES (:created_on, :utm_campaign, "
                    ":monthly_salary_amount, :status, :loan_amount)"
                ),
                {
                    "created_on": "2026-01-10 09:00:00",
                    "utm_campaign": QUALITY_CAMPAIGN,
                    "monthly_salary_amount": 40000,
                    "status": "NEW",
                    "loan_amount": 0,
                    **lead,
                },
            )
    engine.dispose()
    return url


class StaticCustomerStore:
    """In-memory customer store; reports count ``lead_rows`` with the SQL filters."""

    def __init__(
        self,
        mobiles: Sequence[str] = (),
        lead_rows: Sequence[dict[str, Any]] = (),
    ) -> None:
        self.mobiles = list(mobiles)
        self.lead_rows = list(lead_rows)
        self.fetch_calls = 0

    def fetch_mobile_numbers(self) -> list[str]:
        self.fetch_calls += 1
        return list(self.mobiles)

    def count_leads(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
        min_salary: int | None = None,
        status: str | None = None,
    ) -> int:
        return len(self._filter(start, end, campaign_id, min_salary, status))

    def sum_loan_amount(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
    ) -> float:
        rows = self._filter(start, end, campaign_id, None, None)
        return float(sum(row.get("loan_amount") or 0 for row in rows))

    def _filter(self, start, end, campaign_id, min_salary, status) -> list[dict[str, Any]]:
        matched = []
        for row in self.lead_rows:
            created = row["created_on"]
            if start is not None and end is not None and not start <= created <= end:
                continue
            if campaign_id is not None and row.get("utm_campaign") != campaign_id:
                continue
            if min_salary is not None and (row.get("monthly_salary_amount") or 0) <= min_salary:
                continue
            if status is not None and row.get("status") != status:
                continue
            matched.append(row)
        return matched
