"""Map arbitrary spreadsheet headers onto the standard lead schema."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from app.models.lead import LeadDraft
from app.services.leads.phones import digits_only

# Attribute -> accepted header spellings, compared case-insensitively.
# Aliases must not overlap between attributes.
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "created_time": ("created_time", "created time", "date", "created_date"),
    "ad_id": ("ad_id", "ad id", "adid", "campaign_id"),
    "platform": ("platform", "source", "channel"),
    "monthly_salary": (
        "what_is_your_monthly_salary?",
        "what_is_your_monthly_salary",
        "salary",
        "monthly_salary",
        "income",
    ),
    "phone_number": ("phone_number", "phone number", "phone", "mobile", "contact_number"),
    "pan_number": ("pan_number", "pan number", "pan_no", "pan", "pancard"),
    "email": ("email", "email_id", "email address"),
    "full_name": ("full_name", "full name", "name", "customer_name"),
    "first_name": ("first_name", "first name", "fname"),
    "last_name": ("last_name", "last name", "lname"),
    "age": ("age", "customer_age"),
    "gender": ("gender", "sex"),
    "city": ("city", "location", "customer_city"),
    "state": ("state", "customer_state"),
    "pincode": ("pincode", "pin code", "zipcode", "postal_code"),
    "occupation": ("occupation", "job", "profession", "work"),
    "company_name": ("company_name", "company", "employer"),
    "loan_amount": ("loan_amount", "loan amount", "amount_needed"),
    "loan_purpose": ("loan_purpose", "loan purpose", "purpose"),
    "existing_loans": ("existing_loans", "existing loans", "current_loans"),
    "credit_score": ("credit_score", "credit score", "cibil_score"),
}


def _build_header_index(aliases: Mapping[str, tuple[str, ...]]) -> dict[str, str]:
    index: dict[str, str] = {}
    for field_name, names in aliases.items():
        for alias in names:
            index.setdefault(alias.lower(), field_name)
    return index


_HEADER_INDEX = _build_header_index(FIELD_ALIASES)


def resolve_field(header: str) -> str | None:
    """Return the standard attribute a header maps to, if any."""
    return _HEADER_INDEX.get(str(header).strip().lower())


def extract_lead_fields(row: Mapping[str, Any], row_number: int) -> LeadDraft:
    """Build a LeadDraft from one spreadsheet row.

    Empty and whitespace-only cells are skipped. Phone numbers keep digits only
    (no country-code handling here) and PAN numbers are upper-cased. Headers
    outside the alias table land in ``additional_data`` under their original
    text.
    """
    values: dict[str, str] = {}
    additional_data: dict[str, str] = {}

    for header, raw_value in row.items():
        value = "" if raw_value is None else str(raw_value).strip()
        if not value:
            continue

        field_name = resolve_field(header)
        if field_name is None:
            additional_data[str(header)] = value
        elif field_name == "phone_number":
            values[field_name] = digits_only(value)
        elif field_name == "pan_number":
            values[field_name] = value.upper()
        else:
            values[field_name] = value

    return LeadDraft(**values, additional_data=additional_data, row_number=row_number)
