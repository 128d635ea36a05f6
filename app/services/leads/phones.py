"""Canonical phone numbers used as the join key against the customer store."""

from __future__ import annotations

import re

NON_DIGIT_PATTERN = re.compile(r"\D")
COUNTRY_CODE = "91"
CANONICAL_LENGTH = 10


def digits_only(value: object) -> str:
    """Strip every non-digit character from ``value``'s text form."""
    if value is None:
        return ""
    return NON_DIGIT_PATTERN.sub("", str(value))


def normalize_phone_number(value: object) -> str | None:
    """Reduce a raw phone value to its 10-digit canonical form.

    Returns ``None`` when no canonical form exists. Never raises.
    """
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    normalized = digits_only(value)
    if len(normalized) == CANONICAL_LENGTH + len(COUNTRY_CODE) and normalized.startswith(
        COUNTRY_CODE
    ):
        normalized = normalized[len(COUNTRY_CODE) :]
    normalized = normalized.lstrip("0")
    if len(normalized) != CANONICAL_LENGTH:
        return None
    return normalized
