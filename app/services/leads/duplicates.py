"""Duplicate detection against previously committed leads."""

from __future__ import annotations

import logging

from app.models.ingestion import DuplicateCheck
from app.models.lead import LeadDraft
from app.services.leads.errors import LeadPersistenceError
from app.services.leads.repositories import LeadRepository

logger = logging.getLogger(__name__)

# Checked in this order; the first hit wins.
DUPLICATE_RULES: tuple[tuple[str, str], ...] = (
    ("phone_number", "Phone number already exists"),
    ("pan_number", "PAN number already exists"),
    ("email", "Email already exists"),
)


class DuplicateDetector:
    """Flags a draft whose phone, PAN or email is already stored.

    Only committed leads are consulted, so two rows of the same upload never
    flag each other.
    """

    def __init__(self, repository: LeadRepository) -> None:
        self._repository = repository

    def check(self, draft: LeadDraft) -> DuplicateCheck:
        try:
            for field_name, reason in DUPLICATE_RULES:
                value = getattr(draft, field_name)
                if not value:
                    continue
                original = self._repository.find_lead_by(field_name, value)
                if original is not None:
                    return DuplicateCheck(
                        is_duplicate=True, reason=reason, original_lead_id=original.id
                    )
        except LeadPersistenceError:
            logger.warning(
                "ingestion.duplicate_check.unavailable",
                extra={"row": draft.row_number},
                exc_info=True,
            )
        return DuplicateCheck()
