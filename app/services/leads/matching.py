"""Batch phone matching against the external customer table."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from app.models.ingestion import MatchInspection
from app.observability.metrics import metrics
from app.services.leads.customers import CustomerStore
from app.services.leads.errors import CustomerStoreError
from app.services.leads.phones import normalize_phone_number

logger = logging.getLogger(__name__)

SAMPLE_SIZE = 10


class CustomerPhoneMatcher:
    """Intersects canonical lead phones with canonical customer mobiles.

    Customer numbers are stored in inconsistent formats, so the whole mobile
    column is read and normalized in memory instead of querying with
    ``WHERE IN``. Call :meth:`match` once per batch, not once per row.
    """

    def __init__(self, store: CustomerStore | None) -> None:
        self._store = store

    def match(self, phones: Iterable[str | None]) -> set[str]:
        """Return the original input strings whose canonical form is a customer."""
        originals_by_canonical: dict[str, list[str]] = {}
        for phone in phones:
            if not phone:
                continue
            canonical = normalize_phone_number(phone)
            if canonical is None:
                continue
            originals = originals_by_canonical.setdefault(canonical, [])
            if phone not in originals:
                originals.append(phone)

        if not originals_by_canonical:
            logger.info("matching.skipped", extra={"reason": "no_canonical_phones"})
            return set()

        customer_phones = self._customer_phones()
        if customer_phones is None:
            return set()

        matched: set[str] = set()
        for canonical, originals in originals_by_canonical.items():
            if canonical in customer_phones:
                matched.update(originals)

        metrics.increment("matching.checked", len(originals_by_canonical))
        metrics.increment("matching.matched", len(matched))
        logger.info(
            "matching.completed",
            extra={
                "checked": len(originals_by_canonical),
                "customer_phones": len(customer_phones),
                "matched": len(matched),
            },
        )
        return matched

    def inspect(self, phone: str) -> MatchInspection:
        """Explain how a single phone number compares against the customer store."""
        normalized = normalize_phone_number(phone)
        if self._store is None:
            raise CustomerStoreError("Customer database is not configured.")
        raw_phones = self._store.fetch_mobile_numbers()
        canonical = {value for value in map(normalize_phone_number, raw_phones) if value}
        return MatchInspection(
            input_phone=phone,
            normalized_phone=normalized,
            is_matched=normalized is not None and normalized in canonical,
            total_customer_phones_checked=len(raw_phones),
            normalized_customer_phones=len(canonical),
            sample_customer_phones=[
                {"original": raw, "normalized": normalize_phone_number(raw)}
                for raw in raw_phones[:SAMPLE_SIZE]
            ],
        )

    def _customer_phones(self) -> set[str] | None:
        if self._store is None:
            logger.warning("matching.skipped", extra={"reason": "customer_store_not_configured"})
            return None
        try:
            raw_phones = self._store.fetch_mobile_numbers()
        except CustomerStoreError:
            logger.warning("matching.customer_store.unavailable", exc_info=True)
            metrics.increment("matching.errors")
            return None
        return {value for value in map(normalize_phone_number, raw_phones) if value}
