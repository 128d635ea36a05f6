"""Singleton accessors for the lead and report services used by API routes."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from app.services.leads.customers import CustomerStore, build_customer_store
from app.services.leads.ingestion import LeadIngestionService
from app.services.leads.matching import CustomerPhoneMatcher
from app.services.leads.repositories import LeadRepository, build_lead_repository
from app.services.reports.aggregator import ReportAggregator

_REPOSITORY: LeadRepository | None = None
_CUSTOMER_STORE: CustomerStore | None = None
_CUSTOMER_STORE_LOADED = False
_INGESTION_SERVICE: LeadIngestionService | None = None


def get_lead_repository() -> LeadRepository:
    global _REPOSITORY  # noqa: PLW0603
    if _REPOSITORY is None:
        _REPOSITORY = build_lead_repository()
    return _REPOSITORY


def get_customer_store() -> CustomerStore | None:
    """Return the customer store, or ``None`` when it is not configured."""
    global _CUSTOMER_STORE, _CUSTOMER_STORE_LOADED  # noqa: PLW0603
    if not _CUSTOMER_STORE_LOADED:
        _CUSTOMER_STORE = build_customer_store()
        _CUSTOMER_STORE_LOADED = True
    return _CUSTOMER_STORE


def get_phone_matcher() -> CustomerPhoneMatcher:
    return CustomerPhoneMatcher(get_customer_store())


def get_ingestion_service() -> LeadIngestionService:
    global _INGESTION_SERVICE  # noqa: PLW0603
    if _INGESTION_SERVICE is None:
        _INGESTION_SERVICE = LeadIngestionService(get_lead_repository(), get_phone_matcher())
    return _INGESTION_SERVICE


def get_report_aggregator(
    customers: CustomerStore | None = Depends(get_customer_store),
    repository: LeadRepository = Depends(get_lead_repository),
) -> ReportAggregator:
    """Reports need the customer store; without it the endpoints answer 503."""
    if customers is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Customer database is not configured.",
        )
    return ReportAggregator(customers, repository)


def dispose_stores() -> None:
    """Release pooled connections held by the configured stores."""
    for store in (_REPOSITORY, _CUSTOMER_STORE):
        dispose = getattr(store, "dispose", None)
        if dispose is not None:
            dispose()
