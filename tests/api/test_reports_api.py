from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime, timezone

from app.api.dependencies import get_customer_store, get_lead_repository, get_report_aggregator
from app.main import app
from app.models.lead import Lead
from app.services.leads.repositories import InMemoryLeadRepository
from app.services.reports.aggregator import ReportAggregator
from tests.utils import QUALITY_CAMPAIGN, StaticCustomerStore

CUSTOMER_LEADS = [
    {
        "created_on": date(2026, 1, 10),
        "utm_campaign": QUALITY_CAMPAIGN,
        "monthly_salary_amount": 40000,
        "status": "DISBURSED",
        "loan_amount": 100000,
    },
    {
        "created_on": date(2026, 1, 20),
        "utm_campaign": QUALITY_CAMPAIGN,
        "monthly_salary_amount": 20000,
        "status": "NEW",
        "loan_amount": 25000,
    },
]


@contextmanager
def _override_aggregator(aggregator: ReportAggregator):
    app.dependency_overrides[get_report_aggregator] = lambda: aggregator
    try:
        yield
    finally:
        app.dependency_overrides.pop(get_report_aggregator, None)


def _aggregator() -> tuple[ReportAggregator, InMemoryLeadRepository]:
    repository = InMemoryLeadRepository()
    repository.add_lead(
        Lead(
            created_time="2026-01-15",
            ad_id=QUALITY_CAMPAIGN,
            platform="fb",
            monthly_salary="above 1 Lakh",
            phone_number="919876543210",
            created_at=datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc),
        )
    )
    store = StaticCustomerStore(["9876543210"], CUSTOMER_LEADS)
    return ReportAggregator(store, repository), repository


def test_lead_report_returns_flat_camel_case_payload(client):
    aggregator, _ = _aggregator()
    with _override_aggregator(aggregator):
        response = client.get("/api/reports/leads?startDate=2026-01-01&endDate=2026-01-31")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["totalLeads"] == 2
    assert body["totalMarketingLeads"] == 2
    assert body["qualityLeads"] == 1
    assert body["conversionRate"] == 50.0
    assert body["conversionLeads"] == 1
    assert body["sumLoanAmount"] == 125000.0
    assert body["customerProfileMatching"] == {
        "matched": 1,
        "unmatched": 0,
        "newlyMatched": 1,
        "total": 1,
    }


def test_lead_report_requires_both_dates(client):
    aggregator, _ = _aggregator()
    with _override_aggregator(aggregator):
        response = client.get("/api/reports/leads?startDate=2026-01-01")

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "message": "Start date and end date are required",
    }


def test_lead_report_rejects_malformed_dates(client):
    aggregator, _ = _aggregator()
    with _override_aggregator(aggregator):
        wrong_format = client.get("/api/reports/leads?startDate=01/01/2026&endDate=2026-01-31")
        impossible = client.get("/api/reports/leads?startDate=2026-02-30&endDate=2026-03-01")

    assert wrong_format.status_code == 400
    assert wrong_format.json()["message"] == "Date format must be YYYY-MM-DD"
    assert impossible.status_code == 400


def test_lead_stats(client):
    aggregator, _ = _aggregator()
    with _override_aggregator(aggregator):
        response = client.get("/api/reports/leads/stats")

    assert response.json() == {
        "success": True,
        "totalLeads": 2,
        "qualityLeads": 1,
        "conversionRate": 50.0,
    }


def test_reconcile_endpoint_is_repeatable(client):
    aggregator, repository = _aggregator()
    with _override_aggregator(aggregator):
        first = client.post("/api/reports/leads/reconcile?startDate=2026-01-01&endDate=2026-01-31")
        second = client.post("/api/reports/leads/reconcile?startDate=2026-01-01&endDate=2026-01-31")

    assert first.json()["data"]["newlyMatched"] == 1
    assert second.json()["data"] == {"matched": 1, "unmatched": 0, "newlyMatched": 0, "total": 1}
    assert repository.find_lead_by("phone_number", "919876543210").matched_in_customer_profile


def test_reports_are_unavailable_without_customer_store(client):
    app.dependency_overrides[get_customer_store] = lambda: None
    app.dependency_overrides[get_lead_repository] = InMemoryLeadRepository
    try:
        response = client.get("/api/reports/leads/stats")
    finally:
        app.dependency_overrides.pop(get_customer_store, None)
        app.dependency_overrides.pop(get_lead_repository, None)

    assert response.status_code == 503
    assert response.json()["message"] == "Customer database is not configured."
