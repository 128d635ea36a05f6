"""Aggregate lead reports over the customer store plus retroactive matching."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone

from app.config import settings
from app.models.columns import utcnow
from app.models.report import LeadReport, LeadStats, ReconciliationResult
from app.services.leads.customers import CustomerStore
from app.services.leads.matching import CustomerPhoneMatcher
from app.services.leads.repositories import LeadRepository

logger = logging.getLogger(__name__)


def conversion_rate(quality: int, total: int) -> float:
    """Quality share of total as a percentage rounded to one decimal."""
    if total <= 0:
        return 0.0
    return round(quality / total * 100, 1)


def day_window(start: date, end: date) -> tuple[datetime, datetime]:
    """Half-open UTC window covering ``start`` through ``end`` inclusive."""
    lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
    return lower, upper


class ReportAggregator:
    """Stateless report queries; each call hits the stores afresh."""

    def __init__(
        self,
        customers: CustomerStore,
        repository: LeadRepository,
        *,
        matcher: CustomerPhoneMatcher | None = None,
        campaign_id: str | None = None,
        min_salary: int | None = None,
        disbursed_status: str | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._customers = customers
        self._repository = repository
        self._matcher = matcher or CustomerPhoneMatcher(customers)
        self._campaign_id = campaign_id or settings.quality_campaign_id
        self._min_salary = settings.quality_min_salary if min_salary is None else min_salary
        self._disbursed_status = disbursed_status or settings.disbursed_status
        self._clock = clock

    def lead_report(self, start: date, end: date) -> LeadReport:
        total = self._customers.count_leads(start, end)
        marketing = self._customers.count_leads(start, end, campaign_id=self._campaign_id)
        quality = self._customers.count_leads(
            start, end, campaign_id=self._campaign_id, min_salary=self._min_salary
        )
        conversions = self._customers.count_leads(
            start,
            end,
            campaign_id=self._campaign_id,
            min_salary=self._min_salary,
            status=self._disbursed_status,
        )
        loan_total = self._customers.sum_loan_amount(start, end, campaign_id=self._campaign_id)
        matching = self.reconcile(start, end)
        return LeadReport(
            total_leads=total,
            total_marketing_leads=marketing,
            quality_leads=quality,
            conversion_rate=conversion_rate(quality, total),
            conversion_leads=conversions,
            sum_loan_amount=loan_total,
            customer_profile_matching=matching,
        )

    def lead_stats(self) -> LeadStats:
        total = self._customers.count_leads()
        quality = self._customers.count_leads(
            campaign_id=self._campaign_id, min_salary=self._min_salary
        )
        return LeadStats(
            total_leads=total,
            quality_leads=quality,
            conversion_rate=conversion_rate(quality, total),
        )

    def reconcile(self, start: date, end: date) -> ReconciliationResult:
        """Re-match leads created in the window that are not yet matched.

        Match flags only move from false to true, so re-running over the same
        window reports the same totals with ``newly_matched == 0``.
        """
        lower, upper = day_window(start, end)
        leads = self._repository.list_leads_created_between(lower, upper)
        already_matched = [lead for lead in leads if lead.matched_in_customer_profile]
        unmatched = [lead for lead in leads if not lead.matched_in_customer_profile]

        newly_matched = 0
        if unmatched:
            matched_phones = self._matcher.match(lead.phone_number for lead in unmatched)
            candidates = [lead.id for lead in unmatched if lead.phone_number in matched_phones]
            if candidates:
                newly_matched = self._repository.mark_matched(candidates, self._clock())

        matched_total = len(already_matched) + newly_matched
        logger.info(
            "reports.reconcile.completed",
            extra={
                "start": start.isoformat(),
                "end": end.isoformat(),
                "total": len(leads),
                "newly_matched": newly_matched,
            },
        )
        return ReconciliationResult(
            matched=matched_total,
            unmatched=len(leads) - matched_total,
            newly_matched=newly_matched,
            total=len(leads),
        )
