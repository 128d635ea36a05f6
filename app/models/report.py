"""Report payloads blending customer-store aggregates with lead-store matching."""

from __future__ import annotations

from app.models.ingestion import CamelModel


class ReconciliationResult(CamelModel):
    matched: int
    unmatched: int
    newly_matched: int
    total: int


class LeadReport(CamelModel):
    total_leads: int
    total_marketing_leads: int
    quality_leads: int
    conversion_rate: float
    conversion_leads: int
    sum_loan_amount: float
    customer_profile_matching: ReconciliationResult


class LeadStats(CamelModel):
    total_leads: int
    quality_leads: int
    conversion_rate: float
