"""Lead report endpoints backed by the customer database."""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool

from app.api.dependencies import get_report_aggregator
from app.services.reports.aggregator import ReportAggregator

router = APIRouter()
logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@router.get("/reports/leads")
async def lead_report(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> dict[str, Any]:
    """Lead counts, conversions and loan totals for an inclusive date range."""
    start, end = _parse_range(start_date, end_date)
    report = await run_in_threadpool(aggregator.lead_report, start, end)
    return {"success": True, **report.model_dump(mode="json", by_alias=True)}


@router.get("/reports/leads/stats")
async def lead_stats(
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> dict[str, Any]:
    stats = await run_in_threadpool(aggregator.lead_stats)
    return {"success": True, **stats.model_dump(mode="json", by_alias=True)}


@router.post("/reports/leads/reconcile")
async def reconcile_leads(
    start_date: str | None = Query(None, alias="startDate"),
    end_date: str | None = Query(None, alias="endDate"),
    aggregator: ReportAggregator = Depends(get_report_aggregator),
) -> dict[str, Any]:
    """Re-run customer matching for leads uploaded in the date range."""
    start, end = _parse_range(start_date, end_date)
    result = await run_in_threadpool(aggregator.reconcile, start, end)
    return {"success": True, "data": result.model_dump(mode="json", by_alias=True)}


def _parse_range(start_date: str | None, end_date: str | None) -> tuple[date, date]:
    if not start_date or not end_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Start date and end date are required",
        )
    if not _DATE_PATTERN.match(start_date) or not _DATE_PATTERN.match(end_date):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Date format must be YYYY-MM-DD",
        )
    try:
        return date.fromisoformat(start_date), date.fromisoformat(end_date)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Date format must be YYYY-MM-DD",
        ) from exc
