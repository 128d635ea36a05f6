from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from app.api.dependencies import get_customer_store, get_lead_repository
from app.config import settings
from app.core.database import check_engine_health
from app.services.leads.customers import CustomerStore
from app.services.leads.repositories import LeadRepository

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


@router.get("/ready")
async def readiness_check(
    repository: LeadRepository = Depends(get_lead_repository),
    customers: CustomerStore | None = Depends(get_customer_store),
):
    """Readiness check covering the lead store and the customer store."""
    lead_engine = getattr(repository, "engine", None)
    customer_engine = getattr(customers, "engine", None)
    lead_ok = await run_in_threadpool(check_engine_health, lead_engine)
    customer_ok = await run_in_threadpool(check_engine_health, customer_engine)

    if not lead_ok:
        raise HTTPException(status_code=503, detail="Lead database is not available")
    if not customer_ok:
        raise HTTPException(status_code=503, detail="Customer database is not available")

    return {
        "status": "ready",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if lead_engine is not None else "in-memory",
        "customer_database": "connected" if customer_engine is not None else "not configured",
    }
