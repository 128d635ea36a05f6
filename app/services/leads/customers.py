"""Read-only access to the external customer database."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.core.database import create_store_engine
from app.observability.metrics import metrics
from app.services.leads.errors import CustomerStoreError

logger = logging.getLogger(__name__)

CUSTOMER_MOBILES_QUERY = text(
    """
    SELECT DISTINCT cp_mobile
    FROM customer_profile
    WHERE cp_mobile IS NOT NULL
      AND cp_mobile != ''
      AND LENGTH(cp_mobile) >= 10
    """
)


class CustomerStore(Protocol):
    """Queries the matcher and report aggregator run against the customer database."""

    def fetch_mobile_numbers(self) -> list[str]:
        ...

    def count_leads(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
        min_salary: int | None = None,
        status: str | None = None,
    ) -> int:
        ...

    def sum_loan_amount(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
    ) -> float:
        ...


class SqlCustomerStore(CustomerStore):
    """Issues parametrized SELECTs against the MySQL customer database.

    The store is owned by another system; nothing here writes to it.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine

    def dispose(self) -> None:
        self._engine.dispose()

    def fetch_mobile_numbers(self) -> list[str]:
        started = time.perf_counter()
        rows = self._fetch_all(CUSTOMER_MOBILES_QUERY, {}, "customers.mobiles")
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.timing("customers.mobile_scan.duration_ms", elapsed_ms)
        logger.info("customers.mobile_scan", extra={"rows": len(rows)})
        return [str(row[0]) for row in rows if row[0] is not None]

    def count_leads(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
        min_salary: int | None = None,
        status: str | None = None,
    ) -> int:
        clauses, params = _lead_filters(start, end, campaign_id=campaign_id)
        if min_salary is not None:
            clauses.append("monthly_salary_amount > :min_salary")
            params["min_salary"] = min_salary
        if status is not None:
            clauses.append("status = :status")
            params["status"] = status
        statement = text(f"SELECT COUNT(*) AS total FROM leads{_where(clauses)}")
        rows = self._fetch_all(statement, params, "customers.count_leads")
        return int(rows[0][0] or 0) if rows else 0

    def sum_loan_amount(
        self,
        start: date | None = None,
        end: date | None = None,
        *,
        campaign_id: str | None = None,
    ) -> float:
        clauses, params = _lead_filters(start, end, campaign_id=campaign_id)
        statement = text(
            f"SELECT SUM(loan_amount) AS total_loan_amount FROM leads{_where(clauses)}"
        )
        rows = self._fetch_all(statement, params, "customers.sum_loan_amount")
        total = rows[0][0] if rows else None
        if total is None:
            return 0.0
        return float(total)

    def _fetch_all(self, statement: Any, params: dict[str, Any], query_name: str) -> list[Any]:
        try:
            with self._engine.connect() as conn:
                return list(conn.execute(statement, params).all())
        except SQLAlchemyError as exc:
            logger.exception("customers.query.error", extra={"query": query_name})
            raise CustomerStoreError(
                "Customer database query failed.", detail=str(exc)
            ) from exc


def _lead_filters(
    start: date | None, end: date | None, *, campaign_id: str | None
) -> tuple[list[str], dict[str, Any]]:
    clauses: list[str] = []
    params: dict[str, Any] = {}
    if start is not None and end is not None:
        clauses.append("DATE(created_on) BETWEEN :start_date AND :end_date")
        params["start_date"] = start.isoformat()
        params["end_date"] = end.isoformat()
    if campaign_id is not None:
        clauses.append("utm_campaign = :campaign_id")
        params["campaign_id"] = campaign_id
    return clauses, params


def _where(clauses: list[str]) -> str:
    return f" WHERE {' AND '.join(clauses)}" if clauses else ""


def build_customer_store(database_url: str | None = None) -> CustomerStore | None:
    """Instantiate the customer store, or ``None`` when no URL is configured."""
    resolved_url = database_url or settings.customer_database_url
    if not resolved_url:
        logger.info("customers.store.not_configured")
        return None
    engine = create_store_engine(
        resolved_url,
        pool_min_size=settings.customer_db_pool_size,
        pool_max_size=settings.customer_db_pool_size,
    )
    return SqlCustomerStore(engine)
