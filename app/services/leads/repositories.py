"""Persistence backends for leads and upload history."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime
from threading import Lock
from typing import Protocol
from uuid import UUID

from sqlalchemy import delete, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, col, select

from app.config import settings
from app.core.database import create_store_engine
from app.models.columns import utcnow
from app.models.lead import REQUIRED_FIELDS, Lead
from app.models.upload_batch import UploadBatch
from app.services.leads.errors import LeadPersistenceError, UploadBatchNotFoundError

logger = logging.getLogger(__name__)

LOOKUP_FIELDS = ("phone_number", "pan_number", "email")


class LeadRepository(Protocol):
    """Persistence contract for leads and their upload batches."""

    def find_lead_by(self, field: str, value: str) -> Lead | None:
        ...

    def add_lead(self, lead: Lead) -> Lead:
        ...

    def list_leads(
        self,
        *,
        page: int = 1,
        limit: int = 100,
        is_duplicate: bool | None = None,
        quality_lead: bool | None = None,
    ) -> tuple[list[Lead], int]:
        ...

    def list_duplicates(self) -> list[Lead]:
        ...

    def additional_field_names(self) -> list[str]:
        ...

    def list_leads_created_between(self, start: datetime, end: datetime) -> list[Lead]:
        ...

    def mark_matched(self, lead_ids: Iterable[UUID], matched_at: datetime) -> int:
        ...

    def create_batch(self, batch: UploadBatch) -> UploadBatch:
        ...

    def get_batch(self, batch_id: UUID) -> UploadBatch | None:
        ...

    def finalize_batch(
        self,
        batch_id: UUID,
        *,
        total_rows: int,
        processed_leads: int,
        duplicates: int,
        errors: int,
        matched_in_customer_profile: int,
    ) -> UploadBatch:
        ...

    def list_batches(self, *, page: int = 1, limit: int = 10) -> tuple[list[UploadBatch], int]:
        ...

    def update_batch_budget(self, batch_id: UUID, budget: float) -> UploadBatch:
        ...

    def delete_batch(self, batch_id: UUID) -> int:
        ...


def _ensure_lookup_field(field: str) -> None:
    if field not in LOOKUP_FIELDS:
        raise ValueError(f"Unsupported lead lookup field: {field}")


def _ensure_required(lead: Lead) -> None:
    missing = [name for name in REQUIRED_FIELDS if not getattr(lead, name)]
    if missing:
        raise LeadPersistenceError(f"Missing required field(s): {', '.join(missing)}")


def _offset(page: int, limit: int) -> int:
    return (max(page, 1) - 1) * max(limit, 1)


class InMemoryLeadRepository(LeadRepository):
    """Thread-safe repository used for API/local development."""

    def __init__(self) -> None:
        self._leads: dict[UUID, Lead] = {}
        self._batches: dict[UUID, UploadBatch] = {}
        self._lock = Lock()

    def find_lead_by(self, field: str, value: str) -> Lead | None:
        _ensure_lookup_field(field)
        with self._lock:
            for lead in self._leads.values():
                if getattr(lead, field) == value:
                    return lead
        return None

    def add_lead(self, lead: Lead) -> Lead:
        _ensure_required(lead)
        with self._lock:
            self._leads[lead.id] = lead
        return lead

    def list_leads(
        self,
        *,
        page: int = 1,
        limit: int = 100,
        is_duplicate: bool | None = None,
        quality_lead: bool | None = None,
    ) -> tuple[list[Lead], int]:
        with self._lock:
            matches = [
                lead
                for lead in self._leads.values()
                if (is_duplicate is None or lead.is_duplicate == is_duplicate)
                and (quality_lead is None or lead.quality_lead == quality_lead)
            ]
        ordered = sorted(matches, key=lambda lead: lead.created_at, reverse=True)
        start = _offset(page, limit)
        return ordered[start : start + max(limit, 1)], len(ordered)

    def list_duplicates(self) -> list[Lead]:
        with self._lock:
            matches = [lead for lead in self._leads.values() if lead.is_duplicate]
        return sorted(matches, key=lambda lead: lead.created_at, reverse=True)

    def additional_field_names(self) -> list[str]:
        with self._lock:
            payloads = [lead.additional_data for lead in self._leads.values()]
        return _distinct_keys(payloads)

    def list_leads_created_between(self, start: datetime, end: datetime) -> list[Lead]:
        with self._lock:
            return [lead for lead in self._leads.values() if start <= lead.created_at < end]

    def mark_matched(self, lead_ids: Iterable[UUID], matched_at: datetime) -> int:
        updated = 0
        with self._lock:
            for lead_id in set(lead_ids):
                lead = self._leads.get(lead_id)
                if lead is None or lead.matched_in_customer_profile:
                    continue
                lead.matched_in_customer_profile = True
                lead.matched_at = matched_at
                lead.updated_at = matched_at
                updated += 1
        return updated

    def create_batch(self, batch: UploadBatch) -> UploadBatch:
        with self._lock:
            self._batches[batch.id] = batch
        return batch

    def get_batch(self, batch_id: UUID) -> UploadBatch | None:
        with self._lock:
            return self._batches.get(batch_id)

    def finalize_batch(
        self,
        batch_id: UUID,
        *,
        total_rows: int,
        processed_leads: int,
        duplicates: int,
        errors: int,
        matched_in_customer_profile: int,
    ) -> UploadBatch:
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise UploadBatchNotFoundError(batch_id)
            batch.total_rows = total_rows
            batch.processed_leads = processed_leads
            batch.duplicates = duplicates
            batch.errors = errors
            batch.matched_in_customer_profile = matched_in_customer_profile
            batch.updated_at = utcnow()
            return batch

    def list_batches(self, *, page: int = 1, limit: int = 10) -> tuple[list[UploadBatch], int]:
        with self._lock:
            ordered = sorted(self._batches.values(), key=lambda b: b.uploaded_at, reverse=True)
        start = _offset(page, limit)
        return ordered[start : start + max(limit, 1)], len(ordered)

    def update_batch_budget(self, batch_id: UUID, budget: float) -> UploadBatch:
        with self._lock:
            batch = self._batches.get(batch_id)
            if batch is None:
                raise UploadBatchNotFoundError(batch_id)
            batch.budget = budget
            batch.updated_at = utcnow()
            return batch

    def delete_batch(self, batch_id: UUID) -> int:
        with self._lock:
            if batch_id not in self._batches:
                raise UploadBatchNotFoundError(batch_id)
            owned = [
                lead_id
                for lead_id, lead in self._leads.items()
                if lead.upload_batch_id == batch_id
            ]
            for lead_id in owned:
                del self._leads[lead_id]
            del self._batches[batch_id]
        return len(owned)


class SQLModelLeadRepository(LeadRepository):
    """SQLModel-backed repository that persists leads to Postgres or SQLite."""

    def __init__(self, engine: Engine, *, auto_create_schema: bool = False) -> None:
        self._engine = engine
        if auto_create_schema:
            SQLModel.metadata.create_all(self._engine)

    def dispose(self) -> None:
        """Close the underlying SQLAlchemy engine."""
        self._engine.dispose()

    @property
    def engine(self) -> Engine:
        return self._engine

    def find_lead_by(self, field: str, value: str) -> Lead | None:
        _ensure_lookup_field(field)
        statement = (
            select(Lead)
            .where(getattr(Lead, field) == value)
            .order_by(col(Lead.created_at))
            .limit(1)
        )
        with self._guard("Failed to look up lead.", field=field):
            with self._session() as session:
                return session.exec(statement).first()

    def add_lead(self, lead: Lead) -> Lead:
        _ensure_required(lead)
        with self._guard("Failed to persist lead.", row_number=lead.row_number):
            with self._session() as session:
                session.add(lead)
                session.commit()
                session.refresh(lead)
                return lead

    def list_leads(
        self,
        *,
        page: int = 1,
        limit: int = 100,
        is_duplicate: bool | None = None,
        quality_lead: bool | None = None,
    ) -> tuple[list[Lead], int]:
        filters = []
        if is_duplicate is not None:
            filters.append(col(Lead.is_duplicate) == is_duplicate)
        if quality_lead is not None:
            filters.append(col(Lead.quality_lead) == quality_lead)
        statement = (
            select(Lead)
            .where(*filters)
            .order_by(col(Lead.created_at).desc())
            .offset(_offset(page, limit))
            .limit(max(limit, 1))
        )
        count_statement = select(func.count()).select_from(Lead).where(*filters)
        with self._guard("Failed to list leads."):
            with self._session() as session:
                leads = list(session.exec(statement).all())
                total = session.exec(count_statement).one()
                return leads, int(total)

    def list_duplicates(self) -> list[Lead]:
        statement = (
            select(Lead)
            .where(col(Lead.is_duplicate).is_(True))
            .order_by(col(Lead.created_at).desc())
        )
        with self._guard("Failed to list duplicate leads."):
            with self._session() as session:
                return list(session.exec(statement).all())

    def additional_field_names(self) -> list[str]:
        with self._guard("Failed to load lead field names."):
            with self._session() as session:
                payloads = session.exec(select(Lead.additional_data)).all()
                return _distinct_keys(payloads)

    def list_leads_created_between(self, start: datetime, end: datetime) -> list[Lead]:
        statement = (
            select(Lead)
            .where(col(Lead.created_at) >= start, col(Lead.created_at) < end)
            .order_by(col(Lead.created_at))
        )
        with self._guard("Failed to load leads for date range."):
            with self._session() as session:
                return list(session.exec(statement).all())

    def mark_matched(self, lead_ids: Iterable[UUID], matched_at: datetime) -> int:
        ids = list(set(lead_ids))
        if not ids:
            return 0
        statement = (
            update(Lead)
            .where(col(Lead.id).in_(ids), col(Lead.matched_in_customer_profile).is_(False))
            .values(matched_in_customer_profile=True, matched_at=matched_at)
        )
        with self._guard("Failed to persist customer matches."):
            with self._session() as session:
                result = session.execute(statement)
                session.commit()
                return int(result.rowcount or 0)

    def create_batch(self, batch: UploadBatch) -> UploadBatch:
        with self._guard("Failed to create upload history."):
            with self._session() as session:
                session.add(batch)
                session.commit()
                session.refresh(batch)
                return batch

    def get_batch(self, batch_id: UUID) -> UploadBatch | None:
        with self._guard("Failed to load upload history.", batch_id=str(batch_id)):
            with self._session() as session:
                return session.get(UploadBatch, batch_id)

    def finalize_batch(
        self,
        batch_id: UUID,
        *,
        total_rows: int,
        processed_leads: int,
        duplicates: int,
        errors: int,
        matched_in_customer_profile: int,
    ) -> UploadBatch:
        with self._guard("Failed to finalize upload history.", batch_id=str(batch_id)):
            with self._session() as session:
                batch = session.get(UploadBatch, batch_id)
                if batch is None:
                    raise UploadBatchNotFoundError(batch_id)
                batch.total_rows = total_rows
                batch.processed_leads = processed_leads
                batch.duplicates = duplicates
                batch.errors = errors
                batch.matched_in_customer_profile = matched_in_customer_profile
                session.add(batch)
                session.commit()
                session.refresh(batch)
                return batch

    def list_batches(self, *, page: int = 1, limit: int = 10) -> tuple[list[UploadBatch], int]:
        statement = (
            select(UploadBatch)
            .order_by(col(UploadBatch.uploaded_at).desc())
            .offset(_offset(page, limit))
            .limit(max(limit, 1))
        )
        with self._guard("Failed to list upload history."):
            with self._session() as session:
                batches = list(session.exec(statement).all())
                total = session.exec(select(func.count()).select_from(UploadBatch)).one()
                return batches, int(total)

    def update_batch_budget(self, batch_id: UUID, budget: float) -> UploadBatch:
        with self._guard("Failed to update upload budget.", batch_id=str(batch_id)):
            with self._session() as session:
                batch = session.get(UploadBatch, batch_id)
                if batch is None:
                    raise UploadBatchNotFoundError(batch_id)
                batch.budget = budget
                session.add(batch)
                session.commit()
                session.refresh(batch)
                return batch

    def delete_batch(self, batch_id: UUID) -> int:
        with self._guard("Failed to delete upload history.", batch_id=str(batch_id)):
            with self._session() as session:
                batch = session.get(UploadBatch, batch_id)
                if batch is None:
                    raise UploadBatchNotFoundError(batch_id)
                result = session.execute(
                    delete(Lead).where(col(Lead.upload_batch_id) == batch_id)
                )
                session.delete(batch)
                session.commit()
                deleted = int(result.rowcount or 0)
        logger.info(
            "leads.batch.deleted",
            extra={"batch_id": str(batch_id), "deleted_leads": deleted},
        )
        return deleted

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with Session(self._engine, expire_on_commit=False) as session:
            yield session

    @contextmanager
    def _guard(self, message: str, **context: object) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            logger.exception("leads.persistence.error", extra={"backend": "database", **context})
            raise LeadPersistenceError(message, detail=str(exc)) from exc


def _distinct_keys(payloads: Iterable[dict[str, str] | None]) -> list[str]:
    seen: dict[str, None] = {}
    for payload in payloads:
        for key in payload or {}:
            seen.setdefault(key, None)
    return list(seen)


def build_lead_repository(database_url: str | None = None) -> LeadRepository:
    """Instantiate a LeadRepository using DATABASE_URL when available."""
    resolved_url = database_url or settings.database_url
    if not resolved_url:
        logger.info("leads.repository.initialized", extra={"backend": "memory"})
        return InMemoryLeadRepository()
    try:
        engine = create_store_engine(
            resolved_url,
            pool_min_size=settings.db_pool_min_size,
            pool_max_size=settings.db_pool_max_size,
        )
        repository = SQLModelLeadRepository(engine)
        logger.info("leads.repository.initialized", extra={"backend": "database"})
        return repository
    except Exception:
        logger.exception("leads.repository.init_failed", extra={"backend": "database"})
        raise
