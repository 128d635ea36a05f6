"""Spreadsheet upload pipeline: parse, extract, dedupe, match, persist, summarize."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path

from app.config import settings
from app.models.columns import utcnow
from app.models.ingestion import DuplicateEntry, LeadDetail, UploadDetails, UploadSummary
from app.models.lead import Lead, LeadDraft
from app.models.upload_batch import UploadBatch
from app.observability.metrics import metrics
from app.services.leads.duplicates import DuplicateDetector
from app.services.leads.errors import (
    LeadPersistenceError,
    LeadServiceError,
    UploadValidationError,
    WorkbookReadError,
)
from app.services.leads.extraction import extract_lead_fields
from app.services.leads.matching import CustomerPhoneMatcher
from app.services.leads.phones import CANONICAL_LENGTH
from app.services.leads.repositories import LeadRepository
from app.services.leads.workbook import looks_like_spreadsheet, read_first_sheet

logger = logging.getLogger(__name__)

# Spreadsheet row 1 is the header, so data row i (0-based) sits on row i + 2.
FIRST_DATA_ROW = 2


class IngestionState(str, Enum):
    RECEIVED = "received"
    PARSED = "parsed"
    EXTRACTING = "extracting"
    MATCHING = "matching"
    PERSISTING = "persisting"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadedFile:
    """A multipart attachment already spooled to a temporary path."""

    path: Path
    filename: str
    content_type: str | None = None


@dataclass
class IngestionRun:
    """State of one upload request as it moves through the pipeline."""

    state: IngestionState = IngestionState.RECEIVED
    history: list[IngestionState] = field(default_factory=lambda: [IngestionState.RECEIVED])
    batch_id: str | None = None

    def advance(self, state: IngestionState) -> None:
        self.state = state
        self.history.append(state)
        logger.info("ingestion.state", extra={"state": state.value, "batch_id": self.batch_id})


class LeadIngestionService:
    """Runs one spreadsheet upload end to end.

    File-level problems abort before anything is persisted; row-level problems
    are recorded as ``Row N: ...`` strings and the row is skipped. Temporary
    files are removed on every exit path.
    """

    def __init__(
        self,
        repository: LeadRepository,
        matcher: CustomerPhoneMatcher,
        *,
        detector: DuplicateDetector | None = None,
        quality_campaign_id: str | None = None,
        quality_min_salary: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._matcher = matcher
        self._detector = detector or DuplicateDetector(repository)
        self._quality_campaign_id = quality_campaign_id or settings.quality_campaign_id
        self._quality_min_salary = (
            settings.quality_min_salary if quality_min_salary is None else quality_min_salary
        )
        self._clock = clock
        self.last_run: IngestionRun | None = None

    def ingest(
        self,
        files: Sequence[UploadedFile],
        *,
        uploaded_by: str | None = None,
        budget: str | float | None = None,
    ) -> UploadSummary:
        run = IngestionRun()
        self.last_run = run
        try:
            return self._run(run, files, uploaded_by=uploaded_by, budget=budget)
        except LeadServiceError:
            if run.state not in (IngestionState.PERSISTING, IngestionState.FINALIZED):
                run.advance(IngestionState.FAILED)
            raise
        finally:
            _remove_files(files)

    def _run(
        self,
        run: IngestionRun,
        files: Sequence[UploadedFile],
        *,
        uploaded_by: str | None,
        budget: str | float | None,
    ) -> UploadSummary:
        upload = _select_spreadsheet(files)
        budget_value = _parse_budget(budget)
        uploader = (uploaded_by or "").strip() or "unknown"

        rows = read_first_sheet(upload.path)
        if not rows:
            raise WorkbookReadError("Excel file is empty")
        headers = list(rows[0].keys())
        logger.info(
            "ingestion.workbook.loaded",
            extra={"file_name": upload.filename, "rows": len(rows), "headers": headers},
        )

        batch = self._repository.create_batch(
            UploadBatch(file_name=upload.filename, uploaded_by=uploader, budget=budget_value)
        )
        run.batch_id = str(batch.id)
        run.advance(IngestionState.PARSED)

        run.advance(IngestionState.EXTRACTING)
        drafts, errors = self._extract_rows(rows, batch)

        run.advance(IngestionState.MATCHING)
        self._stamp_matches(drafts)

        run.advance(IngestionState.PERSISTING)
        persisted, duplicates = self._persist(drafts, batch, errors)

        matched_count = sum(1 for lead in persisted if lead.matched_in_customer_profile)
        self._repository.finalize_batch(
            batch.id,
            total_rows=len(rows),
            processed_leads=len(persisted),
            duplicates=len(duplicates),
            errors=len(errors),
            matched_in_customer_profile=matched_count,
        )
        run.advance(IngestionState.FINALIZED)
        logger.info(
            "ingestion.completed",
            extra={
                "batch_id": str(batch.id),
                "total_rows": len(rows),
                "processed": len(persisted),
                "duplicates": len(duplicates),
                "errors": len(errors),
                "matched": matched_count,
            },
        )

        return UploadSummary(
            batch_id=batch.id,
            total_rows=len(rows),
            processed_leads=len(persisted),
            duplicates=len(duplicates),
            errors=len(errors),
            matched_in_customer_profile=matched_count,
            unmatched_in_customer_profile=len(persisted) - matched_count,
            excel_file_name=upload.filename,
            excel_headers=headers,
            details=UploadDetails(
                leads=[_lead_detail(lead) for lead in persisted],
                duplicate_list=duplicates,
                error_list=errors,
            ),
        )

    def _extract_rows(
        self, rows: Sequence[dict], batch: UploadBatch
    ) -> tuple[list[LeadDraft], list[str]]:
        drafts: list[LeadDraft] = []
        errors: list[str] = []
        for index, row in enumerate(rows):
            row_number = index + FIRST_DATA_ROW
            try:
                draft = extract_lead_fields(row, row_number)
                if not draft.phone_number or len(draft.phone_number) < CANONICAL_LENGTH:
                    errors.append(f"Row {row_number}: Invalid phone number")
                    metrics.increment("ingestion.rows.rejected", tags={"reason": "phone"})
                    continue

                check = self._detector.check(draft)
                if check.is_duplicate:
                    draft.is_duplicate = True
                    draft.duplicate_reason = check.reason
                    draft.original_lead_id = check.original_lead_id

                draft.upload_batch_id = batch.id
                drafts.append(draft)
            except Exception as exc:
                logger.exception("ingestion.row.failed", extra={"row": row_number})
                errors.append(f"Row {row_number}: {exc}")
                metrics.increment("ingestion.rows.rejected", tags={"reason": "exception"})
        return drafts, errors

    def _stamp_matches(self, drafts: Sequence[LeadDraft]) -> None:
        matched_phones = self._matcher.match(draft.phone_number for draft in drafts)
        matched_at = self._clock()
        for draft in drafts:
            if draft.phone_number in matched_phones:
                draft.matched_in_customer_profile = True
                draft.matched_at = matched_at
            else:
                draft.matched_in_customer_profile = False
                draft.matched_at = None

    def _persist(
        self, drafts: Sequence[LeadDraft], batch: UploadBatch, errors: list[str]
    ) -> tuple[list[Lead], list[DuplicateEntry]]:
        """Store each draft; duplicates are only reported once their row is stored."""
        persisted: list[Lead] = []
        duplicates: list[DuplicateEntry] = []
        for draft in drafts:
            lead = Lead.from_draft(
                draft,
                uploaded_by=batch.uploaded_by,
                source_file_name=batch.file_name,
                quality_campaign_id=self._quality_campaign_id,
                quality_min_salary=self._quality_min_salary,
            )
            try:
                persisted.append(self._repository.add_lead(lead))
                metrics.increment("ingestion.rows.persisted")
                if draft.is_duplicate:
                    duplicates.append(
                        DuplicateEntry(
                            row=draft.row_number,
                            phone=draft.phone_number,
                            pan=draft.pan_number,
                            reason=draft.duplicate_reason,
                        )
                    )
                    metrics.increment("ingestion.rows.duplicate")
            except LeadPersistenceError as exc:
                logger.warning(
                    "ingestion.row.persist_failed",
                    extra={"row": draft.row_number, "batch_id": str(batch.id)},
                )
                errors.append(f"Row {draft.row_number}: {exc.message}")
                metrics.increment("ingestion.rows.rejected", tags={"reason": "persistence"})
        return persisted, duplicates


def _select_spreadsheet(files: Sequence[UploadedFile]) -> UploadedFile:
    spreadsheets = [
        upload for upload in files if looks_like_spreadsheet(upload.filename, upload.content_type)
    ]
    if not spreadsheets:
        raise UploadValidationError("No Excel file uploaded. Please upload a .xlsx or .xls file")
    if len(spreadsheets) > 1:
        raise UploadValidationError("Upload exactly one Excel file per request")
    return spreadsheets[0]


def _parse_budget(budget: str | float | None) -> float:
    if budget is None or (isinstance(budget, str) and not budget.strip()):
        return 0.0
    try:
        return float(budget)
    except (TypeError, ValueError) as exc:
        raise UploadValidationError("Budget must be a number", detail=str(exc)) from exc


def _lead_detail(lead: Lead) -> LeadDetail:
    return LeadDetail(
        id=lead.id,
        phone_number=lead.phone_number,
        pan_number=lead.pan_number,
        email=lead.email,
        full_name=lead.full_name,
        is_duplicate=lead.is_duplicate,
        duplicate_reason=lead.duplicate_reason,
        matched_in_customer_profile=lead.matched_in_customer_profile,
        matched_at=lead.matched_at,
        additional_fields=list((lead.additional_data or {}).keys()),
    )


def _remove_files(files: Sequence[UploadedFile]) -> None:
    for upload in files:
        try:
            Path(upload.path).unlink(missing_ok=True)
        except OSError:
            logger.warning("ingestion.cleanup.failed", extra={"path": str(upload.path)})
