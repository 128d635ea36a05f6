"""Instant-form lead upload, listing and upload-history endpoints."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from app.api.dependencies import (
    get_ingestion_service,
    get_lead_repository,
    get_phone_matcher,
)
from app.config import settings
from app.models.ingestion import UploadHistoryEntry
from app.models.lead import STANDARD_FIELDS
from app.services.leads.ingestion import LeadIngestionService, UploadedFile
from app.services.leads.matching import CustomerPhoneMatcher
from app.services.leads.repositories import LeadRepository

router = APIRouter()
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


class BudgetUpdate(BaseModel):
    budget: float | None = None


@router.post("/instant-leads/upload")
async def upload_leads(
    file: list[UploadFile] | None = File(None),
    uploaded_by: str | None = Form(None, alias="uploadedBy"),
    budget: str | None = Form(None),
    service: LeadIngestionService = Depends(get_ingestion_service),
) -> dict[str, Any]:
    """Ingest one spreadsheet export of instant-form leads."""
    uploads = [upload for upload in (file or []) if upload is not None]
    if len(uploads) > settings.max_upload_files:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"At most {settings.max_upload_files} files may be uploaded at once.",
        )

    spooled: list[UploadedFile] = []
    try:
        for upload in uploads:
            spooled.append(await _spool_upload(upload))
    except Exception:
        for item in spooled:
            item.path.unlink(missing_ok=True)
        raise

    summary = await run_in_threadpool(
        service.ingest, spooled, uploaded_by=uploaded_by, budget=budget
    )
    return {
        "success": True,
        "message": "Excel file processed successfully",
        "data": summary.model_dump(mode="json", by_alias=True),
    }


@router.get("/instant-leads")
async def list_leads(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=1000),
    is_duplicate: bool | None = Query(None),
    quality_lead: bool | None = Query(None),
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    leads, total = await run_in_threadpool(
        repository.list_leads,
        page=page,
        limit=limit,
        is_duplicate=is_duplicate,
        quality_lead=quality_lead,
    )
    return {
        "success": True,
        "data": {
            "leads": jsonable_encoder(leads),
            "pagination": {"current": page, "pages": math.ceil(total / limit), "total": total},
        },
    }


@router.get("/instant-leads/duplicates")
async def list_duplicates(
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    duplicates = await run_in_threadpool(repository.list_duplicates)
    return {
        "success": True,
        "data": {"duplicates": jsonable_encoder(duplicates), "count": len(duplicates)},
    }


@router.get("/instant-leads/fields")
async def list_fields(
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    """Standard lead attributes plus every overflow header seen so far."""
    additional = await run_in_threadpool(repository.additional_field_names)
    standard = list(STANDARD_FIELDS)
    return {
        "success": True,
        "data": {
            "standardFields": standard,
            "additionalFields": additional,
            "allFields": standard + additional,
        },
    }


@router.get("/instant-leads/test-match/{phone}")
async def test_match(
    phone: str,
    matcher: CustomerPhoneMatcher = Depends(get_phone_matcher),
) -> dict[str, Any]:
    inspection = await run_in_threadpool(matcher.inspect, phone)
    return {"success": True, "data": inspection.model_dump(mode="json", by_alias=True)}


@router.get("/instant-leads/history")
async def list_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=500),
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    batches, total = await run_in_threadpool(repository.list_batches, page=page, limit=limit)
    return {
        "success": True,
        "data": {
            "history": [_history_entry(batch) for batch in batches],
            "pagination": {
                "currentPage": page,
                "totalPages": math.ceil(total / limit),
                "totalRecords": total,
                "hasNext": page * limit < total,
                "hasPrev": page > 1,
            },
        },
    }


@router.put("/instant-leads/history/{batch_id}")
async def update_history_budget(
    batch_id: UUID,
    payload: BudgetUpdate,
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    if payload.budget is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Budget is required")
    batch = await run_in_threadpool(repository.update_batch_budget, batch_id, payload.budget)
    logger.info(
        "leads.batch.budget_updated",
        extra={"batch_id": str(batch_id), "budget": payload.budget},
    )
    return {
        "success": True,
        "message": "Budget updated successfully",
        "data": _history_entry(batch),
    }


@router.delete("/instant-leads/history/{batch_id}")
async def delete_history(
    batch_id: UUID,
    repository: LeadRepository = Depends(get_lead_repository),
) -> dict[str, Any]:
    deleted = await run_in_threadpool(repository.delete_batch, batch_id)
    return {
        "success": True,
        "message": "Upload history and associated leads deleted successfully",
        "data": {"deletedHistoryId": str(batch_id), "deletedLeadsCount": deleted},
    }


def _history_entry(batch: Any) -> dict[str, Any]:
    return UploadHistoryEntry.model_validate(batch).model_dump(mode="json", by_alias=True)


async def _spool_upload(upload: UploadFile) -> UploadedFile:
    """Copy one attachment to the upload directory, enforcing the size limit."""
    target_dir = Path(settings.upload_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    filename = upload.filename or "upload"
    target = target_dir / f"{uuid4().hex}{Path(filename).suffix.lower()}"

    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > settings.max_upload_size_bytes:
            limit_mb = settings.max_upload_size_bytes // (1024 * 1024)
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail=f"Upload exceeds {limit_mb}MB limit.",
            )
        chunks.append(chunk)
    try:
        await run_in_threadpool(target.write_bytes, b"".join(chunks))
    except OSError:
        target.unlink(missing_ok=True)
        raise
    logger.info("leads.upload.spooled", extra={"file_name": filename, "size_bytes": total})
    return UploadedFile(path=target, filename=filename, content_type=upload.content_type)
