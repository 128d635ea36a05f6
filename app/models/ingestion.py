"""Result models produced by the lead ingestion pipeline."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for payloads rendered with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DuplicateCheck(BaseModel):
    is_duplicate: bool = False
    reason: str | None = None
    original_lead_id: UUID | None = None


class DuplicateEntry(BaseModel):
    row: int
    phone: str | None = None
    pan: str | None = None
    reason: str | None = None


class LeadDetail(BaseModel):
    """Compact per-lead view returned with an upload summary."""

    id: UUID
    phone_number: str
    pan_number: str | None = None
    email: str | None = None
    full_name: str | None = None
    is_duplicate: bool
    duplicate_reason: str | None = None
    matched_in_customer_profile: bool
    matched_at: datetime | None = None
    additional_fields: list[str] = Field(default_factory=list)


class UploadDetails(CamelModel):
    leads: list[LeadDetail] = Field(default_factory=list)
    duplicate_list: list[DuplicateEntry] = Field(default_factory=list)
    error_list: list[str] = Field(default_factory=list)


class UploadSummary(CamelModel):
    batch_id: UUID = Field(alias="uploadHistoryId")
    total_rows: int
    processed_leads: int
    duplicates: int
    errors: int
    matched_in_customer_profile: int
    unmatched_in_customer_profile: int
    excel_file_name: str
    excel_headers: list[str] = Field(default_factory=list)
    details: UploadDetails


class MatchInspection(CamelModel):
    """Diagnostic view of how one phone number compares to the customer store."""

    input_phone: str
    normalized_phone: str | None = None
    is_matched: bool
    total_customer_phones_checked: int
    normalized_customer_phones: int
    sample_customer_phones: list[dict[str, str | None]] = Field(default_factory=list)


class UploadHistoryEntry(CamelModel):
    """Upload history row as rendered by the history endpoints."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: UUID
    file_name: str
    uploaded_at: datetime
    uploaded_by: str
    budget: float
    total_rows: int
    processed_leads: int
    duplicates: int
    errors: int
    matched_in_customer_profile: int
    created_at: datetime
    updated_at: datetime
