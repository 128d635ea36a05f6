"""Lead records extracted from instant-form spreadsheet exports."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

import sqlalchemy as sa
from pydantic import BaseModel, Field as PydanticField
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import JSON_BACKING_TYPE, UtcNow, utcnow

# Monthly salary brackets offered by the lead form, mapped to their midpoint.
SALARY_BRACKET_VALUES: dict[str, int] = {
    "below 35K": 30000,
    "₹35,000_to_₹50,000": 42500,
    "₹50,000_to_₹70,000": 60000,
    "₹70,000_to_₹1,00,000": 85000,
    "above 1 Lakh": 120000,
}

REQUIRED_FIELDS: tuple[str, ...] = (
    "created_time",
    "ad_id",
    "platform",
    "monthly_salary",
    "phone_number",
)

STANDARD_FIELDS: tuple[str, ...] = (
    "created_time",
    "ad_id",
    "platform",
    "monthly_salary",
    "phone_number",
    "pan_number",
    "email",
    "full_name",
    "first_name",
    "last_name",
    "age",
    "gender",
    "city",
    "state",
    "pincode",
    "occupation",
    "company_name",
    "loan_amount",
    "loan_purpose",
    "existing_loans",
    "credit_score",
)


def salary_numeric_value(bracket: str | None) -> int:
    """Return the midpoint for a salary bracket, 0 when the bracket is unknown."""
    if not bracket:
        return 0
    return SALARY_BRACKET_VALUES.get(bracket, 0)


def is_quality_lead(
    salary_value: int, ad_id: str | None, *, campaign_id: str, min_salary: int
) -> bool:
    return salary_value > min_salary and (ad_id or "") == campaign_id


class LeadDraft(BaseModel):
    """In-memory lead produced by field extraction, before persistence."""

    created_time: str | None = None
    ad_id: str | None = None
    platform: str | None = None
    monthly_salary: str | None = None
    phone_number: str | None = None
    pan_number: str | None = None
    email: str | None = None
    full_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    age: str | None = None
    gender: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    occupation: str | None = None
    company_name: str | None = None
    loan_amount: str | None = None
    loan_purpose: str | None = None
    existing_loans: str | None = None
    credit_score: str | None = None
    additional_data: dict[str, str] = PydanticField(default_factory=dict)

    row_number: int | None = None
    upload_batch_id: UUID | None = None
    is_duplicate: bool = False
    duplicate_reason: str | None = None
    original_lead_id: UUID | None = None
    matched_in_customer_profile: bool = False
    matched_at: datetime | None = None

    def missing_required_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]


def _text_column(length: int = 255, *, nullable: bool = True) -> Any:
    return Field(default=None, sa_column=Column(String(length=length), nullable=nullable))


class Lead(SQLModel, table=True):
    """Persisted lead row; provenance is immutable, only flags change after insert."""

    __tablename__ = "leads"
    __table_args__ = (
        sa.Index("ix_leads_phone_number", "phone_number"),
        sa.Index("ix_leads_pan_number", "pan_number"),
        sa.Index("ix_leads_email", "email"),
        sa.Index("ix_leads_phone_pan", "phone_number", "pan_number"),
        sa.Index("ix_leads_quality_lead", "quality_lead"),
        sa.Index("ix_leads_is_duplicate", "is_duplicate"),
        sa.Index("ix_leads_created_time", "created_time"),
        sa.Index("ix_leads_ad_id", "ad_id"),
        sa.Index("ix_leads_upload_batch_id", "upload_batch_id"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )

    created_time: str = Field(sa_column=Column(String(length=255), nullable=False))
    ad_id: str = Field(sa_column=Column(String(length=255), nullable=False))
    platform: str = Field(sa_column=Column(String(length=255), nullable=False))
    monthly_salary: str = Field(sa_column=Column(String(length=255), nullable=False))
    phone_number: str = Field(sa_column=Column(String(length=32), nullable=False))

    pan_number: str | None = _text_column(32)
    email: str | None = _text_column()
    full_name: str | None = _text_column()
    first_name: str | None = _text_column()
    last_name: str | None = _text_column()
    age: str | None = _text_column(32)
    gender: str | None = _text_column(32)
    city: str | None = _text_column()
    state: str | None = _text_column()
    pincode: str | None = _text_column(32)
    occupation: str | None = _text_column()
    company_name: str | None = _text_column()
    loan_amount: str | None = _text_column(64)
    loan_purpose: str | None = _text_column()
    existing_loans: str | None = _text_column()
    credit_score: str | None = _text_column(32)

    additional_data: dict[str, str] = Field(
        default_factory=dict,
        sa_column=Column(JSON_BACKING_TYPE, nullable=False),
    )

    upload_batch_id: UUID | None = Field(
        default=None,
        sa_column=Column(
            Uuid(as_uuid=True),
            sa.ForeignKey("upload_batches.id", ondelete="CASCADE"),
            nullable=True,
        ),
    )
    row_number: int | None = Field(default=None, sa_column=Column(Integer, nullable=True))
    uploaded_by: str = Field(
        default="unknown",
        sa_column=Column(String(length=255), nullable=False, server_default="unknown"),
    )
    source_file_name: str | None = _text_column(512)

    is_duplicate: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, server_default=sa.false())
    )
    duplicate_reason: str | None = _text_column()
    original_lead_id: UUID | None = Field(
        default=None, sa_column=Column(Uuid(as_uuid=True), nullable=True)
    )
    matched_in_customer_profile: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, server_default=sa.false())
    )
    matched_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    quality_lead: bool = Field(
        default=False, sa_column=Column(Boolean, nullable=False, server_default=sa.false())
    )
    salary_numeric_value: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )

    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    updated_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(
            DateTime(timezone=True),
            nullable=False,
            server_default=UtcNow(),
            onupdate=UtcNow(),
        ),
    )

    @classmethod
    def from_draft(
        cls,
        draft: LeadDraft,
        *,
        uploaded_by: str = "unknown",
        source_file_name: str | None = None,
        quality_campaign_id: str,
        quality_min_salary: int,
    ) -> Lead:
        """Convert an extracted draft into a persistence row."""
        payload = draft.model_dump(include=set(STANDARD_FIELDS))
        salary_value = salary_numeric_value(draft.monthly_salary)
        return cls(
            **payload,
            additional_data=dict(draft.additional_data),
            upload_batch_id=draft.upload_batch_id,
            row_number=draft.row_number,
            uploaded_by=uploaded_by,
            source_file_name=source_file_name,
            is_duplicate=draft.is_duplicate,
            duplicate_reason=draft.duplicate_reason,
            original_lead_id=draft.original_lead_id,
            matched_in_customer_profile=draft.matched_in_customer_profile,
            matched_at=draft.matched_at,
            salary_numeric_value=salary_value,
            quality_lead=is_quality_lead(
                salary_value,
                draft.ad_id,
                campaign_id=quality_campaign_id,
                min_salary=quality_min_salary,
            ),
        )
