"""SQLModel mapping for spreadsheet upload history."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Float, Integer, String, Uuid
from sqlmodel import Field, SQLModel

from app.models.columns import UtcNow, utcnow


class UploadBatch(SQLModel, table=True):
    """One upload request: file metadata plus its finalized outcome counts."""

    __tablename__ = "upload_batches"
    __table_args__ = (
        sa.Index("ix_upload_batches_uploaded_at", "uploaded_at"),
        sa.Index("ix_upload_batches_uploaded_by", "uploaded_by"),
    )

    id: UUID = Field(
        default_factory=uuid4,
        sa_column=Column(Uuid(as_uuid=True), primary_key=True, nullable=False),
    )
    file_name: str = Field(sa_column=Column(String(length=512), nullable=False))
    uploaded_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False, server_default=UtcNow()),
    )
    uploaded_by: str = Field(
        default="unknown",
        sa_column=Column(String(length=255), nullable=False, server_default="unknown"),
    )
    budget: float = Field(default=0.0, sa_column=Column(Float, nullable=False, server_default="0"))
    total_rows: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    processed_leads: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    duplicates: int = Field(
        default=0, sa_column=Column(Integer, nullable=False, server_default="0")
    )
    errors: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    matched_in_customer_profile: int = Field(
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
