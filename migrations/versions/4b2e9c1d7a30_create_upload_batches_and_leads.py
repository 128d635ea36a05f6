"""Create upload_batches and leads tables.

Lookup indexes back the per-row duplicate checks (phone, PAN, email) and the
list filters on quality/duplicate flags.
"""

from __future__ import annotations

import logging

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "4b2e9c1d7a30"
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger(__name__)

_UTC_NOW = sa.text("timezone('utc', now())")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=_UTC_NOW,
            server_onupdate=_UTC_NOW,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "upload_batches",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("file_name", sa.String(length=512), nullable=False),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=_UTC_NOW),
        sa.Column("uploaded_by", sa.String(length=255), nullable=False, server_default="unknown"),
        sa.Column("budget", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_rows", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("processed_leads", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("duplicates", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("errors", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("matched_in_customer_profile", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_upload_batches"),
    )
    op.create_index("ix_upload_batches_uploaded_at", "upload_batches", ["uploaded_at"])
    op.create_index("ix_upload_batches_uploaded_by", "upload_batches", ["uploaded_by"])

    text_columns = [
        ("pan_number", 32),
        ("email", 255),
        ("full_name", 255),
        ("first_name", 255),
        ("last_name", 255),
        ("age", 32),
        ("gender", 32),
        ("city", 255),
        ("state", 255),
        ("pincode", 32),
        ("occupation", 255),
        ("company_name", 255),
        ("loan_amount", 64),
        ("loan_purpose", 255),
        ("existing_loans", 255),
        ("credit_score", 32),
    ]
    op.create_table(
        "leads",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_time", sa.String(length=255), nullable=False),
        sa.Column("ad_id", sa.String(length=255), nullable=False),
        sa.Column("platform", sa.String(length=255), nullable=False),
        sa.Column("monthly_salary", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        *[sa.Column(name, sa.String(length=length), nullable=True) for name, length in text_columns],
        sa.Column("additional_data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("upload_batch_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("row_number", sa.Integer(), nullable=True),
        sa.Column("uploaded_by", sa.String(length=255), nullable=False, server_default="unknown"),
        sa.Column("source_file_name", sa.String(length=512), nullable=True),
        sa.Column("is_duplicate", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("duplicate_reason", sa.String(length=255), nullable=True),
        sa.Column("original_lead_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "matched_in_customer_profile", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("matched_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("quality_lead", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("salary_numeric_value", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_leads"),
        sa.ForeignKeyConstraint(
            ["upload_batch_id"],
            ["upload_batches.id"],
            name="fk_leads_upload_batch_id",
            ondelete="CASCADE",
        ),
    )
    for name, columns in (
        ("ix_leads_phone_number", ["phone_number"]),
        ("ix_leads_pan_number", ["pan_number"]),
        ("ix_leads_email", ["email"]),
        ("ix_leads_phone_pan", ["phone_number", "pan_number"]),
        ("ix_leads_quality_lead", ["quality_lead"]),
        ("ix_leads_is_duplicate", ["is_duplicate"]),
        ("ix_leads_created_time", ["created_time"]),
        ("ix_leads_ad_id", ["ad_id"]),
        ("ix_leads_upload_batch_id", ["upload_batch_id"]),
    ):
        op.create_index(name, "leads", columns, unique=False)
    logger.info("leads.migration.applied", extra={"revision": revision})


def downgrade() -> None:
    op.drop_table("leads")
    op.drop_index("ix_upload_batches_uploaded_by", table_name="upload_batches")
    op.drop_index("ix_upload_batches_uploaded_at", table_name="upload_batches")
    op.drop_table("upload_batches")
