"""Create the validation tables.

Revision ID: 0001
Revises:
Create Date: 2026-06-01 00:00:00
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

AMOUNT = sa.Numeric(14, 2)


def _common_columns() -> list[sa.Column]:
    return [
        sa.Column(
            "id",
            sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
            primary_key=True,
            autoincrement=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the documents, cache, queue, results and connectivity tables."""
    op.create_table(
        "documents",
        *_common_columns(),
        sa.Column("document_id", sa.String(128), nullable=False),
        sa.Column("document_type", sa.String(32), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("file_path", sa.String(512)),
        sa.Column("cuit", sa.String(16)),
        sa.Column("cae", sa.String(16)),
        sa.Column("invoice_number", sa.String(32)),
        sa.Column("invoice_type", sa.String(8)),
        sa.Column("invoice_date", sa.Date()),
        sa.Column("total_amount", AMOUNT),
        sa.Column("subtotal", AMOUNT),
        sa.Column("iva", AMOUNT),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_documents_document_id", "documents", ["document_id"], unique=True
    )
    op.create_index("ix_documents_status", "documents", ["status"])
    op.create_index(
        "ix_documents_invoice_lookup",
        "documents",
        ["invoice_number", "cuit", "invoice_date"],
    )

    op.create_table(
        "validation_cache",
        *_common_columns(),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("stored_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_validation_cache_key", "validation_cache", ["key"], unique=True
    )
    op.create_index(
        "ix_validation_cache_expires_at", "validation_cache", ["expires_at"]
    )

    op.create_table(
        "validation_queue",
        *_common_columns(),
        sa.Column("document_id", sa.String(128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("next_retry_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processing_started_at", sa.DateTime(timezone=True)),
        sa.Column("last_error", sa.Text()),
    )
    op.create_index(
        "ix_validation_queue_document_id", "validation_queue", ["document_id"]
    )
    op.create_index(
        "ix_validation_queue_due", "validation_queue", ["status", "next_retry_at"]
    )

    op.create_table(
        "validation_results",
        *_common_columns(),
        sa.Column("document_id", sa.String(128), nullable=False),
        sa.Column("validation_id", sa.String(200), nullable=False),
        sa.Column("validation_type", sa.String(32), nullable=False),
        sa.Column("result_json", sa.JSON(), nullable=False),
        sa.Column("is_valid", sa.Boolean(), nullable=False),
        sa.Column("severity", sa.String(16), nullable=False),
        sa.Column("response_time_ms", sa.Integer()),
        sa.Column("validated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_validation_results_document_id", "validation_results", ["document_id"]
    )
    op.create_index(
        "ix_validation_results_type_time",
        "validation_results",
        ["validation_type", "validated_at"],
    )

    op.create_table(
        "connectivity_log",
        *_common_columns(),
        sa.Column("service_name", sa.String(64), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("response_time_ms", sa.Integer()),
        sa.Column("error_message", sa.Text()),
        sa.Column("checked_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_connectivity_log_service_name", "connectivity_log", ["service_name"]
    )


def downgrade() -> None:
    """Drop every validation table."""
    for table in (
        "connectivity_log",
        "validation_results",
        "validation_queue",
        "validation_cache",
        "documents",
    ):
        op.drop_table(table)
