"""Database models of the validation subsystem.

Tables:
- **documents**: processed documents written by the extraction pipeline,
  read here for lookups and duplicate detection
- **validation_cache**: persistent tier of the validation cache
- **validation_queue**: documents awaiting a retried validation
- **validation_results**: one row per validation type per run
- **connectivity_log**: append-only record of remote service reachability
"""

from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.base import BaseModel, UTCDateTime, utc_now

# Amounts are exchanged as floats with two decimals
Amount = Numeric(14, 2, asdecimal=False)


class ProcessedDocument(BaseModel):
    """A document produced by the extraction pipeline."""

    __tablename__ = "documents"

    document_id: Mapped[str] = mapped_column(String(128), unique=True, index=True)
    document_type: Mapped[str] = mapped_column(String(32), default="invoice")
    status: Mapped[str] = mapped_column(String(16), default="completed", index=True)
    file_path: Mapped[str | None] = mapped_column(String(512))
    cuit: Mapped[str | None] = mapped_column(String(16))
    cae: Mapped[str | None] = mapped_column(String(16))
    invoice_number: Mapped[str | None] = mapped_column(String(32))
    invoice_type: Mapped[str | None] = mapped_column(String(8))
    invoice_date: Mapped[date | None] = mapped_column(Date)
    total_amount: Mapped[float | None] = mapped_column(Amount)
    subtotal: Mapped[float | None] = mapped_column(Amount)
    iva: Mapped[float | None] = mapped_column(Amount)
    processed_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)

    __table_args__ = (
        Index("ix_documents_invoice_lookup", "invoice_number", "cuit", "invoice_date"),
    )


class ValidationCacheEntry(BaseModel):
    """Persistent cache entry."""

    __tablename__ = "validation_cache"

    key: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON)
    type: Mapped[str] = mapped_column(String(32))
    stored_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), index=True)


class ValidationQueueItem(BaseModel):
    """Document waiting for a retried validation."""

    __tablename__ = "validation_queue"

    document_id: Mapped[str] = mapped_column(String(128), index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON)
    priority: Mapped[int] = mapped_column(Integer, default=1)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(String(16), default="pending")
    next_retry_at: Mapped[datetime] = mapped_column(UTCDateTime())
    processing_started_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    last_error: Mapped[str | None] = mapped_column(Text)

    __table_args__ = (
        Index("ix_validation_queue_due", "status", "next_retry_at"),
    )


class ValidationResultRecord(BaseModel):
    """Outcome of one validation type within one validation run."""

    __tablename__ = "validation_results"

    document_id: Mapped[str] = mapped_column(String(128), index=True)
    validation_id: Mapped[str] = mapped_column(String(200))
    validation_type: Mapped[str] = mapped_column(String(32))
    result_json: Mapped[dict[str, Any]] = mapped_column(JSON)
    is_valid: Mapped[bool] = mapped_column(Boolean)
    severity: Mapped[str] = mapped_column(String(16))
    response_time_ms: Mapped[int | None] = mapped_column(Integer)
    validated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)

    __table_args__ = (
        Index("ix_validation_results_type_time", "validation_type", "validated_at"),
    )


class ConnectivityLogEntry(BaseModel):
    """Reachability observation of a remote service."""

    __tablename__ = "connectivity_log"

    service_name: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[str] = mapped_column(String(16))
    response_time_ms: Mapped[int | None] = mapped_column(Integer)
    error_message: Mapped[str | None] = mapped_column(Text)
    checked_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now)
