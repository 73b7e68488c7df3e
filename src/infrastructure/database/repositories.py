"""Repositories for the validation subsystem tables."""

from datetime import date, datetime
from typing import Any

from loguru import logger
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.infrastructure.database.models import (
    ConnectivityLogEntry,
    ProcessedDocument,
    ValidationCacheEntry,
    ValidationQueueItem,
    ValidationResultRecord,
)
from src.infrastructure.database.repository import BaseRepository

DUPLICATE_MATCH_LIMIT = 5
QUEUE_LISTING_LIMIT = 100


class DocumentRepository(BaseRepository[ProcessedDocument]):
    """Read access to documents produced by the extraction pipeline."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ProcessedDocument)

    async def get_by_document_id(self, document_id: str) -> ProcessedDocument | None:
        """Return the document with the given public identifier."""
        stmt = select(ProcessedDocument).where(
            ProcessedDocument.document_id == document_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_invoice_matches(
        self,
        invoice_number: str,
        cuit: str,
        invoice_date: date,
        limit: int = DUPLICATE_MATCH_LIMIT,
    ) -> list[ProcessedDocument]:
        """Find completed documents sharing invoice number, issuer and date.

        Args:
            invoice_number: Invoice number as printed on the document.
            cuit: Issuer CUIT.
            invoice_date: Issue date.
            limit: Maximum number of matches returned.

        Returns:
            list[ProcessedDocument]: Matches, most recently created first.
        """
        stmt = (
            select(ProcessedDocument)
            .where(
                ProcessedDocument.invoice_number == invoice_number,
                ProcessedDocument.cuit == cuit,
                ProcessedDocument.invoice_date == invoice_date,
                ProcessedDocument.status == "completed",
            )
            .order_by(ProcessedDocument.created_at.desc(), ProcessedDocument.id.desc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class CacheEntryRepository(BaseRepository[ValidationCacheEntry]):
    """Persistent tier storage of the validation cache."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ValidationCacheEntry)

    async def get(self, key: str) -> ValidationCacheEntry | None:
        """Return the entry stored under a key, expired or not."""
        stmt = select(ValidationCacheEntry).where(ValidationCacheEntry.key == key)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def put(
        self,
        key: str,
        value: dict[str, Any],
        cache_type: str,
        stored_at: datetime,
        expires_at: datetime,
    ) -> None:
        """Insert or replace the entry stored under a key."""
        await self.session.execute(
            delete(ValidationCacheEntry).where(ValidationCacheEntry.key == key)
        )
        self.session.add(
            ValidationCacheEntry(
                key=key,
                value=value,
                type=cache_type,
                stored_at=stored_at,
                expires_at=expires_at,
            )
        )
        await self.session.flush()

    async def delete_matching(self, like_pattern: str | None) -> int:
        """Delete entries whose key matches a SQL LIKE pattern.

        Args:
            like_pattern: Pattern using ``\\`` as escape character, or None
                to delete every entry.

        Returns:
            int: Number of deleted entries.
        """
        stmt = delete(ValidationCacheEntry)
        if like_pattern is not None:
            stmt = stmt.where(ValidationCacheEntry.key.like(like_pattern, escape="\\"))
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def purge_expired(self, now: datetime) -> int:
        """Delete entries that expired before ``now``."""
        result = await self.session.execute(
            delete(ValidationCacheEntry).where(ValidationCacheEntry.expires_at < now)
        )
        return result.rowcount or 0


class ValidationQueueRepository(BaseRepository[ValidationQueueItem]):
    """Storage of the retry queue."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ValidationQueueItem)

    async def due_items(self, now: datetime, limit: int) -> list[ValidationQueueItem]:
        """Select pending items whose retry time has elapsed.

        Rows are locked for the transaction where the database supports it,
        so concurrent scanners skip each other's items.

        Args:
            now: Current time.
            limit: Maximum number of items.

        Returns:
            list[ValidationQueueItem]: Items by priority, then insertion order.
        """
        stmt = (
            select(ValidationQueueItem)
            .where(
                ValidationQueueItem.status == "pending",
                ValidationQueueItem.next_retry_at <= now,
            )
            .order_by(ValidationQueueItem.priority.desc(), ValidationQueueItem.id.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def reap_stale(self, cutoff: datetime) -> int:
        """Return processing items started before ``cutoff`` to pending.

        Returns:
            int: Number of reverted items.
        """
        result = await self.session.execute(
            update(ValidationQueueItem)
            .where(
                ValidationQueueItem.status == "processing",
                ValidationQueueItem.processing_started_at < cutoff,
            )
            .values(status="pending", processing_started_at=None)
        )
        reverted = result.rowcount or 0
        if reverted:
            logger.warning("Reverted {} stale processing queue items", reverted)
        return reverted

    async def summary(self) -> dict[str, int]:
        """Count items per status."""
        stmt = select(ValidationQueueItem.status, func.count()).group_by(
            ValidationQueueItem.status
        )
        result = await self.session.execute(stmt)
        return {status: count for status, count in result.all()}

    async def list_items(
        self, status: str | None = None, limit: int = QUEUE_LISTING_LIMIT
    ) -> list[ValidationQueueItem]:
        """List items by priority then age, optionally filtered by status."""
        stmt = select(ValidationQueueItem)
        if status is not None:
            stmt = stmt.where(ValidationQueueItem.status == status)
        stmt = stmt.order_by(
            ValidationQueueItem.priority.desc(), ValidationQueueItem.created_at.asc()
        ).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


class ValidationResultRepository(BaseRepository[ValidationResultRecord]):
    """Storage of validation outcomes."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ValidationResultRecord)

    async def latest_complete(self, document_id: str) -> ValidationResultRecord | None:
        """Return the aggregate row of the latest validation run of a document."""
        stmt = (
            select(ValidationResultRecord)
            .where(
                ValidationResultRecord.document_id == document_id,
                ValidationResultRecord.validation_type == "complete",
            )
            .order_by(
                ValidationResultRecord.validated_at.desc(),
                ValidationResultRecord.id.desc(),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def stats_by_type(self, since: datetime) -> list[dict[str, Any]]:
        """Aggregate results per validation type since a point in time."""
        stmt = (
            select(
                ValidationResultRecord.validation_type,
                func.count().label("total"),
                func.sum(case((ValidationResultRecord.is_valid, 1), else_=0)).label(
                    "valid_count"
                ),
                func.avg(ValidationResultRecord.response_time_ms).label(
                    "avg_response_time"
                ),
                func.max(ValidationResultRecord.validated_at).label("last_validation"),
            )
            .where(ValidationResultRecord.validated_at >= since)
            .group_by(ValidationResultRecord.validation_type)
            .order_by(ValidationResultRecord.validation_type)
        )
        result = await self.session.execute(stmt)
        return [
            {
                "validationType": row.validation_type,
                "total": row.total,
                "validCount": int(row.valid_count or 0),
                "avgResponseTime": _round_or_none(row.avg_response_time),
                "lastValidation": row.last_validation,
            }
            for row in result.all()
        ]

    async def overall_stats(self, since: datetime) -> dict[str, Any]:
        """Aggregate complete validation runs since a point in time."""
        stmt = select(
            func.count().label("total"),
            func.count(func.distinct(ValidationResultRecord.document_id)).label(
                "unique_documents"
            ),
            func.avg(ValidationResultRecord.response_time_ms).label(
                "avg_response_time"
            ),
            func.sum(case((ValidationResultRecord.is_valid, 1), else_=0)).label(
                "valid_count"
            ),
        ).where(
            ValidationResultRecord.validation_type == "complete",
            ValidationResultRecord.validated_at >= since,
        )
        row = (await self.session.execute(stmt)).one()
        total = row.total or 0
        valid_count = int(row.valid_count or 0)
        return {
            "totalValidations": total,
            "uniqueDocuments": row.unique_documents or 0,
            "avgResponseTime": _round_or_none(row.avg_response_time),
            "successRate": round(valid_count * 100 / total, 2) if total else 0.0,
        }


class ConnectivityLogRepository(BaseRepository[ConnectivityLogEntry]):
    """Append-only connectivity log."""

    def __init__(self, session: AsyncSession) -> None:
        super().__init__(session, ConnectivityLogEntry)

    async def latest_per_service(self) -> list[ConnectivityLogEntry]:
        """Return the most recent record of every service."""
        latest_ids = (
            select(func.max(ConnectivityLogEntry.id))
            .group_by(ConnectivityLogEntry.service_name)
        )
        stmt = (
            select(ConnectivityLogEntry)
            .where(ConnectivityLogEntry.id.in_(latest_ids))
            .order_by(ConnectivityLogEntry.service_name)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())


def _round_or_none(value: float | None) -> float | None:
    return round(float(value), 2) if value is not None else None
