"""Persistent queue of validations to retry.

Documents whose validation was degraded by connectivity are stored in the
``validation_queue`` table and replayed through the orchestrator with
exponential backoff. Scans are single-flight within a process, and each item
is claimed in a short transaction before it is replayed, so a crash leaves it
in ``processing`` until the stale reaper returns it to ``pending``.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Final

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import RetryConfig
from src.infrastructure.database.models import ValidationQueueItem
from src.infrastructure.database.repositories import ValidationQueueRepository
from src.services.validation.models import DocumentData, ValidationOptions
from src.services.validation.orchestrator import (
    ValidationOrchestrator,
    is_connectivity_degraded,
)
from src.services.validation.rules import backoff_delay_ms

QUEUE_STATUSES: Final[tuple[str, ...]] = (
    "pending",
    "processing",
    "completed",
    "failed",
)


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class _Claim:
    item_id: int
    document_id: str
    payload: dict[str, Any]
    priority: int


class RetryQueue:
    """Replays queued validations with capped exponential backoff.

    Args:
        session_factory: Factory of database sessions.
        orchestrator: Orchestrator the items are replayed through.
        config: Backoff, batch and worker settings.
        clock: Returns the current aware time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        orchestrator: ValidationOrchestrator,
        config: RetryConfig,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._session_factory = session_factory
        self._orchestrator = orchestrator
        self._config = config
        self._clock = clock
        self._processing = False

    @property
    def is_processing(self) -> bool:
        """Whether a scan is running."""
        return self._processing

    async def add_item(
        self, document_id: str, payload: dict[str, Any], priority: int = 1
    ) -> None:
        """Queue a document, due after the base delay."""
        next_retry_at = self._clock() + timedelta(
            milliseconds=self._config.base_delay_ms
        )
        async with self._session_factory() as session, session.begin():
            await ValidationQueueRepository(session).create(
                ValidationQueueItem(
                    document_id=document_id,
                    payload=payload,
                    priority=priority,
                    attempts=0,
                    status="pending",
                    next_retry_at=next_retry_at,
                )
            )
        logger.info(
            "Queued document {} for retry", document_id, document_id=document_id
        )

    async def process_retry_queue(self) -> int:
        """Replay every due item of one batch.

        A call made while another scan is running returns immediately.

        Returns:
            int: Number of items replayed.
        """
        if self._processing:
            logger.debug("Retry scan already running, skipping")
            return 0

        self._processing = True
        try:
            claims = await self._claim_batch()
            if not claims:
                return 0

            logger.info("Replaying {} queued validations", len(claims))
            semaphore = asyncio.Semaphore(self._config.worker_count)

            async def run(claim: _Claim) -> None:
                async with semaphore:
                    await self._replay(claim)

            outcomes = await asyncio.gather(
                *(run(claim) for claim in claims), return_exceptions=True
            )
            for claim, outcome in zip(claims, outcomes, strict=True):
                if isinstance(outcome, Exception):
                    logger.opt(exception=outcome).error(
                        "Could not settle queue item {}", claim.item_id
                    )
            return len(claims)
        finally:
            self._processing = False

    async def _claim_batch(self) -> list[_Claim]:
        now = self._clock()
        stale_cutoff = now - timedelta(minutes=self._config.stale_after_minutes)

        async with self._session_factory() as session, session.begin():
            repository = ValidationQueueRepository(session)
            await repository.reap_stale(stale_cutoff)
            items = await repository.due_items(now, self._config.batch_size)
            for item in items:
                item.status = "processing"
                item.attempts += 1
                item.processing_started_at = now
            return [
                _Claim(
                    item_id=item.id,
                    document_id=item.document_id,
                    payload=item.payload,
                    priority=item.priority,
                )
                for item in items
            ]

    async def _replay(self, claim: _Claim) -> None:
        failure: str | None = None
        with logger.contextualize(document_id=claim.document_id):
            try:
                document = DocumentData.model_validate(claim.payload)
                result = await self._orchestrator.validate_document(
                    document,
                    ValidationOptions(enqueue_on_connectivity=False),
                    priority=claim.priority,
                )
                if is_connectivity_degraded(result):
                    failure = "Validation degraded by connectivity"
            except Exception as e:  # noqa: BLE001 - recorded on the item
                failure = f"{type(e).__name__}: {e}"

            await self._settle(claim, failure)

    async def _settle(self, claim: _Claim, failure: str | None) -> None:
        async with self._session_factory() as session, session.begin():
            item = await ValidationQueueRepository(session).get_by_id(claim.item_id)
            if item is None:
                return
            item.processing_started_at = None

            if failure is None:
                item.status = "completed"
                item.last_error = None
                logger.info("Retried validation of {} succeeded", claim.document_id)
                return

            item.last_error = failure
            if item.attempts >= self._config.max_attempts:
                item.status = "failed"
                logger.error(
                    "Retry of {} failed permanently after {} attempts: {}",
                    claim.document_id,
                    item.attempts,
                    failure,
                )
                return

            # The claim already counted this attempt
            delay_ms = backoff_delay_ms(
                item.attempts - 1,
                self._config.base_delay_ms,
                self._config.max_delay_ms,
                self._config.jitter_ratio,
            )
            item.status = "pending"
            item.next_retry_at = self._clock() + timedelta(milliseconds=delay_ms)
            logger.warning(
                "Retry {} of {} failed, next attempt in {}ms: {}",
                item.attempts,
                claim.document_id,
                delay_ms,
                failure,
            )

    async def run_loop(self) -> None:
        """Scan the queue at the configured interval until cancelled."""
        while True:
            await asyncio.sleep(self._config.poll_interval_seconds)
            try:
                await self.process_retry_queue()
            except Exception as e:  # noqa: BLE001 - the loop outlives one scan
                logger.opt(exception=e).error("Retry queue scan failed")

    async def queue_status(self, status: str | None = None) -> dict[str, Any]:
        """Summarize the queue and list its items.

        Args:
            status: Only list items with this status, or None for all.

        Returns:
            dict[str, Any]: ``summary`` counts per status, ``items`` and
                ``filter``.
        """
        async with self._session_factory() as session:
            repository = ValidationQueueRepository(session)
            counts = await repository.summary()
            items = await repository.list_items(status)

        summary = {name: counts.get(name, 0) for name in QUEUE_STATUSES}
        summary["total"] = sum(counts.values())
        return {
            "summary": summary,
            "items": [
                {
                    "id": item.id,
                    "documentId": item.document_id,
                    "priority": item.priority,
                    "attempts": item.attempts,
                    "status": item.status,
                    "nextRetryAt": item.next_retry_at.isoformat(),
                    "lastError": item.last_error,
                    "createdAt": item.created_at.isoformat(),
                }
                for item in items
            ],
            "filter": status or "all",
        }
