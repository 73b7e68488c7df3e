"""Validation endpoints.

Sub-validation failures are part of a successful response: a document whose
verdict is ``invalid`` is still returned with status 200. Only request errors,
missing resources and storage failures become error responses.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from fastapi import APIRouter
from loguru import logger

from src.api.constants import DEFAULT_STATS_PERIOD, STATS_PERIOD_DAYS
from src.api.dependencies import Services
from src.api.schemas.validation import (
    CaeValidationRequest,
    CuitValidationRequest,
    ValidateDocumentRequest,
)
from src.core.exceptions import NotFoundError, ValidationError
from src.infrastructure.database.dependencies import DatabaseSession
from src.infrastructure.database.repositories import ValidationResultRepository
from src.services.validation.retry_queue import QUEUE_STATUSES

router = APIRouter(tags=["validation"])


def _now() -> str:
    return datetime.now(UTC).isoformat()


# Registered before /validate/{document_id} so the literal paths win.
@router.post("/validate/cuit")
async def validate_cuit(
    body: CuitValidationRequest, services: Services
) -> dict[str, Any]:
    """Validate a single CUIT against the taxpayer registry."""
    if not body.cuit or not body.cuit.strip():
        raise ValidationError("CUIT is required", context={"field": "cuit"})

    result = await services.orchestrator.validate_cuit(
        body.cuit, skip_cache=body.skip_cache
    )
    return {
        "success": True,
        "cuit": body.cuit,
        "validationResult": result.to_dict(),
        "timestamp": _now(),
    }


@router.post("/validate/cae")
async def validate_cae(
    body: CaeValidationRequest, services: Services
) -> dict[str, Any]:
    """Validate a single CAE, looked up when the invoice identity is given."""
    if not body.cae or not body.cae.strip():
        raise ValidationError("CAE is required", context={"field": "cae"})

    result = await services.orchestrator.validate_cae(
        body.cae, body.as_document(), skip_cache=body.skip_cache
    )
    return {
        "success": True,
        "cae": body.cae,
        "validationResult": result.to_dict(),
        "timestamp": _now(),
    }


@router.post("/validate/{document_id}")
async def validate_document(
    document_id: str,
    services: Services,
    body: ValidateDocumentRequest | None = None,
) -> dict[str, Any]:
    """Run every validation of a document and persist the verdict.

    The document is taken from the body when supplied, otherwise it is
    loaded from the documents table.

    Raises:
        NotFoundError: If no document was supplied and none is stored.
    """
    body = body or ValidateDocumentRequest()
    if body.document is not None:
        document = body.document.model_copy(update={"id": document_id})
    else:
        document = await services.orchestrator.load_document(document_id)
        if document is None:
            raise NotFoundError(
                f"Document {document_id} not found",
                context={"document_id": document_id},
            )

    result = await services.orchestrator.validate_document(
        document, body.options, priority=body.priority
    )
    return {
        "success": True,
        "documentId": document_id,
        "validationResults": result.to_dict(),
        "message": f"Validation completed: {result.overall}",
    }


@router.get("/validate/{document_id}")
async def get_validation_results(
    document_id: str, services: Services
) -> dict[str, Any]:
    """Return the latest stored verdict of a document.

    Raises:
        NotFoundError: If the document was never validated.
    """
    results = await services.orchestrator.get_validation_results(document_id)
    if results is None:
        raise NotFoundError(
            f"No validation results for {document_id}",
            context={"document_id": document_id},
        )
    return {
        "success": True,
        "documentId": document_id,
        "validationResults": results,
        "retrievedAt": _now(),
    }


@router.get("/status")
async def validation_status(services: Services) -> dict[str, Any]:
    """Report connectivity, credentials, cache and retry queue state."""
    queue = await services.retry_queue.queue_status()
    return {
        "success": True,
        "status": {
            "connectivity": await services.monitor.status(),
            "authentication": services.client.auth_status(),
            "cache": services.cache.stats(),
            "retryQueue": {
                **queue["summary"],
                "processing": services.retry_queue.is_processing,
            },
        },
        "timestamp": _now(),
    }


@router.post("/retry-queue")
async def process_retry_queue(services: Services) -> dict[str, Any]:
    """Run one retry queue scan now."""
    if services.retry_queue.is_processing:
        return {
            "success": True,
            "message": "Retry queue is already being processed",
            "processed": 0,
            "timestamp": _now(),
        }

    processed = await services.retry_queue.process_retry_queue()
    logger.info("Manual retry queue scan processed {} items", processed)
    return {
        "success": True,
        "message": f"Processed {processed} queued validations",
        "processed": processed,
        "timestamp": _now(),
    }


@router.get("/validations/stats")
async def validation_stats(
    session: DatabaseSession, period: str = DEFAULT_STATS_PERIOD
) -> dict[str, Any]:
    """Aggregate stored validation results over a period.

    Raises:
        ValidationError: If the period is not 7days, 30days or 90days.
    """
    days = STATS_PERIOD_DAYS.get(period)
    if days is None:
        raise ValidationError(
            f"Invalid period {period!r}",
            context={"allowed": sorted(STATS_PERIOD_DAYS)},
        )

    since = datetime.now(UTC) - timedelta(days=days)
    repository = ValidationResultRepository(session)
    return {
        "success": True,
        "period": period,
        "statistics": {
            "overall": await repository.overall_stats(since),
            "byType": await repository.stats_by_type(since),
            "period": {"days": days, "since": since.isoformat()},
        },
        "generatedAt": _now(),
    }


@router.get("/validations/queue")
async def validation_queue(services: Services, status: str = "all") -> dict[str, Any]:
    """List retry queue items, optionally filtered by status.

    Raises:
        ValidationError: If the status filter is unknown.
    """
    if status != "all" and status not in QUEUE_STATUSES:
        raise ValidationError(
            f"Invalid status {status!r}",
            context={"allowed": ["all", *QUEUE_STATUSES]},
        )

    queue_status = await services.retry_queue.queue_status(
        None if status == "all" else status
    )
    return {"success": True, "queueStatus": queue_status, "timestamp": _now()}
