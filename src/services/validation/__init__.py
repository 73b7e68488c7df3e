"""Validation of documents against the AFIP/ARCA registries."""

from src.services.validation.connectivity import ConnectivityMonitor
from src.services.validation.container import ValidationServices
from src.services.validation.events import EventChannel
from src.services.validation.models import (
    AggregateResult,
    CaeValidationResult,
    CuitValidationResult,
    DocumentData,
    ValidationOptions,
)
from src.services.validation.orchestrator import ValidationOrchestrator
from src.services.validation.retry_queue import RetryQueue

__all__ = [
    "AggregateResult",
    "CaeValidationResult",
    "ConnectivityMonitor",
    "CuitValidationResult",
    "DocumentData",
    "EventChannel",
    "RetryQueue",
    "ValidationOptions",
    "ValidationOrchestrator",
    "ValidationServices",
]
