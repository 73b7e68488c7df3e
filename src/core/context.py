"""Context management utilities for correlation IDs and validation tracking."""

import time
import uuid
from contextvars import ContextVar

# Context variables for storing identifiers across async boundaries
_correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_validation_id_var: ContextVar[str | None] = ContextVar("validation_id", default=None)


class RequestContext:
    """Manages request context using contextvars for async-safe storage.

    Correlation IDs identify an inbound request; validation IDs identify one
    validation run, which may happen outside any request (retry queue).
    """

    @staticmethod
    def set_correlation_id(correlation_id: str) -> None:
        """Set the correlation ID for the current context.

        Args:
            correlation_id: The correlation ID to store in the context.
        """
        _correlation_id_var.set(correlation_id)

    @staticmethod
    def get_correlation_id() -> str | None:
        """Get the correlation ID from the current context.

        Returns:
            str | None: The correlation ID if set, None otherwise.
        """
        return _correlation_id_var.get()

    @staticmethod
    def set_validation_id(validation_id: str) -> None:
        """Set the validation run ID for the current context."""
        _validation_id_var.set(validation_id)

    @staticmethod
    def get_validation_id() -> str | None:
        """Get the validation run ID from the current context."""
        return _validation_id_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _correlation_id_var.set(None)
        _validation_id_var.set(None)


def generate_correlation_id() -> str:
    """Generate a unique correlation ID for request tracking.

    Returns:
        str: A string representation of a UUID4.

    Examples:
        >>> correlation_id = generate_correlation_id()
        >>> len(correlation_id)
        36
    """
    return str(uuid.uuid4())


def generate_request_id() -> str:
    """Generate a unique request ID for individual request tracking.

    Returns:
        str: A prefixed UUID4 string in format 'req-<uuid4>'.
    """
    return f"req-{uuid.uuid4()}"


def generate_validation_id(document_id: str, now_ms: int | None = None) -> str:
    """Generate the identifier of a validation run.

    Args:
        document_id: Document being validated.
        now_ms: Epoch milliseconds, defaults to the current time.

    Returns:
        str: An identifier in format 'val_<document_id>_<epoch_ms>'.

    Examples:
        >>> generate_validation_id("doc-1", 1700000000000)
        'val_doc-1_1700000000000'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"val_{document_id}_{now_ms}"
