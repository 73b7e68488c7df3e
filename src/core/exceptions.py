"""Structured exception hierarchy for consistent error handling.

This module defines the exception system of the validation service. Every
exception carries an ``ErrorKind`` so that callers branch on the failure
category (format, connectivity, business rejection, ...) instead of inspecting
message text.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **ErrorKind enum**: Failure category driving retry and aggregation decisions
- **Severity enum**: Error classification for monitoring and alerting
- **ArcaError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: One class per failure category

Features:
- **Error fingerprinting**: Automatic grouping of similar errors
- **Stack trace capture**: Full context at error creation time
- **Exception chaining**: Preserves original cause for debugging
- **Rich context**: Structured data for comprehensive error analysis
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for the validation service.

    These error codes provide consistent identification of error types
    across the application, enabling proper error handling and monitoring.
    """

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred in the system."""

    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    """A required service has not been initialized."""

    # Validation errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Input validation failed due to invalid or malformed data."""

    FORMAT_ERROR = "FORMAT_ERROR"
    """A tax identifier or authorization code is malformed."""

    # Resource errors
    NOT_FOUND = "NOT_FOUND"
    """The requested resource could not be found."""

    # Remote service errors
    CONNECTIVITY_ERROR = "CONNECTIVITY_ERROR"
    """The tax authority could not be reached or answered unintelligibly."""

    BUSINESS_REJECTION = "BUSINESS_REJECTION"
    """The tax authority answered and rejected the request."""

    # Storage errors
    CACHE_ERROR = "CACHE_ERROR"
    """A cache tier failed to read or write an entry."""

    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"
    """Validation results could not be stored."""


class ErrorKind(Enum):
    """Failure category of an error.

    Retry decisions and result aggregation depend only on this value.
    """

    FORMAT = "format"
    NOT_FOUND = "not_found"
    CONNECTIVITY = "connectivity"
    BUSINESS = "business"
    CACHE = "cache"
    PERSISTENCE = "persistence"
    INTERNAL = "internal"


class Severity(Enum):
    """Severity levels for errors in the validation service.

    These severity levels help categorize the impact and urgency of errors,
    enabling appropriate handling, monitoring, and alerting strategies.
    """

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some features but not critical ops."""

    HIGH = "HIGH"
    """High severity errors impacting critical functionality or data integrity."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class ArcaError(Exception):
    """Base exception class for all service exceptions.

    All custom exceptions in the application should inherit from this class
    to ensure consistent error handling and formatting.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Creates a hash based on the error type and the location where it was raised,
        allowing similar errors to be grouped together in monitoring systems.

        Returns:
            str: A hash string for error grouping
        """
        max_frames = 5
        relevant_frames = self.stack_trace[-max_frames:]

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"
        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    @property
    def is_expected(self) -> bool:
        """Determine if this is an expected error based on severity.

        Returns:
            bool: True if the error is expected (LOW or MEDIUM severity)
        """
        return self.severity in (Severity.LOW, Severity.MEDIUM)

    @property
    def should_alert(self) -> bool:
        """Determine if this error should trigger alerts.

        Returns:
            bool: True if the error should trigger alerts (HIGH or CRITICAL severity)
        """
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def __str__(self) -> str:
        """Return a string representation of the exception.

        Returns:
            str: A formatted string containing the error code and message
        """
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception.

        Returns:
            str: A string showing the class name, error code, message, severity,
                and context
        """
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ValidationError(ArcaError):
    """Exception raised when request input validation fails.

    Args:
        message: Description of the validation failure
        error_code: Error code (defaults to VALIDATION_ERROR)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    kind = ErrorKind.FORMAT

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.VALIDATION_ERROR,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class FormatError(ValidationError):
    """Exception raised when a CUIT or CAE is malformed.

    Args:
        message: Description of the format violation
        context: Additional context information about the error
    """

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, ErrorCode.FORMAT_ERROR, context, cause)


class NotFoundError(ArcaError):
    """Exception raised when a requested resource cannot be found.

    Args:
        message: Description of what resource was not found
        error_code: Error code (defaults to NOT_FOUND)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    kind = ErrorKind.NOT_FOUND

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode = ErrorCode.NOT_FOUND,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.LOW, context, cause)


class ConnectivityError(ArcaError):
    """Exception raised when a remote service is unreachable.

    Covers timeouts, DNS and connection failures, HTTP failures without a
    SOAP fault, and responses that cannot be parsed. These failures are
    retried by the retry queue.

    Args:
        message: Description of the transport failure
        service: Remote service that failed
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    kind = ErrorKind.CONNECTIVITY

    def __init__(
        self,
        message: str,
        service: str | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        context = dict(context or {})
        if service:
            context.setdefault("service", service)
        self.service = service
        super().__init__(
            ErrorCode.CONNECTIVITY_ERROR, message, Severity.MEDIUM, context, cause
        )


class BusinessRejectionError(ArcaError):
    """Exception raised when the tax authority rejects a request.

    Args:
        message: Description of the rejection
        errors: Error entries returned by the remote service, as
            ``{"code": ..., "message": ...}`` mappings
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    kind = ErrorKind.BUSINESS

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.errors = errors or []
        context = dict(context or {})
        if self.errors:
            context.setdefault("remote_errors", self.errors)
        super().__init__(
            ErrorCode.BUSINESS_REJECTION, message, Severity.LOW, context, cause
        )


class CacheError(ArcaError):
    """Exception raised when a cache tier fails."""

    kind = ErrorKind.CACHE

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CACHE_ERROR, message, Severity.MEDIUM, context, cause
        )


class PersistenceError(ArcaError):
    """Exception raised when validation state cannot be stored."""

    kind = ErrorKind.PERSISTENCE

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.PERSISTENCE_ERROR, message, Severity.HIGH, context, cause
        )


def error_kind_of(exc: BaseException) -> ErrorKind:
    """Classify any exception into an ErrorKind.

    Args:
        exc: The exception to classify.

    Returns:
        ErrorKind: The exception's kind, INTERNAL for foreign exceptions.
    """
    if isinstance(exc, ArcaError):
        return exc.kind
    return ErrorKind.INTERNAL
