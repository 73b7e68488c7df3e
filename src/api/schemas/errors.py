"""Error response schema shared by every endpoint.

Errors always carry ``success: false`` next to a machine-readable code, so
clients branch on the same envelope that successful responses use.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


class ServiceInfo(BaseModel):
    """Service that produced the error."""

    name: str = Field(..., examples=["ARCA Validation Service"])
    version: str = Field(..., examples=["0.1.0"])
    environment: str = Field(..., examples=["development", "production"])


class ErrorResponse(BaseModel):
    """Error payload returned by the API."""

    success: bool = Field(default=False, description="Always false for errors")

    error_code: str = Field(
        ...,
        description="Unique error code identifying the error type",
        examples=["VALIDATION_ERROR", "NOT_FOUND", "CONNECTIVITY_ERROR"],
    )

    error_kind: str | None = Field(
        default=None,
        description="Failure category (format, connectivity, business, ...)",
        examples=["format", "connectivity"],
    )

    message: str = Field(
        ...,
        description="Human-readable error message",
        examples=["CUIT is required", "No validation results for doc-1"],
    )

    details: dict[str, Any] | None = Field(
        default=None,
        description="Additional error details (e.g., field-specific errors)",
        examples=[{"validation_errors": {"cuit": ["Field required"]}}],
    )

    correlation_id: str | None = Field(
        default=None,
        description="Request correlation ID for tracing and debugging",
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Timestamp when the error occurred (with timezone)",
    )

    severity: str | None = Field(
        default=None,
        description="Error severity level (LOW, MEDIUM, HIGH, CRITICAL)",
    )

    service_info: ServiceInfo | None = None

    request_id: str | None = Field(
        default=None,
        description=(
            "Unique request identifier (different from correlation_id "
            "which can span multiple services)"
        ),
    )

    debug_info: dict[str, Any] | None = Field(
        default=None,
        description="Debug information (only populated in development environments)",
    )

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "success": False,
                    "error_code": "NOT_FOUND",
                    "error_kind": "not_found",
                    "message": "No validation results for doc-1",
                    "correlation_id": "550e8400-e29b-41d4-a716-446655440001",
                    "request_id": "req-660e8400-e29b-41d4-a716-446655440001",
                    "timestamp": "2026-06-14T12:00:01+00:00",
                    "severity": "LOW",
                },
                {
                    "success": False,
                    "error_code": "CONNECTIVITY_ERROR",
                    "error_kind": "connectivity",
                    "message": "getPersona timed out after 30.0s",
                    "details": {"service": "padron", "operation": "getPersona"},
                    "timestamp": "2026-06-14T12:00:02+00:00",
                    "severity": "MEDIUM",
                },
            ]
        }
    }
