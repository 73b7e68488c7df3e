"""Validation inputs and results.

Results serialize with camelCase keys (``model_dump(by_alias=True)``), the
shape stored in the cache, persisted in ``validation_results`` and returned
by the API.
"""

from datetime import UTC, date, datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

type SeverityLevel = Literal["info", "warning", "error"]
type OverallStatus = Literal["pending", "valid", "valid_with_warnings", "invalid"]


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CamelModel(BaseModel):
    """Model exchanged with camelCase keys, populated by either name."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict[str, Any]:
        """Dump as a JSON-compatible mapping with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class DocumentData(CamelModel):
    """Structured document handed over by the extraction pipeline."""

    id: str = Field(..., min_length=1, max_length=128)
    document_type: str = "invoice"
    cuit: str | None = None
    cae: str | None = None
    invoice_number: str | None = None
    invoice_type: str | int | None = None
    invoice_date: date | None = Field(default=None, alias="date")
    total_amount: float | None = Field(
        default=None, validation_alias=AliasChoices("totalAmount", "total")
    )
    subtotal: float | None = None
    iva: float | None = None
    file_path: str | None = None
    status: str = "completed"


class ValidationOptions(CamelModel):
    """Per-run switches of a document validation."""

    skip_cache: bool = False
    enqueue_on_connectivity: bool = True


class ValidationResult(CamelModel):
    """Fields shared by every sub-validation result."""

    valid: bool
    error: str | None = None
    error_kind: str | None = None
    message: str | None = None
    severity: SeverityLevel = "info"
    response_time: int = 0
    validated_at: datetime = Field(default_factory=_utc_now)
    from_cache: bool = False
    skipped: bool = False


class CuitValidationResult(ValidationResult):
    """Outcome of a CUIT check against the taxpayer registry."""

    cuit: str | None = None
    taxpayer_name: str | None = None
    taxpayer_type: str | None = None
    fiscal_status: str | None = None
    checksum_valid: bool | None = None


class AuthorizedRange(CamelModel):
    """Invoice numbers covered by a CAE."""

    from_: int = Field(..., alias="from")
    to: int


class CaeValidationResult(ValidationResult):
    """Outcome of a CAE check."""

    cae: str | None = None
    expiration_date: date | None = None
    authorized_range: AuthorizedRange | None = None
    within_range: bool | None = None
    is_expired: bool | None = None
    estimated_validation: bool = False
    authoritative: bool = True


class ExistingInvoice(CamelModel):
    """A previously processed document with the same invoice identity."""

    id: str
    file_path: str | None = None
    processed_at: datetime | None = None


class DuplicateCheckResult(ValidationResult):
    """Outcome of the duplicate invoice check."""

    is_duplicate: bool = False
    duplicate_count: int = 0
    existing_invoices: list[ExistingInvoice] = Field(default_factory=list)


class TaxIssue(CamelModel):
    """Inconsistency found between the amounts of a document."""

    type: str
    message: str
    severity: SeverityLevel = "warning"
    details: dict[str, Any] = Field(default_factory=dict)


class TaxConsistencyResult(ValidationResult):
    """Outcome of the tax consistency checks."""

    issues: list[TaxIssue] = Field(default_factory=list)
    total_issues: int = 0


class ValidationErrorEntry(CamelModel):
    """Sub-validation that raised instead of returning a result."""

    type: str
    message: str
    severity: SeverityLevel = "error"
    error_kind: str | None = None


class AggregateResult(CamelModel):
    """Verdict of one validation run over a document."""

    document_id: str
    validation_id: str
    cuit_validation: CuitValidationResult | None = None
    cae_validation: CaeValidationResult | None = None
    duplicate_check: DuplicateCheckResult | None = None
    tax_consistency: TaxConsistencyResult | None = None
    overall: OverallStatus = "pending"
    errors: list[ValidationErrorEntry] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None
    processing_time_ms: int | None = None

    def sub_results(self) -> dict[str, ValidationResult | None]:
        """Sub-validation results keyed by their persisted validation type."""
        return {
            "cuit": self.cuit_validation,
            "cae": self.cae_validation,
            "duplicate": self.duplicate_check,
            "tax_consistency": self.tax_consistency,
        }
