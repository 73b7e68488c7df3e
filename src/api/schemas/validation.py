"""Request bodies of the validation endpoints."""

from datetime import date

from pydantic import Field

from src.services.validation.models import CamelModel, DocumentData, ValidationOptions


class DocumentPayload(DocumentData):
    """Document supplied inline; its id is taken from the URL."""

    id: str | None = None  # type: ignore[assignment]


class ValidateDocumentRequest(CamelModel):
    """Body of ``POST /validate/{document_id}``."""

    priority: int = Field(default=1, ge=1, le=10)
    options: ValidationOptions = Field(default_factory=ValidationOptions)
    document: DocumentPayload | None = Field(
        default=None,
        description="Document to validate; loaded from the database if omitted",
    )


class CuitValidationRequest(CamelModel):
    """Body of ``POST /validate/cuit``."""

    cuit: str | None = Field(default=None, examples=["20-12345678-6"])
    skip_cache: bool = False


class InvoiceData(CamelModel):
    """Invoice identity used to look a CAE up."""

    cuit: str | None = None
    invoice_number: str | None = Field(default=None, examples=["0001-00000123"])
    invoice_type: str | int | None = Field(default=None, examples=[1, "B"])
    invoice_date: date | None = Field(default=None, alias="date")


class CaeValidationRequest(CamelModel):
    """Body of ``POST /validate/cae``."""

    cae: str | None = Field(default=None, examples=["74123456789012"])
    invoice_data: InvoiceData | None = None
    skip_cache: bool = False

    def as_document(self) -> DocumentData:
        """Build the orchestrator input for a standalone CAE check."""
        invoice = self.invoice_data or InvoiceData()
        return DocumentData(
            id="cae-check",
            cae=self.cae,
            cuit=invoice.cuit,
            invoice_number=invoice.invoice_number,
            invoice_type=invoice.invoice_type,
            invoice_date=invoice.invoice_date,
        )
