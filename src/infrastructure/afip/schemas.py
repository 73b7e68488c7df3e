"""Typed requests and results exchanged with the AFIP/ARCA web services.

Parsed responses keep business errors (the service answered and refused) in
their ``errors`` list. Transport problems never reach these types; the gateway
raises ``ConnectivityError`` for them instead.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from src.core.exceptions import BusinessRejectionError
from src.infrastructure.afip.constants import CONCEPT_PRODUCTS, CURRENCY_PESOS


@dataclass(frozen=True, slots=True)
class Credential:
    """WSAA session for one service (token and sign)."""

    service_name: str
    token: str
    sign: str
    generation_time: datetime
    expiration_time: datetime

    def is_usable(self, now: datetime, buffer: timedelta) -> bool:
        """Whether the credential can still be sent at ``now``.

        Args:
            now: Current time.
            buffer: Safety margin before the real expiration.

        Returns:
            bool: True while ``now < expiration_time - buffer``.
        """
        return now < self.expiration_time - buffer


@dataclass(frozen=True, slots=True)
class RemoteError:
    """Error or observation entry returned by a remote service."""

    code: int | str
    message: str

    def as_dict(self) -> dict[str, Any]:
        """Return the entry as a plain mapping."""
        return {"code": self.code, "message": self.message}


@dataclass(slots=True)
class _ErrorCarrier:
    errors: list[RemoteError] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Whether the service returned business errors."""
        return bool(self.errors)

    def raise_for_errors(self, operation: str) -> None:
        """Raise BusinessRejectionError when the service returned errors.

        Args:
            operation: Remote operation name, used in the message.

        Raises:
            BusinessRejectionError: If ``errors`` is not empty.
        """
        if self.errors:
            first = self.errors[0]
            raise BusinessRejectionError(
                f"{operation} rejected: [{first.code}] {first.message}",
                errors=[error.as_dict() for error in self.errors],
                context={"operation": operation},
            )


@dataclass(frozen=True, slots=True)
class VatRate:
    """VAT line (AlicIva / subtotalIVA)."""

    rate_id: int
    base_amount: float
    amount: float


@dataclass(frozen=True, slots=True)
class OtherTax:
    """Non-VAT tax line (Tributo)."""

    tax_id: int
    description: str
    base_amount: float
    rate: float
    amount: float


@dataclass(slots=True)
class InvoiceAuthorizationRequest:
    """Invoice submitted for a CAE, shared by WSFEv1 and WSMTXCA."""

    point_of_sale: int
    invoice_type: int
    number_from: int
    number_to: int
    invoice_date: date
    doc_type: int
    doc_number: str
    total: float
    net_amount: float
    vat_amount: float = 0.0
    not_taxed_amount: float = 0.0
    exempt_amount: float = 0.0
    other_taxes_amount: float = 0.0
    concept: int = CONCEPT_PRODUCTS
    currency: str = CURRENCY_PESOS
    exchange_rate: float = 1.0
    service_from: date | None = None
    service_to: date | None = None
    payment_due: date | None = None
    vat_rates: list[VatRate] = field(default_factory=list)
    other_taxes: list[OtherTax] = field(default_factory=list)


@dataclass(slots=True)
class CaeAuthorizationResult(_ErrorCarrier):
    """Outcome of FECAESolicitar or autorizarComprobante."""

    result: str | None = None
    cae: str | None = None
    cae_expiration: date | None = None
    number_from: int | None = None
    number_to: int | None = None
    process_date: str | None = None
    observations: list[RemoteError] = field(default_factory=list)

    @property
    def approved(self) -> bool:
        """Whether the invoice received a CAE."""
        return self.result == "A" and bool(self.cae)


@dataclass(slots=True)
class InvoiceRecord(_ErrorCarrier):
    """Invoice as registered by WSFEv1 (FECompConsultar)."""

    found: bool = False
    concept: int | None = None
    doc_type: int | None = None
    doc_number: str | None = None
    number_from: int | None = None
    number_to: int | None = None
    invoice_date: date | None = None
    total: float | None = None
    cae: str | None = None
    cae_expiration: date | None = None
    emission_type: str | None = None


@dataclass(slots=True)
class ParamResult(_ErrorCarrier):
    """Reference data returned by a FEParamGet* operation."""

    method: str = ""
    items: list[dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class TaxpayerRecord:
    """Taxpayer as registered in Padron A4."""

    cuit: str
    person_type: str | None = None
    last_name: str | None = None
    first_name: str | None = None
    business_name: str | None = None
    key_status: str | None = None

    @property
    def display_name(self) -> str | None:
        """Business name, or the person's full name."""
        if self.business_name:
            return self.business_name
        parts = [part for part in (self.last_name, self.first_name) if part]
        return " ".join(parts) or None

    @property
    def is_active(self) -> bool:
        """Whether the tax key is active."""
        return (self.key_status or "").upper() == "ACTIVO"


@dataclass(frozen=True, slots=True)
class ServiceStatus:
    """Server status reported by FEDummy."""

    app_server: str | None
    db_server: str | None
    auth_server: str | None

    @property
    def all_ok(self) -> bool:
        """Whether every server reported OK."""
        return all(
            (status or "").upper() == "OK"
            for status in (self.app_server, self.db_server, self.auth_server)
        )
