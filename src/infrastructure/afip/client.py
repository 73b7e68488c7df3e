"""High level AFIP/ARCA operations.

``ArcaClient`` pairs each remote call with the WSAA credential of the service
it targets, so callers deal in taxpayers and invoices instead of tokens.
"""

from typing import Any

from loguru import logger

from src.core.exceptions import ValidationError
from src.infrastructure.afip.constants import (
    PADRON_SERVICE,
    PARAM_METHODS,
    WSFE_SERVICE,
    WSMTXCA_SERVICE,
)
from src.infrastructure.afip.credentials import CredentialManager
from src.infrastructure.afip.gateway import SoapGateway
from src.infrastructure.afip.schemas import (
    CaeAuthorizationResult,
    InvoiceAuthorizationRequest,
    InvoiceRecord,
    ServiceStatus,
    TaxpayerRecord,
)
from src.infrastructure.cache import ValidationCache


class ArcaClient:
    """Authenticated access to WSFEv1, WSMTXCA and Padron A4.

    Args:
        gateway: SOAP transport.
        credentials: Issues WSAA credentials per service.
        cache: Cache of reference data, optional.
    """

    def __init__(
        self,
        gateway: SoapGateway,
        credentials: CredentialManager,
        cache: ValidationCache | None = None,
    ) -> None:
        self._gateway = gateway
        self._credentials = credentials
        self._cache = cache

    async def lookup_taxpayer(self, cuit: str) -> TaxpayerRecord | None:
        """Look up a taxpayer in Padron A4.

        Returns:
            TaxpayerRecord | None: The taxpayer, or None if not registered.

        Raises:
            ConnectivityError: If WSAA or the registry cannot be reached.
            BusinessRejectionError: If the registry refuses the lookup.
        """
        credential = await self._credentials.authenticate(PADRON_SERVICE)
        return await self._gateway.get_persona(credential, cuit)

    async def lookup_invoice(
        self, invoice_type: int, point_of_sale: int, invoice_number: int
    ) -> InvoiceRecord:
        """Look up an invoice registered in WSFEv1.

        The record keeps the service's business errors; a missing invoice
        comes back with ``found`` False rather than raising.
        """
        credential = await self._credentials.authenticate(WSFE_SERVICE)
        return await self._gateway.fecomp_consultar(
            credential, invoice_type, point_of_sale, invoice_number
        )

    async def authorize_invoice(
        self, request: InvoiceAuthorizationRequest
    ) -> CaeAuthorizationResult:
        """Request a CAE for an invoice through WSFEv1."""
        credential = await self._credentials.authenticate(WSFE_SERVICE)
        result = await self._gateway.fecae_solicitar(credential, request)
        logger.info(
            "FECAESolicitar result {} for {:04d}-{:08d}",
            result.result,
            request.point_of_sale,
            request.number_from,
            cae=result.cae,
        )
        return result

    async def authorize_complex_invoice(
        self, request: InvoiceAuthorizationRequest
    ) -> CaeAuthorizationResult:
        """Request a CAE for an itemized invoice through WSMTXCA."""
        credential = await self._credentials.authenticate(WSMTXCA_SERVICE)
        return await self._gateway.wsmtxca_autorizar(credential, request)

    async def get_parameters(
        self, method: str, params: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        """Fetch WSFEv1 reference data, cached with the params TTL.

        Args:
            method: One of the FEParamGet* operations.
            params: Extra request elements, e.g. ``{"MonId": "DOL"}``.

        Returns:
            list[dict[str, Any]]: Items returned by the service.

        Raises:
            ValidationError: If ``method`` is not a FEParamGet* operation.
            BusinessRejectionError: If the service returned errors.
        """
        if method not in PARAM_METHODS:
            raise ValidationError(
                f"Unsupported parameter method: {method}",
                context={"method": method},
            )

        async def fetch() -> dict[str, Any]:
            credential = await self._credentials.authenticate(WSFE_SERVICE)
            result = await self._gateway.param_get(credential, method, params)
            result.raise_for_errors(method)
            return {"items": result.items}

        if self._cache is None:
            return (await fetch())["items"]

        suffix = "_".join(f"{k}={v}" for k, v in sorted((params or {}).items()))
        key = f"fe_param_{method}_{suffix}" if suffix else f"fe_param_{method}"
        cached = await self._cache.get_or_set(key, "params", fetch)
        return cached["items"]

    async def server_status(self) -> ServiceStatus:
        """Report WSFEv1 server status (FEDummy, unauthenticated)."""
        return await self._gateway.fedummy()

    def auth_status(self) -> dict[str, dict[str, Any]]:
        """Describe the credential held for each service."""
        return {
            service: self._credentials.status(service)
            for service in (WSFE_SERVICE, WSMTXCA_SERVICE, PADRON_SERVICE)
        }
