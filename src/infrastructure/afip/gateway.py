"""SOAP transport for the AFIP/ARCA web services.

The gateway builds envelopes, posts them over a shared ``httpx.AsyncClient``
with a per-call timeout, and parses the responses. Failures are split in two:

- transport failures (timeouts, DNS and connection errors, HTTP errors without
  a SOAP fault, unparsable bodies) raise ``ConnectivityError``;
- a SOAP fault raises ``BusinessRejectionError``. Business error lists inside
  a well-formed response are returned in the typed result.

The gateway holds no state between calls and caches nothing.
"""

import time
from collections.abc import Callable
from typing import Any, Final

import httpx
from loguru import logger

from src.core.config import AfipConfig
from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.error_context import sanitize_soap_envelope
from src.core.exceptions import BusinessRejectionError, ConnectivityError
from src.core.observability import trace_operation
from src.infrastructure.afip import envelopes
from src.infrastructure.afip.constants import ENDPOINTS, WSFE_NS
from src.infrastructure.afip.schemas import (
    CaeAuthorizationResult,
    Credential,
    InvoiceAuthorizationRequest,
    InvoiceRecord,
    ParamResult,
    ServiceStatus,
    TaxpayerRecord,
)

SOAP_CONTENT_TYPE: Final[str] = "text/xml; charset=utf-8"
MAX_KEEPALIVE_CONNECTIONS: Final[int] = 10
MAX_CONNECTIONS: Final[int] = 20
LOGGED_BODY_LENGTH: Final[int] = 2000


def resolve_endpoints(config: AfipConfig) -> dict[str, str]:
    """Resolve the URL of every service for the configured environment.

    Args:
        config: AFIP configuration, whose overrides win over the defaults.

    Returns:
        dict[str, str]: URLs keyed by wsaa, wsfe, wsmtxca and padron.
    """
    overrides = {
        "wsaa": config.wsaa_url,
        "wsfe": config.wsfe_url,
        "wsmtxca": config.wsmtxca_url,
        "padron": config.padron_url,
    }
    return {
        service: overrides[service] or urls[config.environment]
        for service, urls in ENDPOINTS.items()
    }


def create_http_client(timeout_seconds: float) -> httpx.AsyncClient:
    """Create the AsyncClient shared by every SOAP call.

    Args:
        timeout_seconds: Default timeout applied to each request.

    Returns:
        httpx.AsyncClient: Client with bounded connection limits.
    """
    return httpx.AsyncClient(
        timeout=timeout_seconds,
        limits=httpx.Limits(
            max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
            max_connections=MAX_CONNECTIONS,
        ),
        headers={"Content-Type": SOAP_CONTENT_TYPE},
    )


class SoapGateway:
    """Executes SOAP operations against the AFIP/ARCA services.

    Args:
        client: Shared HTTP client.
        endpoints: Service URLs, see ``resolve_endpoints``.
        cuit: CUIT represented in authenticated requests.
        timeout_seconds: Timeout of each call.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoints: dict[str, str],
        cuit: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._client = client
        self._endpoints = endpoints
        self._cuit = cuit
        self._timeout = timeout_seconds

    @property
    def cuit(self) -> str:
        """CUIT represented in authenticated requests."""
        return self._cuit

    async def _call[R](
        self,
        service: str,
        operation: str,
        envelope: bytes,
        parser: Callable[[bytes], R],
        soap_action: str = "",
    ) -> R:
        url = self._endpoints[service]
        log = logger.bind(service=service, operation=operation)
        log.debug(
            "Sending SOAP request {}",
            operation,
            envelope=sanitize_soap_envelope(envelope),
        )

        start = time.perf_counter()
        with trace_operation(f"soap.{operation}", service=service):
            try:
                response = await self._client.post(
                    url,
                    content=envelope,
                    headers={
                        "Content-Type": SOAP_CONTENT_TYPE,
                        "SOAPAction": soap_action,
                    },
                    timeout=self._timeout,
                )
            except httpx.TimeoutException as e:
                raise ConnectivityError(
                    f"{operation} timed out after {self._timeout}s",
                    service=service,
                    context={"operation": operation},
                    cause=e,
                ) from e
            except httpx.HTTPError as e:
                raise ConnectivityError(
                    f"{operation} transport failure: {type(e).__name__}: {e}",
                    service=service,
                    context={"operation": operation},
                    cause=e,
                ) from e

            duration_ms = round((time.perf_counter() - start) * MILLISECONDS_PER_SECOND)
            try:
                result = parser(response.content)
            except envelopes.SoapFault as fault:
                log.warning(
                    "SOAP fault from {}: {}",
                    operation,
                    fault.message,
                    fault_code=fault.code,
                    status_code=response.status_code,
                )
                raise BusinessRejectionError(
                    f"{operation} fault: {fault.message}",
                    errors=[{"code": fault.code, "message": fault.message}],
                    context={"operation": operation, "service": service},
                    cause=fault,
                ) from fault
            except envelopes.MalformedResponseError as e:
                log.warning(
                    "Unreadable response from {}",
                    operation,
                    status_code=response.status_code,
                    body=sanitize_soap_envelope(response.content[:LOGGED_BODY_LENGTH]),
                )
                raise ConnectivityError(
                    f"{operation} returned an unreadable response "
                    f"(HTTP {response.status_code}): {e}",
                    service=service,
                    context={
                        "operation": operation,
                        "status_code": response.status_code,
                    },
                    cause=e,
                ) from e

            if response.is_error:
                raise ConnectivityError(
                    f"{operation} failed with HTTP {response.status_code}",
                    service=service,
                    context={
                        "operation": operation,
                        "status_code": response.status_code,
                    },
                )

        log.info(
            "SOAP call {} completed in {}ms",
            operation,
            duration_ms,
            duration_ms=duration_ms,
            status_code=response.status_code,
        )
        return result

    async def login_cms(self, cms_b64: str, service_name: str) -> Credential:
        """Exchange a signed login ticket request for a credential (WSAA)."""
        return await self._call(
            "wsaa",
            "loginCms",
            envelopes.build_login_cms(cms_b64),
            lambda body: envelopes.parse_login_cms_response(body, service_name),
        )

    async def fecae_solicitar(
        self, credential: Credential, request: InvoiceAuthorizationRequest
    ) -> CaeAuthorizationResult:
        """Request a CAE for one invoice (WSFEv1 FECAESolicitar)."""
        return await self._call(
            "wsfe",
            "FECAESolicitar",
            envelopes.build_fecae_solicitar(credential, self._cuit, request),
            envelopes.parse_fecae_solicitar,
            soap_action=f"{WSFE_NS}FECAESolicitar",
        )

    async def fecomp_consultar(
        self,
        credential: Credential,
        invoice_type: int,
        point_of_sale: int,
        invoice_number: int,
    ) -> InvoiceRecord:
        """Look up a registered invoice (WSFEv1 FECompConsultar)."""
        return await self._call(
            "wsfe",
            "FECompConsultar",
            envelopes.build_fecomp_consultar(
                credential, self._cuit, invoice_type, point_of_sale, invoice_number
            ),
            envelopes.parse_fecomp_consultar,
            soap_action=f"{WSFE_NS}FECompConsultar",
        )

    async def param_get(
        self, credential: Credential, method: str, params: dict[str, Any] | None = None
    ) -> ParamResult:
        """Fetch reference data (WSFEv1 FEParamGet* operations)."""
        return await self._call(
            "wsfe",
            method,
            envelopes.build_param_get(credential, self._cuit, method, params),
            lambda body: envelopes.parse_param_get(body, method),
            soap_action=f"{WSFE_NS}{method}",
        )

    async def fedummy(self) -> ServiceStatus:
        """Report WSFEv1 server status without authentication."""
        return await self._call(
            "wsfe",
            "FEDummy",
            envelopes.build_fedummy(),
            envelopes.parse_fedummy,
            soap_action=f"{WSFE_NS}FEDummy",
        )

    async def wsmtxca_autorizar(
        self, credential: Credential, request: InvoiceAuthorizationRequest
    ) -> CaeAuthorizationResult:
        """Request a CAE for an itemized invoice (WSMTXCA autorizarComprobante)."""
        return await self._call(
            "wsmtxca",
            "autorizarComprobante",
            envelopes.build_wsmtxca_autorizar(credential, self._cuit, request),
            envelopes.parse_wsmtxca_autorizar,
        )

    async def get_persona(
        self, credential: Credential, person_cuit: str
    ) -> TaxpayerRecord | None:
        """Look up a taxpayer in the registry (Padron A4 getPersona)."""
        return await self._call(
            "padron",
            "getPersona",
            envelopes.build_get_persona(credential, self._cuit, person_cuit),
            lambda body: envelopes.parse_get_persona(body, person_cuit),
        )
