"""Unit tests for src/infrastructure/afip/gateway.py."""

from collections.abc import Callable

import httpx
import pytest

from src.core.config import AfipConfig
from src.core.exceptions import BusinessRejectionError, ConnectivityError
from src.infrastructure.afip.gateway import SoapGateway, resolve_endpoints
from tests.fixtures.soap import (
    fault_response,
    fecomp_response,
    login_cms_response,
    make_credential,
    persona_response,
)

ENDPOINTS = {
    "wsaa": "https://wsaa.test/LoginCms",
    "wsfe": "https://wsfe.test/service.asmx",
    "wsmtxca": "https://wsmtxca.test/MTXCAService",
    "padron": "https://padron.test/personaServiceA4",
}


def make_gateway(
    handler: Callable[[httpx.Request], httpx.Response],
) -> SoapGateway:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SoapGateway(client, ENDPOINTS, "20111111112", timeout_seconds=5)


@pytest.mark.unit
class TestResolveEndpoints:
    """Test suite for endpoint resolution."""

    def test_homologation_defaults(self) -> None:
        """Test that homologation uses the homo hosts."""
        endpoints = resolve_endpoints(AfipConfig())

        assert "wsaahomo" in endpoints["wsaa"]
        assert "wswhomo" in endpoints["wsfe"]
        assert "fwshomo" in endpoints["wsmtxca"]
        assert "awshomo" in endpoints["padron"]

    def test_production_with_override(self) -> None:
        """Test that an override wins over the environment default."""
        endpoints = resolve_endpoints(
            AfipConfig(environment="production", wsfe_url="https://proxy/wsfe")
        )

        assert endpoints["wsfe"] == "https://proxy/wsfe"
        assert endpoints["wsaa"] == "https://wsaa.afip.gov.ar/ws/services/LoginCms"


@pytest.mark.unit
class TestSuccessfulCalls:
    """Test suite for calls answered by the service."""

    async def test_get_persona(self) -> None:
        """Test that getPersona is posted to Padron and parsed."""
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, content=persona_response("20123456786"))

        gateway = make_gateway(handler)

        record = await gateway.get_persona(make_credential(), "20123456786")

        assert record is not None
        assert record.cuit == "20123456786"
        assert str(requests[0].url) == ENDPOINTS["padron"]
        assert requests[0].headers["Content-Type"].startswith("text/xml")

    async def test_fecomp_consultar_sets_soap_action(self) -> None:
        """Test that WSFEv1 calls carry their SOAPAction."""
        actions: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            actions.append(request.headers["SOAPAction"])
            return httpx.Response(200, content=fecomp_response("12345678901234"))

        gateway = make_gateway(handler)

        record = await gateway.fecomp_consultar(make_credential(), 1, 1, 1)

        assert record.found
        assert actions == ["http://ar.gov.afip.dif.FEV1/FECompConsultar"]

    async def test_login_cms(self) -> None:
        """Test that loginCms returns a credential for the service."""
        gateway = make_gateway(
            lambda request: httpx.Response(200, content=login_cms_response("tok"))
        )

        credential = await gateway.login_cms("Q01T", "ws_sr_padron_a4")

        assert credential.service_name == "ws_sr_padron_a4"
        assert credential.token == "tok"


@pytest.mark.unit
class TestFailures:
    """Test suite for the connectivity and business failure split."""

    async def test_soap_fault_is_business_rejection(self) -> None:
        """Test that a fault, even with HTTP 500, is a business rejection."""
        gateway = make_gateway(
            lambda request: httpx.Response(
                500, content=fault_response("CUIT no autorizado", "ns1:auth")
            )
        )

        with pytest.raises(BusinessRejectionError) as exc_info:
            await gateway.get_persona(make_credential(), "20123456786")

        assert exc_info.value.errors == [
            {"code": "ns1:auth", "message": "CUIT no autorizado"}
        ]

    async def test_timeout_is_connectivity(self) -> None:
        """Test that a timeout raises ConnectivityError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(ConnectivityError, match="timed out") as exc_info:
            await gateway.fedummy()

        assert exc_info.value.service == "wsfe"

    async def test_connection_refused_is_connectivity(self) -> None:
        """Test that a connection error raises ConnectivityError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        gateway = make_gateway(handler)

        with pytest.raises(ConnectivityError, match="ConnectError"):
            await gateway.get_persona(make_credential(), "20123456786")

    async def test_html_error_page_is_connectivity(self) -> None:
        """Test that an unreadable gateway error page is connectivity."""
        gateway = make_gateway(
            lambda request: httpx.Response(502, content=b"<html>Bad Gateway")
        )

        with pytest.raises(ConnectivityError, match="HTTP 502"):
            await gateway.fedummy()

    async def test_http_error_with_other_body_is_connectivity(self) -> None:
        """Test that a parsable response with an error status is connectivity."""
        gateway = make_gateway(
            lambda request: httpx.Response(
                503, content=fecomp_response("12345678901234")
            )
        )

        with pytest.raises(ConnectivityError, match="HTTP 503"):
            await gateway.fecomp_consultar(make_credential(), 1, 1, 1)

    @pytest.mark.parametrize(
        "content",
        [
            fecomp_response("12345678901234", expiration="20991399"),
            fecomp_response("12345678901234").replace(b"121.00", b"121,00"),
            fecomp_response("12345678901234").replace(
                b"<CbteDesde>1<", b"<CbteDesde>uno<"
            ),
        ],
        ids=["date", "amount", "number"],
    )
    async def test_invalid_field_value_is_connectivity(self, content: bytes) -> None:
        """Test that a well-formed response with an unreadable value is not raw."""
        gateway = make_gateway(lambda request: httpx.Response(200, content=content))

        with pytest.raises(ConnectivityError, match="unreadable response") as exc_info:
            await gateway.fecomp_consultar(make_credential(), 1, 1, 1)

        assert exc_info.value.service == "wsfe"
