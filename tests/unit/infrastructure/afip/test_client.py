"""Unit tests for src/infrastructure/afip/client.py."""

from datetime import date

import pytest

from src.core.config import CacheConfig
from src.core.exceptions import ConnectivityError, ValidationError
from src.infrastructure.afip import ArcaClient, CredentialManager, SoapGateway
from src.infrastructure.afip.schemas import InvoiceAuthorizationRequest
from src.infrastructure.cache import ValidationCache
from tests.fixtures.clock import FrozenClock
from tests.fixtures.soap import AfipStub, FakeSigner

ENDPOINTS = {
    "wsaa": "https://wsaa.test/LoginCms",
    "wsfe": "https://wsfe.test/service.asmx",
    "wsmtxca": "https://wsmtxca.test/MTXCAService",
    "padron": "https://padron.test/personaServiceA4",
}


@pytest.fixture
def stub() -> AfipStub:
    """Provide a scripted AFIP/ARCA backend."""
    return AfipStub()


@pytest.fixture
def signer() -> FakeSigner:
    """Provide a signer counting its calls."""
    return FakeSigner()


@pytest.fixture
def cache(cache_config: CacheConfig, clock: FrozenClock) -> ValidationCache:
    """Provide a memory-only validation cache."""
    return ValidationCache(cache_config, clock=clock)


@pytest.fixture
def client(stub: AfipStub, signer: FakeSigner, cache: ValidationCache) -> ArcaClient:
    """Provide a client wired to the stub."""
    gateway = SoapGateway(stub.client(), ENDPOINTS, "20111111112")
    return ArcaClient(gateway, CredentialManager(gateway, signer), cache)


@pytest.mark.unit
class TestLookups:
    """Test suite for taxpayer and invoice lookups."""

    async def test_lookup_taxpayer(self, client: ArcaClient, stub: AfipStub) -> None:
        """Test that the registry lookup authenticates once and parses."""
        stub.add_taxpayer("20123456786", business_name="ACME SA")

        record = await client.lookup_taxpayer("20123456786")
        missing = await client.lookup_taxpayer("27000000006")

        assert record is not None
        assert record.display_name == "ACME SA"
        assert missing is None
        assert stub.operations == ["loginCms", "getPersona", "getPersona"]

    async def test_lookup_invoice_not_found(
        self, client: ArcaClient, stub: AfipStub
    ) -> None:
        """Test that an unknown invoice is returned with its errors."""
        record = await client.lookup_invoice(1, 1, 99)

        assert not record.found
        assert record.has_errors

    async def test_offline(self, client: ArcaClient, stub: AfipStub) -> None:
        """Test that an unreachable WSAA surfaces as ConnectivityError."""
        stub.offline = True

        with pytest.raises(ConnectivityError):
            await client.lookup_taxpayer("20123456786")


@pytest.mark.unit
class TestAuthorization:
    """Test suite for CAE requests."""

    @staticmethod
    def invoice(number: int) -> InvoiceAuthorizationRequest:
        """Build a request for one type A invoice."""
        return InvoiceAuthorizationRequest(
            point_of_sale=1,
            invoice_type=1,
            number_from=number,
            number_to=number,
            invoice_date=date(2026, 6, 1),
            doc_type=80,
            doc_number="20123456786",
            total=121,
            net_amount=100,
            vat_amount=21,
        )

    async def test_authorize_invoice(
        self, client: ArcaClient, stub: AfipStub
    ) -> None:
        """Test that WSFEv1 grants a CAE for the requested number."""
        result = await client.authorize_invoice(self.invoice(7))

        assert result.approved
        assert result.number_from == 7
        assert stub.operations == ["loginCms", "FECAESolicitar"]

    async def test_authorize_complex_invoice(
        self, client: ArcaClient, stub: AfipStub
    ) -> None:
        """Test that WSMTXCA uses its own credential."""
        await client.authorize_invoice(self.invoice(7))
        result = await client.authorize_complex_invoice(self.invoice(8))

        assert result.approved
        assert result.cae_expiration == date(2026, 6, 11)
        assert stub.operations == [
            "loginCms",
            "FECAESolicitar",
            "loginCms",
            "autorizarComprobante",
        ]


@pytest.mark.unit
class TestParameters:
    """Test suite for cached reference data."""

    async def test_parameters_are_cached(
        self, client: ArcaClient, stub: AfipStub
    ) -> None:
        """Test that a second request is served from the cache."""
        first = await client.get_parameters("FEParamGetTiposCbte")
        second = await client.get_parameters("FEParamGetTiposCbte")

        assert first == second
        assert [item["Id"] for item in first] == ["1", "6"]
        assert stub.operations.count("FEParamGetTiposCbte") == 1

    async def test_unknown_method(self, client: ArcaClient, stub: AfipStub) -> None:
        """Test that only FEParamGet operations are accepted."""
        with pytest.raises(ValidationError, match="Unsupported parameter method"):
            await client.get_parameters("FECAESolicitar")

        assert stub.operations == []


@pytest.mark.unit
class TestStatus:
    """Test suite for server and credential status."""

    async def test_server_status(self, client: ArcaClient, stub: AfipStub) -> None:
        """Test that FEDummy needs no credential."""
        status = await client.server_status()

        assert status.all_ok
        assert stub.operations == ["FEDummy"]

    async def test_auth_status(self, client: ArcaClient, stub: AfipStub) -> None:
        """Test that each service reports its own credential."""
        stub.add_taxpayer("20123456786")
        await client.lookup_taxpayer("20123456786")

        status = client.auth_status()

        assert set(status) == {"wsfe", "wsmtxca", "ws_sr_padron_a4"}
        assert status["ws_sr_padron_a4"]["valid"] is True
        assert status["wsfe"] == {"valid": False, "reason": "No credential cached"}
