"""Integration tests for the connectivity monitor."""

import pytest

from src.core.exceptions import BusinessRejectionError, ConnectivityError
from src.services.validation import ValidationServices
from tests.fixtures.soap import AfipStub


@pytest.mark.integration
class TestConnectivityMonitor:
    """Test suite for the connectivity log and its summary."""

    async def test_no_observations(self, services: ValidationServices) -> None:
        """Test that an empty log reports online."""
        status = await services.monitor.status()

        assert status == {"services": {}, "overall": "online", "lastChecked": None}

    async def test_track_outcomes(self, services: ValidationServices) -> None:
        """Test the status recorded for each outcome of a tracked call."""
        monitor = services.monitor

        async with monitor.track("cuit_validation"):
            pass
        with pytest.raises(BusinessRejectionError):
            async with monitor.track("cae_validation"):
                raise BusinessRejectionError("rejected")
        with pytest.raises(ConnectivityError):
            async with monitor.track("wsmtxca"):
                raise ConnectivityError("unreachable")

        status = await monitor.status()
        services_status = status["services"]
        assert services_status["cuit_validation"]["status"] == "online"
        assert services_status["cae_validation"]["status"] == "online"
        assert services_status["cae_validation"]["errorMessage"] == "rejected"
        assert services_status["wsmtxca"]["status"] == "offline"
        assert status["overall"] == "degraded"
        assert status["lastChecked"] is not None

    async def test_unexpected_error_is_recorded_offline(
        self, services: ValidationServices
    ) -> None:
        """Test that an error outside the taxonomy still closes the attempt."""
        with pytest.raises(RuntimeError):
            async with services.monitor.track("cae_validation"):
                raise RuntimeError("parser crashed")

        status = await services.monitor.status()
        cae_status = status["services"]["cae_validation"]
        assert cae_status["status"] == "offline"
        assert cae_status["errorMessage"] == "RuntimeError: parser crashed"

    async def test_probe(self, services: ValidationServices, stub: AfipStub) -> None:
        """Test that the probe records the registry's reachability."""
        stub.offline = True
        assert await services.monitor.probe() == "offline"

        stub.offline = False
        assert await services.monitor.probe() == "online"

        status = await services.monitor.status()
        assert status["services"]["arca_probe"]["status"] == "online"
        assert status["overall"] == "online"
