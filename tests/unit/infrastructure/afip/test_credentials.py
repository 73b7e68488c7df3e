"""Unit tests for src/infrastructure/afip/credentials.py."""

import asyncio
from datetime import timedelta
from typing import cast

import pytest
import pytest_check

from src.core.exceptions import ConnectivityError
from src.infrastructure.afip.credentials import CredentialManager
from src.infrastructure.afip.gateway import SoapGateway
from src.infrastructure.afip.schemas import Credential
from src.infrastructure.afip.signing import TicketSigner, UnconfiguredSigner
from tests.fixtures.soap import FakeSigner
from tests.fixtures.clock import FrozenClock


class FakeGateway:
    """Gateway answering loginCms with credentials valid for twelve hours."""

    def __init__(self, clock: FrozenClock) -> None:
        self.clock = clock
        self.logins: list[str] = []

    async def login_cms(self, cms_b64: str, service_name: str) -> Credential:
        self.logins.append(service_name)
        # Let concurrent callers reach the lock
        await asyncio.sleep(0)
        now = self.clock()
        return Credential(
            service_name=service_name,
            token=f"token-{len(self.logins)}",
            sign="sign",
            generation_time=now,
            expiration_time=now + timedelta(hours=12),
        )


def make_manager(
    gateway: FakeGateway,
    clock: FrozenClock,
    signer: TicketSigner | None = None,
    buffer_hours: float = 1.0,
) -> CredentialManager:
    return CredentialManager(
        cast(SoapGateway, gateway), signer or FakeSigner(), buffer_hours, clock
    )


@pytest.fixture
def gateway(clock: FrozenClock) -> FakeGateway:
    """Provide a gateway issuing twelve hour credentials."""
    return FakeGateway(clock)


@pytest.mark.unit
class TestAuthenticate:
    """Test suite for credential issuing and reuse."""

    async def test_reuses_credential(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that a usable credential is not requested again."""
        signer = FakeSigner()
        manager = make_manager(gateway, clock, signer)

        first = await manager.authenticate("wsfe")
        second = await manager.authenticate("wsfe")

        assert first is second
        assert signer.calls == 1

    async def test_concurrent_callers_share_one_login(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that concurrent refreshes of one service are single-flight."""
        signer = FakeSigner()
        manager = make_manager(gateway, clock, signer)

        results = await asyncio.gather(
            *(manager.authenticate("wsfe") for _ in range(5))
        )

        assert signer.calls == 1
        assert gateway.logins == ["wsfe"]
        assert {credential.token for credential in results} == {"token-1"}

    async def test_services_have_separate_credentials(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that each service gets its own credential."""
        manager = make_manager(gateway, clock)

        await asyncio.gather(
            manager.authenticate("wsfe"), manager.authenticate("ws_sr_padron_a4")
        )

        assert sorted(gateway.logins) == ["ws_sr_padron_a4", "wsfe"]

    async def test_refreshes_inside_the_buffer(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that a credential within the buffer of expiry is replaced."""
        manager = make_manager(gateway, clock, buffer_hours=1)
        await manager.authenticate("wsfe")

        clock.advance(hours=10, minutes=59)
        await manager.authenticate("wsfe")
        assert len(gateway.logins) == 1

        clock.advance(minutes=1)
        refreshed = await manager.authenticate("wsfe")
        assert len(gateway.logins) == 2
        assert refreshed.token == "token-2"

    async def test_invalidate_forces_login(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that an invalidated credential is requested again."""
        manager = make_manager(gateway, clock)
        await manager.authenticate("wsfe")

        manager.invalidate("wsfe")
        manager.invalidate("wsmtxca")
        await manager.authenticate("wsfe")

        assert len(gateway.logins) == 2

    async def test_unconfigured_signer_is_connectivity(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test that a missing certificate degrades like an unreachable WSAA."""
        manager = make_manager(gateway, clock, UnconfiguredSigner())

        with pytest.raises(ConnectivityError) as exc_info:
            await manager.authenticate("wsfe")

        assert exc_info.value.service == "wsaa"
        assert gateway.logins == []


@pytest.mark.unit
class TestStatus:
    """Test suite for credential status reports."""

    async def test_status_lifecycle(
        self, gateway: FakeGateway, clock: FrozenClock
    ) -> None:
        """Test the report before, during and after validity."""
        manager = make_manager(gateway, clock)
        assert manager.status("wsfe") == {
            "valid": False,
            "reason": "No credential cached",
        }

        await manager.authenticate("wsfe")
        clock.advance(hours=6)
        status = manager.status("wsfe")
        with pytest_check.check:
            assert status["valid"] is True
        with pytest_check.check:
            assert status["secondsLeft"] == 6 * 3600
        with pytest_check.check:
            assert status["hoursLeft"] == 6.0

        clock.advance(hours=5)
        assert manager.status("wsfe") == {
            "valid": False,
            "reason": "Credential expired",
        }
