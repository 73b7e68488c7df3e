"""WSAA credential lifecycle.

A credential (token and sign) is obtained per service by signing a login
ticket request and submitting it to WSAA. Credentials are reused until they
are within the configured buffer of their expiration. Refreshes are
single-flight per service: concurrent callers that find no usable credential
wait for one authentication instead of each starting their own.
"""

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

from loguru import logger

from src.core.constants import SECONDS_PER_HOUR
from src.infrastructure.afip.envelopes import build_login_ticket_request
from src.infrastructure.afip.gateway import SoapGateway
from src.infrastructure.afip.schemas import Credential
from src.infrastructure.afip.signing import TicketSigner


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CredentialManager:
    """Issues WSAA credentials, one live credential per service.

    Args:
        gateway: Gateway used for the loginCms call.
        signer: Signs login ticket requests.
        buffer_hours: Credentials are treated as expired this long before
            their real expiration.
        clock: Returns the current aware time.
    """

    def __init__(
        self,
        gateway: SoapGateway,
        signer: TicketSigner,
        buffer_hours: float = 1.0,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._gateway = gateway
        self._signer = signer
        self._buffer = timedelta(hours=buffer_hours)
        self._clock = clock
        self._credentials: dict[str, Credential] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, service_name: str) -> asyncio.Lock:
        return self._locks.setdefault(service_name, asyncio.Lock())

    def _usable(self, service_name: str) -> Credential | None:
        credential = self._credentials.get(service_name)
        if credential and credential.is_usable(self._clock(), self._buffer):
            return credential
        return None

    async def authenticate(self, service_name: str) -> Credential:
        """Return a usable credential for a service, authenticating if needed.

        Args:
            service_name: WSAA service name.

        Returns:
            Credential: A credential valid beyond the expiration buffer.

        Raises:
            ConnectivityError: If WSAA cannot be reached.
            BusinessRejectionError: If WSAA refuses the login ticket.
        """
        if credential := self._usable(service_name):
            return credential

        async with self._lock_for(service_name):
            # Another caller may have refreshed while this one waited
            if credential := self._usable(service_name):
                return credential

            logger.info("Authenticating with WSAA", service=service_name)
            ticket_request = build_login_ticket_request(service_name, self._clock())
            cms = self._signer.sign(ticket_request)
            credential = await self._gateway.login_cms(cms, service_name)
            self._credentials[service_name] = credential

            logger.info(
                "WSAA credential issued, expires at {}",
                credential.expiration_time.isoformat(),
                service=service_name,
            )
            return credential

    def invalidate(self, service_name: str) -> None:
        """Drop the credential of a service so the next call re-authenticates."""
        if self._credentials.pop(service_name, None) is not None:
            logger.info("WSAA credential invalidated", service=service_name)

    def status(self, service_name: str) -> dict[str, Any]:
        """Describe the credential held for a service.

        Returns:
            dict[str, Any]: ``valid`` plus either ``reason`` or the expiration
                details of the credential.
        """
        credential = self._credentials.get(service_name)
        if credential is None:
            return {"valid": False, "reason": "No credential cached"}

        now = self._clock()
        if not credential.is_usable(now, self._buffer):
            return {"valid": False, "reason": "Credential expired"}

        seconds_left = int((credential.expiration_time - now).total_seconds())
        return {
            "valid": True,
            "expiresAt": credential.expiration_time.isoformat(),
            "secondsLeft": seconds_left,
            "hoursLeft": round(seconds_left / SECONDS_PER_HOUR, 2),
        }
