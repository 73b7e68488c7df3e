"""Reachability tracking of the AFIP/ARCA services.

The monitor keeps an append-only log of observations written by validation
sub-checks and by its own periodic probe. It is advisory: recording failures
are logged and never surface into validations.
"""

import asyncio
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Final, Literal

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.constants import MILLISECONDS_PER_SECOND
from src.core.exceptions import ArcaError, BusinessRejectionError, ConnectivityError
from src.infrastructure.afip.client import ArcaClient
from src.infrastructure.database.models import ConnectivityLogEntry
from src.infrastructure.database.repositories import ConnectivityLogRepository

type ConnectivityStatus = Literal["attempting", "online", "offline"]

CUIT_SERVICE: Final[str] = "cuit_validation"
CAE_SERVICE: Final[str] = "cae_validation"
PROBE_SERVICE: Final[str] = "arca_probe"


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * MILLISECONDS_PER_SECOND)


class ConnectivityMonitor:
    """Records and summarizes remote service reachability.

    Args:
        session_factory: Factory of the sessions used to write the log.
        client: Client used by the probe.
        probe_cuit: CUIT looked up by the probe.
        probe_interval_seconds: Interval of the probe loop.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        client: ArcaClient,
        probe_cuit: str,
        probe_interval_seconds: float = 300.0,
    ) -> None:
        self._session_factory = session_factory
        self._client = client
        self._probe_cuit = probe_cuit
        self._probe_interval = probe_interval_seconds

    async def record(
        self,
        service: str,
        status: ConnectivityStatus,
        response_time_ms: int | None = None,
        error: str | None = None,
    ) -> None:
        """Append an observation to the connectivity log."""
        try:
            async with self._session_factory() as session, session.begin():
                await ConnectivityLogRepository(session).create(
                    ConnectivityLogEntry(
                        service_name=service,
                        status=status,
                        response_time_ms=response_time_ms,
                        error_message=error,
                    )
                )
        except SQLAlchemyError as e:
            logger.warning(
                "Could not record connectivity of {}: {}", service, e, status=status
            )

    @asynccontextmanager
    async def track(self, service: str) -> AsyncIterator[None]:
        """Record an attempt and its outcome around a remote call.

        A connectivity failure, or any unexpected error, is recorded offline.
        Success, or a rejection by the remote service, is recorded online
        since the service answered.
        Exceptions propagate unchanged.
        """
        await self.record(service, "attempting")
        start = time.perf_counter()
        try:
            yield
        except ConnectivityError as e:
            await self.record(service, "offline", _elapsed_ms(start), e.message)
            raise
        except BusinessRejectionError as e:
            await self.record(service, "online", _elapsed_ms(start), e.message)
            raise
        except Exception as e:
            await self.record(
                service, "offline", _elapsed_ms(start), f"{type(e).__name__}: {e}"
            )
            raise
        await self.record(service, "online", _elapsed_ms(start))

    async def probe(self) -> ConnectivityStatus:
        """Look up the probe CUIT and record whether the registry answered."""
        start = time.perf_counter()
        try:
            await self._client.lookup_taxpayer(self._probe_cuit)
        except ConnectivityError as e:
            await self.record(PROBE_SERVICE, "offline", _elapsed_ms(start), e.message)
            logger.warning("Connectivity probe failed: {}", e.message)
            return "offline"
        except ArcaError as e:
            await self.record(PROBE_SERVICE, "online", _elapsed_ms(start), e.message)
            return "online"

        await self.record(PROBE_SERVICE, "online", _elapsed_ms(start))
        return "online"

    async def run_probe_loop(self) -> None:
        """Probe at the configured interval until cancelled."""
        while True:
            try:
                await self.probe()
            except Exception as e:  # noqa: BLE001 - the loop outlives one probe
                logger.opt(exception=e).error("Connectivity probe crashed")
            await asyncio.sleep(self._probe_interval)

    async def status(self) -> dict[str, Any]:
        """Summarize the latest observation of every service.

        Returns:
            dict[str, Any]: ``services`` keyed by name, ``overall`` (online
                when every service's latest observation is online, degraded
                otherwise) and ``lastChecked``.
        """
        async with self._session_factory() as session:
            latest = await ConnectivityLogRepository(session).latest_per_service()

        services = {
            entry.service_name: {
                "status": entry.status,
                "responseTimeMs": entry.response_time_ms,
                "errorMessage": entry.error_message,
                "checkedAt": entry.checked_at.isoformat(),
            }
            for entry in latest
        }
        last_checked: datetime | None = max(
            (entry.checked_at for entry in latest), default=None
        )
        overall = (
            "online"
            if all(entry.status == "online" for entry in latest)
            else "degraded"
        )
        return {
            "services": services,
            "overall": overall,
            "lastChecked": last_checked.isoformat() if last_checked else None,
        }
