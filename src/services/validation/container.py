"""Wiring of the validation services and their background loops."""

import asyncio
from collections.abc import Coroutine
from dataclasses import dataclass, field
from typing import Any

import httpx
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import Settings
from src.infrastructure.afip import (
    ArcaClient,
    CmsSigner,
    CredentialManager,
    SoapGateway,
    TicketSigner,
    UnconfiguredSigner,
    create_http_client,
    resolve_endpoints,
)
from src.infrastructure.cache import DatabaseCacheStore, ValidationCache
from src.infrastructure.database.session import get_session_factory
from src.services.validation.connectivity import ConnectivityMonitor
from src.services.validation.events import EventChannel
from src.services.validation.orchestrator import ValidationOrchestrator
from src.services.validation.retry_queue import RetryQueue


def _build_signer(settings: Settings) -> TicketSigner:
    afip = settings.afip_config
    if afip.cert_path and afip.key_path:
        return CmsSigner.from_files(afip.cert_path, afip.key_path, afip.key_passphrase)
    logger.warning("AFIP certificate not configured, remote checks will degrade")
    return UnconfiguredSigner()


@dataclass
class ValidationServices:
    """Every long-lived object of the validation subsystem."""

    settings: Settings
    http_client: httpx.AsyncClient
    client: ArcaClient
    credentials: CredentialManager
    cache: ValidationCache
    monitor: ConnectivityMonitor
    events: EventChannel
    orchestrator: ValidationOrchestrator
    retry_queue: RetryQueue
    _tasks: list[asyncio.Task[None]] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        http_client: httpx.AsyncClient | None = None,
        signer: TicketSigner | None = None,
    ) -> "ValidationServices":
        """Assemble the services from settings.

        Args:
            settings: Application settings.
            session_factory: Session factory, defaults to the global one.
            http_client: HTTP client for SOAP calls, created if omitted.
            signer: Login ticket signer, loaded from the configured
                certificate if omitted.

        Returns:
            ValidationServices: Services ready to ``start``.
        """
        afip = settings.afip_config
        session_factory = session_factory or get_session_factory()
        http_client = http_client or create_http_client(afip.request_timeout_seconds)

        gateway = SoapGateway(
            http_client,
            resolve_endpoints(afip),
            afip.cuit,
            timeout_seconds=afip.request_timeout_seconds,
        )
        credentials = CredentialManager(
            gateway,
            signer or _build_signer(settings),
            buffer_hours=afip.token_expiry_buffer_hours,
        )

        persistent = (
            DatabaseCacheStore(session_factory)
            if settings.cache_config.persistent_backend == "database"
            else None
        )
        cache = ValidationCache(settings.cache_config, persistent)
        client = ArcaClient(gateway, credentials, cache)
        monitor = ConnectivityMonitor(
            session_factory,
            client,
            afip.probe_cuit,
            settings.monitor_config.probe_interval_seconds,
        )
        events = EventChannel()
        orchestrator = ValidationOrchestrator(
            client, cache, monitor, session_factory, events
        )
        retry_queue = RetryQueue(session_factory, orchestrator, settings.retry_config)
        orchestrator.retry_queue = retry_queue

        return cls(
            settings=settings,
            http_client=http_client,
            client=client,
            credentials=credentials,
            cache=cache,
            monitor=monitor,
            events=events,
            orchestrator=orchestrator,
            retry_queue=retry_queue,
        )

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        self._tasks.append(asyncio.create_task(coro, name=name))

    def start(self) -> None:
        """Start the enabled background loops."""
        self._spawn(self.cache.run_cleanup_loop(), "cache-cleanup")
        if self.settings.retry_config.enabled:
            self._spawn(self.retry_queue.run_loop(), "retry-queue")
        if self.settings.monitor_config.enabled:
            self._spawn(self.monitor.run_probe_loop(), "connectivity-probe")
        logger.info(
            "Validation services started",
            tasks=[task.get_name() for task in self._tasks],
        )

    async def stop(self) -> None:
        """Cancel the background loops and close the HTTP client."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        await self.http_client.aclose()
        logger.info("Validation services stopped")
