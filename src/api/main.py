"""FastAPI application factory and lifespan.

The lifespan checks the database, optionally creates the tables, builds the
validation services into ``app.state.services`` and starts their background
loops. On shutdown the loops are cancelled before the database is closed.

Middleware are executed in reverse order of registration.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Annotated, Any

from fastapi import Depends, FastAPI, Request
from loguru import logger

from src.api.middleware.error_handler import register_exception_handlers
from src.api.middleware.request_context import RequestContextMiddleware
from src.api.middleware.request_logging import RequestLoggingMiddleware
from src.api.routes.validation import router as validation_router
from src.api.utils.responses import ORJSONResponse
from src.core.config import Settings, get_settings
from src.core.logging import setup_logging
from src.core.observability import instrument_app, setup_tracing
from src.infrastructure.database.session import (
    check_database_connection,
    close_database,
    create_all_tables,
)
from src.services.validation import ValidationServices


@asynccontextmanager
async def lifespan(app_instance: FastAPI) -> AsyncGenerator[None]:
    """Manage application lifespan events.

    Args:
        app_instance: The FastAPI application instance.

    Yields:
        None: Nothing is yielded, this is just a lifespan context.

    Raises:
        RuntimeError: If database connection fails during startup.
    """
    settings: Settings = app_instance.state.settings

    is_healthy, error_msg = await check_database_connection()
    if not is_healthy:
        logger.error("Database connection failed during startup: {}", error_msg)
        msg = f"Database connection failed: {error_msg}"
        raise RuntimeError(msg)
    logger.info("Database connection successful")

    if settings.database_config.create_tables:
        await create_all_tables()

    services = ValidationServices.build(settings)
    app_instance.state.services = services
    services.start()

    logger.info(
        "Application startup complete - {} v{}",
        app_instance.title,
        app_instance.version,
    )

    try:
        yield
    finally:
        logger.info("Application shutdown initiated")
        await services.stop()
        app_instance.state.services = None
        await close_database()
        logger.info("Application shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings instance. If not provided, will use get_settings().

    Returns:
        FastAPI: Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    setup_logging(settings)
    setup_tracing(settings)

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        docs_url=settings.docs_url,
        redoc_url=settings.redoc_url,
        openapi_url=settings.openapi_url,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    application.state.settings = settings
    application.state.services = None

    # Register exception handlers BEFORE middleware
    register_exception_handlers(application)

    # 2. Request logging (runs inside the correlation context)
    application.add_middleware(RequestLoggingMiddleware, log_config=settings.log_config)
    # 1. Request context (creates correlation ID)
    application.add_middleware(RequestContextMiddleware)

    application.include_router(validation_router)

    @application.get("/health")
    async def health(request: Request) -> dict[str, object]:
        """Report database reachability and the tax authority connectivity.

        The service reports ``degraded`` rather than failing when either is
        unavailable.

        Returns:
            dict[str, object]: Status, database flag and connectivity summary.
        """
        is_healthy, error_msg = await check_database_connection()
        health_status: dict[str, object] = {
            "status": "healthy",
            "database": is_healthy,
            "connectivity": None,
        }
        if not is_healthy:
            logger.warning("Database health check failed: {}", error_msg)
            health_status["status"] = "degraded"
            return health_status

        services: ValidationServices | None = request.app.state.services
        if services is not None:
            connectivity = await services.monitor.status()
            health_status["connectivity"] = connectivity["overall"]
            if connectivity["overall"] != "online":
                health_status["status"] = "degraded"

        return health_status

    @application.get("/info")
    async def info(
        app_settings: Annotated[Settings, Depends(get_settings)],
    ) -> dict[str, Any]:
        """Get application information.

        Args:
            app_settings: Application settings injected via dependency.

        Returns:
            dict[str, Any]: Application name, version, environment and the
                AFIP environment in use.
        """
        return {
            "app_name": app_settings.app_name,
            "version": app_settings.app_version,
            "environment": app_settings.environment,
            "afip_environment": app_settings.afip_config.environment,
            "debug": app_settings.debug,
        }

    instrument_app(application, settings)

    return application


app = create_app()
