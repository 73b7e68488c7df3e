"""Access logging for the validation API.

One line is logged when a request completes, with its duration and status.
Requests slower than ``LogConfig.slow_request_threshold_ms`` get an extra
warning, since slow validations usually mean the tax authority is lagging.
"""

import time
from collections.abc import Awaitable, Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from src.core.config import LogConfig
from src.core.constants import MILLISECONDS_PER_SECOND


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of each request.

    Args:
        app: The ASGI application.
        log_config: Logging configuration.
    """

    def __init__(self, app: ASGIApp, *, log_config: LogConfig) -> None:
        super().__init__(app)
        self.excluded_paths = set(log_config.excluded_paths)
        self.slow_threshold_ms = log_config.slow_request_threshold_ms

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        """Process the request and log its outcome.

        Raises:
            Exception: Any exception raised by the application is re-raised
                after logging.
        """
        if request.url.path in self.excluded_paths:
            return await call_next(request)

        with logger.contextualize(method=request.method, path=request.url.path):
            start = time.perf_counter()
            try:
                response = await call_next(request)
            except Exception as exc:
                logger.error(
                    "Request failed",
                    duration_ms=_elapsed_ms(start),
                    error_type=type(exc).__name__,
                )
                raise

            duration_ms = _elapsed_ms(start)
            logger.info(
                "Request completed",
                status_code=response.status_code,
                duration_ms=duration_ms,
            )
            if duration_ms > self.slow_threshold_ms:
                logger.warning(
                    "Slow request detected",
                    duration_ms=duration_ms,
                    threshold_ms=self.slow_threshold_ms,
                )
            return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * MILLISECONDS_PER_SECOND, 2)
