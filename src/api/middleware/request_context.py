"""Correlation ID middleware.

Each request runs with a correlation ID taken from the ``X-Correlation-ID``
header or freshly generated. The ID is stored in the request context so
error responses can echo it, bound to every log line emitted while the
request is handled, and returned in the response headers.
"""

from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from src.api.constants import CORRELATION_ID_HEADER, MAX_CORRELATION_ID_LENGTH
from src.core.context import RequestContext, generate_correlation_id


def _incoming_correlation_id(request: Request) -> str | None:
    value = request.headers.get(CORRELATION_ID_HEADER, "").strip()
    if not value or len(value) > MAX_CORRELATION_ID_LENGTH:
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Attach a correlation ID to the request context and response."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        """Run the request inside a correlation-scoped context.

        Args:
            request: The incoming request.
            call_next: The next middleware/endpoint.

        Returns:
            Response: Response carrying the correlation ID header.
        """
        correlation_id = _incoming_correlation_id(request) or generate_correlation_id()
        RequestContext.set_correlation_id(correlation_id)

        try:
            with logger.contextualize(correlation_id=correlation_id):
                response = await call_next(request)
        finally:
            RequestContext.clear()

        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response
