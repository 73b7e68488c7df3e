"""Unit tests for src/api/middleware/request_context.py."""

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from src.api.middleware.request_context import RequestContextMiddleware
from src.core.context import RequestContext


def build_app() -> FastAPI:
    """Build an app echoing the correlation ID seen by the endpoint."""
    app = FastAPI()
    app.add_middleware(RequestContextMiddleware)

    @app.get("/echo")
    async def echo() -> dict[str, str | None]:
        return {"correlation_id": RequestContext.get_correlation_id()}

    return app


@pytest.fixture
def transport() -> ASGITransport:
    """Provide a transport to the echo app."""
    return ASGITransport(app=build_app())


@pytest.mark.unit
class TestRequestContextMiddleware:
    """Test suite for correlation ID handling."""

    async def test_incoming_header_is_used(self, transport: ASGITransport) -> None:
        """Test that a client supplied ID is propagated and echoed."""
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(
                "/echo", headers={"X-Correlation-ID": "corr-42"}
            )

        assert response.json() == {"correlation_id": "corr-42"}
        assert response.headers["X-Correlation-ID"] == "corr-42"

    async def test_id_is_generated(self, transport: ASGITransport) -> None:
        """Test that a request without the header gets a fresh ID."""
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/echo")

        generated = response.headers["X-Correlation-ID"]
        assert generated
        assert response.json() == {"correlation_id": generated}

    async def test_oversized_id_is_replaced(self, transport: ASGITransport) -> None:
        """Test that an ID longer than the limit is not trusted."""
        oversized = "x" * 129
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get(
                "/echo", headers={"X-Correlation-ID": oversized}
            )

        assert response.headers["X-Correlation-ID"] != oversized

    async def test_context_is_cleared_after_request(
        self, transport: ASGITransport
    ) -> None:
        """Test that no correlation ID leaks out of the request."""
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.get("/echo", headers={"X-Correlation-ID": "corr-42"})

        assert RequestContext.get_correlation_id() is None
