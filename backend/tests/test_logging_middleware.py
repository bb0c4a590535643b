import inspect
import logging
from typing import Any

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from lakiapu.middleware.logging_middleware import RequestLoggingMiddleware
from lakiapu.middleware.request_id_middleware import RequestIdMiddleware


def _make_transport(app: FastAPI) -> ASGITransport:
    transport_kwargs: dict[str, Any] = {"app": app}
    if "lifespan" in inspect.signature(ASGITransport.__init__).parameters:
        transport_kwargs["lifespan"] = "off"
    return ASGITransport(**transport_kwargs)


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(RequestLoggingMiddleware, api_prefix="/api/v1")

    @app.get("/api/v1/ok")
    async def ok():
        return {"ok": True}

    @app.get("/api/v1/health")
    async def health():
        return {"ok": True}

    return app


@pytest.mark.asyncio
async def test_request_logging_levels_and_skip_paths(caplog: pytest.LogCaptureFixture) -> None:
    async with AsyncClient(transport=_make_transport(_app()), base_url="http://test") as client:
        with caplog.at_level(logging.INFO, logger="lakiapu.request"):
            ok = await client.get("/api/v1/ok")
            missing = await client.get("/api/v1/missing")
            _ = await client.get("/api/v1/health")

    assert ok.headers["X-Response-Time"].endswith("ms")
    assert len(ok.headers["X-Request-Id"]) == 32

    records = [r for r in caplog.records if r.name == "lakiapu.request"]
    messages = [r.getMessage() for r in records]
    assert any(m.startswith("GET /api/v1/ok - 200") for m in messages)
    assert any(r.levelno == logging.WARNING and "/api/v1/missing - 404" in r.getMessage() for r in records)
    assert not any("/api/v1/health" in m for m in messages)
