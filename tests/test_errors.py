import asyncio
import logging

import httpx
import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient

from nft_gateway.errors import ConfigError, RateLimited, UpstreamError, UpstreamTimeout
from nft_gateway.main import create_app
from nft_gateway.middleware import RequestDeadlineMiddleware


def test_unknown_path_is_not_found(client):
    rv = client.get("/does-not-exist")
    assert rv.status_code == 404
    assert rv.json()["error"] == "not_found"
    assert rv.headers["access-control-allow-origin"] == "*"


def test_wrong_method_is_method_not_allowed(client):
    rv = client.get("/graphql/portfolio")
    assert rv.status_code == 405
    assert rv.json()["error"] == "method_not_allowed"


def test_validation_error_is_invalid_request(client):
    rv = client.get("/nft/collection-friends", params={"contractAddress": "0xc"})
    assert rv.status_code == 400
    body = rv.json()
    assert body["error"] == "invalid_request"
    assert isinstance(body["details"], list)


def test_missing_key_is_config_error(upstream):
    from nft_gateway.config import Settings

    app = create_app(Settings(), transport=httpx.MockTransport(upstream))
    rv = TestClient(app).get("/nft/owner", params={"owner": "0xabc"})
    assert rv.status_code == 500
    assert rv.json()["error"] == "config_error"
    assert upstream.calls == []


def test_unexpected_error_is_internal_error(app):
    router = APIRouter()

    @router.get("/boom")
    async def boom():
        raise RuntimeError("kaboom")

    app.include_router(router)
    rv = TestClient(app).get("/boom")
    assert rv.status_code == 500
    assert rv.json() == {"error": "internal_error", "message": "Internal server error"}
    assert rv.headers["access-control-allow-origin"] == "*"


def test_request_deadline_yields_upstream_timeout(settings, upstream):
    app = create_app(settings.model_copy(update={"request_deadline": 0.05}), transport=httpx.MockTransport(upstream))
    router = APIRouter()

    @router.get("/slow")
    async def slow():
        await asyncio.sleep(5)
        return {"ok": True}

    app.include_router(router)
    rv = TestClient(app).get("/slow")
    assert rv.status_code == 504
    assert rv.json()["error"] == "upstream_timeout"


def test_error_envelopes():
    assert ConfigError("missing").to_dict() == {"error": "config_error", "message": "missing"}

    error = UpstreamError("boom", "nft_provider", 503)
    assert error.status_code == 502
    assert error.to_dict()["details"] == {"provider": "nft_provider", "status": 503}

    assert RateLimited("slow down", "social_graph", 429).status_code == 429
    assert UpstreamTimeout("late", "portfolio").status_code == 504


@pytest.mark.asyncio
async def test_client_disconnect_is_logged_as_client_cancelled(caplog):
    async def app(scope, receive, send):
        raise asyncio.CancelledError()

    async def send(message):
        raise AssertionError("nothing should be written back")

    middleware = RequestDeadlineMiddleware(app, seconds=5)
    scope = {"type": "http", "method": "GET", "path": "/nft/owner"}
    with caplog.at_level(logging.INFO, logger="nft_gateway.middleware"):
        with pytest.raises(asyncio.CancelledError):
            await middleware(scope, None, send)
    assert "client_cancelled: GET /nft/owner" in caplog.text
