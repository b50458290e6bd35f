"""Unit tests for the shared HTTP client pool and the httpx transport.

This module tests:
- HttpClientConfig loading from environment variables
- Client initialization, reuse and shutdown
- Health reporting
- HttpxTransport over httpx.MockTransport (no network)
"""

import json

import httpx
import pytest

from chainflow import http_pool
from chainflow.errors import ParseError, TransportError
from chainflow.gateway import HttpxTransport
from chainflow.providers.base import AdapterRequest


@pytest.fixture(autouse=True)
async def cleanup_pool():
    """Close the shared client after each test to keep tests isolated."""
    yield
    await http_pool.close_http_client()


@pytest.fixture
def mock_http_env(monkeypatch):
    monkeypatch.setenv("HTTP_MAX_CONNECTIONS", "50")
    monkeypatch.setenv("HTTP_MAX_KEEPALIVE_CONNECTIONS", "10")
    monkeypatch.setenv("HTTP_KEEPALIVE_EXPIRY", "3.0")
    monkeypatch.setenv("HTTP_CONNECT_TIMEOUT", "5.0")
    monkeypatch.setenv("HTTP_READ_TIMEOUT", "60.0")
    monkeypatch.setenv("HTTP_WRITE_TIMEOUT", "15.0")
    monkeypatch.setenv("HTTP_POOL_TIMEOUT", "5.0")
    monkeypatch.setenv("HTTP2_ENABLED", "false")


@pytest.fixture
def mock_http_env_defaults(monkeypatch):
    for var in [
        "HTTP_MAX_CONNECTIONS",
        "HTTP_MAX_KEEPALIVE_CONNECTIONS",
        "HTTP_KEEPALIVE_EXPIRY",
        "HTTP_CONNECT_TIMEOUT",
        "HTTP_READ_TIMEOUT",
        "HTTP_WRITE_TIMEOUT",
        "HTTP_POOL_TIMEOUT",
        "HTTP2_ENABLED",
    ]:
        monkeypatch.delenv(var, raising=False)


def mock_transport(handler) -> HttpxTransport:
    return HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


def adapter_request(url="https://api.openai.com/v1/chat/completions") -> AdapterRequest:
    return AdapterRequest(url=url, headers={"Authorization": "Bearer sk"}, body=json.dumps({"stream": True}))


# ==================== HttpClientConfig Tests ====================


@pytest.mark.unit
def test_http_client_config(mock_http_env):
    config = http_pool.HttpClientConfig()

    assert config.max_connections == 50
    assert config.max_keepalive_connections == 10
    assert config.keepalive_expiry == 3.0
    assert config.connect_timeout == 5.0
    assert config.read_timeout == 60.0
    assert config.write_timeout == 15.0
    assert config.pool_timeout == 5.0
    assert config.http2_enabled is False


@pytest.mark.unit
def test_http_client_config_defaults(mock_http_env_defaults):
    """Test HttpClientConfig with default values."""
    config = http_pool.HttpClientConfig()

    assert config.max_connections == 100
    assert config.max_keepalive_connections == 20
    assert config.read_timeout == 120.0
    assert config.http2_enabled is True


@pytest.mark.unit
def test_http_client_config_dicts(mock_http_env):
    config = http_pool.HttpClientConfig()

    assert config.get_limits() == {
        "max_connections": 50,
        "max_keepalive_connections": 10,
        "keepalive_expiry": 3.0,
    }
    assert config.get_timeout() == {"connect": 5.0, "read": 60.0, "write": 15.0, "pool": 5.0}
    assert "http2=False" in repr(config)


# ==================== Lifecycle Tests ====================


@pytest.mark.asyncio
async def test_get_client_before_init_raises():
    with pytest.raises(RuntimeError, match="not initialized"):
        http_pool.get_http_client()


@pytest.mark.asyncio
async def test_init_is_idempotent(mock_http_env):
    first = await http_pool.init_http_client()
    second = await http_pool.init_http_client()

    assert first is second
    assert http_pool.get_http_client() is first
    assert http_pool.get_config().max_connections == 50


@pytest.mark.asyncio
async def test_close_resets_state(mock_http_env):
    client = await http_pool.init_http_client()
    await http_pool.close_http_client()

    assert client.is_closed
    assert http_pool.get_config() is None
    # Closing twice is a no-op
    await http_pool.close_http_client()


@pytest.mark.asyncio
async def test_health(mock_http_env):
    assert (await http_pool.check_http_client_health())["status"] == "unavailable"

    await http_pool.init_http_client()
    health = await http_pool.check_http_client_health()

    assert health["status"] == "healthy"
    assert health["client"]["max_connections"] == 50


@pytest.mark.asyncio
async def test_transport_defaults_to_shared_client(mock_http_env):
    client = await http_pool.init_http_client()
    assert HttpxTransport().client is client


# ==================== HttpxTransport Tests ====================


@pytest.mark.asyncio
async def test_open_stream_yields_body_bytes():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"data: {}\n\n")

    upstream = await mock_transport(handler).open_stream(adapter_request())
    data = b"".join([chunk async for chunk in upstream.aiter_bytes()])
    await upstream.aclose()

    assert upstream.ok
    assert data == b"data: {}\n\n"
    assert seen == {"auth": "Bearer sk", "body": {"stream": True}}


@pytest.mark.asyncio
async def test_open_stream_non_2xx_body_is_readable():
    upstream = await mock_transport(lambda r: httpx.Response(401, content=b"bad key")).open_stream(adapter_request())

    assert not upstream.ok
    assert upstream.status_code == 401
    assert await upstream.aread() == b"bad key"
    await upstream.aclose()


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransportError) as exc_info:
        await mock_transport(handler).open_stream(adapter_request("https://relay.example.com/x?key=secret"))
    assert "secret" not in str(exc_info.value)


@pytest.mark.asyncio
async def test_json_helpers():
    def handler(request):
        if request.url.path == "/ok":
            return httpx.Response(200, json={"data": []})
        if request.url.path == "/text":
            return httpx.Response(200, content=b"<html>")
        return httpx.Response(404)

    transport = mock_transport(handler)

    assert await transport.get_json("https://relay.example.com/ok", {}, 1.0) == (200, {"data": []})
    assert await transport.post_json("https://relay.example.com/missing", {}, "{}", 1.0) == (404, None)
    with pytest.raises(ParseError):
        await transport.get_json("https://relay.example.com/text", {}, 1.0)
