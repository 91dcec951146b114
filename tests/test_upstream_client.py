"""Tests for the duckchat HTTP connector."""

import json

import httpx
import pytest

from duckchat_proxy.config_loader import UpstreamSettings
from duckchat_proxy.core.exceptions import UpstreamError
from duckchat_proxy.core.upstream import (
    DEFAULT_HEADERS,
    DuckChatClient,
    format_httpx_error,
)
from duckchat_proxy.core.upstream_transport import (
    clear_upstream_transports,
    get_upstream_transport,
    register_upstream_transport,
)
from duckchat_proxy.testing import TEST_BASE_URL, FakeDuckChat
from duckchat_proxy.types.chat import ChatRequest


def _settings(**overrides) -> UpstreamSettings:
    values = {
        "status_url": f"{TEST_BASE_URL}/duckchat/v1/status",
        "chat_url": f"{TEST_BASE_URL}/duckchat/v1/chat",
        "timeout": 5.0,
    }
    values.update(overrides)
    return UpstreamSettings(**values)


def _request() -> ChatRequest:
    return ChatRequest.from_payload(
        {
            "model": "gpt-4o-mini",
            "messages": [
                {"role": "system", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
        }
    )


class TestUpstreamTransportRegistry:
    """Tests for per-host transport routing."""

    def test_register_by_url_and_lookup(self, clear_transport_registry):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        register_upstream_transport("https://Example.test/base", transport)
        assert get_upstream_transport("https://example.test/other/path") is transport
        assert get_upstream_transport("https://elsewhere.test/") is None

    def test_register_by_host(self, clear_transport_registry):
        transport = httpx.MockTransport(lambda request: httpx.Response(200))
        register_upstream_transport("example.test", transport)
        assert get_upstream_transport("http://example.test/x") is transport

    def test_clear(self):
        register_upstream_transport("example.test", httpx.MockTransport(lambda r: httpx.Response(200)))
        clear_upstream_transports()
        assert get_upstream_transport("http://example.test/x") is None

    def test_rejects_empty_host(self):
        with pytest.raises(ValueError):
            register_upstream_transport("", httpx.MockTransport(lambda r: httpx.Response(200)))


class TestFetchNewToken:
    """Tests for the status endpoint call."""

    @pytest.mark.asyncio
    async def test_returns_issued_token(self, clear_transport_registry):
        upstream = FakeDuckChat(status_token="token-from-status")
        upstream.install(TEST_BASE_URL)
        client = DuckChatClient(_settings())
        assert await client.fetch_new_token() == "token-from-status"
        assert upstream.status_calls == 1

    @pytest.mark.asyncio
    async def test_returns_none_without_header(self, clear_transport_registry):
        upstream = FakeDuckChat(status_token=None)
        upstream.install(TEST_BASE_URL)
        client = DuckChatClient(_settings())
        assert await client.fetch_new_token() is None

    @pytest.mark.asyncio
    async def test_returns_none_on_transport_error(self, clear_transport_registry):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        register_upstream_transport(TEST_BASE_URL, httpx.MockTransport(refuse))
        client = DuckChatClient(_settings())
        assert await client.fetch_new_token() is None

    @pytest.mark.asyncio
    async def test_sends_browser_headers(self, clear_transport_registry):
        seen: dict = {}

        def capture(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, headers={"x-vqd-4": "t"})

        register_upstream_transport(TEST_BASE_URL, httpx.MockTransport(capture))
        client = DuckChatClient(_settings(headers={"User-Agent": "custom-agent"}))
        await client.fetch_new_token()
        assert seen["x-vqd-accept"] == "1"
        assert seen["origin"] == DEFAULT_HEADERS["Origin"]
        assert seen["user-agent"] == "custom-agent"


class TestOpenChat:
    """Tests for the chat endpoint call."""

    @pytest.mark.asyncio
    async def test_sends_token_and_history(self, clear_transport_registry):
        upstream = FakeDuckChat()
        upstream.install(TEST_BASE_URL)
        upstream.enqueue_reply(["Hi"], token="renewed")
        client = DuckChatClient(_settings())

        stream = await client.open_chat("token-1", _request())
        try:
            body = b"".join([chunk async for chunk in stream.aiter_bytes()])
        finally:
            await stream.aclose()

        assert stream.token == "renewed"
        assert stream.status_code == 200
        assert b'"message": "Hi"' in body
        received = upstream.received[0]
        assert received["headers"]["x-vqd-4"] == "token-1"
        assert received["json"] == {
            "model": "gpt-4o-mini",
            "messages": [
                {"role": "user", "content": "Be brief."},
                {"role": "user", "content": "Hello"},
            ],
        }

    @pytest.mark.asyncio
    async def test_missing_renewed_token_is_empty(self, clear_transport_registry):
        upstream = FakeDuckChat()
        upstream.install(TEST_BASE_URL)
        upstream.enqueue_reply(["Hi"], token=None)
        stream = await DuckChatClient(_settings()).open_chat("token-1", _request())
        await stream.aclose()
        assert stream.token == ""

    @pytest.mark.asyncio
    async def test_non_success_raises_with_body(self, clear_transport_registry):
        upstream = FakeDuckChat()
        upstream.install(TEST_BASE_URL)
        upstream.enqueue_error(429, "ERR_CONVERSATION_LIMIT")
        client = DuckChatClient(_settings())

        with pytest.raises(UpstreamError) as exc_info:
            await client.open_chat("token-1", _request())
        assert exc_info.value.upstream_status == 429
        assert exc_info.value.body == "ERR_CONVERSATION_LIMIT"
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_raises_upstream_error(self, clear_transport_registry):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        register_upstream_transport(TEST_BASE_URL, httpx.MockTransport(refuse))
        with pytest.raises(UpstreamError) as exc_info:
            await DuckChatClient(_settings()).open_chat("token-1", _request())
        assert exc_info.value.upstream_status is None
        assert "ConnectError" in exc_info.value.body

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self, clear_transport_registry):
        upstream = FakeDuckChat()
        upstream.install(TEST_BASE_URL)
        upstream.enqueue_reply(["Hi"])
        stream = await DuckChatClient(_settings()).open_chat("token-1", _request())
        await stream.aclose()
        await stream.aclose()


class TestFormatHttpxError:
    """Tests for error descriptions."""

    def test_includes_request(self):
        request = httpx.Request("GET", "https://duckchat.test/x")
        exc = httpx.ConnectError("refused", request=request)
        text = format_httpx_error(exc)
        assert text.startswith("ConnectError; refused")
        assert "request=GET https://duckchat.test/x" in text

    def test_falls_back_to_url_and_timeout(self):
        exc = httpx.ReadTimeout("too slow")
        text = format_httpx_error(exc, "https://duckchat.test/y", 5.0)
        assert "url=https://duckchat.test/y" in text
        assert "timeout=5.0s" in text
