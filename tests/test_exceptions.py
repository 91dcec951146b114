"""Tests for the exceptions module."""

import pytest

from duckchat_proxy.core.exceptions import (
    CacheError,
    ConfigurationError,
    FrameParseError,
    InvalidRequestError,
    ProxyError,
    TokenAcquisitionError,
    UpstreamError,
)


class TestProxyError:
    """Tests for the base ProxyError exception."""

    def test_creates_error_with_message(self):
        """Test that error is created with message."""
        error = ProxyError("test error message")
        assert error.message == "test error message"
        assert str(error) == "test error message"
        assert error.status_code == 500

    def test_payload_shape(self):
        payload = ProxyError("boom").to_payload()
        assert payload == {"error": {"message": "boom", "type": "proxy_error", "code": "internal_error"}}


class TestInvalidRequestError:
    """Tests for InvalidRequestError exception."""

    def test_is_400_with_code(self):
        error = InvalidRequestError("bad body", code="invalid_json")
        assert error.status_code == 400
        assert error.to_payload()["error"] == {
            "message": "bad body",
            "type": "invalid_request_error",
            "code": "invalid_json",
        }

    def test_default_code(self):
        assert InvalidRequestError("bad").code == "invalid_request"


class TestServiceUnavailableErrors:
    """Tests for the errors surfaced as 503."""

    def test_token_acquisition_error(self):
        error = TokenAcquisitionError("no token")
        assert error.status_code == 503
        assert error.to_payload()["error"]["type"] == "service_unavailable"

    def test_upstream_error_carries_body(self):
        error = UpstreamError("Remote API error", status_code=429, body="limit reached")
        assert error.status_code == 503
        assert error.upstream_status == 429
        assert error.body == "limit reached"
        payload = error.to_payload()["error"]
        assert payload["upstream_status"] == 429
        assert payload["upstream_body"] == "limit reached"
        assert payload["code"] == "upstream_unavailable"


class TestHierarchy:
    @pytest.mark.parametrize(
        "exc_class",
        [ConfigurationError, InvalidRequestError, TokenAcquisitionError, UpstreamError, FrameParseError, CacheError],
    )
    def test_all_derive_from_proxy_error(self, exc_class):
        assert issubclass(exc_class, ProxyError)
