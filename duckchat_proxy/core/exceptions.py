"""Core exceptions for the proxy."""

from typing import Optional


class ProxyError(Exception):
    """Base exception for proxy errors."""

    status_code = 500
    error_type = "proxy_error"
    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        """Render the error as an OpenAI-style error body."""
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message)
        self.code = code


class TokenAcquisitionError(ProxyError):
    """No continuation token was supplied, cached, or issued by the upstream."""

    status_code = 503
    error_type = "service_unavailable"
    code = "token_unavailable"


class UpstreamError(ProxyError):
    """The duckchat endpoint answered with a non-success status."""

    status_code = 503
    error_type = "upstream_error"
    code = "upstream_unavailable"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.upstream_status = status_code
        self.body = body

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["error"]["upstream_status"] = self.upstream_status
        payload["error"]["upstream_body"] = self.body
        return payload


class FrameParseError(ProxyError):
    """A single upstream frame could not be parsed. Never leaves the decoder."""
    pass


class CacheError(ProxyError):
    """The key-value backend failed. Absorbed by the conversation state store."""
    pass
