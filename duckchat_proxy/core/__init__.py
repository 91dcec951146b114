"""Core module initialization.

The router and the duckchat client live in ``core.router`` and
``core.upstream``; import them from there.
"""

from .exceptions import (
    CacheError,
    ConfigurationError,
    FrameParseError,
    InvalidRequestError,
    ProxyError,
    TokenAcquisitionError,
    UpstreamError,
)
from .registry import get_router, set_router
from .sse import EventKind, FrameDecoder, UpstreamEvent, classify_frame, decode_frames
from .upstream_transport import (
    clear_upstream_transports,
    get_upstream_transport,
    register_upstream_transport,
)

__all__ = [
    "CacheError",
    "ConfigurationError",
    "EventKind",
    "FrameDecoder",
    "FrameParseError",
    "InvalidRequestError",
    "ProxyError",
    "TokenAcquisitionError",
    "UpstreamError",
    "UpstreamEvent",
    "classify_frame",
    "clear_upstream_transports",
    "decode_frames",
    "get_router",
    "get_upstream_transport",
    "register_upstream_transport",
    "set_router",
]
