"""Testing utilities for in-process proxy simulations."""

from .fake_upstream import (
    CHAT_PATH,
    STATUS_PATH,
    DuckChatResponse,
    FakeDuckChat,
    build_reply_frames,
    delta_frame,
    encode_frame,
    end_frame,
)
from .proxy_harness import TEST_BASE_URL, ProxyHarness, build_test_config

__all__ = [
    # Core simulation classes
    "FakeDuckChat",
    "DuckChatResponse",
    "ProxyHarness",
    # Frame builders
    "build_reply_frames",
    "delta_frame",
    "encode_frame",
    "end_frame",
    # Config helpers
    "build_test_config",
    "CHAT_PATH",
    "STATUS_PATH",
    "TEST_BASE_URL",
]
