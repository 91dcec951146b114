"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Generator

import pytest

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))


# =============================================================================
# Global State Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    from duckchat_proxy.core.upstream_transport import clear_upstream_transports

    yield
    clear_upstream_transports()


@pytest.fixture
def reset_state_store() -> Generator[None, None, None]:
    """Reset the global ConversationStateStore before and after test."""
    from duckchat_proxy.conversation.state_store import reset_state_store

    reset_state_store()
    yield
    reset_state_store()


# =============================================================================
# Helper Functions for Tests
# =============================================================================


def build_chat_payload(
    *contents: str,
    model: str = "gpt-4o-mini",
    stream: bool = False,
) -> dict[str, Any]:
    """Build a chat completions body alternating user/assistant turns."""
    messages = [
        {"role": "user" if i % 2 == 0 else "assistant", "content": content}
        for i, content in enumerate(contents)
    ]
    return {"model": model, "messages": messages, "stream": stream}


def parse_sse_records(body: bytes) -> list[str]:
    """Split a client SSE body into its ``data:`` payloads."""
    records = []
    for block in body.decode("utf-8").split("\n\n"):
        if block.startswith("data: "):
            records.append(block[len("data: "):])
    return records


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def duckchat_harness(
    clear_transport_registry: None,
    reset_state_store: None,
) -> Generator[tuple[Any, Any], None, None]:
    """Create a proxy harness talking to an in-process fake duckchat.

    Returns:
        Tuple of (FakeDuckChat, ProxyHarness)

    Usage:
        async def test_chat(duckchat_harness):
            upstream, harness = duckchat_harness
            upstream.enqueue_reply(["Hello"])
            # ... test code ...
    """
    from duckchat_proxy.testing import TEST_BASE_URL, FakeDuckChat, ProxyHarness, build_test_config

    upstream = FakeDuckChat()
    upstream.install(TEST_BASE_URL)
    harness = ProxyHarness(build_test_config())

    try:
        yield upstream, harness
    finally:
        harness.close()
