"""Proxy harness for in-process simulation tests."""

from __future__ import annotations

from typing import Any, Mapping, Optional

import httpx
from fastapi import FastAPI

from ..api import chat_completions, register_exception_handlers, status
from ..config_loader import load_settings
from ..conversation.state_store import ConversationStateStore, build_state_store
from ..core.registry import get_router, set_router
from ..core.router import DuckChatRouter
from ..core.upstream import DuckChatClient

TEST_BASE_URL = "https://duckchat.test"


def build_test_config(
    base_url: str = TEST_BASE_URL,
    **sections: Mapping[str, Any],
) -> dict[str, Any]:
    """Config pointing the upstream at ``base_url``; ``sections`` override top-level keys."""
    config: dict[str, Any] = {
        "proxy_settings": {"logging": {"level": "DEBUG"}},
        "upstream": {
            "status_url": f"{base_url}/duckchat/v1/status",
            "chat_url": f"{base_url}/duckchat/v1/chat",
            "timeout": 5,
        },
        "conversation_cache": {"enabled": True, "backend": "memory"},
    }
    for key, value in sections.items():
        config[key] = dict(value)
    return config


class ProxyHarness:
    """The proxy routes served in-process, wired to one config.

    The router is installed in the global registry for the lifetime of the
    harness and the previous one is restored on exit. ``state_store`` is
    exposed so tests can inspect what the cache remembered.

        with ProxyHarness(build_test_config()) as proxy:
            async with proxy.make_async_client() as client:
                await client.post("/v1/chat/completions", json=payload)
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        state_store: Optional[ConversationStateStore] = None,
        client: Optional[DuckChatClient] = None,
    ) -> None:
        self.settings = load_settings(config)
        self.state_store = state_store or build_state_store(self.settings.cache)
        self.router = DuckChatRouter(self.settings, client=client, state_store=self.state_store)
        self._previous_router: Optional[DuckChatRouter] = None

        try:
            self._previous_router = get_router()
        except RuntimeError:
            self._previous_router = None
        set_router(self.router)

        self.app = FastAPI(title="ProxyHarness")
        register_exception_handlers(self.app)
        self.app.post("/v1/chat/completions")(chat_completions)
        self.app.get("/status")(status)

    def close(self) -> None:
        """Restore the previous router and close the cache."""
        set_router(self._previous_router)
        self.state_store.close()

    def __enter__(self) -> "ProxyHarness":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    async def __aenter__(self) -> "ProxyHarness":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    def make_async_client(
        self, base_url: str = "http://proxy.local"
    ) -> httpx.AsyncClient:
        """httpx client whose requests are served by this harness."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=self.app),
            base_url=base_url,
        )
