"""Main FastAPI application for the duckchat proxy."""

import logging
import socket
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api import chat_completions, register_exception_handlers, status
from .config_loader import load_config, load_settings
from .conversation.state_store import (
    ConversationStateStore,
    build_state_store,
    set_state_store,
)
from .core.registry import set_router
from .core.router import DuckChatRouter
from .core.upstream import DuckChatClient
from .logging import setup_logging

logger = logging.getLogger("duckchat-proxy")


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    state_store: Optional[ConversationStateStore] = None,
    client: Optional[DuckChatClient] = None,
) -> FastAPI:
    """Factory function to create the FastAPI application.

    Args:
        config: Raw configuration mapping. Loaded from DUCKCHAT_CONFIG (or the
            default config file) when omitted.
        state_store: Continuity cache to use instead of the configured one.
        client: duckchat client to use instead of one built from config.

    Returns:
        The configured FastAPI application instance.
    """
    if config is None:
        config = load_config()
    settings = load_settings(config)
    setup_logging(settings.log_level)

    if state_store is None:
        state_store = build_state_store(settings.cache)
    set_state_store(state_store)

    router = DuckChatRouter(settings, client=client, state_store=state_store)
    set_router(router)
    logger.info(
        "duckchat router initialized: chat_url=%s cache=%s",
        settings.upstream.chat_url,
        state_store.backend.backend_name,
    )

    app = FastAPI(title="DuckChat Proxy")
    app.state.settings = settings
    app.state.router = router
    register_exception_handlers(app)

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("DuckChat Proxy server starting up...")
        logger.info("Configured bind address %s:%s", settings.host, settings.port)
        if settings.host == "0.0.0.0":
            hostname = socket.gethostname()
            logger.info("Reachable on local network at http://%s:%s", hostname, settings.port)
        logger.info("DuckChat Proxy server ready to handle requests")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Handle application shutdown."""
        logger.info("Closing conversation state store")
        state_store.close()

    app.post("/v1/chat/completions")(chat_completions)
    app.get("/status")(status)
    logger.info("FastAPI application created")
    return app


# Load configuration
config = load_config()
app = create_app(config)

_settings = app.state.settings
SERVER_HOST = _settings.host
SERVER_PORT = _settings.port


# Export for external use
__all__ = ["app", "create_app", "config", "SERVER_HOST", "SERVER_PORT"]
