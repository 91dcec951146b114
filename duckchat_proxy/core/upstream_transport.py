"""Registry of per-host HTTPX transports.

Lets tests (and local simulations) route duckchat URLs to an in-process ASGI
app instead of the network.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("duckchat-proxy")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_of(url: str) -> str:
    return urlparse(url).netloc.strip().lower()


def register_upstream_transport(url: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route requests for the host of ``url`` through ``transport``."""
    host = _host_of(url) if "://" in url else url.strip().lower()
    if not host:
        raise ValueError("host is required")
    _TRANSPORTS[host] = transport
    logger.debug("Registered upstream transport for host '%s'", host)


def clear_upstream_transports() -> None:
    """Clear all registered transports (useful for tests)."""
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return the transport registered for the URL's host, if any."""
    if not url:
        return None
    return _TRANSPORTS.get(_host_of(url))
