"""HTTP connector to the duckchat status and chat endpoints."""

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional

import httpx

from ..config_loader import UpstreamSettings
from ..types.chat import ChatRequest
from .exceptions import UpstreamError
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("duckchat-proxy")

TOKEN_HEADER = "x-vqd-4"

# duckchat only answers requests that look like they come from its own web UI.
DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; WOW64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/102.0.0.0 Safari/537.36",
    "Accept": "text/event-stream",
    "Accept-Language": "de,en-US;q=0.7,en;q=0.3",
    "Accept-Encoding": "gzip, deflate",
    "Referer": "https://duckduckgo.com/?q=DuckDuckGo&ia=chat",
    "Content-Type": "application/json",
    "Origin": "https://duckduckgo.com",
    "Cookie": "dcm=1; bg=-1",
    "Sec-Fetch-Dest": "empty",
    "Sec-Fetch-Mode": "cors",
    "Sec-Fetch-Site": "same-origin",
    "Pragma": "no-cache",
    "x-vqd-accept": "1",
    "cache-control": "no-store",
}


def format_httpx_error(exc: Any, url: Optional[str] = None, timeout: Optional[float] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = exc.request
    except (AttributeError, RuntimeError):
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException) and timeout is not None:
        parts.append(f"timeout={timeout}s")

    return "; ".join(parts)


class UpstreamStream:
    """An open duckchat chat response.

    The body must be consumed through ``aiter_bytes`` and released with
    ``aclose`` (idempotent).
    """

    def __init__(
        self,
        response: httpx.Response,
        client: httpx.AsyncClient,
        url: str,
    ) -> None:
        self.response = response
        self._client = client
        self._url = url
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def token(self) -> str:
        """The renewed continuation token, or "" if duckchat sent none."""
        return self.response.headers.get(TOKEN_HEADER, "")

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        async for chunk in self.response.aiter_bytes():
            yield chunk

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing stream for {self._url}")
        await self.response.aclose()
        await self._client.aclose()


class DuckChatClient:
    """Talks to duckchat: mints tokens and opens chat streams."""

    def __init__(self, settings: UpstreamSettings) -> None:
        self.settings = settings

    def build_headers(self, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        headers.update(self.settings.headers)
        if extra:
            headers.update(extra)
        return headers

    async def fetch_new_token(self) -> Optional[str]:
        """Ask the status endpoint for a fresh continuation token.

        Returns:
            The token, or None if duckchat did not issue one (we might have
            been blocked) or could not be reached.
        """
        url = self.settings.status_url
        transport = get_upstream_transport(url)
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.timeout, transport=transport, follow_redirects=True
            ) as client:
                resp = await client.get(url, headers=self.build_headers())
        except httpx.HTTPError as exc:
            logger.error(
                "Failed to fetch a new conversation token: %s",
                format_httpx_error(exc, url, self.settings.timeout),
            )
            return None

        token = resp.headers.get(TOKEN_HEADER)
        if not token:
            logger.warning(
                "Status endpoint returned %s without an %s header", resp.status_code, TOKEN_HEADER
            )
            return None
        return token

    async def open_chat(self, token: str, chat_request: ChatRequest) -> UpstreamStream:
        """POST the conversation and return the open streaming response.

        Raises:
            UpstreamError: If duckchat cannot be reached or answers with a
                non-success status (carrying its raw body text).
        """
        url = self.settings.chat_url
        timeout = self.settings.timeout
        body = json.dumps(chat_request.to_upstream()).encode("utf-8")
        stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
        transport = get_upstream_transport(url)
        client = httpx.AsyncClient(timeout=stream_timeout, transport=transport, follow_redirects=True)
        try:
            request = client.build_request(
                "POST", url, headers=self.build_headers({TOKEN_HEADER: token}), content=body
            )
            logger.debug(f"Sending chat request to {url} ({len(body)} bytes)")
            resp = await client.send(request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            detail = format_httpx_error(exc, url, timeout)
            logger.error(f"Failed to send chat request to {url}: {detail}")
            raise UpstreamError("Remote API unreachable", body=detail) from exc

        stream = UpstreamStream(resp, client, url)
        if not resp.is_success:
            try:
                await resp.aread()
                text = resp.text
            except httpx.HTTPError as exc:
                text = format_httpx_error(exc, url, timeout)
            finally:
                await stream.aclose()
            logger.warning(f"Chat request to {url} returned status {resp.status_code}: {text[:200]}")
            raise UpstreamError("Remote API error", status_code=resp.status_code, body=text)

        logger.info(f"Chat request to {url} successful, status {resp.status_code}")
        return stream
