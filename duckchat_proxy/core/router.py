"""Session orchestration: token resolution and reply dispatch."""

import asyncio
import logging
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

from ..config_loader import ProxySettings
from ..conversation.state_store import ConversationStateStore, get_state_store
from ..translation.stream_adapter import ChatToOpenAIStreamAdapter
from ..translation.translator import aggregate_completion
from ..types.chat import ChatRequest
from .exceptions import TokenAcquisitionError
from .sse import decode_frames
from .upstream import TOKEN_HEADER, DuckChatClient, UpstreamStream

logger = logging.getLogger("duckchat-proxy")


class DuckChatRouter:
    """Turns a validated chat request into an OpenAI-shaped response.

    1. Resolve a continuation token: the caller's, a cached one, or a new one.
    2. Open the duckchat chat stream with it.
    3. Translate the reply (streaming or aggregated) and hand back the renewed
       token in the ``x-vqd-4`` response header.
    """

    def __init__(
        self,
        settings: ProxySettings,
        client: Optional[DuckChatClient] = None,
        state_store: Optional[ConversationStateStore] = None,
    ) -> None:
        self.settings = settings
        self.client = client or DuckChatClient(settings.upstream)
        self.state_store = state_store or get_state_store()

    async def resolve_token(
        self,
        chat_request: ChatRequest,
        provided_token: Optional[str] = None,
    ) -> str:
        """Pick the continuation token for this request.

        Raises:
            TokenAcquisitionError: If no token was supplied, none is cached for
                the preceding history and duckchat would not issue a new one.
        """
        if provided_token:
            logger.debug(f"Using provided conversation token: {provided_token}")
            return provided_token

        # The last turn is the new input; the rest is what a previous reply followed.
        previous = chat_request.contents[:-1]
        token = await self.state_store.lookup_history(previous)
        if token:
            logger.debug(f"Using cached conversation token: {token}")
            return token

        token = await self.client.fetch_new_token()
        if not token:
            logger.error("Cannot obtain a new x-vqd-4 token and none was provided or cached")
            raise TokenAcquisitionError(
                "Cannot obtain new x-vqd-4 and it was not provided nor cached"
            )
        logger.debug(f"Created new conversation token: {token}")
        return token

    async def forward_request(
        self,
        chat_request: ChatRequest,
        provided_token: Optional[str] = None,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
    ) -> Response:
        """Send ``chat_request`` to duckchat and build the client response.

        Raises:
            TokenAcquisitionError: No continuation token is available.
            UpstreamError: duckchat could not be reached or rejected the request.
        """
        token = await self.resolve_token(chat_request, provided_token)
        upstream = await self.client.open_chat(token, chat_request)
        next_token = upstream.token
        logger.debug(f"Next conversation token: {next_token}")
        headers = {TOKEN_HEADER: next_token}

        if chat_request.stream:
            logger.debug("Using stream API")
            return StreamingResponse(
                self._stream_reply(chat_request, upstream, disconnect_checker),
                headers={**headers, "Cache-Control": "no-cache"},
                media_type="text/event-stream",
                # Runs even when the body iterator is never started
                background=BackgroundTask(upstream.aclose),
            )

        logger.debug("Using normal API")
        try:
            completion = await aggregate_completion(
                decode_frames(upstream.aiter_bytes()),
                completion_id=self.settings.completion_id,
                model=chat_request.model,
                history=chat_request.contents,
                state_store=self.state_store,
                token=next_token,
            )
        finally:
            await upstream.aclose()
        return JSONResponse(completion, headers=headers)

    async def _stream_reply(
        self,
        chat_request: ChatRequest,
        upstream: UpstreamStream,
        disconnect_checker: Optional[Callable[[], Awaitable[bool]]],
    ) -> AsyncIterator[bytes]:
        adapter = ChatToOpenAIStreamAdapter(
            completion_id=self.settings.completion_id,
            model=chat_request.model,
            history=chat_request.contents,
            state_store=self.state_store,
            token=upstream.token,
        )
        events = decode_frames(_read_upstream(upstream, disconnect_checker))
        try:
            async for out_chunk in adapter.adapt_stream(events):
                yield out_chunk
        except asyncio.CancelledError:
            logger.info(f"Streaming reply for {chat_request.model} cancelled by client")
            raise
        except Exception as e:
            logger.error(f"Error during streaming reply for {chat_request.model}: {e}")
            raise
        finally:
            await upstream.aclose()
            logger.debug(f"Stream finished for {chat_request.model}, phase={adapter.phase.value}")


async def _read_upstream(
    upstream: UpstreamStream,
    disconnect_checker: Optional[Callable[[], Awaitable[bool]]] = None,
) -> AsyncIterator[bytes]:
    """Yield upstream bytes, stopping as soon as the client goes away."""
    stream = upstream.aiter_bytes()
    while True:
        if disconnect_checker and await disconnect_checker():
            raise asyncio.CancelledError("client disconnected")
        try:
            chunk = await stream.__anext__()
        except StopAsyncIteration:
            break
        if chunk:
            yield chunk
