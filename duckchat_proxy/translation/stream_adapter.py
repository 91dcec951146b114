"""Stream adapter for converting duckchat frames to OpenAI chat completion SSE.

duckchat Events (see ``core.sse`` for the termination variants):
    data: {"role":"assistant","message":"Hi","action":"success",...}
    data: {"role":"assistant","message":" there","action":"success",...}
    data: {"action":"success",...}
    data: [DONE]

OpenAI Chat Completion Events:
    data: {"object":"chat.completion.chunk","choices":[{"index":0,"delta":{"role":"assistant","content":"Hi"},"finish_reason":null}]}
    data: {"object":"chat.completion.chunk","choices":[{"index":0,"delta":{"role":"assistant","content":" there"},"finish_reason":"stop"}]}
    data: [DONE]

Which duckchat event ends a turn is only known once it arrives, so the adapter
always holds back the most recent content chunk until the next event shows
whether it was the last one.
"""

import enum
import logging
from typing import AsyncIterator, Optional, Sequence

from ..conversation.state_store import ConversationStateStore
from ..core.sse import SSE_DONE, EventKind, UpstreamEvent, encode_sse
from ..types.chat import ChatCompletionChunk
from .translator import build_chat_chunk

logger = logging.getLogger("duckchat-proxy")


class StreamPhase(enum.Enum):
    STREAMING = "streaming"
    HOLDING = "holding"
    DONE = "done"


class ChatToOpenAIStreamAdapter:
    """Converts classified duckchat events into OpenAI chunk SSE bytes.

    This adapter maintains state during streaming to:
    - Hold back the latest delta chunk (one-event lookahead)
    - Accumulate the reply text for the continuity fingerprint
    - Emit exactly one ``[DONE]`` however the upstream ends the turn
    """

    def __init__(
        self,
        completion_id: str,
        model: str,
        history: Sequence[str],
        state_store: ConversationStateStore,
        token: str,
    ):
        """Initialize the stream adapter.

        Args:
            completion_id: The ``id`` placed on every chunk
            model: Model name echoed on every chunk
            history: Contents of the request's turns, in order
            state_store: Where the renewed token is remembered
            token: The continuation token duckchat issued with this reply
        """
        self.completion_id = completion_id
        self.model = model
        self.history = list(history)
        self.state_store = state_store
        self.token = token

        self.phase = StreamPhase.STREAMING
        self.pending_chunk: Optional[ChatCompletionChunk] = None
        self.message_parts: list[str] = []
        self.persisted_key: Optional[str] = None

    @property
    def accumulated_text(self) -> str:
        return "".join(self.message_parts)

    def _flush_pending(self) -> list[bytes]:
        if self.pending_chunk is None:
            return []
        chunk = self.pending_chunk
        self.pending_chunk = None
        return [encode_sse(chunk)]

    async def _persist(self) -> None:
        if not self.message_parts:
            logger.debug("Stream produced no text, not remembering exchange")
            return
        self.persisted_key = await self.state_store.remember_exchange(
            self.history, self.accumulated_text, self.token
        )

    async def process_event(self, event: UpstreamEvent) -> list[bytes]:
        """Advance the state machine by one event.

        Returns:
            SSE records to send to the client, possibly none.
        """
        if self.phase is StreamPhase.DONE:
            return []

        if event.kind is EventKind.MESSAGE_DELTA:
            output = self._flush_pending()
            self.pending_chunk = build_chat_chunk(
                self.completion_id,
                self.model,
                {"role": event.role or "assistant", "content": event.text or ""},
            )
            self.message_parts.append(event.text or "")
            self.phase = StreamPhase.HOLDING
            return output

        if event.is_end_of_turn:
            # The held chunk was the last one.
            if self.pending_chunk is not None:
                self.pending_chunk["choices"][0]["finish_reason"] = "stop"
            output = self._flush_pending()
            await self._persist()
            output.append(SSE_DONE)
            self.phase = StreamPhase.DONE
            return output

        if event.kind is EventKind.DONE_MARKER:
            output = self._flush_pending()
            output.append(
                encode_sse(build_chat_chunk(self.completion_id, self.model, {}, finish_reason="stop"))
            )
            await self._persist()
            output.append(SSE_DONE)
            self.phase = StreamPhase.DONE
            return output

        if event.kind is EventKind.MALFORMED:
            logger.debug(f"Ignoring malformed frame: {event.reason}")
        return []

    def finish(self) -> list[bytes]:
        """Handle end of data without a terminal event.

        The held chunk goes out unchanged. There is no ``[DONE]`` and nothing
        is remembered, since the turn was never confirmed complete.
        """
        if self.phase is StreamPhase.DONE:
            return []
        logger.warning(f"duckchat stream for {self.model} ended without a terminal event")
        output = self._flush_pending()
        self.phase = StreamPhase.DONE
        return output

    async def adapt_stream(self, events: AsyncIterator[UpstreamEvent]) -> AsyncIterator[bytes]:
        """Yield client SSE bytes for an upstream event stream."""
        async for event in events:
            for out in await self.process_event(event):
                yield out
        for out in self.finish():
            yield out
