"""duckchat -> OpenAI Chat Completions translation.

Builds the OpenAI-shaped objects the proxy returns and folds a whole duckchat
event stream into a single (non-streaming) completion.

Reference:
- OpenAI Chat Completions: https://platform.openai.com/docs/api-reference/chat
"""

from __future__ import annotations

import logging
import time
from typing import AsyncIterator, Optional, Sequence

from ..conversation.fingerprint import model_fingerprint
from ..conversation.state_store import ConversationStateStore
from ..core.sse import EventKind, UpstreamEvent
from ..types.chat import ChatCompletionChunk, ChatCompletionResponse, Delta

logger = logging.getLogger("duckchat-proxy")


def build_chat_chunk(
    completion_id: str,
    model: str,
    delta: Delta,
    finish_reason: Optional[str] = None,
    created: Optional[int] = None,
) -> ChatCompletionChunk:
    """Build a ``chat.completion.chunk`` with a single choice."""
    return {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()) if created is None else created,
        "model": model,
        "system_fingerprint": model_fingerprint(model),
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
                "content_filter_results": None,
            }
        ],
    }


def build_chat_completion(
    completion_id: str,
    model: str,
    content: str,
    created: Optional[int] = None,
) -> ChatCompletionResponse:
    """Build a ``chat.completion`` object.

    duckchat does not report token usage, so every usage counter is zero.
    """
    return {
        "id": completion_id,
        "object": "chat.completion",
        "created": int(time.time()) if created is None else created,
        "model": model,
        "system_fingerprint": model_fingerprint(model),
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "logprobs": None,
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
    }


async def collect_text(events: AsyncIterator[UpstreamEvent]) -> str:
    """Concatenate the text of every message delta, in arrival order."""
    parts: list[str] = []
    async for event in events:
        if event.kind is EventKind.MESSAGE_DELTA and event.text:
            parts.append(event.text)
        elif event.kind is EventKind.MALFORMED:
            logger.debug(f"Skipping malformed frame: {event.reason}")
    return "".join(parts)


async def aggregate_completion(
    events: AsyncIterator[UpstreamEvent],
    *,
    completion_id: str,
    model: str,
    history: Sequence[str],
    state_store: ConversationStateStore,
    token: str,
) -> ChatCompletionResponse:
    """Drain ``events`` into one completion and remember the exchange.

    The renewed ``token`` is stored under the fingerprint of ``history`` plus
    the assistant reply, so the next turn can be resumed without a header.
    """
    content = await collect_text(events)
    response = build_chat_completion(completion_id, model, content)
    await state_store.remember_exchange(history, content, token)
    logger.debug(f"Aggregated completion for {model}: {len(content)} chars")
    return response
