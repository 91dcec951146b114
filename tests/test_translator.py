"""Tests for the aggregate (non-streaming) translator."""

import pytest

from duckchat_proxy.conversation import ConversationStateStore, MemoryKeyValueStore
from duckchat_proxy.conversation.fingerprint import model_fingerprint
from duckchat_proxy.core.sse import EventKind, UpstreamEvent, classify_frame
from duckchat_proxy.translation import (
    aggregate_completion,
    build_chat_chunk,
    build_chat_completion,
    collect_text,
)


async def _aiter(events):
    for event in events:
        yield event


def delta(text: str) -> UpstreamEvent:
    return UpstreamEvent(EventKind.MESSAGE_DELTA, role="assistant", text=text)


class TestBuildChatCompletion:
    """Tests for the chat.completion envelope."""

    def test_shape(self):
        completion = build_chat_completion("chatcmpl-duckduckgo-ai", "gpt-4o-mini", "Hi there", created=123)
        assert completion == {
            "id": "chatcmpl-duckduckgo-ai",
            "object": "chat.completion",
            "created": 123,
            "model": "gpt-4o-mini",
            "system_fingerprint": model_fingerprint("gpt-4o-mini"),
            "choices": [
                {
                    "index": 0,
                    "message": {"role": "assistant", "content": "Hi there"},
                    "logprobs": None,
                    "finish_reason": "stop",
                }
            ],
            "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
        }

    def test_chunk_shape(self):
        chunk = build_chat_chunk("id-1", "m", {"role": "assistant", "content": "x"}, created=5)
        assert chunk["object"] == "chat.completion.chunk"
        assert chunk["created"] == 5
        assert chunk["choices"] == [
            {
                "index": 0,
                "delta": {"role": "assistant", "content": "x"},
                "finish_reason": None,
                "content_filter_results": None,
            }
        ]


class TestAggregateCompletion:
    """Tests for folding a whole stream into one completion."""

    @pytest.mark.asyncio
    async def test_concatenates_deltas(self):
        events = [delta("Hi"), delta(" there"), UpstreamEvent(EventKind.DONE_MARKER)]
        assert await collect_text(_aiter(events)) == "Hi there"

    @pytest.mark.asyncio
    async def test_skips_non_delta_events(self):
        events = [
            delta("Hi"),
            classify_frame("{not json"),
            UpstreamEvent(EventKind.BLANK_FRAME),
            delta(" there"),
            UpstreamEvent(EventKind.SUCCESS_EMPTY_MESSAGE),
        ]
        assert await collect_text(_aiter(events)) == "Hi there"

    @pytest.mark.asyncio
    async def test_builds_completion_and_persists(self):
        store = ConversationStateStore(MemoryKeyValueStore())
        completion = await aggregate_completion(
            _aiter([delta("Hi"), delta(" there"), UpstreamEvent(EventKind.DONE_MARKER)]),
            completion_id="chatcmpl-duckduckgo-ai",
            model="gpt-4o-mini",
            history=["Hello"],
            state_store=store,
            token="next-token",
        )
        assert completion["choices"][0]["message"]["content"] == "Hi there"
        assert completion["choices"][0]["finish_reason"] == "stop"
        assert completion["usage"]["total_tokens"] == 0
        assert await store.lookup_history(["Hello", "Hi there"]) == "next-token"

    @pytest.mark.asyncio
    async def test_empty_token_is_not_persisted(self):
        store = ConversationStateStore(MemoryKeyValueStore())
        await aggregate_completion(
            _aiter([delta("Hi")]),
            completion_id="id",
            model="m",
            history=["Hello"],
            state_store=store,
            token="",
        )
        assert len(store.backend) == 0
