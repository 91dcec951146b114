"""duckchat -> OpenAI Chat Completions translation."""

from .stream_adapter import ChatToOpenAIStreamAdapter, StreamPhase
from .translator import (
    aggregate_completion,
    build_chat_chunk,
    build_chat_completion,
    collect_text,
)

__all__ = [
    "ChatToOpenAIStreamAdapter",
    "StreamPhase",
    "aggregate_completion",
    "build_chat_chunk",
    "build_chat_completion",
    "collect_text",
]
