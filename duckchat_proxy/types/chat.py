"""Types for chat representation on both sides of the proxy.

This module defines:
- OpenAI-compatible response shapes (TypedDicts) for the completion and
  completion-chunk objects the proxy emits.
- The immutable request-side types the proxy forwards to duckchat.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from typing_extensions import TypedDict

from ..core.exceptions import InvalidRequestError


# =============================================================================
# OpenAI-Compatible Types
# =============================================================================
# Only the minimal single-choice surface is modelled. Tool calls, logprobs and
# multiple choices are never produced.


class ChatMessage(TypedDict, total=False):
    """A complete assistant message in a non-streaming response.

    Attributes:
        role: Always "assistant" for messages produced by the proxy.
        content: Full text of the assistant turn.
    """
    role: str
    content: str


class Delta(TypedDict, total=False):
    """A streamed delta of a choice in a chat completion chunk.

    Attributes:
        role: Role reported by the upstream for this fragment.
        content: Incremental text content.
    """
    role: str
    content: str


class Choice(TypedDict, total=False):
    """A choice in a chat completion response or chunk.

    Attributes:
        index: Always 0.
        delta: Incremental content (chunks only).
        message: Complete message (aggregate responses only).
        finish_reason: "stop" on the last chunk / aggregate, otherwise None.
        logprobs: Always None (aggregate responses only).
        content_filter_results: Always None (chunks only).
    """
    index: int
    delta: Delta
    message: ChatMessage
    finish_reason: str | None
    logprobs: None
    content_filter_results: None


class Usage(TypedDict):
    """Token usage. duckchat reports none, so every counter is zero."""
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict):
    """A streamed chunk of a chat completion response (OpenAI format).

    Attributes:
        id: Completion identifier, constant per deployment.
        object: "chat.completion.chunk".
        created: Unix timestamp of when the chunk was emitted.
        model: Model name echoed from the request.
        system_fingerprint: Locally derived from the model name; cosmetic.
        choices: Exactly one choice.
    """
    id: str
    object: str
    created: int
    model: str
    system_fingerprint: str
    choices: list[Choice]


class ChatCompletionResponse(TypedDict):
    """A complete (non-streaming) chat completion response (OpenAI format)."""
    id: str
    object: str
    created: int
    model: str
    system_fingerprint: str
    choices: list[Choice]
    usage: Usage


# =============================================================================
# Request-side Types
# =============================================================================


@dataclass(frozen=True)
class MessageTurn:
    """One turn of conversation history as forwarded to duckchat."""

    role: str
    content: str

    @classmethod
    def from_payload(cls, item: Any) -> "MessageTurn":
        """Build a turn from a request message, rewriting ``system`` to ``user``.

        duckchat rejects system messages, so they are sent as user turns.
        """
        if not isinstance(item, Mapping):
            raise InvalidRequestError(
                "Each message must be an object", code="invalid_message"
            )
        role = item.get("role")
        content = item.get("content")
        if not isinstance(role, str) or not role:
            raise InvalidRequestError(
                "Each message must have a string role", code="invalid_message"
            )
        if not isinstance(content, str):
            raise InvalidRequestError(
                "Each message must have string content", code="invalid_message"
            )
        if role == "system":
            role = "user"
        return cls(role=role, content=content)

    def to_upstream(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class ChatRequest:
    """A validated inbound chat completions request."""

    model: str
    turns: tuple[MessageTurn, ...]
    stream: bool = False

    @classmethod
    def from_payload(cls, payload: Any) -> "ChatRequest":
        """Validate a decoded JSON body.

        Raises:
            InvalidRequestError: If the body does not match
                ``{model: str, messages: [{role, content}], stream?: bool}``.
        """
        if not isinstance(payload, Mapping):
            raise InvalidRequestError(
                "Request body must be a JSON object", code="invalid_json_shape"
            )
        model = payload.get("model")
        if not isinstance(model, str) or not model:
            raise InvalidRequestError(
                "You must provide a model parameter", code="missing_parameter"
            )
        messages = payload.get("messages")
        if not isinstance(messages, list) or not messages:
            raise InvalidRequestError(
                "You must provide a messages array", code="missing_parameter"
            )
        stream = payload.get("stream", False)
        if stream is None:
            stream = False
        if not isinstance(stream, bool):
            raise InvalidRequestError(
                "stream must be a boolean", code="invalid_parameter"
            )
        turns = tuple(MessageTurn.from_payload(item) for item in messages)
        return cls(model=model, turns=turns, stream=stream)

    @property
    def contents(self) -> list[str]:
        """Ordered turn contents, the input to conversation fingerprints."""
        return [turn.content for turn in self.turns]

    def to_upstream(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "messages": [turn.to_upstream() for turn in self.turns],
        }
