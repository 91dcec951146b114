"""SSE (Server-Sent Events) framing for the duckchat stream and the client stream.

duckchat sends one event per line:

    data: {"role":"assistant","message":"Hel","created":1718000000,"action":"success","id":"...","model":"..."}
    data: {"role":"assistant","message":"lo","created":1718000000,"action":"success","id":"...","model":"..."}
    data: {"action":"success","id":"...","created":1718000000,"model":"..."}
    data: [DONE]

but how a turn ends depends on the model behind it. Observed so far:
- Claude: several empty ``message`` frames, then ``[DONE]``
- GPT: a frame without a ``message`` field, then ``[DONE]``
- Llama: an empty ``message`` frame and no ``[DONE]`` at all

Network reads do not line up with frame boundaries, so frames are reassembled
from a carry-over buffer before classification.
"""

import codecs
import enum
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

from .exceptions import FrameParseError

logger = logging.getLogger("duckchat-proxy")

FRAME_SEPARATOR = "\n"
# "data: " is stripped by position; duckchat never varies it.
FRAME_PREFIX_LENGTH = 6
UPSTREAM_DONE = "[DONE]"

SSE_DONE = b"data: [DONE]\n\n"


class EventKind(enum.Enum):
    MESSAGE_DELTA = "message_delta"
    SUCCESS_NO_MESSAGE = "success_no_message"
    SUCCESS_EMPTY_MESSAGE = "success_empty_message"
    BLANK_FRAME = "blank_frame"
    DONE_MARKER = "done_marker"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class UpstreamEvent:
    """One classified duckchat frame.

    ``role`` and ``text`` are only set for MESSAGE_DELTA, ``reason`` only for
    MALFORMED. ``raw`` is the frame after prefix stripping.
    """

    kind: EventKind
    raw: str = ""
    role: Optional[str] = None
    text: Optional[str] = None
    reason: Optional[str] = None

    @property
    def is_end_of_turn(self) -> bool:
        return self.kind in (EventKind.SUCCESS_NO_MESSAGE, EventKind.SUCCESS_EMPTY_MESSAGE)


def encode_sse(data: Any) -> bytes:
    """Encode one ``data:`` record for the client stream."""
    if not isinstance(data, str):
        data = json.dumps(data, ensure_ascii=False)
    return f"data: {data}\n\n".encode("utf-8")


def describe_error_frame(parsed: Any) -> Optional[str]:
    """Return a description if ``parsed`` is a duckchat error frame.

    Detects ``{"action":"error","status":429,"type":"ERR_CONVERSATION_LIMIT"}``.
    """
    if not isinstance(parsed, dict) or parsed.get("action") != "error":
        return None
    error_type = parsed.get("type", "unknown")
    status = parsed.get("status", "unknown")
    return f"duckchat stream error: {error_type} (status={status})"


def _parse_payload(frame: str) -> dict[str, Any]:
    try:
        parsed = json.loads(frame)
    except json.JSONDecodeError as exc:
        raise FrameParseError(f"invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise FrameParseError(f"expected an object, got {type(parsed).__name__}")
    return parsed


def classify_frame(frame: str) -> UpstreamEvent:
    """Classify one prefix-stripped frame into an UpstreamEvent.

    Never raises; anything unusable becomes MALFORMED.
    """
    if not frame.strip():
        return UpstreamEvent(EventKind.BLANK_FRAME, raw=frame)
    if frame == UPSTREAM_DONE:
        return UpstreamEvent(EventKind.DONE_MARKER, raw=frame)

    try:
        parsed = _parse_payload(frame)
    except FrameParseError as exc:
        logger.debug(f"Frame parse error: {exc.message}: {frame[:100]}")
        return UpstreamEvent(EventKind.MALFORMED, raw=frame, reason=exc.message)

    message = parsed.get("message")
    if isinstance(message, str) and message:
        role = parsed.get("role")
        if not isinstance(role, str) or not role:
            role = "assistant"
        return UpstreamEvent(EventKind.MESSAGE_DELTA, raw=frame, role=role, text=message)

    if parsed.get("action") == "success":
        if "message" not in parsed:
            return UpstreamEvent(EventKind.SUCCESS_NO_MESSAGE, raw=frame)
        if message == "":
            return UpstreamEvent(EventKind.SUCCESS_EMPTY_MESSAGE, raw=frame)

    error = describe_error_frame(parsed)
    if error:
        logger.warning(error)
        return UpstreamEvent(EventKind.MALFORMED, raw=frame, reason=error)

    return UpstreamEvent(EventKind.MALFORMED, raw=frame, reason="unrecognized frame")


class FrameDecoder:
    """Reassembles newline-delimited frames from arbitrarily split reads."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[UpstreamEvent]:
        """Add ``chunk`` and return the events for every completed frame."""
        if not chunk:
            return []
        self._buffer += self._decoder.decode(chunk)
        parts = self._buffer.split(FRAME_SEPARATOR)
        self._buffer = parts.pop()
        # CRLF-framed streams leave a trailing \r on every frame
        return [classify_frame(part.rstrip("\r")[FRAME_PREFIX_LENGTH:]) for part in parts]

    @property
    def pending(self) -> str:
        """Text of the incomplete trailing frame, if any."""
        return self._buffer

    def close(self) -> None:
        """Discard any incomplete trailing frame."""
        if self._buffer:
            logger.debug(f"Discarding incomplete frame at end of stream: {self._buffer[:100]}")
        self._buffer = ""
        self._decoder.reset()


async def decode_frames(stream: AsyncIterator[bytes]) -> AsyncIterator[UpstreamEvent]:
    """Yield classified events from a raw duckchat byte stream."""
    decoder = FrameDecoder()
    async for chunk in stream:
        for event in decoder.feed(chunk):
            yield event
    decoder.close()
