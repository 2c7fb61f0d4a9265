"""
Event-stream frame decoding.

Turns the raw body of a server-sent event stream into StreamEvent
records. Fragments may split a line anywhere (including inside a
multi-byte UTF-8 sequence); the decoder keeps exactly one pending
partial line between calls.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import ValidationError

from fitstream.models.events import (
    ChunkEvent,
    DoneEvent,
    ErrorEvent,
    StreamEvent,
    stream_event_adapter,
)

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"

PayloadDecoder = Callable[[Any], StreamEvent | None]


def decode_relay_payload(payload: Any) -> StreamEvent | None:
    """Decode the tagged-union relay form: {"type": "chunk", "content": ...}.

    Raises:
        ValidationError: If the payload is not a known event shape
    """
    return stream_event_adapter.validate_python(payload)


def decode_completion_payload(payload: Any) -> StreamEvent | None:
    """Decode one upstream chat-completion chunk.

    Returns None for frames carrying no text (role announcements,
    finish frames, usage frames).

    Raises:
        ValueError: If the payload is not a JSON object
    """
    if not isinstance(payload, dict):
        raise ValueError("Completion frame must be a JSON object")

    error = payload.get("error")
    if error:
        if isinstance(error, dict):
            message = str(error.get("message") or "Upstream error")
        else:
            message = str(error)
        return ErrorEvent(message=message)

    choices = payload.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None

    delta = choices[0].get("delta") or {}
    content = delta.get("content") if isinstance(delta, dict) else None
    if not isinstance(content, str) or content == "":
        return None
    return ChunkEvent(content=content)


def parse_sse_line(
    line: str,
    payload_decoder: PayloadDecoder = decode_relay_payload,
) -> StreamEvent | None:
    """Decode a single event-stream line.

    Args:
        line: One line without its terminator
        payload_decoder: Maps the parsed JSON payload to an event

    Returns:
        The decoded event, or None for blank lines, comments, other
        framing fields and malformed payloads
    """
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if not line.startswith(DATA_PREFIX.rstrip()):
        return None

    data = line[len(DATA_PREFIX.rstrip()) :].lstrip()
    if data == DONE_MARKER:
        return DoneEvent()

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug(f"Dropping malformed frame: {data[:100]!r}")
        return None

    try:
        return payload_decoder(payload)
    except (ValidationError, ValueError) as e:
        logger.debug(f"Dropping unrecognized frame: {e}")
        return None


class FrameDecoder:
    """Incremental decoder for server-sent event bodies.

    Example:
        decoder = FrameDecoder(decode_completion_payload)
        async for raw in response.aiter_bytes():
            for event in decoder.feed(raw):
                ...
        events = decoder.flush()
    """

    def __init__(self, payload_decoder: PayloadDecoder = decode_relay_payload) -> None:
        self._payload_decoder = payload_decoder
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pending(self) -> str:
        """The buffered partial line."""
        return self._buffer

    def feed(self, fragment: str | bytes) -> list[StreamEvent]:
        """Append a fragment and return the events for every completed line."""
        if isinstance(fragment, bytes):
            fragment = self._utf8.decode(fragment)
        if not fragment:
            return []

        self._buffer += fragment
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        events: list[StreamEvent] = []
        for line in lines:
            event = parse_sse_line(line, self._payload_decoder)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> list[StreamEvent]:
        """Decode whatever remains once the transport has ended."""
        tail = self._utf8.decode(b"", final=True)
        remainder = self._buffer + tail
        self._buffer = ""
        event = parse_sse_line(remainder, self._payload_decoder)
        return [event] if event is not None else []
