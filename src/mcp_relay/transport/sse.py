"""Server-Sent Events wire format.

Frame layout (one event)::

    id: <optional>
    event: <optional>
    retry: <optional, milliseconds>
    data: <line 1>
    data: <line 2>
    <blank line>

Multi-line data is split into one ``data:`` line per line. Comment frames
(``: text`` followed by a blank line) carry no event or data and are
ignored by EventSource consumers; they keep idle connections alive.

Example:
    >>> encode_event(OutboundEvent(data={"id": 1}, event="message"))
    'event: message\\ndata: {"id":1}\\n\\n'
    >>> encode_comment()
    ': heartbeat\\n\\n'
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder
from pydantic import Field, field_validator

from mcp_relay.models.base import RelayBaseModel

SSE_MEDIA_TYPE = "text/event-stream"

# Response headers for a stream; X-Accel-Buffering disables proxy buffering (nginx)
SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

HEARTBEAT_COMMENT = "heartbeat"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class OutboundEvent(RelayBaseModel):
    """One event pushed through a stream session.

    Attributes:
        data: Text sent as-is, or any JSON-serializable value encoded compactly
        event: Optional event name (``event:`` field)
        id: Optional event id (``id:`` field)
        retry: Optional reconnection delay hint in milliseconds
    """

    data: Any = Field(default="", description="Event payload")
    event: str | None = Field(default=None, description="Event name")
    id: str | None = Field(default=None, description="Event id")
    retry: int | None = Field(default=None, ge=0, description="Reconnect delay (ms)")

    @field_validator("event", "id")
    @classmethod
    def _single_line(cls, value: str | None) -> str | None:
        if value is not None and _LINE_BREAK.search(value):
            raise ValueError("must not contain line breaks")
        return value

    def data_text(self) -> str:
        """Return the payload as text, JSON-encoding non-string data."""
        if isinstance(self.data, str):
            return self.data
        return json.dumps(jsonable_encoder(self.data), separators=(",", ":"))


def encode_event(event: OutboundEvent) -> str:
    """Encode one event as an SSE frame terminated by a blank line."""
    lines: list[str] = []
    if event.id is not None:
        lines.append(f"id: {event.id}")
    if event.event is not None:
        lines.append(f"event: {event.event}")
    if event.retry is not None:
        lines.append(f"retry: {event.retry}")
    lines.extend(f"data: {line}" for line in _LINE_BREAK.split(event.data_text()))
    return "\n".join(lines) + "\n\n"


def encode_comment(text: str = HEARTBEAT_COMMENT) -> str:
    """Encode a comment frame (one ``: `` line per line of text)."""
    return "".join(f": {line}\n" for line in _LINE_BREAK.split(text)) + "\n"


@dataclass
class SseFrame:
    """A decoded SSE frame: either an event or a comment-only frame."""

    data: str | None = None
    event: str | None = None
    id: str | None = None
    retry: int | None = None
    comment: str | None = None

    @property
    def is_comment(self) -> bool:
        return self.data is None and self.event is None and self.comment is not None

    def json(self) -> Any:
        """Decode ``data`` as JSON.

        Raises:
            ValueError: If the frame has no data or it is not JSON
        """
        if self.data is None:
            raise ValueError("frame has no data")
        return json.loads(self.data)


class SseDecoder:
    """Incremental SSE parser for chunked stream bodies.

    Example:
        >>> decoder = SseDecoder()
        >>> decoder.feed("data: a\\n")
        []
        >>> [frame.data for frame in decoder.feed("\\n")]
        ['a']
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._current = SseFrame()
        self._data_lines: list[str] = []
        self._comment_lines: list[str] = []

    def feed(self, chunk: str) -> list[SseFrame]:
        self._buffer += chunk
        frames: list[SseFrame] = []
        while True:
            match = _LINE_BREAK.search(self._buffer)
            # A trailing "\r" may be the first half of "\r\n"
            if match is None or (match.group() == "\r" and match.end() == len(self._buffer)):
                break
            line = self._buffer[: match.start()]
            self._buffer = self._buffer[match.end() :]
            frame = self._process_line(line)
            if frame is not None:
                frames.append(frame)
        return frames

    def _process_line(self, line: str) -> SseFrame | None:
        if line == "":
            return self._dispatch()
        if line.startswith(":"):
            self._comment_lines.append(line[1:].removeprefix(" "))
            return None
        field, sep, value = line.partition(":")
        if sep:
            value = value.removeprefix(" ")
        if field == "data":
            self._data_lines.append(value)
        elif field == "event":
            self._current.event = value
        elif field == "id":
            self._current.id = value
        elif field == "retry" and value.isdigit():
            self._current.retry = int(value)
        return None

    def _dispatch(self) -> SseFrame | None:
        frame = self._current
        if self._data_lines:
            frame.data = "\n".join(self._data_lines)
        if self._comment_lines:
            frame.comment = "\n".join(self._comment_lines)
        self._current = SseFrame()
        self._data_lines = []
        self._comment_lines = []
        if frame == SseFrame():
            return None
        return frame


def decode_frames(text: str) -> list[SseFrame]:
    """Decode every complete frame in ``text``."""
    return SseDecoder().feed(text)
