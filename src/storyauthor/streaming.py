"""Incremental decoder for streamed chat completions.

The provider sends ``data: `` lines, each carrying either a JSON chunk
``{"choices": [{"delta": {"content": "..."}}]}`` or the ``[DONE]`` sentinel.
Bytes arrive in arbitrary pieces; the decoder carries the unfinished tail of
the last line (and any split UTF-8 sequence) over to the next feed.
"""

from __future__ import annotations

import codecs
import json
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger()

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class StreamDelta:
    text: str


@dataclass(frozen=True)
class StreamDone:
    pass


StreamEvent = StreamDelta | StreamDone


def extract_delta(chunk: Any) -> str | None:
    """Return ``choices[0].delta.content`` or ``None`` when the shape lacks it."""
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


class ChunkDecoder:
    """Turns raw body bytes into ordered :data:`StreamEvent` values."""

    def __init__(self) -> None:
        self._text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, data: bytes) -> list[StreamEvent]:
        self._buffer += self._text.decode(data)
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> list[StreamEvent]:
        """Decode whatever remains once the body has ended."""
        tail = self._buffer + self._text.decode(b"", final=True)
        self._buffer = ""
        return self._decode_lines([tail])

    def _decode_lines(self, lines: list[str]) -> list[StreamEvent]:
        events: list[StreamEvent] = []
        for line in lines:
            event = self._decode_line(line.rstrip("\r"))
            if event is not None:
                events.append(event)
        return events

    def _decode_line(self, line: str) -> StreamEvent | None:
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :]
        if data == DONE_SENTINEL:
            return StreamDone()

        try:
            chunk = json.loads(data)
        except json.JSONDecodeError:
            log.debug("stream_line_skipped", line=line[:200])
            return None

        content = extract_delta(chunk)
        if not content:
            return None
        return StreamDelta(content)
