"""Event-stream framing for relayed tokens.

Each frame is one text record: a ``data:`` line holding a JSON object,
terminated by a blank line::

    data: {"content": "Hel"}

    data: {"done": true}

JSON is ASCII-escaped, so newlines or non-ASCII characters in model
output never appear raw inside a record. Readers must not assume one
network read equals one record: FrameDecoder buffers bytes and only
parses a record once its terminating blank line has arrived.
"""

from __future__ import annotations

import json
import logging
import re

from tokenrelay.schemas.streaming import (
    ContentFrame,
    DoneFrame,
    ErrorFrame,
    Frame,
    TerminalFrame,
    UnknownFrame,
)

logger = logging.getLogger(__name__)

DATA_FIELD = "data"
MEDIA_TYPE = "text/event-stream"

# Headers that keep proxies and browsers from buffering or caching the stream
STREAM_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

# A record ends at the first blank line; tolerate CRLF producers too
_RECORD_END_RE = re.compile(rb"\r?\n\r?\n")


def encode_frame(frame: ContentFrame | TerminalFrame) -> bytes:
    """Serialize a frame as one ASCII-safe event-stream record."""
    payload = json.dumps(frame.to_payload(), ensure_ascii=True, separators=(",", ":"))
    return f"{DATA_FIELD}: {payload}\n\n".encode("ascii")


def decode_payload(text: str) -> Frame:
    """Decode a record's JSON payload into exactly one Frame variant.

    Checks are applied in order: a non-empty string ``content``, then
    ``done`` set to true, then a non-empty string ``error``. Anything
    else, including invalid JSON, yields UnknownFrame.
    """
    try:
        data = json.loads(text)
    except ValueError:
        return UnknownFrame(raw=text)
    if not isinstance(data, dict):
        return UnknownFrame(raw=text)

    content = data.get("content")
    if isinstance(content, str) and content:
        return ContentFrame(content=content)
    if data.get("done") is True:
        return DoneFrame()
    error = data.get("error")
    if isinstance(error, str) and error:
        return ErrorFrame(error=error)
    return UnknownFrame(raw=text)


def parse_record(record: str) -> Frame | None:
    """Extract the data payload of one record and decode it.

    Returns None for records without any ``data`` field (comments,
    keep-alives, bare ``event:`` lines).
    """
    data_lines: list[str] = []
    for line in record.splitlines():
        if not line or line.startswith(":"):
            continue
        field, sep, value = line.partition(":")
        if field != DATA_FIELD:
            continue
        if not sep:
            data_lines.append("")
            continue
        data_lines.append(value[1:] if value.startswith(" ") else value)

    if not data_lines:
        return None
    return decode_payload("\n".join(data_lines))


class FrameDecoder:
    """Incremental record splitter over a pending-bytes buffer.

    feed() accepts arbitrary byte chunks and returns every frame whose
    record became complete. Bytes after the last blank line stay buffered
    until more input arrives.
    """

    def __init__(self) -> None:
        self._pending = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet forming a complete record."""
        return len(self._pending)

    def feed(self, chunk: bytes) -> list[Frame]:
        self._pending.extend(chunk)
        frames: list[Frame] = []
        while True:
            match = _RECORD_END_RE.search(self._pending)
            if match is None:
                break
            raw = bytes(self._pending[: match.start()])
            del self._pending[: match.end()]
            if not raw.strip():
                continue
            frame = parse_record(raw.decode("utf-8", errors="replace"))
            if frame is not None:
                frames.append(frame)
        return frames

    def reset(self) -> None:
        self._pending.clear()
