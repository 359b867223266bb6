"""Client-side frame decoding and text accumulation.

StreamAccumulator turns raw bytes from a relay response into consumer
notifications. It buffers partial records, appends each content frame
to the accumulation buffer and reports it, and stops at the first
terminal frame. Records that cannot be decoded are skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from tokenrelay.relay.cancellation import SessionLifecycle, SessionState
from tokenrelay.relay.wire import FrameDecoder
from tokenrelay.schemas.streaming import ContentFrame, DoneFrame, ErrorFrame, Frame

logger = logging.getLogger(__name__)

# Callback signatures; each may be sync or return an awaitable
ChunkCallback = Callable[[str], Any]
CompleteCallback = Callable[[str], Any]
ErrorCallback = Callable[[str], Any]


@dataclass
class StreamCallbacks:
    """Notification sink owned by one client.

    on_chunk receives each content increment, on_complete the full text,
    on_error the failure message. Any of them may be a coroutine function.
    """

    on_chunk: ChunkCallback | None = None
    on_complete: CompleteCallback | None = None
    on_error: ErrorCallback | None = None


async def _notify(callback: Callable[[str], Any] | None, value: str) -> None:
    if callback is None:
        return
    result = callback(value)
    if asyncio.iscoroutine(result):
        await result


class StreamAccumulator:
    """Accumulation buffer plus frame decoding for a single stream.

    A new accumulator is created for every request, so buffers and state
    never leak between sessions.
    """

    def __init__(self, callbacks: StreamCallbacks | None = None) -> None:
        self._callbacks = callbacks or StreamCallbacks()
        self._decoder = FrameDecoder()
        self._parts: list[str] = []
        self._lifecycle = SessionLifecycle("accumulator")
        self._lifecycle.start()
        self._error: str | None = None
        self._skipped = 0

    # ── State ─────────────────────────────────────────────────

    @property
    def text(self) -> str:
        """Everything accumulated so far."""
        return "".join(self._parts)

    @property
    def state(self) -> SessionState:
        return self._lifecycle.state

    @property
    def terminal(self) -> bool:
        return self._lifecycle.state.is_terminal

    @property
    def error(self) -> str | None:
        """Failure message once the stream has failed."""
        return self._error

    @property
    def skipped(self) -> int:
        """Count of malformed or unrecognized records ignored."""
        return self._skipped

    # ── Input ─────────────────────────────────────────────────

    async def feed(self, chunk: bytes) -> None:
        """Consume one chunk of bytes from the transport.

        Bytes arriving after a terminal frame are ignored.
        """
        if self.terminal:
            return
        for frame in self._decoder.feed(chunk):
            await self._apply(frame)
            if self.terminal:
                return

    async def fail(self, message: str) -> None:
        """End the stream with a failure not carried by a frame.

        Used for transport errors, timeouts and truncated streams. A no-op
        once the stream is already terminal.
        """
        if self.terminal:
            return
        self._error = message
        self._lifecycle.fail()
        await _notify(self._callbacks.on_error, message)

    def cancel(self) -> bool:
        """Freeze the buffer without any notification.

        Returns True if the stream was still active.
        """
        return self._lifecycle.cancel()

    async def _apply(self, frame: Frame) -> None:
        if isinstance(frame, ContentFrame):
            self._parts.append(frame.content)
            await _notify(self._callbacks.on_chunk, frame.content)
        elif isinstance(frame, DoneFrame):
            self._lifecycle.complete()
            await _notify(self._callbacks.on_complete, self.text)
        elif isinstance(frame, ErrorFrame):
            self._error = frame.error
            self._lifecycle.fail()
            await _notify(self._callbacks.on_error, frame.error)
        else:
            self._skipped += 1
            logger.debug("Skipping unrecognized stream record: %.80r", frame.raw)
