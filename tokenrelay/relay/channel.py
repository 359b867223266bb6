"""Byte channels that a relay session writes frames onto.

ByteChannel is the minimal duplex surface the encoder needs. MemoryChannel
is a bounded in-process implementation: writers suspend while the buffer
is full (backpressure), readers drain it, and either side can close it.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from tokenrelay.relay.errors import ChannelClosedError


@runtime_checkable
class ByteChannel(Protocol):
    """Writer-side view of a per-request byte stream."""

    @property
    def closed(self) -> bool:
        """True once no further writes will be accepted."""
        ...

    async def write(self, data: bytes) -> None:
        """Write bytes, suspending under backpressure.

        Raises ChannelClosedError if the channel is or becomes closed.
        """
        ...

    async def aclose(self) -> None:
        """Close the channel after the last write."""
        ...

    async def wait_closed(self) -> None:
        """Suspend until the channel is closed by either side."""
        ...


class MemoryChannel:
    """Bounded in-memory byte channel.

    The writer calls write()/aclose(); the reader iterates the channel or
    calls read(). abort() is the reader hanging up: buffered bytes are
    dropped and pending or future writes fail with ChannelClosedError.
    """

    def __init__(self, maxsize: int = 16) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        self._maxsize = maxsize
        self._chunks: deque[bytes] = deque()
        self._cond = asyncio.Condition()
        self._closed = asyncio.Event()
        self._aborted = False

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def write(self, data: bytes) -> None:
        async with self._cond:
            await self._cond.wait_for(
                lambda: self.closed or len(self._chunks) < self._maxsize
            )
            if self.closed:
                raise ChannelClosedError("channel is closed")
            self._chunks.append(data)
            self._cond.notify_all()

    async def read(self) -> bytes:
        """Return the next chunk, or b"" once closed and drained."""
        async with self._cond:
            await self._cond.wait_for(lambda: self._chunks or self.closed)
            if self._aborted or not self._chunks:
                return b""
            data = self._chunks.popleft()
            self._cond.notify_all()
            return data

    async def aclose(self) -> None:
        async with self._cond:
            self._closed.set()
            self._cond.notify_all()

    async def abort(self) -> None:
        async with self._cond:
            self._aborted = True
            self._chunks.clear()
            self._closed.set()
            self._cond.notify_all()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            data = await self.read()
            if not data:
                return
            yield data
