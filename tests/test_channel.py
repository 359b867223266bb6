"""Tests for in-memory byte channels."""

from __future__ import annotations

import asyncio

import pytest

from tokenrelay.relay.channel import ByteChannel, MemoryChannel
from tokenrelay.relay.errors import ChannelClosedError


class TestMemoryChannel:
    def test_satisfies_protocol(self):
        assert isinstance(MemoryChannel(), ByteChannel)

    def test_rejects_zero_capacity(self):
        with pytest.raises(ValueError):
            MemoryChannel(maxsize=0)

    @pytest.mark.asyncio()
    async def test_write_then_read(self):
        channel = MemoryChannel()
        await channel.write(b"one")
        await channel.write(b"two")
        assert await channel.read() == b"one"
        assert await channel.read() == b"two"

    @pytest.mark.asyncio()
    async def test_close_drains_then_eof(self):
        channel = MemoryChannel()
        await channel.write(b"last")
        await channel.aclose()
        assert channel.closed
        assert await channel.read() == b"last"
        assert await channel.read() == b""

    @pytest.mark.asyncio()
    async def test_iterates_until_closed(self):
        channel = MemoryChannel()
        for chunk in (b"a", b"b", b"c"):
            await channel.write(chunk)
        await channel.aclose()
        assert [chunk async for chunk in channel] == [b"a", b"b", b"c"]

    @pytest.mark.asyncio()
    async def test_write_after_close_raises(self):
        channel = MemoryChannel()
        await channel.aclose()
        with pytest.raises(ChannelClosedError):
            await channel.write(b"x")

    @pytest.mark.asyncio()
    async def test_write_suspends_when_full(self):
        channel = MemoryChannel(maxsize=1)
        await channel.write(b"first")
        pending = asyncio.ensure_future(channel.write(b"second"))
        await asyncio.sleep(0.01)
        assert not pending.done()

        assert await channel.read() == b"first"
        await asyncio.wait_for(pending, timeout=1)
        assert await channel.read() == b"second"

    @pytest.mark.asyncio()
    async def test_abort_fails_blocked_writer(self):
        channel = MemoryChannel(maxsize=1)
        await channel.write(b"first")
        pending = asyncio.ensure_future(channel.write(b"second"))
        await asyncio.sleep(0.01)

        await channel.abort()
        with pytest.raises(ChannelClosedError):
            await asyncio.wait_for(pending, timeout=1)

    @pytest.mark.asyncio()
    async def test_abort_drops_buffered_data(self):
        channel = MemoryChannel()
        await channel.write(b"unread")
        await channel.abort()
        assert channel.aborted
        assert await channel.read() == b""

    @pytest.mark.asyncio()
    async def test_wait_closed(self):
        channel = MemoryChannel()
        waiter = asyncio.ensure_future(channel.wait_closed())
        await asyncio.sleep(0)
        assert not waiter.done()
        await channel.abort()
        await asyncio.wait_for(waiter, timeout=1)
