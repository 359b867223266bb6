"""Server-side relay session: completion deltas in, framed bytes out.

A RelaySession owns one completion-source iterator, one cancellation
token and (when pumped) one output channel. It pulls deltas, encodes
each content delta as a frame and finishes with exactly one terminal
frame: ``done`` when the source ends, ``error`` when pulling fails. If
the peer goes away first, the session stops pulling, releases the source
and writes nothing further.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import uuid
from collections.abc import AsyncIterator

from tokenrelay.relay.cancellation import (
    CancellationToken,
    SessionLifecycle,
    SessionState,
    uncancel_current_task,
)
from tokenrelay.relay.channel import ByteChannel
from tokenrelay.relay.errors import ChannelClosedError, RelayTimeoutError
from tokenrelay.relay.wire import encode_frame
from tokenrelay.schemas.streaming import (
    ContentFrame,
    Delta,
    DeltaKind,
    DoneFrame,
    ErrorFrame,
    TerminalFrame,
)

logger = logging.getLogger(__name__)

# Sent when an upstream exception carries no message of its own
_GENERIC_ERROR = "Stream error occurred"


def describe_failure(error: BaseException) -> str:
    """Turn an upstream exception into the text of an error frame."""
    return str(error).strip() or _GENERIC_ERROR


class RelaySession:
    """One relay from a completion source to a single client.

    Args:
        source: Async iterator of Delta produced by a CompletionSource.
        idle_timeout: Seconds to wait for each delta before failing the
            session with a timeout error. None disables the limit.
        token: Cancellation token; a fresh one is created when omitted.
        session_id: Identifier used in log lines.
    """

    def __init__(
        self,
        source: AsyncIterator[Delta],
        *,
        idle_timeout: float | None = None,
        token: CancellationToken | None = None,
        session_id: str | None = None,
    ) -> None:
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._source = source
        self._idle_timeout = idle_timeout
        self._token = token or CancellationToken()
        self._lifecycle = SessionLifecycle(f"relay {self.session_id}")
        self._task: asyncio.Task | None = None
        self._released = False
        self._frames_sent = 0

    # ── State ─────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._lifecycle.state

    @property
    def frames_sent(self) -> int:
        """Number of frames handed to the transport so far."""
        return self._frames_sent

    @property
    def token(self) -> CancellationToken:
        return self._token

    def cancel(self) -> None:
        """Stop the session as if the peer had disconnected.

        Sets the token and, when another task is suspended inside this
        session, cancels that task so a pending pull is interrupted.
        """
        if self.state.is_terminal or self._token.cancelled:
            return
        self._token.cancel()
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    # ── Frame production ──────────────────────────────────────

    async def iter_frames(self) -> AsyncIterator[bytes]:
        """Yield encoded frames until a terminal frame or cancellation.

        Used directly as the body of a streaming HTTP response. When the
        consumer stops iterating (client disconnect), the generator is
        closed or cancelled and the session ends as CANCELLED.
        """
        self._lifecycle.start()
        self._task = asyncio.current_task()
        logger.info("Relay session %s started", self.session_id)
        try:
            while not self._token.cancelled:
                try:
                    delta = await self._pull()
                except Exception as exc:
                    message = describe_failure(exc)
                    logger.warning("Relay session %s upstream failure: %s", self.session_id, message)
                    self._lifecycle.fail()
                    yield self._emit(ErrorFrame(error=message))
                    return

                if delta is None or delta.kind is DeltaKind.END:
                    self._lifecycle.complete()
                    logger.info(
                        "Relay session %s completed (%d frames)",
                        self.session_id, self._frames_sent + 1,
                    )
                    yield self._emit(DoneFrame())
                    return

                if delta.kind is DeltaKind.ERROR:
                    message = delta.error or _GENERIC_ERROR
                    logger.warning("Relay session %s upstream failure: %s", self.session_id, message)
                    self._lifecycle.fail()
                    yield self._emit(ErrorFrame(error=message))
                    return

                if not delta.text:
                    continue
                if self._frames_sent == 0:
                    logger.info("Relay session %s first token", self.session_id)
                yield self._emit(ContentFrame(content=delta.text))

            self._mark_cancelled()
        except asyncio.CancelledError:
            self._mark_cancelled()
            if not self._token.cancelled:
                raise
            # Our own cancel() interrupted a pull; end quietly
            uncancel_current_task()
        except GeneratorExit:
            self._mark_cancelled()
            raise
        finally:
            self._task = None
            await self._release()

    async def pump(self, channel: ByteChannel) -> SessionState:
        """Write every frame onto ``channel`` and close it.

        A channel closed by the peer cancels the session: the pending pull
        is interrupted and nothing more is written. Returns the final
        session state.
        """
        watcher = asyncio.ensure_future(self._cancel_on_close(channel))
        try:
            async with contextlib.aclosing(self.iter_frames()) as frames:
                async for data in frames:
                    if channel.closed:
                        self._token.cancel()
                        break
                    try:
                        await channel.write(data)
                    except ChannelClosedError:
                        logger.info("Relay session %s: channel closed by peer", self.session_id)
                        self._token.cancel()
                        break
        except asyncio.CancelledError:
            if not self._token.cancelled:
                raise
            uncancel_current_task()
        finally:
            watcher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await watcher

        self._mark_cancelled()
        if not channel.closed:
            await channel.aclose()
        return self.state

    # ── Internals ─────────────────────────────────────────────

    def _emit(self, frame: ContentFrame | TerminalFrame) -> bytes:
        self._frames_sent += 1
        return encode_frame(frame)

    async def _pull(self) -> Delta | None:
        """Fetch the next delta, or None when the source is exhausted."""
        try:
            if self._idle_timeout is None:
                return await anext(self._source)
            timer = asyncio.timeout(self._idle_timeout)
            try:
                async with timer:
                    return await anext(self._source)
            except TimeoutError:
                if timer.expired():
                    raise RelayTimeoutError(
                        f"No data from completion source within {self._idle_timeout:g}s"
                    ) from None
                raise
        except StopAsyncIteration:
            return None

    async def _cancel_on_close(self, channel: ByteChannel) -> None:
        await channel.wait_closed()
        if self.state is SessionState.STREAMING:
            logger.info("Relay session %s: peer disconnected", self.session_id)
        self.cancel()

    def _mark_cancelled(self) -> None:
        if self._lifecycle.cancel():
            logger.info("Relay session %s cancelled", self.session_id)

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.exception("Relay session %s: error releasing completion source", self.session_id)
