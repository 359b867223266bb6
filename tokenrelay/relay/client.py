"""HTTP client for relayed token streams.

RelayClient posts a message to a relay server, decodes the framed
response as it arrives and reports progress through StreamCallbacks.
A call ends in exactly one of three outcomes: the full text, a
StreamFailedError, or None when the caller cancelled it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

import httpx

from tokenrelay.relay.cancellation import SessionState
from tokenrelay.relay.decoder import StreamAccumulator, StreamCallbacks
from tokenrelay.relay.errors import RelayTimeoutError, StreamFailedError, StreamInProgressError

logger = logging.getLogger(__name__)

DEFAULT_STREAM_PATH = "/api/ai-chat/stream"

_START_FAILED = "Failed to start stream"
_TRUNCATED = "Stream closed before completion"


class RelayClient:
    """Streaming client for a single relay endpoint.

    One stream may be active at a time. Each send() starts a new session
    with a fresh accumulation buffer; cancel() tears the active one down
    immediately and closes the connection, which the server observes as a
    disconnect.

    Args:
        base_url: Root URL of the relay server.
        callbacks: Notification sink for chunks, completion and failure.
        path: Path of the streaming endpoint.
        idle_timeout: Seconds to wait for the next bytes before failing.
        http_client: Pre-built httpx.AsyncClient (tests inject transports
            here). When omitted the client creates and owns one.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        callbacks: StreamCallbacks | None = None,
        path: str = DEFAULT_STREAM_PATH,
        idle_timeout: float | None = 90.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._callbacks = callbacks or StreamCallbacks()
        self._path = path
        self._idle_timeout = idle_timeout
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(30.0, read=None),
        )
        self._accumulator: StreamAccumulator | None = None
        self._task: asyncio.Task | None = None
        self._state = SessionState.IDLE

    async def __aenter__(self) -> RelayClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self.cancel()
        if self._owns_http:
            await self._http.aclose()

    # ── State ─────────────────────────────────────────────────

    @property
    def is_streaming(self) -> bool:
        return self._state is SessionState.STREAMING

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def streaming_content(self) -> str:
        """Text accumulated by the current or most recent stream."""
        if self._accumulator is None:
            return ""
        return self._accumulator.text

    # ── Operations ────────────────────────────────────────────

    async def send(self, message: str, context: str | None = None) -> str | None:
        """Stream a completion for ``message`` and return the full text.

        Returns None if cancel() was called before the stream finished.
        An exception raised by a callback propagates unchanged and leaves
        the session FAILED.

        Raises:
            StreamInProgressError: If a stream is already active.
            StreamFailedError: If the server reported an error, the
                transport failed, or the stream timed out or was cut short.
        """
        if self.is_streaming:
            raise StreamInProgressError("A stream is already in progress")

        accumulator = self._accumulator = StreamAccumulator(self._callbacks)
        self._state = SessionState.STREAMING
        task = self._task = asyncio.ensure_future(self._run(accumulator, message, context))
        try:
            return await task
        except asyncio.CancelledError:
            if accumulator.state is SessionState.CANCELLED:
                return None
            # Cancelled from outside rather than through cancel()
            accumulator.cancel()
            if self._accumulator is accumulator:
                self._state = SessionState.CANCELLED
            raise
        except Exception:
            # A consumer callback raised; the session cannot continue
            accumulator.cancel()
            if self._accumulator is accumulator and self._state is SessionState.STREAMING:
                self._state = SessionState.FAILED
            raise
        finally:
            if self._task is task:
                self._task = None

    def cancel(self) -> None:
        """Abort the active stream without waiting for the server.

        No chunk, completion or failure notification is delivered after
        this returns. A no-op when nothing is streaming.
        """
        if not self.is_streaming:
            return
        self._state = SessionState.CANCELLED
        if self._accumulator is not None:
            self._accumulator.cancel()
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        logger.info("Relay stream cancelled by caller")

    def reset(self) -> None:
        """Cancel any active stream and clear the accumulated text."""
        self.cancel()
        self._accumulator = None
        self._state = SessionState.IDLE

    # ── Internals ─────────────────────────────────────────────

    async def _run(self, accumulator: StreamAccumulator, message: str, context: str | None) -> str | None:
        body: dict[str, str] = {"message": message}
        if context:
            body["context"] = context

        try:
            async with self._http.stream("POST", self._path, json=body) as response:
                if response.status_code != 200:
                    await accumulator.fail(await _error_message(response))
                else:
                    await self._consume(accumulator, response.aiter_bytes())
        except RelayTimeoutError as exc:
            await accumulator.fail(str(exc))
        except (httpx.HTTPError, httpx.StreamError) as exc:
            logger.warning("Relay transport error: %s", exc)
            await accumulator.fail(str(exc) or type(exc).__name__)

        if not accumulator.terminal:
            await accumulator.fail(_TRUNCATED)

        current = self._accumulator is accumulator
        if accumulator.state is SessionState.CANCELLED:
            return None
        if accumulator.state is SessionState.COMPLETED:
            if current:
                self._state = SessionState.COMPLETED
            return accumulator.text
        if current:
            self._state = SessionState.FAILED
        raise StreamFailedError(accumulator.error or _START_FAILED)

    async def _consume(self, accumulator: StreamAccumulator, chunks: AsyncIterator[bytes]) -> None:
        """Feed transport bytes to the accumulator until it turns terminal."""
        while not accumulator.terminal:
            try:
                chunk = await self._next_chunk(chunks)
            except StopAsyncIteration:
                return
            await accumulator.feed(chunk)

    async def _next_chunk(self, chunks: AsyncIterator[bytes]) -> bytes:
        if self._idle_timeout is None:
            return await anext(chunks)
        timer = asyncio.timeout(self._idle_timeout)
        try:
            async with timer:
                return await anext(chunks)
        except TimeoutError:
            if timer.expired():
                raise RelayTimeoutError(
                    f"No data from relay within {self._idle_timeout:g}s"
                ) from None
            raise


async def _error_message(response: httpx.Response) -> str:
    """Pull the ``error`` field out of a non-streaming error response."""
    await response.aread()
    try:
        data = response.json()
    except ValueError:
        return f"{_START_FAILED} (HTTP {response.status_code})"
    if isinstance(data, dict):
        error = data.get("error") or data.get("detail")
        if isinstance(error, str) and error:
            return error
    return _START_FAILED
