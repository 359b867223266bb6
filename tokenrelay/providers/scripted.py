"""Completion source that replays a fixed script.

Used by the test suite and by ``tokenrelay serve --demo``, where no API
key is available. Fragments are produced in order, optionally spaced by
a delay, and the script can end in a failure instead of END.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence

from tokenrelay.providers.base import CompletionSource
from tokenrelay.relay.errors import UpstreamError
from tokenrelay.schemas.streaming import Delta

logger = logging.getLogger(__name__)

DEMO_SCRIPT = (
    "Booklo AI demo mode. ",
    "Set an API key and restart ",
    "without --demo to relay ",
    "a real model.",
)


class ScriptedSource(CompletionSource):
    """Replay ``chunks`` as content deltas.

    Args:
        chunks: Text fragments, produced in order.
        error: When set, the stream fails with this message after the
            last fragment instead of ending normally.
        delay: Seconds to sleep before each fragment.
        raise_error: Raise UpstreamError for the failure instead of
            producing an ERROR delta.
    """

    def __init__(
        self,
        chunks: Sequence[str] = DEMO_SCRIPT,
        *,
        error: str | None = None,
        delay: float = 0.0,
        raise_error: bool = False,
    ) -> None:
        self._chunks = list(chunks)
        self._error = error
        self._delay = delay
        self._raise_error = raise_error
        self.calls: list[list[dict[str, str]]] = []
        self.closed = 0

    @property
    def name(self) -> str:
        return "scripted"

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str,
    ) -> AsyncIterator[Delta]:
        self.calls.append([{"role": "system", "content": system}, *messages])
        try:
            for text in self._chunks:
                if self._delay:
                    await asyncio.sleep(self._delay)
                yield Delta.content(text)

            if self._error is None:
                yield Delta.end()
            elif self._raise_error:
                raise UpstreamError(self._error)
            else:
                yield Delta.failure(self._error)
        finally:
            self.closed += 1
            logger.debug("Scripted stream released")
