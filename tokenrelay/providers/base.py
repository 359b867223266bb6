"""Abstract base class for completion sources.

A completion source produces the Delta stream a RelaySession relays. The
HTTP layer interacts exclusively through this interface; it never calls
provider SDKs directly.
"""

from __future__ import annotations

import contextlib
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from tokenrelay.relay.errors import UpstreamError
from tokenrelay.schemas.relay import Completion, TokenUsage
from tokenrelay.schemas.streaming import Delta, DeltaKind


class CompletionSource(ABC):
    """Anything that can stream a completion as a sequence of Delta.

    Subclasses implement stream(). The default complete() drains it, so a
    source only has to override complete() when its backend offers a
    cheaper non-streaming call.
    """

    # ── Identity ──────────────────────────────────────────────

    @property
    def name(self) -> str:
        """Short label for log lines and CLI output."""
        return type(self).__name__

    @property
    def is_configured(self) -> bool:
        """Whether the source has what it needs (credentials) to run."""
        return True

    # ── Core interface ────────────────────────────────────────

    @abstractmethod
    def stream(
        self,
        messages: list[dict[str, str]],
        system: str,
    ) -> AsyncIterator[Delta]:
        """Open a streaming completion.

        Args:
            messages: Conversation messages in OpenAI format
                      (list of {"role": ..., "content": ...} dicts).
            system: System prompt for this call.

        Returns:
            An async iterator of content deltas, optionally ending with a
            single END or ERROR delta. Exceptions raised while iterating
            are upstream failures.
        """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
    ) -> Completion:
        """Run a completion to the end and return the full text.

        Raises:
            UpstreamError: If the stream reports an ERROR delta.
        """
        parts: list[str] = []
        async with contextlib.aclosing(self.stream(messages, system)) as deltas:
            async for delta in deltas:
                if delta.kind is DeltaKind.ERROR:
                    raise UpstreamError(delta.error or "Completion failed")
                if delta.kind is DeltaKind.END:
                    break
                parts.append(delta.text)
        return Completion(text="".join(parts), usage=TokenUsage(), model=self.name)
