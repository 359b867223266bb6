"""Session lifecycle and cancellation signalling.

Every relay session, on either side of the wire, moves through the same
states::

    IDLE ──▶ STREAMING ──▶ COMPLETED | FAILED | CANCELLED

STREAMING is the only state cancellation can be observed from. Terminal
states are final; a new request always starts a new lifecycle.
"""

from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from tokenrelay.relay.errors import InvalidTransitionError

logger = logging.getLogger(__name__)


class SessionState(StrEnum):
    """Lifecycle states of a relay session."""

    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = frozenset({SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED})

_ALLOWED: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.STREAMING}),
    SessionState.STREAMING: _TERMINAL,
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
    SessionState.CANCELLED: frozenset(),
}


class SessionLifecycle:
    """State machine guarding one session's transitions."""

    def __init__(self, name: str = "session") -> None:
        self._name = name
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_streaming(self) -> bool:
        return self._state is SessionState.STREAMING

    def transition(self, target: SessionState) -> None:
        """Move to ``target`` or raise InvalidTransitionError."""
        if target not in _ALLOWED[self._state]:
            raise InvalidTransitionError(
                f"{self._name}: cannot move from {self._state} to {target}"
            )
        logger.debug("%s: %s -> %s", self._name, self._state, target)
        self._state = target

    def start(self) -> None:
        self.transition(SessionState.STREAMING)

    def complete(self) -> None:
        self.transition(SessionState.COMPLETED)

    def fail(self) -> None:
        self.transition(SessionState.FAILED)

    def cancel(self) -> bool:
        """Move to CANCELLED if still streaming.

        Returns False when the session already reached a terminal state,
        which makes late cancellation a no-op rather than an error.
        """
        if self._state is not SessionState.STREAMING:
            return False
        self.transition(SessionState.CANCELLED)
        return True


class CancellationToken:
    """One-shot cancel signal owned by a single session."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()


def uncancel_current_task() -> None:
    """Clear a cancellation request the current task made on itself.

    Used after a session swallows the CancelledError it caused through
    its own token, so enclosing timeouts and task groups stay accurate.
    """
    task = asyncio.current_task()
    if task is not None and task.cancelling():
        task.uncancel()
