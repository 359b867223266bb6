"""Exception types raised by the relay core."""

from __future__ import annotations


class RelayError(RuntimeError):
    """Base class for relay failures."""


class UpstreamError(RelayError):
    """The completion source failed while producing deltas."""


class RelayTimeoutError(UpstreamError, TimeoutError):
    """No delta or byte arrived within the idle timeout."""


class ChannelClosedError(RelayError):
    """A write was attempted on a channel that is already closed."""


class InvalidTransitionError(RelayError):
    """A session lifecycle transition that the state machine forbids."""


class StreamInProgressError(RelayError):
    """send() was called while the client already has an active stream."""


class StreamFailedError(RelayError):
    """A relayed stream ended in failure.

    Raised by RelayClient.send() after the failure notification has been
    delivered. ``message`` is the text reported by the server or transport.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
