"""Relay core: wire framing, sessions, channels and the streaming client.

The server side (RelaySession) turns completion deltas into framed bytes;
the client side (StreamAccumulator, RelayClient) turns those bytes back
into text and notifications. Both share the lifecycle in cancellation.py.
"""

from tokenrelay.relay.cancellation import CancellationToken, SessionLifecycle, SessionState
from tokenrelay.relay.channel import ByteChannel, MemoryChannel
from tokenrelay.relay.client import RelayClient
from tokenrelay.relay.decoder import StreamAccumulator, StreamCallbacks
from tokenrelay.relay.encoder import RelaySession, describe_failure
from tokenrelay.relay.errors import (
    ChannelClosedError,
    InvalidTransitionError,
    RelayError,
    RelayTimeoutError,
    StreamFailedError,
    StreamInProgressError,
    UpstreamError,
)
from tokenrelay.relay.wire import FrameDecoder, decode_payload, encode_frame, parse_record

__all__ = [
    "ByteChannel",
    "CancellationToken",
    "ChannelClosedError",
    "FrameDecoder",
    "InvalidTransitionError",
    "MemoryChannel",
    "RelayClient",
    "RelayError",
    "RelaySession",
    "RelayTimeoutError",
    "SessionLifecycle",
    "SessionState",
    "StreamAccumulator",
    "StreamCallbacks",
    "StreamFailedError",
    "StreamInProgressError",
    "UpstreamError",
    "decode_payload",
    "describe_failure",
    "encode_frame",
    "parse_record",
]
