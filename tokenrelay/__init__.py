"""tokenrelay — stream LLM completions to clients as framed events."""

__version__ = "0.1.0"

from .relay.client import RelayClient
from .relay.decoder import StreamAccumulator, StreamCallbacks
from .relay.encoder import RelaySession

__all__ = [
    "RelayClient",
    "RelaySession",
    "StreamAccumulator",
    "StreamCallbacks",
    "__version__",
]
