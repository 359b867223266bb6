"""tokenrelay schema definitions.

All Pydantic v2 models used by the relay, its providers and its API.
"""

from tokenrelay.schemas.relay import Completion, ModelConfig, RelayConfig, TokenUsage
from tokenrelay.schemas.streaming import (
    ContentFrame,
    Delta,
    DeltaKind,
    DoneFrame,
    ErrorFrame,
    Frame,
    TerminalFrame,
    UnknownFrame,
)

__all__ = [
    "Completion",
    "ContentFrame",
    "Delta",
    "DeltaKind",
    "DoneFrame",
    "ErrorFrame",
    "Frame",
    "ModelConfig",
    "RelayConfig",
    "TerminalFrame",
    "TokenUsage",
    "UnknownFrame",
]
