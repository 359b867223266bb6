"""Streaming schemas for real-time token delivery.

Defines the Delta model produced by completion sources and the Frame
variants carried on the wire between the relay server and its clients.
A decoded record is exactly one of ContentFrame, DoneFrame, ErrorFrame
or UnknownFrame.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field


class DeltaKind(StrEnum):
    """Kinds of units a completion source can produce."""

    CONTENT = "content"
    END = "end"
    ERROR = "error"


class Delta(BaseModel):
    """A single unit from a completion source.

    Content deltas carry a text fragment. END and ERROR are terminal
    sentinels; a well-behaved source produces exactly one, last.
    """

    kind: DeltaKind = Field(description="Whether this is content or a terminal sentinel")
    text: str = Field(default="", description="Text fragment for content deltas")
    error: str = Field(default="", description="Failure description for error deltas")

    @classmethod
    def content(cls, text: str) -> Delta:
        return cls(kind=DeltaKind.CONTENT, text=text)

    @classmethod
    def end(cls) -> Delta:
        return cls(kind=DeltaKind.END)

    @classmethod
    def failure(cls, message: str) -> Delta:
        return cls(kind=DeltaKind.ERROR, error=message)

    @property
    def is_terminal(self) -> bool:
        return self.kind is not DeltaKind.CONTENT


class ContentFrame(BaseModel):
    """An incremental text frame: ``{"content": ...}``."""

    content: str

    def to_payload(self) -> dict[str, Any]:
        return {"content": self.content}


class DoneFrame(BaseModel):
    """Terminal frame marking normal completion: ``{"done": true}``."""

    done: Literal[True] = True

    def to_payload(self) -> dict[str, Any]:
        return {"done": True}


class ErrorFrame(BaseModel):
    """Terminal frame carrying an upstream failure: ``{"error": ...}``."""

    error: str

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.error}


class UnknownFrame(BaseModel):
    """A record whose payload is not valid JSON or matches no known shape."""

    raw: str = Field(default="", description="Undecoded payload text")


Frame = ContentFrame | DoneFrame | ErrorFrame | UnknownFrame
"""Tagged union of everything a wire record can decode to."""

TerminalFrame = DoneFrame | ErrorFrame
