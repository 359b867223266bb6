"""Pydantic schemas for the relay HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from tokenrelay.schemas.relay import TokenUsage


class ChatRequest(BaseModel):
    """Body of both chat endpoints."""

    message: str = Field(default="", description="User message to answer")
    context: str | None = Field(
        default=None, description="Optional summary of the user's library"
    )


class ChatResponse(BaseModel):
    """Response of the non-streaming chat endpoint."""

    response: str = Field(description="Full completion text")
    usage: TokenUsage = Field(default_factory=TokenUsage)


class ErrorResponse(BaseModel):
    """Error body returned before any stream has started."""

    error: str
