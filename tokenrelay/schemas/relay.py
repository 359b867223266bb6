"""Relay configuration and completion result schemas.

Defines the model registry entry, the relay defaults loaded from
defaults.toml, and the result of a non-streaming completion.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ModelConfig(BaseModel):
    """Configuration for a single LLM model in the registry.

    Loaded from models.toml. Each entry provides the LiteLLM routing
    information and cost data.
    """

    provider: str = Field(description="Provider identifier (e.g. 'openai', 'anthropic')")
    model: str = Field(description="LiteLLM model identifier (e.g. 'gpt-3.5-turbo')")
    display_name: str = Field(description="Human-friendly model name for CLI output")
    api_key_env: str = Field(description="Environment variable name holding the API key")
    api_base: str = Field(default="", description="Custom API base URL (empty = provider default)")
    context_window: int = Field(gt=0, description="Maximum context window size in tokens")
    cost_input: float = Field(ge=0.0, description="Cost per 1M input tokens in USD")
    cost_output: float = Field(ge=0.0, description="Cost per 1M output tokens in USD")


class RelayConfig(BaseModel):
    """Relay defaults, loaded from defaults.toml and overridden by CLI flags."""

    model: str = Field(default="gpt-35-turbo", description="Registry key of the model to relay")
    max_tokens: int = Field(default=500, gt=0, description="Completion token cap per request")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    idle_timeout: float = Field(
        default=60.0, gt=0, description="Seconds to wait for the next delta before failing"
    )
    request_timeout: float = Field(
        default=120.0, gt=0, description="Timeout in seconds passed to the provider call"
    )
    max_retries: int = Field(
        default=3, ge=1, le=10, description="Attempts when opening the provider stream"
    )
    allow_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3000"],
        description="CORS origins allowed to call the relay",
    )
    client_idle_timeout: float = Field(
        default=90.0, gt=0, description="Seconds a client waits for bytes before failing"
    )


class TokenUsage(BaseModel):
    """Token consumption and cost tracking for a single model call."""

    prompt_tokens: int = Field(default=0, ge=0, description="Number of input tokens consumed")
    completion_tokens: int = Field(default=0, ge=0, description="Number of output tokens generated")
    cost: float = Field(default=0.0, ge=0.0, description="Estimated cost in USD for this call")


class Completion(BaseModel):
    """Full (non-streaming) completion text with usage."""

    text: str = Field(description="Generated text")
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str = Field(default="", description="Model that produced the text")
