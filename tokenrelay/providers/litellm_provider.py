"""LiteLLM adapter implementing the CompletionSource interface.

Routes completion requests to any LLM provider via LiteLLM's unified API.
Handles streaming delta extraction, token tracking, cost calculation,
timeouts, and retry with exponential backoff while a call is opened.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator

import litellm

# Suppress LiteLLM's "Give Feedback / Get Help" and "Provider List" banners
litellm.suppress_debug_info = True

from tokenrelay.providers.base import CompletionSource
from tokenrelay.relay.errors import RelayTimeoutError, UpstreamError
from tokenrelay.schemas.relay import Completion, ModelConfig, RelayConfig, TokenUsage
from tokenrelay.schemas.streaming import Delta

logger = logging.getLogger(__name__)

# Default attempts for transient failures
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds

_RETRYABLE = (
    litellm.RateLimitError,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
    litellm.APIConnectionError,
)


def _short_error_reason(error: BaseException) -> str:
    """Extract a short, user-friendly reason from a LiteLLM error.

    Maps error types and status codes to concise descriptions instead
    of dumping full JSON error payloads.
    """
    error_str = str(error).lower()
    if "rate" in error_str or "429" in error_str:
        return "rate limit"
    if "overloaded" in error_str or "529" in error_str:
        return "overloaded"
    if "timeout" in error_str or isinstance(error, TimeoutError):
        return "timeout"
    if "503" in error_str or "unavailable" in error_str:
        return "service unavailable"
    if "500" in error_str or "internal" in error_str:
        return "server error"
    if "connection" in error_str:
        return "connection error"
    # Fallback: first 80 chars of the error
    return str(error)[:80]


def _chunk_text(chunk: object) -> str:
    """Pull the content delta out of one streamed chunk."""
    choices = getattr(chunk, "choices", None)
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    if delta is None:
        return ""
    return getattr(delta, "content", None) or ""


class LiteLLMProvider(CompletionSource):
    """Completion source powered by LiteLLM.

    Routes calls to any provider (OpenAI, Anthropic, Google, etc.) through
    litellm.acompletion(). This is the only place models are called; no
    direct SDK imports anywhere else.

    Args:
        config: Registry entry for the model.
        max_tokens: Completion token cap per request.
        temperature: Sampling temperature.
        timeout: Timeout in seconds passed to each provider call.
        max_retries: Attempts made when opening a call.
    """

    def __init__(
        self,
        config: ModelConfig,
        *,
        max_tokens: int = 500,
        temperature: float = 0.7,
        timeout: float = 120.0,
        max_retries: int = _MAX_RETRIES,
    ) -> None:
        self._config = config
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._max_retries = max_retries
        # Resolve API key from environment
        self._api_key = os.environ.get(config.api_key_env, "")

    @classmethod
    def from_relay_config(cls, model: ModelConfig, relay: RelayConfig) -> LiteLLMProvider:
        """Build a provider using the request settings of a RelayConfig."""
        return cls(
            model,
            max_tokens=relay.max_tokens,
            temperature=relay.temperature,
            timeout=relay.request_timeout,
            max_retries=relay.max_retries,
        )

    # ── Identity ──────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._config.display_name

    @property
    def provider_id(self) -> str:
        """Provider identifier (e.g. 'openai', 'anthropic')."""
        return self._config.provider

    @property
    def model_id(self) -> str:
        """LiteLLM model identifier used for routing."""
        return self._config.model

    @property
    def config(self) -> ModelConfig:
        return self._config

    @property
    def is_configured(self) -> bool:
        """True when the API key variable is set (or a custom base is used)."""
        return bool(self._api_key or self._config.api_base)

    # ── Cost ──────────────────────────────────────────────────

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        """Calculate the USD cost for a given token count."""
        input_cost = (prompt_tokens / 1_000_000) * self._config.cost_input
        output_cost = (completion_tokens / 1_000_000) * self._config.cost_output
        return input_cost + output_cost

    # ── Core interface ────────────────────────────────────────

    async def stream(
        self,
        messages: list[dict[str, str]],
        system: str,
    ) -> AsyncIterator[Delta]:
        """Stream a completion via LiteLLM, one Delta per content chunk.

        Opening the stream is retried on transient errors. Once tokens are
        flowing, a failure is raised as UpstreamError; restarting would
        duplicate text the client already received.
        """
        full_messages = [{"role": "system", "content": system}, *messages]
        kwargs = self._build_completion_kwargs(full_messages)
        kwargs["stream"] = True

        response = await self._call_with_retry(kwargs)
        try:
            async for chunk in response:
                text = _chunk_text(chunk)
                if text:
                    yield Delta.content(text)
        except Exception as e:
            raise UpstreamError(
                f"Stream from {self._config.model} interrupted: {_short_error_reason(e)}"
            ) from e
        finally:
            await _close_response(response)

        yield Delta.end()

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str,
    ) -> Completion:
        """Send a non-streaming completion request and return the text.

        Raises:
            RelayTimeoutError: If every attempt timed out.
            UpstreamError: If the call fails after all retries.
        """
        full_messages = [{"role": "system", "content": system}, *messages]
        kwargs = self._build_completion_kwargs(full_messages)

        response = await self._call_with_retry(kwargs)

        return Completion(
            text=self._extract_content(response),
            usage=self._build_token_usage(response),
            model=self._config.model,
        )

    # ── Internals ─────────────────────────────────────────────

    def _build_completion_kwargs(self, messages: list[dict[str, str]]) -> dict:
        """Build the kwargs dict for litellm.acompletion."""
        kwargs: dict = {
            "model": self._config.model,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "timeout": float(self._timeout),
        }

        # Set API key if available
        if self._api_key:
            kwargs["api_key"] = self._api_key

        # Set custom API base if configured
        if self._config.api_base:
            kwargs["api_base"] = self._config.api_base

        return kwargs

    async def _call_with_retry(self, kwargs: dict):
        """Call litellm.acompletion with exponential backoff retry.

        Retries on transient errors (rate limits, server errors, timeouts).
        Non-retryable errors (auth, invalid request) are raised immediately.
        With ``stream=True`` only the opening of the stream is retried.

        Raises:
            RelayTimeoutError: If all retries time out.
            UpstreamError: If all retries fail with non-timeout errors.
        """
        last_error: Exception | None = None
        label = "Streaming call" if kwargs.get("stream") else "Model call"

        for attempt in range(self._max_retries):
            try:
                return await litellm.acompletion(**kwargs)
            except (TimeoutError, litellm.Timeout):
                last_error = RelayTimeoutError(
                    f"{label} timed out after {kwargs.get('timeout'):g}s "
                    f"(attempt {attempt + 1}/{self._max_retries})"
                )
            except litellm.AuthenticationError:
                raise UpstreamError(
                    f"Authentication failed for {self._config.model}. "
                    f"Check that {self._config.api_key_env} is set correctly."
                ) from None
            except litellm.BadRequestError as e:
                raise UpstreamError(
                    f"Bad request to {self._config.model}: {e}"
                ) from e
            except _RETRYABLE as e:
                last_error = e

            # Exponential backoff
            if attempt < self._max_retries - 1:
                backoff = _BASE_BACKOFF * (2**attempt)
                logger.warning(
                    "Retry %d/%d for %s (%s, backoff: %.1fs)",
                    attempt + 1,
                    self._max_retries,
                    self._config.display_name,
                    _short_error_reason(last_error),
                    backoff,
                )
                await asyncio.sleep(backoff)

        # All retries exhausted
        if isinstance(last_error, RelayTimeoutError):
            raise last_error
        raise UpstreamError(
            f"{label} to {self._config.model} failed after {self._max_retries} "
            f"retries: {_short_error_reason(last_error)}"
        ) from last_error

    def _extract_content(self, response: litellm.ModelResponse) -> str:
        """Extract text content from a LiteLLM response."""
        if not response.choices:
            return ""
        message = response.choices[0].message
        return message.content or "" if message else ""

    def _build_token_usage(self, response: litellm.ModelResponse) -> TokenUsage:
        """Build TokenUsage from the LiteLLM response usage data."""
        usage = getattr(response, "usage", None)
        prompt_tokens = getattr(usage, "prompt_tokens", 0) or 0
        completion_tokens = getattr(usage, "completion_tokens", 0) or 0
        cost = self.calculate_cost(prompt_tokens, completion_tokens)

        return TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            cost=cost,
        )


async def _close_response(response: object) -> None:
    """Release the provider connection behind a streaming response."""
    aclose = getattr(response, "aclose", None)
    if aclose is None:
        return
    try:
        result = aclose()
        if asyncio.iscoroutine(result):
            await result
    except Exception:
        logger.debug("Error closing provider stream", exc_info=True)
