"""FastAPI application serving relayed chat completions.

Two chat endpoints share request validation and prompt building:
``POST /api/ai-chat/stream`` relays the completion as an event stream and
``POST /api/ai-chat`` returns it in one JSON body. Errors detected before
a stream starts are plain JSON ``{"error": ...}`` responses; failures
after that point travel inside the stream as error frames.

Run with uvicorn's factory mode or through ``tokenrelay serve``::

    uvicorn --factory tokenrelay.api.app:create_app
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from tokenrelay import __version__
from tokenrelay.api.models import ChatRequest, ChatResponse, ErrorResponse
from tokenrelay.prompts import build_messages, build_system_prompt
from tokenrelay.providers.base import CompletionSource
from tokenrelay.providers.litellm_provider import LiteLLMProvider
from tokenrelay.providers.registry import get_model, load_models, load_relay_config
from tokenrelay.relay.encoder import RelaySession
from tokenrelay.relay.wire import MEDIA_TYPE, STREAM_HEADERS
from tokenrelay.schemas.relay import RelayConfig

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/ai-chat/stream"
CHAT_PATH = "/api/ai-chat"


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(error=message).model_dump(), status_code=status_code
    )


def build_source(config: RelayConfig, model: str | None = None) -> LiteLLMProvider:
    """Create the LiteLLM provider for ``model`` (or the configured default)."""
    registry = load_models()
    model_config = get_model(registry, model or config.model)
    return LiteLLMProvider.from_relay_config(model_config, config)


def create_app(
    config: RelayConfig | None = None,
    source: CompletionSource | None = None,
    model: str | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Relay settings. Loaded from defaults.toml when omitted.
        source: Completion source to relay. Defaults to a LiteLLMProvider
            for ``model``.
        model: Registry key overriding ``config.model``.
    """
    config = config or load_relay_config()
    source = source or build_source(config, model)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "Relay ready: source=%s configured=%s idle_timeout=%gs",
            source.name, source.is_configured, config.idle_timeout,
        )
        yield

    app = FastAPI(
        title="tokenrelay",
        description="Streaming LLM completion relay",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.source = source

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    async def _parse(request: Request) -> ChatRequest | JSONResponse:
        """Validate the chat body, or return the error response to send."""
        try:
            body = ChatRequest.model_validate(await request.json())
        except (ValueError, ValidationError):
            return _error(400, "Invalid request body")
        if not body.message:
            return _error(400, "Message is required")
        if not source.is_configured:
            return _error(500, "API key not configured")
        return body

    # ── Chat ─────────────────────────────────────────────────────

    @app.post(STREAM_PATH)
    async def chat_stream(request: Request):
        """Relay a completion as ``data:`` frames ending in done or error."""
        body = await _parse(request)
        if isinstance(body, JSONResponse):
            return body

        deltas = source.stream(
            build_messages(body.message), build_system_prompt(body.context)
        )
        session = RelaySession(deltas, idle_timeout=config.idle_timeout)
        logger.debug("Opening relay session %s", session.session_id)
        return StreamingResponse(
            session.iter_frames(),
            media_type=MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )

    @app.post(CHAT_PATH)
    async def chat(request: Request):
        """Return the whole completion in one response."""
        body = await _parse(request)
        if isinstance(body, JSONResponse):
            return body

        try:
            completion = await source.complete(
                build_messages(body.message), build_system_prompt(body.context)
            )
        except Exception:
            logger.exception("AI chat request failed")
            return _error(500, "Internal server error")

        if not completion.text:
            return _error(500, "No response from AI")
        return ChatResponse(response=completion.text, usage=completion.usage)

    # ── Health ───────────────────────────────────────────────────

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "source": source.name}

    return app
