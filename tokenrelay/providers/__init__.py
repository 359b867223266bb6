"""tokenrelay completion sources.

All LLM interactions go through LiteLLMProvider via the CompletionSource
interface. ScriptedSource replays fixed text for demos and tests.
"""

from tokenrelay.providers.base import CompletionSource
from tokenrelay.providers.litellm_provider import LiteLLMProvider
from tokenrelay.providers.registry import get_model, load_models, load_relay_config
from tokenrelay.providers.scripted import DEMO_SCRIPT, ScriptedSource

__all__ = [
    "DEMO_SCRIPT",
    "CompletionSource",
    "LiteLLMProvider",
    "ScriptedSource",
    "get_model",
    "load_models",
    "load_relay_config",
]
