"""Prompt template loader for relay system prompts.

Loads Markdown prompt templates from the prompts/ directory and renders
them with Jinja2 variable substitution. The HTTP layer uses this to build
the system prompt for every chat request.
"""

from __future__ import annotations

from pathlib import Path

from jinja2 import BaseLoader, Environment

# Directory containing the .md prompt template files
_PROMPTS_DIR = Path(__file__).parent

# Template used for chat requests
ASSISTANT_PROMPT = "assistant"


def render_prompt(template_name: str, **variables: object) -> str:
    """Load a prompt template and render it with Jinja2 variables.

    Args:
        template_name: Name of the template file (without .md extension).
                       Must correspond to a file in the prompts/ directory.
        **variables: Template variables to inject (e.g. context).

    Returns:
        The fully rendered prompt string.

    Raises:
        FileNotFoundError: If the template file does not exist.
    """
    path = _PROMPTS_DIR / f"{template_name}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt template not found: {path}")

    template_text = path.read_text(encoding="utf-8")

    # Default Undefined is falsy, so {% if context %} is skipped when absent
    env = Environment(loader=BaseLoader(), keep_trailing_newline=True)
    template = env.from_string(template_text)
    return template.render(**variables)


def build_system_prompt(context: str | None = None) -> str:
    """Render the assistant prompt, with the library context line if given."""
    return render_prompt(ASSISTANT_PROMPT, context=context or "")


def build_messages(message: str) -> list[dict[str, str]]:
    """Wrap a user message in the OpenAI message-list format."""
    return [{"role": "user", "content": message}]
