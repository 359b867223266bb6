"""Provider API keys for the relay.

LiteLLM reads provider credentials from the environment. Before a command
runs, two optional dotenv-style files may top that environment up:
``~/.tokenrelay/keys.env`` for keys kept per user, then ``.env`` in the
working directory. A variable that already has a value is left alone.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

TOKENRELAY_HOME = Path.home() / ".tokenrelay"
KEYS_FILE = TOKENRELAY_HOME / "keys.env"


def load_keys_env(files: list[Path] | None = None) -> None:
    """Fill unset environment variables from the key files.

    Files are read in order, so a key in keys.env shadows the same key
    in a project .env.
    """
    if files is None:
        files = [KEYS_FILE, Path.cwd() / ".env"]
    for env_file in files:
        if env_file.is_file():
            _load_env_file(env_file)


def _load_env_file(path: Path) -> None:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        logger.debug("Skipping unreadable key file %s", path)
        return

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        name, _, value = line.partition("=")
        name = name.removeprefix("export ").strip()
        if not name or os.environ.get(name):
            continue
        os.environ[name] = value.strip().strip("'\"")
        logger.debug("Loaded %s from %s", name, path)


def has_key(env_var: str) -> bool:
    """True when ``env_var`` is set to a non-empty value."""
    return bool(os.environ.get(env_var))
