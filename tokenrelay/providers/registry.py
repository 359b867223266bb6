"""Model registry and TOML configuration loader.

Loads model definitions from models.toml and relay defaults from
defaults.toml. Both files ship inside the package; callers may point at
their own copies instead.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import ValidationError

from tokenrelay.schemas.relay import ModelConfig, RelayConfig

# Default config directory relative to the tokenrelay package
_CONFIG_DIR = Path(__file__).parent.parent / "config"


def load_models(config_path: Path | None = None) -> dict[str, ModelConfig]:
    """Load the model registry from a TOML file.

    Args:
        config_path: Path to models.toml. Defaults to tokenrelay/config/models.toml.

    Returns:
        Dictionary mapping model keys to ModelConfig instances.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the TOML structure is invalid.
    """
    path = config_path or _CONFIG_DIR / "models.toml"
    if not path.exists():
        raise FileNotFoundError(f"Model registry not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    models_section = raw.get("models")
    if not models_section or not isinstance(models_section, dict):
        raise ValueError(f"No [models] section found in {path}")

    registry: dict[str, ModelConfig] = {}
    for key, entry in models_section.items():
        if not isinstance(entry, dict):
            continue
        try:
            registry[key] = ModelConfig(**entry)
        except ValidationError as e:
            raise ValueError(f"Invalid model entry '{key}' in {path}: {e}") from e

    return registry


def load_relay_config(config_path: Path | None = None) -> RelayConfig:
    """Load relay defaults from a TOML file.

    Args:
        config_path: Path to defaults.toml. Defaults to tokenrelay/config/defaults.toml.

    Returns:
        RelayConfig with values from the ``[relay]`` table.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If a value fails validation.
    """
    path = config_path or _CONFIG_DIR / "defaults.toml"
    if not path.exists():
        raise FileNotFoundError(f"Relay config not found: {path}")

    with open(path, "rb") as f:
        raw = tomllib.load(f)

    relay_section = raw.get("relay", {})
    if not isinstance(relay_section, dict):
        raise ValueError(f"[relay] must be a table in {path}")

    try:
        return RelayConfig(**relay_section)
    except ValidationError as e:
        raise ValueError(f"Invalid relay config in {path}: {e}") from e


def get_model(registry: dict[str, ModelConfig], key: str) -> ModelConfig:
    """Look up a registry entry by key.

    Raises:
        ValueError: If the key is not in the registry; the message lists
            the keys that are.
    """
    try:
        return registry[key]
    except KeyError:
        available = ", ".join(sorted(registry)) or "none"
        raise ValueError(f"Unknown model '{key}'. Available: {available}") from None
