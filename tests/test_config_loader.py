"""Tests for tokenrelay.providers.registry — TOML config loading and model registry."""

from pathlib import Path

import pytest

from tokenrelay.providers.registry import get_model, load_models, load_relay_config
from tokenrelay.schemas.relay import ModelConfig, RelayConfig

# Path to the real config files shipped with the package
_CONFIG_DIR = Path(__file__).parent.parent / "tokenrelay" / "config"


class TestLoadModels:
    def test_loads_real_config(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert len(registry) > 0

    def test_default_path(self):
        assert load_models().keys() == load_models(_CONFIG_DIR / "models.toml").keys()

    def test_all_expected_models_present(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        for key in ["gpt-35-turbo", "gpt-4o-mini", "claude-haiku", "gemini-flash"]:
            assert key in registry, f"Missing model: {key}"

    def test_model_config_types(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        for key, model in registry.items():
            assert isinstance(model, ModelConfig), f"{key} is not ModelConfig"
            assert model.provider != ""
            assert model.model != ""
            assert model.display_name != ""
            assert model.api_key_env != ""
            assert model.context_window > 0
            assert model.cost_input >= 0.0
            assert model.cost_output >= 0.0

    def test_default_model_id(self):
        registry = load_models(_CONFIG_DIR / "models.toml")
        assert registry["gpt-35-turbo"].model == "gpt-3.5-turbo"
        assert registry["gpt-35-turbo"].api_key_env == "OPENAI_API_KEY"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Model registry not found"):
            load_models(tmp_path / "nope.toml")

    def test_missing_models_section(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text('[other]\nkey = "value"\n')
        with pytest.raises(ValueError, match="No \\[models\\] section"):
            load_models(path)

    def test_invalid_entry(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text('[models.broken]\nprovider = "openai"\n')
        with pytest.raises(ValueError, match="Invalid model entry 'broken'"):
            load_models(path)

    def test_custom_registry(self, tmp_path):
        path = tmp_path / "models.toml"
        path.write_text(
            "[models.local]\n"
            'provider = "openai"\n'
            'model = "openai/llama3"\n'
            'display_name = "Local Llama"\n'
            'api_key_env = "LOCAL_KEY"\n'
            'api_base = "http://localhost:1234/v1"\n'
            "context_window = 8192\n"
            "cost_input = 0.0\n"
            "cost_output = 0.0\n"
        )
        registry = load_models(path)
        assert registry["local"].api_base == "http://localhost:1234/v1"


class TestLoadRelayConfig:
    def test_loads_real_config(self):
        config = load_relay_config(_CONFIG_DIR / "defaults.toml")
        assert isinstance(config, RelayConfig)

    def test_default_values(self):
        config = load_relay_config()
        assert config.model == "gpt-35-turbo"
        assert config.max_tokens == 500
        assert config.temperature == 0.7
        assert config.idle_timeout == 60
        assert config.request_timeout == 120
        assert config.max_retries == 3
        assert config.client_idle_timeout == 90
        assert config.allow_origins == ["http://localhost:3000"]

    def test_default_model_in_registry(self):
        config = load_relay_config()
        assert config.model in load_models()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Relay config not found"):
            load_relay_config(tmp_path / "nope.toml")

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("")
        assert load_relay_config(path) == RelayConfig()

    def test_partial_override(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("[relay]\nmax_tokens = 1000\nidle_timeout = 5\n")
        config = load_relay_config(path)
        assert config.max_tokens == 1000
        assert config.idle_timeout == 5
        assert config.temperature == 0.7

    def test_invalid_value(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text("[relay]\ntemperature = 5.0\n")
        with pytest.raises(ValueError, match="Invalid relay config"):
            load_relay_config(path)

    def test_relay_not_a_table(self, tmp_path):
        path = tmp_path / "defaults.toml"
        path.write_text('relay = "fast"\n')
        with pytest.raises(ValueError, match="must be a table"):
            load_relay_config(path)


class TestGetModel:
    def test_found(self):
        registry = load_models()
        assert get_model(registry, "gpt-4o-mini").model == "gpt-4o-mini"

    def test_unknown_lists_available(self):
        registry = load_models()
        with pytest.raises(ValueError, match="Available: .*gpt-35-turbo"):
            get_model(registry, "gpt-9")

    def test_empty_registry(self):
        with pytest.raises(ValueError, match="Available: none"):
            get_model({}, "x")
