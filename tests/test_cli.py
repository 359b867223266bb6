"""Tests for the tokenrelay CLI via CliRunner."""

from __future__ import annotations

from unittest.mock import patch

from typer.testing import CliRunner

from tokenrelay import __version__
from tokenrelay.cli import app
from tokenrelay.providers.scripted import ScriptedSource
from tokenrelay.relay.errors import StreamFailedError

# NO_COLOR=1 prevents Rich from injecting ANSI codes inside option names,
# which breaks substring matching in CI (headless, no TTY).
# COLUMNS=200 prevents wrapping that could split a flag across lines.
runner = CliRunner(env={"NO_COLOR": "1", "COLUMNS": "200"})


# ── Factories ──────────────────────────────────────────────────────


class _FakeClient:
    """Stand-in for RelayClient that replays a scripted outcome."""

    parts: list[str] = []
    outcome: str | None | Exception = ""
    instances: list[_FakeClient] = []

    def __init__(self, base_url: str, *, callbacks, idle_timeout) -> None:
        self.base_url = base_url
        self.callbacks = callbacks
        self.idle_timeout = idle_timeout
        self.sent: list[tuple[str, str | None]] = []
        _FakeClient.instances.append(self)

    async def __aenter__(self) -> _FakeClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        return None

    def cancel(self) -> None:
        pass

    async def send(self, message: str, context: str | None = None) -> str | None:
        self.sent.append((message, context))
        for part in self.parts:
            self.callbacks.on_chunk(part)
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


def _fake_client(parts: list[str], outcome: str | None | Exception) -> type[_FakeClient]:
    _FakeClient.instances = []
    return type("ScriptedClient", (_FakeClient,), {"parts": parts, "outcome": outcome})


# ── Help and version ──────────────────────────────────────────────


class TestHelp:
    def test_main_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "serve" in result.output
        assert "chat" in result.output
        assert "models" in result.output
        assert "config" in result.output

    def test_serve_help(self):
        result = runner.invoke(app, ["serve", "--help"])
        assert result.exit_code == 0
        assert "--demo" in result.output
        assert "--log-level" in result.output

    def test_chat_help(self):
        result = runner.invoke(app, ["chat", "--help"])
        assert result.exit_code == 0
        assert "--context" in result.output
        assert "--url" in result.output

    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"tokenrelay {__version__}" in result.output


# ── models / config ──────────────────────────────────────────────


class TestModelsList:
    def test_lists_registry(self):
        result = runner.invoke(app, ["models", "list"])
        assert result.exit_code == 0
        assert "GPT-3.5 Turbo" in result.output
        assert "gpt-35-turbo (default)" in result.output
        assert "models registered" in result.output

    def test_key_status(self):
        with patch("tokenrelay.cli.has_key", return_value=False):
            result = runner.invoke(app, ["models", "list"])
        assert "not set" in result.output


class TestConfig:
    def test_show(self):
        result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 0
        assert "Relay Configuration" in result.output
        assert "gpt-35-turbo" in result.output
        assert "60s" in result.output

    def test_path(self):
        result = runner.invoke(app, ["config", "path"])
        assert result.exit_code == 0
        assert "models.toml" in result.output
        assert "defaults.toml" in result.output

    def test_broken_config_exits(self):
        with patch("tokenrelay.cli.load_relay_config", side_effect=ValueError("bad toml")):
            result = runner.invoke(app, ["config", "show"])
        assert result.exit_code == 1
        assert "bad toml" in result.output


# ── chat ──────────────────────────────────────────────────────────


class TestChat:
    def test_prints_streamed_reply(self):
        client_cls = _fake_client(["Hello", ", world"], "Hello, world")
        with patch("tokenrelay.cli.RelayClient", client_cls):
            result = runner.invoke(
                app, ["chat", "hi", "--context", "Reads sci-fi", "--url", "http://relay:9000"],
            )

        assert result.exit_code == 0
        assert "Hello, world" in result.output
        client = client_cls.instances[0]
        assert client.base_url == "http://relay:9000"
        assert client.sent == [("hi", "Reads sci-fi")]
        assert client.idle_timeout == 90

    def test_no_context_sends_none(self):
        client_cls = _fake_client([], "ok")
        with patch("tokenrelay.cli.RelayClient", client_cls):
            runner.invoke(app, ["chat", "hi"])
        assert client_cls.instances[0].sent == [("hi", None)]

    def test_failure_exits_one(self):
        client_cls = _fake_client(["Par"], StreamFailedError("rate limited"))
        with patch("tokenrelay.cli.RelayClient", client_cls):
            result = runner.invoke(app, ["chat", "hi"])

        assert result.exit_code == 1
        assert "Stream failed: rate limited" in result.output

    def test_cancelled(self):
        client_cls = _fake_client(["Par"], None)
        with patch("tokenrelay.cli.RelayClient", client_cls):
            result = runner.invoke(app, ["chat", "hi"])

        assert result.exit_code == 130
        assert "Cancelled." in result.output


# ── serve ─────────────────────────────────────────────────────────


class TestServe:
    def test_demo_mode(self):
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--demo", "--port", "9001", "--log-level", "warning"])

        assert result.exit_code == 0
        app_instance = run.call_args[0][0]
        assert isinstance(app_instance.state.source, ScriptedSource)
        assert run.call_args[1] == {"host": "127.0.0.1", "port": 9001, "log_level": "warning"}
        assert "http://127.0.0.1:9001/api/ai-chat/stream" in result.output

    def test_unknown_model(self):
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--model", "gpt-9"])

        assert result.exit_code == 1
        assert "Unknown model" in result.output
        run.assert_not_called()

    def test_warns_without_key(self):
        with (
            patch.dict("os.environ", {"OPENAI_API_KEY": ""}),
            patch("tokenrelay.cli.load_keys_env"),
            patch("uvicorn.run"),
        ):
            result = runner.invoke(app, ["serve"])

        assert result.exit_code == 0
        assert "no API key set" in result.output
