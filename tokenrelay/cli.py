"""tokenrelay CLI — Typer + Rich terminal interface.

Commands: serve, chat, models, config.
Tables and status output are Rich-powered; log records go through
Rich's logging handler on stderr.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from tokenrelay import __version__
from tokenrelay.keys import KEYS_FILE, has_key, load_keys_env
from tokenrelay.providers.registry import load_models, load_relay_config
from tokenrelay.relay.client import DEFAULT_STREAM_PATH, RelayClient
from tokenrelay.relay.decoder import StreamCallbacks
from tokenrelay.relay.errors import StreamFailedError

console = Console()
err_console = Console(stderr=True)

# Exit code when the user interrupts a stream (128 + SIGINT)
_EXIT_CANCELLED = 130

# ── App and sub-apps ─────────────────────────────────────────────

app = typer.Typer(
    name="tokenrelay",
    help="Relay streaming LLM completions to clients as framed events.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

models_app = typer.Typer(
    name="models",
    help="Inspect the model registry.",
    no_args_is_help=True,
)
app.add_typer(models_app, name="models")

config_app = typer.Typer(
    name="config",
    help="Show relay configuration.",
    no_args_is_help=True,
)
app.add_typer(config_app, name="config")


# ── Version callback ───────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"tokenrelay {__version__}")
        raise typer.Exit()


# ── App Callback ────────────────────────────────────────────────


@app.callback()
def main(
    version: bool = typer.Option(
        False, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """tokenrelay — stream LLM completions to clients as framed events."""
    # Load API keys from ~/.tokenrelay/keys.env and .env
    load_keys_env()
    _setup_logging("warning")


# ── Helpers ──────────────────────────────────────────────────────


def _setup_logging(level: str) -> None:
    """Route log records through Rich on stderr at ``level``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_registry():
    """Load the model registry, exit on error."""
    try:
        return load_models()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading models:[/red] {e}")
        raise typer.Exit(1) from None


def _load_config():
    """Load relay config, exit on error."""
    try:
        return load_relay_config()
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading config:[/red] {e}")
        raise typer.Exit(1) from None


# ── tokenrelay serve ─────────────────────────────────────────────

@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to listen on"),
    model: str = typer.Option(
        "", "--model", "-m",
        help="Registry key of the model to relay (default from config)",
    ),
    demo: bool = typer.Option(
        False, "--demo",
        help="Relay a scripted reply instead of calling a model",
    ),
    log_level: str = typer.Option(
        "info", "--log-level",
        help="Log level for the relay and uvicorn",
    ),
) -> None:
    """Start the relay HTTP server."""
    import uvicorn

    from tokenrelay.api.app import create_app
    from tokenrelay.providers.scripted import ScriptedSource

    _setup_logging(log_level)
    config = _load_config()

    source = ScriptedSource(delay=0.05) if demo else None
    try:
        app_instance = create_app(config, source=source, model=model or None)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from None

    relayed = app_instance.state.source
    if not relayed.is_configured:
        console.print(
            f"[yellow]Warning:[/yellow] {relayed.name} has no API key set; "
            "chat requests will fail until one is configured."
        )

    console.print(Panel(
        f"[bold]URL:[/bold] http://{host}:{port}{DEFAULT_STREAM_PATH}\n"
        f"[bold]Source:[/bold] {relayed.name}",
        title="[bold blue]tokenrelay[/bold blue]",
        border_style="blue",
    ))

    uvicorn.run(app_instance, host=host, port=port, log_level=log_level.lower())


# ── tokenrelay chat ──────────────────────────────────────────────

@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    context: str = typer.Option(
        "", "--context", "-c",
        help="Library context passed to the assistant prompt",
    ),
    url: str = typer.Option(
        "http://127.0.0.1:8000", "--url", "-u",
        help="Base URL of a running relay",
    ),
) -> None:
    """Send one message to a relay and print the reply as it streams.

    Press Ctrl+C to cancel the stream.
    """
    config = _load_config()

    callbacks = StreamCallbacks(
        on_chunk=lambda text: console.print(text, end="", markup=False, highlight=False),
    )

    async def _chat() -> str | None:
        async with RelayClient(
            url, callbacks=callbacks, idle_timeout=config.client_idle_timeout,
        ) as client:
            loop = asyncio.get_running_loop()
            handled = False
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(signal.SIGINT, client.cancel)
                handled = True
            try:
                return await client.send(message, context or None)
            finally:
                if handled:
                    loop.remove_signal_handler(signal.SIGINT)

    try:
        result = asyncio.run(_chat())
    except KeyboardInterrupt:
        result = None
    except StreamFailedError as e:
        console.print()
        console.print(f"[red]Stream failed:[/red] {e.message}")
        raise typer.Exit(1) from None

    console.print()
    if result is None:
        console.print("[yellow]Cancelled.[/yellow]")
        raise typer.Exit(_EXIT_CANCELLED)


# ── tokenrelay models ────────────────────────────────────────────

@models_app.command("list")
def models_list() -> None:
    """Show all registered models as a table."""
    registry = _load_registry()
    default = _load_config().model

    table = Table(title="Registered Models", show_lines=True)
    table.add_column("Key", style="bold cyan")
    table.add_column("Display Name")
    table.add_column("Provider", style="dim")
    table.add_column("Context", justify="right")
    table.add_column("Input $/M", justify="right")
    table.add_column("Output $/M", justify="right")
    table.add_column("API Key")

    for key, cfg in sorted(registry.items()):
        key_status = "[green]set[/green]" if has_key(cfg.api_key_env) else "[red]not set[/red]"
        table.add_row(
            f"{key} (default)" if key == default else key,
            cfg.display_name,
            cfg.provider,
            f"{cfg.context_window:,}",
            f"${cfg.cost_input:.2f}",
            f"${cfg.cost_output:.2f}",
            key_status,
        )

    console.print(table)
    console.print(f"\n[dim]{len(registry)} models registered[/dim]")


# ── tokenrelay config ────────────────────────────────────────────

@config_app.command("show")
def config_show() -> None:
    """Show current relay configuration."""
    config = _load_config()

    table = Table(title="Relay Configuration", show_header=False, show_lines=True)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    table.add_row("Model", config.model)
    table.add_row("Max Tokens", str(config.max_tokens))
    table.add_row("Temperature", f"{config.temperature:.2f}")
    table.add_row("Idle Timeout", f"{config.idle_timeout:g}s")
    table.add_row("Request Timeout", f"{config.request_timeout:g}s")
    table.add_row("Max Retries", str(config.max_retries))
    table.add_row("Client Idle Timeout", f"{config.client_idle_timeout:g}s")
    table.add_row("Allowed Origins", ", ".join(config.allow_origins) or "(none)")

    console.print(table)


@config_app.command("path")
def config_path() -> None:
    """Show configuration file locations."""
    config_dir = Path(__file__).parent / "config"
    files = [
        ("Models", config_dir / "models.toml"),
        ("Defaults", config_dir / "defaults.toml"),
        ("Keys", KEYS_FILE),
        ("Project .env", Path.cwd() / ".env"),
    ]

    table = Table(title="Configuration Paths", show_header=False)
    table.add_column("Config", style="bold")
    table.add_column("Path")
    table.add_column("Status")

    for name, path in files:
        status = "[green]found[/green]" if path.exists() else "[dim]missing[/dim]"
        table.add_row(name, str(path), status)

    console.print(table)


# ── Entry point ──────────────────────────────────────────────────

if __name__ == "__main__":
    app()
