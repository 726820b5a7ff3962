"""CLI commands for muse."""

import asyncio
import sys
from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from muse import __logo__, __version__

app = typer.Typer(
    name="muse",
    help=f"{__logo__} muse - Persona-grounded agent for artists",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    if value:
        console.print(f"{__logo__} muse v{__version__}")
        raise typer.Exit()


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


@app.callback()
def main(
    version: bool = typer.Option(None, "--version", callback=version_callback, is_eager=True),
):
    """muse - Persona-grounded agent for artists."""
    pass


# ============================================================================
# Setup
# ============================================================================


@app.command()
def init():
    """Write a default configuration file."""
    from muse.config.loader import get_config_path, save_config
    from muse.config.schema import Config

    config_path = get_config_path()
    if config_path.exists():
        console.print(f"[yellow]Config already exists at {config_path}[/yellow]")
        if not typer.confirm("Overwrite?"):
            raise typer.Exit()

    save_config(Config())
    console.print(f"[green]✓[/green] Created config at {config_path}")
    console.print("\nNext steps:")
    console.print("  1. Add your API key to [cyan]~/.muse/config.json[/cyan]")
    console.print('  2. Chat: [cyan]muse chat -b my-bucket -m "Hello!"[/cyan]')


# ============================================================================
# Server
# ============================================================================


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address"),
    port: int = typer.Option(None, "--port", "-p", help="Server port"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Start the HTTP API."""
    import uvicorn

    from muse.config.loader import load_config
    from muse.services import build_services
    from muse.web.app import create_app

    _configure_logging(verbose)
    config = load_config(config_file)

    if not config.get_api_key():
        console.print("[red]Error: No API key configured.[/red]")
        console.print("Set one in ~/.muse/config.json under providers.anthropic.apiKey")
        raise typer.Exit(1)

    host = host or config.gateway.host
    port = port or config.gateway.port
    console.print(f"{__logo__} Starting muse API on {host}:{port}...")
    console.print(f"[green]✓[/green] Cache backend: {config.cache.backend}")

    app_ = create_app(build_services(config))
    uvicorn.run(app_, host=host, port=port, log_level="debug" if verbose else "info")


# ============================================================================
# Chat
# ============================================================================


@app.command()
def chat(
    bucket: str = typer.Option(..., "--bucket", "-b", help="Artist bucket"),
    message: str = typer.Option(None, "--message", "-m", help="Message to send to the agent"),
    session_id: str = typer.Option(None, "--session", "-s", help="Session ID"),
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
):
    """Talk to the agent directly."""
    from muse.agent.events import (
        DoneEvent,
        ErrorEvent,
        MessageCompleteEvent,
        SessionEvent,
        TextDeltaEvent,
        TimingEvent,
    )
    from muse.config.loader import load_config
    from muse.services import build_services

    _configure_logging(verbose)
    config = load_config(config_file)

    if not config.get_api_key():
        console.print("[red]Error: No API key configured.[/red]")
        raise typer.Exit(1)

    services = build_services(config)

    async def turn(text: str, sid: str | None) -> str | None:
        async for event in services.chat.stream(bucket, text, sid):
            if isinstance(event, SessionEvent):
                sid = event.id
            elif isinstance(event, TextDeltaEvent):
                console.print(event.text, end="", markup=False, highlight=False)
            elif isinstance(event, MessageCompleteEvent):
                console.print()
            elif isinstance(event, TimingEvent) and verbose:
                console.print(f"[dim]{event.category}: {event.duration_ms:.0f}ms[/dim]")
            elif isinstance(event, ErrorEvent):
                console.print(f"[red]Error: {event.message}[/red]")
            elif isinstance(event, DoneEvent) and verbose:
                console.print(f"[dim]session {event.id}, {event.message_count} message(s)[/dim]")
        return sid

    async def run_once():
        try:
            console.print(f"{__logo__} ", end="")
            await turn(message, session_id)
        finally:
            await services.close()

    async def run_interactive():
        sid = session_id
        console.print(f"{__logo__} Interactive mode (Ctrl+C to exit)\n")
        try:
            while True:
                try:
                    user_input = console.input("[bold blue]You:[/bold blue] ")
                except (KeyboardInterrupt, EOFError):
                    console.print("\nGoodbye!")
                    break
                if not user_input.strip():
                    continue
                console.print(f"\n{__logo__} ", end="")
                sid = await turn(user_input, sid)
                console.print()
        finally:
            await services.close()

    asyncio.run(run_once() if message else run_interactive())


# ============================================================================
# Cache
# ============================================================================


@app.command("cache-stats")
def cache_stats(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
):
    """Show which buckets have a cached context."""
    from muse.config.loader import load_config
    from muse.services import build_services

    _configure_logging(False)
    services = build_services(load_config(config_file))

    async def run() -> dict:
        try:
            return await services.context_cache.stats()
        finally:
            await services.close()

    stats = asyncio.run(run())

    table = Table(title="Cached contexts")
    table.add_column("Bucket", style="cyan")
    for bucket in stats["buckets"]:
        table.add_row(bucket)
    console.print(table)
    console.print(f"{stats['count']} bucket(s) cached")


@app.command("cache-clear")
def cache_clear(
    config_file: Path = typer.Option(None, "--config", "-c", help="Config file path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Drop every cached context, session, vector result and embedding."""
    from muse.config.loader import load_config
    from muse.services import build_services

    _configure_logging(False)
    if not yes and not typer.confirm("Clear all caches?"):
        raise typer.Exit()

    services = build_services(load_config(config_file))

    async def run() -> dict[str, int]:
        try:
            return await services.clear_caches()
        finally:
            await services.close()

    cleared = asyncio.run(run())

    table = Table(title="Cleared")
    table.add_column("Cache", style="cyan")
    table.add_column("Entries", justify="right")
    for name, count in cleared.items():
        table.add_row(name, str(count))
    console.print(table)


if __name__ == "__main__":
    app()
