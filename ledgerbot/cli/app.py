"""
Main CLI application for ledgerbot.

Usage:
    lb chat [--profile NAME] [--book-id ID] [--book-name NAME] [--max-iterations N]
    lb suggest TEXT [--count N]
    lb tools list|info
    lb config show|validate
    lb version
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from ledgerbot import __version__
from ledgerbot.config import LedgerbotConfig, LoggingConfig, load_config

app = typer.Typer(name="lb", help="Ledgerbot - Bookkeeping Assistant CLI")
tools_app = typer.Typer(help="Tool catalog")
config_app = typer.Typer(help="Configuration management")

app.add_typer(tools_app, name="tools")
app.add_typer(config_app, name="config")

console = Console()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _get_config_path() -> Path | None:
    """Find config file in standard locations."""
    candidates = [
        Path.cwd() / "ledgerbot.yaml",
        Path.cwd() / "ledgerbot.yml",
        Path.home() / ".config" / "ledgerbot" / "config.yaml",
        Path.home() / ".ledgerbot" / "config.yaml",
    ]
    for p in candidates:
        if p.is_file():
            return p
    return None


def _configure_logging(cfg: LoggingConfig) -> None:
    level = getattr(logging, cfg.level.upper(), logging.WARNING)
    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    ]
    if cfg.file:
        file_handler = logging.FileHandler(Path(cfg.file).expanduser(), encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)
    logging.basicConfig(level=level, format="%(message)s", handlers=handlers, force=True)


def _build_registry(cfg: LedgerbotConfig):
    """Registry with the demo pack (minus disabled tools) and plugins."""
    from ledgerbot.tools.demo import demo_tools
    from ledgerbot.tools.registry import ToolRegistry

    registry = ToolRegistry()
    if cfg.tools.demo:
        registry.register_all(t for t in demo_tools() if t.name not in cfg.tools.disabled)

    registry.load_plugins(
        enabled=cfg.plugins.enabled,
        allow_distributions=set(cfg.plugins.allow_distributions) or None,
        allow_tools=set(cfg.plugins.allow_tools) or None,
    )
    for name in cfg.tools.disabled:
        registry.unregister(name)
    return registry


def _setup_stack(cfg: LedgerbotConfig, book_id: str | None, book_name: str | None):
    """Wire up the full stack for chat."""
    from ledgerbot.agent.history import ConversationHistory
    from ledgerbot.cli.chat import ChatHandler
    from ledgerbot.llm.providers import create_provider
    from ledgerbot.orchestrator.core import Orchestrator
    from ledgerbot.types import ConversationContext

    registry = _build_registry(cfg)
    provider = create_provider(cfg.llm)

    orchestrator = Orchestrator(
        registry=registry,
        provider=provider,
        context=ConversationContext(book_id=book_id, book_name=book_name),
        history=ConversationHistory(
            limit=cfg.agent.history_limit,
            window=cfg.agent.history_window,
        ),
        max_iterations=cfg.agent.max_iterations,
        max_tokens=cfg.llm.max_tokens,
        temperature=cfg.llm.temperature,
    )
    return ChatHandler(orchestrator=orchestrator, console=console)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command()
def chat(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
    book_id: Optional[str] = typer.Option(None, "--book-id", help="Current book id"),
    book_name: Optional[str] = typer.Option(None, "--book-name", help="Current book name"),
    max_iterations: Optional[int] = typer.Option(
        None, "--max-iterations", min=1, help="Model calls allowed per turn"
    ),
):
    """Start an interactive chat session."""
    cfg = load_config(
        _get_config_path(),
        profile=profile,
        cli_overrides={"agent.max_iterations": max_iterations},
    )
    _configure_logging(cfg.logging)

    try:
        handler = _setup_stack(cfg, book_id, book_name)
    except ValueError as e:
        console.print(f"[red]Could not set up LLM provider:[/red] {e}")
        raise typer.Exit(1)

    asyncio.run(handler.run_loop())


@app.command()
def suggest(
    text: str = typer.Argument(..., help="Partially typed request"),
    count: int = typer.Option(3, "--count", "-n", min=1, max=10, help="Number of suggestions"),
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Suggest complete requests for a partial one."""
    from ledgerbot.agent.suggestions import PromptSuggester
    from ledgerbot.cli.output import OutputFormatter
    from ledgerbot.llm.providers import create_provider

    cfg = load_config(_get_config_path(), profile=profile)
    _configure_logging(cfg.logging)
    try:
        provider = create_provider(cfg.llm)
    except ValueError as e:
        console.print(f"[red]Could not set up LLM provider:[/red] {e}")
        raise typer.Exit(1)

    suggestions = asyncio.run(PromptSuggester(provider).suggest(text, count))
    OutputFormatter(console).format_suggestions(suggestions)


@tools_app.command("list")
def tools_list():
    """List registered tools."""
    from ledgerbot.cli.output import OutputFormatter

    registry = _build_registry(load_config(_get_config_path()))
    OutputFormatter(console).format_tool_list(registry.list())


@tools_app.command("info")
def tools_info(tool_name: str = typer.Argument(..., help="Tool name")):
    """Show tool details and schema."""
    from ledgerbot.cli.output import OutputFormatter

    registry = _build_registry(load_config(_get_config_path()))
    tool = registry.get(tool_name)
    if not tool:
        console.print(f"[red]Tool not found:[/red] {tool_name}")
        raise typer.Exit(1)

    OutputFormatter(console).format_tool_info(tool)


@config_app.command("show")
def config_show(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Show effective config."""
    from ledgerbot.cli.output import OutputFormatter

    cfg = load_config(_get_config_path(), profile=profile)
    OutputFormatter(console).format_config(cfg.to_dict())


@config_app.command("validate")
def config_validate(
    profile: Optional[str] = typer.Option(None, help="Config profile name"),
):
    """Validate config and show the effective model settings."""
    from ledgerbot.llm.providers import create_provider

    config_path = _get_config_path()
    try:
        cfg = load_config(config_path, profile=profile)
        provider = create_provider(cfg.llm)
    except (ValueError, TypeError, AttributeError) as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)

    console.print("[green]Config is valid.[/green]")
    if config_path:
        console.print(f"  Loaded from: {config_path}")
    else:
        console.print("  [dim]No config file found, using defaults.[/dim]")
    console.print(f"  LLM provider: {provider.name} ({provider.model})")
    console.print(f"  Max iterations: {cfg.agent.max_iterations}")
    console.print(f"  Plugins enabled: {cfg.plugins.enabled}")


@app.command()
def version():
    """Show version."""
    console.print(f"ledgerbot v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
