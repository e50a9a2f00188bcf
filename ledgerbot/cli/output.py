"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console, Group, RenderableType
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from ledgerbot.agent.history import HistoryEntry
from ledgerbot.agent.messages import (
    AIMessage,
    BaseMessage,
    ImageMessage,
    TextMessage,
    ThinkingMessage,
    ToolCallMessage,
    ToolResultMessage,
)
from ledgerbot.tools.base import ToolDefinition

ROLE_COLORS = {
    "user": "blue",
    "assistant": "green",
    "system": "dim",
}


def _short_json(value: Any, limit: int = 120) -> str:
    text = value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)
    return text if len(text) <= limit else text[: limit - 3] + "..."


class OutputFormatter:
    """Rich-based output formatting for the ledgerbot CLI."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Assistant turns
    # ------------------------------------------------------------------

    def render_response(self, response: AIMessage, *, show_thinking: bool = True) -> RenderableType:
        parts: list[RenderableType] = []
        for msg in response.message_list:
            part = self._render_message(msg, show_thinking=show_thinking)
            if part is not None:
                parts.append(part)
        if response.loading:
            parts.append(Text("...", style="dim"))
        return Group(*parts)

    def _render_message(self, msg: BaseMessage, *, show_thinking: bool) -> RenderableType | None:
        if isinstance(msg, TextMessage):
            if msg.error:
                return Text(msg.content, style="red")
            return Markdown(msg.content)
        if isinstance(msg, ThinkingMessage):
            if not show_thinking:
                return None
            return Text(msg.thinking_content, style="dim italic")
        if isinstance(msg, ToolCallMessage):
            return self._render_tool_call(msg)
        if isinstance(msg, ToolResultMessage):
            return self._render_tool_result(msg)
        if isinstance(msg, ImageMessage):
            return Text(f"[image] {msg.image_uri}", style="magenta")
        return None

    def _render_tool_call(self, msg: ToolCallMessage) -> RenderableType:
        header = Text.assemble(
            ("tool ", "dim"),
            (msg.tool_name, "bold cyan"),
            (f"({_short_json(msg.arguments, 80)})", "cyan"),
        )
        if msg.loading or msg.result_message is None:
            return Text.assemble(header, ("  running...", "yellow"))
        return Group(header, self._render_tool_result(msg.result_message))

    def _render_tool_result(self, msg: ToolResultMessage) -> RenderableType:
        if msg.success:
            return Text(f"  OK ({msg.duration_ms} ms): {_short_json(msg.result)}", style="green")
        return Text(f"  FAILED [{msg.error_code}]: {msg.error_message}", style="red")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def format_tool_list(self, tools: list[ToolDefinition]) -> None:
        table = Table(title="Registered Tools", show_lines=True)
        table.add_column("Name", style="cyan", no_wrap=True)
        table.add_column("Required", no_wrap=True)
        table.add_column("Description")

        for t in tools:
            required = ", ".join(t.parameters.get("required", [])) or "-"
            table.add_row(t.name, required, t.description)

        self.console.print(table)

    def format_tool_info(self, tool: ToolDefinition) -> None:
        self.console.print(Panel(
            f"[bold]{tool.name}[/bold]\n\n{tool.description}",
            title=f"Tool: {tool.name}",
        ))
        schema_json = json.dumps(tool.parameters, indent=2, ensure_ascii=False)
        self.console.print(Syntax(schema_json, "json", theme="monokai"))

    def format_suggestions(self, suggestions: list[str]) -> None:
        if not suggestions:
            self.console.print("[dim]No suggestions.[/dim]")
            return
        for i, suggestion in enumerate(suggestions, 1):
            self.console.print(f"  [cyan]{i}.[/cyan] {suggestion}")

    def format_history(self, entries: list[HistoryEntry]) -> None:
        if not entries:
            self.console.print("[dim]No history.[/dim]")
            return
        for e in entries:
            color = ROLE_COLORS.get(e.role, "white")
            ts = e.timestamp.strftime("%H:%M:%S")
            self.console.print(f"  [{color}]{ts} {e.role:>9s}[/{color}]  {_short_json(e.content, 100)}")

    def format_config(self, config: dict) -> None:
        config_json = json.dumps(config, indent=2, default=str)
        self.console.print(Syntax(config_json, "json", theme="monokai"))
