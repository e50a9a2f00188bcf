"""Interactive chat session handler."""

from __future__ import annotations

import asyncio
import logging
import signal

from rich.console import Console
from rich.live import Live

from ledgerbot.agent.messages import AIMessage
from ledgerbot.cli.output import OutputFormatter
from ledgerbot.orchestrator.core import Orchestrator, TurnResult, TurnState

logger = logging.getLogger(__name__)


class ChatHandler:
    """
    Manages the interactive chat loop.

    Renders every ``AIMessage`` snapshot live, handles inline commands and
    turns Ctrl-C during a turn into a cooperative cancellation.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        console: Console | None = None,
        show_thinking: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.console = console or Console()
        self.formatter = OutputFormatter(self.console)
        self.show_thinking = show_thinking
        self._running = True

    async def handle_command(self, command: str) -> bool:
        """
        Handle inline commands. Returns True if the command was handled.
        """
        cmd = command.strip().split(None, 1)[0].lower()

        if cmd == "/quit":
            self._running = False
            self.console.print("[dim]Goodbye.[/dim]")
            return True

        if cmd == "/history":
            self.formatter.format_history(self.orchestrator.history.entries())
            return True

        if cmd == "/clear":
            self.orchestrator.clear_history()
            self.console.print("[dim]History cleared.[/dim]")
            return True

        if cmd == "/tools":
            self.formatter.format_tool_list(self.orchestrator.registry.list())
            return True

        if cmd == "/suggest":
            parts = command.strip().split(None, 1)
            partial = parts[1] if len(parts) > 1 else ""
            with self.console.status("Thinking of suggestions..."):
                suggestions = await self.orchestrator.suggest(partial)
            self.formatter.format_suggestions(suggestions)
            return True

        if cmd == "/thinking":
            self.show_thinking = not self.show_thinking
            state = "shown" if self.show_thinking else "hidden"
            self.console.print(f"[dim]Thinking is now {state}.[/dim]")
            return True

        if cmd == "/help":
            self.console.print(
                "  [bold]Commands:[/bold]\n"
                "  /quit      - Exit the chat\n"
                "  /history   - Show conversation history\n"
                "  /clear     - Forget the conversation history\n"
                "  /tools     - List available tools\n"
                "  /suggest TEXT - Suggest complete requests for partial TEXT\n"
                "  /thinking  - Toggle display of model reasoning\n"
                "  /help      - Show this help\n"
                "  Ctrl-C during a reply cancels it.\n"
            )
            return True

        return False

    async def handle_input(self, user_input: str) -> TurnResult:
        """Run one turn through the orchestrator, rendering it live."""
        loop = asyncio.get_running_loop()
        installed = False
        try:
            loop.add_signal_handler(signal.SIGINT, self.orchestrator.cancel)
            installed = True
        except (NotImplementedError, RuntimeError):
            logger.debug("SIGINT handler not supported; Ctrl-C will not cancel turns")

        try:
            with Live(console=self.console, refresh_per_second=12, transient=False) as live:

                def on_update(snapshot: AIMessage, final: bool) -> None:
                    live.update(
                        self.formatter.render_response(snapshot, show_thinking=self.show_thinking)
                    )

                result = await self.orchestrator.send_message(user_input, on_update)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

        if result.state is TurnState.CANCELLED:
            self.console.print("[yellow]Cancelled.[/yellow]")
        elif result.state is TurnState.TIMED_OUT:
            self.console.print("[yellow]Stopped at the iteration limit.[/yellow]")
        return result

    async def run_loop(self) -> None:
        """Main interactive loop."""
        ctx = self.orchestrator.context
        book = ctx.book_name or ctx.book_id or "none"
        self.console.print(
            "[bold]Ledgerbot[/bold] - Bookkeeping Assistant\n"
            f"[dim]Book: {book}. Type /help for commands, /quit to exit.[/dim]\n"
        )

        while self._running:
            try:
                user_input = await asyncio.get_running_loop().run_in_executor(
                    None, lambda: input("you> ").strip()
                )
            except (EOFError, KeyboardInterrupt):
                self.console.print("\n[dim]Goodbye.[/dim]")
                break

            if not user_input:
                continue

            if user_input.startswith("/"):
                handled = await self.handle_command(user_input)
                if handled:
                    continue

            await self.handle_input(user_input)
