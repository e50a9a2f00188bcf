"""
Tool registry -- owns tool definitions and runs them.

The registry is an explicit object (never a module-level singleton) handed
to the orchestrator by reference, so every test can build its own.

Lifecycle events delivered to listeners as ``(event, payload)``:

  ``tool_added``    a tool was registered (or replaced)
  ``tool_removed``  a tool was unregistered
  ``tool_called``   an invocation succeeded
  ``tool_error``    an invocation failed (unknown tool, validation, executor)
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from importlib.metadata import entry_points
from typing import Any, Callable, Iterable

from ledgerbot.errors import (
    ToolError,
    ToolExecutionError,
    UnknownToolError,
)
from ledgerbot.llm.types import ToolCall
from ledgerbot.tools.base import ToolDefinition
from ledgerbot.tools.validation import ToolValidator
from ledgerbot.types import ConversationContext, ToolResult

logger = logging.getLogger(__name__)

Listener = Callable[[str, dict], None]

EVENT_TOOL_ADDED = "tool_added"
EVENT_TOOL_REMOVED = "tool_removed"
EVENT_TOOL_CALLED = "tool_called"
EVENT_TOOL_ERROR = "tool_error"


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: dict[str, ToolDefinition] = {}
        self._listeners: list[Listener] = []

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def register(self, tool: ToolDefinition) -> None:
        """Insert *tool*, replacing any tool already registered under its name."""
        tool.compile()
        if tool.name in self._tools:
            logger.debug("Replacing tool %s", tool.name)
        self._tools[tool.name] = tool
        self._notify(EVENT_TOOL_ADDED, {"tool": tool.name, "description": tool.description})

    def register_all(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, name: str) -> bool:
        if self._tools.pop(name, None) is None:
            return False
        self._notify(EVENT_TOOL_REMOVED, {"tool": name})
        return True

    def get(self, name: str) -> ToolDefinition | None:
        return self._tools.get(name)

    def require(self, name: str) -> ToolDefinition:
        t = self.get(name)
        if t is None:
            available = ", ".join(self.names()) or "(none)"
            raise UnknownToolError(
                f"Unknown tool: {name}. Available tools: {available}",
                tool_name=name,
            )
        return t

    def list(self) -> list[ToolDefinition]:
        return sorted(self._tools.values(), key=lambda t: t.name)

    def names(self) -> list[str]:
        return [t.name for t in self.list()]

    def to_openai_schema(self) -> list[dict]:
        return [t.to_openai_schema() for t in self.list()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Subscribe to lifecycle events.  Returns a function that unsubscribes."""
        self._listeners.append(listener)
        return lambda: self.remove_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def _notify(self, event: str, payload: dict) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Tool registry listener failed on %s", event)

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def invoke(
        self,
        name: str,
        arguments: Any,
        context: ConversationContext | None = None,
    ) -> ToolResult:
        """
        Validate and run a single tool.

        Raises ``UnknownToolError``, ``ValidationError`` or
        ``ToolExecutionError``; a ``tool_error`` event is emitted first.
        """
        context = context or ConversationContext()
        start = time.monotonic()
        try:
            tool = self.require(name)
            ToolValidator.check(tool, arguments)
            try:
                data = await tool.executor(arguments, context)
            except Exception as exc:
                raise ToolExecutionError(
                    f"Tool {name} failed: {exc}", tool_name=name
                ) from exc
        except ToolError as exc:
            logger.warning("Tool call %s failed: %s", name, exc.message)
            self._notify(
                EVENT_TOOL_ERROR,
                {
                    "tool": name,
                    "args": arguments,
                    "error": exc.message,
                    "error_code": exc.code,
                    "timestamp": datetime.now(timezone.utc),
                },
            )
            raise

        duration_ms = int((time.monotonic() - start) * 1000)
        self._notify(
            EVENT_TOOL_CALLED,
            {
                "tool": name,
                "args": arguments,
                "result": data,
                "duration_ms": duration_ms,
                "timestamp": datetime.now(timezone.utc),
            },
        )
        return ToolResult(
            success=True,
            tool_name=name,
            data=data,
            duration_ms=duration_ms,
        )

    async def invoke_safe(
        self,
        name: str,
        arguments: Any,
        context: ConversationContext | None = None,
    ) -> ToolResult:
        """Like ``invoke`` but reports failure as a ``ToolResult`` instead of raising."""
        start = time.monotonic()
        try:
            return await self.invoke(name, arguments, context)
        except ToolError as exc:
            return ToolResult(
                success=False,
                tool_name=name,
                error=exc.message,
                error_code=exc.code,
                duration_ms=int((time.monotonic() - start) * 1000),
            )

    async def invoke_batch(
        self,
        calls: Iterable[ToolCall],
        context: ConversationContext | None = None,
    ) -> list[ToolResult]:
        """
        Run *calls* one after another, in order.

        Every call gets a result at the same position; a failure never stops
        the calls that follow it.
        """
        results: list[ToolResult] = []
        for call in calls:
            results.append(await self.invoke_safe(call.name, call.arguments, context))
        return results

    # ------------------------------------------------------------------
    # Plugins
    # ------------------------------------------------------------------

    def load_plugins(
        self,
        *,
        enabled: bool,
        group: str = "ledgerbot.tools",
        allow_distributions: set[str] | None = None,
        allow_tools: set[str] | None = None,
    ) -> int:
        """Load tools from entry points.

        An entry point may resolve to a ``ToolDefinition``, or to a callable
        returning one ``ToolDefinition`` or a list of them.
        """
        if not enabled:
            return 0
        loaded = 0
        for ep in entry_points(group=group):
            dist = getattr(ep, "dist", None)
            dist_name = getattr(dist, "name", None)
            if allow_distributions and dist_name and dist_name not in allow_distributions:
                continue
            if allow_tools and ep.name not in allow_tools:
                continue
            obj = ep.load()
            if not isinstance(obj, ToolDefinition):
                obj = obj()
            tools = obj if isinstance(obj, list) else [obj]
            for tool in tools:
                self.register(tool)
                loaded += 1
        return loaded
