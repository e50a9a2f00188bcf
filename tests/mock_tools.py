"""Mock tool definitions for testing."""

from __future__ import annotations

from ledgerbot.tools.base import ToolDefinition
from ledgerbot.types import ConversationContext


class CallRecorder:
    """Collects the arguments every mock executor was called with."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict]] = []

    def __len__(self) -> int:
        return len(self.calls)


def echo_tool(recorder: CallRecorder | None = None) -> ToolDefinition:
    async def execute(args: dict, context: ConversationContext) -> dict:
        if recorder is not None:
            recorder.calls.append(("echo", args))
        return {"message": args.get("message", "")}

    return ToolDefinition(
        name="echo",
        description="Echoes the input message back.",
        executor=execute,
        argument_schema={
            "type": "object",
            "properties": {
                "message": {"type": "string", "description": "Message to echo"},
            },
            "required": ["message"],
        },
    )


def record_tool(recorder: CallRecorder | None = None) -> ToolDefinition:
    """A create_flow-like tool: required money, enum type, date format."""

    async def execute(args: dict, context: ConversationContext) -> dict:
        if recorder is not None:
            recorder.calls.append(("record", args))
        return {"id": len(recorder) if recorder else 1, "book": context.book_id, **args}

    return ToolDefinition(
        name="record",
        description="Records an entry.",
        executor=execute,
        argument_schema={
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "money": {"type": "number", "minimum": 0, "maximum": 1000000},
                "flowType": {"type": "string", "enum": ["income", "expense"]},
                "day": {"type": "string", "format": "date"},
                "month": {"type": "string", "format": "month"},
            },
            "required": ["money"],
        },
    )


def failing_tool(name: str = "boom", message: str = "backend exploded") -> ToolDefinition:
    async def execute(args: dict, context: ConversationContext) -> dict:
        raise RuntimeError(message)

    return ToolDefinition(name=name, description="Always fails.", executor=execute)


def context_tool() -> ToolDefinition:
    """Returns the book id it was invoked with."""

    async def execute(args: dict, context: ConversationContext) -> dict:
        return {"book_id": context.book_id}

    return ToolDefinition(name="whoami", description="Reports the context.", executor=execute)
