from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from ledgerbot.tools.schema import ArgumentSchema, normalize_schema
from ledgerbot.types import ConversationContext

ToolExecutor = Callable[[dict[str, Any], ConversationContext], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """
    A callable capability exposed to the model.

    ``executor`` receives the validated arguments and the conversation
    context and returns any JSON-serializable result.  It may raise; the
    registry reports the failure as a ``ToolExecutionError``.
    """

    name: str
    description: str
    executor: ToolExecutor
    argument_schema: dict | None = None
    compiled_schema: ArgumentSchema | None = field(default=None, repr=False, compare=False)

    def compile(self) -> ArgumentSchema | None:
        if self.argument_schema is None:
            self.compiled_schema = None
        else:
            self.compiled_schema = ArgumentSchema.from_dict(self.argument_schema)
        return self.compiled_schema

    @property
    def parameters(self) -> dict:
        return normalize_schema(self.argument_schema)

    def to_openai_schema(self) -> dict:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }
