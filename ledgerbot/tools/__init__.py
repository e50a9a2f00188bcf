"""Tool definitions, argument schemas and the registry that runs them."""

from ledgerbot.tools.base import ToolDefinition, ToolExecutor
from ledgerbot.tools.registry import ToolRegistry
from ledgerbot.tools.schema import ArgumentSchema
from ledgerbot.tools.validation import ToolValidator

__all__ = [
    "ArgumentSchema",
    "ToolDefinition",
    "ToolExecutor",
    "ToolRegistry",
    "ToolValidator",
]
