"""System prompt builder."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Protocol

from ledgerbot.tools.base import ToolDefinition
from ledgerbot.types import ConversationContext


class PromptBuilder(Protocol):
    def __call__(
        self, tools: list[ToolDefinition], context: ConversationContext
    ) -> str: ...


def build_system_prompt(
    tools: list[ToolDefinition] | None = None,
    context: ConversationContext | None = None,
    extra_sections: list[str] | None = None,
    now: datetime | None = None,
) -> str:
    """
    Build the system prompt for the orchestrator.

    Assembles the assistant role, tool catalog with argument schemas, the
    current book and local time into a single prompt string.
    """
    sections: list[str] = []

    sections.append(
        "You are a bookkeeping assistant with direct access to the user's ledger via tools. "
        "When the user asks you to record, look up or change entries, call the tools "
        "instead of telling the user to do it themselves."
    )

    sections.append(TOOL_DISCIPLINE_SECTION)

    if tools:
        tool_lines = []
        for t in tools:
            schema = json.dumps(t.parameters, ensure_ascii=False)
            tool_lines.append(f"- **{t.name}**: {t.description}\n  Arguments: {schema}")
        sections.append("## Available Tools\n\n" + "\n".join(tool_lines))

    context = context or ConversationContext()
    if context.has_book:
        sections.append(
            f"## Current Book\n\nThe active book is `{context.book_name or context.book_id}` "
            f"(id `{context.book_id}`). Tools operate on this book."
        )
    else:
        sections.append(
            "## Current Book\n\nNo book is selected. Ask the user to select one "
            "before recording or querying entries."
        )

    now = now or datetime.now().astimezone()
    sections.append(f"## Local Time\n\n{now.strftime('%Y-%m-%d %H:%M %Z').strip()}")

    if extra_sections:
        sections.extend(extra_sections)

    return "\n\n".join(sections)


TOOL_DISCIPLINE_SECTION = """## Tool Discipline

- Use your tools to fulfil requests. Dates use YYYY-MM-DD, months use YYYY-MM.
- You may request several tool calls at once; they run in the order given.
- After tool results arrive, either call more tools or give the final answer.
- If a tool returns an error, report it clearly and suggest how to fix the input."""


def build_suggestion_prompt(user_input: str, count: int) -> tuple[str, str]:
    """System and user messages asking for *count* completions of a partial prompt."""
    system = (
        "You suggest prompts for a personal bookkeeping assistant.\n"
        f"Expand the user's partial input into {count} short, complete requests.\n\n"
        "Rules:\n"
        "1. Each suggestion is one complete, actionable sentence of at most 12 words.\n"
        "2. Build on what the user has typed.\n"
        "3. Stay within bookkeeping: recording entries, looking up data, "
        "spending analysis, budgets.\n"
        "4. Reply in plain text, one suggestion per line, without numbering.\n\n"
        f"User input: {user_input}"
    )
    user = f'Suggest {count} bookkeeping requests based on my input "{user_input}".'
    return system, user
