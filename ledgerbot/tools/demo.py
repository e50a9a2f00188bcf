"""
Demo tool pack backed by an in-memory ledger.

Useful for trying the full orchestrator flow without a bookkeeping server.
Every executor requires a book in the ``ConversationContext``.
"""

from __future__ import annotations

import itertools
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from ledgerbot.tools.base import ToolDefinition
from ledgerbot.types import ConversationContext

FLOW_TYPES = ["income", "expense", "not_counted"]


@dataclass
class Flow:
    id: int
    book_id: str
    name: str
    money: float
    flow_type: str
    day: str
    industry_type: str = ""
    pay_type: str = ""
    attribution: str = ""
    description: str = ""


@dataclass
class DemoLedger:
    flows: dict[int, Flow] = field(default_factory=dict)
    budgets: dict[tuple[str, str], float] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    def add_flow(self, book_id: str, **values: Any) -> Flow:
        flow = Flow(id=next(self._ids), book_id=book_id, **values)
        self.flows[flow.id] = flow
        return flow

    def book_flows(self, book_id: str) -> list[Flow]:
        return [f for f in self.flows.values() if f.book_id == book_id]


def _book_id(context: ConversationContext) -> str:
    if not context.book_id:
        raise RuntimeError("No book is selected; select a book first")
    return context.book_id


def _current_month() -> str:
    return date.today().strftime("%Y-%m")


def demo_tools(ledger: DemoLedger | None = None) -> list[ToolDefinition]:
    """Return the demo tools, all sharing *ledger*."""
    ledger = ledger or DemoLedger()

    async def create_flow(args: dict, context: ConversationContext) -> dict:
        flow = ledger.add_flow(
            _book_id(context),
            name=args["name"].strip(),
            money=float(args["money"]),
            flow_type=args["flowType"],
            day=args.get("day") or date.today().isoformat(),
            industry_type=args.get("industryType", ""),
            pay_type=args.get("payType", ""),
            attribution=args.get("attribution", ""),
            description=args.get("description", ""),
        )
        return asdict(flow)

    async def get_flows(args: dict, context: ConversationContext) -> dict:
        flows = ledger.book_flows(_book_id(context))
        start = args.get("startDate") or f"{_current_month()}-01"
        end = args.get("endDate") or date.today().isoformat()
        flows = [f for f in flows if start <= f.day <= end]
        for key, attr in (
            ("flowType", "flow_type"),
            ("industryType", "industry_type"),
            ("payType", "pay_type"),
            ("attribution", "attribution"),
        ):
            if args.get(key):
                flows = [f for f in flows if getattr(f, attr) == args[key]]
        flows.sort(key=lambda f: (f.day, f.id), reverse=True)

        page_num = args.get("pageNum", 1)
        page_size = args.get("pageSize", 20)
        page = flows[(page_num - 1) * page_size: page_num * page_size]
        return {
            "total": len(flows),
            "pages": max(1, -(-len(flows) // page_size)),
            "totalIn": sum(f.money for f in flows if f.flow_type == "income"),
            "totalOut": sum(f.money for f in flows if f.flow_type == "expense"),
            "data": [asdict(f) for f in page],
        }

    async def delete_flow(args: dict, context: ConversationContext) -> dict:
        book_id = _book_id(context)
        flow = ledger.flows.get(args["id"])
        if flow is None or flow.book_id != book_id:
            raise LookupError(f"Flow {args['id']} not found")
        del ledger.flows[flow.id]
        return {"deleted": flow.id}

    async def get_budget(args: dict, context: ConversationContext) -> dict:
        book_id = _book_id(context)
        month = args.get("month") or _current_month()
        spent = sum(
            f.money
            for f in ledger.book_flows(book_id)
            if f.flow_type == "expense" and f.day.startswith(month)
        )
        budget = ledger.budgets.get((book_id, month))
        return {
            "month": month,
            "budget": budget,
            "used": spent,
            "remaining": None if budget is None else budget - spent,
        }

    async def update_budget(args: dict, context: ConversationContext) -> dict:
        book_id = _book_id(context)
        month = args.get("month") or _current_month()
        ledger.budgets[(book_id, month)] = float(args["budget"])
        return {"month": month, "budget": ledger.budgets[(book_id, month)]}

    return [
        ToolDefinition(
            name="create_flow",
            description="Record a new income or expense entry in the current book.",
            executor=create_flow,
            argument_schema={
                "type": "object",
                "properties": {
                    "name": {"type": "string", "description": "Short label, e.g. lunch"},
                    "money": {"type": "number", "minimum": 0, "description": "Amount"},
                    "flowType": {"type": "string", "enum": FLOW_TYPES},
                    "industryType": {"type": "string", "description": "Category, e.g. dining"},
                    "payType": {"type": "string", "description": "Payment method"},
                    "attribution": {"type": "string", "description": "Household member"},
                    "description": {"type": "string"},
                    "day": {"type": "string", "format": "date", "description": "YYYY-MM-DD, defaults to today"},
                },
                "required": ["name", "money", "flowType"],
            },
        ),
        ToolDefinition(
            name="get_flows",
            description="List entries of the current book in a date range, with optional filters and paging.",
            executor=get_flows,
            argument_schema={
                "type": "object",
                "properties": {
                    "startDate": {"type": "string", "format": "date"},
                    "endDate": {"type": "string", "format": "date"},
                    "flowType": {"type": "string", "enum": FLOW_TYPES},
                    "industryType": {"type": "string"},
                    "payType": {"type": "string"},
                    "attribution": {"type": "string"},
                    "pageNum": {"type": "integer", "minimum": 1},
                    "pageSize": {"type": "integer", "minimum": 1, "maximum": 100},
                },
            },
        ),
        ToolDefinition(
            name="delete_flow",
            description="Delete an entry of the current book by id.",
            executor=delete_flow,
            argument_schema={
                "type": "object",
                "properties": {"id": {"type": "integer", "minimum": 1}},
                "required": ["id"],
            },
        ),
        ToolDefinition(
            name="get_budget",
            description="Show the budget and spending of a month (defaults to the current month).",
            executor=get_budget,
            argument_schema={
                "type": "object",
                "properties": {"month": {"type": "string", "format": "month"}},
            },
        ),
        ToolDefinition(
            name="update_budget",
            description="Set the total budget of a month (defaults to the current month).",
            executor=update_budget,
            argument_schema={
                "type": "object",
                "properties": {
                    "month": {"type": "string", "format": "date-month"},
                    "budget": {"type": "number", "minimum": 0},
                },
                "required": ["budget"],
            },
        ),
    ]
