"""
Argument schemas compiled into a closed set of constraint variants.

A tool declares its arguments as a JSON-Schema-shaped dict::

    {
        "type": "object",
        "properties": {
            "money": {"type": "number", "minimum": 0},
            "flowType": {"type": "string", "enum": ["income", "expense"]},
            "day": {"type": "string", "format": "date"},
        },
        "required": ["money"],
    }

``ArgumentSchema.from_dict`` checks the declaration with ``jsonschema`` and
compiles it into ``Required``, ``Enum``, ``NumericRange`` and
``StringFormat`` constraints, which ``ArgumentSchema.validate`` evaluates in
declaration order.  The first failing constraint raises ``ValidationError``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Any

import jsonschema

from ledgerbot.errors import SchemaDefinitionError, ValidationError

_MISSING = object()

FORMAT_PATTERNS: dict[str, tuple[re.Pattern[str], str]] = {
    "date": (re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}"), "YYYY-MM-DD"),
    "month": (re.compile(r"[0-9]{4}-[0-9]{2}"), "YYYY-MM"),
}
FORMAT_ALIASES = {"date-month": "month"}


def normalize_schema(schema: dict | None) -> dict:
    s = dict(schema or {})
    s.setdefault("type", "object")
    s.setdefault("properties", {})
    return s


# ---------------------------------------------------------------------------
# Constraint variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Constraint:
    field: str

    def check(self, value: Any) -> str | None:
        """Return an error message, or ``None`` when *value* passes."""
        raise NotImplementedError

    @property
    def applies_to_missing(self) -> bool:
        return False


@dataclass(frozen=True)
class Required(Constraint):
    @property
    def applies_to_missing(self) -> bool:
        return True

    def check(self, value: Any) -> str | None:
        if value is _MISSING or value is None:
            return f"Missing required argument: {self.field}"
        if isinstance(value, str) and not value.strip():
            return f"Argument {self.field} must not be an empty string"
        return None


@dataclass(frozen=True)
class Enum(Constraint):
    allowed: tuple = ()

    def check(self, value: Any) -> str | None:
        if value not in self.allowed:
            choices = ", ".join(str(a) for a in self.allowed)
            return f"Argument {self.field} must be one of: {choices}"
        return None


@dataclass(frozen=True)
class NumericRange(Constraint):
    minimum: float | None = None
    maximum: float | None = None
    integer: bool = False

    def check(self, value: Any) -> str | None:
        if (
            isinstance(value, bool)
            or not isinstance(value, (int, float))
            or (isinstance(value, float) and math.isnan(value))
        ):
            return f"Argument {self.field} must be a valid number"
        if self.integer and isinstance(value, float) and not value.is_integer():
            return f"Argument {self.field} must be an integer"
        if self.minimum is not None and value < self.minimum:
            return f"Argument {self.field} must be greater than or equal to {self.minimum}"
        if self.maximum is not None and value > self.maximum:
            return f"Argument {self.field} must be less than or equal to {self.maximum}"
        return None


@dataclass(frozen=True)
class StringFormat(Constraint):
    fmt: str = "date"

    def check(self, value: Any) -> str | None:
        pattern, human = FORMAT_PATTERNS[self.fmt]
        if not isinstance(value, str) or not pattern.fullmatch(value):
            return f"Argument {self.field} must use the {self.fmt} format ({human})"
        return None


# ---------------------------------------------------------------------------
# Compiled schema
# ---------------------------------------------------------------------------


@dataclass
class ArgumentSchema:
    constraints: list[Constraint] = field(default_factory=list)
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, schema: dict | None) -> ArgumentSchema:
        raw = normalize_schema(schema)
        try:
            jsonschema.Draft7Validator.check_schema(raw)
        except jsonschema.SchemaError as exc:
            raise SchemaDefinitionError(f"Invalid argument schema: {exc.message}") from exc

        constraints: list[Constraint] = []
        for name in raw.get("required", []):
            constraints.append(Required(name))

        for name, prop in raw["properties"].items():
            if "enum" in prop:
                constraints.append(Enum(name, tuple(prop["enum"])))
            if prop.get("type") in ("number", "integer"):
                constraints.append(
                    NumericRange(
                        name,
                        prop.get("minimum"),
                        prop.get("maximum"),
                        integer=prop["type"] == "integer",
                    )
                )
            fmt = prop.get("format")
            if prop.get("type") == "string" and fmt:
                fmt = FORMAT_ALIASES.get(fmt, fmt)
                # Formats outside the known set are descriptive only.
                if fmt in FORMAT_PATTERNS:
                    constraints.append(StringFormat(name, fmt))

        return cls(constraints=constraints, raw=raw)

    @property
    def required(self) -> list[str]:
        return [c.field for c in self.constraints if isinstance(c, Required)]

    def validate(self, arguments: dict[str, Any], *, tool_name: str | None = None) -> None:
        for constraint in self.constraints:
            value = arguments.get(constraint.field, _MISSING)
            if (value is _MISSING or value is None) and not constraint.applies_to_missing:
                continue
            message = constraint.check(value)
            if message is not None:
                raise ValidationError(message, tool_name=tool_name, field=constraint.field)
