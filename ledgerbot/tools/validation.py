from ledgerbot.errors import ValidationError
from ledgerbot.tools.base import ToolDefinition


class ToolValidator:
    @staticmethod
    def validate(tool: ToolDefinition, arguments) -> tuple[bool, str | None]:
        try:
            ToolValidator.check(tool, arguments)
            return True, None
        except ValidationError as e:
            return False, e.message

    @staticmethod
    def check(tool: ToolDefinition, arguments) -> None:
        if not isinstance(arguments, dict):
            raise ValidationError(
                f"Arguments for {tool.name} are not a JSON object: {str(arguments)[:200]}",
                tool_name=tool.name,
            )
        schema = tool.compiled_schema
        if schema is None and tool.argument_schema is not None:
            schema = tool.compile()
        if schema is not None:
            schema.validate(arguments, tool_name=tool.name)
