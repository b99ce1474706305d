from __future__ import annotations


class ToolError(Exception):
    """Base error type for tool registration, validation and execution."""


class ToolRegistrationError(ToolError):
    """A tool definition is invalid (unknown name, duplicate, non-async handler)."""


class ToolValidationError(ToolError):
    """Tool arguments do not match the tool's parameter schema."""

    def __init__(self, tool_name: str, fields: list[str], details: list[str] | None = None):
        self.tool_name = tool_name
        self.fields = fields
        self.details = details or []
        listed = ", ".join(fields) if fields else "<arguments>"
        super().__init__(f"Invalid arguments for tool '{tool_name}': {listed}")


class ToolExecutionError(ToolError):
    """A tool handler raised or timed out."""

    def __init__(self, tool_name: str, cause: BaseException):
        self.tool_name = tool_name
        self.cause = cause
        message = str(cause) or type(cause).__name__
        super().__init__(message)


class MalformedToolCallArguments(ToolError):
    """The model sent tool-call arguments that are not a JSON object."""

    def __init__(self, tool_name: str, call_id: str, reason: str):
        self.tool_name = tool_name
        self.call_id = call_id
        self.reason = reason
        super().__init__(f"Malformed arguments for '{tool_name}' (call {call_id}): {reason}")


__all__ = [
    "ToolError",
    "ToolRegistrationError",
    "ToolValidationError",
    "ToolExecutionError",
    "MalformedToolCallArguments",
]
