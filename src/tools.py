"""
Tool implementations exposed by the MCP server.

These are plain functions with no state; server.py registers them on the
FastMCP instance. By the time one runs, the request has already been
authenticated, so nothing here looks at credentials.

Errors meant for the caller are raised as ToolError, which FastMCP turns into
a tool result with isError=true.
"""

from datetime import datetime
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastmcp.exceptions import ToolError

Operation = Literal["add", "subtract", "multiply", "divide"]


def _format_number(value: float) -> str:
    # 5.0 -> "5", 2.5 -> "2.5"
    if float(value).is_integer():
        return str(int(value))
    return str(value)


def get_server_time(timezone: str = "UTC") -> str:
    """Return the current server time in the given IANA time zone."""
    try:
        zone = ZoneInfo(timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ToolError(f"Unknown timezone: {timezone}")

    now = datetime.now(zone)
    return f"Current server time: {now.strftime('%m/%d/%Y, %I:%M:%S %p')} ({zone.key})"


def echo(message: str) -> str:
    """Echo back the provided message."""
    if not message:
        raise ToolError("Message is required")
    return f"Echo: {message}"


def calculate(operation: Operation, a: float, b: float) -> str:
    """Perform basic arithmetic on two numbers."""
    if operation == "add":
        result = a + b
    elif operation == "subtract":
        result = a - b
    elif operation == "multiply":
        result = a * b
    elif operation == "divide":
        if b == 0:
            raise ToolError("Cannot divide by zero")
        result = a / b
    else:
        raise ToolError(f"Unknown operation: {operation}")

    return f"Result: {_format_number(a)} {operation} {_format_number(b)} = {_format_number(result)}"
