"""
Dispatch boundary between model tool calls and executors.

Arguments arrive either as structured objects (Ollama) or JSON strings
(OpenAI-compatible servers). They are normalized here into a dict before any
executor sees them.
"""

import json
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .registry import ExecutorRegistry, ToolError, ToolResult


class ArgumentError(ValueError):
    """Raised when a tool-call argument payload cannot be normalized."""


def normalize_arguments(arguments: Any) -> dict:
    """
    Convert a raw argument payload into a dict.

    Args:
        arguments: Dict, JSON string, or None

    Returns:
        Structured arguments

    Raises:
        ArgumentError: The payload is not valid JSON or not an object
    """
    if arguments is None:
        return {}
    if isinstance(arguments, Mapping):
        return dict(arguments)
    if isinstance(arguments, str):
        if not arguments.strip():
            return {}
        try:
            parsed = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ArgumentError(f"Failed to parse arguments: {e.msg}") from e
        if not isinstance(parsed, dict):
            raise ArgumentError(f"Arguments must be a JSON object, got {type(parsed).__name__}")
        return parsed
    raise ArgumentError(f"Unsupported argument payload type: {type(arguments).__name__}")


@dataclass
class DispatchedCall:
    """One executed tool call, correlated to the id the model issued."""

    call_id: str
    name: str
    arguments: dict
    result: ToolResult

    def to_message(self) -> dict:
        """Tool-role message carrying the serialized result."""
        return {
            "role": "tool",
            "tool_call_id": self.call_id,
            "name": self.name,
            "content": self.result.to_content(),
        }


def dispatch_call(
    registry: ExecutorRegistry,
    call_id: str,
    name: str,
    arguments: Any,
    credentials: Mapping[str, Optional[str]],
) -> DispatchedCall:
    """Normalize arguments and execute one call; never raises for per-call failures."""
    try:
        args = normalize_arguments(arguments)
    except ArgumentError as e:
        return DispatchedCall(call_id, name, {}, ToolError(name, str(e)))
    return DispatchedCall(call_id, name, args, registry.execute(name, args, credentials))
