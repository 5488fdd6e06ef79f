"""
Function executor registry.

Each external service is wrapped by a ``FunctionExecutor`` that owns a
static catalog of ``FunctionDescriptor`` entries and turns every invocation
into a tagged ``ToolSuccess`` or ``ToolError``. The ``ExecutorRegistry``
routes function names to executors and builds the model-facing catalog for
an agent.
"""

import fnmatch
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Optional, Union

logger = logging.getLogger(__name__)


class IntegrationError(Exception):
    """Raised inside an executor when the remote API reports a failure."""


@dataclass(frozen=True)
class FunctionDescriptor:
    """Metadata for a callable function - defined once, used everywhere."""

    name: str
    description: str
    parameters: dict = field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(self.parameters.get("required", ()))

    def to_tool_definition(self) -> dict:
        """OpenAI/Ollama ``tools`` entry for this function."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True)
class ToolSuccess:
    """A function that ran and returned output."""

    name: str
    output: Any
    ok: bool = field(default=True, init=False)

    def to_content(self) -> str:
        """Serialize the output for a tool-role message."""
        if isinstance(self.output, str):
            return self.output
        return json.dumps(self.output, default=str)


@dataclass(frozen=True)
class ToolError:
    """A function call that could not be completed."""

    name: str
    error: str
    ok: bool = field(default=False, init=False)

    def to_dict(self) -> dict:
        return {"error": self.error, "tool": self.name}

    def to_content(self) -> str:
        return json.dumps(self.to_dict())


ToolResult = Union[ToolSuccess, ToolError]

Handler = Callable[[dict, str], Any]


class FunctionExecutor:
    """
    Base class for one external service.

    Subclasses set ``name``, ``label`` and ``descriptors`` and implement
    ``handlers()`` mapping each function name to ``handler(args, credential)``.
    Handlers may raise; ``execute`` converts every failure into a
    ``ToolError`` so nothing escapes the executor boundary.
    """

    name: str = ""
    label: str = ""
    descriptors: tuple[FunctionDescriptor, ...] = ()

    def __init__(self, timeout: float = 30):
        self.timeout = timeout
        self._descriptors = {d.name: d for d in self.descriptors}

    def handlers(self) -> dict[str, Handler]:
        raise NotImplementedError

    def list_function_descriptors(self) -> list[FunctionDescriptor]:
        return list(self.descriptors)

    def handles(self, function_name: str) -> bool:
        return function_name in self._descriptors

    def execute(self, name: str, args: dict, credential: Optional[str]) -> ToolResult:
        """
        Run one function against the remote service.

        Args:
            name: Function name from this executor's catalog
            args: Structured arguments
            credential: API token for the service

        Returns:
            ToolSuccess with the function output, or ToolError
        """
        descriptor = self._descriptors.get(name)
        handler = self.handlers().get(name)
        if descriptor is None or handler is None:
            return ToolError(name, f"Unknown function: {name}")
        if not credential:
            return ToolError(name, f"{self.label} credential not configured")

        missing = [key for key in descriptor.required if args.get(key) in (None, "")]
        if missing:
            return ToolError(name, f"Missing required argument(s): {', '.join(missing)}")

        try:
            return ToolSuccess(name, handler(args, credential))
        # Failures never escape the executor
        except Exception as e:
            logger.warning(f"{self.label} function {name} failed: {e}")
            return ToolError(name, str(e))


def tool_allowed(allowed_tools: Iterable[str], function_name: str, executor_name: str) -> bool:
    """Check an agent's allowed-tool list against one function.

    An entry matches by exact function name, by executor name (``github``)
    or as a shell-style pattern (``linear_*``, ``*``).
    """
    for pattern in allowed_tools:
        if pattern in (function_name, executor_name):
            return True
        if fnmatch.fnmatchcase(function_name, pattern):
            return True
    return False


class ExecutorRegistry:
    """Routes function names to their executors."""

    def __init__(self, executors: Iterable[FunctionExecutor]):
        self._executors = tuple(executors)
        self._by_function: dict[str, FunctionExecutor] = {}
        for executor in self._executors:
            for descriptor in executor.list_function_descriptors():
                self._by_function[descriptor.name] = executor

    @property
    def executors(self) -> tuple[FunctionExecutor, ...]:
        return self._executors

    def get_executor(self, function_name: str) -> Optional[FunctionExecutor]:
        return self._by_function.get(function_name)

    def catalog(
        self,
        allowed_tools: Iterable[str],
        credentials: Mapping[str, Optional[str]],
    ) -> list[dict]:
        """
        Build the model-facing function catalog for an agent.

        A function is offered only when its executor has a credential and
        the agent's allowed-tool list matches it.

        Args:
            allowed_tools: Agent's permitted tool names or patterns
            credentials: Executor name -> credential

        Returns:
            List of ``tools`` definitions (empty when nothing is available)
        """
        allowed_tools = list(allowed_tools)
        catalog = []
        for executor in self._executors:
            if not credentials.get(executor.name):
                continue
            for descriptor in executor.list_function_descriptors():
                if tool_allowed(allowed_tools, descriptor.name, executor.name):
                    catalog.append(descriptor.to_tool_definition())
        return catalog

    def execute(
        self,
        name: str,
        args: dict,
        credentials: Mapping[str, Optional[str]],
    ) -> ToolResult:
        """Run a function by name; unknown names yield a ToolError."""
        executor = self.get_executor(name)
        if executor is None:
            return ToolError(name, f"Unknown tool: {name}")
        return executor.execute(name, args, credentials.get(executor.name))
