"""
Tool-calling orchestration loop.

Drives a bounded cycle of model call, tool dispatch and result feedback
until the model answers without requesting tools or the iteration ceiling
is reached.

Per-iteration flow:
    1. Send the working message sequence and function catalog to the model
    2. No tool calls: the response text is the final answer, stop
    3. Otherwise append the assistant's tool-call message (call ids intact)
    4. Dispatch every call concurrently, collect results in submission order
    5. Append one tool-role message per result and continue

Only a failed model call aborts the loop. Tool failures are serialized into
their own result messages.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from ..llm_client import ChatOptions, ModelRuntimeClient, ToolCall
from ..tools.dispatch import DispatchedCall, dispatch_call
from ..tools.registry import ExecutorRegistry, ToolError
from .hooks import LoopObserver

logger = logging.getLogger(__name__)

MAX_ITERATIONS_MESSAGE = "Max tool iterations reached"


@dataclass
class LoopResult:
    """Outcome of one orchestration run."""

    answer: str
    iterations: int
    model: str = ""
    tool_results: list[DispatchedCall] = field(default_factory=list)
    max_iterations_reached: bool = False
    total_duration: Optional[int] = None
    eval_count: Optional[int] = None
    messages: list[dict] = field(default_factory=list)


class ToolCallingLoop:
    """
    Bounded request/execute/respond cycle between a model and executors.

    One instance may serve many runs; every run owns its own working copy
    of the message sequence.
    """

    def __init__(
        self,
        llm_client: ModelRuntimeClient,
        registry: ExecutorRegistry,
        max_iterations: int = 10,
        max_workers: int = 8,
        observers: Optional[Iterable[LoopObserver]] = None,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.llm_client = llm_client
        self.registry = registry
        self.max_iterations = max_iterations
        self.max_workers = max(1, max_workers)
        self.observers = list(observers or [])

    def run(
        self,
        model: str,
        messages: list[dict],
        tools: list[dict],
        options: Optional[ChatOptions] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
    ) -> LoopResult:
        """
        Run the loop to a final answer.

        Args:
            model: Model name
            messages: System prompt followed by prior turns and the user turn
            tools: Function catalog offered to the model
            options: Generation options
            credentials: Executor name -> credential

        Returns:
            LoopResult. When the ceiling is hit, ``max_iterations_reached``
            is set and ``answer`` holds the content of the last working message,
            usually the final tool result.

        Raises:
            ModelRuntimeError: A model call failed (not retried)
        """
        working = list(messages)
        credentials = credentials or {}
        tool_results: list[DispatchedCall] = []
        total_duration: Optional[int] = None
        eval_count: Optional[int] = None
        last_model = model

        for iteration in range(1, self.max_iterations + 1):
            self._notify("model_call_started", iteration, model, list(working))
            try:
                response = self.llm_client.chat(model, working, options, tools=tools)
            except Exception as e:
                self._notify("error", iteration, e)
                raise
            self._notify("model_call_finished", iteration, response)

            last_model = response.model or model
            if response.usage.total_duration is not None:
                total_duration = (total_duration or 0) + response.usage.total_duration
            if response.usage.eval_count is not None:
                eval_count = (eval_count or 0) + response.usage.eval_count

            if not response.tool_calls:
                working.append({"role": "assistant", "content": response.content})
                return self._finish(
                    LoopResult(
                        answer=response.content,
                        iterations=iteration,
                        model=last_model,
                        tool_results=tool_results,
                        total_duration=total_duration,
                        eval_count=eval_count,
                        messages=working,
                    )
                )

            working.append(response.assistant_message())
            batch = self._dispatch_batch(iteration, response.tool_calls, credentials)
            working.extend(dispatched.to_message() for dispatched in batch)
            tool_results.extend(batch)

        return self._finish(
            LoopResult(
                answer=working[-1].get("content") or MAX_ITERATIONS_MESSAGE,
                iterations=self.max_iterations,
                model=last_model,
                tool_results=tool_results,
                max_iterations_reached=True,
                total_duration=total_duration,
                eval_count=eval_count,
                messages=working,
            )
        )

    def _dispatch_batch(
        self,
        iteration: int,
        calls: list[ToolCall],
        credentials: Mapping[str, Optional[str]],
    ) -> list[DispatchedCall]:
        """Execute sibling calls concurrently; results keep submission order."""
        workers = min(self.max_workers, len(calls))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="tool-call") as pool:
            return list(pool.map(lambda call: self._run_call(iteration, call, credentials), calls))

    def _run_call(
        self,
        iteration: int,
        call: ToolCall,
        credentials: Mapping[str, Optional[str]],
    ) -> DispatchedCall:
        self._notify("tool_call_started", iteration, call)
        try:
            dispatched = dispatch_call(self.registry, call.id, call.name, call.arguments, credentials)
        except Exception as e:
            # A failing call must not take down its siblings
            dispatched = DispatchedCall(call.id, call.name, {}, ToolError(call.name, f"Tool execution failed: {e}"))
        self._notify("tool_call_finished", iteration, dispatched)
        return dispatched

    def _finish(self, result: LoopResult) -> LoopResult:
        self._notify("loop_finished", result)
        return result

    def _notify(self, event: str, *args) -> None:
        for observer in self.observers:
            try:
                getattr(observer, event)(*args)
            except Exception as e:
                logger.warning(f"Loop observer {type(observer).__name__}.{event} failed: {e}")
