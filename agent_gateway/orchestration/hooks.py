"""
Lifecycle hooks for the tool-calling loop.

The loop reports what it does through ``LoopObserver`` callbacks instead of
logging inline. Tool-call callbacks run on worker threads, so observers
that keep state must guard it.
"""

import logging
import threading
from typing import TYPE_CHECKING, Optional

from ..llm_client import ChatResponse, ToolCall
from ..tools.dispatch import DispatchedCall
from ..tracing import GenerationContext, SpanContext, TracingContext

if TYPE_CHECKING:
    from .loop import LoopResult

logger = logging.getLogger(__name__)


class LoopObserver:
    """Base observer; every callback is a no-op."""

    def model_call_started(self, iteration: int, model: str, messages: list[dict]) -> None:
        pass

    def model_call_finished(self, iteration: int, response: ChatResponse) -> None:
        pass

    def tool_call_started(self, iteration: int, call: ToolCall) -> None:
        pass

    def tool_call_finished(self, iteration: int, dispatched: DispatchedCall) -> None:
        pass

    def loop_finished(self, result: "LoopResult") -> None:
        pass

    def error(self, iteration: int, exc: Exception) -> None:
        pass


class LoggingObserver(LoopObserver):
    """Writes loop events to the application log."""

    def __init__(self, execution_id: str = ""):
        self.prefix = f"[{execution_id}] " if execution_id else ""

    def model_call_started(self, iteration: int, model: str, messages: list[dict]) -> None:
        logger.debug(f"{self.prefix}Iteration {iteration}: calling {model} with {len(messages)} messages")

    def model_call_finished(self, iteration: int, response: ChatResponse) -> None:
        if response.tool_calls:
            names = ", ".join(call.name for call in response.tool_calls)
            logger.info(f"{self.prefix}Iteration {iteration}: model requested {len(response.tool_calls)} tool call(s): {names}")
        else:
            logger.debug(f"{self.prefix}Iteration {iteration}: model returned final answer")

    def tool_call_started(self, iteration: int, call: ToolCall) -> None:
        preview = str(call.arguments)[:100]
        logger.info(f"{self.prefix}Executing {call.name}({preview})")

    def tool_call_finished(self, iteration: int, dispatched: DispatchedCall) -> None:
        if dispatched.result.ok:
            logger.debug(f"{self.prefix}{dispatched.name} succeeded: {dispatched.result.to_content()[:200]}")
        else:
            logger.warning(f"{self.prefix}{dispatched.name} failed: {dispatched.result.error}")

    def loop_finished(self, result: "LoopResult") -> None:
        if result.max_iterations_reached:
            logger.warning(f"{self.prefix}Max tool iterations reached after {result.iterations} model calls")
        else:
            logger.info(
                f"{self.prefix}Loop finished after {result.iterations} model call(s), "
                f"{len(result.tool_results)} tool call(s)"
            )

    def error(self, iteration: int, exc: Exception) -> None:
        logger.error(f"{self.prefix}Model call failed on iteration {iteration}: {exc}")


class TracingObserver(LoopObserver):
    """Records model calls as generations and tool calls as spans."""

    def __init__(self, tracing_context: TracingContext, model_parameters: Optional[dict] = None):
        self.tracing = tracing_context
        self.model_parameters = model_parameters
        self._lock = threading.Lock()
        self._generations: dict[int, GenerationContext] = {}
        self._spans: dict[str, SpanContext] = {}

    def model_call_started(self, iteration: int, model: str, messages: list[dict]) -> None:
        generation = self.tracing.new_generation(
            name=f"model_call_{iteration}",
            model=model,
            input=messages,
            metadata={"iteration": iteration},
            model_parameters=self.model_parameters,
        )
        generation.start()
        with self._lock:
            self._generations[iteration] = generation

    def model_call_finished(self, iteration: int, response: ChatResponse) -> None:
        with self._lock:
            generation = self._generations.pop(iteration, None)
        if generation is None:
            return
        output = response.content
        if response.tool_calls:
            output = [call.to_message_dict() for call in response.tool_calls]
        generation.set_output(output)
        generation.set_usage(
            prompt_tokens=response.usage.prompt_tokens,
            completion_tokens=response.usage.completion_tokens,
        )
        generation.end()

    def tool_call_started(self, iteration: int, call: ToolCall) -> None:
        span = self.tracing.new_span(
            name=f"tool:{call.name}",
            input=call.arguments,
            metadata={"iteration": iteration, "call_id": call.id},
        )
        span.start()
        with self._lock:
            self._spans[call.id] = span

    def tool_call_finished(self, iteration: int, dispatched: DispatchedCall) -> None:
        with self._lock:
            span = self._spans.pop(dispatched.call_id, None)
        if span is None:
            return
        span.set_output(dispatched.result.to_content()[:2000])
        if not dispatched.result.ok:
            span.set_status("error")
        span.end()

    def error(self, iteration: int, exc: Exception) -> None:
        with self._lock:
            generation = self._generations.pop(iteration, None)
        if generation is None:
            return
        generation.set_status("error")
        generation.set_output(str(exc))
        generation.end()
