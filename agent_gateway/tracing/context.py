"""
Request-scoped tracing context.

One ``TracingContext`` covers one chat request. Spans and generations link
to the request's root span through an explicit ``TraceContext`` parent, so
they may be opened from any thread. Every method is a no-op when tracing is
disabled.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import get_tracing_client

logger = logging.getLogger(__name__)


@dataclass
class SpanContext:
    """A span with an explicit start/end lifecycle."""

    name: str
    enabled: bool = False
    metadata: Optional[dict] = None
    input: Optional[Any] = None
    _trace_context: Optional[TraceContext] = field(default=None, repr=False)
    _observation: Any = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)
    _output: Optional[Any] = field(default=None, repr=False)
    _status: str = field(default="success", repr=False)

    _as_type = "span"

    def _start_kwargs(self) -> dict:
        return {
            "trace_context": self._trace_context,
            "name": self.name,
            "input": self.input,
            "metadata": self.metadata,
        }

    def start(self) -> None:
        if not self.enabled:
            return
        client = get_tracing_client()
        if client is None:
            return
        self._start_time = time.time()
        self._observation = client.start_observation(self._as_type, **self._start_kwargs())

    def _end_kwargs(self) -> dict:
        update: dict[str, Any] = {
            "metadata": {
                "status": self._status,
                "duration_ms": round((time.time() - self._start_time) * 1000, 2),
            }
        }
        if self._output is not None:
            update["output"] = self._output
        if self._status != "success":
            update["level"] = "ERROR"
        return update

    def end(self) -> None:
        if self._observation is None:
            return
        observation, self._observation = self._observation, None
        try:
            observation.update(**self._end_kwargs())
            observation.end()
        except Exception as e:
            logger.warning(f"Failed to end {self._as_type} '{self.name}': {e}")

    def set_output(self, output: Any) -> None:
        self._output = output

    def set_status(self, status: str) -> None:
        self._status = status


@dataclass
class GenerationContext(SpanContext):
    """A model call, recorded with its model name, parameters and token usage."""

    model: str = ""
    model_parameters: Optional[dict] = None
    _usage: Optional[dict] = field(default=None, repr=False)

    _as_type = "generation"

    def _start_kwargs(self) -> dict:
        kwargs = super()._start_kwargs()
        kwargs["model"] = self.model
        kwargs["model_parameters"] = self.model_parameters
        return kwargs

    def _end_kwargs(self) -> dict:
        update = super()._end_kwargs()
        if self._usage:
            update["usage_details"] = self._usage
        return update

    def set_usage(
        self,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
    ) -> None:
        """Record token usage for the generation."""
        self._usage = {}
        if prompt_tokens is not None:
            self._usage["input"] = prompt_tokens
        if completion_tokens is not None:
            self._usage["output"] = completion_tokens


@dataclass
class TracingContext:
    """
    Trace for a single chat request.

    ``start_trace`` opens the root span; spans and generations created
    afterwards become its children. ``end_trace`` closes it.
    """

    execution_id: str
    session_id: Optional[str] = None
    user_id: Optional[str] = None
    _root: Any = field(default=None, repr=False)
    _enabled: bool = field(default=False, repr=False)
    _start_time: float = field(default_factory=time.time, repr=False)

    def __post_init__(self):
        client = get_tracing_client()
        self._enabled = client is not None and client.enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    def start_trace(
        self,
        name: str = "chat_request",
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        if not self._enabled:
            return
        client = get_tracing_client()
        if client is None:
            return

        trace_metadata = {"execution_id": self.execution_id, **(metadata or {})}
        self._root = client.start_observation("span", name=name, input=input, metadata=trace_metadata)
        if self._root is None:
            return
        try:
            self._root.update_trace(name=name, user_id=self.user_id, session_id=self.session_id)
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to set trace attributes: {e}")
        self._start_time = time.time()

    def get_trace_context(self) -> Optional[TraceContext]:
        """Parent link for child observations, or None before start_trace."""
        if self._root is None:
            return None
        return TraceContext(trace_id=self._root.trace_id, parent_span_id=self._root.id)

    def end_trace(
        self,
        output: Optional[Any] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        if self._root is None:
            return
        root, self._root = self._root, None
        try:
            root.update(
                output=output,
                metadata={
                    "status": status,
                    "duration_ms": round((time.time() - self._start_time) * 1000, 2),
                    **(metadata or {}),
                },
            )
            root.end()
        except Exception as e:
            logger.warning(f"[{self.execution_id}] Failed to end trace: {e}")

    def new_span(
        self,
        name: str,
        metadata: Optional[dict] = None,
        input: Optional[Any] = None,
    ) -> SpanContext:
        """Create an unstarted span for callers that manage start/end themselves."""
        return SpanContext(
            name=name,
            enabled=self._enabled,
            metadata=metadata,
            input=input,
            _trace_context=self.get_trace_context(),
        )

    def new_generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
        model_parameters: Optional[dict] = None,
    ) -> GenerationContext:
        """Create an unstarted generation for callers that manage start/end themselves."""
        return GenerationContext(
            name=name,
            enabled=self._enabled,
            metadata=metadata,
            input=input,
            model=model,
            model_parameters=model_parameters,
            _trace_context=self.get_trace_context(),
        )

    @contextmanager
    def span(
        self,
        name: str,
        metadata: Optional[dict] = None,
        input: Optional[Any] = None,
    ) -> Generator[SpanContext, None, None]:
        span_ctx = self.new_span(name, metadata=metadata, input=input)
        try:
            span_ctx.start()
            yield span_ctx
        except Exception:
            span_ctx.set_status("error")
            raise
        finally:
            span_ctx.end()

    @contextmanager
    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
        model_parameters: Optional[dict] = None,
    ) -> Generator[GenerationContext, None, None]:
        gen_ctx = self.new_generation(
            name, model, input=input, metadata=metadata, model_parameters=model_parameters
        )
        try:
            gen_ctx.start()
            yield gen_ctx
        except Exception:
            gen_ctx.set_status("error")
            raise
        finally:
            gen_ctx.end()
