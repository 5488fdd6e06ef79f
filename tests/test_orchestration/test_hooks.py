"""Tests for loop observers."""

import logging
from unittest.mock import MagicMock

from agent_gateway.llm_client import ToolCall
from agent_gateway.orchestration import LoggingObserver, LoopResult, TracingObserver
from agent_gateway.tools import DispatchedCall, ToolError, ToolSuccess

from helpers import make_response


class TestLoggingObserver:
    def test_failed_tool_call_logs_warning(self, caplog):
        observer = LoggingObserver("exec-1")
        dispatched = DispatchedCall("call_1", "github_get_repo", {}, ToolError("github_get_repo", "nope"))

        with caplog.at_level(logging.WARNING, logger="agent_gateway.orchestration.hooks"):
            observer.tool_call_finished(1, dispatched)

        assert "[exec-1] github_get_repo failed: nope" in caplog.text

    def test_ceiling_logs_warning(self, caplog):
        observer = LoggingObserver()
        result = LoopResult(answer="x", iterations=10, max_iterations_reached=True)

        with caplog.at_level(logging.WARNING, logger="agent_gateway.orchestration.hooks"):
            observer.loop_finished(result)

        assert "Max tool iterations reached" in caplog.text


class TestTracingObserver:
    def test_generation_per_model_call(self):
        tracing = MagicMock()
        generation = MagicMock()
        tracing.new_generation.return_value = generation
        observer = TracingObserver(tracing, model_parameters={"temperature": 0.5})

        observer.model_call_started(1, "m", [{"role": "user", "content": "hi"}])
        observer.model_call_finished(1, make_response("answer"))

        tracing.new_generation.assert_called_once()
        assert tracing.new_generation.call_args.kwargs["name"] == "model_call_1"
        assert tracing.new_generation.call_args.kwargs["model_parameters"] == {"temperature": 0.5}
        generation.start.assert_called_once()
        generation.set_output.assert_called_once_with("answer")
        generation.set_usage.assert_called_once_with(prompt_tokens=10, completion_tokens=5)
        generation.end.assert_called_once()

    def test_span_per_tool_call_marks_errors(self):
        tracing = MagicMock()
        span = MagicMock()
        tracing.new_span.return_value = span
        observer = TracingObserver(tracing)

        observer.tool_call_started(1, ToolCall(id="call_1", name="echo_say", arguments={"text": "x"}))
        observer.tool_call_finished(
            1, DispatchedCall("call_1", "echo_say", {"text": "x"}, ToolError("echo_say", "bad"))
        )

        assert tracing.new_span.call_args.kwargs["name"] == "tool:echo_say"
        span.set_status.assert_called_once_with("error")
        span.end.assert_called_once()

    def test_successful_tool_call_keeps_status(self):
        tracing = MagicMock()
        span = MagicMock()
        tracing.new_span.return_value = span
        observer = TracingObserver(tracing)

        observer.tool_call_started(1, ToolCall(id="call_1", name="echo_say"))
        observer.tool_call_finished(1, DispatchedCall("call_1", "echo_say", {}, ToolSuccess("echo_say", "ok")))

        span.set_status.assert_not_called()
        span.set_output.assert_called_once_with("ok")

    def test_error_closes_open_generation(self):
        tracing = MagicMock()
        generation = MagicMock()
        tracing.new_generation.return_value = generation
        observer = TracingObserver(tracing)

        observer.model_call_started(2, "m", [])
        observer.error(2, RuntimeError("down"))

        generation.set_status.assert_called_once_with("error")
        generation.end.assert_called_once()
