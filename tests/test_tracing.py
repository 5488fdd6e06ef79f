"""
Tests for Langfuse tracing integration with SDK v3.

Tests cover:
- Client disabled states (credentials, failed auth check)
- Context no-ops when disabled
- Trace lifecycle with a mocked Langfuse client
"""

from unittest.mock import MagicMock, patch

import pytest

from agent_gateway.config import LangfuseConfig
from agent_gateway.tracing import (
    GenerationContext,
    SpanContext,
    TracingClient,
    TracingContext,
    get_tracing_client,
    init_tracing_client,
    shutdown_tracing,
)


class TestTracingClient:
    def test_disabled_without_credentials(self):
        client = TracingClient(public_key="", secret_key="")
        assert client.enabled is False
        assert "credentials not configured" in client.error.lower()

    def test_disabled_with_partial_credentials(self):
        client = TracingClient(public_key="pk-test", secret_key="")
        assert client.enabled is False

    def test_flush_and_shutdown_are_no_ops_when_disabled(self):
        client = TracingClient()
        client.flush()
        client.shutdown()
        assert client.start_observation("span", name="x") is None

    @patch("agent_gateway.tracing.client.Langfuse")
    def test_enabled_after_auth_check(self, mock_langfuse):
        mock_langfuse.return_value.auth_check.return_value = True

        client = TracingClient(public_key="pk", secret_key="sk", host="http://langfuse:3000")

        assert client.enabled is True
        assert client.error is None
        assert mock_langfuse.call_args.kwargs["host"] == "http://langfuse:3000"

    @patch("agent_gateway.tracing.client.Langfuse")
    def test_disabled_when_auth_check_fails(self, mock_langfuse):
        mock_langfuse.return_value.auth_check.side_effect = ConnectionError("unreachable")

        client = TracingClient(public_key="pk", secret_key="sk")

        assert client.enabled is False
        assert client.client is None
        assert "unreachable" in client.error

    @patch("agent_gateway.tracing.client.Langfuse")
    def test_disabled_when_credentials_rejected(self, mock_langfuse):
        mock_langfuse.return_value.auth_check.return_value = False
        client = TracingClient(public_key="pk", secret_key="sk")
        assert client.enabled is False
        assert "rejected" in client.error


class TestTracingClientSingleton:
    def test_init_then_shutdown(self):
        client = init_tracing_client(LangfuseConfig(public_key="", secret_key=""))
        assert get_tracing_client() is client

        shutdown_tracing()
        assert get_tracing_client() is None


class TestTracingContextDisabled:
    def test_disabled_without_client(self):
        ctx = TracingContext(execution_id="test-123")
        assert ctx.enabled is False

    def test_trace_lifecycle_is_no_op(self):
        ctx = TracingContext(execution_id="test-123")
        ctx.start_trace(name="test", input="hello")
        assert ctx.get_trace_context() is None
        ctx.end_trace(output="result")

    def test_span_and_generation_are_no_ops(self):
        ctx = TracingContext(execution_id="test-123")
        with ctx.span("tool") as span:
            span.set_output({"result": "test"})
            assert span._observation is None
        with ctx.generation("llm", model="m") as gen:
            gen.set_usage(prompt_tokens=10, completion_tokens=20)
            assert gen._observation is None


class TestObservationState:
    def test_span_records_output_and_status(self):
        span = SpanContext(name="test")
        span.set_output({"key": "value"})
        span.set_status("error")
        assert span._output == {"key": "value"}
        assert span._status == "error"

    def test_generation_usage_details(self):
        gen = GenerationContext(name="llm", model="m")
        gen.set_usage(prompt_tokens=10, completion_tokens=20)
        assert gen._end_kwargs()["usage_details"] == {"input": 10, "output": 20}

    def test_generation_partial_usage(self):
        gen = GenerationContext(name="llm", model="m")
        gen.set_usage(completion_tokens=7)
        assert gen._usage == {"output": 7}

    def test_error_status_sets_level(self):
        span = SpanContext(name="test")
        span.set_status("error")
        assert span._end_kwargs()["level"] == "ERROR"


@pytest.fixture
def langfuse():
    """Enabled global tracing client backed by a mocked Langfuse."""
    with patch("agent_gateway.tracing.client.Langfuse") as mock_langfuse:
        instance = mock_langfuse.return_value
        instance.auth_check.return_value = True
        root = MagicMock(trace_id="trace-1", id="span-1")
        instance.start_span.return_value = root
        init_tracing_client(LangfuseConfig(public_key="pk", secret_key="sk"))
        yield instance


class TestTracingContextEnabled:
    def test_trace_lifecycle(self, langfuse):
        ctx = TracingContext(execution_id="exec-1", session_id="conv-1", user_id="agent-1")
        assert ctx.enabled is True

        ctx.start_trace(name="chat", input="hi")
        root = langfuse.start_span.return_value
        root.update_trace.assert_called_once_with(name="chat", user_id="agent-1", session_id="conv-1")
        assert ctx.get_trace_context() == {"trace_id": "trace-1", "parent_span_id": "span-1"}

        ctx.end_trace(output="bye")
        root.end.assert_called_once()
        assert root.update.call_args.kwargs["output"] == "bye"

    def test_generation_is_parented_to_root(self, langfuse):
        ctx = TracingContext(execution_id="exec-1")
        ctx.start_trace()

        with ctx.generation("llm", model="glm4") as gen:
            gen.set_usage(prompt_tokens=3, completion_tokens=4)

        kwargs = langfuse.start_generation.call_args.kwargs
        assert kwargs["model"] == "glm4"
        assert kwargs["trace_context"] == {"trace_id": "trace-1", "parent_span_id": "span-1"}
        observation = langfuse.start_generation.return_value
        assert observation.update.call_args.kwargs["usage_details"] == {"input": 3, "output": 4}
        observation.end.assert_called_once()

    def test_span_marks_errors(self, langfuse):
        ctx = TracingContext(execution_id="exec-1")
        ctx.start_trace()

        with pytest.raises(RuntimeError):
            with ctx.span("tool"):
                raise RuntimeError("boom")

        # start_span serves both the root and the child span
        child = langfuse.start_span.return_value
        assert child.update.call_args.kwargs["metadata"]["status"] == "error"

    def test_shutdown_flushes_client(self, langfuse):
        shutdown_tracing()
        langfuse.shutdown.assert_called_once()
