"""Tests for argument normalization at the dispatch boundary."""

import pytest

from agent_gateway.tools import ArgumentError, dispatch_call, normalize_arguments


class TestNormalizeArguments:
    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_payloads(self, raw):
        assert normalize_arguments(raw) == {}

    def test_dict_is_copied(self):
        raw = {"repo": "o/r"}
        normalized = normalize_arguments(raw)
        assert normalized == raw
        assert normalized is not raw

    def test_json_string(self):
        assert normalize_arguments('{"repo": "o/r", "state": "open"}') == {"repo": "o/r", "state": "open"}

    def test_invalid_json(self):
        with pytest.raises(ArgumentError, match="Failed to parse arguments"):
            normalize_arguments("{repo: o/r")

    def test_json_array_rejected(self):
        with pytest.raises(ArgumentError, match="JSON object"):
            normalize_arguments("[1, 2]")

    def test_other_types_rejected(self):
        with pytest.raises(ArgumentError):
            normalize_arguments(42)


class TestDispatchCall:
    def test_success_message(self, executor_registry):
        dispatched = dispatch_call(executor_registry, "call_1", "echo_say", '{"text": "hi"}', {"echo": "t"})
        assert dispatched.to_message() == {
            "role": "tool",
            "tool_call_id": "call_1",
            "name": "echo_say",
            "content": '{"echo": "hi"}',
        }

    def test_bad_arguments_do_not_reach_executor(self, executor_registry, echo_executor, monkeypatch):
        called = []
        monkeypatch.setattr(echo_executor, "execute", lambda *a: called.append(a))

        dispatched = dispatch_call(executor_registry, "call_1", "echo_say", "not json", {"echo": "t"})

        assert called == []
        assert dispatched.call_id == "call_1"
        assert dispatched.result.ok is False
