"""Tests for the chat turn service."""

import base64
from unittest.mock import Mock

import pytest

from agent_gateway.chat import ChatOverrides, ChatService, decode_file_content
from agent_gateway.errors import ConflictError, NotFoundError, ValidationError
from agent_gateway.llm_client import ChatStream, ModelRuntimeUnavailable
from agent_gateway.store import ConversationStore

from helpers import make_response


@pytest.fixture
def service(sample_agents, store, mock_llm, executor_registry, chat_config):
    return ChatService(
        agents=sample_agents,
        store=store,
        llm_client=mock_llm,
        executors=executor_registry,
        chat_config=chat_config,
        default_credentials={"echo": "configured-token"},
    )


class TestChatWithoutTools:
    def test_single_model_call_and_persistence(self, service, mock_llm, store):
        reply = service.chat("plain-agent", "Hello")

        assert mock_llm.chat.call_count == 1
        args, kwargs = mock_llm.chat.call_args
        assert "tools" not in kwargs
        assert reply.response == "Hello from the model"
        assert reply.agent == "plain-agent"
        assert reply.tools_used == []

        messages = store.get_messages(reply.conversation_id)
        assert [(m.role, m.content) for m in messages] == [
            ("user", "Hello"),
            ("assistant", "Hello from the model"),
        ]
        assert store.get_conversation(reply.conversation_id).title == "Hello"

    def test_agent_with_no_credentials_gets_no_tools(self, sample_agents, store, mock_llm, executor_registry, chat_config):
        service = ChatService(sample_agents, store, mock_llm, executor_registry, chat_config)
        service.chat("tool-agent", "Hi")
        assert mock_llm.chat.call_count == 1

    def test_system_prompt_includes_memory(self, service, mock_llm, store):
        store.upsert_agent_memory("plain-agent", "human", "Likes short answers")
        service.chat("plain-agent", "Hi")

        messages = mock_llm.chat.call_args[0][1]
        system = messages[0]
        assert system["role"] == "system"
        assert system["content"].startswith("You just talk.")
        assert "<human>\nLikes short answers\n</human>" in system["content"]

    def test_history_is_sent(self, service, mock_llm):
        first = service.chat("plain-agent", "First")
        service.chat("plain-agent", "Second", conversation_id=first.conversation_id)

        messages = mock_llm.chat.call_args[0][1]
        assert [m["content"] for m in messages[1:]] == ["First", "Hello from the model", "Second"]


class TestChatWithTools:
    def test_loop_runs_and_reports_tools(self, service, mock_llm, store):
        mock_llm.chat.side_effect = [
            make_response(tool_calls=[("call_1", "echo_say", {"text": "repos"})]),
            make_response("Done with tools"),
        ]

        reply = service.chat("tool-agent", "list my repos")

        assert reply.response == "Done with tools"
        assert [(u.name, u.call_id) for u in reply.tools_used] == [("echo_say", "call_1")]
        assert reply.tools_used[0].content == '{"echo": "repos"}'
        first_call_tools = mock_llm.chat.call_args_list[0].kwargs["tools"]
        assert {t["function"]["name"] for t in first_call_tools} == {"echo_say", "echo_fail"}
        # only the final text is stored
        roles = [m.role for m in store.get_messages(reply.conversation_id)]
        assert roles == ["user", "assistant"]

    def test_iteration_ceiling_is_soft(self, service, store, mock_llm):
        mock_llm.chat.side_effect = [
            make_response(tool_calls=[(f"call_{i}", "echo_say", {"text": "x"})]) for i in range(3)
        ]
        reply = service.chat("tool-agent", "loop forever")
        assert reply.max_iterations_reached is True
        assert reply.response == '{"echo": "x"}'
        assert store.get_messages(reply.conversation_id)[-1].content == '{"echo": "x"}'

    def test_request_credential_overrides_configured(self, service, echo_executor, mock_llm, monkeypatch):
        seen = []
        original = echo_executor.execute

        def spy(name, args, credential):
            seen.append(credential)
            return original(name, args, credential)

        monkeypatch.setattr(echo_executor, "execute", spy)
        mock_llm.chat.side_effect = [
            make_response(tool_calls=[("call_1", "echo_say", {"text": "x"})]),
            make_response("ok"),
        ]

        service.chat("tool-agent", "hi", credentials={"echo": "request-token"})

        assert seen == ["request-token"]


class TestValidation:
    @pytest.mark.parametrize("message", [None, "", "   \n"])
    def test_blank_message_rejected_without_side_effects(self, service, mock_llm, store, message):
        with pytest.raises(ValidationError):
            service.chat("plain-agent", message)
        mock_llm.chat.assert_not_called()
        assert store.list_conversations("plain-agent") == []

    def test_unknown_agent(self, service, mock_llm):
        with pytest.raises(NotFoundError):
            service.chat("ghost", "hi")
        mock_llm.chat.assert_not_called()

    def test_unknown_conversation(self, service):
        with pytest.raises(NotFoundError):
            service.chat("plain-agent", "hi", conversation_id="missing")

    def test_conversation_of_other_agent_is_conflict(self, service, store, mock_llm):
        other = store.create_conversation("tool-agent", "theirs")

        with pytest.raises(ConflictError):
            service.chat("plain-agent", "hi", conversation_id=other.id)

        assert store.get_messages(other.id) == []
        mock_llm.chat.assert_not_called()

    def test_model_failure_keeps_user_message_only(self, service, mock_llm, store):
        mock_llm.chat.side_effect = ModelRuntimeUnavailable("down")
        with pytest.raises(ModelRuntimeUnavailable):
            service.chat("plain-agent", "hi")
        conversation = store.list_conversations("plain-agent")[0]
        assert [m.role for m in store.get_messages(conversation.id)] == ["user"]


class TestOptions:
    def test_precedence(self, service, sample_agents):
        tool_agent = sample_agents["tool-agent"]
        plain_agent = sample_agents["plain-agent"]

        assert service.build_options(tool_agent, ChatOverrides(temperature=1.5)).temperature == 1.5
        assert service.build_options(tool_agent, None).temperature == 0.2
        assert service.build_options(plain_agent, None).temperature == 0.7
        assert service.build_options(plain_agent, ChatOverrides(max_tokens=99)).max_tokens == 99
        assert service.build_options(plain_agent, None).max_tokens == 1024

    def test_model_selection(self, service, sample_agents):
        assert service.select_model(sample_agents["tool-agent"]) == "test-model"
        service.use_agent_models = True
        assert service.select_model(sample_agents["tool-agent"]) == "agent-model"
        assert service.select_model(sample_agents["plain-agent"]) == "test-model"


class TestStreaming:
    def test_stream_without_tools(self, service, mock_llm, store):
        mock_llm.chat_stream.return_value = ChatStream(iter(["Hel", "lo"]), model="test-model")

        session = service.open_stream("plain-agent", "Hi")
        # user message is stored before streaming starts
        assert [m.role for m in store.get_messages(session.conversation_id)] == ["user"]

        assert list(session) == ["Hel", "lo"]
        assert session.done is True
        messages = store.get_messages(session.conversation_id)
        assert [(m.role, m.content) for m in messages] == [("user", "Hi"), ("assistant", "Hello")]
        mock_llm.chat.assert_not_called()

    def test_stream_with_tools_emits_single_fragment(self, service, mock_llm, store):
        mock_llm.chat.side_effect = [
            make_response(tool_calls=[("call_1", "echo_say", {"text": "x"})]),
            make_response("Final answer"),
        ]

        session = service.open_stream("tool-agent", "Hi")

        assert list(session) == ["Final answer"]
        mock_llm.chat_stream.assert_not_called()
        assert store.get_messages(session.conversation_id)[-1].content == "Final answer"

    def test_stream_validation_errors_raise_immediately(self, service, mock_llm):
        with pytest.raises(ValidationError):
            service.open_stream("plain-agent", " ")
        mock_llm.chat_stream.assert_not_called()

    def test_stream_cannot_be_consumed_twice(self, service, mock_llm):
        mock_llm.chat_stream.return_value = ChatStream(iter(["x"]), model="test-model")
        session = service.open_stream("plain-agent", "Hi")
        list(session)
        with pytest.raises(RuntimeError):
            iter(session)

    def test_mid_stream_failure_skips_persistence(self, service, mock_llm, store):
        def broken():
            yield "partial"
            raise ModelRuntimeUnavailable("lost")

        mock_llm.chat_stream.return_value = ChatStream(broken(), model="test-model")
        session = service.open_stream("plain-agent", "Hi")

        with pytest.raises(ModelRuntimeUnavailable):
            list(session)
        assert session.done is False
        assert [m.role for m in store.get_messages(session.conversation_id)] == ["user"]


class TestFileUpload:
    def test_text_file_is_inlined(self, service, mock_llm, store):
        reply = service.chat_with_file(
            "plain-agent", "Summarize this", file_name="notes.md", file_content="# Notes", file_type="text/markdown"
        )

        assert reply.file == {"name": "notes.md", "processed": True}
        user_message = store.get_messages(reply.conversation_id)[0].content
        assert user_message == "[File: notes.md]\n```\n# Notes\n```\n\nUser: Summarize this"
        assert store.get_conversation(reply.conversation_id).title == "notes.md: Summarize this"

    def test_long_file_name_fits_title(self, service, store):
        file_name = "report-" + "a" * 300 + ".txt"
        reply = service.chat_with_file(
            "plain-agent", "Summarize this", file_name=file_name, file_content="data", file_type="text/plain"
        )

        title = store.get_conversation(reply.conversation_id).title
        assert len(title) == 255
        assert title.startswith("report-aaa")

    def test_binary_type_is_base64_decoded(self, service, store):
        encoded = base64.b64encode(b'{"key": 1}').decode()
        reply = service.chat_with_file(
            "plain-agent", "Explain", file_name="a.json", file_content=encoded, file_type="application/json"
        )
        assert '{"key": 1}' in store.get_messages(reply.conversation_id)[0].content

    def test_missing_file_rejected(self, service, mock_llm):
        with pytest.raises(ValidationError):
            service.chat_with_file("plain-agent", "Explain", file_name=None, file_content=None)
        mock_llm.chat.assert_not_called()


class TestDecodeFileContent:
    def test_text_passthrough(self):
        assert decode_file_content("plain", "text/plain") == "plain"

    def test_invalid_base64_passthrough(self):
        assert decode_file_content("not base64!", "application/pdf") == "not base64!"


def test_store_failure_surfaces(sample_agents, mock_llm, executor_registry, chat_config):
    from sqlalchemy.exc import OperationalError

    store = Mock(spec=ConversationStore)
    store.create_conversation.side_effect = OperationalError("INSERT", {}, Exception("db down"))
    service = ChatService(sample_agents, store, mock_llm, executor_registry, chat_config)

    with pytest.raises(OperationalError):
        service.chat("plain-agent", "hi")
    mock_llm.chat.assert_not_called()
