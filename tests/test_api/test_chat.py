"""Tests for the chat endpoints."""

import base64
import json

from agent_gateway.llm_client import ChatStream, ModelRuntimeUnavailable


def _events(response) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in response.text.split("\n\n")
        if line.startswith("data: ")
    ]


class TestChatEndpoint:
    def test_chat(self, client, mock_llm):
        response = client.post("/api/agents/plain-agent/chat", json={"message": "Hi"})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Hello from the model"
        assert data["agent"] == "plain-agent"
        assert data["model"] == "test-model"
        assert data["toolsUsed"] == []
        assert data["totalDuration"] == 100
        assert data["evalCount"] == 5
        assert data["conversationId"]

    def test_continue_conversation(self, client, mock_llm):
        first = client.post("/api/agents/plain-agent/chat", json={"message": "Hi"}).json()
        second = client.post(
            "/api/agents/plain-agent/chat",
            json={"message": "Again", "conversationId": first["conversationId"]},
        ).json()
        assert second["conversationId"] == first["conversationId"]

    def test_options_are_applied(self, client, mock_llm):
        client.post(
            "/api/agents/plain-agent/chat",
            json={"message": "Hi", "options": {"temperature": 0.1, "maxTokens": 64}},
        )
        options = mock_llm.chat.call_args[0][2]
        assert options.temperature == 0.1
        assert options.max_tokens == 64

    def test_blank_message(self, client, mock_llm):
        response = client.post("/api/agents/plain-agent/chat", json={"message": "  "})
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"
        mock_llm.chat.assert_not_called()

    def test_missing_message(self, client):
        assert client.post("/api/agents/plain-agent/chat", json={}).status_code == 400

    def test_out_of_range_option(self, client):
        response = client.post(
            "/api/agents/plain-agent/chat", json={"message": "Hi", "options": {"temperature": 5}}
        )
        assert response.status_code == 400

    def test_unknown_agent(self, client):
        assert client.post("/api/agents/ghost/chat", json={"message": "Hi"}).status_code == 404

    def test_conflicting_conversation(self, client, gateway):
        other = gateway.store.create_conversation("tool-agent")
        response = client.post(
            "/api/agents/plain-agent/chat", json={"message": "Hi", "conversationId": other.id}
        )
        assert response.status_code == 409
        assert gateway.store.get_messages(other.id) == []

    def test_runtime_unavailable(self, client, mock_llm):
        mock_llm.chat.side_effect = ModelRuntimeUnavailable("Model runtime connection error: refused")
        response = client.post("/api/agents/plain-agent/chat", json={"message": "Hi"})
        assert response.status_code == 503
        assert "refused" in response.json()["details"]


class TestStreamEndpoint:
    def test_stream_events(self, client, mock_llm):
        mock_llm.chat_stream.return_value = ChatStream(iter(["Hel", "lo"]), model="test-model")

        response = client.post("/api/agents/plain-agent/chat/stream", json={"message": "Hi"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        events = _events(response)
        assert events[0] == {"chunk": "Hel", "done": False}
        assert events[1] == {"chunk": "lo", "done": False}
        final = events[-1]
        assert final["done"] is True
        assert final["chunk"] == ""
        assert final["model"] == "test-model"
        assert final["conversationId"]

    def test_stream_error_event(self, client, mock_llm):
        def broken():
            yield "partial"
            raise ModelRuntimeUnavailable("connection lost")

        mock_llm.chat_stream.return_value = ChatStream(broken(), model="test-model")

        response = client.post("/api/agents/plain-agent/chat/stream", json={"message": "Hi"})

        events = _events(response)
        assert events[0] == {"chunk": "partial", "done": False}
        assert events[-1] == {"error": "Streaming request failed", "details": "connection lost"}

    def test_stream_validation_is_plain_json(self, client, mock_llm):
        response = client.post("/api/agents/plain-agent/chat/stream", json={"message": ""})
        assert response.status_code == 400
        mock_llm.chat_stream.assert_not_called()


class TestUploadEndpoint:
    def test_upload(self, client, gateway):
        response = client.post(
            "/api/agents/plain-agent/chat/upload",
            json={
                "message": "Review",
                "file": {"name": "app.py", "content": "print(1)", "type": "text/x-python"},
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["file"] == {"name": "app.py", "processed": True}
        first = gateway.store.get_messages(data["conversationId"])[0]
        assert first.content.startswith("[File: app.py]\n```\nprint(1)\n```")

    def test_upload_base64(self, client, gateway):
        encoded = base64.b64encode(b"col_a,col_b").decode()
        response = client.post(
            "/api/agents/plain-agent/chat/upload",
            json={"message": "Parse", "file": {"name": "d.csv", "content": encoded, "type": "application/csv"}},
        )
        first = gateway.store.get_messages(response.json()["conversationId"])[0]
        assert "col_a,col_b" in first.content

    def test_upload_without_file(self, client, mock_llm):
        response = client.post("/api/agents/plain-agent/chat/upload", json={"message": "Review"})
        assert response.status_code == 400
        assert response.json()["details"] == "field=file"
        mock_llm.chat.assert_not_called()
