"""
Model runtime client for the agent gateway.

Provides a unified interface for the chat-completion backends the gateway
can talk to:
- Ollama (native ``/api/chat`` endpoint, NDJSON streaming)
- OpenAI-compatible servers (vLLM, LM Studio, hosted APIs)

Connection failures are raised as ``ModelRuntimeUnavailable`` so callers
can answer with a service-unavailable status instead of a generic error.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

import openai
import requests
from openai import OpenAI

from .config import ModelRuntimeConfig
from .errors import GatewayError
from .models import ConnectionType

logger = logging.getLogger(__name__)

# Status codes that mean the runtime is up but cannot serve right now
_UNAVAILABLE_STATUS_CODES = {502, 503, 504}


class ModelRuntimeError(GatewayError):
    """Raised when the model runtime rejects or fails a request."""

    error_code = "model_runtime_error"


class ModelRuntimeUnavailable(ModelRuntimeError):
    """Raised when the model runtime cannot be reached."""

    status_code = 503
    error_code = "model_runtime_unavailable"


@dataclass
class ChatOptions:
    """Generation options for a single model call."""

    temperature: float = 0.7
    max_tokens: int = 4096
    top_p: float = 0.9


@dataclass
class ToolCall:
    """A function invocation requested by the model.

    ``arguments`` is kept exactly as the runtime sent it: Ollama returns an
    object, OpenAI-compatible servers return a JSON string.
    """

    id: str
    name: str
    arguments: Any = None

    def to_message_dict(self) -> dict:
        """Render in the OpenAI ``tool_calls`` message shape."""
        arguments = self.arguments
        if not isinstance(arguments, str):
            arguments = json.dumps(arguments if arguments is not None else {})
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": arguments},
        }


@dataclass
class Usage:
    """Token and timing statistics reported by the runtime."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_duration: Optional[int] = None
    eval_count: Optional[int] = None


@dataclass
class ChatResponse:
    """A single-shot chat completion."""

    content: str
    model: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def assistant_message(self) -> dict:
        """The assistant turn to append to a conversation, call ids included."""
        message: dict = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_message_dict() for call in self.tool_calls]
        return message


class ChatStream:
    """
    Single-use stream of text fragments from the model.

    Fragments are yielded as they arrive and accumulated, so the full text
    is available from ``text`` once the stream is exhausted. A finished or
    partially consumed stream cannot be restarted; issue a new
    ``chat_stream`` call to regenerate.
    """

    def __init__(
        self,
        fragments: Iterator[str],
        model: str,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self.model = model
        self.done = False
        self._fragments = fragments
        self._on_close = on_close
        self._parts: list[str] = []
        self._started = False

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("Stream already consumed; issue a new chat_stream call")
        self._started = True
        return self._iterate()

    def _iterate(self) -> Iterator[str]:
        try:
            for fragment in self._fragments:
                self._parts.append(fragment)
                yield fragment
            self.done = True
        finally:
            self.close()

    @property
    def text(self) -> str:
        """Text received so far (the full answer once ``done`` is set)."""
        return "".join(self._parts)

    def close(self) -> None:
        """Release the underlying HTTP response."""
        if self._on_close is not None:
            on_close, self._on_close = self._on_close, None
            on_close()


class ModelRuntimeClient:
    """Chat-completion client supporting Ollama and OpenAI-compatible runtimes."""

    def __init__(
        self,
        connection_type: ConnectionType = ConnectionType.OLLAMA,
        base_url: str = "http://localhost:11434",
        default_model: str = "glm4",
        api_key: Optional[str] = None,
        timeout: float = 300.0,
    ):
        self.connection_type = connection_type
        self.base_url = base_url.rstrip("/")
        self.default_model = default_model
        self.timeout = timeout
        self._openai: Optional[OpenAI] = None
        if connection_type == ConnectionType.OPENAI_COMPATIBLE:
            self._openai = OpenAI(
                base_url=self.base_url,
                api_key=api_key or "not-needed",  # local servers do not require auth
                timeout=timeout,
                max_retries=0,
            )

    @classmethod
    def from_config(cls, runtime_config: ModelRuntimeConfig) -> "ModelRuntimeClient":
        """Build a client from the ``model_runtime`` configuration section."""
        return cls(
            connection_type=runtime_config.type,
            base_url=runtime_config.base_url,
            default_model=runtime_config.model,
            api_key=runtime_config.api_key or None,
            timeout=runtime_config.timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chat(
        self,
        model: Optional[str],
        messages: list[dict],
        options: Optional[ChatOptions] = None,
        tools: Optional[list[dict]] = None,
    ) -> ChatResponse:
        """
        Send a conversation to the runtime and wait for the complete answer.

        Args:
            model: Model name (falls back to the configured default)
            messages: Chat messages in OpenAI shape
            options: Generation options
            tools: Function catalog offered to the model (omitted when empty)

        Returns:
            ChatResponse with the assistant text and any requested tool calls

        Raises:
            ModelRuntimeUnavailable: The runtime could not be reached
            ModelRuntimeError: The runtime answered with an error
        """
        resolved_model = model or self.default_model
        resolved_options = options or ChatOptions()
        if self.connection_type == ConnectionType.OPENAI_COMPATIBLE:
            return self._chat_openai(resolved_model, messages, resolved_options, tools)
        return self._chat_ollama(resolved_model, messages, resolved_options, tools)

    def chat_stream(
        self,
        model: Optional[str],
        messages: list[dict],
        options: Optional[ChatOptions] = None,
    ) -> ChatStream:
        """
        Start a streaming completion.

        The request is sent before this method returns, so connection errors
        raise here rather than on first iteration.

        Returns:
            ChatStream yielding text fragments
        """
        resolved_model = model or self.default_model
        resolved_options = options or ChatOptions()
        if self.connection_type == ConnectionType.OPENAI_COMPATIBLE:
            return self._stream_openai(resolved_model, messages, resolved_options)
        return self._stream_ollama(resolved_model, messages, resolved_options)

    def list_models(self) -> list[dict]:
        """List models known to the runtime."""
        if self.connection_type == ConnectionType.OPENAI_COMPATIBLE:
            try:
                page = self._openai.models.list()
            except openai.APIConnectionError as e:
                raise ModelRuntimeUnavailable(f"Model runtime connection error: {e}") from e
            except openai.APIError as e:
                raise ModelRuntimeError(f"Model runtime listModels error: {e}") from e
            return [{"name": item.id} for item in page.data]

        try:
            response = requests.get(f"{self.base_url}/api/tags", timeout=30)
            response.raise_for_status()
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise ModelRuntimeUnavailable(f"Model runtime connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ModelRuntimeError(f"Model runtime listModels error: {e}") from e
        return response.json().get("models", [])

    def is_model_available(self, model_name: str, models: Optional[list[dict]] = None) -> bool:
        """Check whether a model is present on the runtime."""
        if models is None:
            models = self.list_models()
        return any(
            m.get("name") in (model_name, f"{model_name}:latest") for m in models
        )

    def health_check(self) -> dict:
        """Report reachability and whether the default model is installed."""
        try:
            models = self.list_models()
        except ModelRuntimeError as e:
            return {
                "connected": False,
                "error": e.message,
                "models": 0,
                "model_available": False,
            }
        return {
            "connected": True,
            "models": len(models),
            "model_available": self.is_model_available(self.default_model, models),
            "model_list": [m.get("name") for m in models],
        }

    def close(self) -> None:
        """Close the underlying OpenAI client, if any."""
        if self._openai is not None:
            self._openai.close()

    # ------------------------------------------------------------------
    # Ollama backend
    # ------------------------------------------------------------------

    def _ollama_payload(
        self,
        model: str,
        messages: list[dict],
        options: ChatOptions,
        stream: bool,
        tools: Optional[list[dict]] = None,
    ) -> dict:
        payload: dict = {
            "model": model,
            "messages": _to_ollama_messages(messages),
            "stream": stream,
            "options": {
                "temperature": options.temperature,
                "num_predict": options.max_tokens,
                "top_p": options.top_p,
            },
        }
        if tools:
            payload["tools"] = tools
        return payload

    def _post_ollama(self, payload: dict, stream: bool = False) -> requests.Response:
        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=self.timeout,
                stream=stream,
            )
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise ModelRuntimeUnavailable(f"Model runtime connection error: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ModelRuntimeError(f"Model runtime request failed: {e}") from e

        if not response.ok:
            try:
                detail = response.json().get("error") or response.reason
            except ValueError:
                detail = response.reason
            response.close()
            message = f"Model runtime chat error ({response.status_code}): {detail}"
            if response.status_code in _UNAVAILABLE_STATUS_CODES:
                raise ModelRuntimeUnavailable(message)
            raise ModelRuntimeError(message)
        return response

    def _chat_ollama(
        self,
        model: str,
        messages: list[dict],
        options: ChatOptions,
        tools: Optional[list[dict]],
    ) -> ChatResponse:
        payload = self._ollama_payload(model, messages, options, stream=False, tools=tools)
        response = self._post_ollama(payload)
        try:
            data = response.json()
        except ValueError as e:
            raise ModelRuntimeError("Model runtime returned invalid JSON", details=str(e)) from e
        message = data.get("message") or {}
        tool_calls = [
            ToolCall(
                id=raw.get("id") or _new_call_id(),
                name=(raw.get("function") or {}).get("name", ""),
                arguments=(raw.get("function") or {}).get("arguments"),
            )
            for raw in message.get("tool_calls") or []
        ]
        return ChatResponse(
            content=message.get("content") or "",
            model=data.get("model", model),
            tool_calls=tool_calls,
            usage=Usage(
                prompt_tokens=data.get("prompt_eval_count") or 0,
                completion_tokens=data.get("eval_count") or 0,
                total_duration=data.get("total_duration"),
                eval_count=data.get("eval_count"),
            ),
        )

    def _stream_ollama(
        self, model: str, messages: list[dict], options: ChatOptions
    ) -> ChatStream:
        payload = self._ollama_payload(model, messages, options, stream=True)
        response = self._post_ollama(payload, stream=True)

        def fragments() -> Iterator[str]:
            try:
                for line in response.iter_lines():
                    if not line:
                        continue
                    try:
                        chunk = json.loads(line)
                    except ValueError as e:
                        raise ModelRuntimeError("Model runtime returned invalid JSON", details=str(e)) from e
                    if chunk.get("error"):
                        raise ModelRuntimeError(f"Model runtime stream error: {chunk['error']}")
                    text = (chunk.get("message") or {}).get("content") or ""
                    if text:
                        yield text
                    if chunk.get("done"):
                        break
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
                raise ModelRuntimeUnavailable(f"Model runtime connection lost: {e}") from e

        return ChatStream(fragments(), model=model, on_close=response.close)

    # ------------------------------------------------------------------
    # OpenAI-compatible backend
    # ------------------------------------------------------------------

    def _openai_kwargs(
        self, model: str, messages: list[dict], options: ChatOptions
    ) -> dict:
        return {
            "model": model,
            "messages": messages,
            "temperature": options.temperature,
            "max_tokens": options.max_tokens,
            "top_p": options.top_p,
        }

    def _create_openai(self, **create_kwargs):
        try:
            return self._openai.chat.completions.create(**create_kwargs)
        except openai.APIConnectionError as e:
            raise ModelRuntimeUnavailable(f"Model runtime connection error: {e}") from e
        except openai.APIStatusError as e:
            message = f"Model runtime chat error ({e.status_code}): {e.message}"
            if e.status_code in _UNAVAILABLE_STATUS_CODES:
                raise ModelRuntimeUnavailable(message) from e
            raise ModelRuntimeError(message) from e
        except openai.APIError as e:
            raise ModelRuntimeError(f"Model runtime chat error: {e}") from e

    def _chat_openai(
        self,
        model: str,
        messages: list[dict],
        options: ChatOptions,
        tools: Optional[list[dict]],
    ) -> ChatResponse:
        create_kwargs = self._openai_kwargs(model, messages, options)
        if tools:
            create_kwargs["tools"] = tools
        response = self._create_openai(**create_kwargs)

        message = response.choices[0].message
        tool_calls = [
            ToolCall(
                id=raw.id or _new_call_id(),
                name=raw.function.name,
                arguments=raw.function.arguments,
            )
            for raw in message.tool_calls or []
        ]
        usage = Usage()
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens or 0,
                completion_tokens=response.usage.completion_tokens or 0,
                eval_count=response.usage.completion_tokens,
            )
        return ChatResponse(
            content=message.content or "",
            model=response.model or model,
            tool_calls=tool_calls,
            usage=usage,
        )

    def _stream_openai(
        self, model: str, messages: list[dict], options: ChatOptions
    ) -> ChatStream:
        stream = self._create_openai(
            stream=True, **self._openai_kwargs(model, messages, options)
        )

        def fragments() -> Iterator[str]:
            try:
                for chunk in stream:
                    if not chunk.choices:
                        continue
                    text = chunk.choices[0].delta.content
                    if text:
                        yield text
            except openai.APIConnectionError as e:
                raise ModelRuntimeUnavailable(f"Model runtime connection lost: {e}") from e

        return ChatStream(fragments(), model=model, on_close=stream.close)


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def _to_ollama_messages(messages: list[dict]) -> list[dict]:
    """Convert OpenAI-shaped messages to what Ollama's ``/api/chat`` expects.

    Ollama wants tool-call arguments as objects rather than JSON strings.
    """
    converted = []
    for message in messages:
        if not message.get("tool_calls"):
            converted.append(message)
            continue
        calls = []
        for call in message["tool_calls"]:
            function = dict(call.get("function") or {})
            arguments = function.get("arguments")
            if isinstance(arguments, str):
                try:
                    function["arguments"] = json.loads(arguments) if arguments else {}
                except json.JSONDecodeError:
                    function["arguments"] = {}
            calls.append({**call, "function": function})
        converted.append({**message, "tool_calls": calls})
    return converted
