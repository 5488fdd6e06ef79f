"""
Chat turn handling.

A turn validates the request, loads or creates the conversation, stores
the user message, assembles the system prompt and history, and then either
runs the tool-calling loop (when the agent has callable functions) or makes
a single model call. Only the final assistant text is persisted.
"""

import base64
import binascii
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterator, Mapping, Optional

from ..agent_loader import AgentRegistry
from ..config import ChatConfig
from ..errors import ConflictError, NotFoundError, ValidationError
from ..llm_client import ChatOptions, ModelRuntimeClient
from ..models import AgentDefinition
from ..orchestration import LoggingObserver, LoopResult, ToolCallingLoop, TracingObserver
from ..store import ConversationRecord, ConversationStore, MemoryBlock
from ..tools import ExecutorRegistry
from ..tracing import TracingContext, get_tracing_client

logger = logging.getLogger(__name__)

TITLE_LENGTH = 100
FILE_TITLE_LENGTH = 80
TOOL_CONTENT_PREVIEW = 500


@dataclass(frozen=True)
class ChatOverrides:
    """Per-request generation overrides."""

    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True)
class ToolUsage:
    name: str
    call_id: str
    content: str
    ok: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "callId": self.call_id, "content": self.content}


@dataclass
class ChatReply:
    """Result of one chat turn."""

    response: str
    conversation_id: str
    agent: str
    model: str
    tools_used: list[ToolUsage] = field(default_factory=list)
    total_duration: Optional[int] = None
    eval_count: Optional[int] = None
    max_iterations_reached: bool = False
    file: Optional[dict] = None

    def to_dict(self) -> dict:
        data = {
            "response": self.response,
            "conversationId": self.conversation_id,
            "agent": self.agent,
            "model": self.model,
            "toolsUsed": [usage.to_dict() for usage in self.tools_used],
            "totalDuration": self.total_duration,
            "evalCount": self.eval_count,
            "maxIterationsReached": self.max_iterations_reached,
        }
        if self.file is not None:
            data["file"] = self.file
        return data


@dataclass
class _Turn:
    """Everything prepared before the model is called."""

    agent: AgentDefinition
    conversation: ConversationRecord
    model: str
    messages: list[dict]
    tools: list[dict]
    options: ChatOptions
    credentials: dict[str, Optional[str]]
    tracing: TracingContext
    execution_id: str


class StreamSession:
    """
    Single-use stream of answer fragments for one chat turn.

    The user message is already stored when the session is created. The
    assistant answer is stored once the fragments are exhausted.
    """

    def __init__(
        self,
        conversation_id: str,
        model: str,
        fragments: Iterator[str],
        on_complete: Callable[[str], None],
        on_error: Callable[[Exception], None],
    ):
        self.conversation_id = conversation_id
        self.model = model
        self.done = False
        self._fragments = fragments
        self._on_complete = on_complete
        self._on_error = on_error
        self._parts: list[str] = []
        self._started = False

    @property
    def text(self) -> str:
        return "".join(self._parts)

    def __iter__(self) -> Iterator[str]:
        if self._started:
            raise RuntimeError("Stream session already consumed")
        self._started = True
        return self._iterate()

    def _iterate(self) -> Iterator[str]:
        try:
            for fragment in self._fragments:
                self._parts.append(fragment)
                yield fragment
            self._on_complete(self.text)
        except Exception as e:
            self._on_error(e)
            raise
        self.done = True


class ChatService:
    """Runs chat turns for the loaded agents."""

    def __init__(
        self,
        agents: AgentRegistry,
        store: ConversationStore,
        llm_client: ModelRuntimeClient,
        executors: ExecutorRegistry,
        chat_config: Optional[ChatConfig] = None,
        use_agent_models: bool = False,
        default_credentials: Optional[Mapping[str, Optional[str]]] = None,
    ):
        self.agents = agents
        self.store = store
        self.llm_client = llm_client
        self.executors = executors
        self.chat_config = chat_config or ChatConfig()
        self.use_agent_models = use_agent_models
        self.default_credentials = dict(default_credentials or {})

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_agent(self, agent_id: str) -> AgentDefinition:
        agent = self.agents.get(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent '{agent_id}' not found")
        return agent

    def resolve_credentials(self, credentials: Optional[Mapping[str, Optional[str]]] = None) -> dict[str, Optional[str]]:
        """Request credentials first, configured ones as fallback."""
        credentials = credentials or {}
        names = {executor.name for executor in self.executors.executors}
        return {name: credentials.get(name) or self.default_credentials.get(name) for name in names}

    def select_model(self, agent: AgentDefinition) -> str:
        if self.use_agent_models and agent.model_preferences.default_model:
            return agent.model_preferences.default_model
        return self.llm_client.default_model

    def build_options(self, agent: AgentDefinition, overrides: Optional[ChatOverrides]) -> ChatOptions:
        overrides = overrides or ChatOverrides()
        temperature = overrides.temperature
        if temperature is None:
            temperature = agent.model_preferences.temperature
        if temperature is None:
            temperature = self.chat_config.default_temperature
        return ChatOptions(
            temperature=temperature,
            max_tokens=overrides.max_tokens or self.chat_config.default_max_tokens,
        )

    @staticmethod
    def build_system_prompt(agent: AgentDefinition, memory: list[MemoryBlock]) -> str:
        """Agent instructions followed by its memory blocks."""
        if not memory:
            return agent.instructions
        blocks = "\n\n".join(f"<{block.label}>\n{block.value}\n</{block.label}>" for block in memory)
        return f"{agent.instructions}\n\n# Memory\n\n{blocks}"

    # ------------------------------------------------------------------
    # Turn preparation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_message(message) -> str:
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Field 'message' is required (non-empty string)", field="message")
        return message.strip()

    def _load_conversation(
        self,
        agent: AgentDefinition,
        conversation_id: Optional[str],
        title: str,
    ) -> ConversationRecord:
        if not conversation_id:
            return self.store.create_conversation(agent.id, title)

        conversation = self.store.get_conversation(conversation_id)
        if conversation is None:
            raise NotFoundError(f"Conversation '{conversation_id}' not found")
        if conversation.agent_id != agent.id:
            raise ConflictError(
                f"Conversation '{conversation_id}' belongs to agent "
                f"'{conversation.agent_id}', not '{agent.id}'"
            )
        return conversation

    def _prepare_turn(
        self,
        agent: AgentDefinition,
        user_content: str,
        conversation_id: Optional[str],
        title: str,
        overrides: Optional[ChatOverrides],
        credentials: Optional[Mapping[str, Optional[str]]],
        trace_name: str,
    ) -> _Turn:
        conversation = self._load_conversation(agent, conversation_id, title)
        self.store.add_message(conversation.id, "user", user_content)

        history = self.store.get_messages(conversation.id, self.chat_config.history_limit)
        system_prompt = self.build_system_prompt(agent, self.store.get_agent_memory(agent.id))
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(m.to_llm_format() for m in history)

        resolved = self.resolve_credentials(credentials)
        tools = self.executors.catalog(agent.allowed_tools, resolved)
        model = self.select_model(agent)
        options = self.build_options(agent, overrides)

        execution_id = f"exec-{uuid.uuid4().hex[:8]}"
        tracing = TracingContext(execution_id=execution_id, session_id=conversation.id, user_id=agent.id)
        tracing.start_trace(
            name=trace_name,
            input={"message": user_content},
            metadata={"agent": agent.id, "model": model, "tools": len(tools)},
        )
        logger.info(
            f"[{execution_id}] Chat turn for agent {agent.id} "
            f"(conversation {conversation.id}, {len(history)} messages, {len(tools)} tools)"
        )
        return _Turn(agent, conversation, model, messages, tools, options, resolved, tracing, execution_id)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _make_loop(self, turn: _Turn) -> ToolCallingLoop:
        return ToolCallingLoop(
            self.llm_client,
            self.executors,
            max_iterations=self.chat_config.max_tool_iterations,
            max_workers=self.chat_config.tool_max_workers,
            observers=[
                LoggingObserver(turn.execution_id),
                TracingObserver(
                    turn.tracing,
                    model_parameters={
                        "temperature": turn.options.temperature,
                        "max_tokens": turn.options.max_tokens,
                    },
                ),
            ],
        )

    def _run_loop(self, turn: _Turn) -> LoopResult:
        return self._make_loop(turn).run(
            turn.model, turn.messages, turn.tools, turn.options, turn.credentials
        )

    def _run_single(self, turn: _Turn) -> LoopResult:
        with turn.tracing.generation(
            name="model_call",
            model=turn.model,
            input=turn.messages,
            model_parameters={"temperature": turn.options.temperature, "max_tokens": turn.options.max_tokens},
        ) as generation:
            response = self.llm_client.chat(turn.model, turn.messages, turn.options)
            generation.set_output(response.content)
            generation.set_usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        return LoopResult(
            answer=response.content,
            iterations=1,
            model=response.model or turn.model,
            total_duration=response.usage.total_duration,
            eval_count=response.usage.eval_count,
        )

    def _finish_trace(self, turn: _Turn, output: str, status: str = "success", metadata: Optional[dict] = None) -> None:
        turn.tracing.end_trace(output=output, status=status, metadata=metadata)
        client = get_tracing_client()
        if client:
            client.flush()

    def _complete_turn(self, turn: _Turn, file: Optional[dict] = None) -> ChatReply:
        try:
            result = self._run_loop(turn) if turn.tools else self._run_single(turn)
            self.store.add_message(turn.conversation.id, "assistant", result.answer)
        except Exception as e:
            logger.error(f"[{turn.execution_id}] Chat turn failed: {e}")
            self._finish_trace(turn, str(e), status="error")
            raise

        self._finish_trace(
            turn,
            result.answer,
            metadata={
                "iterations": result.iterations,
                "tool_calls": len(result.tool_results),
                "max_iterations_reached": result.max_iterations_reached,
            },
        )
        return ChatReply(
            response=result.answer,
            conversation_id=turn.conversation.id,
            agent=turn.agent.id,
            model=result.model or turn.model,
            tools_used=[
                ToolUsage(
                    name=d.name,
                    call_id=d.call_id,
                    content=d.result.to_content()[:TOOL_CONTENT_PREVIEW],
                    ok=d.result.ok,
                )
                for d in result.tool_results
            ],
            total_duration=result.total_duration,
            eval_count=result.eval_count,
            max_iterations_reached=result.max_iterations_reached,
            file=file,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def chat(
        self,
        agent_id: str,
        message: str,
        conversation_id: Optional[str] = None,
        overrides: Optional[ChatOverrides] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
        title: Optional[str] = None,
    ) -> ChatReply:
        """
        Run one chat turn.

        Args:
            agent_id: Agent to chat with
            message: User message (non-empty)
            conversation_id: Existing conversation to continue; a new one is created when omitted
            overrides: Temperature / max tokens for this turn
            credentials: Executor name -> credential, overriding configured ones
            title: Title for a new conversation (defaults to the message start)

        Raises:
            NotFoundError: Unknown agent or conversation
            ValidationError: Empty message
            ConflictError: Conversation belongs to another agent
            ModelRuntimeError: The model call failed
        """
        agent = self.get_agent(agent_id)
        content = self._validate_message(message)
        turn = self._prepare_turn(
            agent,
            content,
            conversation_id,
            title or message[:TITLE_LENGTH],
            overrides,
            credentials,
            trace_name="chat",
        )
        return self._complete_turn(turn)

    def chat_with_file(
        self,
        agent_id: str,
        message: str,
        file_name: str,
        file_content: str,
        file_type: Optional[str] = None,
        conversation_id: Optional[str] = None,
        overrides: Optional[ChatOverrides] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ChatReply:
        """
        Run a chat turn with an uploaded file inlined ahead of the message.

        Non-``text/*`` file content is treated as base64 and decoded; content
        that does not decode is used as-is.
        """
        agent = self.get_agent(agent_id)
        content = self._validate_message(message)
        if not file_name or not file_content:
            raise ValidationError("Field 'file' must contain name and content", field="file")

        text = decode_file_content(file_content, file_type)
        enriched = f"[File: {file_name}]\n```\n{text}\n```\n\nUser: {content}"
        turn = self._prepare_turn(
            agent,
            enriched,
            conversation_id,
            f"{file_name}: {message[:FILE_TITLE_LENGTH]}",
            overrides,
            credentials,
            trace_name="chat_upload",
        )
        return self._complete_turn(turn, file={"name": file_name, "processed": True})

    def open_stream(
        self,
        agent_id: str,
        message: str,
        conversation_id: Optional[str] = None,
        overrides: Optional[ChatOverrides] = None,
        credentials: Optional[Mapping[str, Optional[str]]] = None,
    ) -> StreamSession:
        """
        Start a streaming chat turn.

        Validation, conversation lookup and the user message write happen
        before this returns, so those errors raise here. Agents without
        tools stream model fragments as they arrive; agents with tools run
        the loop when iteration starts and yield the answer as one fragment.
        """
        agent = self.get_agent(agent_id)
        content = self._validate_message(message)
        turn = self._prepare_turn(
            agent,
            content,
            conversation_id,
            message[:TITLE_LENGTH],
            overrides,
            credentials,
            trace_name="chat_stream",
        )

        if turn.tools:
            def fragments() -> Iterator[str]:
                result = self._run_loop(turn)
                if result.answer:
                    yield result.answer
        else:
            try:
                stream = self.llm_client.chat_stream(turn.model, turn.messages, turn.options)
            except Exception as e:
                self._finish_trace(turn, str(e), status="error")
                raise

            def fragments() -> Iterator[str]:
                yield from stream

        def on_complete(text: str) -> None:
            self.store.add_message(turn.conversation.id, "assistant", text)
            self._finish_trace(turn, text)

        def on_error(exc: Exception) -> None:
            logger.error(f"[{turn.execution_id}] Streaming turn failed: {exc}")
            self._finish_trace(turn, str(exc), status="error")

        return StreamSession(turn.conversation.id, turn.model, fragments(), on_complete, on_error)


def decode_file_content(content: str, file_type: Optional[str]) -> str:
    """Decode base64 upload content unless the file is declared as text."""
    if not file_type or file_type.startswith("text/"):
        return content
    try:
        return base64.b64decode(content, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return content
