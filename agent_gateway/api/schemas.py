"""
Pydantic schemas for the gateway API.

JSON field names are camelCase on the wire (``conversationId``,
``maxTokens``); Python attributes are snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..chat import ChatOverrides, ChatReply
from ..models import AgentDefinition


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class ChatOptionsModel(CamelModel):
    """Per-request generation options."""

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: Optional[int] = Field(default=None, ge=1, description="Maximum tokens in the response")


class ChatRequest(CamelModel):
    """Request body for the chat endpoints."""

    # Blank messages are rejected by the chat service, not here
    message: Optional[str] = Field(default=None, description="User message (non-empty)")
    conversation_id: Optional[str] = Field(default=None, description="Conversation to continue")
    options: Optional[ChatOptionsModel] = None
    github_token: Optional[str] = Field(default=None, description="GitHub token overriding the configured one")
    linear_api_key: Optional[str] = Field(default=None, description="Linear API key overriding the configured one")

    def overrides(self) -> ChatOverrides:
        if self.options is None:
            return ChatOverrides()
        return ChatOverrides(temperature=self.options.temperature, max_tokens=self.options.max_tokens)

    def credentials(self) -> dict[str, Optional[str]]:
        return {"github": self.github_token, "linear": self.linear_api_key}


class UploadedFile(CamelModel):
    name: Optional[str] = None
    content: Optional[str] = Field(default=None, description="Plain text, or base64 for non-text types")
    type: Optional[str] = Field(default=None, description="MIME type")


class ChatUploadRequest(ChatRequest):
    file: Optional[UploadedFile] = None


class MemoryWriteRequest(CamelModel):
    label: Optional[Any] = None
    value: Optional[Any] = None


class GitHubFileRequest(CamelModel):
    repo: Optional[str] = None
    path: Optional[str] = None
    token: Optional[str] = None


class GitHubTokenRequest(CamelModel):
    token: Optional[str] = None


class LinearRequest(CamelModel):
    api_key: Optional[str] = None
    team_id: Optional[str] = None
    state: Optional[str] = None
    limit: Optional[int] = Field(default=None, ge=1)
    query: Optional[str] = None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ToolUsageModel(CamelModel):
    name: str
    call_id: str
    content: str


class ChatResponse(CamelModel):
    """Response body for a completed chat turn."""

    response: str
    conversation_id: str
    agent: str
    model: str
    tools_used: list[ToolUsageModel] = Field(default_factory=list)
    total_duration: Optional[int] = None
    eval_count: Optional[int] = None
    max_iterations_reached: bool = False
    file: Optional[dict] = None

    @classmethod
    def from_reply(cls, reply: ChatReply) -> "ChatResponse":
        return cls(
            response=reply.response,
            conversation_id=reply.conversation_id,
            agent=reply.agent,
            model=reply.model,
            tools_used=[
                ToolUsageModel(name=u.name, call_id=u.call_id, content=u.content) for u in reply.tools_used
            ],
            total_duration=reply.total_duration,
            eval_count=reply.eval_count,
            max_iterations_reached=reply.max_iterations_reached,
            file=reply.file,
        )


class ModelPreferencesModel(CamelModel):
    default_model: Optional[str] = None
    temperature: Optional[float] = None


class AgentSummary(CamelModel):
    id: str
    name: str
    description: str
    version: str
    frameworks: list[str]
    model: Optional[str] = None
    temperature: Optional[float] = None
    tools: list[str]

    @classmethod
    def from_agent(cls, agent: AgentDefinition, default_model: str) -> "AgentSummary":
        return cls(
            id=agent.id,
            name=agent.name,
            description=agent.description,
            version=agent.version,
            frameworks=list(agent.frameworks),
            model=agent.model_preferences.default_model or default_model,
            temperature=agent.model_preferences.temperature,
            tools=list(agent.allowed_tools),
        )


class AgentListResponse(BaseModel):
    count: int
    agents: list[AgentSummary]


class AgentDetail(CamelModel):
    """Read-only agent record."""

    id: str
    name: str
    description: str
    version: str
    frameworks: list[str]
    instructions: str
    model_preferences: ModelPreferencesModel
    allowed_tools: list[str]
    permission_mode: Optional[str] = None
    memory_block_labels: list[str]
    knowledge: Any = None
    created_at: Optional[str] = None

    @classmethod
    def from_agent(cls, agent: AgentDefinition) -> "AgentDetail":
        return cls(
            id=agent.id,
            name=agent.name,
            description=agent.description,
            version=agent.version,
            frameworks=list(agent.frameworks),
            instructions=agent.instructions,
            model_preferences=ModelPreferencesModel(
                default_model=agent.model_preferences.default_model,
                temperature=agent.model_preferences.temperature,
            ),
            allowed_tools=list(agent.allowed_tools),
            permission_mode=agent.permission_mode,
            memory_block_labels=agent.memory_block_labels,
            knowledge=agent.knowledge,
            created_at=agent.created_at,
        )


class HealthResponse(CamelModel):
    """Aggregated status of the gateway and its backing services."""

    status: str = Field(..., description="healthy or degraded")
    uptime: float
    agents: dict
    model_runtime: dict
    database: dict


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None
    details: Optional[Any] = None
