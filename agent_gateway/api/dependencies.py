"""FastAPI dependencies resolving the shared gateway collaborators."""

from fastapi import Depends, Request

from ..chat import ChatService
from ..errors import NotFoundError, ServiceUnavailableError
from ..gateway import Gateway
from ..models import AgentDefinition
from ..store import ConversationStore


def get_gateway(request: Request) -> Gateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise ServiceUnavailableError("Gateway is not initialized")
    return gateway


def get_chat_service(gateway: Gateway = Depends(get_gateway)) -> ChatService:
    return gateway.chat


def get_store(gateway: Gateway = Depends(get_gateway)) -> ConversationStore:
    return gateway.store


def get_agent(agent_id: str, gateway: Gateway = Depends(get_gateway)) -> AgentDefinition:
    """Resolve the ``{agent_id}`` path parameter to a loaded agent."""
    agent = gateway.agents.get(agent_id)
    if agent is None:
        raise NotFoundError(f"Agent '{agent_id}' not found")
    return agent
