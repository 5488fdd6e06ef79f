"""Agent listing and agent memory endpoints."""

import logging

from fastapi import APIRouter, Depends

from ...errors import NotFoundError, ValidationError
from ...gateway import Gateway
from ...models import AgentDefinition
from ...store import ConversationStore
from ..dependencies import get_agent, get_gateway, get_store
from ..schemas import AgentDetail, AgentListResponse, AgentSummary, ErrorResponse, MemoryWriteRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/api/agents",
    response_model=AgentListResponse,
    summary="List agents",
)
def list_agents(gateway: Gateway = Depends(get_gateway)) -> AgentListResponse:
    default_model = gateway.llm_client.default_model
    agents = [AgentSummary.from_agent(agent, default_model) for agent in gateway.agents.values()]
    return AgentListResponse(count=len(agents), agents=agents)


@router.get(
    "/api/agents/{agent_id}",
    response_model=AgentDetail,
    responses={404: {"model": ErrorResponse}},
    summary="Get agent",
)
def get_agent_detail(agent: AgentDefinition = Depends(get_agent)) -> AgentDetail:
    return AgentDetail.from_agent(agent)


@router.get(
    "/api/agents/{agent_id}/memory",
    responses={404: {"model": ErrorResponse}},
    summary="Get agent memory blocks",
)
def get_memory(
    agent: AgentDefinition = Depends(get_agent),
    store: ConversationStore = Depends(get_store),
) -> dict:
    blocks = store.get_agent_memory(agent.id)
    return {
        "agent": agent.id,
        "blocks": [
            {"label": b.label, "value": b.value, "updatedAt": b.updated_at.isoformat()} for b in blocks
        ],
    }


@router.post(
    "/api/agents/{agent_id}/memory",
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
    summary="Create or overwrite a memory block",
)
def write_memory(
    body: MemoryWriteRequest,
    agent: AgentDefinition = Depends(get_agent),
    store: ConversationStore = Depends(get_store),
) -> dict:
    if not body.label or not isinstance(body.label, str):
        raise ValidationError("Field 'label' is required (string)", field="label")
    if not body.value or not isinstance(body.value, str):
        raise ValidationError("Field 'value' is required (string)", field="value")

    block = store.upsert_agent_memory(agent.id, body.label, body.value)
    logger.info(f"Memory block '{block.label}' written for agent {agent.id}")
    return {
        "agent": agent.id,
        "label": block.label,
        "value": block.value,
        "updatedAt": block.updated_at.isoformat(),
    }


@router.delete(
    "/api/agents/{agent_id}/memory/{label}",
    responses={404: {"model": ErrorResponse}},
    summary="Delete a memory block",
)
def delete_memory(
    label: str,
    agent: AgentDefinition = Depends(get_agent),
    store: ConversationStore = Depends(get_store),
) -> dict:
    if not store.delete_agent_memory(agent.id, label):
        raise NotFoundError(f"Memory block '{label}' not found for agent '{agent.id}'")
    return {"deleted": True, "agent": agent.id, "label": label}
