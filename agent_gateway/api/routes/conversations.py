"""Conversation history endpoints."""

from fastapi import APIRouter, Depends

from ...errors import NotFoundError
from ...models import AgentDefinition
from ...store import ConversationStore
from ..dependencies import get_agent, get_store
from ..schemas import ErrorResponse

router = APIRouter()


@router.get(
    "/api/agents/{agent_id}/conversations",
    responses={404: {"model": ErrorResponse}},
    summary="List an agent's conversations",
)
def list_conversations(
    agent: AgentDefinition = Depends(get_agent),
    store: ConversationStore = Depends(get_store),
) -> dict:
    conversations = store.list_conversations(agent.id)
    return {
        "agent": agent.id,
        "count": len(conversations),
        "conversations": [c.to_dict() for c in conversations],
    }


@router.get(
    "/api/conversations/{conversation_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Get a conversation with its messages",
)
def get_conversation(conversation_id: str, store: ConversationStore = Depends(get_store)) -> dict:
    found = store.get_conversation_with_messages(conversation_id)
    if found is None:
        raise NotFoundError(f"Conversation '{conversation_id}' not found")
    conversation, messages = found
    return {**conversation.to_dict(), "messages": [m.to_dict() for m in messages]}


@router.delete(
    "/api/conversations/{conversation_id}",
    responses={404: {"model": ErrorResponse}},
    summary="Delete a conversation and its messages",
)
def delete_conversation(conversation_id: str, store: ConversationStore = Depends(get_store)) -> dict:
    if not store.delete_conversation(conversation_id):
        raise NotFoundError(f"Conversation '{conversation_id}' not found")
    return {"deleted": True, "conversationId": conversation_id}
