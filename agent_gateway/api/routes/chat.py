"""
Chat endpoints.

Implements single-shot chat, Server-Sent Events streaming, and chat with
an uploaded file.
"""

import json
import logging
from typing import Generator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from ...chat import ChatService, StreamSession
from ..dependencies import get_chat_service
from ..schemas import ChatRequest, ChatResponse, ChatUploadRequest, ErrorResponse, UploadedFile

logger = logging.getLogger(__name__)

router = APIRouter()

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Missing or blank message"},
    404: {"model": ErrorResponse, "description": "Unknown agent or conversation"},
    409: {"model": ErrorResponse, "description": "Conversation belongs to another agent"},
    503: {"model": ErrorResponse, "description": "Model runtime not reachable"},
}


def _sse_event(payload: dict) -> str:
    """Format one Server-Sent Events data frame."""
    return f"data: {json.dumps(payload)}\n\n"


def _generate_stream_events(session: StreamSession) -> Generator[str, None, None]:
    """Yield one event per fragment, then a final ``done`` event.

    Failures after the stream has started are reported as an error event.
    """
    try:
        for fragment in session:
            yield _sse_event({"chunk": fragment, "done": False})
    except Exception as e:
        logger.error(f"Streaming failed for conversation {session.conversation_id}: {e}")
        yield _sse_event({"error": "Streaming request failed", "details": str(e)})
        return
    yield _sse_event(
        {
            "chunk": "",
            "done": True,
            "conversationId": session.conversation_id,
            "model": session.model,
        }
    )


@router.post(
    "/api/agents/{agent_id}/chat",
    response_model=ChatResponse,
    responses=_ERROR_RESPONSES,
    summary="Chat with an agent",
)
def chat(
    agent_id: str,
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    reply = service.chat(
        agent_id,
        request.message,
        conversation_id=request.conversation_id,
        overrides=request.overrides(),
        credentials=request.credentials(),
    )
    return ChatResponse.from_reply(reply)


@router.post(
    "/api/agents/{agent_id}/chat/stream",
    responses=_ERROR_RESPONSES,
    summary="Chat with an agent, streaming the answer as Server-Sent Events",
)
def chat_stream(
    agent_id: str,
    request: ChatRequest,
    service: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    session = service.open_stream(
        agent_id,
        request.message,
        conversation_id=request.conversation_id,
        overrides=request.overrides(),
        credentials=request.credentials(),
    )
    return StreamingResponse(
        _generate_stream_events(session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post(
    "/api/agents/{agent_id}/chat/upload",
    response_model=ChatResponse,
    responses=_ERROR_RESPONSES,
    summary="Chat with an agent about an uploaded file",
)
def chat_upload(
    agent_id: str,
    request: ChatUploadRequest,
    service: ChatService = Depends(get_chat_service),
) -> ChatResponse:
    file = request.file or UploadedFile()
    reply = service.chat_with_file(
        agent_id,
        request.message,
        file_name=file.name,
        file_content=file.content,
        file_type=file.type,
        conversation_id=request.conversation_id,
        overrides=request.overrides(),
        credentials=request.credentials(),
    )
    return ChatResponse.from_reply(reply)
