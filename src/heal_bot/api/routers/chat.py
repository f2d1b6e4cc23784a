"""Web chat API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from ...errors import NotFound, ValidationError
from ...models.chat import (
    ChatTurnResponse,
    DeleteSessionResponse,
    HistoryResponse,
    SendMessageRequest,
    SessionListResponse,
)
from ...services.chat_service import ChatService
from ..deps import get_chat_service, get_owner_key

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/message", response_model=ChatTurnResponse)
async def send_message(
    request: SendMessageRequest,
    owner_key: str = Depends(get_owner_key),
    chat: ChatService = Depends(get_chat_service),
):
    """
    Send a chat message and receive Nia's reply.

    A reply is always returned for a well-formed message: crisis messages get
    the fixed safety response, and provider outages fall back to canned replies.
    Omit ``sessionId`` to start a new session.
    """
    try:
        result = await chat.send_message(
            owner_key,
            request.session_id,
            request.content,
            message_type=request.message_type,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ChatTurnResponse(
        session=result.session,
        user_message=result.user_message,
        ai_message=result.ai_message,
        response=result.response,
    )


@router.get("/history", response_model=HistoryResponse)
async def get_chat_history(
    session_id: str = Query(..., description="Session to read"),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    owner_key: str = Depends(get_owner_key),
    chat: ChatService = Depends(get_chat_service),
):
    """Get a session's messages, oldest first."""
    try:
        messages = await chat.get_history(owner_key, session_id, limit=limit, offset=offset)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return HistoryResponse(messages=messages)


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    owner_key: str = Depends(get_owner_key),
    chat: ChatService = Depends(get_chat_service),
):
    """List the caller's sessions, most recently active first."""
    sessions = await chat.list_sessions(owner_key, limit=limit, offset=offset)
    return SessionListResponse(sessions=sessions)


@router.delete("/session/{session_id}", response_model=DeleteSessionResponse)
async def delete_session(
    session_id: str,
    owner_key: str = Depends(get_owner_key),
    chat: ChatService = Depends(get_chat_service),
):
    """Delete one of the caller's sessions with all its messages."""
    try:
        await chat.delete_session(owner_key, session_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    return DeleteSessionResponse()
