"""Chat session and message models."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Channel(str, Enum):
    """Transport a session is conducted over."""
    WEB = "web"
    USSD = "ussd"


class Sender(str, Enum):
    """Author of a message."""
    USER = "user"
    AI = "ai"
    SYSTEM = "system"


class MessageType(str, Enum):
    """Kind of content carried by a message."""
    TEXT = "text"
    AUDIO = "audio"
    VIDEO = "video"


class CamelModel(BaseModel):
    """Base model exposing camelCase field names on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatSession(CamelModel):
    """A conversation owned by one user or phone number."""

    session_id: str = Field(default_factory=new_id)
    channel: Channel = Channel.WEB
    owner_key: str = Field(..., description="User id or phone number owning the session")
    title: str
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatMessage(CamelModel):
    """A single message inside a session."""

    message_id: str = Field(default_factory=new_id)
    session_id: str = ""
    sender: Sender
    content: str
    message_type: MessageType = MessageType.TEXT
    created_at: datetime = Field(default_factory=utcnow)
    metadata: dict[str, Any] | None = None


class SendMessageRequest(CamelModel):
    """Request body for POST /chat/message."""

    session_id: str | None = None
    content: str = ""
    message_type: MessageType = MessageType.TEXT


class ChatTurnResponse(CamelModel):
    """Result of one completed turn."""

    session: ChatSession
    user_message: ChatMessage
    ai_message: ChatMessage
    response: str


class HistoryResponse(CamelModel):
    messages: list[ChatMessage]


class SessionListResponse(CamelModel):
    sessions: list[ChatSession]


class DeleteSessionResponse(CamelModel):
    message: str = "Session deleted successfully"
