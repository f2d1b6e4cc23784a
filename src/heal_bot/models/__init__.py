"""Data models for the HEAL session engine."""

from .chat import (
    Channel,
    ChatMessage,
    ChatSession,
    ChatTurnResponse,
    DeleteSessionResponse,
    HistoryResponse,
    MessageType,
    Sender,
    SendMessageRequest,
    SessionListResponse,
)
from .ussd import CaseReport, ReportDraft, UssdLanguage, UssdMenu, UssdRequest, UssdSession
from .voice import TTSRequest, VoiceOption

__all__ = [
    "CaseReport",
    "Channel",
    "ChatMessage",
    "ChatSession",
    "ChatTurnResponse",
    "DeleteSessionResponse",
    "HistoryResponse",
    "MessageType",
    "ReportDraft",
    "Sender",
    "SendMessageRequest",
    "SessionListResponse",
    "TTSRequest",
    "UssdLanguage",
    "UssdMenu",
    "UssdRequest",
    "UssdSession",
    "VoiceOption",
]
