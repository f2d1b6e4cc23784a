"""Session engine services."""

from .chat_service import ChatService, ChatTurnResult
from .crisis_filter import CrisisFilter, CrisisVerdict
from .narration import NarrationController, NarrationState
from .response_generator import GeneratedReply, ResponseGenerator
from .session_store import InMemorySessionStore, JsonSessionStore, SessionStore
from .ussd_service import UssdService, UssdSessionStore

__all__ = [
    "ChatService",
    "ChatTurnResult",
    "CrisisFilter",
    "CrisisVerdict",
    "GeneratedReply",
    "InMemorySessionStore",
    "JsonSessionStore",
    "NarrationController",
    "NarrationState",
    "ResponseGenerator",
    "SessionStore",
    "UssdService",
    "UssdSessionStore",
]
