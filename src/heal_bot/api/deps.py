"""Dependency providers shared by the routers.

Services are process-wide singletons so per-session locks and USSD state are
shared across requests. Tests swap them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Header, HTTPException

from ..config import get_settings
from ..services.chat_service import ChatService
from ..services.circuit_breaker import CircuitBreaker
from ..services.elevenlabs_service import ElevenLabsSynthesizer
from ..services.groq_service import GroqChatProvider
from ..services.response_generator import ResponseGenerator
from ..services.session_store import InMemorySessionStore, JsonSessionStore, SessionStore
from ..services.ussd_service import UssdService, UssdSessionStore


async def get_owner_key(x_user_id: str | None = Header(None)) -> str:
    """Caller identity, injected by the auth layer in front of this service."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated")
    return x_user_id.strip()


@lru_cache
def get_session_store() -> SessionStore:
    settings = get_settings()
    if settings.session_backend == "json":
        return JsonSessionStore(settings.data_path)
    return InMemorySessionStore()


@lru_cache
def get_response_generator() -> ResponseGenerator:
    settings = get_settings()
    provider = None
    if settings.groq_api_key:
        provider = GroqChatProvider(api_key=settings.groq_api_key, model=settings.groq_model)
    return ResponseGenerator(
        provider=provider,
        timeout=settings.ai_timeout_seconds,
        context_window=settings.context_window,
        breaker=CircuitBreaker(recovery_timeout=settings.provider_cooldown_seconds),
    )


@lru_cache
def get_chat_service() -> ChatService:
    settings = get_settings()
    return ChatService(
        store=get_session_store(),
        generator=get_response_generator(),
        context_window=settings.context_window,
    )


@lru_cache
def get_ussd_service() -> UssdService:
    settings = get_settings()
    return UssdService(
        generator=get_response_generator(),
        sessions=UssdSessionStore(ttl_seconds=settings.ussd_session_ttl_seconds),
        max_chars=settings.ussd_max_chars,
        history_turns=settings.context_window,
    )


@lru_cache
def get_synthesizer() -> ElevenLabsSynthesizer:
    settings = get_settings()
    return ElevenLabsSynthesizer(
        api_key=settings.elevenlabs_api_key,
        model_id=settings.elevenlabs_model,
        timeout=settings.tts_timeout_seconds,
    )
