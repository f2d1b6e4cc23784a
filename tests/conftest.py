"""
Test Configuration and Fixtures

Fakes for the AI provider, the speech synthesizer and the audio player, plus
an app wired to in-memory services.
"""

import asyncio
import os
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Keep real credentials out of the suite before settings are loaded.
os.environ["GROQ_API_KEY"] = ""
os.environ["ELEVENLABS_API_KEY"] = ""
os.environ.setdefault("LOG_LEVEL", "WARNING")

from src.heal_bot.api import create_app  # noqa: E402
from src.heal_bot.api import deps  # noqa: E402
from src.heal_bot.errors import ProviderError  # noqa: E402
from src.heal_bot.services.chat_service import ChatService  # noqa: E402
from src.heal_bot.services.circuit_breaker import CircuitBreaker  # noqa: E402
from src.heal_bot.services.narration import AudioHandle, AudioPlayer  # noqa: E402
from src.heal_bot.services.response_generator import ResponseGenerator  # noqa: E402
from src.heal_bot.services.session_store import InMemorySessionStore  # noqa: E402
from src.heal_bot.services.ussd_service import UssdService, UssdSessionStore  # noqa: E402


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "api: API endpoint tests")


# =============================================================================
# PROVIDER FAKES
# =============================================================================


class FakeProvider:
    """Chat provider returning a fixed reply, optionally slow or failing."""

    name = "fake"
    model = "fake-model"

    def __init__(self, reply: str = "I'm here for you.", delay: float = 0.0, error: Exception | None = None):
        self.reply = reply
        self.delay = delay
        self.error = error
        self.calls: list[list[dict[str, str]]] = []

    @property
    def configured(self) -> bool:
        return True

    async def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply


class FakeSynthesizer:
    """Speech synthesizer echoing the text as audio; can be held open or fail."""

    def __init__(self, audio: bytes | None = None, error: Exception | None = None):
        self.audio = audio
        self.error = error
        self.calls: list[tuple[str, str]] = []
        self.release = asyncio.Event()
        self.release.set()

    async def synthesize(self, text: str, voice_id: str, token=None) -> bytes:
        self.calls.append((text, voice_id))
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.audio if self.audio is not None else text.encode("utf-8")


class FakeHandle(AudioHandle):
    def __init__(self, player: "FakePlayer", audio: bytes, on_finished: Callable[[], None]):
        self.player = player
        self.stop_delay = player.stop_delay
        self.audio = audio
        self.on_finished = on_finished
        self.stopped = False

    async def stop(self) -> None:
        if not self.stopped:
            self.stopped = True
            if self.stop_delay:
                await asyncio.sleep(self.stop_delay)
            self.player.events.append(("stop", self.audio))

    def finish(self) -> None:
        self.on_finished()


class FakePlayer(AudioPlayer):
    """Records play/stop events in order. Stopping can be made to suspend."""

    def __init__(self, stop_delay: float = 0.0):
        self.stop_delay = stop_delay
        self.events: list[tuple[str, bytes]] = []
        self.handles: list[FakeHandle] = []

    async def play(self, audio: bytes, on_finished: Callable[[], None]) -> AudioHandle:
        handle = FakeHandle(self, audio, on_finished)
        self.handles.append(handle)
        self.events.append(("play", audio))
        return handle

    @property
    def active(self) -> list[FakeHandle]:
        return [h for h in self.handles if not h.stopped]


# =============================================================================
# SERVICE FIXTURES
# =============================================================================


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def generator(provider) -> ResponseGenerator:
    return ResponseGenerator(provider=provider, timeout=0.5, breaker=CircuitBreaker(recovery_timeout=30.0))


@pytest.fixture
def offline_generator() -> ResponseGenerator:
    return ResponseGenerator(provider=None)


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def chat_service(store, generator) -> ChatService:
    return ChatService(store=store, generator=generator)


@pytest.fixture
def ussd_reports() -> list:
    return []


@pytest.fixture
def ussd_service(generator, ussd_reports) -> UssdService:
    return UssdService(generator=generator, sessions=UssdSessionStore(), on_report=ussd_reports.append)


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def player() -> FakePlayer:
    return FakePlayer()


# =============================================================================
# APP FIXTURES
# =============================================================================


@pytest.fixture
def app(chat_service, ussd_service, synthesizer):
    application = create_app()
    application.dependency_overrides[deps.get_chat_service] = lambda: chat_service
    application.dependency_overrides[deps.get_ussd_service] = lambda: ussd_service
    application.dependency_overrides[deps.get_synthesizer] = lambda: synthesizer
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"X-User-Id": "user-1"}


def failing(provider_name: str = "fake") -> ProviderError:
    return ProviderError(provider_name, "HTTP 503")
