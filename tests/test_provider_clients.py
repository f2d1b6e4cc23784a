"""Tests for the Groq and ElevenLabs client wrappers with mocked SDKs."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest
from elevenlabs.core.api_error import ApiError

from src.heal_bot.errors import ProviderError, ProviderTimeout
from src.heal_bot.services.elevenlabs_service import ElevenLabsSynthesizer
from src.heal_bot.services.groq_service import SYSTEM_PROMPT, GroqChatProvider
from src.heal_bot.services.narration import CancellationToken

pytestmark = pytest.mark.unit


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def groq_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=completion("  I hear you.  "))
    return client


class TestGroqChatProvider:
    async def test_prepends_system_prompt(self, groq_client):
        provider = GroqChatProvider(api_key="", client=groq_client)

        reply = await provider.complete([{"role": "user", "content": "hi"}])

        assert reply == "I hear you."
        kwargs = groq_client.chat.completions.create.call_args.kwargs
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert kwargs["messages"][1] == {"role": "user", "content": "hi"}
        assert kwargs["model"] == "llama-3.1-8b-instant"

    def test_configured(self, groq_client):
        assert GroqChatProvider(api_key="").configured is False
        assert GroqChatProvider(api_key="gsk_test").configured is True
        assert GroqChatProvider(api_key="", client=groq_client).configured is True

    async def test_http_error(self, groq_client):
        request = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")
        groq_client.chat.completions.create.side_effect = groq.APIStatusError(
            "Service unavailable", response=httpx.Response(503, request=request), body=None
        )

        with pytest.raises(ProviderError, match="HTTP 503"):
            await GroqChatProvider(api_key="", client=groq_client).complete([])

    @pytest.mark.parametrize("response", [SimpleNamespace(choices=[]), completion(""), completion(None)])
    async def test_malformed_payload(self, groq_client, response):
        groq_client.chat.completions.create.return_value = response

        with pytest.raises(ProviderError):
            await GroqChatProvider(api_key="", client=groq_client).complete([])


def stream(*chunks, delay: float = 0.0):
    async def convert(**kwargs):
        for chunk in chunks:
            if delay:
                await asyncio.sleep(delay)
            yield chunk

    return convert


def tts_client(convert):
    client = MagicMock()
    client.text_to_speech.convert = convert
    return client


class TestElevenLabsSynthesizer:
    async def test_collects_stream(self):
        synthesizer = ElevenLabsSynthesizer(api_key="", client=tts_client(stream(b"ab", b"cd")))

        assert await synthesizer.synthesize("Hello", "voice") == b"abcd"

    async def test_not_configured(self):
        with pytest.raises(ProviderError, match="not configured"):
            await ElevenLabsSynthesizer(api_key="").synthesize("Hello", "voice")

    async def test_timeout(self):
        synthesizer = ElevenLabsSynthesizer(
            api_key="", timeout=0.05, client=tts_client(stream(b"ab", delay=1.0))
        )

        with pytest.raises(ProviderTimeout):
            await synthesizer.synthesize("Hello", "voice")

    async def test_api_error(self):
        def convert(**kwargs):
            raise ApiError(status_code=401, body="invalid api key")

        synthesizer = ElevenLabsSynthesizer(api_key="", client=tts_client(convert))

        with pytest.raises(ProviderError, match="HTTP 401"):
            await synthesizer.synthesize("Hello", "voice")

    async def test_transport_error(self):
        def convert(**kwargs):
            raise httpx.ConnectError("connection refused")

        synthesizer = ElevenLabsSynthesizer(api_key="", client=tts_client(convert))

        with pytest.raises(ProviderError):
            await synthesizer.synthesize("Hello", "voice")

    async def test_cancelled_token_stops_reading(self):
        token = CancellationToken()
        received = []

        async def convert(**kwargs):
            for chunk in (b"a", b"b", b"c"):
                received.append(chunk)
                if chunk == b"b":
                    token.cancel()
                yield chunk

        synthesizer = ElevenLabsSynthesizer(api_key="", client=tts_client(convert))

        audio = await synthesizer.synthesize("Hello", "voice", token)

        assert received == [b"a", b"b"]
        assert audio == b"a"
