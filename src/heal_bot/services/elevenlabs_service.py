"""ElevenLabs text-to-speech client."""

import asyncio
import logging

import httpx
from elevenlabs import AsyncElevenLabs
from elevenlabs.core.api_error import ApiError

from ..errors import ProviderError, ProviderTimeout
from .narration import CancellationToken

logger = logging.getLogger(__name__)


class ElevenLabsSynthesizer:
    """Turns text into MP3 audio with ElevenLabs."""

    name = "elevenlabs"

    def __init__(
        self,
        api_key: str,
        model_id: str = "eleven_turbo_v2_5",
        timeout: float = 10.0,
        client: AsyncElevenLabs | None = None,
    ):
        self.api_key = api_key
        self.model_id = model_id
        self.timeout = timeout
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    @property
    def client(self) -> AsyncElevenLabs:
        if self._client is None:
            self._client = AsyncElevenLabs(api_key=self.api_key)
        return self._client

    async def synthesize(
        self,
        text: str,
        voice_id: str,
        token: CancellationToken | None = None,
    ) -> bytes:
        """
        Synthesize ``text`` with ``voice_id``.

        Stops reading the stream as soon as ``token`` is cancelled; the partial
        result is returned and the caller is expected to discard it.

        Raises:
            ProviderTimeout: synthesis took longer than ``timeout``.
            ProviderError: credentials are missing or the API failed.
        """
        if not self.configured:
            raise ProviderError(self.name, "API key not configured")

        try:
            return await asyncio.wait_for(self._collect(text, voice_id, token), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(self.name, self.timeout) from e
        except ApiError as e:
            raise ProviderError(self.name, f"HTTP {e.status_code}") from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, str(e)) from e

    async def _collect(self, text: str, voice_id: str, token: CancellationToken | None) -> bytes:
        audio_chunks = []
        async for chunk in self.client.text_to_speech.convert(
            voice_id=voice_id,
            text=text,
            model_id=self.model_id,
            output_format="mp3_44100_128",
        ):
            if token is not None and token.cancelled:
                logger.debug("Synthesis superseded, dropping stream")
                break
            audio_chunks.append(chunk)
        return b"".join(audio_chunks)
