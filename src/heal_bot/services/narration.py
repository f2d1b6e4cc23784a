"""Single-flight narration of AI replies.

``NarrationController`` owns at most one audio rendering at a time. Every new
``speak`` first stops whatever is requesting or playing; a synthesis result
that arrives after its request was superseded is dropped, never played.
"""

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from enum import Enum
from typing import Callable, Protocol

from ..errors import ProviderError
from ..models.voice import VoiceOption

logger = logging.getLogger(__name__)

# ElevenLabs voice ids
VOICE_IDS = {
    VoiceOption.FEMALE: "EXAVITQu4vr4xnSDxMaL",  # Bella - warm, empathetic
    VoiceOption.MALE: "pNInz6obpgDQGcFmaJgB",    # Adam - calm, supportive
}


class NarrationState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PLAYING = "playing"


class CancellationToken:
    """Cooperative cancellation flag handed to the synthesizer."""

    def __init__(self) -> None:
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_id: str, token: CancellationToken) -> bytes: ...


class AudioHandle(ABC):
    """One playing audio rendering."""

    @abstractmethod
    async def stop(self) -> None:
        """Halt playback and release the audio. Safe to call more than once."""


class AudioPlayer(ABC):
    @abstractmethod
    async def play(self, audio: bytes, on_finished: Callable[[], None]) -> AudioHandle:
        """Start playing ``audio``.

        ``on_finished`` fires once playback ends on its own, and never before
        ``play`` has returned.
        """


_BOLD = re.compile(r"\*\*(.*?)\*\*", re.DOTALL)
_ITALIC = re.compile(r"\*(.*?)\*", re.DOTALL)
_CODE = re.compile(r"`+(.*?)`+", re.DOTALL)
_NEWLINES = re.compile(r"\s*([.!?:;,])?\s*\n+\s*")
_SPACES = re.compile(r"\s+")


def normalize_for_speech(text: str) -> str:
    """Strip markdown markers and collapse whitespace before synthesis."""
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _CODE.sub(r"\1", text)
    text = _NEWLINES.sub(lambda m: (m.group(1) or ".") + " ", text.strip())
    text = _SPACES.sub(" ", text)
    return text.strip()


class NarrationController:
    """Idle -> Requesting -> Playing -> Idle, with Requesting -> Idle on error."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        player: AudioPlayer,
        voice_option: VoiceOption = VoiceOption.FEMALE,
    ):
        self.synthesizer = synthesizer
        self.player = player
        self.voice_option = voice_option
        self.state = NarrationState.IDLE
        self._token: CancellationToken | None = None
        self._request: asyncio.Task | None = None
        self._handle: AudioHandle | None = None

    @property
    def playing(self) -> bool:
        return self.state is NarrationState.PLAYING

    async def speak(self, text: str, voice_option: VoiceOption | None = None) -> None:
        """Narrate ``text``, replacing any current narration.

        Returns once playback has started (or narration was skipped). Provider
        failures leave the controller silent and idle.
        """
        token = CancellationToken()
        # Claimed before the first await so an overlapping speak() supersedes this one.
        await self._release(*self._take(token))
        if token.cancelled or self._token is not token:
            return

        voice = VoiceOption(voice_option or self.voice_option)
        spoken = normalize_for_speech(text)
        if voice is VoiceOption.OFF or not spoken:
            self._reset()
            return

        self.state = NarrationState.REQUESTING
        self._request = asyncio.create_task(
            self.synthesizer.synthesize(spoken, VOICE_IDS[voice], token)
        )

        try:
            audio = await self._request
        except asyncio.CancelledError:
            if token.cancelled:
                return
            raise
        except ProviderError as e:
            logger.warning(f"Narration unavailable, staying silent: {e}")
            if self._token is token:
                self._reset()
            return

        if token.cancelled or self._token is not token:
            return
        self._request = None
        if not audio:
            self._reset()
            return

        handle = await self.player.play(audio, lambda: self._finished(token))
        if token.cancelled:
            # stop() ran while playback was starting
            await handle.stop()
            return

        self._handle = handle
        self.state = NarrationState.PLAYING

    async def stop(self) -> None:
        """Cancel any in-flight request and release any playing audio."""
        await self._release(*self._take(None))

    async def on_user_message(self) -> None:
        await self.stop()

    async def set_voice(self, voice_option: VoiceOption) -> None:
        self.voice_option = voice_option
        await self.stop()

    def _take(self, token: CancellationToken | None):
        """Hand ownership to ``token``; returns what the previous owner held."""
        previous = (self._token, self._request, self._handle)
        self._reset()
        self._token = token
        return previous

    async def _release(
        self,
        token: CancellationToken | None,
        request: asyncio.Task | None,
        handle: AudioHandle | None,
    ) -> None:
        if token is not None:
            token.cancel()
        if request is not None and not request.done():
            request.cancel()
        if handle is not None:
            await handle.stop()

    def _finished(self, token: CancellationToken) -> None:
        if self._token is token:
            self._reset()

    def _reset(self) -> None:
        self._token = None
        self._request = None
        self._handle = None
        self.state = NarrationState.IDLE
