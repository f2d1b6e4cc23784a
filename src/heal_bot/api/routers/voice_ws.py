"""Narrated chat over WebSocket, plus one-shot speech synthesis.

Text goes through the same chat pipeline as ``POST /chat/message``; the reply
is then narrated with ElevenLabs. A new user message or a voice change stops
the current narration first.
"""

import asyncio
import base64
import json
import logging
from typing import Callable

from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect

from ...errors import NotFound, ProviderError, ValidationError
from ...models.voice import TTSRequest, VoiceOption
from ...services.chat_service import ChatService
from ...services.elevenlabs_service import ElevenLabsSynthesizer
from ...services.narration import (
    VOICE_IDS,
    AudioHandle,
    AudioPlayer,
    NarrationController,
    normalize_for_speech,
)
from ..deps import get_chat_service, get_synthesizer

router = APIRouter()
logger = logging.getLogger(__name__)

AUDIO_CHUNK_BYTES = 32 * 1024


class WebSocketAudioHandle(AudioHandle):
    """Audio being streamed to one WebSocket client."""

    def __init__(self, websocket: WebSocket, task: asyncio.Task):
        self.websocket = websocket
        self.task = task
        self._stopped = False

    async def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if not self.task.done():
            self.task.cancel()
            await asyncio.wait([self.task])
            await self.websocket.send_json({"type": "audio_stop"})


class WebSocketAudioPlayer(AudioPlayer):
    """Streams MP3 audio to the client as base64 frames."""

    def __init__(self, websocket: WebSocket, chunk_size: int = AUDIO_CHUNK_BYTES):
        self.websocket = websocket
        self.chunk_size = chunk_size

    async def play(self, audio: bytes, on_finished: Callable[[], None]) -> AudioHandle:
        task = asyncio.create_task(self._stream(audio))

        def _done(t: asyncio.Task) -> None:
            if t.cancelled():
                return
            if t.exception() is not None:
                logger.warning(f"Audio stream failed: {t.exception()}")
            on_finished()

        task.add_done_callback(_done)
        return WebSocketAudioHandle(self.websocket, task)

    async def _stream(self, audio: bytes) -> None:
        await self.websocket.send_json({"type": "status", "status": "speaking"})
        for start in range(0, len(audio), self.chunk_size):
            chunk = audio[start:start + self.chunk_size]
            await self.websocket.send_json(
                {"type": "audio", "data": base64.b64encode(chunk).decode("utf-8")}
            )
        await self.websocket.send_json({"type": "audio_end"})
        await self.websocket.send_json({"type": "status", "status": "listening"})


class VoiceChatSession:
    """One connected client: chat turns plus narration of each reply."""

    def __init__(
        self,
        websocket: WebSocket,
        owner_key: str,
        chat: ChatService,
        narration: NarrationController,
    ):
        self.websocket = websocket
        self.owner_key = owner_key
        self.chat = chat
        self.narration = narration
        self.session_id: str | None = None
        self._speaking: asyncio.Task | None = None

    async def handle(self, data: dict) -> None:
        kind = data.get("type")
        if kind == "message":
            await self._handle_message(data)
        elif kind == "config":
            await self._handle_config(data)
        else:
            await self.websocket.send_json({"type": "error", "message": f"Unknown message type: {kind}"})

    async def _handle_message(self, data: dict) -> None:
        content = data.get("content", "")
        session_id = data.get("sessionId") or self.session_id
        if not isinstance(content, str) or not (session_id is None or isinstance(session_id, str)):
            await self.websocket.send_json({"type": "error", "message": "content and sessionId must be strings"})
            return

        await self.narration.on_user_message()
        await self.websocket.send_json({"type": "status", "status": "thinking"})

        try:
            result = await self.chat.send_message(self.owner_key, session_id, content)
        except (ValidationError, NotFound) as e:
            await self.websocket.send_json({"type": "error", "message": str(e)})
            await self.websocket.send_json({"type": "status", "status": "listening"})
            return

        self.session_id = result.session.session_id
        await self.websocket.send_json(
            {
                "type": "response",
                "text": result.response,
                "sessionId": self.session_id,
                "aiMessage": result.ai_message.model_dump(mode="json", by_alias=True),
            }
        )

        if self.narration.voice_option is VoiceOption.OFF:
            await self.websocket.send_json({"type": "status", "status": "listening"})
            return
        self._speaking = asyncio.create_task(self.narration.speak(result.response))

    async def _handle_config(self, data: dict) -> None:
        try:
            voice = VoiceOption(data.get("voice"))
        except ValueError:
            await self.websocket.send_json({"type": "error", "message": f"Unknown voice: {data.get('voice')}"})
            return
        await self.narration.set_voice(voice)
        await self.websocket.send_json({"type": "config", "voice": voice.value})

    async def close(self) -> None:
        await self.narration.stop()
        if self._speaking and not self._speaking.done():
            self._speaking.cancel()


@router.websocket("/chat")
async def voice_chat(
    websocket: WebSocket,
    user_id: str | None = Query(default=None, description="Caller identity when headers are unavailable"),
    voice: VoiceOption = Query(default=VoiceOption.FEMALE, description="Voice: 'female', 'male' or 'off'"),
    chat: ChatService = Depends(get_chat_service),
    synthesizer: ElevenLabsSynthesizer = Depends(get_synthesizer),
):
    """
    WebSocket endpoint for narrated chat.

    Messages from client:
    - {"type": "message", "content": "...", "sessionId": "..."?}
    - {"type": "config", "voice": "female|male|off"}

    Messages from server:
    - {"type": "response", "text": "...", "sessionId": "...", "aiMessage": {...}}
    - {"type": "audio", "data": "base64..."}
    - {"type": "audio_end"} / {"type": "audio_stop"}
    - {"type": "status", "status": "listening|thinking|speaking"}
    - {"type": "error", "message": "..."}
    """
    owner_key = websocket.headers.get("x-user-id") or user_id
    if not owner_key:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    narration = NarrationController(synthesizer, WebSocketAudioPlayer(websocket), voice_option=voice)
    session = VoiceChatSession(websocket, owner_key, chat, narration)

    async def keep_alive():
        while True:
            await asyncio.sleep(30)
            try:
                await websocket.send_json({"type": "ping"})
            except RuntimeError:
                break

    keep_alive_task = asyncio.create_task(keep_alive())

    try:
        await websocket.send_json({"type": "status", "status": "listening"})
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                break

            if message.get("text") is not None:
                try:
                    data = json.loads(message["text"])
                except json.JSONDecodeError:
                    await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                    continue
                if not isinstance(data, dict):
                    await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                    continue
                await session.handle(data)
    except WebSocketDisconnect:
        logger.info("WebSocket disconnected")
    finally:
        keep_alive_task.cancel()
        try:
            await session.close()
        except (RuntimeError, WebSocketDisconnect):
            # socket already closed; audio_stop cannot be delivered
            pass


@router.post("/tts")
async def synthesize_speech(
    request: TTSRequest,
    synthesizer: ElevenLabsSynthesizer = Depends(get_synthesizer),
):
    """
    Synthesize speech for a reply.

    Returns MP3 audio, or 204 No Content when narration is off or the TTS
    provider is unavailable (the client stays silent).
    """
    if request.voice is VoiceOption.OFF:
        return Response(status_code=204)

    text = normalize_for_speech(request.text)
    if not text:
        return Response(status_code=204)

    try:
        audio = await synthesizer.synthesize(text, VOICE_IDS[request.voice])
    except ProviderError as e:
        logger.warning(f"TTS unavailable, returning silence: {e}")
        return Response(status_code=204)

    if not audio:
        return Response(status_code=204)
    return Response(content=audio, media_type="audio/mpeg")
