"""Tests for single-flight narration."""

import asyncio

import pytest

from src.heal_bot.errors import ProviderError, ProviderTimeout
from src.heal_bot.models.voice import VoiceOption
from src.heal_bot.services.narration import (
    VOICE_IDS,
    NarrationController,
    NarrationState,
    normalize_for_speech,
)
from tests.conftest import FakePlayer, FakeSynthesizer

pytestmark = pytest.mark.unit


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


class StubbornSynthesizer(FakeSynthesizer):
    """Ignores cancellation and delivers its result late."""

    async def synthesize(self, text: str, voice_id: str, token=None) -> bytes:
        self.calls.append((text, voice_id))
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            await self.release.wait()
        return text.encode("utf-8")


@pytest.fixture
def controller(synthesizer, player) -> NarrationController:
    return NarrationController(synthesizer, player)


class TestSpeak:
    async def test_plays_reply(self, controller, synthesizer, player):
        await controller.speak("Hello there")

        assert controller.state is NarrationState.PLAYING
        assert synthesizer.calls == [("Hello there", VOICE_IDS[VoiceOption.FEMALE])]
        assert player.events == [("play", b"Hello there")]

    async def test_back_to_back_leaves_one_player(self, controller, player):
        stopped_before_second_request = []

        async def synthesize(text, voice_id, token=None):
            if text == "two":
                stopped_before_second_request.append(player.handles[0].stopped)
            return text.encode("utf-8")

        controller.synthesizer.synthesize = synthesize

        await controller.speak("one")
        await controller.speak("two")

        assert stopped_before_second_request == [True]
        assert player.events == [("play", b"one"), ("stop", b"one"), ("play", b"two")]
        assert [h.audio for h in player.active] == [b"two"]

    async def test_new_request_cancels_pending_one(self, controller, synthesizer, player):
        synthesizer.release.clear()
        first = asyncio.create_task(controller.speak("one"))
        await settle()
        second = asyncio.create_task(controller.speak("two"))
        await settle()

        synthesizer.release.set()
        await asyncio.gather(first, second)

        assert player.events == [("play", b"two")]
        assert controller.playing

    async def test_overlapping_speaks_while_previous_stop_suspends(self, synthesizer):
        player = FakePlayer(stop_delay=0.01)
        controller = NarrationController(synthesizer, player)
        await controller.speak("first reply")

        older = asyncio.create_task(controller.speak("older reply"))
        await settle(1)
        newer = asyncio.create_task(controller.speak("newer reply"))
        await asyncio.gather(older, newer)

        assert [h.audio for h in player.active] == [b"newer reply"]
        assert ("play", b"older reply") not in player.events
        assert controller.playing

        await controller.stop()

        assert player.active == []

    async def test_late_result_is_dropped(self, player):
        synthesizer = StubbornSynthesizer()
        synthesizer.release.clear()
        controller = NarrationController(synthesizer, player)
        pending = asyncio.create_task(controller.speak("too late"))
        await settle()

        await controller.stop()
        synthesizer.release.set()
        await pending

        assert player.events == []
        assert controller.state is NarrationState.IDLE

    async def test_voice_off_is_silent(self, controller, synthesizer, player):
        await controller.speak("Hello", voice_option=VoiceOption.OFF)

        assert synthesizer.calls == []
        assert player.events == []

    async def test_markdown_only_text_is_silent(self, controller, synthesizer):
        await controller.speak("** **")

        assert synthesizer.calls == []
        assert controller.state is NarrationState.IDLE

    @pytest.mark.parametrize(
        "error",
        [ProviderError("elevenlabs", "HTTP 401"), ProviderTimeout("elevenlabs", 10.0)],
    )
    async def test_provider_failure_stays_idle(self, player, error):
        controller = NarrationController(FakeSynthesizer(error=error), player)

        await controller.speak("Hello")

        assert controller.state is NarrationState.IDLE
        assert player.events == []

    async def test_finished_playback_returns_to_idle(self, controller, player):
        await controller.speak("Hello")

        player.handles[0].finish()

        assert controller.state is NarrationState.IDLE

    async def test_stale_finish_does_not_reset_new_playback(self, controller, player):
        await controller.speak("one")
        await controller.speak("two")

        player.handles[0].finish()

        assert controller.playing


class TestStop:
    async def test_stop_is_idempotent(self, controller, player):
        await controller.speak("Hello")

        await controller.stop()
        await controller.stop()

        assert player.events == [("play", b"Hello"), ("stop", b"Hello")]
        assert controller.state is NarrationState.IDLE

    async def test_stop_while_requesting(self, controller, synthesizer, player):
        synthesizer.release.clear()
        pending = asyncio.create_task(controller.speak("Hello"))
        await settle()
        assert controller.state is NarrationState.REQUESTING

        await controller.stop()
        await pending

        assert controller.state is NarrationState.IDLE
        assert player.events == []

    async def test_user_message_stops_playback(self, controller, player):
        await controller.speak("Hello")

        await controller.on_user_message()

        assert player.active == []

    async def test_voice_change_stops_and_switches(self, controller, synthesizer, player):
        await controller.speak("Hello")

        await controller.set_voice(VoiceOption.MALE)
        await controller.speak("Again")

        assert player.handles[0].stopped
        assert synthesizer.calls[-1] == ("Again", VOICE_IDS[VoiceOption.MALE])


class TestNormalizeForSpeech:
    def test_strips_markdown(self):
        assert normalize_for_speech("**You** are *not* alone `ok`") == "You are not alone ok"

    def test_newlines_become_pauses(self):
        assert normalize_for_speech("Hotline: 1195\nPolice: 999") == "Hotline: 1195. Police: 999"

    def test_keeps_existing_punctuation(self):
        assert normalize_for_speech("I hear you.\n\nYou are safe") == "I hear you. You are safe"
