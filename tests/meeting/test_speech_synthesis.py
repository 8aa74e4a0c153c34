"""Unit tests for the speech synthesis controller."""

import asyncio
from typing import Dict, List, Set, Tuple

import pytest

from echoroom_agents.meeting import (
    Notification,
    PlaybackAborted,
    SpeechState,
    SpeechSynthesisController,
    SynthesizedAudio,
)
from echoroom_core.settings import MeetingSettings


class GatedSynthesisProvider:
    """Synthesis provider whose responses can be held back per text."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, str, str]] = []
        self.gates: Dict[str, asyncio.Event] = {}
        self.failing: Set[str] = set()

    async def synthesize(self, text: str, language_code: str, voice_name: str) -> SynthesizedAudio:
        self.calls.append((text, language_code, voice_name))
        gate = self.gates.get(text)
        if gate is not None:
            await gate.wait()
        if text in self.failing:
            raise RuntimeError("synthesis backend unavailable")
        return SynthesizedAudio(data=text.encode("utf-8"))


class RecordingPlayer:
    def __init__(self) -> None:
        self.started: List[SynthesizedAudio] = []
        self.callbacks = []
        self.halts = 0

    async def start(self, audio, on_complete) -> None:
        self.started.append(audio)
        self.callbacks.append(on_complete)

    def halt(self) -> None:
        self.halts += 1


def _build():
    provider = GatedSynthesisProvider()
    player = RecordingPlayer()
    errors: List[Notification] = []
    speaking: List[bool] = []
    controller = SpeechSynthesisController(
        provider,
        player,
        settings=MeetingSettings(cancel_grace_seconds=0.0),
        on_speaking_change=speaking.append,
        on_error=errors.append,
    )
    return controller, provider, player, errors, speaking


@pytest.mark.asyncio
async def test_user_and_empty_text_are_never_spoken():
    controller, provider, player, _, _ = _build()

    assert await controller.speak("I am the user", "User") is False
    assert await controller.speak("   ", "CTO") is False

    assert provider.calls == []
    assert player.started == []


@pytest.mark.asyncio
async def test_speak_uses_role_voice_and_plays():
    controller, provider, player, _, speaking = _build()

    played = await controller.speak("Scalability worries me.", "CTO")

    assert played is True
    assert provider.calls == [("Scalability worries me.", "en-US", "en-US-Neural2-J")]
    assert player.started[0].data == b"Scalability worries me."
    assert controller.state == SpeechState.PLAYING
    assert speaking == [True]

    player.callbacks[0](None)
    assert controller.state == SpeechState.IDLE
    assert speaking == [True, False]


@pytest.mark.asyncio
async def test_unknown_role_falls_back_to_system_voice():
    controller, provider, _, _, _ = _build()

    await controller.speak("Welcome.", "Legal")

    assert provider.calls[0][2] == "en-US-Neural2-A"


@pytest.mark.asyncio
async def test_only_latest_job_is_played():
    controller, provider, player, errors, _ = _build()
    gate = asyncio.Event()
    provider.gates["first"] = gate

    first = asyncio.create_task(controller.speak("first", "CTO"))
    await asyncio.sleep(0)
    assert controller.state == SpeechState.REQUESTING

    second_played = await controller.speak("second", "Finance")
    gate.set()
    first_played = await first

    assert second_played is True
    assert first_played is False
    assert [audio.data for audio in player.started] == [b"second"]
    assert errors == []


@pytest.mark.asyncio
async def test_superseded_failure_is_swallowed():
    controller, provider, player, errors, _ = _build()
    gate = asyncio.Event()
    provider.gates["stale"] = gate
    provider.failing.add("stale")

    stale = asyncio.create_task(controller.speak("stale", "CTO"))
    await asyncio.sleep(0)
    await controller.speak("fresh", "CTO")
    gate.set()
    await stale

    assert errors == []
    assert [audio.data for audio in player.started] == [b"fresh"]


@pytest.mark.asyncio
async def test_current_failure_is_reported():
    controller, provider, _, errors, _ = _build()
    provider.failing.add("broken")

    played = await controller.speak("broken", "CTO")

    assert played is False
    assert len(errors) == 1
    assert errors[0].title == "Speech Synthesis Error"
    assert controller.state == SpeechState.IDLE


@pytest.mark.asyncio
async def test_cancel_while_requesting_discards_result():
    controller, provider, player, errors, speaking = _build()
    gate = asyncio.Event()
    provider.gates["late"] = gate

    task = asyncio.create_task(controller.speak("late", "CTO"))
    await asyncio.sleep(0)
    job_before = controller.current_job
    controller.cancel()
    gate.set()

    assert await task is False
    assert controller.current_job > job_before
    assert player.started == []
    assert speaking == [True, False]
    assert errors == []


@pytest.mark.asyncio
async def test_cancel_is_idempotent_and_halts_playback():
    controller, _, player, _, _ = _build()

    controller.cancel()
    assert player.halts == 0

    await controller.speak("Hello team.", "HR")
    controller.cancel()
    controller.cancel()

    assert player.halts == 1
    assert controller.state == SpeechState.IDLE

    # Completion of the cancelled playback is ignored.
    player.callbacks[0](None)
    assert controller.state == SpeechState.IDLE


@pytest.mark.asyncio
async def test_playback_errors_are_reported_unless_aborted():
    controller, _, player, errors, _ = _build()

    await controller.speak("one", "CTO")
    player.callbacks[0](PlaybackAborted())
    assert errors == []

    await controller.speak("two", "CTO")
    player.callbacks[1](RuntimeError("decoder error"))
    assert [error.title for error in errors] == ["Audio Playback Error"]


@pytest.mark.asyncio
async def test_duplicate_request_for_pending_text_is_ignored():
    controller, provider, _, _, _ = _build()
    gate = asyncio.Event()
    provider.gates["same"] = gate

    task = asyncio.create_task(controller.speak("same", "CTO"))
    await asyncio.sleep(0)
    duplicate = await controller.speak("same", "CTO")
    gate.set()

    assert duplicate is False
    assert await task is True
    assert len(provider.calls) == 1


@pytest.mark.asyncio
async def test_missing_player_means_unsupported():
    controller = SpeechSynthesisController(GatedSynthesisProvider(), None)

    assert controller.is_supported is False
    assert await controller.speak("Hello", "CTO") is False


class SlowStartPlayer:
    """Player whose start suspends before audio actually begins."""

    def __init__(self) -> None:
        self.release = asyncio.Event()
        self.playing = False
        self.halts = 0

    async def start(self, audio, on_complete) -> None:
        await self.release.wait()
        self.playing = True

    def halt(self) -> None:
        self.halts += 1
        self.playing = False


@pytest.mark.asyncio
async def test_cancel_while_player_is_starting_silences_late_audio():
    player = SlowStartPlayer()
    controller = SpeechSynthesisController(
        GatedSynthesisProvider(),
        player,
        settings=MeetingSettings(cancel_grace_seconds=0.0),
    )

    task = asyncio.create_task(controller.speak("Let's review the numbers.", "Finance"))
    await asyncio.sleep(0)
    assert controller.state == SpeechState.PLAYING

    controller.cancel()
    player.release.set()

    assert await task is False
    assert player.playing is False
    assert controller.state == SpeechState.IDLE


@pytest.mark.asyncio
async def test_stale_start_does_not_halt_newer_playback():
    player = SlowStartPlayer()
    controller = SpeechSynthesisController(
        GatedSynthesisProvider(),
        player,
        settings=MeetingSettings(cancel_grace_seconds=0.0),
    )

    stale = asyncio.create_task(controller.speak("first", "CTO"))
    await asyncio.sleep(0)
    fresh = asyncio.create_task(controller.speak("second", "CTO"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    player.release.set()
    assert await stale is False
    halts_after_stale = player.halts
    assert await fresh is True

    assert player.halts == halts_after_stale
    assert player.playing is True
    assert controller.state == SpeechState.PLAYING
