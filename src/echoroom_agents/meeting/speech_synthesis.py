"""Speech Synthesis - turns agent text into audible playback.

Only the most recent request is ever heard. Every ``speak`` call takes a new
job id; when the synthesis provider answers, the audio is dropped unless that
job is still current. ``cancel`` bumps the job id and halts the player, so
late results from older jobs fall on the floor.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from echoroom_core.settings import MeetingSettings
from echoroom_core.types import SYSTEM_ROLE, USER_ROLE

from .notifications import Notification, Severity

logger = logging.getLogger(__name__)


@dataclass
class SynthesizedAudio:
    data: bytes
    mime_type: str = "audio/mpeg"


class SpeechSynthesisProvider(Protocol):
    async def synthesize(self, text: str, language_code: str, voice_name: str) -> SynthesizedAudio: ...


PlaybackCallback = Callable[[Optional[BaseException]], None]


class PlaybackAborted(Exception):
    """Passed to a playback callback when playback was halted on purpose."""


class AudioPlayer(Protocol):
    """Plays one clip at a time.

    ``start`` returns once playback has begun and later calls
    ``on_complete(None)`` on natural end or ``on_complete(error)`` on failure.
    """

    async def start(self, audio: SynthesizedAudio, on_complete: PlaybackCallback) -> None: ...

    def halt(self) -> None: ...


class SpeechState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PLAYING = "playing"


class SpeechSynthesisController:
    """Single-playback speech queue with stale-result suppression."""

    def __init__(
        self,
        provider: Optional[SpeechSynthesisProvider],
        player: Optional[AudioPlayer],
        *,
        settings: Optional[MeetingSettings] = None,
        on_speaking_change: Optional[Callable[[bool], None]] = None,
        on_error: Optional[Callable[[Notification], None]] = None,
    ) -> None:
        self._provider = provider
        self._player = player
        self._settings = settings or MeetingSettings()
        self._on_speaking_change = on_speaking_change
        self._on_error = on_error

        self.state = SpeechState.IDLE
        self._job_id = 0
        self._playing_job: Optional[int] = None
        self._current_text: Optional[str] = None

    @property
    def is_supported(self) -> bool:
        return self._provider is not None and self._player is not None

    @property
    def is_speaking(self) -> bool:
        return self.state != SpeechState.IDLE

    @property
    def current_job(self) -> int:
        return self._job_id

    async def speak(self, text: str, speaker: str = SYSTEM_ROLE) -> bool:
        """Synthesize and play ``text`` in the speaker's voice.

        Returns True if playback started for this call.
        """
        if not self.is_supported or not text.strip() or speaker == USER_ROLE:
            return False

        if self.state == SpeechState.REQUESTING and self._current_text == text:
            logger.debug("Same text already being synthesized, ignoring duplicate request")
            return False

        self._job_id += 1
        job = self._job_id

        if self.state != SpeechState.IDLE:
            logger.debug(f"Speech job {job} replacing an active job")
            self._release()
            await asyncio.sleep(self._settings.cancel_grace_seconds)
            if job != self._job_id:
                return False

        self._current_text = text
        self._set_state(SpeechState.REQUESTING)
        voice = self._settings.voice_for(speaker)

        try:
            audio = await self._provider.synthesize(
                text,
                voice.language_code or self._settings.language_code,
                voice.voice_name,
            )
        except Exception as exc:
            if job != self._job_id:
                logger.debug(f"Speech job {job} failed after being superseded: {exc!r}")
                return False
            logger.exception("Speech synthesis failed (job=%s voice=%s)", job, voice.voice_name)
            self._release()
            self._report("Speech Synthesis Error", f"Could not generate speech audio: {exc}")
            return False

        if job != self._job_id:
            logger.debug(f"Discarding audio for superseded speech job {job}")
            return False

        if not audio.data:
            self._release()
            self._report("Speech Synthesis Error", "Synthesis returned no audio content.")
            return False

        self._playing_job = job
        self._set_state(SpeechState.PLAYING)
        try:
            await self._player.start(audio, functools.partial(self._on_playback_complete, job))
        except Exception as exc:
            if job == self._job_id:
                logger.exception("Audio playback failed to start (job=%s)", job)
                self._release()
                self._report("Audio Playback Error", f"Could not start audio: {exc}")
            return False

        if job != self._job_id:
            # Cancelled while the player was starting; audio may have begun after the halt.
            if self._playing_job in (job, None):
                logger.debug(f"Halting audio for speech job {job} cancelled during start")
                self._player.halt()
            if self._playing_job == job:
                self._playing_job = None
            return False

        return True

    def cancel(self) -> None:
        """Invalidate the current job and stop playback. Safe to call anytime."""
        self._job_id += 1
        if self.state == SpeechState.IDLE:
            return
        logger.debug(f"Speech cancelled (now job {self._job_id})")
        self._release()

    def _on_playback_complete(self, job: int, error: Optional[BaseException] = None) -> None:
        if job != self._job_id:
            return
        self._release(halt=False)
        if error is not None and not isinstance(error, PlaybackAborted):
            logger.warning(f"Audio playback error for job {job}: {error!r}")
            self._report("Audio Playback Error", f"Could not play speech: {error}")

    def _release(self, halt: bool = True) -> None:
        if halt and self._player is not None:
            self._player.halt()
        self._playing_job = None
        self._current_text = None
        self._set_state(SpeechState.IDLE)

    def _set_state(self, state: SpeechState) -> None:
        was_speaking = self.is_speaking
        self.state = state
        if was_speaking != self.is_speaking and self._on_speaking_change:
            self._on_speaking_change(self.is_speaking)

    def _report(self, title: str, description: str) -> None:
        if self._on_error:
            self._on_error(Notification(title=title, description=description, severity=Severity.ERROR))
