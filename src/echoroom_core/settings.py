"""Runtime settings for meeting sessions."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_DEFAULT_SETTINGS_PATH = Path("data/meeting_settings.json")
_TRUE_VALUES = {"1", "true", "yes", "on"}


class VoiceConfig(BaseModel):
    """Synthesis voice for one participant role."""

    voice_name: str
    language_code: str = "en-US"


def _default_voices() -> Dict[str, VoiceConfig]:
    return {
        "CTO": VoiceConfig(voice_name="en-US-Neural2-J"),
        "Finance": VoiceConfig(voice_name="en-US-Wavenet-C"),
        "Product": VoiceConfig(voice_name="en-US-Neural2-A"),
        "HR": VoiceConfig(voice_name="en-US-Neural2-F"),
        "System": VoiceConfig(voice_name="en-US-Neural2-A"),
    }


class MeetingSettings(BaseModel):
    """Knobs for a meeting session.

    ``cancel_grace_seconds`` is the fixed delay used when a new speech job
    replaces a running one and when ending a meeting waits for cancellation
    to settle.
    """

    tts_enabled: bool = False
    learning_mode: bool = False
    language_code: str = "en-US"
    cancel_grace_seconds: float = 0.1
    voices: Dict[str, VoiceConfig] = Field(default_factory=_default_voices)
    default_voice: VoiceConfig = Field(
        default_factory=lambda: VoiceConfig(voice_name="en-US-Neural2-A")
    )
    start_prompt_text: str = "Whenever you're ready, start the meeting."
    start_action_label: str = "Start Meeting"
    closing_message: str = "The meeting time is up. This session has now concluded."
    apology_message: str = "Sorry, I encountered an error. Please try again."
    generic_persona_template: str = (
        "You are the {role}. Respond to the user from the perspective of your role in this meeting."
    )

    def voice_for(self, role: str) -> VoiceConfig:
        """Return the voice for a role, falling back to the System voice."""

        if role in self.voices:
            return self.voices[role]
        for key, voice in self.voices.items():
            if key.lower() == role.lower():
                return voice
        return self.voices.get("System", self.default_voice)

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "MeetingSettings":
        env = environ if environ is not None else os.environ
        overrides: Dict[str, object] = {}

        if "ECHOROOM_TTS_ENABLED" in env:
            overrides["tts_enabled"] = env["ECHOROOM_TTS_ENABLED"].strip().lower() in _TRUE_VALUES
        if "ECHOROOM_LEARNING_MODE" in env:
            overrides["learning_mode"] = env["ECHOROOM_LEARNING_MODE"].strip().lower() in _TRUE_VALUES
        if env.get("ECHOROOM_LANGUAGE_CODE"):
            overrides["language_code"] = env["ECHOROOM_LANGUAGE_CODE"].strip()
        if env.get("ECHOROOM_CANCEL_GRACE_SECONDS"):
            try:
                overrides["cancel_grace_seconds"] = float(env["ECHOROOM_CANCEL_GRACE_SECONDS"])
            except ValueError:
                logger.warning(
                    "Ignoring invalid ECHOROOM_CANCEL_GRACE_SECONDS=%r",
                    env["ECHOROOM_CANCEL_GRACE_SECONDS"],
                )

        return cls(**overrides)


def load_settings(path: Optional[Path] = None) -> MeetingSettings:
    """Load settings from a JSON file, falling back to defaults."""

    settings_path = path or _DEFAULT_SETTINGS_PATH
    if not settings_path.exists():
        return MeetingSettings()

    try:
        raw = json.loads(settings_path.read_text(encoding="utf-8"))
    except Exception:
        logger.warning(f"Could not read settings from {settings_path}, using defaults")
        return MeetingSettings()

    if not isinstance(raw, dict):
        return MeetingSettings()

    try:
        return MeetingSettings(**raw)
    except Exception:
        logger.warning(f"Invalid settings in {settings_path}, using defaults")
        return MeetingSettings()
