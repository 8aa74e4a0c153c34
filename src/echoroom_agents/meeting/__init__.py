"""Meeting orchestration for the EchoRoom simulator.

This package runs a practice meeting between a user and simulated agents:
choosing who answers each utterance, sequencing speech capture and speech
synthesis, and discarding results that arrive after the session moved on.
"""

from .session import (
    MeetingSession,
    MeetingLifecycle,
    SessionState,
    TurnOutcome,
    START_PROMPT_ID,
)
from .turn_scheduler import (
    Turn,
    TurnStrategy,
    next_turn,
    select_responder,
)
from .speech_capture import (
    CaptureError,
    CaptureErrorKind,
    CaptureState,
    RecognitionSource,
    SpeechCaptureController,
    classify_error,
)
from .speech_synthesis import (
    AudioPlayer,
    PlaybackAborted,
    SpeechState,
    SpeechSynthesisController,
    SpeechSynthesisProvider,
    SynthesizedAudio,
)
from .responder import (
    AgentDescriptor,
    AgentResponseError,
    AgentResponseProvider,
    AgentResponseRequest,
    LLMAgentResponder,
)
from .notifications import Notification, Severity
from .messages import (
    MeetingMessagePayload,
    MeetingStatePayload,
    NotificationPayload,
)

__all__ = [
    "MeetingSession",
    "MeetingLifecycle",
    "SessionState",
    "TurnOutcome",
    "START_PROMPT_ID",
    "Turn",
    "TurnStrategy",
    "next_turn",
    "select_responder",
    "CaptureError",
    "CaptureErrorKind",
    "CaptureState",
    "RecognitionSource",
    "SpeechCaptureController",
    "classify_error",
    "AudioPlayer",
    "PlaybackAborted",
    "SpeechState",
    "SpeechSynthesisController",
    "SpeechSynthesisProvider",
    "SynthesizedAudio",
    "AgentDescriptor",
    "AgentResponseError",
    "AgentResponseProvider",
    "AgentResponseRequest",
    "LLMAgentResponder",
    "Notification",
    "Severity",
    "MeetingMessagePayload",
    "MeetingStatePayload",
    "NotificationPayload",
]
