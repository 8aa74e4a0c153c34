"""Payload models hosts use to push meeting state to a UI or socket."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from echoroom_core.types import Message

from .notifications import Notification
from .session import SessionState


class MeetingMessagePayload(BaseModel):
    """One transcript entry."""

    id: str
    participant: str
    text: str
    timestamp: int
    display_name: Optional[str] = None
    action: Optional[Dict[str, Any]] = None

    @classmethod
    def from_message(cls, message: Message) -> "MeetingMessagePayload":
        return cls(
            id=message.id,
            participant=message.participant,
            text=message.text,
            timestamp=message.timestamp_ms,
            display_name=message.display_name,
            action=message.action.to_dict() if message.action else None,
        )


class MeetingStatePayload(BaseModel):
    """Server message describing the current meeting state."""

    scenario_id: Optional[str] = None
    lifecycle: str
    current_turn: int
    current_agent_index: int
    is_recording: bool
    is_speaking: bool
    is_ai_thinking: bool
    tts_enabled: bool
    user_input: str = ""
    messages: List[MeetingMessagePayload] = []

    @classmethod
    def from_state(cls, state: SessionState) -> "MeetingStatePayload":
        return cls(
            scenario_id=state.scenario_id,
            lifecycle=state.lifecycle.value,
            current_turn=state.current_turn,
            current_agent_index=state.current_agent_index,
            is_recording=state.is_recording,
            is_speaking=state.is_speaking,
            is_ai_thinking=state.is_ai_thinking,
            tts_enabled=state.tts_enabled,
            user_input=state.user_input,
            messages=[MeetingMessagePayload.from_message(m) for m in state.messages],
        )


class NotificationPayload(BaseModel):
    """Server message carrying a user-facing notification."""

    title: str
    description: str
    severity: str

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationPayload":
        return cls(
            title=notification.title,
            description=notification.description,
            severity=notification.severity.value,
        )
