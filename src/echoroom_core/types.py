"""Domain types shared by the meeting orchestration core."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


USER_ROLE = "User"
SYSTEM_ROLE = "System"

# Agent roles are open-ended strings ("CTO", "Finance", ...); scenario data
# defines the active roster.
ParticipantRole = str

START_MEETING_ACTION = "start_meeting"


@dataclass
class MessageAction:
    """Action attached to a message (e.g. the start-meeting button)."""

    kind: str
    label: str

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "label": self.label}


@dataclass
class Message:
    """A single entry in the meeting transcript."""

    id: str
    participant: ParticipantRole
    text: str
    timestamp_ms: int
    display_name: Optional[str] = None
    action: Optional[MessageAction] = None

    @property
    def is_user(self) -> bool:
        return self.participant == USER_ROLE

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "participant": self.participant,
            "text": self.text,
            "timestamp": self.timestamp_ms,
        }
        if self.display_name:
            payload["display_name"] = self.display_name
        if self.action:
            payload["action"] = self.action.to_dict()
        return payload


@dataclass
class Persona:
    """User-defined persona, consumed read-only."""

    id: str
    name: str
    role: ParticipantRole
    instruction_prompt: str
    avatar: Optional[str] = None


@dataclass
class InitialMessage:
    participant: ParticipantRole
    text: str


@dataclass
class Scenario:
    """Meeting scenario definition, consumed read-only."""

    id: str
    title: str
    objective: str
    initial_message: InitialMessage
    agents_involved: List[ParticipantRole]
    persona_config: Dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None
    max_turns: Optional[int] = None


@dataclass
class MeetingSummary:
    """Finalized transcript handed to the summary sink on meeting end."""

    scenario_title: str
    objective: str
    messages: List[Message] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario_title": self.scenario_title,
            "objective": self.objective,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "MeetingSummary":
        messages: List[Message] = []
        for item in payload.get("messages") or []:
            if not isinstance(item, dict):
                continue
            action = item.get("action")
            messages.append(
                Message(
                    id=str(item.get("id", "")),
                    participant=str(item.get("participant", "")),
                    text=str(item.get("text", "")),
                    timestamp_ms=int(item.get("timestamp") or 0),
                    display_name=item.get("display_name"),
                    action=MessageAction(**action) if isinstance(action, dict) else None,
                )
            )
        return cls(
            scenario_title=str(payload.get("scenario_title", "")),
            objective=str(payload.get("objective", "")),
            messages=messages,
        )
