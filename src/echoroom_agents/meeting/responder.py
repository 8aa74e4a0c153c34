"""Agent-response providers for the meeting runtime."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from echoroom_core.llm import LLMMessage, ProviderRouter
from echoroom_core.types import Message

logger = logging.getLogger(__name__)


class AgentResponseError(RuntimeError):
    """Raised when an agent reply could not be produced."""


@dataclass
class AgentDescriptor:
    """Another agent present in the meeting."""

    role: str
    persona: str
    name: Optional[str] = None


@dataclass
class AgentResponseRequest:
    """Everything a provider needs to answer as one agent."""

    user_text: str
    role: str
    persona: str
    objective: str
    history: List[Message] = field(default_factory=list)
    other_agents: List[AgentDescriptor] = field(default_factory=list)
    learning_mode: bool = False
    display_name: Optional[str] = None


class AgentResponseProvider(Protocol):
    async def respond(self, request: AgentResponseRequest) -> str: ...


def build_system_prompt(request: AgentResponseRequest) -> str:
    speaker = f"{request.display_name}, the {request.role}" if request.display_name else f"the {request.role}"
    lines = [
        f"You are {speaker}, taking part in a workplace meeting simulation.",
        f"Persona instructions: {request.persona}",
        f"Meeting objective: {request.objective or 'General discussion'}",
    ]

    if request.other_agents:
        lines.append("Other participants in the meeting:")
        for agent in request.other_agents:
            label = f"{agent.name} ({agent.role})" if agent.name else agent.role
            lines.append(f"- {label}: {agent.persona}")

    lines.append(
        "Stay in character. Reply conversationally in two or three sentences and "
        "ask at most one or two follow-up questions."
    )
    if request.learning_mode:
        lines.append(
            "The user is practicing in learning mode. After your reply, add one short "
            "coaching tip in square brackets about how they could communicate better."
        )
    return "\n".join(lines)


def build_history_messages(request: AgentResponseRequest) -> List[LLMMessage]:
    """Render the transcript from the responder's point of view.

    The responder's own lines become assistant turns; everyone else is
    labelled and sent as user turns.
    """
    messages: List[LLMMessage] = []
    for entry in request.history:
        if entry.participant == request.role:
            messages.append(LLMMessage(role="assistant", content=entry.text))
            continue
        speaker = entry.display_name or entry.participant
        messages.append(LLMMessage(role="user", content=f"{speaker}: {entry.text}"))

    if not messages or messages[0].role != "user":
        messages.insert(0, LLMMessage(role="user", content="(The meeting has started.)"))
    if messages[-1].role != "user":
        messages.append(LLMMessage(role="user", content=f"User: {request.user_text}"))
    return messages


class LLMAgentResponder:
    """Answer as an agent by calling a model through the provider router."""

    def __init__(
        self,
        router: Optional[ProviderRouter] = None,
        *,
        provider: str = "anthropic",
        model: Optional[str] = None,
        temperature: Optional[float] = 0.7,
        max_tokens: Optional[int] = 400,
    ) -> None:
        self._router = router or ProviderRouter.lazy_default()
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def respond(self, request: AgentResponseRequest) -> str:
        system_prompt = build_system_prompt(request)
        messages = build_history_messages(request)

        try:
            result = await asyncio.to_thread(
                self._router.send,
                provider=self.provider,
                model=self.model,
                messages=messages,
                system=system_prompt,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as exc:
            logger.exception("Agent response failed (provider=%s role=%s)", self.provider, request.role)
            raise AgentResponseError(f"Agent response failed: {exc}") from exc

        text = result.text.strip()
        if not text:
            raise AgentResponseError(f"Provider returned an empty reply for {request.role}")

        logger.debug(f"Agent {request.role} replied with {len(text)} characters")
        return text
