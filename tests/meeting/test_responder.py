"""Unit tests for the LLM-backed agent responder."""

from typing import Any, Dict, List

import pytest

from echoroom_agents.meeting import AgentDescriptor, AgentResponseError, AgentResponseRequest, LLMAgentResponder
from echoroom_agents.meeting.responder import build_history_messages, build_system_prompt
from echoroom_core.llm import LLMResult
from echoroom_core.types import Message


class StubRouter:
    def __init__(self, text: str = "How will this scale?", error: Exception = None) -> None:
        self.text = text
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def send(self, **kwargs) -> LLMResult:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return LLMResult(text=self.text)


def _request(**overrides) -> AgentResponseRequest:
    values = dict(
        user_text="We plan to launch in Q3.",
        role="CTO",
        persona="You are the Chief Technology Officer.",
        objective="Win funding.",
        history=[
            Message(id="1", participant="System", text="Welcome.", timestamp_ms=1),
            Message(id="2", participant="User", text="Hi all.", timestamp_ms=2),
            Message(id="3", participant="CTO", text="Hello.", timestamp_ms=3),
            Message(id="4", participant="User", text="We plan to launch in Q3.", timestamp_ms=4),
        ],
        other_agents=[AgentDescriptor(role="Finance", persona="You are the Head of Finance.", name="Alex")],
    )
    values.update(overrides)
    return AgentResponseRequest(**values)


def test_system_prompt_mentions_persona_objective_and_other_agents():
    prompt = build_system_prompt(_request(display_name="Sam"))

    assert "You are Sam, the CTO" in prompt
    assert "You are the Chief Technology Officer." in prompt
    assert "Win funding." in prompt
    assert "- Alex (Finance): You are the Head of Finance." in prompt
    assert "coaching tip" not in prompt


def test_learning_mode_adds_coaching_instruction():
    assert "coaching tip" in build_system_prompt(_request(learning_mode=True))


def test_history_maps_own_lines_to_assistant_turns():
    messages = build_history_messages(_request())

    assert [m.role for m in messages] == ["user", "user", "assistant", "user"]
    assert messages[0].content == "System: Welcome."
    assert messages[2].content == "Hello."
    assert messages[-1].content == "User: We plan to launch in Q3."


def test_history_always_starts_and_ends_with_user_turns():
    history = [Message(id="1", participant="CTO", text="Let's begin.", timestamp_ms=1)]

    messages = build_history_messages(_request(history=history))

    assert messages[0].role == "user"
    assert messages[1].role == "assistant"
    assert messages[-1].content == "User: We plan to launch in Q3."


@pytest.mark.asyncio
async def test_respond_routes_through_provider_router():
    router = StubRouter()
    responder = LLMAgentResponder(router, model="claude-3-5-haiku-latest", temperature=0.3)

    reply = await responder.respond(_request())

    assert reply == "How will this scale?"
    call = router.calls[0]
    assert call["provider"] == "anthropic"
    assert call["model"] == "claude-3-5-haiku-latest"
    assert call["temperature"] == 0.3
    assert call["system"].startswith("You are the CTO")


@pytest.mark.asyncio
async def test_provider_failures_are_wrapped():
    responder = LLMAgentResponder(StubRouter(error=RuntimeError("rate limited")))

    with pytest.raises(AgentResponseError, match="rate limited"):
        await responder.respond(_request())


@pytest.mark.asyncio
async def test_empty_reply_is_an_error():
    responder = LLMAgentResponder(StubRouter(text="   "))

    with pytest.raises(AgentResponseError):
        await responder.respond(_request())
