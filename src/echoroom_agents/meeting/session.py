"""Meeting Session - lifecycle state machine for a simulated meeting.

The session owns the transcript, the turn counters and the meeting lifecycle
(uninitialized, awaiting start, active, ended). It asks the turn scheduler who
answers each user utterance, calls the agent-response provider, and keeps
speech capture and speech synthesis from running at the same time.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set

from echoroom_core.settings import MeetingSettings
from echoroom_core.stores import PersonaStore, ScenarioStore
from echoroom_core.summary_sink import SummarySink
from echoroom_core.types import (
    START_MEETING_ACTION,
    SYSTEM_ROLE,
    USER_ROLE,
    MeetingSummary,
    Message,
    MessageAction,
    Persona,
    Scenario,
)

from .notifications import Notification, NotifyCallback, Severity
from .responder import AgentDescriptor, AgentResponseProvider, AgentResponseRequest
from .speech_capture import CaptureError, CaptureState, RecognitionSource, SpeechCaptureController
from .speech_synthesis import AudioPlayer, SpeechSynthesisController, SpeechSynthesisProvider
from .turn_scheduler import TurnStrategy, next_turn

logger = logging.getLogger(__name__)

START_PROMPT_ID = "start-prompt"


class MeetingLifecycle(str, Enum):
    """Lifecycle of a meeting session."""

    UNINITIALIZED = "uninitialized"
    AWAITING_START = "awaiting_start"
    ACTIVE = "active"
    ENDED = "ended"


@dataclass
class SessionState:
    """Read-only snapshot of a session."""

    lifecycle: MeetingLifecycle
    messages: List[Message]
    current_turn: int
    current_agent_index: int
    is_recording: bool
    is_speaking: bool
    tts_enabled: bool
    is_ai_thinking: bool
    user_input: str
    scenario_id: Optional[str] = None


@dataclass
class TurnOutcome:
    """What happened during one submitted user turn."""

    user_message: Message
    responder: Optional[str] = None
    strategy: Optional[TurnStrategy] = None
    reply: Optional[Message] = None
    error: Optional[str] = None
    ended: bool = False


def _now_ms() -> int:
    return int(time.time() * 1000)


class MeetingSession:
    """Runs one simulated meeting at a time.

    Responsibilities:
    - Load a scenario and walk the lifecycle state machine
    - Append user and agent messages in call order
    - Pick responders (explicit reference first, round-robin otherwise)
    - Keep capture and synthesis mutually exclusive
    - Drop provider results that arrive after the session moved on
    - Hand the finalized transcript to the summary sink on end
    """

    def __init__(
        self,
        *,
        scenarios: ScenarioStore,
        responder: AgentResponseProvider,
        summary_sink: SummarySink,
        personas: Optional[PersonaStore] = None,
        recognition_source: Optional[RecognitionSource] = None,
        synthesis_provider: Optional[SpeechSynthesisProvider] = None,
        audio_player: Optional[AudioPlayer] = None,
        settings: Optional[MeetingSettings] = None,
        notify: Optional[NotifyCallback] = None,
        on_change: Optional[Callable[[SessionState], None]] = None,
        clock: Callable[[], int] = _now_ms,
    ):
        """Initialize a meeting session.

        Args:
            scenarios: Scenario lookup
            responder: Produces agent replies
            summary_sink: Receives the summary when the meeting ends
            personas: Optional persona lookup for display names and by-name references
            recognition_source: Optional speech-to-text source
            synthesis_provider: Optional text-to-speech provider
            audio_player: Optional player for synthesized audio
            settings: Session settings (defaults when omitted)
            notify: Receives user-facing notifications
            on_change: Called with a fresh snapshot after every state change
            clock: Millisecond clock used for message timestamps
        """
        self._scenarios = scenarios
        self._responder = responder
        self._summary_sink = summary_sink
        self._personas = personas
        self._settings = settings or MeetingSettings()
        self._notify = notify
        self._on_change = on_change
        self._clock = clock

        self._capture = SpeechCaptureController(
            recognition_source,
            on_listening_change=self._handle_listening_change,
            on_interim=self._handle_captured_text,
            on_final=self._handle_captured_text,
            on_error=self._handle_capture_error,
        )
        self._synthesis = SpeechSynthesisController(
            synthesis_provider,
            audio_player,
            settings=self._settings,
            on_speaking_change=self._handle_speaking_change,
            on_error=self._handle_synthesis_error,
        )

        self.scenario: Optional[Scenario] = None
        self.lifecycle = MeetingLifecycle.UNINITIALIZED
        self.messages: List[Message] = []
        self.current_turn = 0
        self.current_agent_index = 0
        self.user_input = ""
        self.is_ai_thinking = False
        self.is_recording = False
        self.is_speaking = False
        self.tts_enabled = self._settings.tts_enabled and self._synthesis.is_supported
        self.learning_mode = self._settings.learning_mode
        self.summary: Optional[MeetingSummary] = None

        self._alive = True
        self._ending = False
        self._generation = 0
        self._initial_spoken_for: Optional[str] = None
        self._speech_tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------ #
    # Capabilities
    # ------------------------------------------------------------------ #

    @property
    def is_stt_supported(self) -> bool:
        return self._capture.is_supported

    @property
    def is_tts_supported(self) -> bool:
        return self._synthesis.is_supported

    @property
    def capture(self) -> SpeechCaptureController:
        return self._capture

    @property
    def synthesis(self) -> SpeechSynthesisController:
        return self._synthesis

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def load_scenario(self, scenario_id: str) -> bool:
        """Reset the session for a scenario (Uninitialized -> AwaitingStart).

        Returns:
            True if the scenario was found and loaded
        """
        if not self._alive:
            return False

        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            logger.warning(f"Scenario {scenario_id!r} not found")
            self._emit(Notification(title="Error", description="Scenario not found."))
            return False

        self._capture.stop()
        self._synthesis.cancel()

        self._generation += 1
        self.scenario = scenario
        self.lifecycle = MeetingLifecycle.AWAITING_START
        self.messages = [
            Message(
                id=START_PROMPT_ID,
                participant=SYSTEM_ROLE,
                text=self._settings.start_prompt_text,
                timestamp_ms=self._clock(),
                action=MessageAction(kind=START_MEETING_ACTION, label=self._settings.start_action_label),
            )
        ]
        self.current_turn = 0
        self.current_agent_index = 0
        self.user_input = ""
        self.is_ai_thinking = False
        self.summary = None
        self._ending = False
        self._initial_spoken_for = None

        logger.info(
            f"Loaded scenario {scenario.id} with {len(scenario.agents_involved)} agents, "
            f"max_turns={scenario.max_turns}"
        )
        self._changed()
        return True

    async def start_meeting(self) -> bool:
        """Run the start action (AwaitingStart -> Active)."""
        if not self._alive or self.lifecycle != MeetingLifecycle.AWAITING_START or self.scenario is None:
            return False

        for message in self.messages:
            if message.id == START_PROMPT_ID:
                message.action = None

        self.lifecycle = MeetingLifecycle.ACTIVE
        initial = self.scenario.initial_message
        self._append(initial.participant, initial.text)
        logger.info(f"Started meeting for scenario {self.scenario.id}")

        if self.tts_enabled:
            self._speak_initial_message()
        return True

    async def invoke_action(self, message_id: str) -> bool:
        """Run the action attached to a message, if any."""
        for message in self.messages:
            if message.id != message_id or message.action is None:
                continue
            if message.action.kind == START_MEETING_ACTION:
                return await self.start_meeting()
            logger.warning(f"Unknown message action {message.action.kind!r}")
        return False

    async def end_meeting(self) -> bool:
        """End the meeting (Active -> Ended) and write the summary.

        Capture and synthesis are cancelled and given the grace interval to
        settle before the lifecycle flips, so no audio job can resume after
        the meeting is reported ended.
        """
        if not self._alive or self.lifecycle != MeetingLifecycle.ACTIVE or self._ending:
            return False
        self._ending = True
        generation = self._generation

        self._capture.stop()
        await self._capture.wait_idle(self._settings.cancel_grace_seconds)
        self._synthesis.cancel()
        await asyncio.sleep(self._settings.cancel_grace_seconds)

        if not self._alive or generation != self._generation or self.scenario is None:
            logger.info("Session was reloaded or closed while ending, leaving it untouched")
            return False

        self.lifecycle = MeetingLifecycle.ENDED
        self.tts_enabled = False
        self.summary = MeetingSummary(
            scenario_title=self.scenario.title,
            objective=self.scenario.objective,
            messages=[message for message in self.messages if message.id != START_PROMPT_ID],
        )
        logger.info(
            f"Ended meeting for scenario {self.scenario.id} after {self.current_turn} turns, "
            f"{len(self.summary.messages)} messages"
        )

        try:
            self._summary_sink.save(self.summary)
        except Exception:
            logger.exception("Failed to save summary for scenario %s", self.scenario.id)
            self._emit(
                Notification(
                    title="Error",
                    description="Could not save meeting summary. The report may be incomplete.",
                )
            )

        self._changed()
        return True

    def close(self) -> None:
        """Tear the session down. No state changes are applied afterwards."""
        if not self._alive:
            return
        self._capture.stop()
        self._synthesis.cancel()
        self._alive = False
        self._generation += 1
        logger.debug("Meeting session closed")

    # ------------------------------------------------------------------ #
    # Turns
    # ------------------------------------------------------------------ #

    def set_user_input(self, text: str) -> None:
        if not self._alive:
            return
        self.user_input = text
        self._changed()

    async def submit_user_response(self, text: Optional[str] = None) -> Optional[TurnOutcome]:
        """Submit a user utterance and collect one agent reply.

        Args:
            text: Utterance to submit; defaults to the pending input buffer

        Returns:
            TurnOutcome, or None when the call was ignored (session not
            active, empty text, or a reply already pending)
        """
        if not self._alive or self.lifecycle != MeetingLifecycle.ACTIVE or self._ending:
            return None
        if self.is_ai_thinking or self.scenario is None:
            logger.debug("Submit ignored: reply already pending")
            return None

        if text is None and self.is_recording:
            self._capture.stop()
            self._emit(
                Notification(
                    title="Recording Stopped",
                    description="Voice input stopped. Review and send your message.",
                    severity=Severity.INFO,
                )
            )
            return None

        user_text = (self.user_input if text is None else text).strip()
        if not user_text:
            return None

        generation = self._generation
        self.is_ai_thinking = True
        try:
            return await self._run_turn(user_text, generation)
        finally:
            if self._alive and generation == self._generation:
                self.is_ai_thinking = False
                self._changed()

    async def _run_turn(self, user_text: str, generation: int) -> TurnOutcome:
        scenario = self.scenario
        if self._capture.state != CaptureState.IDLE:
            # Typed text replaces whatever the recognizer still has in flight.
            self._capture.stop(discard=True)
        user_message = self._append(USER_ROLE, user_text)
        self.user_input = ""
        self._synthesis.cancel()

        outcome = TurnOutcome(user_message=user_message)
        roster = list(scenario.agents_involved)
        personas = self._known_personas()
        turn = next_turn(user_text, roster, self.current_agent_index, personas)

        if turn is not None:
            outcome.responder = turn.responder
            outcome.strategy = turn.strategy
            logger.debug(f"Turn {self.current_turn + 1} -> {turn.responder} ({turn.strategy.value})")

            request = self._build_request(turn.responder, user_text, roster, personas)
            try:
                reply_text = await self._responder.respond(request)
            except Exception as exc:
                if not self._is_current(generation):
                    return outcome
                logger.exception("Agent response failed for %s", turn.responder)
                self._emit(
                    Notification(
                        title="AI Error",
                        description="An error occurred while processing your request.",
                    )
                )
                self._append(SYSTEM_ROLE, self._settings.apology_message)
                outcome.error = str(exc) or exc.__class__.__name__
                return outcome

            if not self._is_current(generation):
                logger.info(f"Discarding stale reply from {turn.responder}")
                return outcome

            outcome.reply = self._append(turn.responder, reply_text, display_name=request.display_name)
            if self.tts_enabled:
                self._schedule_speech(reply_text, turn.responder)
            if turn.consumes_rotation:
                self.current_agent_index = turn.next_agent_index

        self.current_turn += 1
        self._changed()

        if scenario.max_turns and self.current_turn >= scenario.max_turns:
            self._append(SYSTEM_ROLE, self._settings.closing_message)
            outcome.ended = await self.end_meeting()

        return outcome

    # ------------------------------------------------------------------ #
    # Voice I/O
    # ------------------------------------------------------------------ #

    def start_recording(self) -> bool:
        """Start speech capture, cancelling any agent speech first."""
        if not self._alive or self.lifecycle != MeetingLifecycle.ACTIVE or self._ending:
            return False
        if not self._capture.is_supported:
            self._emit(
                Notification(
                    title="Unsupported Feature",
                    description="Speech-to-text is not available in this environment.",
                )
            )
            return False
        if self.is_recording:
            return False

        if self._synthesis.is_speaking:
            self._synthesis.cancel()
        return self._capture.start(base_text=self.user_input)

    def stop_recording(self) -> None:
        self._capture.stop()

    def toggle_recording(self) -> bool:
        if self.is_recording:
            self.stop_recording()
            return False
        return self.start_recording()

    async def set_tts_enabled(self, enabled: bool) -> bool:
        """Turn agent speech on or off. Returns the resulting setting."""
        if not self._alive:
            return False
        if enabled and not self._synthesis.is_supported:
            self._emit(
                Notification(
                    title="Text-to-Speech Not Supported",
                    description="Speech synthesis is not available in this environment.",
                )
            )
            self.tts_enabled = False
            return False
        if enabled and (self.lifecycle == MeetingLifecycle.ENDED or self._ending):
            return False

        self.tts_enabled = enabled
        if not enabled:
            self._synthesis.cancel()
        elif self.lifecycle == MeetingLifecycle.ACTIVE and not any(m.is_user for m in self.messages):
            self._speak_initial_message()

        self._changed()
        return self.tts_enabled

    async def toggle_tts(self) -> bool:
        return await self.set_tts_enabled(not self.tts_enabled)

    async def wait_for_speech(self) -> None:
        """Wait until all scheduled speech jobs have settled."""
        while self._speech_tasks:
            await asyncio.gather(*list(self._speech_tasks), return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    def snapshot(self) -> SessionState:
        return SessionState(
            lifecycle=self.lifecycle,
            messages=list(self.messages),
            current_turn=self.current_turn,
            current_agent_index=self.current_agent_index,
            is_recording=self.is_recording,
            is_speaking=self.is_speaking,
            tts_enabled=self.tts_enabled,
            is_ai_thinking=self.is_ai_thinking,
            user_input=self.user_input,
            scenario_id=self.scenario.id if self.scenario else None,
        )

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _is_current(self, generation: int) -> bool:
        return (
            self._alive
            and generation == self._generation
            and self.lifecycle == MeetingLifecycle.ACTIVE
            and not self._ending
        )

    def _append(self, participant: str, text: str, display_name: Optional[str] = None) -> Message:
        if display_name is None and participant not in (USER_ROLE, SYSTEM_ROLE):
            display_name = self._display_name(participant, self._known_personas())
        message = Message(
            id=str(uuid.uuid4()),
            participant=participant,
            text=text,
            timestamp_ms=self._clock(),
            display_name=display_name,
        )
        self.messages.append(message)
        self._changed()
        return message

    def _known_personas(self) -> List[Persona]:
        if self._personas is None:
            return []
        return self._personas.all()

    def _display_name(self, role: str, personas: Sequence[Persona]) -> Optional[str]:
        for persona in personas:
            if persona.role.lower() == role.lower():
                return persona.name
        return None

    def _persona_instruction(self, role: str) -> str:
        config = self.scenario.persona_config if self.scenario else {}
        if config.get(role):
            return config[role]
        for key in (role.lower(), f"{role.lower()}persona"):
            for config_key, prompt in config.items():
                if config_key.lower() == key and prompt:
                    return prompt
        return self._settings.generic_persona_template.format(role=role)

    def _build_request(
        self,
        role: str,
        user_text: str,
        roster: Sequence[str],
        personas: Sequence[Persona],
    ) -> AgentResponseRequest:
        others = [
            AgentDescriptor(
                role=other,
                persona=self._persona_instruction(other),
                name=self._display_name(other, personas),
            )
            for other in roster
            if other != role
        ]
        return AgentResponseRequest(
            user_text=user_text,
            role=role,
            persona=self._persona_instruction(role),
            objective=self.scenario.objective,
            history=[message for message in self.messages if message.id != START_PROMPT_ID],
            other_agents=others,
            learning_mode=self.learning_mode,
            display_name=self._display_name(role, personas),
        )

    def _speak_initial_message(self) -> None:
        if self.scenario is None or self._initial_spoken_for == self.scenario.id:
            return
        self._initial_spoken_for = self.scenario.id
        initial = self.scenario.initial_message
        self._schedule_speech(initial.text, initial.participant)

    def _schedule_speech(self, text: str, role: str) -> None:
        task = asyncio.ensure_future(self._speak_exclusively(text, role))
        self._speech_tasks.add(task)
        task.add_done_callback(self._speech_tasks.discard)

    async def _speak_exclusively(self, text: str, role: str) -> bool:
        """Stop capture, wait for it to settle, then speak."""
        if self._capture.state != CaptureState.IDLE:
            logger.debug(f"Stopping capture before {role} speaks")
            self._capture.stop()
            await self._capture.wait_idle(self._settings.cancel_grace_seconds)
            if self._capture.state != CaptureState.IDLE:
                # Recording restarted while capture was stopping.
                return False

        if not self._alive or not self.tts_enabled or self._ending:
            return False
        return await self._synthesis.speak(text, role)

    def _emit(self, notification: Notification) -> None:
        if self._notify and self._alive:
            self._notify(notification)

    def _changed(self) -> None:
        if self._on_change and self._alive:
            self._on_change(self.snapshot())

    # Callbacks from the speech controllers

    def _handle_listening_change(self, listening: bool) -> None:
        if not self._alive:
            return
        self.is_recording = listening
        self._changed()

    def _handle_captured_text(self, text: str) -> None:
        if not self._alive:
            return
        self.user_input = text
        self._changed()

    def _handle_capture_error(self, error: CaptureError) -> None:
        if not self._alive:
            return
        self._emit(
            Notification(title="Speech Recognition Error", description=error.message)
        )

    def _handle_speaking_change(self, speaking: bool) -> None:
        if not self._alive:
            return
        self.is_speaking = speaking
        self._changed()

    def _handle_synthesis_error(self, notification: Notification) -> None:
        if not self._alive:
            return
        self._emit(notification)
