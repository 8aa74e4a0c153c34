"""Turn Scheduler - decides which agent answers a user utterance.

A user can address an agent directly ("What do you think, Alex?" or
"Finance, what's your take?"); that agent answers out of rotation order.
Everything else falls back to round-robin over the roster so each agent gets
a fair share of turns.
"""

from enum import Enum
from typing import List, Optional, Sequence
from dataclasses import dataclass
import logging

from echoroom_core.types import Persona

logger = logging.getLogger(__name__)

# Shorter words ("of", "VP") are too ambiguous to count as a reference.
_MIN_WORD_LENGTH = 3


class TurnStrategy(str, Enum):
    """How the responder for a turn was chosen."""

    EXPLICIT_REFERENCE = "explicit_reference"  # User named the role or persona
    ROUND_ROBIN = "round_robin"  # Nobody addressed, rotate through the roster


@dataclass
class Turn:
    """Responder assignment for one user turn."""

    responder: str
    strategy: TurnStrategy
    next_agent_index: int

    @property
    def consumes_rotation(self) -> bool:
        return self.strategy == TurnStrategy.ROUND_ROBIN


def _normalize(text: str) -> str:
    return " ".join(text.lower().split())


def mentions(user_text: str, name: str) -> bool:
    """Return True if ``user_text`` refers to ``name``.

    Matches either the whole normalized name or any of its words longer
    than two characters, as a case-insensitive substring.
    """
    normalized_text = _normalize(user_text)
    normalized_name = _normalize(name)
    if not normalized_text or not normalized_name:
        return False

    if normalized_name in normalized_text:
        return True

    return any(
        word in normalized_text
        for word in normalized_name.split(" ")
        if len(word) >= _MIN_WORD_LENGTH
    )


def select_responder(
    user_text: str,
    active_roles: Sequence[str],
    personas: Optional[Sequence[Persona]] = None,
) -> Optional[str]:
    """Return the explicitly addressed role, or None if nobody was addressed.

    Roles are checked before persona names; within each pass roster order
    wins ties. Personas whose role is not on the roster are ignored.
    """
    for role in active_roles:
        if mentions(user_text, role):
            logger.debug(f"Role {role!r} referenced directly")
            return role

    roster = {role.lower(): role for role in active_roles}
    for persona in personas or []:
        role = roster.get(persona.role.lower())
        if role is None:
            continue
        if mentions(user_text, persona.name):
            logger.debug(f"Persona {persona.name!r} referenced, routing to {role!r}")
            return role

    return None


def next_turn(
    user_text: str,
    active_roles: List[str],
    current_agent_index: int,
    personas: Optional[Sequence[Persona]] = None,
) -> Optional[Turn]:
    """Pick the responder for a user utterance.

    Args:
        user_text: Trimmed user utterance
        active_roles: Roster in scenario order
        current_agent_index: Round-robin position before this turn
        personas: Known personas, used for by-name references

    Returns:
        The Turn to play, or None when the roster is empty
    """
    if not active_roles:
        return None

    index = current_agent_index % len(active_roles)
    addressed = select_responder(user_text, active_roles, personas)
    if addressed is not None:
        return Turn(
            responder=addressed,
            strategy=TurnStrategy.EXPLICIT_REFERENCE,
            next_agent_index=index,
        )

    return Turn(
        responder=active_roles[index],
        strategy=TurnStrategy.ROUND_ROBIN,
        next_agent_index=(index + 1) % len(active_roles),
    )
