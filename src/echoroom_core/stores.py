"""Read-only scenario and persona lookups.

The meeting core only needs ``get(id)`` style access. Creating and editing
scenarios or personas happens elsewhere; these stores just read what exists.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol

from pydantic import BaseModel, Field

from .types import InitialMessage, Persona, Scenario

logger = logging.getLogger(__name__)


class ScenarioNotFoundError(LookupError):
    """Raised when a caller requires a scenario that does not exist."""


class ScenarioStore(Protocol):
    def get(self, scenario_id: str) -> Optional[Scenario]: ...


class PersonaStore(Protocol):
    def get(self, persona_id: str) -> Optional[Persona]: ...

    def all(self) -> List[Persona]: ...


BUILTIN_SCENARIOS: List[Scenario] = [
    Scenario(
        id="product-pitch",
        title="New Product Pitch",
        description="Present your innovative product idea to the executive team and gain their buy-in.",
        objective=(
            "Convince the CTO, Head of Product, and Head of Finance to approve initial funding and "
            "resources for your new product idea. Address their concerns effectively."
        ),
        initial_message=InitialMessage(
            participant="System",
            text=(
                "Welcome to the Product Pitch meeting. You're here to present your new product idea. "
                "The CTO, Head of Product, and Head of Finance are present. Please begin your pitch."
            ),
        ),
        agents_involved=["CTO", "Product", "Finance"],
        persona_config={
            "CTO": (
                "You are the Chief Technology Officer. You are interested in the technical feasibility, "
                "scalability, integration with existing systems, and the engineering resources required. "
                "Ask tough questions about the tech stack and potential risks."
            ),
            "Finance": (
                "You are the Head of Finance. Your main concerns are the budget, ROI, market size, "
                "revenue projections, and overall financial viability. Question the assumptions behind "
                "the financial model."
            ),
            "Product": (
                "You are the Head of Product. You focus on market fit, user value, competitive landscape, "
                "product roadmap, and how this aligns with the company's strategic product vision. "
                "Inquire about user research and differentiation."
            ),
        },
        max_turns=10,
    ),
    Scenario(
        id="okr-review",
        title="Quarterly OKR Review",
        description="Discuss your team's progress on Key Results for the past quarter and plan for the next.",
        objective=(
            "Successfully justify your team's performance on OKRs, explain any deviations, and propose "
            "realistic and ambitious OKRs for the next quarter. Get alignment from the Head of Product and HR."
        ),
        initial_message=InitialMessage(
            participant="System",
            text=(
                "This is the Quarterly OKR Review. The Head of Product and Head of HR are here to discuss "
                "your team's progress. Please provide an update on your key results."
            ),
        ),
        agents_involved=["Product", "HR"],
        persona_config={
            "Product": (
                "You are the Head of Product. You want to see clear progress on strategic goals, understand "
                "any blockers, and ensure the next quarter's OKRs are impactful and well-defined."
            ),
            "HR": (
                "You are the Head of HR. You are interested in team capacity, morale, skill development "
                "related to OKRs, and any hiring needs or performance management aspects arising from the "
                "OKR review."
            ),
        },
        max_turns=8,
    ),
    Scenario(
        id="manager-1on1",
        title="1-on-1 with Direct Manager",
        description="Discuss your performance, challenges, and career growth with your direct manager.",
        objective=(
            "Have a constructive conversation about your recent performance, address any challenges you "
            "are facing, and discuss your career development goals with your manager."
        ),
        initial_message=InitialMessage(
            participant="Product",
            text=(
                "Hi there. Thanks for making time for our 1-on-1. To start, how have things been going for "
                "you lately? What's on your mind?"
            ),
        ),
        agents_involved=["Product"],
        persona_config={
            "Product": (
                "You are the user's Direct Manager. This is a 1-on-1 meeting. Listen actively to the user's "
                "updates, challenges, and aspirations. Respond empathetically and supportively, give brief "
                "constructive feedback and ask one or two targeted follow-up questions."
            ),
        },
        max_turns=10,
    ),
]


def get_builtin_scenario(scenario_id: str) -> Optional[Scenario]:
    for scenario in BUILTIN_SCENARIOS:
        if scenario.id == scenario_id:
            return scenario
    return None


class InMemoryScenarioStore:
    """Scenario lookup over a fixed list."""

    def __init__(self, scenarios: Optional[Iterable[Scenario]] = None) -> None:
        source = BUILTIN_SCENARIOS if scenarios is None else scenarios
        self._scenarios: Dict[str, Scenario] = {scenario.id: scenario for scenario in source}

    def get(self, scenario_id: str) -> Optional[Scenario]:
        return self._scenarios.get(scenario_id)

    def require(self, scenario_id: str) -> Scenario:
        scenario = self.get(scenario_id)
        if scenario is None:
            raise ScenarioNotFoundError(scenario_id)
        return scenario


class InMemoryPersonaStore:
    """Persona lookup over a fixed list, preserving insertion order."""

    def __init__(self, personas: Optional[Iterable[Persona]] = None) -> None:
        self._personas: Dict[str, Persona] = {persona.id: persona for persona in personas or []}

    def get(self, persona_id: str) -> Optional[Persona]:
        return self._personas.get(persona_id)

    def all(self) -> List[Persona]:
        return list(self._personas.values())


class ScenarioRecord(BaseModel):
    """On-disk shape of a user scenario override."""

    id: str
    title: str
    objective: str
    initial_message: Dict[str, str]
    agents_involved: List[str]
    persona_config: Dict[str, str] = Field(default_factory=dict)
    description: Optional[str] = None
    max_turns: Optional[int] = None

    def to_scenario(self) -> Scenario:
        return Scenario(
            id=self.id,
            title=self.title,
            objective=self.objective,
            initial_message=InitialMessage(
                participant=self.initial_message.get("participant", "System"),
                text=self.initial_message.get("text", ""),
            ),
            agents_involved=list(self.agents_involved),
            persona_config=dict(self.persona_config),
            description=self.description,
            max_turns=self.max_turns,
        )


class PersonaRecord(BaseModel):
    """On-disk shape of a persona."""

    id: str
    name: str
    role: str
    instruction_prompt: str
    avatar: Optional[str] = None

    def to_persona(self) -> Persona:
        return Persona(
            id=self.id,
            name=self.name,
            role=self.role,
            instruction_prompt=self.instruction_prompt,
            avatar=self.avatar,
        )


def _read_records(path: Path) -> List[Any]:
    if not path.exists():
        return []
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        logger.warning(f"Could not parse {path}, ignoring it")
        return []

    if isinstance(raw, dict):
        return list(raw.values())
    if isinstance(raw, list):
        return raw
    return []


class FileScenarioStore:
    """Built-in scenarios overlaid with user scenarios from a JSON file."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or Path("data/user_scenarios.json")
        self._scenarios: Optional[Dict[str, Scenario]] = None

    def _ensure_loaded(self) -> Dict[str, Scenario]:
        if self._scenarios is not None:
            return self._scenarios

        scenarios = {scenario.id: scenario for scenario in BUILTIN_SCENARIOS}
        for item in _read_records(self.path):
            if not isinstance(item, dict):
                continue
            try:
                record = ScenarioRecord(**item)
            except Exception:
                logger.debug(f"Skipping malformed scenario record in {self.path}")
                continue
            scenarios[record.id] = record.to_scenario()

        self._scenarios = scenarios
        return self._scenarios

    def get(self, scenario_id: str) -> Optional[Scenario]:
        return self._ensure_loaded().get(scenario_id)

    def reload(self) -> None:
        self._scenarios = None


class FilePersonaStore:
    """Personas read from a JSON file; malformed records are skipped."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or Path("data/user_personas.json")
        self._personas: Optional[Dict[str, Persona]] = None

    def _ensure_loaded(self) -> Dict[str, Persona]:
        if self._personas is not None:
            return self._personas

        personas: Dict[str, Persona] = {}
        for item in _read_records(self.path):
            if not isinstance(item, dict):
                continue
            try:
                record = PersonaRecord(**item)
            except Exception:
                logger.debug(f"Skipping malformed persona record in {self.path}")
                continue
            personas[record.id] = record.to_persona()

        self._personas = personas
        return self._personas

    def get(self, persona_id: str) -> Optional[Persona]:
        return self._ensure_loaded().get(persona_id)

    def all(self) -> List[Persona]:
        return list(self._ensure_loaded().values())

    def reload(self) -> None:
        self._personas = None
