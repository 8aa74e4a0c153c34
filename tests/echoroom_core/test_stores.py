"""Unit tests for scenario and persona stores."""

import json

import pytest

from echoroom_core.stores import (
    BUILTIN_SCENARIOS,
    FilePersonaStore,
    FileScenarioStore,
    InMemoryPersonaStore,
    InMemoryScenarioStore,
    ScenarioNotFoundError,
    get_builtin_scenario,
)
from echoroom_core.types import Persona


def test_builtin_scenarios_have_personas_for_every_agent():
    assert {s.id for s in BUILTIN_SCENARIOS} == {"product-pitch", "okr-review", "manager-1on1"}
    for scenario in BUILTIN_SCENARIOS:
        assert scenario.agents_involved
        for role in scenario.agents_involved:
            assert scenario.persona_config.get(role)


def test_get_builtin_scenario():
    scenario = get_builtin_scenario("product-pitch")

    assert scenario.agents_involved == ["CTO", "Product", "Finance"]
    assert scenario.max_turns == 10
    assert get_builtin_scenario("nope") is None


def test_in_memory_scenario_store_defaults_to_builtins():
    store = InMemoryScenarioStore()

    assert store.get("okr-review").title
    assert store.get("missing") is None
    with pytest.raises(ScenarioNotFoundError):
        store.require("missing")


def test_in_memory_persona_store_keeps_order():
    personas = [
        Persona(id="b", name="Blair", role="HR", instruction_prompt="Be kind."),
        Persona(id="a", name="Alex", role="Finance", instruction_prompt="Numbers first."),
    ]
    store = InMemoryPersonaStore(personas)

    assert [p.id for p in store.all()] == ["b", "a"]
    assert store.get("a").name == "Alex"


def test_file_scenario_store_overlays_user_scenarios(tmp_path):
    path = tmp_path / "user_scenarios.json"
    path.write_text(
        json.dumps(
            {
                "budget-review": {
                    "id": "budget-review",
                    "title": "Budget Review",
                    "objective": "Defend the Q4 budget.",
                    "initial_message": {"participant": "Finance", "text": "Let's look at the numbers."},
                    "agents_involved": ["Finance"],
                    "max_turns": 4,
                },
                "broken": {"id": "broken"},
            }
        ),
        encoding="utf-8",
    )
    store = FileScenarioStore(path)

    scenario = store.get("budget-review")
    assert scenario.initial_message.participant == "Finance"
    assert scenario.max_turns == 4
    assert store.get("broken") is None
    assert store.get("product-pitch") is not None


def test_file_scenario_store_ignores_unreadable_file(tmp_path):
    path = tmp_path / "user_scenarios.json"
    path.write_text("{not json", encoding="utf-8")

    store = FileScenarioStore(path)

    assert store.get("manager-1on1") is not None


def test_file_persona_store_skips_malformed_records_and_reloads(tmp_path):
    path = tmp_path / "user_personas.json"
    path.write_text(
        json.dumps(
            [
                {"id": "p1", "name": "Alex Morgan", "role": "Finance", "instruction_prompt": "Numbers first."},
                {"id": "p2", "name": "Missing role"},
            ]
        ),
        encoding="utf-8",
    )
    store = FilePersonaStore(path)

    assert [p.name for p in store.all()] == ["Alex Morgan"]

    path.write_text("[]", encoding="utf-8")
    assert store.get("p1") is not None
    store.reload()
    assert store.get("p1") is None


def test_file_persona_store_missing_file_is_empty(tmp_path):
    assert FilePersonaStore(tmp_path / "absent.json").all() == []
