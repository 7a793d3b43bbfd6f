from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.clock import create_initial_time
from xiuxian.cultivation import (
    BreakthroughOutcome,
    add_cultivation,
    attempt_breakthrough,
    breakthrough_skill_points,
    calculate_breakthrough_chance,
    calculate_cultivation_gain,
    calculate_cultivation_max,
    change_activity,
    create_initial_character,
    process_cultivation,
)
from xiuxian.models.progression import ActivityType, BreakthroughState, Realm
from xiuxian.models.state import LogType


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


@pytest.fixture
def character():
    return create_initial_character("Lin Feng")


def test_initial_character_starts_at_qi_refining(character) -> None:
    assert character.realm is Realm.QI_REFINING
    assert character.realm_stage == 1
    assert character.cultivation_max == 100
    assert character.spirit_stones == 100
    assert character.current_activity is ActivityType.CLOSED_DOOR
    assert character.inventory.quantity_of("qi_gathering_pill") == 3
    assert character.stats.hp == character.stats.max_hp == 100


def test_cultivation_gain_depends_on_activity(character) -> None:
    closed_door = calculate_cultivation_gain(character)
    idle = calculate_cultivation_gain(replace(character, current_activity=ActivityType.IDLE))
    wise = calculate_cultivation_gain(
        replace(
            character,
            current_activity=ActivityType.CLOSED_DOOR,
            stats=replace(character.stats, comprehension=100),
        )
    )

    assert closed_door == 1
    assert idle == 0
    assert wise == 3


def test_process_cultivation_accrues_below_the_cap(character) -> None:
    result = process_cultivation(character, create_initial_time())

    assert result.character.cultivation_value == 1
    assert result.log is None


def test_reaching_the_cap_notifies_once(character) -> None:
    near_cap = replace(character, cultivation_value=99)
    time = create_initial_time()

    first = process_cultivation(near_cap, time)
    second = process_cultivation(first.character, time)

    assert first.character.cultivation_value == 100
    assert first.character.breakthrough is BreakthroughState.READY_NOTIFIED
    assert first.log is not None
    assert first.log.key == "cultivation.ready"
    assert first.log.type is LogType.CULTIVATION
    assert second.character is first.character
    assert second.log is None


def test_unnotified_readiness_emits_the_log(character) -> None:
    ready = replace(
        character, cultivation_value=100, breakthrough=BreakthroughState.READY_UNNOTIFIED
    )

    result = process_cultivation(ready, create_initial_time())

    assert result.log is not None
    assert result.character.breakthrough is BreakthroughState.READY_NOTIFIED


def test_add_cultivation_clamps_and_marks_ready(character) -> None:
    updated = add_cultivation(character, 5000)

    assert updated.cultivation_value == updated.cultivation_max
    assert updated.breakthrough is BreakthroughState.READY_UNNOTIFIED
    assert add_cultivation(character, 0) is character


def test_breakthrough_chance_is_capped(character) -> None:
    lucky = replace(character, stats=replace(character.stats, luck=1000))

    assert calculate_breakthrough_chance(character) == pytest.approx(0.35)
    assert calculate_breakthrough_chance(lucky) == pytest.approx(0.95)


def test_successful_breakthrough_advances_the_stage(character) -> None:
    ready = replace(character, cultivation_value=100, breakthrough=BreakthroughState.READY_NOTIFIED)

    result = attempt_breakthrough(ready, create_initial_time(), rng=FixedRandom(0.0))

    assert result.success
    assert result.outcome is BreakthroughOutcome.STAGE_ADVANCED
    assert result.character.realm_stage == 2
    assert result.character.cultivation_value == 0
    assert result.character.cultivation_max == 150
    assert result.character.breakthrough is BreakthroughState.ACCRUING
    assert result.character.stats.max_hp == 120
    assert result.log.key == "breakthrough.stage"


def test_final_stage_breakthrough_enters_the_next_realm(character) -> None:
    peak_stage = replace(character, realm_stage=9, cultivation_value=10)

    result = attempt_breakthrough(peak_stage, create_initial_time(), rng=FixedRandom(0.0))

    assert result.outcome is BreakthroughOutcome.REALM_ADVANCED
    assert result.character.realm is Realm.FOUNDATION
    assert result.character.realm_stage == 1
    assert result.character.cultivation_max == calculate_cultivation_max(Realm.FOUNDATION, 1) == 1200
    assert result.log.key == "breakthrough.realm"


def test_failed_breakthrough_loses_thirty_percent(character) -> None:
    ready = replace(character, cultivation_value=100, breakthrough=BreakthroughState.READY_NOTIFIED)

    result = attempt_breakthrough(ready, create_initial_time(), rng=FixedRandom(0.99))

    assert not result.success
    assert result.outcome is BreakthroughOutcome.FAILED
    assert result.character.cultivation_value == 70
    assert result.character.breakthrough is BreakthroughState.ACCRUING
    assert result.log.params == {"loss": 30}


def test_terminal_realm_cannot_break_through(character) -> None:
    peak = replace(character, realm=Realm.TRIBULATION, realm_stage=9)

    result = attempt_breakthrough(peak, create_initial_time(), rng=FixedRandom(0.0))

    assert result.outcome is BreakthroughOutcome.PEAK
    assert result.character is peak
    assert result.log.key == "breakthrough.peak"


def test_breakthrough_skill_points_grow_with_realm() -> None:
    assert breakthrough_skill_points(Realm.QI_REFINING) == 2
    assert breakthrough_skill_points(Realm.FOUNDATION) == 2
    assert breakthrough_skill_points(Realm.CORE_FORMATION) == 3


def test_change_activity_logs_the_new_focus(character) -> None:
    result = change_activity(character, ActivityType.TRAVEL, create_initial_time())

    assert result.character.current_activity is ActivityType.TRAVEL
    assert result.log.params == {"activity": "travel"}
