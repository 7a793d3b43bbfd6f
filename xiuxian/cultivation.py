"""Cultivation progress, breakthroughs and activity changes."""

from __future__ import annotations

import math
import random
from dataclasses import replace
from enum import Enum
from typing import NamedTuple, Optional

from .catalog import Catalog, get_catalog
from .models.character import Character, CharacterStats, SkillPoints
from .models.items import inventory_from_pairs
from .models.progression import ActivityType, BreakthroughState, Realm
from .models.state import GameLog, LogType
from .models.time import GameTime

BASE_CULTIVATION_PER_KE = 1
MAX_BREAKTHROUGH_CHANCE = 0.95
BREAKTHROUGH_FAILURE_LOSS = 0.3
REALM_REQUIREMENT_GROWTH = 1.2

STARTING_COMPREHENSION = 10
STARTING_LUCK = 10
STARTING_SPIRIT_STONES = 100
STARTING_INVENTORY: tuple[tuple[str, int], ...] = (
    ("spirit_grass", 5),
    ("qi_gathering_pill", 3),
    ("healing_pill", 2),
)


class BreakthroughOutcome(str, Enum):
    STAGE_ADVANCED = "stage_advanced"
    REALM_ADVANCED = "realm_advanced"
    FAILED = "failed"
    PEAK = "peak"

    @property
    def success(self) -> bool:
        return self in (BreakthroughOutcome.STAGE_ADVANCED, BreakthroughOutcome.REALM_ADVANCED)


class BreakthroughResult(NamedTuple):
    character: Character
    outcome: BreakthroughOutcome
    log: GameLog

    @property
    def success(self) -> bool:
        return self.outcome.success


class CultivationResult(NamedTuple):
    character: Character
    log: Optional[GameLog]


def calculate_cultivation_gain(character: Character, catalog: Catalog | None = None) -> int:
    catalog = catalog or get_catalog()
    activity = catalog.activity(character.current_activity)
    comprehension_bonus = 1 + character.stats.comprehension / 100
    return math.floor(BASE_CULTIVATION_PER_KE * activity.cultivation_multiplier * comprehension_bonus)


def process_cultivation(character: Character, time: GameTime) -> CultivationResult:
    """Accrue one ke of cultivation.

    Reaching the cap emits the readiness log once; further ticks at the cap
    leave the character unchanged.
    """

    value = character.cultivation_value + calculate_cultivation_gain(character)
    if value < character.cultivation_max:
        return CultivationResult(replace(character, cultivation_value=value), None)

    if character.breakthrough is BreakthroughState.READY_NOTIFIED:
        if character.cultivation_value == character.cultivation_max:
            return CultivationResult(character, None)
        return CultivationResult(
            replace(character, cultivation_value=character.cultivation_max), None
        )

    log = GameLog(
        timestamp=time,
        type=LogType.CULTIVATION,
        key="cultivation.ready",
        params={"realm": character.realm.value, "stage": character.realm_stage},
    )
    return CultivationResult(
        replace(
            character,
            cultivation_value=character.cultivation_max,
            breakthrough=BreakthroughState.READY_NOTIFIED,
        ),
        log,
    )


def add_cultivation(character: Character, amount: int) -> Character:
    """Add ``amount`` cultivation, clamped to the current ceiling."""

    if amount <= 0:
        return character
    value = min(character.cultivation_max, character.cultivation_value + amount)
    breakthrough = character.breakthrough
    if value >= character.cultivation_max and breakthrough is BreakthroughState.ACCRUING:
        breakthrough = BreakthroughState.READY_UNNOTIFIED
    return replace(character, cultivation_value=value, breakthrough=breakthrough)


def calculate_breakthrough_chance(character: Character) -> float:
    base_chance = 0.3 + character.stats.luck / 200
    progress = character.cultivation_value / character.cultivation_max if character.cultivation_max else 0.0
    return min(MAX_BREAKTHROUGH_CHANCE, base_chance + progress * 0.3)


def calculate_cultivation_max(realm: Realm, stage: int, catalog: Catalog | None = None) -> int:
    catalog = catalog or get_catalog()
    info = catalog.realm(realm)
    stage_multiplier = 1 + (stage - 1) * 0.5
    return math.floor(
        info.cultivation_required * stage_multiplier * REALM_REQUIREMENT_GROWTH ** realm.index
    )


def calculate_stats_for_realm(
    realm: Realm,
    stage: int,
    comprehension: int,
    luck: int,
    catalog: Catalog | None = None,
) -> CharacterStats:
    """Derive the full stat line for ``realm``/``stage`` with hp and power at max."""

    catalog = catalog or get_catalog()
    multiplier = catalog.realm(realm).stats_multiplier * (1 + (stage - 1) * 0.2)
    max_hp = math.floor(100 * multiplier)
    max_power = math.floor(50 * multiplier)
    return CharacterStats(
        hp=max_hp,
        max_hp=max_hp,
        spiritual_power=max_power,
        max_spiritual_power=max_power,
        divine_sense=math.floor(10 * multiplier),
        comprehension=comprehension,
        luck=luck,
        speed=math.floor(10 * multiplier),
        attack=math.floor(15 * multiplier),
        defense=math.floor(10 * multiplier),
    )


def _advance(character: Character, realm: Realm, stage: int) -> Character:
    return replace(
        character,
        realm=realm,
        realm_stage=stage,
        cultivation_value=0,
        cultivation_max=calculate_cultivation_max(realm, stage),
        breakthrough=BreakthroughState.ACCRUING,
        stats=calculate_stats_for_realm(
            realm, stage, character.stats.comprehension, character.stats.luck
        ),
    )


def attempt_breakthrough(
    character: Character, time: GameTime, *, rng: random.Random | None = None
) -> BreakthroughResult:
    rng = rng or random
    info = get_catalog().realm(character.realm)
    next_realm = character.realm.next()

    if character.realm_stage >= info.stages and next_realm is None:
        log = GameLog(
            timestamp=time,
            type=LogType.BREAKTHROUGH,
            key="breakthrough.peak",
            params={"realm": character.realm.value, "stage": character.realm_stage},
        )
        return BreakthroughResult(character, BreakthroughOutcome.PEAK, log)

    if rng.random() < calculate_breakthrough_chance(character):
        if character.realm_stage < info.stages:
            updated = _advance(character, character.realm, character.realm_stage + 1)
            outcome = BreakthroughOutcome.STAGE_ADVANCED
            key = "breakthrough.stage"
        else:
            updated = _advance(character, next_realm, 1)
            outcome = BreakthroughOutcome.REALM_ADVANCED
            key = "breakthrough.realm"
        log = GameLog(
            timestamp=time,
            type=LogType.BREAKTHROUGH,
            key=key,
            params={"realm": updated.realm.value, "stage": updated.realm_stage},
        )
        return BreakthroughResult(updated, outcome, log)

    loss = math.floor(character.cultivation_value * BREAKTHROUGH_FAILURE_LOSS)
    updated = replace(
        character,
        cultivation_value=character.cultivation_value - loss,
        breakthrough=BreakthroughState.ACCRUING,
    )
    log = GameLog(
        timestamp=time,
        type=LogType.BREAKTHROUGH,
        key="breakthrough.failed",
        params={"loss": loss},
    )
    return BreakthroughResult(updated, BreakthroughOutcome.FAILED, log)


def breakthrough_skill_points(realm: Realm) -> int:
    return max(2, realm.index + 1)


def change_activity(
    character: Character, activity: ActivityType, time: GameTime
) -> CultivationResult:
    updated = replace(character, current_activity=activity)
    log = GameLog(
        timestamp=time,
        type=LogType.ACTIVITY,
        key="activity.changed",
        params={"activity": activity.value},
    )
    return CultivationResult(updated, log)


def create_initial_character(name: str) -> Character:
    realm = Realm.QI_REFINING
    return Character(
        name=name,
        realm=realm,
        realm_stage=1,
        cultivation_value=0,
        cultivation_max=calculate_cultivation_max(realm, 1),
        breakthrough=BreakthroughState.ACCRUING,
        stats=calculate_stats_for_realm(realm, 1, STARTING_COMPREHENSION, STARTING_LUCK),
        current_activity=ActivityType.CLOSED_DOOR,
        inventory=inventory_from_pairs(STARTING_INVENTORY),
        spirit_stones=STARTING_SPIRIT_STONES,
        reputation=0,
        skill_points=SkillPoints(),
    )


__all__ = [
    "BreakthroughOutcome",
    "BreakthroughResult",
    "CultivationResult",
    "add_cultivation",
    "attempt_breakthrough",
    "breakthrough_skill_points",
    "calculate_breakthrough_chance",
    "calculate_cultivation_gain",
    "calculate_cultivation_max",
    "calculate_stats_for_realm",
    "change_activity",
    "create_initial_character",
    "process_cultivation",
]
