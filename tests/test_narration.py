from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.clock import create_initial_time
from xiuxian.game import (
    BuyItem,
    ChangeActivity,
    CollectRewards,
    PlayerAttack,
    StartCombat,
    create_initial_state,
    reduce,
)
from xiuxian.models.combat import CombatLogEntry, CombatLogKind
from xiuxian.models.state import GameLog, LogType
from xiuxian.narration import render_combat_log, render_log


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value

    def randint(self, low: int, high: int) -> int:
        return low

    def choice(self, options):
        return options[0]


def _log(key: str, **params) -> GameLog:
    return GameLog(timestamp=create_initial_time(), type=LogType.SYSTEM, key=key, params=params)


def test_realm_labels_use_layers_or_stage_names() -> None:
    assert render_log(_log("breakthrough.stage", realm="qi_refining", stage=2)) == (
        "Breakthrough! You have reached Qi Refining Layer 2."
    )
    assert render_log(_log("breakthrough.realm", realm="foundation", stage=1)).endswith(
        "Foundation Early."
    )


def test_market_logs_and_timestamps() -> None:
    entry = _log("market.bought", item="Spirit Grass", quantity=2, cost=16)

    assert render_log(entry) == "Bought 2 x Spirit Grass for 16 spirit stones."
    assert render_log(entry, with_time=True).startswith("[Year 1, Month 1, Day 1] ")


def test_skill_tree_logs() -> None:
    learned = _log("skills.learned", node="Iron Skin", cost=1, remaining=2)
    reset = _log("skills.reset", tree="Body Path", count=1, refunded=0)

    assert render_log(learned) == "You comprehend Iron Skin for 1 wudao points (2 left)."
    assert render_log(reset) == "You let go of 1 insights of the Body Path and recover 0 wudao points."


def test_unknown_keys_and_missing_params_fall_back_to_the_key() -> None:
    assert render_log(_log("mystery.event")) == "mystery.event"
    assert render_log(_log("market.sold", item="Spirit Grass")) == "market.sold"


def test_combat_templates() -> None:
    critical = CombatLogEntry(
        kind=CombatLogKind.CRITICAL,
        key="combat.damaged",
        params={"target": "Wild Spirit Boar", "amount": 18, "critical": True},
    )
    burn = CombatLogEntry(
        kind=CombatLogKind.DAMAGE,
        key="combat.buff_tick",
        params={"target": "Wild Spirit Boar", "buff": "Burn", "amount": -2},
    )

    assert render_combat_log(critical) == "Critical hit! Wild Spirit Boar takes 18 damage."
    assert render_combat_log(burn) == "Burn deals 2 damage to Wild Spirit Boar."


def test_every_emitted_log_has_a_template() -> None:
    rng = FixedRandom(0.05)
    state = create_initial_state("Lin Feng")
    state = reduce(state, ChangeActivity("market_station"))
    state = reduce(state, BuyItem("spirit_grass", 1))
    state = reduce(state, StartCombat("wild_boar"), rng=rng)
    enemy = state.combat.enemy_unit
    state = replace(
        state,
        combat=replace(state.combat, enemy_unit=replace(enemy, stats=replace(enemy.stats, hp=1))),
    )
    state = reduce(state, PlayerAttack("basic_attack"), rng=rng)
    combat_logs = state.combat.combat_log
    state = reduce(state, CollectRewards(), rng=rng)

    for entry in state.logs:
        assert render_log(entry) != entry.key
    for entry in combat_logs:
        assert render_combat_log(entry) != entry.key
