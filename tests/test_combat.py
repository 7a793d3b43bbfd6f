from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.catalog import get_catalog
from xiuxian.combat import (
    apply_buff,
    calculate_damage,
    can_act,
    choose_enemy_action,
    create_enemy_unit,
    enemy_action,
    get_element_modifier,
    get_random_enemy,
    player_attack,
    player_defend,
    player_flee,
    player_observe,
    player_use_item,
    process_buff_ticks,
    start_combat,
    usable_skills,
)
from xiuxian.cultivation import create_initial_character
from xiuxian.models.combat import AIAction, CombatPhase, CombatSide, Element
from xiuxian.models.progression import Realm


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value

    def randint(self, low: int, high: int) -> int:
        return low

    def choice(self, options):
        return options[0]


STEADY = FixedRandom(0.5)


@pytest.fixture
def combat():
    state = start_combat(create_initial_character("Lin Feng"), "wild_boar", rng=STEADY)
    assert state is not None
    return state


def _with_enemy_hp(combat, hp: int):
    enemy = combat.enemy_unit
    return replace(combat, enemy_unit=replace(enemy, stats=replace(enemy.stats, hp=hp)))


def _with_player_hp(combat, hp: int):
    player = combat.player_unit
    return replace(combat, player_unit=replace(player, stats=replace(player.stats, hp=hp)))


def test_start_combat_builds_both_units(combat) -> None:
    assert combat.in_combat
    assert combat.round == 1
    assert combat.phase is CombatPhase.PLAYER_TURN
    assert combat.turn_order == (CombatSide.PLAYER, CombatSide.ENEMY)
    assert combat.player_unit.stats.max_hp == 100
    assert combat.enemy_unit.stats.max_hp == 70
    assert combat.combat_log[0].key == "combat.started"
    assert can_act(combat)


def test_unknown_enemy_cannot_be_fought() -> None:
    assert start_combat(create_initial_character("Lin Feng"), "sky_dragon", rng=STEADY) is None


def test_basic_attack_damages_and_passes_the_turn(combat) -> None:
    after = player_attack(combat, "basic_attack", rng=STEADY)

    assert after.enemy_unit.stats.hp == 58
    assert after.phase is CombatPhase.ENEMY_TURN
    assert after.current_turn_index == 1
    assert any(entry.key == "combat.damaged" for entry in after.combat_log)


def test_enemy_turn_hands_control_back_and_advances_the_round(combat) -> None:
    after_player = player_attack(combat, "basic_attack", rng=STEADY)

    after_enemy = enemy_action(after_player, rng=STEADY)

    assert after_enemy.player_unit.stats.hp == 95
    assert after_enemy.phase is CombatPhase.PLAYER_TURN
    assert after_enemy.round == 2


def test_actions_out_of_turn_are_ignored(combat) -> None:
    assert enemy_action(combat, rng=STEADY) is combat

    enemy_turn = player_defend(combat, rng=STEADY)

    assert player_attack(enemy_turn, "basic_attack", rng=STEADY) is enemy_turn
    assert player_observe(enemy_turn, rng=STEADY) is enemy_turn
    assert player_flee(enemy_turn, rng=STEADY) is enemy_turn


def test_unknown_or_unaffordable_skills_are_rejected(combat) -> None:
    drained = replace(
        combat,
        player_unit=replace(
            combat.player_unit, stats=replace(combat.player_unit.stats, mp=0)
        ),
    )

    assert player_attack(combat, "beast_bite", rng=STEADY) is combat
    assert player_attack(drained, "fire_bolt", rng=STEADY) is drained
    assert [skill.id for skill in usable_skills(drained.player_unit)] == ["basic_attack"]


def test_killing_blow_ends_combat_in_victory(combat) -> None:
    weakened = _with_enemy_hp(combat, 5)

    after = player_attack(weakened, "basic_attack", rng=STEADY)

    assert after.phase is CombatPhase.VICTORY
    assert after.enemy_unit.stats.hp == 0
    assert after.rewards is not None
    assert after.rewards.cultivation_exp == 14
    assert after.rewards.spirit_stones == 5
    assert after.rewards.items == ()
    assert after.combat_log[-1].key == "combat.victory"


def test_player_hp_never_drops_below_zero(combat) -> None:
    fragile = _with_player_hp(player_defend(combat, rng=STEADY), 1)

    after = enemy_action(fragile, rng=STEADY)

    assert after.player_unit.stats.hp == 0
    assert after.phase is CombatPhase.DEFEAT


def test_defending_halves_damage_until_the_next_turn(combat) -> None:
    defended = player_defend(combat, rng=STEADY)
    assert defended.player_unit.is_defending

    after = enemy_action(defended, rng=STEADY)

    assert after.player_unit.stats.hp == 98
    assert not after.player_unit.is_defending


def test_observe_stacks_insight_up_to_the_cap(combat) -> None:
    once = player_observe(combat, rng=STEADY)
    capped = player_observe(replace(combat, player_unit=replace(combat.player_unit, insight_stacks=5)), rng=STEADY)

    assert once.player_unit.insight_stacks == 1
    assert capped.player_unit.insight_stacks == 5


def test_insight_is_consumed_by_the_next_attack(combat) -> None:
    insightful = replace(combat, player_unit=replace(combat.player_unit, insight_stacks=2))

    after = player_attack(insightful, "basic_attack", rng=STEADY)

    assert after.player_unit.insight_stacks == 0
    assert after.enemy_unit.stats.hp < 58


def test_flee_success_and_failure(combat) -> None:
    escaped = player_flee(combat, rng=FixedRandom(0.0))
    caught = player_flee(combat, rng=FixedRandom(0.9))

    assert escaped.phase is CombatPhase.FLED
    assert caught.phase is CombatPhase.ENEMY_TURN
    assert caught.combat_log[-1].key == "combat.flee_failed"


def test_healing_pill_restores_a_share_of_max_hp(combat) -> None:
    hurt = _with_player_hp(combat, 50)

    after = player_use_item(hurt, "healing_pill", rng=STEADY)

    assert after.player_unit.stats.hp == 80
    assert after.phase is CombatPhase.ENEMY_TURN


def test_non_combat_items_cannot_be_used(combat) -> None:
    assert player_use_item(combat, "spirit_grass", rng=STEADY) is combat


def test_shield_absorbs_damage_first(combat) -> None:
    shielded = replace(combat.enemy_unit, shield=5)
    skill = get_catalog().skills["basic_attack"]

    roll = calculate_damage(combat.player_unit, shielded, skill, rng=STEADY)

    assert roll.shield_absorbed == 5
    assert roll.damage == 7


def test_reapplying_buffs_refreshes_and_stacks(combat) -> None:
    unit = combat.enemy_unit
    for _ in range(5):
        unit, applied = apply_buff(unit, "burn")
        assert applied

    burn = unit.buff("burn")
    assert burn.stacks == 3
    assert burn.remaining_duration == 3

    shielded, _ = apply_buff(combat.player_unit, "spirit_shield")
    assert shielded.shield == 12


def test_buff_ticks_scale_with_stacks_and_expire(combat) -> None:
    unit, _ = apply_buff(combat.enemy_unit, "burn", stacks=2)

    ticked, logs = process_buff_ticks(unit, "turn_start")
    assert ticked.stats.hp == 68
    assert logs[0].params["amount"] == -2

    expiring = replace(ticked, buffs=(replace(ticked.buffs[0], remaining_duration=1),))
    ended, end_logs = process_buff_ticks(expiring, "turn_end")
    assert ended.buffs == ()
    assert end_logs[-1].key == "combat.buff_expired"


def test_damage_over_time_at_turn_start_can_win(combat) -> None:
    enemy, _ = apply_buff(combat.enemy_unit, "burn")
    enemy = replace(enemy, stats=replace(enemy.stats, hp=1))
    doomed = replace(combat, enemy_unit=enemy)

    after = player_defend(doomed, rng=STEADY)

    assert after.phase is CombatPhase.VICTORY


def test_element_modifiers() -> None:
    assert get_element_modifier(Element.FIRE, Element.METAL) == pytest.approx(0.25)
    assert get_element_modifier(Element.FIRE, Element.WATER) == pytest.approx(-0.2)
    assert get_element_modifier(Element.FIRE, Element.FIRE) == 0.0
    assert get_element_modifier(None, Element.FIRE) == 0.0


def test_enemy_ai_follows_rule_priority() -> None:
    catalog = get_catalog()
    template = catalog.enemies["forest_wolf"]
    wolf = create_enemy_unit(template)
    player = start_combat(create_initial_character("Lin Feng"), "forest_wolf", rng=STEADY).player_unit

    eager = choose_enemy_action(wolf, player, template.ai_rules, rng=FixedRandom(0.1))
    calm = choose_enemy_action(wolf, player, template.ai_rules, rng=FixedRandom(0.9))
    cooling = choose_enemy_action(
        replace(wolf, cooldowns={"claw_swipe": 1}), player, template.ai_rules, rng=FixedRandom(0.1)
    )

    assert eager.action is AIAction.USE_SKILL
    assert eager.skill_id == "claw_swipe"
    assert calm.skill_id == "beast_bite"
    assert cooling.skill_id == "beast_bite"


def test_random_enemy_comes_from_the_spawn_table() -> None:
    template = get_random_enemy(Realm.QI_REFINING, rng=FixedRandom(0.5))

    assert template is not None
    assert template.id == "wild_boar"


def _sturdy(combat):
    enemy = combat.enemy_unit
    return replace(combat, enemy_unit=replace(enemy, stats=replace(enemy.stats, hp=500, max_hp=500)))


def _with_fire_qi(combat, amount: int):
    player = combat.player_unit
    return replace(
        combat, player_unit=replace(player, qi_gauge=replace(player.qi_gauge, fire=amount))
    )


def test_ultimate_cost_defaults_to_the_qi_threshold() -> None:
    catalog = get_catalog()

    assert catalog.skills["inferno"].cost_qi == catalog.combat.qi_threshold_ultimate == 3
    assert catalog.skills["fire_bolt"].cost_qi == 0


def test_ultimate_needs_enough_qi(combat) -> None:
    short = _with_fire_qi(_sturdy(combat), 2)
    ready = _with_fire_qi(_sturdy(combat), 3)

    assert player_attack(short, "inferno", rng=STEADY) is short
    assert "inferno" not in [skill.id for skill in usable_skills(short.player_unit)]
    assert "inferno" in [skill.id for skill in usable_skills(ready.player_unit)]

    after = player_attack(ready, "inferno", rng=STEADY)

    assert after.phase is CombatPhase.ENEMY_TURN
    assert after.enemy_unit.stats.hp < 500
    # One qi is gained for the cast before three are spent.
    assert after.player_unit.qi_gauge.fire == 1


def test_player_cooldowns_tick_down_at_the_start_of_their_turn(combat) -> None:
    used = player_attack(_with_fire_qi(_sturdy(combat), 3), "inferno", rng=STEADY)

    assert used.player_unit.cooldown_of("inferno") == 4

    back = enemy_action(used, rng=STEADY)

    assert back.phase is CombatPhase.PLAYER_TURN
    assert back.player_unit.cooldown_of("inferno") == 3

    nearly = replace(used, player_unit=replace(used.player_unit, cooldowns={"fire_bolt": 1}))
    ready = enemy_action(nearly, rng=STEADY)

    assert ready.player_unit.cooldown_of("fire_bolt") == 0
    assert "fire_bolt" not in ready.player_unit.cooldowns
