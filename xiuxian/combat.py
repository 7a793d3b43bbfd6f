"""Turn-based combat between the player and a single demonic beast.

Every function takes frozen snapshots and returns new ones.  Player actions
outside ``player_turn`` and enemy actions outside ``enemy_turn`` return the
combat state unchanged, so callers may dispatch them without pre-checking.
"""

from __future__ import annotations

import math
import random
from dataclasses import replace
from typing import Iterable, NamedTuple, Optional, Sequence

from .catalog import Catalog, get_catalog
from .models.character import Character
from .models.combat import (
    AIAction,
    AICondition,
    AIRule,
    ActiveBuff,
    BuffEffect,
    CombatItemKind,
    CombatLogEntry,
    CombatLogKind,
    CombatPhase,
    CombatRewards,
    CombatSide,
    CombatSkill,
    CombatState,
    CombatStats,
    CombatUnit,
    EffectKind,
    Element,
    EnemyTemplate,
    SkillTarget,
    SkillType,
)
from .models.items import InventoryItem
from .models.progression import Realm
from .skills import apply_passives

PLAYER_UNIT_ID = "player"


class DamageRoll(NamedTuple):
    damage: int
    is_hit: bool
    is_critical: bool
    shield_absorbed: int
    element_modifier: float


class SkillOutcome(NamedTuple):
    attacker: CombatUnit
    target: CombatUnit
    logs: tuple[CombatLogEntry, ...]


class EnemyDecision(NamedTuple):
    action: AIAction
    skill_id: Optional[str]


def _log(kind: CombatLogKind, key: str, **params) -> CombatLogEntry:
    return CombatLogEntry(kind=kind, key=key, params=params)


def _with_hp(unit: CombatUnit, hp: int) -> CombatUnit:
    hp = max(0, min(unit.stats.max_hp, int(hp)))
    return replace(unit, stats=replace(unit.stats, hp=hp))


def _with_mp(unit: CombatUnit, mp: int) -> CombatUnit:
    mp = max(0, min(unit.stats.max_mp, int(mp)))
    return replace(unit, stats=replace(unit.stats, mp=mp))


# ---------------------------------------------------------------------------
# Unit creation
# ---------------------------------------------------------------------------


def create_player_unit(character: Character, catalog: Catalog | None = None) -> CombatUnit:
    catalog = catalog or get_catalog()
    stats = character.stats
    combat_stats = CombatStats(
        hp=stats.hp,
        max_hp=stats.max_hp,
        mp=stats.spiritual_power,
        max_mp=stats.max_spiritual_power,
        attack=stats.attack,
        defense=stats.defense,
        speed=stats.speed,
        accuracy=100 + stats.divine_sense,
        evasion=5 + stats.speed // 5,
        crit=5 + stats.divine_sense // 10,
        crit_damage=1.5,
        wisdom=stats.comprehension,
        sense=stats.divine_sense,
    )
    combat_stats = apply_passives(combat_stats, character.skill_points.learned, catalog)
    return CombatUnit(
        id=PLAYER_UNIT_ID,
        name=character.name,
        is_player=True,
        stats=combat_stats,
        skills=catalog.player_skills,
    )


def create_enemy_unit(template: EnemyTemplate) -> CombatUnit:
    return CombatUnit(
        id=template.id,
        name=template.name,
        is_player=False,
        stats=template.stats,
        skills=template.skills,
        element=template.element,
    )


# ---------------------------------------------------------------------------
# Stat and damage math
# ---------------------------------------------------------------------------


def get_effective_stat(unit: CombatUnit, stat: str, catalog: Catalog | None = None) -> int:
    """Return ``stat`` after percentage and flat buff modifiers, floored at zero."""

    catalog = catalog or get_catalog()
    base = getattr(unit.stats, stat)
    percent = 0.0
    flat = 0.0
    for active in unit.buffs:
        template = catalog.buffs.get(active.buff_id)
        if template is None:
            continue
        for modifier in template.modifiers:
            if modifier.stat != stat:
                continue
            if modifier.percent:
                percent += modifier.value * active.stacks
            else:
                flat += modifier.value * active.stacks
    return max(0, math.floor(base * (1 + percent / 100) + flat))


def get_element_modifier(
    attack_element: Element | None,
    defender_element: Element | None,
    catalog: Catalog | None = None,
) -> float:
    if attack_element is None or defender_element is None:
        return 0.0
    catalog = catalog or get_catalog()
    if defender_element in catalog.advantages.get(attack_element, ()):
        return catalog.advantage_modifier
    if defender_element in catalog.disadvantages.get(attack_element, ()):
        return catalog.disadvantage_modifier
    return 0.0


def calculate_hit_rate(attacker: CombatUnit, target: CombatUnit, skill: CombatSkill) -> float:
    constants = get_catalog().combat
    accuracy = get_effective_stat(attacker, "accuracy")
    evasion = get_effective_stat(target, "evasion")
    rate = constants.base_hit_rate + (accuracy - evasion) * constants.hit_rate_per_accuracy
    rate += skill.hit_bonus / 100
    rate += attacker.insight_stacks * constants.insight_hit_bonus
    return max(constants.min_hit_rate, min(constants.max_hit_rate, rate))


def calculate_crit_rate(attacker: CombatUnit, skill: CombatSkill) -> float:
    constants = get_catalog().combat
    rate = get_effective_stat(attacker, "crit") / 100
    rate += skill.crit_bonus / 100
    rate += attacker.insight_stacks * constants.insight_crit_bonus
    return min(1.0, rate)


def calculate_damage(
    attacker: CombatUnit,
    target: CombatUnit,
    skill: CombatSkill,
    *,
    rng: random.Random | None = None,
) -> DamageRoll:
    rng = rng or random
    constants = get_catalog().combat
    if rng.random() >= calculate_hit_rate(attacker, target, skill):
        return DamageRoll(0, False, False, 0, 0.0)

    attack = get_effective_stat(attacker, "attack")
    defense = get_effective_stat(target, "defense")
    raw = max(
        attack * constants.min_damage_ratio,
        attack * skill.power - defense * constants.defense_reduction_factor,
    )

    element_modifier = get_element_modifier(skill.element, target.element)
    resistance = target.stats.resistance(skill.element) / 100
    raw *= 1 + element_modifier - resistance

    is_critical = rng.random() < calculate_crit_rate(attacker, skill)
    if is_critical:
        raw *= attacker.stats.crit_damage
    if attacker.insight_stacks > 0:
        raw *= 1 + attacker.insight_stacks * constants.insight_damage_bonus
    if target.is_defending:
        raw *= 1 - constants.defend_damage_reduction

    damage = max(0, math.floor(raw))
    absorbed = min(target.shield, damage)
    return DamageRoll(damage - absorbed, True, is_critical, absorbed, element_modifier)


# ---------------------------------------------------------------------------
# Buffs
# ---------------------------------------------------------------------------


def _effect_amount(unit: CombatUnit, effect: BuffEffect) -> int:
    return math.floor(getattr(unit.stats, effect.stat) * effect.value / 100)


def apply_buff(unit: CombatUnit, buff_id: str, stacks: int = 1) -> tuple[CombatUnit, bool]:
    """Add ``buff_id`` to ``unit`` or refresh it.

    A reapplied buff gets its full duration back and, when stackable, gains
    stacks up to its maximum.  On-apply shields are granted every time.
    """

    template = get_catalog().buffs.get(buff_id)
    if template is None:
        return unit, False

    existing = unit.buff(buff_id)
    if existing is None:
        added = ActiveBuff(
            buff_id=buff_id,
            remaining_duration=template.duration,
            stacks=min(template.max_stacks, max(1, stacks)) if template.stackable else 1,
        )
        buffs = (*unit.buffs, added)
    else:
        refreshed = replace(
            existing,
            remaining_duration=template.duration,
            stacks=min(template.max_stacks, existing.stacks + stacks)
            if template.stackable
            else existing.stacks,
        )
        buffs = tuple(refreshed if active.buff_id == buff_id else active for active in unit.buffs)

    updated = replace(unit, buffs=buffs)
    for effect in template.on_apply:
        if effect.kind is EffectKind.SHIELD:
            updated = replace(updated, shield=updated.shield + _effect_amount(updated, effect))
    return updated, True


def process_buff_ticks(unit: CombatUnit, phase: str) -> tuple[CombatUnit, list[CombatLogEntry]]:
    """Run ``turn_start`` or ``turn_end`` buff effects on ``unit``.

    Damage and heal ticks scale with stacks.  At turn end every buff loses
    one round of duration and expired buffs are dropped.
    """

    catalog = get_catalog()
    logs: list[CombatLogEntry] = []
    updated = unit
    hp_change = 0
    for active in unit.buffs:
        template = catalog.buffs.get(active.buff_id)
        if template is None:
            continue
        effects = template.turn_start if phase == "turn_start" else template.turn_end
        change = 0
        for effect in effects:
            amount = _effect_amount(unit, effect) * active.stacks
            if effect.kind is EffectKind.DAMAGE:
                change -= amount
            elif effect.kind is EffectKind.HEAL:
                change += amount
            elif effect.kind is EffectKind.SHIELD:
                updated = replace(updated, shield=updated.shield + amount)
        if change:
            logs.append(
                _log(
                    CombatLogKind.DAMAGE if change < 0 else CombatLogKind.HEAL,
                    "combat.buff_tick",
                    target=unit.name,
                    buff=template.name,
                    amount=change,
                )
            )
        hp_change += change

    if hp_change:
        updated = _with_hp(updated, updated.stats.hp + hp_change)

    if phase == "turn_end":
        remaining = []
        for active in updated.buffs:
            if active.remaining_duration - 1 > 0:
                remaining.append(replace(active, remaining_duration=active.remaining_duration - 1))
                continue
            template = catalog.buffs.get(active.buff_id)
            logs.append(
                _log(
                    CombatLogKind.BUFF,
                    "combat.buff_expired",
                    target=unit.name,
                    buff=template.name if template else active.buff_id,
                )
            )
        updated = replace(updated, buffs=tuple(remaining))
    return updated, logs


def begin_turn(unit: CombatUnit) -> tuple[CombatUnit, list[CombatLogEntry]]:
    """Start ``unit``'s turn: drop its stance, tick cooldowns, run turn-start buffs."""

    cooldowns = {
        skill_id: remaining - 1 for skill_id, remaining in unit.cooldowns.items() if remaining > 1
    }
    updated = replace(unit, is_defending=False, cooldowns=cooldowns)
    return process_buff_ticks(updated, "turn_start")


def end_turn(unit: CombatUnit) -> tuple[CombatUnit, list[CombatLogEntry]]:
    return process_buff_ticks(unit, "turn_end")


# ---------------------------------------------------------------------------
# Skills
# ---------------------------------------------------------------------------


def can_use_skill(unit: CombatUnit, skill_id: str) -> bool:
    if skill_id not in unit.skills:
        return False
    skill = get_catalog().skills.get(skill_id)
    if skill is None:
        return False
    if unit.cooldown_of(skill_id) > 0:
        return False
    if unit.stats.mp < skill.cost_mp:
        return False
    if skill.type is SkillType.ULTIMATE and skill.cost_qi:
        return unit.qi_gauge.get(skill.qi_element) >= skill.cost_qi
    return True


def usable_skills(unit: CombatUnit) -> tuple[CombatSkill, ...]:
    skills = get_catalog().skills
    return tuple(skills[skill_id] for skill_id in unit.skills if can_use_skill(unit, skill_id))


def execute_skill(
    attacker: CombatUnit,
    target: CombatUnit,
    skill: CombatSkill,
    *,
    rng: random.Random | None = None,
) -> SkillOutcome:
    """Pay for and resolve ``skill``; availability is the caller's concern."""

    rng = rng or random
    catalog = get_catalog()
    constants = catalog.combat
    logs: list[CombatLogEntry] = []

    attacker = _with_mp(attacker, attacker.stats.mp - skill.cost_mp)
    if skill.type is not SkillType.BASIC:
        attacker = replace(
            attacker,
            qi_gauge=attacker.qi_gauge.add(
                skill.element, constants.qi_per_skill_use, constants.qi_gauge_max
            ),
        )
    if skill.type is SkillType.ULTIMATE and skill.cost_qi:
        consumed = attacker.qi_gauge.consume(skill.qi_element, skill.cost_qi)
        if consumed is not None:
            attacker = replace(attacker, qi_gauge=consumed)
    if skill.cooldown > 0:
        attacker = replace(attacker, cooldowns={**attacker.cooldowns, skill.id: skill.cooldown})
    logs.append(_log(CombatLogKind.ACTION, "combat.skill_used", actor=attacker.name, skill=skill.name))

    if skill.is_damaging:
        roll = calculate_damage(attacker, target, skill, rng=rng)
        if not roll.is_hit:
            logs.append(_log(CombatLogKind.MISS, "combat.missed", actor=attacker.name))
        else:
            if roll.shield_absorbed:
                target = replace(target, shield=target.shield - roll.shield_absorbed)
                logs.append(
                    _log(
                        CombatLogKind.SYSTEM,
                        "combat.shield_absorbed",
                        target=target.name,
                        amount=roll.shield_absorbed,
                    )
                )
            target = _with_hp(target, target.stats.hp - roll.damage)
            logs.append(
                _log(
                    CombatLogKind.CRITICAL if roll.is_critical else CombatLogKind.DAMAGE,
                    "combat.damaged",
                    target=target.name,
                    amount=roll.damage,
                    critical=roll.is_critical,
                )
            )

    if skill.power > 0 and attacker.insight_stacks > 0:
        logs.append(
            _log(
                CombatLogKind.SYSTEM,
                "combat.insight_consumed",
                actor=attacker.name,
                stacks=attacker.insight_stacks,
            )
        )
        attacker = replace(attacker, insight_stacks=0)

    for effect in skill.effects:
        if effect.kind is EffectKind.HEAL:
            amount = math.floor(getattr(attacker.stats, effect.stat) * effect.value / 100)
            before = attacker.stats.hp
            attacker = _with_hp(attacker, before + amount)
            healed = attacker.stats.hp - before
            if healed > 0:
                logs.append(
                    _log(CombatLogKind.HEAL, "combat.healed", target=attacker.name, amount=healed)
                )
        elif effect.kind is EffectKind.SHIELD:
            amount = math.floor(getattr(attacker.stats, effect.stat) * effect.value / 100)
            attacker = replace(attacker, shield=attacker.shield + amount)
            logs.append(
                _log(CombatLogKind.BUFF, "combat.shield_gained", target=attacker.name, amount=amount)
            )
        elif effect.kind is EffectKind.BUFF and effect.buff_id:
            if skill.target is SkillTarget.SELF:
                attacker, applied = apply_buff(attacker, effect.buff_id)
                recipient = attacker
            else:
                target, applied = apply_buff(target, effect.buff_id)
                recipient = target
            if applied:
                logs.append(
                    _log(
                        CombatLogKind.BUFF,
                        "combat.buff_gained",
                        target=recipient.name,
                        buff=catalog.buffs[effect.buff_id].name,
                    )
                )
        elif effect.kind is EffectKind.DEBUFF and effect.buff_id:
            if rng.random() < effect.value:
                target, applied = apply_buff(target, effect.buff_id)
                if applied:
                    logs.append(
                        _log(
                            CombatLogKind.BUFF,
                            "combat.debuffed",
                            target=target.name,
                            buff=catalog.buffs[effect.buff_id].name,
                        )
                    )
    return SkillOutcome(attacker, target, tuple(logs))


# ---------------------------------------------------------------------------
# Encounter flow
# ---------------------------------------------------------------------------


def roll_turn_order(
    player: CombatUnit, enemy: CombatUnit, *, rng: random.Random | None = None
) -> tuple[CombatSide, CombatSide]:
    rng = rng or random
    variance = get_catalog().combat.speed_variance
    player_speed = get_effective_stat(player, "speed") * (1 + (rng.random() - 0.5) * variance * 2)
    enemy_speed = get_effective_stat(enemy, "speed") * (1 + (rng.random() - 0.5) * variance * 2)
    if player_speed >= enemy_speed:
        return (CombatSide.PLAYER, CombatSide.ENEMY)
    return (CombatSide.ENEMY, CombatSide.PLAYER)


def get_random_enemy(realm: Realm, *, rng: random.Random | None = None) -> Optional[EnemyTemplate]:
    rng = rng or random
    catalog = get_catalog()
    candidates = catalog.spawns.get(realm)
    if not candidates:
        return None
    return catalog.enemies.get(rng.choice(candidates))


def start_combat(
    character: Character, enemy_id: str, *, rng: random.Random | None = None
) -> Optional[CombatState]:
    """Open a battle against ``enemy_id``; unknown enemies yield ``None``."""

    rng = rng or random
    template = get_catalog().enemies.get(enemy_id)
    if template is None:
        return None

    player = create_player_unit(character)
    enemy = create_enemy_unit(template)
    turn_order = roll_turn_order(player, enemy, rng=rng)
    logs = [_log(CombatLogKind.SYSTEM, "combat.started", enemy=template.name)]

    if turn_order[0] is CombatSide.PLAYER:
        player, start_logs = begin_turn(player)
        phase = CombatPhase.PLAYER_TURN
    else:
        enemy, start_logs = begin_turn(enemy)
        phase = CombatPhase.ENEMY_TURN
    logs.extend(start_logs)

    return CombatState(
        in_combat=True,
        phase=phase,
        round=1,
        player_unit=player,
        enemy_unit=enemy,
        enemy_id=template.id,
        turn_order=turn_order,
        current_turn_index=0,
        combat_log=tuple(logs),
    )


def generate_loot(
    template: EnemyTemplate, *, rng: random.Random | None = None
) -> tuple[int, tuple[InventoryItem, ...]]:
    rng = rng or random
    low, high = template.spirit_stones
    spirit_stones = rng.randint(low, high)
    items = []
    for drop in template.loot:
        if rng.random() >= drop.chance:
            continue
        quantity = rng.randint(drop.min_quantity, max(drop.min_quantity, drop.max_quantity))
        if quantity > 0:
            items.append(InventoryItem(item_id=drop.item_id, quantity=quantity))
    return spirit_stones, tuple(items)


def _victory(
    combat: CombatState,
    player: CombatUnit,
    enemy: CombatUnit,
    logs: Sequence[CombatLogEntry],
    rng,
) -> CombatState:
    catalog = get_catalog()
    template = catalog.enemies.get(combat.enemy_id or "")
    rewards = None
    enemy_name = enemy.name
    if template is not None:
        spirit_stones, items = generate_loot(template, rng=rng)
        rewards = CombatRewards(
            spirit_stones=spirit_stones,
            items=items,
            cultivation_exp=template.stats.max_hp // catalog.combat.reward_exp_divisor,
            is_boss=template.is_boss,
        )
        enemy_name = template.name
    victory_log = _log(CombatLogKind.SYSTEM, "combat.victory", enemy=enemy_name)
    return replace(
        combat,
        phase=CombatPhase.VICTORY,
        player_unit=player,
        enemy_unit=enemy,
        combat_log=(*combat.combat_log, *logs, victory_log),
        rewards=rewards,
    )


def _defeat(
    combat: CombatState,
    player: CombatUnit,
    enemy: CombatUnit,
    logs: Sequence[CombatLogEntry],
) -> CombatState:
    return replace(
        combat,
        phase=CombatPhase.DEFEAT,
        player_unit=player,
        enemy_unit=enemy,
        combat_log=(*combat.combat_log, *logs, _log(CombatLogKind.SYSTEM, "combat.defeat")),
    )


def _settle(
    combat: CombatState,
    player: CombatUnit,
    enemy: CombatUnit,
    logs: Sequence[CombatLogEntry],
    rng,
) -> Optional[CombatState]:
    if not enemy.is_alive:
        return _victory(combat, player, enemy, logs, rng)
    if not player.is_alive:
        return _defeat(combat, player, enemy, logs)
    return None


def _finish_turn(
    combat: CombatState,
    side: CombatSide,
    player: CombatUnit,
    enemy: CombatUnit,
    logs: Iterable[CombatLogEntry],
    rng,
) -> CombatState:
    """Close ``side``'s turn and open the next one in the turn order."""

    logs = list(logs)
    settled = _settle(combat, player, enemy, logs, rng)
    if settled is not None:
        return settled

    if side is CombatSide.PLAYER:
        player, end_logs = end_turn(player)
    else:
        enemy, end_logs = end_turn(enemy)
    logs.extend(end_logs)
    settled = _settle(combat, player, enemy, logs, rng)
    if settled is not None:
        return settled

    order = combat.turn_order or (CombatSide.PLAYER, CombatSide.ENEMY)
    next_index = (combat.current_turn_index + 1) % len(order)
    next_side = order[next_index]
    if next_side is CombatSide.PLAYER:
        player, start_logs = begin_turn(player)
    else:
        enemy, start_logs = begin_turn(enemy)
    logs.extend(start_logs)

    advanced = replace(
        combat,
        round=combat.round + 1 if next_index == 0 else combat.round,
        current_turn_index=next_index,
    )
    settled = _settle(advanced, player, enemy, logs, rng)
    if settled is not None:
        return settled
    return replace(
        advanced,
        phase=CombatPhase.PLAYER_TURN if next_side is CombatSide.PLAYER else CombatPhase.ENEMY_TURN,
        player_unit=player,
        enemy_unit=enemy,
        combat_log=(*combat.combat_log, *logs),
    )


def can_act(combat: CombatState) -> bool:
    return (
        combat.in_combat
        and combat.phase is CombatPhase.PLAYER_TURN
        and combat.player_unit is not None
        and combat.enemy_unit is not None
    )


def player_attack(
    combat: CombatState, skill_id: str, *, rng: random.Random | None = None
) -> CombatState:
    rng = rng or random
    if not can_act(combat) or not can_use_skill(combat.player_unit, skill_id):
        return combat
    skill = get_catalog().skills[skill_id]
    outcome = execute_skill(combat.player_unit, combat.enemy_unit, skill, rng=rng)
    return _finish_turn(
        combat, CombatSide.PLAYER, outcome.attacker, outcome.target, outcome.logs, rng
    )


def player_defend(combat: CombatState, *, rng: random.Random | None = None) -> CombatState:
    if not can_act(combat):
        return combat
    player = replace(combat.player_unit, is_defending=True)
    log = _log(CombatLogKind.ACTION, "combat.defend", actor=player.name)
    return _finish_turn(combat, CombatSide.PLAYER, player, combat.enemy_unit, [log], rng or random)


def player_observe(combat: CombatState, *, rng: random.Random | None = None) -> CombatState:
    if not can_act(combat):
        return combat
    limit = get_catalog().combat.max_insight_stacks
    stacks = min(limit, combat.player_unit.insight_stacks + 1)
    player = replace(combat.player_unit, insight_stacks=stacks)
    log = _log(CombatLogKind.ACTION, "combat.observe", actor=player.name, stacks=stacks, max=limit)
    return _finish_turn(combat, CombatSide.PLAYER, player, combat.enemy_unit, [log], rng or random)


def calculate_flee_chance(player: CombatUnit, enemy: CombatUnit) -> float:
    constants = get_catalog().combat
    player_speed = player.stats.speed or 10
    enemy_speed = enemy.stats.speed or 10
    return min(constants.max_flee_chance, constants.base_flee_chance * player_speed / enemy_speed)


def player_flee(combat: CombatState, *, rng: random.Random | None = None) -> CombatState:
    rng = rng or random
    if not can_act(combat):
        return combat
    if rng.random() < calculate_flee_chance(combat.player_unit, combat.enemy_unit):
        return replace(
            combat,
            phase=CombatPhase.FLED,
            combat_log=(*combat.combat_log, _log(CombatLogKind.SYSTEM, "combat.flee_success")),
        )
    log = _log(CombatLogKind.SYSTEM, "combat.flee_failed")
    return _finish_turn(
        combat, CombatSide.PLAYER, combat.player_unit, combat.enemy_unit, [log], rng
    )


def can_use_item(combat: CombatState, item_id: str) -> bool:
    return can_act(combat) and item_id in get_catalog().combat_items


def player_use_item(
    combat: CombatState, item_id: str, *, rng: random.Random | None = None
) -> CombatState:
    """Apply a combat consumable.  Removing it from the inventory is the caller's job."""

    rng = rng or random
    if not can_use_item(combat, item_id):
        return combat
    catalog = get_catalog()
    item = catalog.combat_items[item_id]
    item_name = catalog.items[item_id].name if item_id in catalog.items else item_id
    player = combat.player_unit
    enemy = combat.enemy_unit
    logs: list[CombatLogEntry] = []

    if item.kind is CombatItemKind.HEAL:
        before = player.stats.hp
        player = _with_hp(player, before + math.floor(player.stats.max_hp * item.value / 100))
        logs.append(
            _log(
                CombatLogKind.HEAL,
                "combat.item_healed",
                actor=player.name,
                item=item_name,
                amount=player.stats.hp - before,
            )
        )
    elif item.kind is CombatItemKind.RESTORE_MP:
        before = player.stats.mp
        player = _with_mp(player, before + math.floor(player.stats.max_mp * item.value / 100))
        logs.append(
            _log(
                CombatLogKind.HEAL,
                "combat.item_restored",
                actor=player.name,
                item=item_name,
                amount=player.stats.mp - before,
            )
        )
    elif item.kind is CombatItemKind.DAMAGE:
        modifier = get_element_modifier(item.element, enemy.element)
        resistance = enemy.stats.resistance(item.element) / 100
        damage = max(0, math.floor(item.value * (1 + modifier - resistance)))
        absorbed = min(enemy.shield, damage)
        enemy = _with_hp(replace(enemy, shield=enemy.shield - absorbed), enemy.stats.hp - (damage - absorbed))
        logs.append(
            _log(
                CombatLogKind.DAMAGE,
                "combat.item_damaged",
                actor=player.name,
                item=item_name,
                target=enemy.name,
                amount=damage - absorbed,
            )
        )
    elif item.kind is CombatItemKind.BUFF and item.buff_id:
        player, applied = apply_buff(player, item.buff_id)
        if applied:
            logs.append(
                _log(
                    CombatLogKind.BUFF,
                    "combat.buff_gained",
                    target=player.name,
                    buff=catalog.buffs[item.buff_id].name,
                )
            )
    return _finish_turn(combat, CombatSide.PLAYER, player, enemy, logs, rng)


def _condition_met(rule: AIRule, enemy: CombatUnit, player: CombatUnit, rng) -> bool:
    def ratio(current: int, maximum: int) -> float:
        return current / maximum if maximum else 0.0

    condition = rule.condition
    if condition is AICondition.HP_BELOW:
        return ratio(enemy.stats.hp, enemy.stats.max_hp) < rule.value
    if condition is AICondition.HP_ABOVE:
        return ratio(enemy.stats.hp, enemy.stats.max_hp) > rule.value
    if condition is AICondition.MP_BELOW:
        return ratio(enemy.stats.mp, enemy.stats.max_mp) < rule.value
    if condition is AICondition.MP_ABOVE:
        return ratio(enemy.stats.mp, enemy.stats.max_mp) > rule.value
    if condition is AICondition.TARGET_HP_BELOW:
        return ratio(player.stats.hp, player.stats.max_hp) < rule.value
    if condition is AICondition.TARGET_HP_ABOVE:
        return ratio(player.stats.hp, player.stats.max_hp) > rule.value
    if condition is AICondition.HAS_BUFF:
        return rule.buff_id is not None and enemy.buff(rule.buff_id) is not None
    if condition is AICondition.TARGET_HAS_DEBUFF:
        template = get_catalog().buffs.get(rule.buff_id or "")
        return template is not None and template.debuff and player.buff(template.id) is not None
    if condition is AICondition.RANDOM:
        return rng.random() * 100 < rule.value
    return condition is AICondition.ALWAYS


def choose_enemy_action(
    enemy: CombatUnit,
    player: CombatUnit,
    rules: Sequence[AIRule],
    *,
    rng: random.Random | None = None,
) -> EnemyDecision:
    """Pick the highest-priority rule whose condition holds and whose skill is ready."""

    rng = rng or random
    for rule in sorted(rules, key=lambda entry: entry.priority, reverse=True):
        if not _condition_met(rule, enemy, player, rng):
            continue
        if rule.action is AIAction.DEFEND:
            return EnemyDecision(AIAction.DEFEND, None)
        if rule.skill_id and can_use_skill(enemy, rule.skill_id):
            return EnemyDecision(AIAction.USE_SKILL, rule.skill_id)

    skills = get_catalog().skills
    for skill_id in enemy.skills:
        if skills[skill_id].type is SkillType.BASIC:
            return EnemyDecision(AIAction.USE_SKILL, skill_id)
    return EnemyDecision(AIAction.USE_SKILL, enemy.skills[0] if enemy.skills else None)


def enemy_action(combat: CombatState, *, rng: random.Random | None = None) -> CombatState:
    rng = rng or random
    if (
        not combat.in_combat
        or combat.phase is not CombatPhase.ENEMY_TURN
        or combat.player_unit is None
        or combat.enemy_unit is None
    ):
        return combat

    catalog = get_catalog()
    template = catalog.enemies.get(combat.enemy_id or "")
    rules = template.ai_rules if template is not None else ()
    player = combat.player_unit
    enemy = combat.enemy_unit
    logs: list[CombatLogEntry] = []

    decision = choose_enemy_action(enemy, player, rules, rng=rng)
    if decision.action is AIAction.DEFEND:
        enemy = replace(enemy, is_defending=True)
        logs.append(_log(CombatLogKind.ACTION, "combat.defend", actor=enemy.name))
    elif decision.skill_id is not None and decision.skill_id in catalog.skills:
        outcome = execute_skill(enemy, player, catalog.skills[decision.skill_id], rng=rng)
        enemy, player = outcome.attacker, outcome.target
        logs.extend(outcome.logs)
    return _finish_turn(combat, CombatSide.ENEMY, player, enemy, logs, rng)


__all__ = [
    "DamageRoll",
    "EnemyDecision",
    "PLAYER_UNIT_ID",
    "SkillOutcome",
    "apply_buff",
    "begin_turn",
    "calculate_crit_rate",
    "calculate_damage",
    "calculate_flee_chance",
    "calculate_hit_rate",
    "can_act",
    "can_use_item",
    "can_use_skill",
    "choose_enemy_action",
    "create_enemy_unit",
    "create_player_unit",
    "end_turn",
    "enemy_action",
    "execute_skill",
    "generate_loot",
    "get_effective_stat",
    "get_element_modifier",
    "get_random_enemy",
    "player_attack",
    "player_defend",
    "player_flee",
    "player_observe",
    "player_use_item",
    "process_buff_ticks",
    "roll_turn_order",
    "start_combat",
]
