"""Static game tables loaded from ``xiuxian/data/*.toml``.

The tables are parsed once per process and exposed as frozen dataclasses via
:func:`get_catalog`.  Malformed tables raise :class:`CatalogError`; they are a
packaging defect rather than a runtime game condition.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import tomllib

from .models.combat import (
    AIAction,
    AICondition,
    AIRule,
    BuffEffect,
    BuffTemplate,
    CombatItem,
    CombatItemKind,
    CombatSkill,
    CombatStats,
    EffectKind,
    Element,
    EnemyTemplate,
    LootEntry,
    SkillEffect,
    SkillTarget,
    SkillType,
    StatModifier,
)
from .models.items import ItemCategory, ItemDefinition, Rarity
from .models.progression import ActivityInfo, ActivityType, Realm, RealmInfo, REALM_ORDER

DATA_DIR = Path(__file__).resolve().parent / "data"


class CatalogError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class MarketListing:
    item_id: str
    volatility: float
    max_liquidity: int


@dataclass(frozen=True, slots=True)
class MarketEventKind:
    """A named price shock.  Kinds with ``items`` and a ``chance`` also occur on their own."""

    id: str
    name: str
    price_modifier: float
    items: tuple[str, ...] = ()
    duration: tuple[int, int] = (3, 7)
    chance: float = 0.0
    cooldown_days: int = 0
    min_realm: Realm = Realm.QI_REFINING


@dataclass(frozen=True, slots=True)
class WorldEventRules:
    min_interval_days: int = 7
    max_active: int = 2


@dataclass(frozen=True, slots=True)
class SkillNode:
    id: str
    name: str
    tree: str
    tier: int
    cost: int
    realm: Realm
    prerequisites: tuple[str, ...] = ()
    exclusive: tuple[str, ...] = ()
    modifiers: tuple[StatModifier, ...] = ()
    description: str = ""


@dataclass(frozen=True, slots=True)
class CombatConstants:
    base_hit_rate: float
    min_hit_rate: float
    max_hit_rate: float
    hit_rate_per_accuracy: float
    min_damage_ratio: float
    defense_reduction_factor: float
    max_insight_stacks: int
    insight_hit_bonus: float
    insight_crit_bonus: float
    insight_damage_bonus: float
    qi_gauge_max: int
    qi_threshold_ultimate: int
    qi_per_skill_use: int
    defend_damage_reduction: float
    speed_variance: float
    base_flee_chance: float
    max_flee_chance: float
    reward_exp_divisor: int


@dataclass(frozen=True, slots=True)
class Catalog:
    realms: Mapping[Realm, RealmInfo]
    activities: Mapping[ActivityType, ActivityInfo]
    items: Mapping[str, ItemDefinition]
    listings: tuple[MarketListing, ...]
    market_events: Mapping[str, MarketEventKind]
    world_events: WorldEventRules
    combat: CombatConstants
    advantage_modifier: float
    disadvantage_modifier: float
    advantages: Mapping[Element, frozenset[Element]]
    disadvantages: Mapping[Element, frozenset[Element]]
    buffs: Mapping[str, BuffTemplate]
    skills: Mapping[str, CombatSkill]
    player_skills: tuple[str, ...]
    enemies: Mapping[str, EnemyTemplate]
    spawns: Mapping[Realm, tuple[str, ...]]
    combat_items: Mapping[str, CombatItem]
    skill_trees: Mapping[str, str]
    skill_nodes: Mapping[str, SkillNode]

    def realm(self, realm: Realm) -> RealmInfo:
        return self.realms[realm]

    def activity(self, activity: ActivityType) -> ActivityInfo:
        return self.activities[activity]


def _read_table(name: str) -> Mapping[str, Any]:
    path = DATA_DIR / name
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        raise CatalogError(f"Missing data table at {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise CatalogError(f"Malformed data table {path}: {exc}") from exc


def _element(value: Any) -> Element | None:
    try:
        return Element.from_value(value)
    except ValueError as exc:
        raise CatalogError(f"Unknown element {value!r}") from exc


def _load_realms(payload: Mapping[str, Any]) -> dict[Realm, RealmInfo]:
    realms: dict[Realm, RealmInfo] = {}
    for entry in payload.get("realms", []):
        realm = Realm.from_value(entry["id"])
        realms[realm] = RealmInfo(
            realm=realm,
            name=str(entry["name"]),
            stages=int(entry["stages"]),
            cultivation_required=int(entry["cultivation_required"]),
            stats_multiplier=float(entry["stats_multiplier"]),
        )
    missing = [realm.value for realm in REALM_ORDER if realm not in realms]
    if missing:
        raise CatalogError(f"Realm table is missing: {', '.join(missing)}")
    return realms


def _load_activities(payload: Mapping[str, Any]) -> dict[ActivityType, ActivityInfo]:
    activities: dict[ActivityType, ActivityInfo] = {}
    for key, entry in payload.get("activities", {}).items():
        activity = ActivityType(key)
        activities[activity] = ActivityInfo(
            activity=activity,
            name=str(entry["name"]),
            cultivation_multiplier=float(entry["cultivation_multiplier"]),
            can_trade=bool(entry.get("can_trade", False)),
            can_encounter=bool(entry.get("can_encounter", False)),
        )
    if len(activities) != len(ActivityType):
        raise CatalogError("Activity table must define every activity")
    return activities


def _load_items(payload: Mapping[str, Any]) -> dict[str, ItemDefinition]:
    return {
        key: ItemDefinition(
            id=key,
            name=str(entry["name"]),
            category=ItemCategory.from_value(entry["category"]),
            rarity=Rarity.from_value(entry["rarity"]),
            base_price=float(entry["base_price"]),
            description=str(entry.get("description", "")),
        )
        for key, entry in payload.get("items", {}).items()
    }


def _buff_effects(entries: Any) -> tuple[BuffEffect, ...]:
    return tuple(
        BuffEffect(
            kind=EffectKind(entry["kind"]),
            value=float(entry["value"]),
            stat=str(entry.get("stat", "max_hp")),
        )
        for entry in entries or ()
    )


def _load_buffs(payload: Mapping[str, Any]) -> dict[str, BuffTemplate]:
    buffs: dict[str, BuffTemplate] = {}
    for key, entry in payload.get("buffs", {}).items():
        buffs[key] = BuffTemplate(
            id=key,
            name=str(entry["name"]),
            debuff=bool(entry.get("debuff", False)),
            duration=int(entry["duration"]),
            max_stacks=max(1, int(entry.get("max_stacks", 1))),
            modifiers=tuple(
                StatModifier(
                    stat=str(modifier["stat"]),
                    value=float(modifier["value"]),
                    percent=bool(modifier.get("percent", True)),
                )
                for modifier in entry.get("modifiers", ())
            ),
            turn_start=_buff_effects(entry.get("turn_start")),
            turn_end=_buff_effects(entry.get("turn_end")),
            on_apply=_buff_effects(entry.get("on_apply")),
        )
    return buffs


def _load_skill(
    key: str,
    entry: Mapping[str, Any],
    buffs: Mapping[str, BuffTemplate],
    constants: CombatConstants,
) -> CombatSkill:
    skill_type = SkillType.from_value(entry.get("type"))
    default_qi = constants.qi_threshold_ultimate if skill_type is SkillType.ULTIMATE else 0
    effects: list[SkillEffect] = []
    for effect in entry.get("effects", ()):
        buff_id = effect.get("buff")
        if buff_id is not None and buff_id not in buffs:
            raise CatalogError(f"Skill {key!r} references unknown buff {buff_id!r}")
        effects.append(
            SkillEffect(
                kind=EffectKind(effect["kind"]),
                value=float(effect.get("value", 1.0)),
                buff_id=buff_id,
                stat=str(effect.get("stat", "max_hp")),
            )
        )
    return CombatSkill(
        id=key,
        name=str(entry["name"]),
        type=skill_type,
        power=float(entry.get("power", 0.0)),
        element=_element(entry.get("element")),
        cost_mp=int(entry.get("cost_mp", 0)),
        cost_qi=int(entry.get("cost_qi", default_qi)),
        qi_element=_element(entry.get("qi_element")),
        cooldown=int(entry.get("cooldown", 0)),
        target=SkillTarget(entry.get("target", "enemy")),
        hit_bonus=float(entry.get("hit_bonus", 0.0)),
        crit_bonus=float(entry.get("crit_bonus", 0.0)),
        effects=tuple(effects),
    )


def base_enemy_stats(level: int, multiplier: float) -> dict[str, Any]:
    """Scale the generic beast stat line to ``level`` and ``multiplier``."""

    max_hp = math.floor(80 * multiplier * (1 + level * 0.1))
    max_mp = math.floor(40 * multiplier * (1 + level * 0.05))
    return {
        "hp": max_hp,
        "max_hp": max_hp,
        "mp": max_mp,
        "max_mp": max_mp,
        "attack": math.floor(12 * multiplier * (1 + level * 0.08)),
        "defense": math.floor(8 * multiplier * (1 + level * 0.06)),
        "speed": math.floor(10 * multiplier * (1 + level * 0.05)),
        "accuracy": 100 + level * 2,
        "evasion": 5 + level,
        "crit": 5 + level,
        "crit_damage": 1.5,
        "wisdom": 10 + level,
        "sense": 10 + level,
    }


def _load_enemy(key: str, entry: Mapping[str, Any], skills: Mapping[str, CombatSkill]) -> EnemyTemplate:
    level = int(entry["level"])
    values = base_enemy_stats(level, float(entry["multiplier"]))
    values.update({name: int(value) for name, value in entry.get("overrides", {}).items()})
    resistances = {str(name): int(value) for name, value in entry.get("resistances", {}).items()}
    skill_ids = tuple(entry.get("skills", ()))
    unknown = [skill_id for skill_id in skill_ids if skill_id not in skills]
    if unknown or not skill_ids:
        raise CatalogError(f"Enemy {key!r} has invalid skills: {unknown or 'none'}")
    low, high = (int(value) for value in entry.get("spirit_stones", (0, 0)))
    return EnemyTemplate(
        id=key,
        name=str(entry["name"]),
        realm=Realm.from_value(entry["realm"]),
        level=level,
        stats=CombatStats(resistances=resistances, **values),
        skills=skill_ids,
        ai_rules=tuple(
            AIRule(
                condition=AICondition(rule["condition"]),
                priority=int(rule.get("priority", 0)),
                action=AIAction(rule.get("action", "use_skill")),
                skill_id=rule.get("skill"),
                value=float(rule.get("value", 0.0)),
                buff_id=rule.get("buff"),
            )
            for rule in entry.get("ai", ())
        ),
        loot=tuple(
            LootEntry(
                item_id=str(drop["item"]),
                chance=float(drop["chance"]),
                min_quantity=int(drop.get("min", 1)),
                max_quantity=int(drop.get("max", drop.get("min", 1))),
            )
            for drop in entry.get("loot", ())
        ),
        spirit_stones=(min(low, high), max(low, high)),
        element=_element(entry.get("element")),
        is_boss=bool(entry.get("is_boss", False)),
    )


def _load_market_event(key: str, entry: Mapping[str, Any], listed: frozenset[str]) -> MarketEventKind:
    items = tuple(str(item) for item in entry.get("items", ()))
    unknown = [item for item in items if item not in listed]
    if unknown:
        raise CatalogError(f"Market event {key!r} names unlisted items: {unknown}")
    low, high = (int(value) for value in entry.get("duration", (3, 7)))
    return MarketEventKind(
        id=key,
        name=str(entry["name"]),
        price_modifier=float(entry["price_modifier"]),
        items=items,
        duration=(max(1, min(low, high)), max(1, low, high)),
        chance=float(entry.get("chance", 0.0)),
        cooldown_days=int(entry.get("cooldown_days", 0)),
        min_realm=Realm.from_value(entry.get("min_realm", Realm.QI_REFINING)),
    )


def _load_skill_tree(payload: Mapping[str, Any]) -> tuple[dict[str, str], dict[str, SkillNode]]:
    trees = {str(key): str(name) for key, name in payload.get("trees", {}).items()}
    tiers = payload.get("tiers", {})
    nodes: dict[str, SkillNode] = {}
    for key, entry in payload.get("nodes", {}).items():
        tree = str(entry["tree"])
        if tree not in trees:
            raise CatalogError(f"Skill node {key!r} belongs to unknown tree {tree!r}")
        tier = int(entry["tier"])
        defaults = tiers.get(str(tier), {})
        nodes[key] = SkillNode(
            id=key,
            name=str(entry["name"]),
            tree=tree,
            tier=tier,
            cost=int(entry.get("cost", defaults.get("cost", tier))),
            realm=Realm.from_value(entry.get("realm", defaults.get("realm", Realm.QI_REFINING))),
            prerequisites=tuple(entry.get("prerequisites", ())),
            exclusive=tuple(entry.get("exclusive", ())),
            modifiers=tuple(
                StatModifier(
                    stat=str(modifier["stat"]),
                    value=float(modifier["value"]),
                    percent=bool(modifier.get("percent", True)),
                )
                for modifier in entry.get("modifiers", ())
            ),
            description=str(entry.get("description", "")),
        )
    for node in nodes.values():
        missing = [other for other in (*node.prerequisites, *node.exclusive) if other not in nodes]
        if missing:
            raise CatalogError(f"Skill node {node.id!r} references unknown nodes: {missing}")
        unknown_stats = [
            modifier.stat
            for modifier in node.modifiers
            if modifier.stat not in CombatStats.__dataclass_fields__
        ]
        if unknown_stats:
            raise CatalogError(f"Skill node {node.id!r} modifies unknown stats: {unknown_stats}")
    return trees, nodes


def load_catalog() -> Catalog:
    realms = _load_realms(_read_table("realms.toml"))
    activities = _load_activities(_read_table("activities.toml"))
    items = _load_items(_read_table("items.toml"))

    market = _read_table("market.toml")
    listings = []
    for key, entry in market.get("listings", {}).items():
        if key not in items:
            raise CatalogError(f"Market listing {key!r} has no item definition")
        listings.append(
            MarketListing(
                item_id=key,
                volatility=float(entry["volatility"]),
                max_liquidity=int(entry["max_liquidity"]),
            )
        )
    listed = frozenset(listing.item_id for listing in listings)
    market_events = {
        key: _load_market_event(key, entry, listed)
        for key, entry in market.get("events", {}).items()
    }
    world_events = WorldEventRules(**market.get("world_events", {}))
    skill_trees, skill_nodes = _load_skill_tree(_read_table("skill_tree.toml"))

    combat = _read_table("combat.toml")
    constants = CombatConstants(**combat["constants"])
    elements = combat.get("elements", {})
    buffs = _load_buffs(combat)
    skills: dict[str, CombatSkill] = {}
    player_skills: list[str] = []
    for entry in combat.get("player_skills", []):
        skill = _load_skill(str(entry["id"]), entry, buffs, constants)
        skills[skill.id] = skill
        player_skills.append(skill.id)
    for key, entry in combat.get("enemy_skills", {}).items():
        skills[key] = _load_skill(key, entry, buffs, constants)
    enemies = {
        key: _load_enemy(key, entry, skills) for key, entry in combat.get("enemies", {}).items()
    }
    spawns: dict[Realm, tuple[str, ...]] = {}
    for key, entry in combat.get("spawns", {}).items():
        unknown = [enemy_id for enemy_id in entry if enemy_id not in enemies]
        if unknown:
            raise CatalogError(f"Spawn table for {key!r} names unknown enemies: {unknown}")
        spawns[Realm.from_value(key)] = tuple(entry)
    combat_items = {
        key: CombatItem(
            item_id=key,
            kind=CombatItemKind(entry["kind"]),
            value=float(entry.get("value", 0.0)),
            element=_element(entry.get("element")),
            buff_id=entry.get("buff"),
        )
        for key, entry in combat.get("combat_items", {}).items()
    }

    return Catalog(
        realms=MappingProxyType(realms),
        activities=MappingProxyType(activities),
        items=MappingProxyType(items),
        listings=tuple(listings),
        market_events=MappingProxyType(market_events),
        world_events=world_events,
        combat=constants,
        advantage_modifier=float(elements.get("advantage_modifier", 0.25)),
        disadvantage_modifier=float(elements.get("disadvantage_modifier", -0.2)),
        advantages=MappingProxyType(
            {
                Element(key): frozenset(Element(value) for value in values)
                for key, values in elements.get("advantages", {}).items()
            }
        ),
        disadvantages=MappingProxyType(
            {
                Element(key): frozenset(Element(value) for value in values)
                for key, values in elements.get("disadvantages", {}).items()
            }
        ),
        buffs=MappingProxyType(buffs),
        skills=MappingProxyType(skills),
        player_skills=tuple(player_skills),
        enemies=MappingProxyType(enemies),
        spawns=MappingProxyType(spawns),
        combat_items=MappingProxyType(combat_items),
        skill_trees=MappingProxyType(skill_trees),
        skill_nodes=MappingProxyType(skill_nodes),
    )


@lru_cache(maxsize=1)
def get_catalog() -> Catalog:
    return load_catalog()


__all__ = [
    "Catalog",
    "CatalogError",
    "CombatConstants",
    "MarketEventKind",
    "MarketListing",
    "SkillNode",
    "WorldEventRules",
    "base_enemy_stats",
    "get_catalog",
    "load_catalog",
]
