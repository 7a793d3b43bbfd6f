"""English rendering of structured game and combat log entries.

The simulation only records message keys and parameters; this module turns
them into sentences for the Discord front end.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Callable, Mapping

from .catalog import get_catalog
from .clock import format_time
from .models.combat import CombatLogEntry
from .models.progression import ActivityType, Realm
from .models.state import GameLog

log = logging.getLogger(__name__)


def _realm_label(params: Mapping[str, Any]) -> str:
    try:
        realm = Realm.from_value(params.get("realm", ""))
    except ValueError:
        return str(params.get("realm", "an unknown realm"))
    stage = int(params.get("stage", 1) or 1)
    return get_catalog().realm(realm).display_name(stage)


def _activity_label(params: Mapping[str, Any]) -> str:
    activity = ActivityType.from_value(params.get("activity"))
    return get_catalog().activity(activity).name


def _join_items(params: Mapping[str, Any]) -> str:
    items = params.get("items") or ()
    return ", ".join(str(item) for item in items) or "nothing in particular"


GAME_LOG_TEMPLATES: Mapping[str, str | Callable[[Mapping[str, Any]], str]] = MappingProxyType(
    {
        "system.welcome": "{name} steps onto the path of cultivation.",
        "cultivation.ready": lambda p: (
            f"Your cultivation at {_realm_label(p)} is full. You may attempt a breakthrough."
        ),
        "breakthrough.stage": lambda p: f"Breakthrough! You have reached {_realm_label(p)}.",
        "breakthrough.realm": lambda p: (
            f"The heavens tremble. You ascend to a new realm: {_realm_label(p)}."
        ),
        "breakthrough.failed": "The breakthrough fails. Backlash scatters {loss} cultivation.",
        "breakthrough.peak": lambda p: (
            f"You stand at {_realm_label(p)}. There is no higher stage to break through."
        ),
        "activity.changed": lambda p: f"You turn to {_activity_label(p)}.",
        "market.bought": "Bought {quantity} x {item} for {cost} spirit stones.",
        "market.sold": "Sold {quantity} x {item} for {revenue} spirit stones.",
        "market.event": lambda p: (
            f"Market event: {p.get('name')} affects {_join_items(p)} "
            f"for {p.get('duration')} days."
        ),
        "combat.encounter": "While travelling you run into {enemy}!",
        "combat.engaged": "You challenge {enemy} to battle.",
        "combat.rewards": (
            "Spoils collected: {spirit_stones} spirit stones, {cultivation} cultivation "
            "and {items} items."
        ),
        "combat.ended": "The battle is over ({outcome}).",
        "skill_points.awarded": "Insight dawns: you gain {amount} wudao points.",
        "skills.learned": "You comprehend {node} for {cost} wudao points ({remaining} left).",
        "skills.reset": "You let go of {count} insights of the {tree} and recover {refunded} wudao points.",
        "legacy.message": "{text}",
    }
)


def _buff_tick(params: Mapping[str, Any]) -> str:
    amount = int(params.get("amount", 0))
    if amount >= 0:
        return f"{params.get('buff')} restores {amount} hp to {params.get('target')}."
    return f"{params.get('buff')} deals {-amount} damage to {params.get('target')}."


def _damaged(params: Mapping[str, Any]) -> str:
    prefix = "Critical hit! " if params.get("critical") else ""
    return f"{prefix}{params.get('target')} takes {params.get('amount')} damage."


COMBAT_LOG_TEMPLATES: Mapping[str, str | Callable[[Mapping[str, Any]], str]] = MappingProxyType(
    {
        "combat.started": "Battle begins against {enemy}!",
        "combat.skill_used": "{actor} uses {skill}.",
        "combat.missed": "{actor}'s attack misses.",
        "combat.shield_absorbed": "{target}'s shield absorbs {amount} damage.",
        "combat.damaged": _damaged,
        "combat.insight_consumed": "{actor} strikes with {stacks} stacks of insight.",
        "combat.healed": "{target} recovers {amount} hp.",
        "combat.shield_gained": "{target} gains a {amount} point shield.",
        "combat.buff_gained": "{target} gains {buff}.",
        "combat.debuffed": "{target} is afflicted by {buff}.",
        "combat.buff_tick": _buff_tick,
        "combat.buff_expired": "{buff} fades from {target}.",
        "combat.defend": "{actor} takes a defensive stance.",
        "combat.observe": "{actor} studies the opponent ({stacks}/{max} insight).",
        "combat.flee_success": "You escape the battle.",
        "combat.flee_failed": "You fail to escape!",
        "combat.item_healed": "{actor} uses {item} and recovers {amount} hp.",
        "combat.item_restored": "{actor} uses {item} and recovers {amount} spiritual power.",
        "combat.item_damaged": "{actor} throws {item} at {target} for {amount} damage.",
        "combat.victory": "{enemy} is defeated. Victory!",
        "combat.defeat": "You have been defeated.",
    }
)


def _render(
    templates: Mapping[str, str | Callable[[Mapping[str, Any]], str]],
    key: str,
    params: Mapping[str, Any],
) -> str:
    template = templates.get(key)
    if template is None:
        return key
    if callable(template):
        return template(params)
    try:
        return template.format(**params)
    except (KeyError, IndexError, ValueError):
        log.warning("Log template %s is missing parameters: %s", key, dict(params))
        return key


def render_log(entry: GameLog, *, with_time: bool = False) -> str:
    text = _render(GAME_LOG_TEMPLATES, entry.key, entry.params)
    if with_time:
        return f"[{format_time(entry.timestamp)}] {text}"
    return text


def render_combat_log(entry: CombatLogEntry) -> str:
    return _render(COMBAT_LOG_TEMPLATES, entry.key, entry.params)


__all__ = [
    "COMBAT_LOG_TEMPLATES",
    "GAME_LOG_TEMPLATES",
    "render_combat_log",
    "render_log",
]
