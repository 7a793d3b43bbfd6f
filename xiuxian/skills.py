"""Wudao skill tree: learning nodes with wudao points and their passive bonuses."""

from __future__ import annotations

import math
from dataclasses import replace
from enum import Enum
from typing import Iterable, NamedTuple, Optional

from .catalog import Catalog, SkillNode, get_catalog
from .models.character import Character
from .models.combat import CombatStats

RESET_REFUND_RATE = 0.8


class LearnBlock(str, Enum):
    """Why a node cannot be learned right now."""

    UNKNOWN_NODE = "unknown_node"
    ALREADY_LEARNED = "already_learned"
    REALM_TOO_LOW = "realm_too_low"
    NOT_ENOUGH_POINTS = "not_enough_points"
    MISSING_PREREQUISITE = "missing_prerequisite"
    EXCLUSIVE_CONFLICT = "exclusive_conflict"


class LearnResult(NamedTuple):
    character: Character
    node: Optional[SkillNode]
    blocked: Optional[LearnBlock]

    @property
    def learned(self) -> bool:
        return self.blocked is None


class ResetResult(NamedTuple):
    character: Character
    removed: tuple[str, ...]
    refunded: int


def learn_block(
    character: Character, node_id: str, catalog: Catalog | None = None
) -> Optional[LearnBlock]:
    """Return the first reason ``node_id`` cannot be learned, or ``None``."""

    catalog = catalog or get_catalog()
    node = catalog.skill_nodes.get(node_id)
    if node is None:
        return LearnBlock.UNKNOWN_NODE
    learned = set(character.skill_points.learned)
    if node.id in learned:
        return LearnBlock.ALREADY_LEARNED
    if character.realm.index < node.realm.index:
        return LearnBlock.REALM_TOO_LOW
    if character.skill_points.wudao_points < node.cost:
        return LearnBlock.NOT_ENOUGH_POINTS
    if any(required not in learned for required in node.prerequisites):
        return LearnBlock.MISSING_PREREQUISITE
    if any(other in learned for other in node.exclusive):
        return LearnBlock.EXCLUSIVE_CONFLICT
    return None


def learn_skill_node(
    character: Character, node_id: str, catalog: Catalog | None = None
) -> LearnResult:
    catalog = catalog or get_catalog()
    blocked = learn_block(character, node_id, catalog)
    node = catalog.skill_nodes.get(node_id)
    if blocked is not None:
        return LearnResult(character, node, blocked)
    points = character.skill_points
    updated = replace(
        points,
        wudao_points=points.wudao_points - node.cost,
        learned=(*points.learned, node.id),
    )
    return LearnResult(replace(character, skill_points=updated), node, None)


def reset_skill_tree(
    character: Character, tree: str, catalog: Catalog | None = None
) -> ResetResult:
    """Forget every node of ``tree`` and refund 80% of their cost, rounded down."""

    catalog = catalog or get_catalog()
    points = character.skill_points
    tree_nodes = {node.id for node in catalog.skill_nodes.values() if node.tree == tree}
    removed = tuple(node_id for node_id in points.learned if node_id in tree_nodes)
    if not removed:
        return ResetResult(character, (), 0)
    refunded = sum(
        math.floor(catalog.skill_nodes[node_id].cost * RESET_REFUND_RATE) for node_id in removed
    )
    updated = replace(
        points,
        wudao_points=points.wudao_points + refunded,
        learned=tuple(node_id for node_id in points.learned if node_id not in removed),
    )
    return ResetResult(replace(character, skill_points=updated), removed, refunded)


def tree_progress(
    character: Character, tree: str, catalog: Catalog | None = None
) -> tuple[int, int]:
    """Return ``(learned, total)`` node counts for ``tree``."""

    catalog = catalog or get_catalog()
    nodes = [node.id for node in catalog.skill_nodes.values() if node.tree == tree]
    learned = set(character.skill_points.learned)
    return sum(1 for node_id in nodes if node_id in learned), len(nodes)


def passive_modifiers(
    learned: Iterable[str], catalog: Catalog | None = None
) -> dict[str, tuple[float, float]]:
    """Sum learned node modifiers into ``{stat: (percent, flat)}``; unknown ids are skipped."""

    catalog = catalog or get_catalog()
    totals: dict[str, tuple[float, float]] = {}
    for node_id in learned:
        node = catalog.skill_nodes.get(node_id)
        if node is None:
            continue
        for modifier in node.modifiers:
            percent, flat = totals.get(modifier.stat, (0.0, 0.0))
            if modifier.percent:
                percent += modifier.value
            else:
                flat += modifier.value
            totals[modifier.stat] = (percent, flat)
    return totals


def apply_passives(
    stats: CombatStats, learned: Iterable[str], catalog: Catalog | None = None
) -> CombatStats:
    """Return ``stats`` with skill tree bonuses applied.

    Raising a maximum raises the current value by the same amount.
    """

    changes: dict[str, float | int] = {}
    for stat, (percent, flat) in passive_modifiers(learned, catalog).items():
        base = getattr(stats, stat)
        value = base * (1 + percent / 100) + flat
        changes[stat] = value if isinstance(base, float) else max(0, math.floor(value))
    if not changes:
        return stats
    if "max_hp" in changes:
        changes["hp"] = max(0, stats.hp + changes["max_hp"] - stats.max_hp)
    if "max_mp" in changes:
        changes["mp"] = max(0, stats.mp + changes["max_mp"] - stats.max_mp)
    return replace(stats, **changes)


__all__ = [
    "LearnBlock",
    "LearnResult",
    "RESET_REFUND_RATE",
    "ResetResult",
    "apply_passives",
    "learn_block",
    "learn_skill_node",
    "passive_modifiers",
    "reset_skill_tree",
    "tree_progress",
]
