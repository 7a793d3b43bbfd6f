from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.catalog import get_catalog
from xiuxian.combat import create_player_unit
from xiuxian.cultivation import create_initial_character
from xiuxian.models.character import SkillPoints
from xiuxian.models.progression import Realm
from xiuxian.skills import (
    LearnBlock,
    apply_passives,
    learn_block,
    learn_skill_node,
    passive_modifiers,
    reset_skill_tree,
    tree_progress,
)


def _with_points(points: int, *learned: str, realm: Realm = Realm.QI_REFINING):
    character = create_initial_character("Lin Feng")
    return replace(
        character,
        realm=realm,
        skill_points=SkillPoints(wudao_points=points, total_points_earned=points, learned=learned),
    )


def test_catalog_lists_four_trees_with_tier_defaults() -> None:
    catalog = get_catalog()

    assert set(catalog.skill_trees) == {"sword", "spell", "body", "mind"}
    assert catalog.skill_nodes["sword_t1_basic_form"].cost == 1
    assert catalog.skill_nodes["sword_t2_keen_edge"].cost == 2
    assert catalog.skill_nodes["sword_t3_one_heart"].realm is Realm.FOUNDATION
    assert catalog.skill_nodes["body_t4_iron_mountain"].cost == 5


def test_learning_spends_points_and_records_the_node() -> None:
    result = learn_skill_node(_with_points(3), "sword_t1_basic_form")

    assert result.learned
    assert result.node.name == "Basic Sword Form"
    assert result.character.skill_points.wudao_points == 2
    assert result.character.skill_points.learned == ("sword_t1_basic_form",)
    assert result.character.skill_points.total_points_earned == 3


@pytest.mark.parametrize(
    ("character", "node_id", "reason"),
    [
        (_with_points(5), "sword_t9_missing", LearnBlock.UNKNOWN_NODE),
        (_with_points(5, "sword_t1_basic_form"), "sword_t1_basic_form", LearnBlock.ALREADY_LEARNED),
        (_with_points(5, "sword_t2_keen_edge"), "sword_t3_one_heart", LearnBlock.REALM_TOO_LOW),
        (_with_points(0), "sword_t1_basic_form", LearnBlock.NOT_ENOUGH_POINTS),
        (_with_points(5), "sword_t2_keen_edge", LearnBlock.MISSING_PREREQUISITE),
    ],
)
def test_learning_is_blocked(character, node_id: str, reason: LearnBlock) -> None:
    result = learn_skill_node(character, node_id)

    assert learn_block(character, node_id) is reason
    assert result.blocked is reason
    assert result.character is character


def test_exclusive_nodes_shut_each_other_out() -> None:
    fused = _with_points(
        10,
        "spell_t2_fire_mastery",
        "spell_t2_water_mastery",
        "sword_t2_keen_edge",
        "spell_t3_element_fusion",
        realm=Realm.FOUNDATION,
    )

    assert learn_block(fused, "sword_t3_one_heart") is LearnBlock.EXCLUSIVE_CONFLICT


def test_reset_refunds_most_of_the_cost() -> None:
    character = _with_points(0, "sword_t1_basic_form", "body_t1_iron_skin", "sword_t2_keen_edge")

    result = reset_skill_tree(character, "sword")

    assert result.removed == ("sword_t1_basic_form", "sword_t2_keen_edge")
    # floor(1 * 0.8) + floor(2 * 0.8)
    assert result.refunded == 1
    assert result.character.skill_points.wudao_points == 1
    assert result.character.skill_points.learned == ("body_t1_iron_skin",)


def test_resetting_an_empty_or_unknown_tree_changes_nothing() -> None:
    character = _with_points(2, "body_t1_iron_skin")

    assert reset_skill_tree(character, "sword").character is character
    assert reset_skill_tree(character, "alchemy").refunded == 0


def test_tree_progress_counts_learned_nodes() -> None:
    character = _with_points(0, "mind_t1_meditation", "sword_t1_intent")

    assert tree_progress(character, "mind") == (1, 4)
    assert tree_progress(character, "body") == (0, 5)


def test_modifiers_stack_per_stat() -> None:
    totals = passive_modifiers(["sword_t1_basic_form", "sword_t2_keen_edge", "sword_t1_intent", "gone"])

    assert totals["attack"] == (15.0, 0.0)
    assert totals["crit"] == (0.0, 3.0)


def test_learned_nodes_strengthen_the_player_in_battle() -> None:
    plain = create_player_unit(_with_points(0)).stats
    trained = create_player_unit(
        _with_points(0, "sword_t1_basic_form", "sword_t1_intent", "sword_t2_blood_mark")
    ).stats

    assert trained.attack == int(plain.attack * 1.05)
    assert trained.crit == plain.crit + 3
    assert trained.crit_damage == pytest.approx(plain.crit_damage * 1.1)
    assert trained.defense == plain.defense


def test_raising_max_hp_raises_current_hp_by_the_same_amount() -> None:
    plain = create_player_unit(_with_points(0)).stats
    wounded = replace(plain, hp=plain.hp - 10)

    boosted = apply_passives(wounded, ["body_t2_stone_body"])

    gained = boosted.max_hp - plain.max_hp
    assert boosted.max_hp == int(plain.max_hp * 1.1)
    assert boosted.hp == wounded.hp + gained
    assert apply_passives(wounded, []) is wounded
