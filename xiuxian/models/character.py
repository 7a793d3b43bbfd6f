"""Character aggregate: realm progress, stats, inventory and purse."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Mapping

from ._validation import (
    FieldSpec,
    ModelValidationError,
    ModelValidator,
    SequenceSpec,
    enum_value,
    is_non_empty_str,
    validate_payload,
)
from .items import Inventory
from .progression import ActivityType, BreakthroughState, Realm


@dataclass(frozen=True, slots=True)
class CharacterStats:
    hp: int
    max_hp: int
    spiritual_power: int
    max_spiritual_power: int
    divine_sense: int
    comprehension: int
    luck: int
    speed: int
    attack: int
    defense: int

    def to_dict(self) -> dict[str, int]:
        return {name: getattr(self, name) for name in _STAT_FIELDS}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CharacterStats":
        payload = validate_payload(cls, data)
        return cls(**{name: payload[name] for name in _STAT_FIELDS})


_STAT_FIELDS: tuple[str, ...] = (
    "hp",
    "max_hp",
    "spiritual_power",
    "max_spiritual_power",
    "divine_sense",
    "comprehension",
    "luck",
    "speed",
    "attack",
    "defense",
)


class CharacterStatsValidator(ModelValidator):
    model = CharacterStats
    fields = {
        name: FieldSpec(int, f"a non-negative {name.replace('_', ' ')}", minimum=0)
        for name in _STAT_FIELDS
    }


CharacterStats.validator = CharacterStatsValidator


@dataclass(frozen=True, slots=True)
class SkillPoints:
    """Wudao points and the skill tree nodes bought with them."""

    wudao_points: int = 0
    total_points_earned: int = 0
    learned: tuple[str, ...] = ()

    def award(self, amount: int) -> "SkillPoints":
        if amount <= 0:
            return self
        return replace(
            self,
            wudao_points=self.wudao_points + amount,
            total_points_earned=self.total_points_earned + amount,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "wudao_points": self.wudao_points,
            "total_points_earned": self.total_points_earned,
            "learned": list(self.learned),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "SkillPoints":
        if not data:
            return cls()
        payload = validate_payload(cls, data)
        return cls(
            wudao_points=max(0, int(payload.get("wudao_points", 0))),
            total_points_earned=max(0, int(payload.get("total_points_earned", 0))),
            learned=tuple(dict.fromkeys(payload.get("learned", ()))),
        )


class SkillPointsValidator(ModelValidator):
    model = SkillPoints
    fields = {
        "wudao_points": FieldSpec(int, "a wudao point balance", required=False),
        "total_points_earned": FieldSpec(int, "a lifetime point total", required=False),
        "learned": FieldSpec(SequenceSpec(str), "a list of skill node ids", required=False),
    }


SkillPoints.validator = SkillPointsValidator


@dataclass(frozen=True, slots=True)
class Character:
    """The player's cultivator.

    ``extensions`` carries subsystem payloads (skill trees, spirit beasts,
    talents, equipment) that the simulation core passes through untouched.
    """

    name: str
    realm: Realm
    realm_stage: int
    cultivation_value: int
    cultivation_max: int
    breakthrough: BreakthroughState
    stats: CharacterStats
    current_activity: ActivityType
    inventory: Inventory
    spirit_stones: int
    reputation: int = 0
    skill_points: SkillPoints = field(default_factory=SkillPoints)
    extensions: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "realm": self.realm.value,
            "realm_stage": self.realm_stage,
            "cultivation_value": self.cultivation_value,
            "cultivation_max": self.cultivation_max,
            "breakthrough": self.breakthrough.value,
            "stats": self.stats.to_dict(),
            "current_activity": self.current_activity.value,
            "inventory": self.inventory.to_dict(),
            "spirit_stones": self.spirit_stones,
            "reputation": self.reputation,
            "skill_points": self.skill_points.to_dict(),
            "extensions": dict(self.extensions),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Character":
        payload = validate_payload(cls, data)
        if payload["cultivation_value"] > payload["cultivation_max"]:
            raise ModelValidationError(
                cls, ["Field 'cultivation_value' exceeds 'cultivation_max'"]
            )
        return cls(
            name=payload["name"],
            realm=Realm.from_value(payload["realm"]),
            realm_stage=payload["realm_stage"],
            cultivation_value=payload["cultivation_value"],
            cultivation_max=payload["cultivation_max"],
            breakthrough=BreakthroughState.from_value(payload.get("breakthrough")),
            stats=CharacterStats.from_dict(payload["stats"]),
            current_activity=ActivityType.from_value(payload["current_activity"]),
            inventory=Inventory.from_dict(payload["inventory"]),
            spirit_stones=payload["spirit_stones"],
            reputation=payload.get("reputation", 0),
            skill_points=SkillPoints.from_dict(payload.get("skill_points")),
            extensions=dict(payload.get("extensions") or {}),
        )


class CharacterValidator(ModelValidator):
    model = Character
    fields = {
        "name": FieldSpec(is_non_empty_str, "a non-empty name"),
        "realm": FieldSpec(enum_value(Realm), "a known realm"),
        "realm_stage": FieldSpec(int, "a stage of at least 1", minimum=1),
        "cultivation_value": FieldSpec(int, "a non-negative cultivation value", minimum=0),
        "cultivation_max": FieldSpec(int, "a positive cultivation ceiling", minimum=1),
        "breakthrough": FieldSpec(
            enum_value(BreakthroughState), "a breakthrough state", required=False
        ),
        "stats": FieldSpec(dict, "a stats mapping"),
        "current_activity": FieldSpec(enum_value(ActivityType), "a known activity"),
        "inventory": FieldSpec(dict, "an inventory mapping"),
        "spirit_stones": FieldSpec(int, "a non-negative spirit stone balance", minimum=0),
        "reputation": FieldSpec(int, "a reputation score", required=False),
        "skill_points": FieldSpec(dict, "a skill point mapping", required=False),
        "extensions": FieldSpec(
            dict, "a mapping of subsystem payloads", required=False, allow_none=True
        ),
    }


Character.validator = CharacterValidator


__all__ = ["Character", "CharacterStats", "SkillPoints"]
