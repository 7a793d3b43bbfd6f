"""Progression-related domain models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Realm(str, Enum):
    """Major cultivation realms, declared in ascending order."""

    QI_REFINING = "qi_refining"
    FOUNDATION = "foundation"
    CORE_FORMATION = "core_formation"
    NASCENT_SOUL = "nascent_soul"
    SPIRIT_TRANSFORMATION = "spirit_transformation"
    VOID_REFINING = "void_refining"
    BODY_INTEGRATION = "body_integration"
    MAHAYANA = "mahayana"
    TRIBULATION = "tribulation"

    @classmethod
    def from_value(cls, value: "Realm | str") -> "Realm":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace(" ", "_")
        return cls(normalized)

    @property
    def index(self) -> int:
        return REALM_ORDER.index(self)

    def next(self) -> "Realm | None":
        position = self.index
        if position + 1 >= len(REALM_ORDER):
            return None
        return REALM_ORDER[position + 1]


REALM_ORDER: tuple[Realm, ...] = tuple(Realm)


class ActivityType(str, Enum):
    """What the character spends their time on between ticks."""

    CLOSED_DOOR = "closed_door"
    MARKET_STATION = "market_station"
    TRAVEL = "travel"
    IDLE = "idle"

    @classmethod
    def from_value(cls, value: "ActivityType | str | None") -> "ActivityType":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.CLOSED_DOOR
        normalized = str(value).strip().lower().replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.CLOSED_DOOR


class BreakthroughState(str, Enum):
    """Readiness of a character to attempt a breakthrough.

    ``ACCRUING`` while cultivation is below the cap, ``READY_UNNOTIFIED`` once
    the cap is reached but the player has not been told, and
    ``READY_NOTIFIED`` after the one-time readiness log has been emitted.
    """

    ACCRUING = "accruing"
    READY_UNNOTIFIED = "ready_unnotified"
    READY_NOTIFIED = "ready_notified"

    @classmethod
    def from_value(cls, value: "BreakthroughState | str | None") -> "BreakthroughState":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.ACCRUING
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.ACCRUING

    @property
    def is_ready(self) -> bool:
        return self is not BreakthroughState.ACCRUING


@dataclass(frozen=True, slots=True)
class RealmInfo:
    realm: Realm
    name: str
    stages: int
    cultivation_required: int
    stats_multiplier: float

    def stage_label(self, stage: int) -> str:
        if self.stages > len(STAGE_NAMES):
            return f"Layer {stage}"
        if 1 <= stage <= len(STAGE_NAMES):
            return STAGE_NAMES[stage - 1]
        return f"Stage {stage}"

    def display_name(self, stage: int) -> str:
        return f"{self.name} {self.stage_label(stage)}"


STAGE_NAMES: tuple[str, ...] = ("Early", "Mid", "Late", "Peak")


@dataclass(frozen=True, slots=True)
class ActivityInfo:
    activity: ActivityType
    name: str
    cultivation_multiplier: float
    can_trade: bool
    can_encounter: bool


__all__ = [
    "ActivityInfo",
    "ActivityType",
    "BreakthroughState",
    "REALM_ORDER",
    "Realm",
    "RealmInfo",
    "STAGE_NAMES",
]
