"""Combat-related domain models.

Static definitions (skills, buffs, enemy templates) are loaded from the combat
catalog; the mutable-looking parts of a battle (units, buffs in play, the
combat log) are frozen snapshots replaced on every action.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from ._validation import (
    FieldSpec,
    ModelValidator,
    SequenceSpec,
    enum_value,
    is_non_empty_str,
    validate_payload,
)
from .items import InventoryItem
from .progression import Realm


class Element(str, Enum):
    FIRE = "fire"
    WATER = "water"
    WOOD = "wood"
    METAL = "metal"
    EARTH = "earth"
    WIND = "wind"

    @classmethod
    def from_value(cls, value: "Element | str | None") -> Optional["Element"]:
        if value is None or isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if not normalized or normalized == "neutral":
            return None
        return cls(normalized)


NEUTRAL_QI = "neutral"


class SkillType(str, Enum):
    BASIC = "basic"
    ATTACK = "attack"
    DEFENSE = "defense"
    SUPPORT = "support"
    ULTIMATE = "ultimate"

    @classmethod
    def from_value(cls, value: "SkillType | str | None") -> "SkillType":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.ATTACK
        return cls(str(value).strip().lower())

    @property
    def deals_damage(self) -> bool:
        return self in (SkillType.BASIC, SkillType.ATTACK, SkillType.ULTIMATE)


class SkillTarget(str, Enum):
    ENEMY = "enemy"
    SELF = "self"


class EffectKind(str, Enum):
    DAMAGE = "damage"
    HEAL = "heal"
    SHIELD = "shield"
    BUFF = "buff"
    DEBUFF = "debuff"


class CombatPhase(str, Enum):
    IDLE = "idle"
    PLAYER_TURN = "player_turn"
    ENEMY_TURN = "enemy_turn"
    VICTORY = "victory"
    DEFEAT = "defeat"
    FLED = "fled"

    @property
    def is_terminal(self) -> bool:
        return self in (CombatPhase.VICTORY, CombatPhase.DEFEAT, CombatPhase.FLED)


class CombatSide(str, Enum):
    PLAYER = "player"
    ENEMY = "enemy"


class CombatLogKind(str, Enum):
    ACTION = "action"
    DAMAGE = "damage"
    CRITICAL = "critical"
    MISS = "miss"
    HEAL = "heal"
    BUFF = "buff"
    SYSTEM = "system"


class AICondition(str, Enum):
    HP_BELOW = "hp_below"
    HP_ABOVE = "hp_above"
    MP_BELOW = "mp_below"
    MP_ABOVE = "mp_above"
    TARGET_HP_BELOW = "target_hp_below"
    TARGET_HP_ABOVE = "target_hp_above"
    HAS_BUFF = "has_buff"
    TARGET_HAS_DEBUFF = "target_has_debuff"
    RANDOM = "random"
    ALWAYS = "always"


class AIAction(str, Enum):
    USE_SKILL = "use_skill"
    DEFEND = "defend"


class CombatItemKind(str, Enum):
    HEAL = "heal"
    RESTORE_MP = "restore_mp"
    DAMAGE = "damage"
    BUFF = "buff"


# ---------------------------------------------------------------------------
# Static definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class StatModifier:
    stat: str
    value: float
    percent: bool = True


@dataclass(frozen=True, slots=True)
class BuffEffect:
    """A damage, heal or shield effect sized as a percentage of ``stat``."""

    kind: EffectKind
    value: float
    stat: str = "max_hp"


@dataclass(frozen=True, slots=True)
class BuffTemplate:
    id: str
    name: str
    debuff: bool
    duration: int
    max_stacks: int = 1
    modifiers: tuple[StatModifier, ...] = ()
    turn_start: tuple[BuffEffect, ...] = ()
    turn_end: tuple[BuffEffect, ...] = ()
    on_apply: tuple[BuffEffect, ...] = ()

    @property
    def stackable(self) -> bool:
        return self.max_stacks > 1


@dataclass(frozen=True, slots=True)
class SkillEffect:
    kind: EffectKind
    value: float = 1.0
    buff_id: str | None = None
    stat: str = "max_hp"


@dataclass(frozen=True, slots=True)
class CombatSkill:
    id: str
    name: str
    type: SkillType
    power: float
    element: Element | None = None
    cost_mp: int = 0
    cost_qi: int = 0
    qi_element: Element | None = None
    cooldown: int = 0
    target: SkillTarget = SkillTarget.ENEMY
    hit_bonus: float = 0.0
    crit_bonus: float = 0.0
    effects: tuple[SkillEffect, ...] = ()

    @property
    def is_damaging(self) -> bool:
        return self.power > 0 and self.type.deals_damage


@dataclass(frozen=True, slots=True)
class AIRule:
    condition: AICondition
    priority: int
    action: AIAction = AIAction.USE_SKILL
    skill_id: str | None = None
    value: float = 0.0
    buff_id: str | None = None


@dataclass(frozen=True, slots=True)
class LootEntry:
    item_id: str
    chance: float
    min_quantity: int = 1
    max_quantity: int = 1


@dataclass(frozen=True, slots=True)
class CombatItem:
    item_id: str
    kind: CombatItemKind
    value: float = 0.0
    element: Element | None = None
    buff_id: str | None = None


# ---------------------------------------------------------------------------
# Battle snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CombatStats:
    hp: int
    max_hp: int
    mp: int
    max_mp: int
    attack: int
    defense: int
    speed: int
    accuracy: int
    evasion: int
    crit: int
    crit_damage: float = 1.5
    wisdom: int = 0
    sense: int = 0
    resistances: Mapping[str, int] = field(default_factory=dict)

    def resistance(self, element: Element | None) -> int:
        if element is None:
            return 0
        return int(self.resistances.get(element.value, 0))

    def to_dict(self) -> dict[str, Any]:
        return {
            "hp": self.hp,
            "max_hp": self.max_hp,
            "mp": self.mp,
            "max_mp": self.max_mp,
            "attack": self.attack,
            "defense": self.defense,
            "speed": self.speed,
            "accuracy": self.accuracy,
            "evasion": self.evasion,
            "crit": self.crit,
            "crit_damage": self.crit_damage,
            "wisdom": self.wisdom,
            "sense": self.sense,
            "resistances": dict(self.resistances),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CombatStats":
        payload = validate_payload(cls, data)
        return cls(
            hp=payload["hp"],
            max_hp=payload["max_hp"],
            mp=payload["mp"],
            max_mp=payload["max_mp"],
            attack=payload["attack"],
            defense=payload["defense"],
            speed=payload["speed"],
            accuracy=payload["accuracy"],
            evasion=payload["evasion"],
            crit=payload["crit"],
            crit_damage=float(payload.get("crit_damage", 1.5)),
            wisdom=payload.get("wisdom", 0),
            sense=payload.get("sense", 0),
            resistances={
                str(key): int(value)
                for key, value in (payload.get("resistances") or {}).items()
            },
        )


class CombatStatsValidator(ModelValidator):
    model = CombatStats
    fields = {
        "hp": FieldSpec(int, "non-negative hp", minimum=0),
        "max_hp": FieldSpec(int, "positive max hp", minimum=1),
        "mp": FieldSpec(int, "non-negative mp", minimum=0),
        "max_mp": FieldSpec(int, "non-negative max mp", minimum=0),
        "attack": FieldSpec(int, "an attack value"),
        "defense": FieldSpec(int, "a defense value"),
        "speed": FieldSpec(int, "a speed value"),
        "accuracy": FieldSpec(int, "an accuracy value"),
        "evasion": FieldSpec(int, "an evasion value"),
        "crit": FieldSpec(int, "a crit value"),
    }


CombatStats.validator = CombatStatsValidator


@dataclass(frozen=True, slots=True)
class ActiveBuff:
    buff_id: str
    remaining_duration: int
    stacks: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "buff_id": self.buff_id,
            "remaining_duration": self.remaining_duration,
            "stacks": self.stacks,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActiveBuff":
        return cls(
            buff_id=str(data["buff_id"]),
            remaining_duration=int(data["remaining_duration"]),
            stacks=max(1, int(data.get("stacks", 1))),
        )


@dataclass(frozen=True, slots=True)
class QiGauge:
    """Elemental qi accumulated by using skills; ultimates spend it."""

    fire: int = 0
    water: int = 0
    wood: int = 0
    metal: int = 0
    earth: int = 0
    wind: int = 0
    neutral: int = 0

    @staticmethod
    def _key(element: Element | None) -> str:
        return element.value if element is not None else NEUTRAL_QI

    def get(self, element: Element | None) -> int:
        return getattr(self, self._key(element))

    def add(self, element: Element | None, amount: int, cap: int) -> "QiGauge":
        key = self._key(element)
        values = self.to_dict()
        values[key] = max(0, min(cap, values[key] + amount))
        return QiGauge(**values)

    def consume(self, element: Element | None, amount: int) -> Optional["QiGauge"]:
        key = self._key(element)
        values = self.to_dict()
        if values[key] < amount:
            return None
        values[key] -= amount
        return QiGauge(**values)

    def to_dict(self) -> Dict[str, int]:
        return {
            "fire": self.fire,
            "water": self.water,
            "wood": self.wood,
            "metal": self.metal,
            "earth": self.earth,
            "wind": self.wind,
            "neutral": self.neutral,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "QiGauge":
        if not data:
            return cls()
        known = cls().to_dict()
        return cls(**{key: max(0, int(data.get(key, 0))) for key in known})


@dataclass(frozen=True, slots=True)
class CombatUnit:
    id: str
    name: str
    is_player: bool
    stats: CombatStats
    skills: tuple[str, ...]
    element: Element | None = None
    cooldowns: Mapping[str, int] = field(default_factory=dict)
    buffs: tuple[ActiveBuff, ...] = ()
    qi_gauge: QiGauge = field(default_factory=QiGauge)
    shield: int = 0
    insight_stacks: int = 0
    is_defending: bool = False

    @property
    def is_alive(self) -> bool:
        return self.stats.hp > 0

    def cooldown_of(self, skill_id: str) -> int:
        return int(self.cooldowns.get(skill_id, 0))

    def buff(self, buff_id: str) -> Optional[ActiveBuff]:
        for active in self.buffs:
            if active.buff_id == buff_id:
                return active
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "is_player": self.is_player,
            "stats": self.stats.to_dict(),
            "skills": list(self.skills),
            "element": self.element.value if self.element else None,
            "cooldowns": dict(self.cooldowns),
            "buffs": [active.to_dict() for active in self.buffs],
            "qi_gauge": self.qi_gauge.to_dict(),
            "shield": self.shield,
            "insight_stacks": self.insight_stacks,
            "is_defending": self.is_defending,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CombatUnit":
        payload = validate_payload(cls, data)
        return cls(
            id=payload["id"],
            name=payload["name"],
            is_player=payload["is_player"],
            stats=CombatStats.from_dict(payload["stats"]),
            skills=tuple(payload["skills"]),
            element=Element.from_value(payload.get("element")),
            cooldowns={
                str(key): int(value) for key, value in (payload.get("cooldowns") or {}).items()
            },
            buffs=tuple(ActiveBuff.from_dict(entry) for entry in payload.get("buffs", ())),
            qi_gauge=QiGauge.from_dict(payload.get("qi_gauge")),
            shield=max(0, int(payload.get("shield", 0))),
            insight_stacks=max(0, int(payload.get("insight_stacks", 0))),
            is_defending=bool(payload.get("is_defending", False)),
        )


class CombatUnitValidator(ModelValidator):
    model = CombatUnit
    fields = {
        "id": FieldSpec(is_non_empty_str, "a unit id"),
        "name": FieldSpec(str, "a unit name"),
        "is_player": FieldSpec(bool, "a player flag"),
        "stats": FieldSpec(dict, "a combat stats mapping"),
        "skills": FieldSpec(SequenceSpec(str), "a list of skill ids"),
        "element": FieldSpec(str, "an element", required=False, allow_none=True),
        "buffs": FieldSpec(SequenceSpec(dict), "a list of buffs", required=False),
    }


CombatUnit.validator = CombatUnitValidator


@dataclass(frozen=True, slots=True)
class CombatLogEntry:
    kind: CombatLogKind
    key: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "key": self.key, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CombatLogEntry":
        return cls(
            kind=CombatLogKind(data.get("kind", "system")),
            key=str(data["key"]),
            params=dict(data.get("params") or {}),
        )


@dataclass(frozen=True, slots=True)
class CombatRewards:
    spirit_stones: int
    items: tuple[InventoryItem, ...]
    cultivation_exp: int
    is_boss: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "spirit_stones": self.spirit_stones,
            "items": [item.to_dict() for item in self.items],
            "cultivation_exp": self.cultivation_exp,
            "is_boss": self.is_boss,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CombatRewards":
        return cls(
            spirit_stones=max(0, int(data.get("spirit_stones", 0))),
            items=tuple(InventoryItem.from_dict(entry) for entry in data.get("items", ())),
            cultivation_exp=max(0, int(data.get("cultivation_exp", 0))),
            is_boss=bool(data.get("is_boss", False)),
        )


@dataclass(frozen=True, slots=True)
class CombatState:
    in_combat: bool = False
    phase: CombatPhase = CombatPhase.IDLE
    round: int = 0
    player_unit: CombatUnit | None = None
    enemy_unit: CombatUnit | None = None
    enemy_id: str | None = None
    turn_order: tuple[CombatSide, ...] = ()
    current_turn_index: int = 0
    combat_log: tuple[CombatLogEntry, ...] = ()
    rewards: CombatRewards | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "in_combat": self.in_combat,
            "phase": self.phase.value,
            "round": self.round,
            "player_unit": self.player_unit.to_dict() if self.player_unit else None,
            "enemy_unit": self.enemy_unit.to_dict() if self.enemy_unit else None,
            "enemy_id": self.enemy_id,
            "turn_order": [side.value for side in self.turn_order],
            "current_turn_index": self.current_turn_index,
            "combat_log": [entry.to_dict() for entry in self.combat_log],
            "rewards": self.rewards.to_dict() if self.rewards else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "CombatState":
        if not data:
            return cls()
        payload = validate_payload(cls, data)
        player = payload.get("player_unit")
        enemy = payload.get("enemy_unit")
        rewards = payload.get("rewards")
        return cls(
            in_combat=payload["in_combat"],
            phase=CombatPhase(payload["phase"]),
            round=payload.get("round", 0),
            player_unit=CombatUnit.from_dict(player) if player else None,
            enemy_unit=CombatUnit.from_dict(enemy) if enemy else None,
            enemy_id=payload.get("enemy_id"),
            turn_order=tuple(CombatSide(side) for side in payload.get("turn_order", ())),
            current_turn_index=payload.get("current_turn_index", 0),
            combat_log=tuple(
                CombatLogEntry.from_dict(entry) for entry in payload.get("combat_log", ())
            ),
            rewards=CombatRewards.from_dict(rewards) if rewards else None,
        )


class CombatStateValidator(ModelValidator):
    model = CombatState
    fields = {
        "in_combat": FieldSpec(bool, "an in-combat flag"),
        "phase": FieldSpec(enum_value(CombatPhase), "a combat phase"),
        "round": FieldSpec(int, "a round number", required=False, minimum=0),
        "player_unit": FieldSpec(dict, "a player unit", required=False, allow_none=True),
        "enemy_unit": FieldSpec(dict, "an enemy unit", required=False, allow_none=True),
        "enemy_id": FieldSpec(str, "an enemy template id", required=False, allow_none=True),
        "turn_order": FieldSpec(
            SequenceSpec(enum_value(CombatSide)), "a turn order", required=False
        ),
        "rewards": FieldSpec(dict, "a rewards mapping", required=False, allow_none=True),
    }


CombatState.validator = CombatStateValidator


@dataclass(frozen=True, slots=True)
class EnemyTemplate:
    id: str
    name: str
    realm: Realm
    level: int
    stats: CombatStats
    skills: tuple[str, ...]
    ai_rules: tuple[AIRule, ...]
    loot: tuple[LootEntry, ...]
    spirit_stones: tuple[int, int]
    element: Element | None = None
    is_boss: bool = False


__all__ = [
    "AIAction",
    "AICondition",
    "AIRule",
    "ActiveBuff",
    "BuffEffect",
    "BuffTemplate",
    "CombatItem",
    "CombatItemKind",
    "CombatLogEntry",
    "CombatLogKind",
    "CombatPhase",
    "CombatRewards",
    "CombatSide",
    "CombatSkill",
    "CombatState",
    "CombatStats",
    "CombatUnit",
    "EffectKind",
    "Element",
    "EnemyTemplate",
    "LootEntry",
    "NEUTRAL_QI",
    "QiGauge",
    "SkillEffect",
    "SkillTarget",
    "SkillType",
    "StatModifier",
]
