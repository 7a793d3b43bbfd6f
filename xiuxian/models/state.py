"""Root game-state aggregate and the structured game log."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

from ._validation import (
    FieldSpec,
    ModelValidator,
    SequenceSpec,
    enum_value,
    is_non_empty_str,
    validate_payload,
)
from .character import Character
from .combat import CombatState
from .market import Market
from .time import GameTime

LOG_LIMIT = 100


class LogType(str, Enum):
    SYSTEM = "system"
    CULTIVATION = "cultivation"
    BREAKTHROUGH = "breakthrough"
    ACTIVITY = "activity"
    MARKET = "market"
    COMBAT = "combat"
    EVENT = "event"

    @classmethod
    def from_value(cls, value: "LogType | str | None") -> "LogType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.SYSTEM


@dataclass(frozen=True, slots=True)
class GameLog:
    """A narration event. ``key`` and ``params`` are rendered by the front end."""

    timestamp: GameTime
    type: LogType
    key: str
    params: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.to_dict(),
            "type": self.type.value,
            "key": self.key,
            "params": dict(self.params),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameLog":
        payload = validate_payload(cls, data)
        return cls(
            timestamp=GameTime.from_dict(payload["timestamp"]),
            type=LogType.from_value(payload["type"]),
            key=payload["key"],
            params=dict(payload.get("params") or {}),
        )


class GameLogValidator(ModelValidator):
    model = GameLog
    fields = {
        "timestamp": FieldSpec(dict, "a game time"),
        "type": FieldSpec(enum_value(LogType), "a log type"),
        "key": FieldSpec(is_non_empty_str, "a message key"),
        "params": FieldSpec(dict, "message parameters", required=False, allow_none=True),
    }


GameLog.validator = GameLogValidator


def append_logs(logs: tuple[GameLog, ...], entries: Iterable[GameLog | None]) -> tuple[GameLog, ...]:
    """Append ``entries`` and keep only the newest :data:`LOG_LIMIT` logs."""

    added = tuple(entry for entry in entries if entry is not None)
    if not added:
        return logs
    return (*logs, *added)[-LOG_LIMIT:]


@dataclass(frozen=True, slots=True)
class GameSettings:
    auto_save: bool = True
    sound_enabled: bool = False
    notifications_enabled: bool = True

    def to_dict(self) -> dict[str, bool]:
        return {
            "auto_save": self.auto_save,
            "sound_enabled": self.sound_enabled,
            "notifications_enabled": self.notifications_enabled,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "GameSettings":
        if not data:
            return cls()
        defaults = cls()
        return cls(
            auto_save=bool(data.get("auto_save", defaults.auto_save)),
            sound_enabled=bool(data.get("sound_enabled", defaults.sound_enabled)),
            notifications_enabled=bool(
                data.get("notifications_enabled", defaults.notifications_enabled)
            ),
        )


@dataclass(frozen=True, slots=True)
class GameState:
    character: Character
    time: GameTime
    market: Market
    combat: CombatState = field(default_factory=CombatState)
    logs: tuple[GameLog, ...] = ()
    is_paused: bool = False
    game_speed: float = 1.0
    settings: GameSettings = field(default_factory=GameSettings)

    def to_dict(self) -> dict[str, Any]:
        return {
            "character": self.character.to_dict(),
            "time": self.time.to_dict(),
            "market": self.market.to_dict(),
            "combat": self.combat.to_dict(),
            "logs": [entry.to_dict() for entry in self.logs],
            "is_paused": self.is_paused,
            "game_speed": self.game_speed,
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GameState":
        payload = validate_payload(cls, data)
        return cls(
            character=Character.from_dict(payload["character"]),
            time=GameTime.from_dict(payload["time"]),
            market=Market.from_dict(payload["market"]),
            combat=CombatState.from_dict(payload.get("combat")),
            logs=tuple(GameLog.from_dict(entry) for entry in payload.get("logs", ()))[
                -LOG_LIMIT:
            ],
            is_paused=payload.get("is_paused", False),
            game_speed=float(payload.get("game_speed", 1.0)),
            settings=GameSettings.from_dict(payload.get("settings")),
        )


class GameStateValidator(ModelValidator):
    model = GameState
    fields = {
        "character": FieldSpec(dict, "a character mapping"),
        "time": FieldSpec(dict, "a game time"),
        "market": FieldSpec(dict, "a market mapping"),
        "combat": FieldSpec(dict, "a combat mapping", required=False, allow_none=True),
        "logs": FieldSpec(SequenceSpec(dict), "a list of log entries", required=False),
        "is_paused": FieldSpec(bool, "a pause flag", required=False),
        "game_speed": FieldSpec(float, "a positive game speed", required=False, minimum=0.01),
        "settings": FieldSpec(dict, "a settings mapping", required=False, allow_none=True),
    }


GameState.validator = GameStateValidator


__all__ = [
    "GameLog",
    "GameSettings",
    "GameState",
    "LOG_LIMIT",
    "LogType",
    "append_logs",
]
