"""Domain models for the cultivation simulation."""

from ._validation import ModelValidationError, validate_payload
from .character import Character, CharacterStats, SkillPoints
from .combat import (
    CombatLogEntry,
    CombatPhase,
    CombatRewards,
    CombatState,
    CombatUnit,
    Element,
)
from .items import Inventory, InventoryItem, ItemDefinition
from .market import Market, MarketEvent, MarketItem
from .progression import ActivityType, BreakthroughState, Realm, RealmInfo
from .state import GameLog, GameSettings, GameState, LogType
from .time import GameTime

__all__ = [
    "ActivityType",
    "BreakthroughState",
    "Character",
    "CharacterStats",
    "CombatLogEntry",
    "CombatPhase",
    "CombatRewards",
    "CombatState",
    "CombatUnit",
    "Element",
    "GameLog",
    "GameSettings",
    "GameState",
    "GameTime",
    "Inventory",
    "InventoryItem",
    "ItemDefinition",
    "LogType",
    "Market",
    "MarketEvent",
    "MarketItem",
    "ModelValidationError",
    "Realm",
    "RealmInfo",
    "SkillPoints",
    "validate_payload",
]
