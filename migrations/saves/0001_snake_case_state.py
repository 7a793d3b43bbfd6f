"""Convert unversioned camelCase saves into the snake_case state layout."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping, Sequence
import re
from typing import Any

FROM_VERSION = 1
TO_VERSION = 2
DESCRIPTION = "Rename camelCase save fields and replace breakthroughNotified with a state enum"


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

_CHARACTER_CORE_KEYS = {
    "name",
    "realm",
    "realmStage",
    "cultivationValue",
    "cultivationMax",
    "breakthroughNotified",
    "stats",
    "inventory",
    "spiritStones",
    "reputation",
    "currentActivity",
    "skillPoints",
}

_STAT_KEYS = (
    "hp",
    "maxHp",
    "spiritualPower",
    "maxSpiritualPower",
    "divineSense",
    "comprehension",
    "luck",
    "speed",
    "attack",
    "defense",
)


def _snake(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def _snake_keys(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {_snake(str(key)): _snake_keys(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return [_snake_keys(item) for item in value]
    return value


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _time(value: Any) -> dict[str, int]:
    source = value if isinstance(value, Mapping) else {}
    return {
        "ke": _as_int(source.get("ke"), 1),
        "day": _as_int(source.get("day"), 1),
        "ten_day": _as_int(source.get("tenDay", source.get("ten_day")), 1),
        "month": _as_int(source.get("month"), 1),
        "year": _as_int(source.get("year"), 1),
    }


def _breakthrough_state(notified: Any, value: int, maximum: int) -> str:
    if value < maximum:
        return "accruing"
    return "ready_notified" if notified else "ready_unnotified"


def _character(source: Mapping[str, Any]) -> dict[str, Any]:
    stats_source = source.get("stats") if isinstance(source.get("stats"), Mapping) else {}
    stats = {_snake(key): max(0, _as_int(stats_source.get(key))) for key in _STAT_KEYS}
    stats["hp"] = min(stats["hp"], stats["max_hp"])
    stats["spiritual_power"] = min(stats["spiritual_power"], stats["max_spiritual_power"])

    maximum = max(1, _as_int(source.get("cultivationMax"), 1))
    value = min(maximum, max(0, _as_int(source.get("cultivationValue"))))

    inventory_source = source.get("inventory") if isinstance(source.get("inventory"), Mapping) else {}
    items = []
    for entry in inventory_source.get("items") or ():
        if not isinstance(entry, Mapping):
            continue
        quantity = _as_int(entry.get("quantity"))
        item_id = entry.get("itemId")
        if item_id and quantity > 0:
            items.append({"item_id": str(item_id), "quantity": quantity})
    capacity = max(_as_int(inventory_source.get("capacity"), 50), len(items), 1)

    points = source.get("skillPoints") if isinstance(source.get("skillPoints"), Mapping) else {}
    main_tree = _mapping(_mapping(source.get("learnedSkills")).get("mainTree"))
    learned = [
        str(node_id)
        for nodes in main_tree.values()
        if isinstance(nodes, Sequence) and not isinstance(nodes, (str, bytes))
        for node_id in nodes
    ]

    extensions = {
        _snake(str(key)): _snake_keys(item)
        for key, item in source.items()
        if key not in _CHARACTER_CORE_KEYS
    }
    # Main-tree nodes move into skill_points; element trees stay opaque.
    if "learned_skills" in extensions and isinstance(extensions["learned_skills"], Mapping):
        remaining = {
            key: item for key, item in extensions["learned_skills"].items() if key != "main_tree"
        }
        if remaining:
            extensions["learned_skills"] = remaining
        else:
            del extensions["learned_skills"]

    return {
        "name": str(source.get("name") or "Wanderer"),
        "realm": str(source.get("realm") or "qi_refining"),
        "realm_stage": max(1, _as_int(source.get("realmStage"), 1)),
        "cultivation_value": value,
        "cultivation_max": maximum,
        "breakthrough": _breakthrough_state(source.get("breakthroughNotified"), value, maximum),
        "stats": stats,
        "current_activity": str(source.get("currentActivity") or "closed_door"),
        "inventory": {"items": items, "capacity": capacity},
        "spirit_stones": max(0, _as_int(source.get("spiritStones"))),
        "reputation": _as_int(source.get("reputation")),
        "skill_points": {
            "wudao_points": max(0, _as_int(points.get("wudaoPoints"))),
            "total_points_earned": max(0, _as_int(points.get("totalPointsEarned"))),
            "learned": learned,
        },
        "extensions": extensions,
    }


def _market_item(source: Mapping[str, Any]) -> dict[str, Any]:
    base = float(source.get("basePrice") or 0.0)
    price = float(source.get("currentPrice") or base)
    if base > 0:
        price = round(max(base * 0.3, min(base * 3.0, price)), 2)
    max_liquidity = max(1, _as_int(source.get("maxLiquidity"), 1))
    return {
        "item_id": str(source.get("itemId")),
        "current_price": price,
        "base_price": base,
        "volatility": float(source.get("volatility") or 0.0),
        "trend": float(source.get("trend") or 0.0),
        "liquidity": min(max_liquidity, max(0, _as_int(source.get("liquidity")))),
        "max_liquidity": max_liquidity,
        "price_history": [float(value) for value in source.get("priceHistory") or ()][-30:],
    }


def _market(source: Any) -> dict[str, Any]:
    market = source if isinstance(source, Mapping) else {}
    items = [
        _market_item(entry)
        for entry in market.get("items") or ()
        if isinstance(entry, Mapping) and entry.get("itemId")
    ]
    events = []
    for entry in market.get("activeEvents") or ():
        if not isinstance(entry, Mapping) or not entry.get("id"):
            continue
        remaining = _as_int(entry.get("remainingDuration"))
        if remaining <= 0:
            continue
        events.append(
            {
                "id": str(entry["id"]),
                "name": str(entry.get("name") or entry["id"]),
                "affected_items": [str(item) for item in entry.get("affectedItems") or ()],
                "price_modifier": float(entry.get("priceModifier") or 1.0),
                "duration": max(remaining, _as_int(entry.get("duration"), remaining)),
                "remaining_duration": remaining,
            }
        )
    return {
        "items": items,
        "last_update": _time(market.get("lastUpdate")),
        "active_events": events,
    }


def _logs(source: Any) -> list[dict[str, Any]]:
    logs = []
    for entry in source or ():
        if not isinstance(entry, Mapping):
            continue
        logs.append(
            {
                "timestamp": _time(entry.get("timestamp")),
                "type": str(entry.get("type") or "system"),
                "message": str(entry.get("message") or ""),
            }
        )
    return logs[-100:]


def apply(state: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    settings = state.get("settings") if isinstance(state.get("settings"), Mapping) else {}
    speed = state.get("gameSpeed", 1)
    try:
        speed = float(speed)
    except (TypeError, ValueError):
        speed = 1.0
    return {
        "character": _character(state.get("character") or {}),
        "time": _time(state.get("time")),
        "market": _market(state.get("market")),
        # In-flight battles are not carried across the layout change.
        "combat": None,
        "logs": _logs(state.get("logs")),
        "is_paused": bool(state.get("isPaused", False)),
        "game_speed": speed if speed > 0 else 1.0,
        "settings": {
            "auto_save": bool(settings.get("autoSave", True)),
            "sound_enabled": bool(settings.get("soundEnabled", False)),
            "notifications_enabled": bool(settings.get("notificationsEnabled", True)),
        },
    }
