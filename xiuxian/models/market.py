"""Market listings, events and the market aggregate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ._validation import (
    FieldSpec,
    MappingSpec,
    ModelValidationError,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
    validate_payload,
)
from .time import GameTime

MIN_PRICE_RATIO = 0.3
MAX_PRICE_RATIO = 3.0
PRICE_HISTORY_LIMIT = 30


@dataclass(frozen=True, slots=True)
class MarketItem:
    item_id: str
    current_price: float
    base_price: float
    volatility: float
    trend: float
    liquidity: int
    max_liquidity: int
    price_history: tuple[float, ...] = field(default_factory=tuple)

    @property
    def min_price(self) -> float:
        return self.base_price * MIN_PRICE_RATIO

    @property
    def max_price(self) -> float:
        return self.base_price * MAX_PRICE_RATIO

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "current_price": self.current_price,
            "base_price": self.base_price,
            "volatility": self.volatility,
            "trend": self.trend,
            "liquidity": self.liquidity,
            "max_liquidity": self.max_liquidity,
            "price_history": list(self.price_history),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MarketItem":
        payload = validate_payload(cls, data)
        item = cls(
            item_id=payload["item_id"],
            current_price=float(payload["current_price"]),
            base_price=float(payload["base_price"]),
            volatility=float(payload["volatility"]),
            trend=float(payload.get("trend", 0.0)),
            liquidity=payload["liquidity"],
            max_liquidity=payload["max_liquidity"],
            price_history=tuple(
                float(value) for value in payload.get("price_history", ())
            )[-PRICE_HISTORY_LIMIT:],
        )
        errors: list[str] = []
        if item.liquidity > item.max_liquidity:
            errors.append("liquidity exceeds max_liquidity")
        if not item.min_price - 0.01 <= item.current_price <= item.max_price + 0.01:
            errors.append("current_price is outside the allowed band")
        if errors:
            raise ModelValidationError(cls, errors)
        return item


class MarketItemValidator(ModelValidator):
    model = MarketItem
    fields = {
        "item_id": FieldSpec(is_non_empty_str, "a non-empty item id"),
        "current_price": FieldSpec(float, "a positive price", minimum=0),
        "base_price": FieldSpec(float, "a positive base price", minimum=0),
        "volatility": FieldSpec(float, "a volatility", minimum=0),
        "trend": FieldSpec(float, "a trend value", required=False),
        "liquidity": FieldSpec(int, "a non-negative liquidity", minimum=0),
        "max_liquidity": FieldSpec(int, "a positive max liquidity", minimum=1),
        "price_history": FieldSpec(SequenceSpec(float), "a list of prices", required=False),
    }


MarketItem.validator = MarketItemValidator


@dataclass(frozen=True, slots=True)
class MarketEvent:
    """A temporary multiplier on the prices of ``affected_items``."""

    id: str
    name: str
    affected_items: tuple[str, ...]
    price_modifier: float
    duration: int
    remaining_duration: int
    kind: str = ""

    def affects(self, item_id: str) -> bool:
        return item_id in self.affected_items

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "affected_items": list(self.affected_items),
            "price_modifier": self.price_modifier,
            "duration": self.duration,
            "remaining_duration": self.remaining_duration,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MarketEvent":
        payload = validate_payload(cls, data)
        return cls(
            id=payload["id"],
            name=payload.get("name") or payload["id"],
            affected_items=tuple(payload["affected_items"]),
            price_modifier=float(payload["price_modifier"]),
            duration=payload.get("duration", payload["remaining_duration"]),
            remaining_duration=payload["remaining_duration"],
            kind=payload.get("kind") or payload["id"].rsplit("-", 1)[0],
        )


class MarketEventValidator(ModelValidator):
    model = MarketEvent
    fields = {
        "id": FieldSpec(is_non_empty_str, "an event id"),
        "name": FieldSpec(str, "an event name", required=False, allow_none=True),
        "affected_items": FieldSpec(SequenceSpec(str), "a list of item ids"),
        "price_modifier": FieldSpec(float, "a positive price modifier", minimum=0),
        "duration": FieldSpec(int, "a duration in days", required=False),
        "remaining_duration": FieldSpec(int, "the remaining duration in days"),
        "kind": FieldSpec(str, "an event kind", required=False, allow_none=True),
    }


MarketEvent.validator = MarketEventValidator


@dataclass(frozen=True, slots=True)
class Market:
    """Listings plus the running price events.

    ``quiet_days`` counts down to the next day a world event may break out and
    ``event_cooldowns`` holds the days left before each event kind may recur.
    """

    items: tuple[MarketItem, ...]
    last_update: GameTime
    active_events: tuple[MarketEvent, ...] = field(default_factory=tuple)
    quiet_days: int = 0
    event_cooldowns: Mapping[str, int] = field(default_factory=dict)

    def find(self, item_id: str) -> Optional[MarketItem]:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "last_update": self.last_update.to_dict(),
            "active_events": [event.to_dict() for event in self.active_events],
            "quiet_days": self.quiet_days,
            "event_cooldowns": dict(self.event_cooldowns),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Market":
        payload = validate_payload(cls, data)
        return cls(
            items=tuple(MarketItem.from_dict(entry) for entry in payload["items"]),
            last_update=GameTime.from_dict(payload["last_update"]),
            active_events=tuple(
                MarketEvent.from_dict(entry) for entry in payload.get("active_events", ())
            ),
            quiet_days=payload.get("quiet_days", 0),
            event_cooldowns={
                kind: days
                for kind, days in (payload.get("event_cooldowns") or {}).items()
                if days > 0
            },
        )


class MarketValidator(ModelValidator):
    model = Market
    fields = {
        "items": FieldSpec(SequenceSpec(dict), "a list of market items"),
        "last_update": FieldSpec(dict, "a game time"),
        "active_events": FieldSpec(SequenceSpec(dict), "a list of events", required=False),
        "quiet_days": FieldSpec(int, "a non-negative day count", required=False, minimum=0),
        "event_cooldowns": FieldSpec(
            MappingSpec(str, int), "a mapping of event kinds to days", required=False
        ),
    }


Market.validator = MarketValidator


__all__ = [
    "MAX_PRICE_RATIO",
    "MIN_PRICE_RATIO",
    "Market",
    "MarketEvent",
    "MarketItem",
    "PRICE_HISTORY_LIMIT",
]
