"""Stochastic market price model.

Prices drift once per in-game day with a mean-reverting trend, stay inside a
band of 0.3x to 3.0x the base price, and react to player trades through a
liquidity-scaled pressure impulse.
"""

from __future__ import annotations

import math
import random
import uuid
from dataclasses import replace
from enum import Enum
from typing import Iterable, NamedTuple, Optional

from .catalog import Catalog, get_catalog
from .models.market import (
    PRICE_HISTORY_LIMIT,
    Market,
    MarketEvent,
    MarketItem,
)
from .models.progression import Realm
from .models.time import GameTime

TREND_DECAY = 0.95
TREND_WEIGHT = 0.1
RANDOM_WEIGHT = 0.1
TREND_PRICE_WEIGHT = 0.05
LIQUIDITY_RESTORE_RATE = 0.05
PRESSURE_WEIGHT = 0.1
SELL_SPREAD = 0.9
TREND_THRESHOLD_PERCENT = 1.0


class PriceTrend(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class BuyResult(NamedTuple):
    market: Market
    total_cost: int
    actual_quantity: int


class SellResult(NamedTuple):
    market: Market
    total_revenue: int


class WorldEventRoll(NamedTuple):
    market: Market
    started: tuple[MarketEvent, ...]


def _round_price(value: float) -> float:
    return round(value, 2)


def _clamp_price(item: MarketItem, price: float) -> float:
    return _round_price(max(item.min_price, min(item.max_price, price)))


def _replace_item(market: Market, updated: MarketItem) -> Market:
    return replace(
        market,
        items=tuple(updated if item.item_id == updated.item_id else item for item in market.items),
    )


def create_initial_market(time: GameTime | None = None, catalog: Catalog | None = None) -> Market:
    catalog = catalog or get_catalog()
    items = []
    for listing in catalog.listings:
        base_price = catalog.items[listing.item_id].base_price
        items.append(
            MarketItem(
                item_id=listing.item_id,
                current_price=base_price,
                base_price=base_price,
                volatility=listing.volatility,
                trend=0.0,
                liquidity=listing.max_liquidity,
                max_liquidity=listing.max_liquidity,
                price_history=(base_price,),
            )
        )
    return Market(
        items=tuple(items),
        last_update=time or GameTime(),
        active_events=(),
        quiet_days=catalog.world_events.min_interval_days,
    )


def find_item(market: Market, item_id: str) -> Optional[MarketItem]:
    return market.find(item_id)


def _event_factor(item_id: str, events: Iterable[MarketEvent]) -> float:
    factor = 1.0
    for event in events:
        if event.affects(item_id):
            factor *= event.price_modifier
    return factor


def update_market_prices(
    market: Market, time: GameTime, *, rng: random.Random | None = None
) -> Market:
    """Advance every listing by one day of price drift."""

    rng = rng or random
    updated_items = []
    for item in market.items:
        random_factor = (rng.random() - 0.5) * 2 * item.volatility
        trend = item.trend * TREND_DECAY + random_factor * TREND_WEIGHT
        price = (
            item.current_price
            * (1 + random_factor * RANDOM_WEIGHT + trend * TREND_PRICE_WEIGHT)
            * _event_factor(item.item_id, market.active_events)
        )
        price = _clamp_price(item, price)
        restored = math.floor(item.max_liquidity * LIQUIDITY_RESTORE_RATE)
        updated_items.append(
            replace(
                item,
                current_price=price,
                trend=trend,
                liquidity=min(item.max_liquidity, item.liquidity + restored),
                price_history=(*item.price_history, price)[-PRICE_HISTORY_LIMIT:],
            )
        )

    remaining_events = tuple(
        replace(event, remaining_duration=event.remaining_duration - 1)
        for event in market.active_events
        if event.remaining_duration - 1 > 0
    )
    return replace(
        market, items=tuple(updated_items), last_update=time, active_events=remaining_events
    )


def buy_item(market: Market, item_id: str, quantity: int) -> BuyResult:
    """Take up to ``quantity`` units out of the market.

    The fill is clamped to the available liquidity.  Affordability is the
    caller's concern.
    """

    item = market.find(item_id)
    if item is None or quantity <= 0:
        return BuyResult(market, 0, 0)

    actual = min(quantity, item.liquidity)
    if actual <= 0:
        return BuyResult(market, 0, 0)
    total_cost = round(item.current_price * actual)
    impulse = (actual / item.max_liquidity) * PRESSURE_WEIGHT
    updated = replace(
        item,
        current_price=_clamp_price(item, item.current_price * (1 + impulse)),
        liquidity=item.liquidity - actual,
        trend=item.trend + impulse * 0.5,
    )
    return BuyResult(_replace_item(market, updated), total_cost, actual)


def sell_item(market: Market, item_id: str, quantity: int) -> SellResult:
    """Sell ``quantity`` units into the market at a 10% spread."""

    item = market.find(item_id)
    if item is None or quantity <= 0:
        return SellResult(market, 0)

    total_revenue = round(item.current_price * SELL_SPREAD * quantity)
    impulse = (quantity / item.max_liquidity) * PRESSURE_WEIGHT
    updated = replace(
        item,
        current_price=_clamp_price(item, item.current_price * (1 - impulse)),
        liquidity=min(item.max_liquidity, item.liquidity + quantity),
        trend=item.trend - impulse * 0.5,
    )
    return SellResult(_replace_item(market, updated), total_revenue)


def add_market_event(market: Market, event: MarketEvent) -> Market:
    return replace(market, active_events=(*market.active_events, event))


def create_market_event(
    kind: str,
    affected_items: Iterable[str],
    duration: int,
    *,
    catalog: Catalog | None = None,
) -> MarketEvent:
    """Build an event from the named event table (``beast_tide``, ``war``, ...)."""

    catalog = catalog or get_catalog()
    definition = catalog.market_events.get(kind)
    if definition is None:
        raise KeyError(f"Unknown market event: {kind}")
    duration = max(1, int(duration))
    return MarketEvent(
        id=f"{kind}-{uuid.uuid4().hex[:8]}",
        name=definition.name,
        affected_items=tuple(affected_items),
        price_modifier=definition.price_modifier,
        duration=duration,
        remaining_duration=duration,
        kind=kind,
    )


def roll_world_events(
    market: Market,
    realm: Realm,
    *,
    rng: random.Random | None = None,
    catalog: Catalog | None = None,
) -> WorldEventRoll:
    """Advance world-event timers by one day and maybe start a new event.

    At most one event starts per day.  After one starts, no other may start
    for ``min_interval_days`` and the same kind waits out its duration plus
    its ``cooldown_days``.
    """

    rng = rng or random
    catalog = catalog or get_catalog()
    rules = catalog.world_events
    cooldowns = {kind: days - 1 for kind, days in market.event_cooldowns.items() if days > 1}
    market = replace(market, quiet_days=max(0, market.quiet_days - 1), event_cooldowns=cooldowns)
    if market.quiet_days > 0 or len(market.active_events) >= rules.max_active:
        return WorldEventRoll(market, ())

    active_kinds = {event.kind for event in market.active_events}
    for kind in catalog.market_events.values():
        if not kind.items or kind.chance <= 0:
            continue
        if kind.id in active_kinds or kind.id in cooldowns:
            continue
        if realm.index < kind.min_realm.index:
            continue
        if rng.random() * 100 >= kind.chance:
            continue
        low, high = kind.duration
        event = create_market_event(kind.id, kind.items, rng.randint(low, high), catalog=catalog)
        market = replace(
            add_market_event(market, event),
            quiet_days=rules.min_interval_days,
            event_cooldowns={**cooldowns, kind.id: event.duration + kind.cooldown_days},
        )
        return WorldEventRoll(market, (event,))
    return WorldEventRoll(market, ())


def get_price_change_percent(item: MarketItem) -> float:
    if len(item.price_history) < 2:
        return 0.0
    previous, current = item.price_history[-2], item.price_history[-1]
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def get_price_trend(item: MarketItem) -> PriceTrend:
    change = get_price_change_percent(item)
    if change > TREND_THRESHOLD_PERCENT:
        return PriceTrend.UP
    if change < -TREND_THRESHOLD_PERCENT:
        return PriceTrend.DOWN
    return PriceTrend.STABLE


__all__ = [
    "BuyResult",
    "PriceTrend",
    "SellResult",
    "WorldEventRoll",
    "add_market_event",
    "buy_item",
    "create_initial_market",
    "create_market_event",
    "find_item",
    "get_price_change_percent",
    "get_price_trend",
    "roll_world_events",
    "sell_item",
    "update_market_prices",
]
