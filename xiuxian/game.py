"""The game reducer and the state store that owns it.

Every change to a :class:`GameState` goes through :func:`reduce` as one of the
action dataclasses below.  Invalid requests (trading outside a market,
acting out of turn, buying what cannot be afforded...) return the input
state object unchanged so callers can detect a no-op with ``is``.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field, fields, replace
from typing import Any, Callable, Mapping, Optional, Union

from . import combat as combat_engine
from .catalog import get_catalog
from .clock import advance_time, create_initial_time, is_new_day
from .cultivation import (
    add_cultivation,
    attempt_breakthrough,
    breakthrough_skill_points,
    change_activity,
    create_initial_character,
    process_cultivation,
)
from .market import (
    add_market_event,
    buy_item,
    create_initial_market,
    roll_world_events,
    sell_item,
    update_market_prices,
)
from .models.character import Character
from .models.combat import CombatPhase, CombatState, CombatUnit
from .models.market import Market, MarketEvent
from .models.progression import ActivityType
from .models.state import GameLog, GameSettings, GameState, LogType, append_logs
from .skills import learn_skill_node, reset_skill_tree
from .storage import SaveLoadError, build_save_payload, parse_save_payload

log = logging.getLogger(__name__)

DEFAULT_CHARACTER_NAME = "Wanderer"
DEFAULT_MAX_SPEED = 10.0
TRAVEL_ENCOUNTER_CHANCE = 0.05
TRIGGERED_ENCOUNTER_CHANCE = 0.1
REWARD_SKILL_POINT_CHANCE = 0.1
BOSS_SKILL_POINT_CHANCE = 0.5
BOSS_SKILL_POINTS = 2
DEFEAT_REMAINING_HP = 1


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Tick:
    pass


@dataclass(frozen=True, slots=True)
class SetGameSpeed:
    speed: float


@dataclass(frozen=True, slots=True)
class TogglePause:
    pass


@dataclass(frozen=True, slots=True)
class ChangeActivity:
    activity: ActivityType | str


@dataclass(frozen=True, slots=True)
class AttemptBreakthrough:
    pass


@dataclass(frozen=True, slots=True)
class BuyItem:
    item_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class SellItem:
    item_id: str
    quantity: int


@dataclass(frozen=True, slots=True)
class AddLog:
    log: GameLog


@dataclass(frozen=True, slots=True)
class UpdateCharacter:
    """Overwrite character fields by name; unknown names are ignored."""

    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UpdateMarket:
    market: Market


@dataclass(frozen=True, slots=True)
class LoadGame:
    state: GameState


@dataclass(frozen=True, slots=True)
class ResetGame:
    name: str | None = None


@dataclass(frozen=True, slots=True)
class StartCombat:
    enemy_id: str


@dataclass(frozen=True, slots=True)
class PlayerAttack:
    skill_id: str


@dataclass(frozen=True, slots=True)
class PlayerDefend:
    pass


@dataclass(frozen=True, slots=True)
class PlayerObserve:
    pass


@dataclass(frozen=True, slots=True)
class PlayerFlee:
    pass


@dataclass(frozen=True, slots=True)
class PlayerUseItem:
    item_id: str


@dataclass(frozen=True, slots=True)
class EnemyAction:
    pass


@dataclass(frozen=True, slots=True)
class CollectRewards:
    pass


@dataclass(frozen=True, slots=True)
class EndCombat:
    pass


@dataclass(frozen=True, slots=True)
class TriggerRandomEncounter:
    pass


@dataclass(frozen=True, slots=True)
class AddMarketEvent:
    event: MarketEvent


@dataclass(frozen=True, slots=True)
class AwardSkillPoints:
    amount: int


@dataclass(frozen=True, slots=True)
class UpdateSettings:
    changes: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class LearnSkillNode:
    node_id: str


@dataclass(frozen=True, slots=True)
class ResetSkillTree:
    tree: str


Action = Union[
    Tick,
    SetGameSpeed,
    TogglePause,
    ChangeActivity,
    AttemptBreakthrough,
    BuyItem,
    SellItem,
    AddLog,
    UpdateCharacter,
    UpdateMarket,
    LoadGame,
    ResetGame,
    StartCombat,
    PlayerAttack,
    PlayerDefend,
    PlayerObserve,
    PlayerFlee,
    PlayerUseItem,
    EnemyAction,
    CollectRewards,
    EndCombat,
    TriggerRandomEncounter,
    AddMarketEvent,
    AwardSkillPoints,
    UpdateSettings,
    LearnSkillNode,
    ResetSkillTree,
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _game_log(state: GameState, kind: LogType, key: str, **params: Any) -> GameLog:
    return GameLog(timestamp=state.time, type=kind, key=key, params=params)


def _with_logs(state: GameState, *entries: Optional[GameLog], **changes: Any) -> GameState:
    return replace(state, logs=append_logs(state.logs, entries), **changes)


def _can_trade(character: Character) -> bool:
    return get_catalog().activity(character.current_activity).can_trade


def _can_encounter(character: Character) -> bool:
    return get_catalog().activity(character.current_activity).can_encounter


def _item_name(item_id: str) -> str:
    definition = get_catalog().items.get(item_id)
    return definition.name if definition is not None else item_id


def _sync_vitals(character: Character, unit: CombatUnit | None, *, min_hp: int = 0) -> Character:
    if unit is None:
        return character
    stats = character.stats
    hp = max(min_hp, min(stats.max_hp, unit.stats.hp))
    power = max(0, min(stats.max_spiritual_power, unit.stats.mp))
    return replace(character, stats=replace(stats, hp=hp, spiritual_power=power))


def _begin_encounter(state: GameState, rng) -> GameState:
    template = combat_engine.get_random_enemy(state.character.realm, rng=rng)
    if template is None:
        return state
    combat = combat_engine.start_combat(state.character, template.id, rng=rng)
    if combat is None:
        return state
    entry = _game_log(state, LogType.COMBAT, "combat.encounter", enemy=template.name)
    return _with_logs(state, entry, combat=combat)


def _apply_combat(state: GameState, combat: CombatState) -> GameState:
    if combat is state.combat:
        return state
    return replace(state, combat=combat)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _tick(state: GameState, action: Tick, rng, max_speed: float) -> GameState:
    if state.is_paused or state.combat.in_combat:
        return state

    time = advance_time(state.time, 1)
    result = process_cultivation(state.character, time)
    market = state.market
    started: tuple[MarketEvent, ...] = ()
    if is_new_day(state.time, time):
        market = update_market_prices(market, time, rng=rng)
        market, started = roll_world_events(market, result.character.realm, rng=rng)
    updated = _with_logs(state, result.log, time=time, character=result.character, market=market)
    if started:
        updated = _with_logs(updated, *(_market_event_log(updated, event) for event in started))

    if _can_encounter(updated.character) and rng.random() < TRAVEL_ENCOUNTER_CHANCE:
        updated = _begin_encounter(updated, rng)
    return updated


def _set_game_speed(state: GameState, action: SetGameSpeed, rng, max_speed: float) -> GameState:
    try:
        speed = float(action.speed)
    except (TypeError, ValueError):
        return state
    if not math.isfinite(speed) or speed <= 0:
        return state
    speed = min(speed, max_speed)
    if speed == state.game_speed:
        return state
    return replace(state, game_speed=speed)


def _toggle_pause(state: GameState, action: TogglePause, rng, max_speed: float) -> GameState:
    return replace(state, is_paused=not state.is_paused)


def _change_activity(state: GameState, action: ChangeActivity, rng, max_speed: float) -> GameState:
    try:
        activity = ActivityType(action.activity)
    except ValueError:
        return state
    if activity is state.character.current_activity:
        return state
    result = change_activity(state.character, activity, state.time)
    return _with_logs(state, result.log, character=result.character)


def _attempt_breakthrough(
    state: GameState, action: AttemptBreakthrough, rng, max_speed: float
) -> GameState:
    if state.combat.in_combat:
        return state
    result = attempt_breakthrough(state.character, state.time, rng=rng)
    character = result.character
    if result.success:
        character = replace(
            character,
            skill_points=character.skill_points.award(breakthrough_skill_points(character.realm)),
        )
    return _with_logs(state, result.log, character=character)


def _buy_item(state: GameState, action: BuyItem, rng, max_speed: float) -> GameState:
    character = state.character
    if not _can_trade(character) or action.quantity <= 0:
        return state
    result = buy_item(state.market, action.item_id, action.quantity)
    if result.actual_quantity <= 0 or result.total_cost > character.spirit_stones:
        return state
    inventory = character.inventory.add(action.item_id, result.actual_quantity)
    if inventory is None:
        return state
    character = replace(
        character,
        inventory=inventory,
        spirit_stones=character.spirit_stones - result.total_cost,
    )
    entry = _game_log(
        state,
        LogType.MARKET,
        "market.bought",
        item=_item_name(action.item_id),
        quantity=result.actual_quantity,
        cost=result.total_cost,
    )
    return _with_logs(state, entry, character=character, market=result.market)


def _sell_item(state: GameState, action: SellItem, rng, max_speed: float) -> GameState:
    character = state.character
    if not _can_trade(character) or action.quantity <= 0:
        return state
    if state.market.find(action.item_id) is None:
        return state
    inventory = character.inventory.remove(action.item_id, action.quantity)
    if inventory is None:
        return state
    result = sell_item(state.market, action.item_id, action.quantity)
    character = replace(
        character,
        inventory=inventory,
        spirit_stones=character.spirit_stones + result.total_revenue,
    )
    entry = _game_log(
        state,
        LogType.MARKET,
        "market.sold",
        item=_item_name(action.item_id),
        quantity=action.quantity,
        revenue=result.total_revenue,
    )
    return _with_logs(state, entry, character=character, market=result.market)


def _add_log(state: GameState, action: AddLog, rng, max_speed: float) -> GameState:
    return _with_logs(state, action.log)


_CHARACTER_FIELDS = frozenset(spec.name for spec in fields(Character))


def _update_character(state: GameState, action: UpdateCharacter, rng, max_speed: float) -> GameState:
    changes = {key: value for key, value in action.changes.items() if key in _CHARACTER_FIELDS}
    if not changes:
        return state
    return replace(state, character=replace(state.character, **changes))


def _update_market(state: GameState, action: UpdateMarket, rng, max_speed: float) -> GameState:
    return replace(state, market=action.market)


def _load_game(state: GameState, action: LoadGame, rng, max_speed: float) -> GameState:
    return action.state


def _reset_game(state: GameState, action: ResetGame, rng, max_speed: float) -> GameState:
    return create_initial_state(action.name or state.character.name)


def _start_combat(state: GameState, action: StartCombat, rng, max_speed: float) -> GameState:
    if state.combat.in_combat:
        return state
    combat = combat_engine.start_combat(state.character, action.enemy_id, rng=rng)
    if combat is None:
        return state
    enemy_name = combat.enemy_unit.name if combat.enemy_unit else action.enemy_id
    entry = _game_log(state, LogType.COMBAT, "combat.engaged", enemy=enemy_name)
    return _with_logs(state, entry, combat=combat)


def _player_attack(state: GameState, action: PlayerAttack, rng, max_speed: float) -> GameState:
    return _apply_combat(state, combat_engine.player_attack(state.combat, action.skill_id, rng=rng))


def _player_defend(state: GameState, action: PlayerDefend, rng, max_speed: float) -> GameState:
    return _apply_combat(state, combat_engine.player_defend(state.combat, rng=rng))


def _player_observe(state: GameState, action: PlayerObserve, rng, max_speed: float) -> GameState:
    return _apply_combat(state, combat_engine.player_observe(state.combat, rng=rng))


def _player_flee(state: GameState, action: PlayerFlee, rng, max_speed: float) -> GameState:
    return _apply_combat(state, combat_engine.player_flee(state.combat, rng=rng))


def _player_use_item(state: GameState, action: PlayerUseItem, rng, max_speed: float) -> GameState:
    inventory = state.character.inventory.remove(action.item_id, 1)
    if inventory is None:
        return state
    combat = combat_engine.player_use_item(state.combat, action.item_id, rng=rng)
    if combat is state.combat:
        return state
    return replace(state, combat=combat, character=replace(state.character, inventory=inventory))


def _enemy_action(state: GameState, action: EnemyAction, rng, max_speed: float) -> GameState:
    return _apply_combat(state, combat_engine.enemy_action(state.combat, rng=rng))


def _collect_rewards(state: GameState, action: CollectRewards, rng, max_speed: float) -> GameState:
    combat = state.combat
    if not combat.in_combat or combat.phase is not CombatPhase.VICTORY:
        return state

    character = _sync_vitals(state.character, combat.player_unit)
    entries: list[GameLog] = []
    rewards = combat.rewards
    if rewards is not None:
        inventory = character.inventory
        collected = 0
        for item in rewards.items:
            added = inventory.add(item.item_id, item.quantity)
            if added is None:
                continue
            inventory = added
            collected += item.quantity
        character = replace(
            character,
            inventory=inventory,
            spirit_stones=character.spirit_stones + rewards.spirit_stones,
        )
        character = add_cultivation(character, rewards.cultivation_exp)
        entries.append(
            _game_log(
                state,
                LogType.COMBAT,
                "combat.rewards",
                spirit_stones=rewards.spirit_stones,
                cultivation=rewards.cultivation_exp,
                items=collected,
            )
        )

        is_boss = rewards.is_boss
        chance = BOSS_SKILL_POINT_CHANCE if is_boss else REWARD_SKILL_POINT_CHANCE
        if rng.random() < chance:
            points = BOSS_SKILL_POINTS if is_boss else 1
            character = replace(character, skill_points=character.skill_points.award(points))
            entries.append(_game_log(state, LogType.EVENT, "skill_points.awarded", amount=points))

    return _with_logs(state, *entries, character=character, combat=CombatState())


def _end_combat(state: GameState, action: EndCombat, rng, max_speed: float) -> GameState:
    combat = state.combat
    if not combat.in_combat or not combat.phase.is_terminal:
        return state
    min_hp = DEFEAT_REMAINING_HP if combat.phase is CombatPhase.DEFEAT else 0
    character = _sync_vitals(state.character, combat.player_unit, min_hp=min_hp)
    entry = _game_log(state, LogType.COMBAT, "combat.ended", outcome=combat.phase.value)
    return _with_logs(state, entry, character=character, combat=CombatState())


def _trigger_random_encounter(
    state: GameState, action: TriggerRandomEncounter, rng, max_speed: float
) -> GameState:
    if state.combat.in_combat or not _can_encounter(state.character):
        return state
    if rng.random() >= TRIGGERED_ENCOUNTER_CHANCE:
        return state
    return _begin_encounter(state, rng)


def _market_event_log(state: GameState, event: MarketEvent) -> GameLog:
    return _game_log(
        state,
        LogType.EVENT,
        "market.event",
        name=event.name,
        duration=event.remaining_duration,
        items=[_item_name(item_id) for item_id in event.affected_items],
    )


def _add_market_event(state: GameState, action: AddMarketEvent, rng, max_speed: float) -> GameState:
    event = action.event
    return _with_logs(
        state, _market_event_log(state, event), market=add_market_event(state.market, event)
    )


def _award_skill_points(state: GameState, action: AwardSkillPoints, rng, max_speed: float) -> GameState:
    if action.amount <= 0:
        return state
    character = replace(
        state.character, skill_points=state.character.skill_points.award(action.amount)
    )
    return replace(state, character=character)


_SETTINGS_FIELDS = frozenset(spec.name for spec in fields(GameSettings))


def _update_settings(state: GameState, action: UpdateSettings, rng, max_speed: float) -> GameState:
    changes = {
        key: bool(value) for key, value in action.changes.items() if key in _SETTINGS_FIELDS
    }
    settings = replace(state.settings, **changes)
    if settings == state.settings:
        return state
    return replace(state, settings=settings)


def _learn_skill_node(state: GameState, action: LearnSkillNode, rng, max_speed: float) -> GameState:
    if state.combat.in_combat:
        return state
    result = learn_skill_node(state.character, action.node_id)
    if not result.learned:
        return state
    entry = _game_log(
        state,
        LogType.CULTIVATION,
        "skills.learned",
        node=result.node.name,
        cost=result.node.cost,
        remaining=result.character.skill_points.wudao_points,
    )
    return _with_logs(state, entry, character=result.character)


def _reset_skill_tree(state: GameState, action: ResetSkillTree, rng, max_speed: float) -> GameState:
    if state.combat.in_combat:
        return state
    result = reset_skill_tree(state.character, action.tree)
    if not result.removed:
        return state
    entry = _game_log(
        state,
        LogType.CULTIVATION,
        "skills.reset",
        tree=get_catalog().skill_trees.get(action.tree, action.tree),
        count=len(result.removed),
        refunded=result.refunded,
    )
    return _with_logs(state, entry, character=result.character)


_HANDLERS: Mapping[type, Callable[..., GameState]] = {
    Tick: _tick,
    SetGameSpeed: _set_game_speed,
    TogglePause: _toggle_pause,
    ChangeActivity: _change_activity,
    AttemptBreakthrough: _attempt_breakthrough,
    BuyItem: _buy_item,
    SellItem: _sell_item,
    AddLog: _add_log,
    UpdateCharacter: _update_character,
    UpdateMarket: _update_market,
    LoadGame: _load_game,
    ResetGame: _reset_game,
    StartCombat: _start_combat,
    PlayerAttack: _player_attack,
    PlayerDefend: _player_defend,
    PlayerObserve: _player_observe,
    PlayerFlee: _player_flee,
    PlayerUseItem: _player_use_item,
    EnemyAction: _enemy_action,
    CollectRewards: _collect_rewards,
    EndCombat: _end_combat,
    TriggerRandomEncounter: _trigger_random_encounter,
    AddMarketEvent: _add_market_event,
    AwardSkillPoints: _award_skill_points,
    UpdateSettings: _update_settings,
    LearnSkillNode: _learn_skill_node,
    ResetSkillTree: _reset_skill_tree,
}


def reduce(
    state: GameState,
    action: Action,
    *,
    rng: random.Random | None = None,
    max_speed: float = DEFAULT_MAX_SPEED,
) -> GameState:
    """Return the state that follows ``action``; never mutates ``state``."""

    handler = _HANDLERS.get(type(action))
    if handler is None:
        return state
    return handler(state, action, rng or random, max_speed)


def create_initial_state(name: str = DEFAULT_CHARACTER_NAME) -> GameState:
    time = create_initial_time()
    state = GameState(
        character=create_initial_character(name),
        time=time,
        market=create_initial_market(time),
    )
    return _with_logs(state, _game_log(state, LogType.SYSTEM, "system.welcome", name=name))


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


Listener = Callable[[GameState, GameState], None]


class GameStateStore:
    """Owns one :class:`GameState` and notifies subscribers on every change."""

    def __init__(
        self,
        state: GameState | None = None,
        *,
        rng: random.Random | None = None,
        max_speed: float = DEFAULT_MAX_SPEED,
    ) -> None:
        self._state = state if state is not None else create_initial_state()
        self._rng = rng
        self._max_speed = max_speed
        self._listeners: list[Listener] = []

    @property
    def state(self) -> GameState:
        return self._state

    def dispatch(self, action: Action) -> GameState:
        previous = self._state
        updated = reduce(previous, action, rng=self._rng, max_speed=self._max_speed)
        if updated is previous:
            return previous
        self._state = updated
        for listener in list(self._listeners):
            try:
                listener(updated, previous)
            except Exception:
                log.exception("State listener %r failed", listener)
        return updated

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def snapshot(self) -> dict[str, Any]:
        return build_save_payload(self._state)

    def restore(self, blob: Mapping[str, Any] | str | bytes) -> bool:
        """Load a save document; corrupt input leaves the current state untouched."""

        try:
            state = parse_save_payload(blob)
        except SaveLoadError as exc:
            log.warning("Ignoring unreadable save: %s", exc)
            return False
        self.dispatch(LoadGame(state))
        return True


__all__ = [
    "Action",
    "AddLog",
    "AddMarketEvent",
    "AttemptBreakthrough",
    "AwardSkillPoints",
    "BuyItem",
    "ChangeActivity",
    "CollectRewards",
    "DEFAULT_MAX_SPEED",
    "EndCombat",
    "EnemyAction",
    "GameStateStore",
    "LearnSkillNode",
    "LoadGame",
    "PlayerAttack",
    "PlayerDefend",
    "PlayerFlee",
    "PlayerObserve",
    "PlayerUseItem",
    "ResetSkillTree",
    "ResetGame",
    "SellItem",
    "SetGameSpeed",
    "StartCombat",
    "Tick",
    "TogglePause",
    "TriggerRandomEncounter",
    "UpdateCharacter",
    "UpdateMarket",
    "UpdateSettings",
    "create_initial_state",
    "reduce",
]
