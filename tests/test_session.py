from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.config import GameConfig
from xiuxian.game import (
    ChangeActivity,
    GameStateStore,
    PlayerAttack,
    Tick,
    TogglePause,
    UpdateCharacter,
    create_initial_state,
)
from xiuxian.models.combat import CombatPhase
from xiuxian.scheduler import AutoSaver, TickScheduler
from xiuxian.session import PlayerSession, SessionManager
from xiuxian.storage import SaveStore


class ScriptedRandom:
    """Replays ``values`` from ``random()`` and then settles on 0.5."""

    def __init__(self, *values: float, pick: str | None = None) -> None:
        self.values = list(values)
        self.pick = pick

    def random(self) -> float:
        return self.values.pop(0) if self.values else 0.5

    def randint(self, low: int, high: int) -> int:
        return low

    def choice(self, options):
        return self.pick if self.pick in options else options[0]


def _manager(tmp_path: Path) -> SessionManager:
    config = GameConfig(tick_rate_ms=60_000, autosave_seconds=60.0, default_name="Han Li")
    return SessionManager(SaveStore(tmp_path), config)


def test_sessions_are_cached_per_key(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    async def scenario():
        first = await manager.get("42", name="Lin Feng")
        second = await manager.get("42")
        other = await manager.get("7")
        await manager.close()
        return first, second, other

    first, second, other = asyncio.run(scenario())

    assert first is second
    assert first.state.character.name == "Lin Feng"
    assert other.state.character.name == "Han Li"
    assert manager.active("42") is None


def test_close_saves_and_get_resumes(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    async def first_run():
        session = await manager.get("42")
        session.store.dispatch(UpdateCharacter({"spirit_stones": 777}))
        await manager.close()

    async def second_run():
        session = await manager.get("42")
        stones = session.state.character.spirit_stones
        await manager.close()
        return stones

    asyncio.run(first_run())

    assert asyncio.run(second_run()) == 777


def test_corrupt_save_starts_a_fresh_game(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    saves = manager.save_store
    saves.directory.mkdir(parents=True)
    saves.path_for("42").write_text("{broken", encoding="utf8")

    async def scenario():
        session = await manager.get("42")
        name = session.state.character.name
        reloaded = await manager.reload(session)
        await manager.close()
        return name, reloaded

    name, reloaded = asyncio.run(scenario())

    assert name == "Han Li"
    assert reloaded is False
    assert (saves.directory / "42.json.corrupt").read_text(encoding="utf8") == "{broken"


def test_reload_restores_the_last_save(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    async def scenario():
        session = await manager.get("42")
        missing = await manager.reload(session)
        await manager.save(session)
        session.store.dispatch(TogglePause())
        reloaded = await manager.reload(session)
        paused = session.state.is_paused
        await manager.close()
        return missing, reloaded, paused

    missing, reloaded, paused = asyncio.run(scenario())

    assert missing is False
    assert reloaded is True
    assert paused is False


def test_unreadable_save_is_kept_when_the_fresh_game_is_saved(tmp_path: Path) -> None:
    manager = _manager(tmp_path)
    saves = manager.save_store
    saves.directory.mkdir(parents=True)
    original = {"version": 99, "state": {"character": {"name": "Veteran", "realm": "mahayana"}}}
    saves.path_for("42").write_text(json.dumps(original), encoding="utf8")

    async def scenario():
        session = await manager.get("42")
        await manager.close()
        return session.state.character.name

    name = asyncio.run(scenario())
    kept = saves.directory / "42.json.corrupt"

    assert name == "Han Li"
    assert json.loads(kept.read_text(encoding="utf8")) == original
    assert json.loads(saves.path_for("42").read_text(encoding="utf8"))["version"] == 3


def test_quarantine_does_not_replace_earlier_copies(tmp_path: Path) -> None:
    saves = SaveStore(tmp_path)
    saves.directory.mkdir(parents=True)

    async def scenario():
        saves.path_for("42").write_text("first", encoding="utf8")
        first = await saves.quarantine("42")
        saves.path_for("42").write_text("second", encoding="utf8")
        second = await saves.quarantine("42")
        missing = await saves.quarantine("42")
        return first, second, missing

    first, second, missing = asyncio.run(scenario())

    assert first.name == "42.json.corrupt"
    assert second.name == "42.json.corrupt.1"
    assert first.read_text(encoding="utf8") == "first"
    assert second.read_text(encoding="utf8") == "second"
    assert missing is None


def test_enemy_initiative_is_played_out_before_the_player_acts(tmp_path: Path) -> None:
    # Encounter roll, then the player's and the wolf's initiative rolls.
    store = GameStateStore(
        create_initial_state("Lin Feng"), rng=ScriptedRandom(0.0, 0.0, 0.99, pick="forest_wolf")
    )
    session = PlayerSession(
        key="42",
        store=store,
        scheduler=TickScheduler(store),
        autosaver=AutoSaver(store, SaveStore(tmp_path), "42"),
    )
    store.dispatch(ChangeActivity("travel"))
    opened = store.dispatch(Tick())

    assert opened.combat.in_combat
    assert opened.combat.enemy_id == "forest_wolf"
    assert opened.combat.phase is CombatPhase.ENEMY_TURN
    assert store.dispatch(PlayerAttack("basic_attack")) is opened

    resolved = session.resolve_enemy_turns()

    assert resolved.combat.phase is CombatPhase.PLAYER_TURN
    assert resolved.combat.player_unit.hp < resolved.combat.player_unit.max_hp
    assert store.dispatch(PlayerAttack("basic_attack")) is not resolved


def test_resolving_without_a_pending_enemy_turn_changes_nothing(tmp_path: Path) -> None:
    store = GameStateStore(create_initial_state("Lin Feng"))
    session = PlayerSession(
        key="42",
        store=store,
        scheduler=TickScheduler(store),
        autosaver=AutoSaver(store, SaveStore(tmp_path), "42"),
    )
    before = store.state

    assert session.resolve_enemy_turns() is before
