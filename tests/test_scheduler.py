from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.game import (
    GameStateStore,
    SetGameSpeed,
    StartCombat,
    TogglePause,
    UpdateSettings,
    create_initial_state,
)
from xiuxian.scheduler import AutoSaver, TickScheduler
from xiuxian.storage import SaveStore


class FixedRandom:
    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value

    def randint(self, low: int, high: int) -> int:
        return low

    def choice(self, options):
        return options[0]


@pytest.fixture
def store() -> GameStateStore:
    return GameStateStore(create_initial_state("Lin Feng"), rng=FixedRandom(0.5))


def test_period_scales_with_game_speed(store: GameStateStore) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=1000)

    assert scheduler.period_for(store.state) == pytest.approx(1.0)
    store.dispatch(SetGameSpeed(4))
    assert scheduler.period_for(store.state) == pytest.approx(0.25)


def test_scheduler_dispatches_ticks(store: GameStateStore) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=10)

    async def scenario():
        scheduler.start()
        await asyncio.sleep(0.1)
        scheduler.stop()

    asyncio.run(scenario())

    assert store.state.time.ke > 2
    assert store.state.character.cultivation_value > 1
    assert not scheduler.running
    assert not scheduler.ticking


def test_pausing_stops_and_resuming_restarts_the_timer(store: GameStateStore) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=10)

    async def scenario():
        scheduler.start()
        assert scheduler.ticking
        store.dispatch(TogglePause())
        assert not scheduler.ticking
        paused_at = store.state.time
        await asyncio.sleep(0.05)
        assert store.state.time == paused_at
        store.dispatch(TogglePause())
        assert scheduler.ticking
        scheduler.stop()

    asyncio.run(scenario())


def test_combat_suspends_the_timer(store: GameStateStore) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=10)

    async def scenario():
        scheduler.start()
        store.dispatch(StartCombat("wild_boar"))
        started = store.state.time
        await asyncio.sleep(0.05)
        ticking = scheduler.ticking
        scheduler.stop()
        return started, ticking

    started, ticking = asyncio.run(scenario())

    assert not ticking
    assert store.state.time == started


def test_speed_change_replaces_the_timer(store: GameStateStore) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=10)

    async def scenario():
        scheduler.start()
        first = scheduler._task
        store.dispatch(SetGameSpeed(2))
        second = scheduler._task
        await asyncio.sleep(0.01)
        scheduler.stop()
        return first, second

    first, second = asyncio.run(scenario())

    assert first is not second
    assert first.cancelled()


def test_autosave_respects_the_setting(store: GameStateStore, tmp_path: Path) -> None:
    saves = SaveStore(tmp_path)
    saver = AutoSaver(store, saves, "lin", interval=60)

    assert asyncio.run(saver.save_now()) is True
    assert saves.path_for("lin").exists()

    saves.path_for("lin").unlink()
    store.dispatch(UpdateSettings({"auto_save": False}))

    assert asyncio.run(saver.save_now()) is False
    assert not saves.path_for("lin").exists()


def test_autosave_logs_write_failures(
    store: GameStateStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    saves = SaveStore(tmp_path)
    saver = AutoSaver(store, saves, "lin")

    async def _fail(key, state):
        raise OSError("disk full")

    monkeypatch.setattr(saves, "save", _fail)

    assert asyncio.run(saver.save_now()) is False


def test_a_failing_tick_is_logged_and_ticking_continues(
    store: GameStateStore, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    scheduler = TickScheduler(store, base_tick_rate_ms=10)
    dispatch = store.dispatch
    failures = []

    def flaky(action):
        if not failures:
            failures.append(action)
            raise RuntimeError("catalog vanished")
        return dispatch(action)

    monkeypatch.setattr(store, "dispatch", flaky)

    async def scenario():
        scheduler.start()
        await asyncio.sleep(0.1)
        ticking = scheduler.ticking
        scheduler.stop()
        return ticking

    with caplog.at_level("ERROR", logger="xiuxian.scheduler"):
        ticking = asyncio.run(scenario())

    assert ticking
    assert len(failures) == 1
    assert "Tick dispatch failed" in caplog.text
    assert store.state.time.ke > 1
