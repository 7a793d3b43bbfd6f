"""asyncio tasks that drive a :class:`~xiuxian.game.GameStateStore`.

:class:`TickScheduler` dispatches :class:`~xiuxian.game.Tick` at a period of
``base_tick_rate / game_speed`` and recreates its timer whenever the pause
flag, the speed or the in-combat flag changes.  :class:`AutoSaver` writes
the store's state to a :class:`~xiuxian.storage.SaveStore` on an interval.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .game import GameStateStore, Tick
from .models.state import GameState
from .storage import SaveStore

log = logging.getLogger(__name__)

DEFAULT_TICK_RATE_MS = 1000
DEFAULT_AUTOSAVE_SECONDS = 30.0


def _timer_key(state: GameState) -> tuple[bool, float, bool]:
    return (state.is_paused, state.game_speed, state.combat.in_combat)


class TickScheduler:
    def __init__(self, store: GameStateStore, *, base_tick_rate_ms: int = DEFAULT_TICK_RATE_MS) -> None:
        self._store = store
        self._base_tick_rate_ms = max(1, int(base_tick_rate_ms))
        self._task: Optional[asyncio.Task[None]] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def running(self) -> bool:
        return self._unsubscribe is not None

    @property
    def ticking(self) -> bool:
        """``True`` while a timer task is live (not paused, not in combat)."""

        return self._task is not None and not self._task.done()

    def period_for(self, state: GameState) -> float:
        return self._base_tick_rate_ms / 1000 / state.game_speed

    def start(self) -> None:
        """Begin ticking; must be called from inside a running event loop."""

        if self.running:
            return
        self._unsubscribe = self._store.subscribe(self._on_state_change)
        self._reschedule(self._store.state)

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._cancel()

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _on_state_change(self, state: GameState, previous: GameState) -> None:
        if _timer_key(state) != _timer_key(previous):
            self._reschedule(state)

    def _reschedule(self, state: GameState) -> None:
        self._cancel()
        if state.is_paused or state.combat.in_combat:
            log.debug("Tick timer idle (paused=%s, in_combat=%s)", state.is_paused, state.combat.in_combat)
            return
        period = self.period_for(state)
        self._task = asyncio.get_running_loop().create_task(self._run(period))
        log.debug("Tick timer running every %.3fs", period)

    async def _run(self, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            try:
                self._store.dispatch(Tick())
            except Exception:
                log.exception("Tick dispatch failed")


class AutoSaver:
    """Periodically persist ``store`` under ``key`` while auto-save is enabled."""

    def __init__(
        self,
        store: GameStateStore,
        save_store: SaveStore,
        key: str,
        *,
        interval: float = DEFAULT_AUTOSAVE_SECONDS,
    ) -> None:
        self._store = store
        self._save_store = save_store
        self._key = key
        self._interval = max(1.0, float(interval))
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def save_now(self) -> bool:
        """Write the current state unless auto-save is switched off."""

        state = self._store.state
        if not state.settings.auto_save:
            return False
        try:
            await self._save_store.save(self._key, state)
        except OSError:
            log.exception("Auto-save for %s failed", self._key)
            return False
        return True

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.save_now()


__all__ = ["AutoSaver", "DEFAULT_AUTOSAVE_SECONDS", "DEFAULT_TICK_RATE_MS", "TickScheduler"]
