"""Per-player game sessions shared by the Discord cogs."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .config import GameConfig
from .game import EnemyAction, GameStateStore, create_initial_state
from .models.combat import CombatPhase
from .models.state import GameState
from .scheduler import AutoSaver, TickScheduler
from .storage import SaveLoadError, SaveStore

log = logging.getLogger(__name__)

# Guards against a malformed battle that never hands the turn back.
MAX_ENEMY_STEPS = 4


@dataclass(slots=True)
class PlayerSession:
    key: str
    store: GameStateStore
    scheduler: TickScheduler
    autosaver: AutoSaver

    @property
    def state(self) -> GameState:
        return self.store.state

    def start(self) -> None:
        self.scheduler.start()
        self.autosaver.start()

    def stop(self) -> None:
        self.scheduler.stop()
        self.autosaver.stop()

    def resolve_enemy_turns(self) -> GameState:
        """Play pending enemy turns until the player may act or the battle ends.

        Battles opened by a tick can start on the enemy's initiative, so
        callers run this before and after every player action.
        """

        for _ in range(MAX_ENEMY_STEPS):
            if self.state.combat.phase is not CombatPhase.ENEMY_TURN:
                break
            previous = self.state
            if self.store.dispatch(EnemyAction()) is previous:
                log.warning("Enemy turn for %s made no progress", self.key)
                break
        return self.state


class SessionManager:
    """Creates, caches and persists one :class:`PlayerSession` per save key."""

    def __init__(self, save_store: SaveStore, config: GameConfig) -> None:
        self._save_store = save_store
        self._config = config
        self._sessions: dict[str, PlayerSession] = {}
        self._lock = asyncio.Lock()

    @property
    def save_store(self) -> SaveStore:
        return self._save_store

    def active(self, key: str) -> Optional[PlayerSession]:
        return self._sessions.get(key)

    async def get(self, key: str, *, name: str | None = None) -> PlayerSession:
        async with self._lock:
            session = self._sessions.get(key)
            if session is not None:
                return session
            state = await self._load_state(key)
            if state is None:
                state = create_initial_state(name or self._config.default_name)
                log.info("Created new game for %s", key)
            session = self._build(key, state)
            self._sessions[key] = session
        session.start()
        return session

    def _build(self, key: str, state: GameState) -> PlayerSession:
        store = GameStateStore(state, max_speed=self._config.max_speed)
        return PlayerSession(
            key=key,
            store=store,
            scheduler=TickScheduler(store, base_tick_rate_ms=self._config.tick_rate_ms),
            autosaver=AutoSaver(
                store, self._save_store, key, interval=self._config.autosave_seconds
            ),
        )

    async def _load_state(self, key: str) -> Optional[GameState]:
        try:
            return await self._save_store.load(key)
        except SaveLoadError as exc:
            log.warning("Save %s could not be loaded, starting fresh: %s", key, exc)
        # The fresh game's saves must not overwrite the unreadable file.
        await self._save_store.quarantine(key)
        return None

    async def save(self, session: PlayerSession) -> None:
        await self._save_store.save(session.key, session.state)

    async def reload(self, session: PlayerSession) -> bool:
        """Replace the session state with its saved copy; ``False`` if none is usable."""

        try:
            payload = await self._save_store.load_raw(session.key)
        except SaveLoadError as exc:
            log.warning("Save %s could not be read: %s", session.key, exc)
            return False
        if payload is None:
            return False
        return session.store.restore(payload)

    async def close(self) -> None:
        async with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.stop()
            try:
                await self.save(session)
            except OSError:
                log.exception("Failed to save session %s on shutdown", session.key)


__all__ = ["PlayerSession", "SessionManager"]
