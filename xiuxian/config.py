"""Runtime configuration read from environment variables."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass


def env(name: str, default: str | None = None) -> str:
    value = os.getenv(name, default)
    if value is None:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


@dataclass(slots=True)
class GameConfig:
    token: str | None = None
    tick_rate_ms: int = 1000
    autosave_seconds: float = 30.0
    log_level: int = logging.INFO
    default_name: str = "Wanderer"
    max_speed: float = 10.0

    @classmethod
    def from_env(cls, *, require_token: bool = False) -> "GameConfig":
        token = env("DISCORD_TOKEN") if require_token else os.getenv("DISCORD_TOKEN")
        tick_rate_ms = int(os.getenv("XIUXIAN_TICK_RATE_MS", "1000"))
        autosave_seconds = float(os.getenv("XIUXIAN_AUTOSAVE_SECONDS", "30"))
        level_name = os.getenv("XIUXIAN_LOG_LEVEL", "INFO").strip().upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            log_level = logging.INFO
        default_name = os.getenv("XIUXIAN_DEFAULT_NAME", "Wanderer").strip() or "Wanderer"
        max_speed = float(os.getenv("XIUXIAN_MAX_SPEED", "10"))

        tick_rate_ms = max(10, tick_rate_ms)
        autosave_seconds = max(1.0, autosave_seconds)
        max_speed = max(1.0, max_speed)

        return cls(
            token=token,
            tick_rate_ms=tick_rate_ms,
            autosave_seconds=autosave_seconds,
            log_level=log_level,
            default_name=default_name,
            max_speed=max_speed,
        )


__all__ = ["GameConfig", "env"]
