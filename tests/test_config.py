from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.config import GameConfig, env

_VARIABLES = (
    "DISCORD_TOKEN",
    "XIUXIAN_TICK_RATE_MS",
    "XIUXIAN_AUTOSAVE_SECONDS",
    "XIUXIAN_LOG_LEVEL",
    "XIUXIAN_DEFAULT_NAME",
    "XIUXIAN_MAX_SPEED",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _VARIABLES:
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_environment() -> None:
    config = GameConfig.from_env()

    assert config.token is None
    assert config.tick_rate_ms == 1000
    assert config.autosave_seconds == 30.0
    assert config.log_level == logging.INFO
    assert config.default_name == "Wanderer"
    assert config.max_speed == 10.0


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DISCORD_TOKEN", "secret")
    monkeypatch.setenv("XIUXIAN_TICK_RATE_MS", "250")
    monkeypatch.setenv("XIUXIAN_AUTOSAVE_SECONDS", "5")
    monkeypatch.setenv("XIUXIAN_LOG_LEVEL", "debug")
    monkeypatch.setenv("XIUXIAN_DEFAULT_NAME", "Han Li")
    monkeypatch.setenv("XIUXIAN_MAX_SPEED", "20")

    config = GameConfig.from_env(require_token=True)

    assert config.token == "secret"
    assert config.tick_rate_ms == 250
    assert config.autosave_seconds == 5.0
    assert config.log_level == logging.DEBUG
    assert config.default_name == "Han Li"
    assert config.max_speed == 20.0


def test_out_of_range_values_are_clamped(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("XIUXIAN_TICK_RATE_MS", "1")
    monkeypatch.setenv("XIUXIAN_AUTOSAVE_SECONDS", "0")
    monkeypatch.setenv("XIUXIAN_MAX_SPEED", "0.5")
    monkeypatch.setenv("XIUXIAN_LOG_LEVEL", "chatty")
    monkeypatch.setenv("XIUXIAN_DEFAULT_NAME", "   ")

    config = GameConfig.from_env()

    assert config.tick_rate_ms == 10
    assert config.autosave_seconds == 1.0
    assert config.max_speed == 1.0
    assert config.log_level == logging.INFO
    assert config.default_name == "Wanderer"


def test_missing_token_is_an_error_when_required() -> None:
    with pytest.raises(RuntimeError):
        GameConfig.from_env(require_token=True)

    with pytest.raises(RuntimeError):
        env("DISCORD_TOKEN")

    assert env("DISCORD_TOKEN", "fallback") == "fallback"
