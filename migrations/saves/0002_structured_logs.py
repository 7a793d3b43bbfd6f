"""Replace pre-rendered log messages with structured log entries."""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from typing import Any

FROM_VERSION = 2
TO_VERSION = 3
DESCRIPTION = "Store game logs as message keys with parameters"

LEGACY_MESSAGE_KEY = "legacy.message"


def _convert(entry: Mapping[str, Any]) -> dict[str, Any]:
    if "key" in entry:
        return dict(entry)
    return {
        "timestamp": entry.get("timestamp") or {},
        "type": entry.get("type") or "system",
        "key": LEGACY_MESSAGE_KEY,
        "params": {"text": str(entry.get("message") or "")},
    }


def apply(state: MutableMapping[str, Any]) -> MutableMapping[str, Any]:
    logs = state.get("logs") or []
    state["logs"] = [_convert(entry) for entry in logs if isinstance(entry, Mapping)]
    return state
