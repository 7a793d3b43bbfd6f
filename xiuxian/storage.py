"""Save-game persistence.

Each save is one JSON document ``{"version": N, "state": {...}}`` stored at
``<storage root>/saves/<key>.json``.  Older documents are upgraded through
the ``migrations/saves/NNNN_*.py`` scripts before being validated into a
:class:`~xiuxian.models.state.GameState`.
"""

from __future__ import annotations

import asyncio
import importlib.util
import json
import logging
import os
import tempfile
from copy import deepcopy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, MutableMapping, Optional
from urllib.parse import quote

from .models._validation import ModelValidationError
from .models.state import GameState

log = logging.getLogger(__name__)

SAVE_SCHEMA_VERSION = 3
# Saves written before versioning carry no envelope and are treated as this version.
LEGACY_SAVE_VERSION = 1
DEFAULT_SAVE_KEY = "default"

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS_DIR = PACKAGE_ROOT / "migrations" / "saves"

_STORAGE_LOCK = asyncio.Lock()


class SaveLoadError(RuntimeError):
    """Raised when a save cannot be read, upgraded or validated."""


class MissingMigrationError(RuntimeError):
    pass


def _is_site_packages(path: Path) -> bool:
    """Return ``True`` if ``path`` is inside a site/dist-packages directory."""

    normalized = {part.lower() for part in path.parts}
    return "site-packages" in normalized or "dist-packages" in normalized


def resolve_storage_root(package_root: Path) -> Path:
    """Determine where save files should live.

    ``XIUXIAN_DATA_ROOT`` wins when set.  An installed package (or a read-only
    checkout) stores saves in the working directory; otherwise they sit next
    to the source tree.
    """

    override = os.getenv("XIUXIAN_DATA_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    if _is_site_packages(package_root) or not os.access(package_root, os.W_OK):
        return Path.cwd().resolve()

    return package_root


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _write_json(path: Path, payload: Mapping[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path: Path | None = None
    data = json.dumps(payload, ensure_ascii=False, indent=2, sort_keys=True)
    try:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf8", dir=path.parent, delete=False
        ) as handle:
            temp_path = Path(handle.name)
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
        temp_path = None
    finally:
        if temp_path is not None:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass


def _read_json(path: Path) -> Optional[Any]:
    """Return the decoded document, ``None`` when missing, or raise :class:`SaveLoadError`."""

    try:
        with path.open("r", encoding="utf8") as handle:
            return json.load(handle)
    except FileNotFoundError:
        return None
    except json.JSONDecodeError as exc:
        raise SaveLoadError(f"Save file {path} is not valid JSON: {exc}") from exc
    except (OSError, UnicodeDecodeError) as exc:
        raise SaveLoadError(f"Save file {path} could not be read: {exc}") from exc


# ---------------------------------------------------------------------------
# Migration runner
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class SaveMigration:
    from_version: int
    to_version: int
    apply: Callable[[MutableMapping[str, Any]], MutableMapping[str, Any]]
    description: str


class MigrationRunner:
    """Loads ``migrations/saves`` scripts and chains them up to the current version."""

    def __init__(self, directory: Path = MIGRATIONS_DIR, *, target: int = SAVE_SCHEMA_VERSION) -> None:
        self._directory = directory
        self._target = target
        self._modules: list[SaveMigration] | None = None

    @property
    def target(self) -> int:
        return self._target

    def plan(self, current: int) -> list[SaveMigration]:
        migrations = self._load_migrations()
        plan: list[SaveMigration] = []
        version = current
        while version < self._target:
            step = next((m for m in migrations if m.from_version == version), None)
            if step is None:
                raise MissingMigrationError(
                    f"Missing save migration: {version} -> {self._target}"
                )
            plan.append(step)
            version = step.to_version

        if version != self._target:
            raise MissingMigrationError(
                f"Incomplete save migration chain: {current} -> {self._target}"
            )
        return plan

    def upgrade(self, state: Mapping[str, Any], current: int) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = deepcopy(dict(state))
        for step in self.plan(current):
            log.info(
                "Upgrading save %s -> %s: %s", step.from_version, step.to_version, step.description
            )
            payload = step.apply(payload)
        return payload

    def _load_migrations(self) -> list[SaveMigration]:
        if self._modules is not None:
            return self._modules
        modules: list[SaveMigration] = []
        if self._directory.is_dir():
            for path in sorted(self._directory.glob("*.py")):
                if path.name.startswith("__"):
                    continue
                spec = importlib.util.spec_from_file_location(
                    f"migrations.saves.{path.stem}", path
                )
                if spec is None or spec.loader is None:
                    continue
                module = importlib.util.module_from_spec(spec)
                try:
                    spec.loader.exec_module(module)  # type: ignore[assignment]
                except Exception:
                    log.exception("Failed to import save migration %s", path.name)
                    continue
                from_version = getattr(module, "FROM_VERSION", None)
                to_version = getattr(module, "TO_VERSION", None)
                apply = getattr(module, "apply", None)
                if not isinstance(from_version, int) or not isinstance(to_version, int):
                    continue
                if not callable(apply):
                    continue
                description = getattr(module, "DESCRIPTION", path.stem)
                modules.append(
                    SaveMigration(
                        from_version=from_version,
                        to_version=to_version,
                        apply=apply,
                        description=str(description),
                    )
                )
        modules.sort(key=lambda module: module.from_version)
        self._modules = modules
        return modules


_DEFAULT_RUNNER: MigrationRunner | None = None


def _default_runner() -> MigrationRunner:
    global _DEFAULT_RUNNER
    if _DEFAULT_RUNNER is None:
        _DEFAULT_RUNNER = MigrationRunner()
    return _DEFAULT_RUNNER


# ---------------------------------------------------------------------------
# Payload encoding
# ---------------------------------------------------------------------------


def build_save_payload(state: GameState) -> dict[str, Any]:
    return {"version": SAVE_SCHEMA_VERSION, "state": state.to_dict()}


def _split_envelope(payload: Mapping[str, Any]) -> tuple[int, Mapping[str, Any]]:
    if "version" in payload and "state" in payload:
        version = payload["version"]
        state = payload["state"]
        if isinstance(version, bool) or not isinstance(version, int):
            raise SaveLoadError(f"Save version must be an integer, got {version!r}")
        if not isinstance(state, Mapping):
            raise SaveLoadError("Save payload 'state' must be a mapping")
        return version, state
    return LEGACY_SAVE_VERSION, payload


def parse_save_payload(
    blob: Mapping[str, Any] | str | bytes, *, runner: MigrationRunner | None = None
) -> GameState:
    """Decode, upgrade and validate a save document.

    Every failure surfaces as :class:`SaveLoadError`.
    """

    runner = runner or _default_runner()
    if isinstance(blob, (str, bytes, bytearray)):
        try:
            blob = json.loads(blob)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SaveLoadError(f"Save data is not valid JSON: {exc}") from exc
    if not isinstance(blob, Mapping):
        raise SaveLoadError("Save data must be a JSON object")

    version, state = _split_envelope(blob)
    if version > runner.target:
        raise SaveLoadError(
            f"Save version {version} is newer than supported version {runner.target}"
        )
    try:
        upgraded = runner.upgrade(state, version) if version < runner.target else state
        return GameState.from_dict(upgraded)
    except MissingMigrationError as exc:
        raise SaveLoadError(str(exc)) from exc
    except ModelValidationError as exc:
        raise SaveLoadError(f"Save data failed validation: {exc}") from exc
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise SaveLoadError(f"Save data is malformed: {exc!r}") from exc


# ---------------------------------------------------------------------------
# SaveStore
# ---------------------------------------------------------------------------


class SaveStore:
    """Asynchronous save slots keyed by an arbitrary string (a user id, ``default``...)."""

    def __init__(self, root: Path | None = None, *, runner: MigrationRunner | None = None) -> None:
        self._storage_root = root if root is not None else resolve_storage_root(PACKAGE_ROOT)
        self._runner = runner

    @property
    def directory(self) -> Path:
        return self._storage_root / "saves"

    def path_for(self, key: str) -> Path:
        return self.directory / f"{quote(str(key), safe='')}.json"

    async def save(self, key: str, state: GameState) -> None:
        payload = build_save_payload(state)
        async with _STORAGE_LOCK:
            _write_json(self.path_for(key), payload)
        log.debug("Saved game %s", key)

    async def save_payload(self, key: str, payload: Mapping[str, Any]) -> None:
        async with _STORAGE_LOCK:
            _write_json(self.path_for(key), deepcopy(dict(payload)))
        log.debug("Saved game payload %s", key)

    async def load(self, key: str) -> Optional[GameState]:
        """Return the saved state for ``key``, ``None`` when no save exists."""

        async with _STORAGE_LOCK:
            payload = _read_json(self.path_for(key))
        if payload is None:
            return None
        return parse_save_payload(payload, runner=self._runner)

    async def load_raw(self, key: str) -> Optional[Any]:
        async with _STORAGE_LOCK:
            return _read_json(self.path_for(key))

    async def exists(self, key: str) -> bool:
        async with _STORAGE_LOCK:
            return self.path_for(key).exists()

    async def quarantine(self, key: str) -> Optional[Path]:
        """Move an unreadable save aside as ``<file>.corrupt`` and return its new path.

        Existing quarantined copies are kept; later ones get a numeric suffix.
        """

        async with _STORAGE_LOCK:
            path = self.path_for(key)
            if not path.exists():
                return None
            target = path.with_name(f"{path.name}.corrupt")
            counter = 1
            while target.exists():
                target = path.with_name(f"{path.name}.corrupt.{counter}")
                counter += 1
            os.replace(path, target)
        log.warning("Moved unreadable save %s to %s", key, target)
        return target

    async def delete(self, key: str) -> None:
        async with _STORAGE_LOCK:
            try:
                self.path_for(key).unlink()
            except FileNotFoundError:
                return


__all__ = [
    "DEFAULT_SAVE_KEY",
    "MigrationRunner",
    "MissingMigrationError",
    "SAVE_SCHEMA_VERSION",
    "SaveLoadError",
    "SaveMigration",
    "SaveStore",
    "build_save_payload",
    "parse_save_payload",
    "resolve_storage_root",
]
