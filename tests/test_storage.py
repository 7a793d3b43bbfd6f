from __future__ import annotations

import asyncio
import importlib
import json
import sys
from dataclasses import replace
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from xiuxian.game import create_initial_state
from xiuxian.models.progression import ActivityType, BreakthroughState
from xiuxian.storage import (
    SAVE_SCHEMA_VERSION,
    MigrationRunner,
    MissingMigrationError,
    SaveLoadError,
    SaveStore,
    _write_json,
    build_save_payload,
    parse_save_payload,
    resolve_storage_root,
)


def _legacy_time(ke: int = 5) -> dict[str, int]:
    return {"ke": ke, "day": 2, "tenDay": 1, "month": 1, "year": 1}


def _legacy_save() -> dict:
    return {
        "character": {
            "name": "Lin Feng",
            "realm": "qi_refining",
            "realmStage": 2,
            "cultivationValue": 180,
            "cultivationMax": 150,
            "breakthroughNotified": True,
            "stats": {
                "hp": 130,
                "maxHp": 120,
                "spiritualPower": 60,
                "maxSpiritualPower": 60,
                "divineSense": 12,
                "comprehension": 10,
                "luck": 10,
                "speed": 12,
                "attack": 18,
                "defense": 12,
            },
            "inventory": {"items": [{"itemId": "spirit_grass", "quantity": 3}], "capacity": 50},
            "spiritStones": 42,
            "currentActivity": "travel",
            "skillPoints": {"wudaoPoints": 1, "totalPointsEarned": 2},
            "spiritBeasts": [{"beastId": "fox", "bondLevel": 2}],
        },
        "time": _legacy_time(),
        "market": {
            "items": [
                {
                    "itemId": "spirit_grass",
                    "currentPrice": 100,
                    "basePrice": 8,
                    "volatility": 0.045,
                    "liquidity": 120,
                    "maxLiquidity": 100,
                    "priceHistory": [8, 9],
                }
            ],
            "lastUpdate": _legacy_time(1),
            "activeEvents": [
                {
                    "id": "war",
                    "name": "War",
                    "affectedItems": ["spirit_grass"],
                    "priceModifier": 2.0,
                    "duration": 3,
                    "remainingDuration": 0,
                }
            ],
        },
        "logs": [{"timestamp": _legacy_time(), "type": "market", "message": "Bought 3 Spirit Grass"}],
        "isPaused": True,
        "gameSpeed": 0,
        "settings": {"autoSave": False},
    }


def test_write_json_preserves_original_on_replace_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    target = tmp_path / "save.json"
    _write_json(target, {"alpha": 1})
    original_contents = target.read_text(encoding="utf8")

    def _boom(src: Path, dst: Path) -> None:
        raise RuntimeError("simulated failure")

    monkeypatch.setattr("xiuxian.storage.os.replace", _boom)

    with pytest.raises(RuntimeError):
        _write_json(target, {"alpha": 2})

    assert target.read_text(encoding="utf8") == original_contents
    leftovers = [p for p in target.parent.iterdir() if p.name != "save.json"]
    assert leftovers == []


def test_resolve_storage_root_prefers_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    override = tmp_path / "custom"
    monkeypatch.setenv("XIUXIAN_DATA_ROOT", str(override))

    result = resolve_storage_root(Path("/ignored/base"))

    assert result == override.resolve()


def test_resolve_storage_root_handles_site_packages(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("XIUXIAN_DATA_ROOT", raising=False)
    package_root = tmp_path / "lib" / "python3.12" / "site-packages" / "xiuxian"
    package_root.mkdir(parents=True)

    working_dir = tmp_path / "runtime"
    working_dir.mkdir()
    monkeypatch.chdir(working_dir)

    result = resolve_storage_root(package_root)

    assert result == working_dir.resolve()


def test_resolve_storage_root_defaults_to_package_root(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.delenv("XIUXIAN_DATA_ROOT", raising=False)
    package_root = tmp_path / "xiuxian"
    package_root.mkdir()

    result = resolve_storage_root(package_root)

    assert result == package_root


def test_save_store_round_trip(tmp_path: Path) -> None:
    store = SaveStore(tmp_path)
    state = create_initial_state("Lin Feng")

    async def scenario():
        assert await store.load("user/1") is None
        await store.save("user/1", state)
        exists = await store.exists("user/1")
        loaded = await store.load("user/1")
        await store.delete("user/1")
        return exists, loaded, await store.exists("user/1")

    exists, loaded, after_delete = asyncio.run(scenario())

    assert exists
    assert loaded is not None
    assert loaded.to_dict() == state.to_dict()
    assert not after_delete
    assert store.path_for("user/1").name == "user%2F1.json"


def test_saved_documents_are_versioned(tmp_path: Path) -> None:
    store = SaveStore(tmp_path)
    asyncio.run(store.save("default", create_initial_state()))

    document = json.loads(store.path_for("default").read_text(encoding="utf8"))

    assert document["version"] == SAVE_SCHEMA_VERSION
    assert document["state"]["character"]["name"] == "Wanderer"


def test_corrupt_save_file_raises(tmp_path: Path) -> None:
    store = SaveStore(tmp_path)
    store.directory.mkdir(parents=True)
    store.path_for("default").write_text("{oops", encoding="utf8")

    with pytest.raises(SaveLoadError):
        asyncio.run(store.load("default"))


@pytest.mark.parametrize(
    "blob",
    [
        "not json at all",
        "[1, 2, 3]",
        {"version": 99, "state": {}},
        {"version": "3", "state": {}},
        {"version": 3, "state": []},
        {"version": 3, "state": {"character": {}, "time": {}, "market": {}}},
    ],
)
def test_invalid_payloads_raise_save_load_error(blob) -> None:
    with pytest.raises(SaveLoadError):
        parse_save_payload(blob)


def test_current_payload_parses_without_migration() -> None:
    state = create_initial_state("Lin Feng")

    parsed = parse_save_payload(json.dumps(build_save_payload(state)))

    assert parsed.to_dict() == state.to_dict()


def test_legacy_save_is_upgraded_to_the_current_layout() -> None:
    state = parse_save_payload(_legacy_save())

    character = state.character
    assert character.realm_stage == 2
    assert character.cultivation_value == 150
    assert character.breakthrough is BreakthroughState.READY_NOTIFIED
    assert character.stats.hp == 120
    assert character.current_activity is ActivityType.TRAVEL
    assert character.inventory.quantity_of("spirit_grass") == 3
    assert character.skill_points.total_points_earned == 2
    assert character.extensions == {"spirit_beasts": [{"beast_id": "fox", "bond_level": 2}]}

    grass = state.market.find("spirit_grass")
    assert grass.current_price == pytest.approx(24.0)
    assert grass.liquidity == 100
    assert state.market.active_events == ()

    assert state.logs[0].key == "legacy.message"
    assert state.logs[0].params == {"text": "Bought 3 Spirit Grass"}
    assert state.is_paused
    assert state.game_speed == 1.0
    assert state.settings.auto_save is False
    assert not state.combat.in_combat


def test_legacy_main_tree_nodes_become_learned_skills() -> None:
    payload = _legacy_save()
    payload["character"]["learnedSkills"] = {
        "mainTree": {"sword": ["sword_t1_basic_form"], "body": ["body_t1_iron_skin"]},
        "elementTrees": {"fire": ["fire_t1_spark"]},
    }

    state = parse_save_payload(payload)

    assert state.character.skill_points.learned == ("sword_t1_basic_form", "body_t1_iron_skin")
    assert state.character.extensions["learned_skills"] == {"element_trees": {"fire": ["fire_t1_spark"]}}
    assert state.market.quiet_days == 0
    assert state.market.event_cooldowns == {}


def test_learned_nodes_and_event_timers_survive_a_save(tmp_path: Path) -> None:
    state = create_initial_state("Lin Feng")
    points = replace(state.character.skill_points, learned=("mind_t1_meditation",))
    state = replace(
        state,
        character=replace(state.character, skill_points=points),
        market=replace(state.market, quiet_days=3, event_cooldowns={"war": 12}),
    )
    store = SaveStore(tmp_path)

    asyncio.run(store.save("default", state))
    loaded = asyncio.run(store.load("default"))

    assert loaded.character.skill_points.learned == ("mind_t1_meditation",)
    assert loaded.market.quiet_days == 3
    assert loaded.market.event_cooldowns == {"war": 12}


def test_missing_migration_chain_is_reported(tmp_path: Path) -> None:
    runner = MigrationRunner(tmp_path, target=3)

    with pytest.raises(MissingMigrationError):
        runner.plan(1)

    with pytest.raises(SaveLoadError):
        parse_save_payload(_legacy_save(), runner=runner)


def test_bundled_migrations_chain_to_the_current_version() -> None:
    runner = MigrationRunner()

    plan = runner.plan(1)

    assert [(step.from_version, step.to_version) for step in plan] == [(1, 2), (2, 3)]
    assert runner.plan(SAVE_SCHEMA_VERSION) == []


def test_snake_case_migration_derives_breakthrough_state() -> None:
    migration = importlib.import_module("migrations.saves.0001_snake_case_state")
    payload = _legacy_save()
    payload["character"]["cultivationValue"] = 40
    payload["character"]["breakthroughNotified"] = True

    upgraded = migration.apply(payload)

    assert upgraded["character"]["breakthrough"] == "accruing"
    assert upgraded["time"]["ten_day"] == 1
    assert upgraded["logs"][0]["message"] == "Bought 3 Spirit Grass"


def test_structured_log_migration_keeps_keyed_entries() -> None:
    migration = importlib.import_module("migrations.saves.0002_structured_logs")
    keyed = {"timestamp": {}, "type": "system", "key": "system.welcome", "params": {"name": "Lin"}}
    state = {"logs": [keyed, {"timestamp": {}, "type": "event", "message": "Old news"}, "junk"]}

    upgraded = migration.apply(state)

    assert upgraded["logs"][0] == keyed
    assert upgraded["logs"][1]["key"] == "legacy.message"
    assert upgraded["logs"][1]["params"] == {"text": "Old news"}
    assert len(upgraded["logs"]) == 2
