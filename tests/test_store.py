from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

from heago_quest import engine
from heago_quest.models import EPOCH, SaveState, default_state
from heago_quest.store import SNAPSHOT_NAME, SnapshotStore, migrate


NOW = datetime(2026, 5, 1, 8, 0, tzinfo=UTC)


def _store(tmp_path: Path) -> SnapshotStore:
    return SnapshotStore.in_state_dir(tmp_path / "state")


def test_snapshot_file_uses_stable_name(tmp_path: Path) -> None:
    store = _store(tmp_path)
    assert store.path.name == f"{SNAPSHOT_NAME}.json"
    assert store.exists() is False


def test_missing_snapshot_loads_seeded_default(tmp_path: Path) -> None:
    report = _store(tmp_path).load_with_report(NOW)
    assert report.source == "default"
    assert report.recovered is False
    assert report.state == default_state(NOW)
    assert [h.title for h in report.state.habits] == ["Drink water", "Mindless scrolling"]


def test_save_then_load_round_trips(tmp_path: Path) -> None:
    store = _store(tmp_path)
    state = default_state(NOW)
    state = engine.tap_habit(state, state.habits[0].id, "+", NOW).state
    state = engine.toggle_daily(state, state.dailies[0].id, NOW).state
    state, _ = engine.add_todo(state, "Call the bank", notes="before noon")
    state = engine.adopt_challenge(state, {"id": "official.demo", "rewards": [{"title": "Tea", "cost": 2}]}).state

    store.save(state)
    assert store.load(NOW) == state
    assert not list(store.path.parent.glob("*.tmp"))


def test_saved_snapshot_uses_camel_case_keys(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(default_state(NOW))
    raw = json.loads(store.path.read_text(encoding="utf-8"))
    assert raw["schemaVersion"] == 1
    assert raw["lastResetISO"] == NOW.isoformat()
    assert "bestStreak" in raw["dailies"][0]
    assert "completionHistory" in raw["habits"][0]
    assert raw["joinedChallenges"] == []


def test_corrupt_snapshot_falls_back_to_default(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{not json", encoding="utf-8")
    report = store.load_with_report(NOW)
    assert report.source == "default"
    assert report.recovered is True
    assert report.state == default_state(NOW)


def test_non_object_snapshot_falls_back_to_default(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text("[1, 2, 3]", encoding="utf-8")
    report = store.load_with_report(NOW)
    assert report.source == "default"
    assert report.issues == ["snapshot is not an object"]


def test_unversioned_snapshot_is_migrated_with_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    legacy = {
        "player": {"level": 2, "xp": 40, "hp": 55, "gold": 12},
        "habits": [{"id": "h1", "title": "Water", "kind": "good", "value": 2}],
        "dailies": [{"id": "d1", "title": "Stretch", "done": True, "streak": 3}],
        "todos": [{"id": "t1", "title": "Taxes", "done": False}],
        "rewards": [{"id": "r1", "title": "Movie", "cost": 20}],
        "lastResetISO": "2026-04-30T07:00:00.000Z",
    }
    store.path.write_text(json.dumps(legacy), encoding="utf-8")

    report = store.load_with_report(NOW)
    assert report.source == "snapshot"
    assert report.migrated_from == 0
    state = report.state
    assert state.player.level == 2
    assert state.habits[0].completion_history == ()
    daily = state.dailies[0]
    assert (daily.streak, daily.best_streak, daily.completion_history) == (3, 3, ())
    assert "dailies[0].bestStreak: missing, raised to streak" in report.issues
    assert state.last_reset == datetime(2026, 4, 30, 7, 0, tzinfo=UTC)
    assert state.joined_challenges == ()


def test_migrated_daily_keeps_best_streak_invariant_when_toggled(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    legacy = {
        "player": {"level": 1, "xp": 0, "hp": 50, "gold": 0},
        "dailies": [
            {"id": "d1", "title": "Stretch", "done": True, "streak": 3},
            {"id": "d2", "title": "Read", "done": False, "streak": 0},
        ],
        "lastResetISO": NOW.isoformat(),
    }
    store.path.write_text(json.dumps(legacy), encoding="utf-8")

    state = store.load(NOW)
    assert state.find("dailies", "d2").best_streak == 0
    for _ in range(3):
        state = engine.toggle_daily(state, "d1", NOW).state
        daily = state.find("dailies", "d1")
        assert daily.best_streak >= daily.streak
    assert (daily.done, daily.streak, daily.best_streak) == (False, 4, 4)


def test_fractional_numbers_are_truncated_and_reported() -> None:
    doc = SaveState(last_reset=NOW).to_dict()
    doc["player"]["xp"] = 12.7
    doc["player"]["gold"] = 4.0
    doc["habits"] = [{"id": "h1", "title": "Water", "kind": "good", "value": 1, "goal": 2.5}]
    canonical, issues = migrate(doc)
    assert canonical["player"]["xp"] == 12
    assert canonical["player"]["gold"] == 4
    assert canonical["habits"][0]["goal"] == 2
    assert "player.xp: not a whole number, truncated" in issues
    assert "habits[0].goal: not a whole number, truncated" in issues
    assert not any(issue.startswith("player.gold") for issue in issues)


def test_malformed_fields_are_coerced_and_reported() -> None:
    doc = {
        "schemaVersion": 1,
        "player": {"level": "high", "xp": 10, "hp": 5000, "gold": 3},
        "habits": [
            {"id": "h1", "title": "Water", "kind": "sometimes", "value": 42, "completionHistory": ["nope"]},
            {"id": "h1", "title": "Dup", "kind": "good", "value": 0},
            "garbage",
        ],
        "dailies": [{"id": "d1", "title": "Walk", "done": "yes", "streak": 5, "bestStreak": 2}],
        "todos": "not-a-list",
        "rewards": [{"id": "r1", "title": "Nap", "cost": 0}],
        "lastResetISO": "yesterday",
    }
    canonical, issues = migrate(doc)
    assert canonical["player"] == {"level": 1, "xp": 10, "hp": 999, "gold": 3}
    assert canonical["habits"][0]["kind"] == "both"
    assert canonical["habits"][0]["value"] == 10
    assert canonical["habits"][0]["completionHistory"] == []
    assert canonical["habits"][1]["id"] != "h1"
    assert len(canonical["habits"]) == 2
    assert canonical["dailies"][0]["done"] is False
    assert canonical["dailies"][0]["bestStreak"] == 5
    assert canonical["todos"] == []
    assert canonical["rewards"][0]["cost"] == 1
    assert canonical["lastResetISO"] == EPOCH.isoformat()
    assert any(issue.startswith("dailies[0].bestStreak") for issue in issues)
    assert any(issue.startswith("habits[1].id") for issue in issues)


def test_newer_schema_version_is_read_best_effort() -> None:
    doc = SaveState(last_reset=NOW).to_dict()
    doc["schemaVersion"] = 7
    canonical, issues = migrate(doc)
    assert canonical["schemaVersion"] == 1
    assert issues and issues[0].startswith("schemaVersion")


def test_load_from_canonical_document_is_clean(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.save(default_state(NOW))
    report = store.load_with_report(NOW)
    assert report.source == "snapshot"
    assert report.migrated_from is None
    assert report.issues == []
