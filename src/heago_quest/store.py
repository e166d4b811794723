from __future__ import annotations

"""Snapshot persistence: atomic JSON writes and versioned migration on load."""

import json
import math
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from jsonschema import Draft202012Validator

from .leveling import MAX_HABIT_VALUE, MAX_HP, MIN_HABIT_VALUE, MIN_HP, clamp
from .models import (
    EPOCH,
    HABIT_KINDS,
    SCHEMA_VERSION,
    SaveState,
    default_state,
    format_timestamp,
    new_id,
    parse_timestamp,
)


SNAPSHOT_NAME = "heago-habits-save-v1"
SCHEMA_PATH = Path(__file__).resolve().parent / "data" / "savestate.schema.json"


@dataclass
class LoadReport:
    """Outcome of one `load`: where the state came from and what had to be repaired."""

    state: SaveState
    source: str
    migrated_from: int | None = None
    issues: list[str] = field(default_factory=list)

    @property
    def recovered(self) -> bool:
        return bool(self.issues)


def _save_json(path: Path, value: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.parent / f".{path.name}.tmp"
    payload = json.dumps(value, indent=2)
    for attempt in range(5):
        temp_path.write_text(payload, encoding="utf-8")
        try:
            temp_path.replace(path)
            return
        except PermissionError:
            if attempt == 4:
                raise
            # On Windows, AV/indexers can briefly lock newly-written temp files.
            time.sleep(0.02 * (attempt + 1))


def _load_schema() -> dict[str, Any]:
    return json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))


# Field coercion


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(value)
    return None


class _Coercer:
    """Collects a human-readable issue for every value replaced by a default."""

    def __init__(self) -> None:
        self.issues: list[str] = []

    def note(self, path: str, reason: str) -> None:
        self.issues.append(f"{path}: {reason}")

    def integer(self, data: dict[str, Any], key: str, path: str, default: int, low: int | None = None, high: int | None = None) -> int:
        if key not in data:
            return default
        value = _as_int(data[key])
        if value is None:
            self.note(f"{path}.{key}", "not a number, defaulted")
            return default
        if value != data[key]:
            self.note(f"{path}.{key}", "not a whole number, truncated")
        bounded = clamp(value, low if low is not None else value, high if high is not None else value)
        if bounded != value:
            self.note(f"{path}.{key}", "out of range, clamped")
        return bounded

    def boolean(self, data: dict[str, Any], key: str, path: str) -> bool:
        value = data.get(key, False)
        if not isinstance(value, bool):
            self.note(f"{path}.{key}", "not a boolean, defaulted")
            return False
        return value

    def text(self, data: dict[str, Any], key: str, path: str) -> str:
        value = data.get(key, "")
        if not isinstance(value, str):
            self.note(f"{path}.{key}", "not a string, defaulted")
            return ""
        return value

    def optional_text(self, data: dict[str, Any], key: str, path: str) -> str | None:
        value = data.get(key)
        if value is None:
            return None
        if not isinstance(value, str):
            self.note(f"{path}.{key}", "not a string, dropped")
            return None
        return value

    def ident(self, data: dict[str, Any], path: str, seen: set[str]) -> str:
        value = data.get("id")
        if not isinstance(value, str) or not value or value in seen:
            self.note(f"{path}.id", "missing or duplicate, regenerated")
            value = new_id()
        seen.add(value)
        return value

    def history(self, data: dict[str, Any], path: str) -> list[str]:
        raw = data.get("completionHistory")
        if raw is None:
            return []
        if not isinstance(raw, list):
            self.note(f"{path}.completionHistory", "not a list, defaulted")
            return []
        out: list[str] = []
        for item in raw:
            parsed = parse_timestamp(item)
            if parsed is None:
                self.note(f"{path}.completionHistory", "unparsable timestamp dropped")
                continue
            out.append(format_timestamp(parsed))
        return out

    def records(self, doc: dict[str, Any], key: str) -> list[dict[str, Any]]:
        raw = doc.get(key)
        if raw is None:
            return []
        if not isinstance(raw, list):
            self.note(key, "not a list, defaulted")
            return []
        rows = [item for item in raw if isinstance(item, dict)]
        if len(rows) != len(raw):
            self.note(key, "non-object entries dropped")
        return rows


def _with_notes(row: dict[str, Any], notes: str | None) -> dict[str, Any]:
    if notes is not None:
        row["notes"] = notes
    return row


def _normalize_habit(c: _Coercer, item: dict[str, Any], path: str, seen: set[str]) -> dict[str, Any]:
    kind = item.get("kind", "both")
    if kind not in HABIT_KINDS:
        c.note(f"{path}.kind", "unknown kind, defaulted")
        kind = "both"
    row: dict[str, Any] = {
        "id": c.ident(item, path, seen),
        "title": c.text(item, "title", path),
        "kind": kind,
        "value": c.integer(item, "value", path, 0, MIN_HABIT_VALUE, MAX_HABIT_VALUE),
        "completionHistory": c.history(item, path),
    }
    goal = item.get("goal")
    if goal is not None:
        parsed_goal = _as_int(goal)
        if parsed_goal is None or parsed_goal <= 0:
            c.note(f"{path}.goal", "not a positive integer, dropped")
        else:
            if parsed_goal != goal:
                c.note(f"{path}.goal", "not a whole number, truncated")
            row["goal"] = parsed_goal
    return _with_notes(row, c.optional_text(item, "notes", path))


def _normalize_daily(c: _Coercer, item: dict[str, Any], path: str, seen: set[str]) -> dict[str, Any]:
    streak = c.integer(item, "streak", path, 0, 0)
    best_streak = c.integer(item, "bestStreak", path, 0, 0)
    if best_streak < streak:
        reason = "below streak, raised" if "bestStreak" in item else "missing, raised to streak"
        c.note(f"{path}.bestStreak", reason)
        best_streak = streak
    row = {
        "id": c.ident(item, path, seen),
        "title": c.text(item, "title", path),
        "done": c.boolean(item, "done", path),
        "streak": streak,
        "bestStreak": best_streak,
        "completionHistory": c.history(item, path),
    }
    return _with_notes(row, c.optional_text(item, "notes", path))


def _normalize_todo(c: _Coercer, item: dict[str, Any], path: str, seen: set[str]) -> dict[str, Any]:
    row = {"id": c.ident(item, path, seen), "title": c.text(item, "title", path), "done": c.boolean(item, "done", path)}
    return _with_notes(row, c.optional_text(item, "notes", path))


def _normalize_reward(c: _Coercer, item: dict[str, Any], path: str, seen: set[str]) -> dict[str, Any]:
    row = {
        "id": c.ident(item, path, seen),
        "title": c.text(item, "title", path),
        "cost": c.integer(item, "cost", path, 10, 1),
    }
    return _with_notes(row, c.optional_text(item, "notes", path))


NORMALIZERS: dict[str, Callable[[_Coercer, dict[str, Any], str, set[str]], dict[str, Any]]] = {
    "habits": _normalize_habit,
    "dailies": _normalize_daily,
    "todos": _normalize_todo,
    "rewards": _normalize_reward,
}


def _normalize_v1(doc: dict[str, Any], c: _Coercer) -> dict[str, Any]:
    raw_player = doc.get("player")
    if not isinstance(raw_player, dict):
        if raw_player is not None:
            c.note("player", "not an object, defaulted")
        raw_player = {}
    player = {
        "level": c.integer(raw_player, "level", "player", 1, 1),
        "xp": c.integer(raw_player, "xp", "player", 0, 0),
        "hp": c.integer(raw_player, "hp", "player", 50, MIN_HP, MAX_HP),
        "gold": c.integer(raw_player, "gold", "player", 0, 0),
    }

    canonical: dict[str, Any] = {"schemaVersion": SCHEMA_VERSION, "player": player}
    for key, normalize in NORMALIZERS.items():
        seen: set[str] = set()
        canonical[key] = [normalize(c, item, f"{key}[{idx}]", seen) for idx, item in enumerate(c.records(doc, key))]

    last_reset = parse_timestamp(doc.get("lastResetISO"))
    if last_reset is None:
        if doc.get("lastResetISO") is not None:
            c.note("lastResetISO", "unparsable, defaulted")
        last_reset = EPOCH
    canonical["lastResetISO"] = format_timestamp(last_reset)

    joined = doc.get("joinedChallenges", [])
    if not isinstance(joined, list):
        c.note("joinedChallenges", "not a list, defaulted")
        joined = []
    canonical["joinedChallenges"] = [item for item in joined if isinstance(item, str)]
    return canonical


def _upgrade_v0(doc: dict[str, Any]) -> dict[str, Any]:
    # v0 is the unversioned browser snapshot: histories and bestStreak may be absent.
    upgraded = dict(doc)
    upgraded["schemaVersion"] = 1
    upgraded.setdefault("joinedChallenges", [])
    return upgraded


MIGRATIONS: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {0: _upgrade_v0}


def snapshot_version(doc: dict[str, Any]) -> int:
    version = _as_int(doc.get("schemaVersion"))
    return 0 if version is None or version < 0 else version


def migrate(doc: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Upgrade a raw snapshot to the current canonical shape.

    Version steps run in order; the result is then normalized field by field so an
    unvalidated document never reaches `SaveState.from_dict`.
    """

    coercer = _Coercer()
    version = snapshot_version(doc)
    if version > SCHEMA_VERSION:
        coercer.note("schemaVersion", f"newer than supported ({version}), read as v{SCHEMA_VERSION}")
    while version < SCHEMA_VERSION:
        doc = MIGRATIONS[version](doc)
        version += 1
    return _normalize_v1(doc, coercer), coercer.issues


class SnapshotStore:
    """Single named local record holding the whole `SaveState`."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.validator = Draft202012Validator(_load_schema())

    @classmethod
    def in_state_dir(cls, state_dir: Path) -> "SnapshotStore":
        return cls(state_dir / f"{SNAPSHOT_NAME}.json")

    def exists(self) -> bool:
        return self.path.exists()

    def load_with_report(self, now: datetime | None = None) -> LoadReport:
        if not self.path.exists():
            return LoadReport(state=default_state(now), source="default")
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            return LoadReport(state=default_state(now), source="default", issues=[f"snapshot unreadable: {exc.__class__.__name__}"])
        if not isinstance(raw, dict):
            return LoadReport(state=default_state(now), source="default", issues=["snapshot is not an object"])

        original_version = snapshot_version(raw)
        canonical, issues = migrate(raw)
        errors = sorted(self.validator.iter_errors(canonical), key=lambda err: list(err.path))
        if errors:
            issues = issues + [f"schema: {error.message}" for error in errors]
            return LoadReport(state=default_state(now), source="default", issues=issues)
        return LoadReport(
            state=SaveState.from_dict(canonical),
            source="snapshot",
            migrated_from=original_version if original_version < SCHEMA_VERSION else None,
            issues=issues,
        )

    def load(self, now: datetime | None = None) -> SaveState:
        return self.load_with_report(now).state

    def save(self, state: SaveState) -> None:
        _save_json(self.path, state.to_dict())
