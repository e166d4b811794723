from __future__ import annotations

"""Session service owning the SaveState: apply, persist, record."""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from pathlib import Path
from typing import Any

from . import analytics, engine
from .catalog import CatalogError, ChallengeCatalog
from .leveling import xp_to_next_level
from .models import COLLECTIONS, HABIT_KINDS, SCHEMA_VERSION, SaveState, format_timestamp, utc_now
from .paths import configured_timezone, ensure_home_dirs, tracker_home
from .scheduler import apply_daily_reset
from .store import SnapshotStore
from .telemetry import TelemetryLogger


MAX_TITLE_CHARS = 200
MAX_NOTES_CHARS = 2000


def _clean_title(title: str) -> str:
    text = (title or "").strip()
    if not text:
        raise ValueError("title must not be empty.")
    if len(text) > MAX_TITLE_CHARS:
        raise ValueError(f"title must be {MAX_TITLE_CHARS} characters or fewer.")
    return text


def _clean_notes(notes: str | None) -> str | None:
    if notes is None:
        return None
    text = notes.strip()
    if len(text) > MAX_NOTES_CHARS:
        raise ValueError(f"notes must be {MAX_NOTES_CHARS} characters or fewer.")
    return text or None


@dataclass
class TrackerService:
    """Stateful single-user session: every action is applied, saved, then logged."""

    home: Path
    dirs: dict[str, Path]
    store: SnapshotStore
    telemetry: TelemetryLogger
    catalog: ChallengeCatalog
    tz: tzinfo | None
    state: SaveState = field(default_factory=SaveState)
    clock: Callable[[], datetime] = utc_now

    @classmethod
    def create(cls, *, clock: Callable[[], datetime] | None = None, source: str = "cli") -> "TrackerService":
        """Load (or seed) the snapshot, run the reset check and log startup."""

        home = tracker_home()
        dirs = ensure_home_dirs(home)
        service = cls(
            home=home,
            dirs=dirs,
            store=SnapshotStore.in_state_dir(dirs["state"]),
            telemetry=TelemetryLogger(events_path=dirs["telemetry"] / "events.jsonl"),
            catalog=ChallengeCatalog.from_home(dirs["catalog"]),
            tz=configured_timezone(),
            clock=clock or utc_now,
        )
        service._load(source)
        return service

    def _now(self) -> datetime:
        return self.clock()

    def _load(self, source: str) -> None:
        first_run = not self.store.exists()
        report = self.store.load_with_report(self._now())
        self.state = report.state
        if report.migrated_from is not None:
            self.telemetry.log_event(
                "state.migrated",
                source=source,
                data={"from_version": report.migrated_from, "to_version": SCHEMA_VERSION},
            )
        if report.recovered:
            self.telemetry.log_event(
                "state.recovered",
                source=source,
                data={"issue_count": len(report.issues), "issues": report.issues[:20], "result": report.source},
            )
        if first_run or report.recovered or report.migrated_from is not None:
            self.store.save(self.state)
        self.check_daily_reset(source=source)
        self.telemetry.log_event(
            "tracker.started",
            source=source,
            data={"first_run": first_run, "level": self.state.player.level},
        )

    def _commit(self, next_state: SaveState, event_type: str, *, source: str, data: dict[str, Any]) -> None:
        self.store.save(next_state)
        previous_level = self.state.player.level
        self.state = next_state
        self.telemetry.log_event(event_type, source=source, data=data)
        if next_state.player.level > previous_level:
            self.telemetry.log_event(
                "player.leveled_up",
                source=source,
                data={"from_level": previous_level, "to_level": next_state.player.level},
            )

    def _action_payload(self, result: engine.ActionResult, collection: str, item_id: str) -> dict[str, Any]:
        item = result.state.find(collection, item_id)
        return {
            "applied": result.effect.applied,
            "effect": result.effect.to_dict(),
            "player": self.get_player(),
            "item": item.to_dict() if item is not None else None,
        }

    # Reads

    def get_state(self) -> dict[str, Any]:
        return self.state.to_dict()

    def get_player(self) -> dict[str, Any]:
        player = self.state.player
        needed = xp_to_next_level(player.level)
        return {**player.to_dict(), "xp_to_next_level": needed, "xp_progress": min(player.xp / needed, 1.0)}

    def list_items(self, collection: str) -> list[dict[str, Any]]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        return [item.to_dict() for item in getattr(self.state, collection)]

    # Scheduler

    def check_daily_reset(self, *, source: str = "scheduler") -> dict[str, Any]:
        now = self._now()
        next_state, did_reset = apply_daily_reset(self.state, now, self.tz)
        if did_reset:
            self._commit(
                next_state,
                "dailies.reset",
                source=source,
                data={"dailies": len(next_state.dailies), "reset_at": format_timestamp(now)},
            )
        return {"reset": did_reset, "lastResetISO": format_timestamp(self.state.last_reset)}

    # Actions

    def tap_habit(self, habit_id: str, direction: str, *, source: str = "cli") -> dict[str, Any]:
        if direction not in {"+", "-"}:
            raise ValueError("direction must be '+' or '-'.")
        habit = self.state.find("habits", habit_id)
        if habit is not None:
            if direction == "+" and not habit.allows_positive:
                raise ValueError(f"A {habit.kind} habit cannot be tapped '+'.")
            if direction == "-" and not habit.allows_negative:
                raise ValueError(f"A {habit.kind} habit cannot be tapped '-'.")
        result = engine.tap_habit(self.state, habit_id, direction, self._now())
        if result.effect.applied:
            self._commit(
                result.state,
                "habit.tapped",
                source=source,
                data={"habit_id": habit_id, "direction": direction, "effect": result.effect.to_dict()},
            )
        return self._action_payload(result, "habits", habit_id)

    def toggle_daily(self, daily_id: str, *, source: str = "cli") -> dict[str, Any]:
        result = engine.toggle_daily(self.state, daily_id, self._now())
        if result.effect.applied:
            daily = result.state.find("dailies", daily_id)
            self._commit(
                result.state,
                "daily.toggled",
                source=source,
                data={"daily_id": daily_id, "done": daily.done, "streak": daily.streak, "effect": result.effect.to_dict()},
            )
        return self._action_payload(result, "dailies", daily_id)

    def toggle_todo(self, todo_id: str, *, source: str = "cli") -> dict[str, Any]:
        result = engine.toggle_todo(self.state, todo_id)
        if result.effect.applied:
            todo = result.state.find("todos", todo_id)
            self._commit(
                result.state,
                "todo.toggled",
                source=source,
                data={"todo_id": todo_id, "done": todo.done, "effect": result.effect.to_dict()},
            )
        return self._action_payload(result, "todos", todo_id)

    def buy_reward(self, reward_id: str, *, source: str = "cli") -> dict[str, Any]:
        result = engine.buy_reward(self.state, reward_id)
        reward = self.state.find("rewards", reward_id)
        if result.effect.applied:
            self._commit(
                result.state,
                "reward.purchased",
                source=source,
                data={"reward_id": reward_id, "cost": reward.cost, "effect": result.effect.to_dict()},
            )
        elif reward is not None:
            self.telemetry.log_event(
                "reward.declined",
                source=source,
                data={"reward_id": reward_id, "cost": reward.cost, "gold": self.state.player.gold},
            )
        return self._action_payload(result, "rewards", reward_id)

    def add_habit(
        self,
        title: str,
        kind: str = "both",
        goal: int | None = None,
        notes: str | None = None,
        *,
        source: str = "cli",
    ) -> dict[str, Any]:
        if kind not in HABIT_KINDS:
            raise ValueError(f"kind must be one of: {', '.join(HABIT_KINDS)}.")
        if goal is not None and goal <= 0:
            raise ValueError("goal must be a positive integer.")
        next_state, habit = engine.add_habit(self.state, _clean_title(title), kind, goal, _clean_notes(notes))
        self._commit(next_state, "entity.added", source=source, data={"collection": "habits", "id": habit.id})
        return habit.to_dict()

    def add_daily(self, title: str, notes: str | None = None, *, source: str = "cli") -> dict[str, Any]:
        next_state, daily = engine.add_daily(self.state, _clean_title(title), _clean_notes(notes))
        self._commit(next_state, "entity.added", source=source, data={"collection": "dailies", "id": daily.id})
        return daily.to_dict()

    def add_todo(self, title: str, notes: str | None = None, *, source: str = "cli") -> dict[str, Any]:
        next_state, todo = engine.add_todo(self.state, _clean_title(title), _clean_notes(notes))
        self._commit(next_state, "entity.added", source=source, data={"collection": "todos", "id": todo.id})
        return todo.to_dict()

    def add_reward(self, title: str, cost: int, notes: str | None = None, *, source: str = "cli") -> dict[str, Any]:
        if cost < 1:
            raise ValueError("cost must be at least 1.")
        next_state, reward = engine.add_reward(self.state, _clean_title(title), cost, _clean_notes(notes))
        self._commit(next_state, "entity.added", source=source, data={"collection": "rewards", "id": reward.id})
        return reward.to_dict()

    def remove(self, collection: str, item_id: str, *, source: str = "cli") -> dict[str, Any]:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown collection: {collection}")
        result = engine.remove(self.state, collection, item_id)
        if result.effect.applied:
            self._commit(result.state, "entity.removed", source=source, data={"collection": collection, "id": item_id})
        return {"applied": result.effect.applied, "collection": collection, "id": item_id}

    # Analytics

    def analytics_summary(self) -> dict[str, Any]:
        return analytics.progress_summary(self.state, self._now(), self.tz)

    def month_calendar(self, year: int, month: int) -> dict[str, Any]:
        return analytics.month_calendar(self.state.habits, self.state.dailies, year, month, self._now(), self.tz)

    def day_details(self, day: date) -> dict[str, Any]:
        completions = analytics.completions_for_day(self.state.habits, self.state.dailies, day, self.tz)
        return {
            "date": day.isoformat(),
            "count": len(completions),
            "activity_level": analytics.activity_level(len(completions)),
            "completions": completions,
        }

    # Challenge catalog

    def _catalog_call(self, operation: str, call: Callable[[], Any], *, source: str) -> Any:
        try:
            return call()
        except CatalogError as exc:
            self.telemetry.log_event("catalog.failed", source=source, data={"operation": operation, **exc.to_dict()})
            raise

    def list_challenges(
        self,
        search: str | None = None,
        categories: list[str] | None = None,
        *,
        source: str = "cli",
    ) -> list[dict[str, Any]]:
        challenges = self._catalog_call("list", lambda: self.catalog.list(search=search, categories=categories), source=source)
        joined = set(self.state.joined_challenges)
        return [{**challenge, "joined": challenge["id"] in joined} for challenge in challenges]

    def get_challenge(self, challenge_id: str, *, source: str = "cli") -> dict[str, Any]:
        challenge = self._catalog_call("get", lambda: self.catalog.get(challenge_id), source=source)
        if challenge is None:
            raise KeyError(f"Unknown challenge: {challenge_id}")
        return {**challenge, "joined": challenge_id in self.state.joined_challenges}

    def create_challenge(self, payload: dict[str, Any], *, creator: str | None = None, source: str = "cli") -> dict[str, Any]:
        challenge_id = self._catalog_call("create", lambda: self.catalog.create(payload, creator=creator), source=source)
        self.telemetry.log_event("challenge.created", source=source, data={"challenge_id": challenge_id})
        return {"id": challenge_id}

    def join_challenge(self, challenge_id: str, *, source: str = "cli") -> dict[str, Any]:
        challenge = self.get_challenge(challenge_id, source=source)
        result = engine.adopt_challenge(self.state, challenge)
        if result.effect.applied:
            self._commit(
                result.state,
                "challenge.joined",
                source=source,
                data={"challenge_id": challenge_id, "stats": challenge.get("stats", {})},
            )
        return {"applied": result.effect.applied, "challenge_id": challenge_id, "stats": challenge.get("stats", {})}

    # Telemetry

    def export_telemetry(self, range_value: str, out_path: Path | None = None) -> dict[str, Any]:
        return self.telemetry.export_summary(range_value=range_value, out_path=out_path)
