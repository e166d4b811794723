from __future__ import annotations

"""Entity records owned by the single `SaveState` aggregate."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, tzinfo
from typing import Any


SCHEMA_VERSION = 1
HABIT_KINDS = ("good", "bad", "both")
COLLECTIONS = ("habits", "dailies", "todos", "rewards")
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
SEED_NAMESPACE = uuid.UUID("5b1c7f36-0a8e-4d52-9a0e-2f7f9d8c3a11")


def new_id() -> str:
    return str(uuid.uuid4())


def seed_id(kind: str, title: str) -> str:
    return str(uuid.uuid5(SEED_NAMESPACE, f"{kind}:{title}"))


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string into an aware datetime; naive values are UTC."""

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed


def format_timestamp(value: datetime) -> str:
    return value.isoformat()


def local_date(value: datetime, tz: tzinfo | None = None) -> date:
    """Calendar date of `value` in `tz` (the system zone when None)."""

    return value.astimezone(tz).date()


def _history_to_list(history: tuple[datetime, ...]) -> list[str]:
    return [format_timestamp(ts) for ts in history]


def _history_from_list(raw: list[Any]) -> tuple[datetime, ...]:
    parsed = (parse_timestamp(item) for item in raw)
    return tuple(ts for ts in parsed if ts is not None)


def _with_notes(payload: dict[str, Any], notes: str | None) -> dict[str, Any]:
    if notes is not None:
        payload["notes"] = notes
    return payload


@dataclass(frozen=True)
class Player:
    level: int = 1
    xp: int = 0
    hp: int = 50
    gold: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"level": self.level, "xp": self.xp, "hp": self.hp, "gold": self.gold}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        return cls(level=data["level"], xp=data["xp"], hp=data["hp"], gold=data["gold"])


@dataclass(frozen=True)
class Habit:
    """Repeatable action with a bounded momentum `value` in [-10, 10]."""

    id: str
    title: str
    kind: str = "both"
    value: int = 0
    goal: int | None = None
    completion_history: tuple[datetime, ...] = ()
    notes: str | None = None

    @property
    def allows_positive(self) -> bool:
        return self.kind in {"good", "both"}

    @property
    def allows_negative(self) -> bool:
        return self.kind in {"bad", "both"}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "kind": self.kind,
            "value": self.value,
            "completionHistory": _history_to_list(self.completion_history),
        }
        if self.goal is not None:
            payload["goal"] = self.goal
        return _with_notes(payload, self.notes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Habit":
        return cls(
            id=data["id"],
            title=data["title"],
            kind=data["kind"],
            value=data["value"],
            goal=data.get("goal"),
            completion_history=_history_from_list(data["completionHistory"]),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class Daily:
    """Once-per-day task; `best_streak` never drops below `streak`."""

    id: str
    title: str
    done: bool = False
    streak: int = 0
    best_streak: int = 0
    completion_history: tuple[datetime, ...] = ()
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "done": self.done,
            "streak": self.streak,
            "bestStreak": self.best_streak,
            "completionHistory": _history_to_list(self.completion_history),
        }
        return _with_notes(payload, self.notes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Daily":
        return cls(
            id=data["id"],
            title=data["title"],
            done=data["done"],
            streak=data["streak"],
            best_streak=data["bestStreak"],
            completion_history=_history_from_list(data["completionHistory"]),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class Todo:
    id: str
    title: str
    done: bool = False
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _with_notes({"id": self.id, "title": self.title, "done": self.done}, self.notes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Todo":
        return cls(id=data["id"], title=data["title"], done=data["done"], notes=data.get("notes"))


@dataclass(frozen=True)
class Reward:
    id: str
    title: str
    cost: int = 10
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _with_notes({"id": self.id, "title": self.title, "cost": self.cost}, self.notes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Reward":
        return cls(id=data["id"], title=data["title"], cost=data["cost"], notes=data.get("notes"))


@dataclass(frozen=True)
class SaveState:
    """Root aggregate; every entity lives in exactly one of its collections."""

    player: Player = field(default_factory=Player)
    habits: tuple[Habit, ...] = ()
    dailies: tuple[Daily, ...] = ()
    todos: tuple[Todo, ...] = ()
    rewards: tuple[Reward, ...] = ()
    last_reset: datetime = EPOCH
    joined_challenges: tuple[str, ...] = ()

    def find(self, collection: str, item_id: str) -> Any | None:
        if collection not in COLLECTIONS:
            return None
        for item in getattr(self, collection):
            if item.id == item_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": SCHEMA_VERSION,
            "player": self.player.to_dict(),
            "habits": [habit.to_dict() for habit in self.habits],
            "dailies": [daily.to_dict() for daily in self.dailies],
            "todos": [todo.to_dict() for todo in self.todos],
            "rewards": [reward.to_dict() for reward in self.rewards],
            "lastResetISO": format_timestamp(self.last_reset),
            "joinedChallenges": list(self.joined_challenges),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SaveState":
        """Build from a canonical (already migrated) snapshot document."""

        return cls(
            player=Player.from_dict(data["player"]),
            habits=tuple(Habit.from_dict(item) for item in data["habits"]),
            dailies=tuple(Daily.from_dict(item) for item in data["dailies"]),
            todos=tuple(Todo.from_dict(item) for item in data["todos"]),
            rewards=tuple(Reward.from_dict(item) for item in data["rewards"]),
            last_reset=parse_timestamp(data["lastResetISO"]) or EPOCH,
            joined_challenges=tuple(data.get("joinedChallenges", [])),
        )


def default_state(now: datetime | None = None) -> SaveState:
    """Seeded first-run state; ids are derived from titles so it is deterministic."""

    return SaveState(
        player=Player(level=1, xp=0, hp=50, gold=0),
        habits=(
            Habit(id=seed_id("habit", "Drink water"), title="Drink water", kind="good", goal=8),
            Habit(id=seed_id("habit", "Mindless scrolling"), title="Mindless scrolling", kind="bad"),
        ),
        dailies=(
            Daily(id=seed_id("daily", "10 min stretch"), title="10 min stretch"),
            Daily(id=seed_id("daily", "Read 5 pages"), title="Read 5 pages"),
        ),
        todos=(Todo(id=seed_id("todo", "Plan weekly meals"), title="Plan weekly meals"),),
        rewards=(
            Reward(id=seed_id("reward", "Episode break"), title="Episode break", cost=10),
            Reward(id=seed_id("reward", "Chocolate square"), title="Chocolate square", cost=5),
        ),
        last_reset=now or utc_now(),
    )
