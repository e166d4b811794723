from __future__ import annotations

"""Progress engine: pure state transitions from user actions to player effects.

Every operation takes a `SaveState` and returns an `ActionResult` holding the next
state and the effect it had on the player. Operations never raise; an unknown id
or an unaffordable reward returns the input state unchanged with
`effect.applied == False`. Direction/kind compatibility for habit taps is the
caller's responsibility.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from .leveling import MAX_HABIT_VALUE, MAX_HP, MIN_HABIT_VALUE, MIN_HP, clamp, level_up_hp_cap, xp_to_next_level
from .models import COLLECTIONS, Daily, Habit, Player, Reward, SaveState, Todo, new_id


DAILY_XP = 15
DAILY_GOLD = 5
DAILY_UNCHECK_DAMAGE = 2
TODO_XP = 20
TODO_GOLD = 8
TODO_UNCHECK_DAMAGE = 2
PURCHASE_XP = 5
LEVEL_UP_GOLD = 5
LEVEL_UP_HEAL = 10


@dataclass(frozen=True)
class Effect:
    """Net change an action had on the player."""

    applied: bool = False
    xp_granted: int = 0
    gold_delta: int = 0
    hp_delta: int = 0
    levels_gained: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "applied": self.applied,
            "xp_granted": self.xp_granted,
            "gold_delta": self.gold_delta,
            "hp_delta": self.hp_delta,
            "levels_gained": self.levels_gained,
        }


@dataclass(frozen=True)
class ActionResult:
    state: SaveState
    effect: Effect


def _effect(before: Player, after: Player, *, xp_granted: int = 0) -> Effect:
    return Effect(
        applied=True,
        xp_granted=xp_granted,
        gold_delta=after.gold - before.gold,
        hp_delta=after.hp - before.hp,
        levels_gained=after.level - before.level,
    )


def _unchanged(state: SaveState) -> ActionResult:
    return ActionResult(state=state, effect=Effect())


# Player-level primitives


def grant_xp(player: Player, amount: int) -> Player:
    """Add XP, levelling up once per threshold crossed.

    Each level-up is its own event: it heals up to the new level's HP cap and pays
    a gold bonus, so the thresholds are consumed one at a time.
    """

    if amount <= 0:
        return player
    level, xp, hp, gold = player.level, player.xp + amount, player.hp, player.gold
    while xp >= xp_to_next_level(level):
        xp -= xp_to_next_level(level)
        level += 1
        hp = min(level_up_hp_cap(level), hp + LEVEL_UP_HEAL)
        gold += LEVEL_UP_GOLD
    return Player(level=level, xp=xp, hp=hp, gold=gold)


def take_damage(player: Player, amount: int) -> Player:
    return replace(player, hp=clamp(player.hp - max(0, amount), MIN_HP, MAX_HP))


def grant_gold(player: Player, amount: int) -> Player:
    if amount <= 0:
        return player
    return replace(player, gold=player.gold + amount)


def habit_tap_rewards(value_before: int, direction: str) -> dict[str, int]:
    """XP/gold/damage for a tap, scaled by the habit's momentum before the tap."""

    if direction == "+":
        return {
            "xp": 10 + max(0, 5 - value_before),
            "gold": 3 + max(0, 3 - value_before),
            "damage": 0,
        }
    return {"xp": 0, "gold": 0, "damage": 6 + max(0, value_before)}


# Actions


def tap_habit(state: SaveState, habit_id: str, direction: str, now: datetime) -> ActionResult:
    habit = state.find("habits", habit_id)
    if habit is None or direction not in {"+", "-"}:
        return _unchanged(state)

    rewards = habit_tap_rewards(habit.value, direction)
    delta = 1 if direction == "+" else -1
    history = habit.completion_history + (now,) if direction == "+" else habit.completion_history
    updated = replace(
        habit,
        value=clamp(habit.value + delta, MIN_HABIT_VALUE, MAX_HABIT_VALUE),
        completion_history=history,
    )
    habits = tuple(updated if item.id == habit_id else item for item in state.habits)

    player = state.player
    if direction == "+":
        player = grant_gold(grant_xp(player, rewards["xp"]), rewards["gold"])
    else:
        player = take_damage(player, rewards["damage"])
    next_state = replace(state, habits=habits, player=player)
    return ActionResult(next_state, _effect(state.player, player, xp_granted=rewards["xp"]))


def toggle_daily(state: SaveState, daily_id: str, now: datetime) -> ActionResult:
    daily = state.find("dailies", daily_id)
    if daily is None:
        return _unchanged(state)

    if not daily.done:
        streak = daily.streak + 1
        updated = replace(
            daily,
            done=True,
            streak=streak,
            best_streak=max(daily.best_streak, streak),
            completion_history=daily.completion_history + (now,),
        )
        player = grant_gold(grant_xp(state.player, DAILY_XP), DAILY_GOLD)
        xp_granted = DAILY_XP
    else:
        # Unchecking keeps the streak and history; it only costs a little HP.
        updated = replace(daily, done=False)
        player = take_damage(state.player, DAILY_UNCHECK_DAMAGE)
        xp_granted = 0

    dailies = tuple(updated if item.id == daily_id else item for item in state.dailies)
    next_state = replace(state, dailies=dailies, player=player)
    return ActionResult(next_state, _effect(state.player, player, xp_granted=xp_granted))


def toggle_todo(state: SaveState, todo_id: str) -> ActionResult:
    todo = state.find("todos", todo_id)
    if todo is None:
        return _unchanged(state)

    if not todo.done:
        player = grant_gold(grant_xp(state.player, TODO_XP), TODO_GOLD)
        xp_granted = TODO_XP
    else:
        player = take_damage(state.player, TODO_UNCHECK_DAMAGE)
        xp_granted = 0
    todos = tuple(replace(item, done=not item.done) if item.id == todo_id else item for item in state.todos)
    next_state = replace(state, todos=todos, player=player)
    return ActionResult(next_state, _effect(state.player, player, xp_granted=xp_granted))


def buy_reward(state: SaveState, reward_id: str) -> ActionResult:
    reward = state.find("rewards", reward_id)
    if reward is None or state.player.gold < reward.cost:
        return _unchanged(state)

    player = replace(state.player, gold=state.player.gold - reward.cost)
    player = grant_xp(player, PURCHASE_XP)
    next_state = replace(state, player=player)
    return ActionResult(next_state, _effect(state.player, player, xp_granted=PURCHASE_XP))


def add_habit(
    state: SaveState,
    title: str,
    kind: str = "both",
    goal: int | None = None,
    notes: str | None = None,
) -> tuple[SaveState, Habit]:
    habit = Habit(id=new_id(), title=title, kind=kind, goal=goal, notes=notes)
    return replace(state, habits=state.habits + (habit,)), habit


def add_daily(state: SaveState, title: str, notes: str | None = None) -> tuple[SaveState, Daily]:
    daily = Daily(id=new_id(), title=title, notes=notes)
    return replace(state, dailies=state.dailies + (daily,)), daily


def add_todo(state: SaveState, title: str, notes: str | None = None) -> tuple[SaveState, Todo]:
    todo = Todo(id=new_id(), title=title, notes=notes)
    return replace(state, todos=state.todos + (todo,)), todo


def add_reward(state: SaveState, title: str, cost: int, notes: str | None = None) -> tuple[SaveState, Reward]:
    reward = Reward(id=new_id(), title=title, cost=cost, notes=notes)
    return replace(state, rewards=state.rewards + (reward,)), reward


def remove(state: SaveState, collection: str, item_id: str) -> ActionResult:
    if collection not in COLLECTIONS:
        return _unchanged(state)
    items = getattr(state, collection)
    if not any(item.id == item_id for item in items):
        return _unchanged(state)
    kept = tuple(item for item in items if item.id != item_id)
    return ActionResult(replace(state, **{collection: kept}), Effect(applied=True))


def adopt_challenge(state: SaveState, challenge: dict[str, Any]) -> ActionResult:
    """Copy a catalog challenge's habits, dailies, to-dos and rewards into the state."""

    challenge_id = str(challenge.get("id", ""))
    if not challenge_id or challenge_id in state.joined_challenges:
        return _unchanged(state)

    next_state = state
    for habit in challenge.get("habits", []):
        next_state, _ = add_habit(next_state, habit["title"], habit.get("type", "both"), habit.get("goal"))
    for daily in challenge.get("dailies", []):
        next_state, _ = add_daily(next_state, daily["title"], daily.get("notes"))
    for todo in challenge.get("todos", []):
        next_state, _ = add_todo(next_state, todo["title"], todo.get("notes"))
    for reward in challenge.get("rewards", []):
        next_state, _ = add_reward(next_state, reward["title"], reward["cost"])
    next_state = replace(next_state, joined_challenges=state.joined_challenges + (challenge_id,))
    return ActionResult(next_state, Effect(applied=True))
