from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime

from heago_quest import engine
from heago_quest.leveling import clamp, xp_to_next_level
from heago_quest.models import Daily, Habit, Player, Reward, SaveState, Todo, default_state


NOW = datetime(2026, 2, 9, 10, 0, tzinfo=UTC)


def _state_with(**kwargs) -> SaveState:  # type: ignore[no-untyped-def]
    return replace(SaveState(last_reset=NOW), **kwargs)


def test_xp_to_next_level_curve() -> None:
    assert xp_to_next_level(1) == 100
    assert xp_to_next_level(2) == 130
    assert xp_to_next_level(10) == 370
    assert all(xp_to_next_level(n) <= xp_to_next_level(n + 1) for n in range(1, 50))


def test_clamp_bounds() -> None:
    assert clamp(11, -10, 10) == 10
    assert clamp(-11, -10, 10) == -10
    assert clamp(3, -10, 10) == 3


def test_grant_xp_single_level_up_scenario() -> None:
    player = engine.grant_xp(Player(level=1, xp=90, hp=50, gold=0), 30)
    assert player.level == 2
    assert player.xp == 20
    assert player.gold == 5
    assert player.hp == 60


def test_grant_xp_crosses_several_levels_one_at_a_time() -> None:
    player = engine.grant_xp(Player(level=1, xp=0, hp=50, gold=0), 100 + 130 + 160 + 7)
    assert player.level == 4
    assert player.xp == 7
    assert player.gold == 15
    assert player.hp == 70
    assert player.xp < xp_to_next_level(player.level)


def test_grant_xp_heal_respects_level_cap() -> None:
    player = engine.grant_xp(Player(level=1, xp=99, hp=58, gold=0), 1)
    assert player.level == 2
    assert player.hp == 60


def test_grant_xp_ignores_non_positive_amounts() -> None:
    player = Player(level=3, xp=10, hp=40, gold=7)
    assert engine.grant_xp(player, 0) == player
    assert engine.grant_xp(player, -5) == player


def test_take_damage_floors_at_zero() -> None:
    assert engine.take_damage(Player(hp=5), 9).hp == 0
    assert engine.take_damage(Player(hp=5), 0).hp == 5


def test_tap_habit_positive_rewards_shrink_with_momentum() -> None:
    state = default_state(NOW)
    water = state.habits[0]
    xp_grants = []
    gold_grants = []
    for _ in range(3):
        result = engine.tap_habit(state, water.id, "+", NOW)
        xp_grants.append(result.effect.xp_granted)
        gold_grants.append(result.effect.gold_delta)
        state = result.state

    assert xp_grants == [15, 14, 13]
    assert gold_grants == [6, 5, 4]
    habit = state.find("habits", water.id)
    assert habit.value == 3
    assert len(habit.completion_history) == 3
    assert state.player.xp == 42
    assert state.player.gold == 15


def test_tap_habit_negative_damages_without_history() -> None:
    habit = Habit(id="h1", title="Snooze", kind="both", value=4)
    state = _state_with(habits=(habit,), player=Player(hp=50))
    result = engine.tap_habit(state, "h1", "-", NOW)
    updated = result.state.find("habits", "h1")
    assert updated.value == 3
    assert updated.completion_history == ()
    assert result.state.player.hp == 40
    assert result.effect.hp_delta == -10
    assert result.effect.xp_granted == 0


def test_tap_habit_negative_momentum_uses_base_damage() -> None:
    habit = Habit(id="h1", title="Scroll", kind="bad", value=-3)
    result = engine.tap_habit(_state_with(habits=(habit,)), "h1", "-", NOW)
    assert result.state.player.hp == 44


def test_tap_habit_value_is_clamped() -> None:
    high = Habit(id="h1", title="Walk", kind="good", value=10)
    low = Habit(id="h2", title="Scroll", kind="bad", value=-10)
    state = _state_with(habits=(high, low))
    state = engine.tap_habit(state, "h1", "+", NOW).state
    state = engine.tap_habit(state, "h2", "-", NOW).state
    assert state.find("habits", "h1").value == 10
    assert len(state.find("habits", "h1").completion_history) == 1
    assert state.find("habits", "h2").value == -10


def test_tap_habit_unknown_id_is_noop() -> None:
    state = default_state(NOW)
    result = engine.tap_habit(state, "missing", "+", NOW)
    assert result.state is state
    assert result.effect.applied is False


def test_toggle_daily_streak_and_soft_uncheck() -> None:
    daily = Daily(id="d1", title="Stretch", streak=6, best_streak=6)
    state = _state_with(dailies=(daily,), player=Player(hp=50))

    checked = engine.toggle_daily(state, "d1", NOW)
    d = checked.state.find("dailies", "d1")
    assert (d.done, d.streak, d.best_streak) == (True, 7, 7)
    assert d.completion_history == (NOW,)
    assert checked.effect.xp_granted == 15
    assert checked.effect.gold_delta == 5

    unchecked = engine.toggle_daily(checked.state, "d1", NOW)
    d = unchecked.state.find("dailies", "d1")
    assert (d.done, d.streak, d.best_streak) == (False, 7, 7)
    assert d.completion_history == (NOW,)
    assert unchecked.state.player.hp == checked.state.player.hp - 2


def test_toggle_daily_best_streak_never_below_streak() -> None:
    state = _state_with(dailies=(Daily(id="d1", title="Read", streak=2, best_streak=5),))
    for _ in range(9):
        state = engine.toggle_daily(state, "d1", NOW).state
        daily = state.find("dailies", "d1")
        assert daily.best_streak >= daily.streak
    assert state.find("dailies", "d1").streak == 7
    assert state.find("dailies", "d1").best_streak == 7


def test_toggle_todo_rewards_and_penalty() -> None:
    state = _state_with(todos=(Todo(id="t1", title="Plan meals"),), player=Player(hp=50))
    done = engine.toggle_todo(state, "t1")
    assert done.state.find("todos", "t1").done is True
    assert done.state.player.xp == 20
    assert done.state.player.gold == 8

    reopened = engine.toggle_todo(done.state, "t1")
    assert reopened.state.find("todos", "t1").done is False
    assert reopened.state.player.hp == 48
    assert reopened.state.player.xp == 20


def test_buy_reward_requires_enough_gold() -> None:
    reward = Reward(id="r1", title="Episode break", cost=10)
    poor = _state_with(rewards=(reward,), player=Player(gold=9))
    result = engine.buy_reward(poor, "r1")
    assert result.state == poor
    assert result.effect.applied is False


def test_buy_reward_spends_gold_and_grants_bonus_xp() -> None:
    reward = Reward(id="r1", title="Episode break", cost=10)
    state = _state_with(rewards=(reward,), player=Player(gold=25))
    first = engine.buy_reward(state, "r1")
    second = engine.buy_reward(first.state, "r1")
    assert second.state.player.gold == 5
    assert second.state.player.xp == 10
    assert second.state.rewards == (reward,)


def test_add_and_remove_entities() -> None:
    state = SaveState(last_reset=NOW)
    state, habit = engine.add_habit(state, "Floss", "good", goal=1)
    state, daily = engine.add_daily(state, "Walk")
    state, todo = engine.add_todo(state, "Call mom")
    state, reward = engine.add_reward(state, "Nap", 3)
    assert habit.value == 0 and habit.completion_history == ()
    assert daily.streak == 0 and daily.best_streak == 0 and daily.done is False
    assert len({habit.id, daily.id, todo.id, reward.id}) == 4

    removed = engine.remove(state, "habits", habit.id)
    assert removed.state.habits == ()
    assert removed.state.player == state.player

    missing = engine.remove(state, "todos", "nope")
    assert missing.state is state
    assert missing.effect.applied is False


def test_remove_ignores_non_entity_fields() -> None:
    state = default_state(NOW)
    for collection in ("player", "joined_challenges", "last_reset", "quests"):
        result = engine.remove(state, collection, "x")
        assert result.state is state
        assert result.effect.applied is False
        assert state.find(collection, "x") is None


def test_adopt_challenge_adds_tasks_once() -> None:
    challenge = {
        "id": "official.test",
        "habits": [{"title": "Review notes", "type": "good", "goal": 2}],
        "dailies": [{"title": "Pack bag"}],
        "todos": [{"title": "Buy supplies", "notes": "pens"}],
        "rewards": [{"title": "Movie", "cost": 30}],
    }
    state = SaveState(last_reset=NOW)
    joined = engine.adopt_challenge(state, challenge)
    assert joined.effect.applied is True
    assert [h.title for h in joined.state.habits] == ["Review notes"]
    assert joined.state.habits[0].goal == 2
    assert joined.state.todos[0].notes == "pens"
    assert joined.state.joined_challenges == ("official.test",)

    again = engine.adopt_challenge(joined.state, challenge)
    assert again.effect.applied is False
    assert again.state is joined.state
