from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from heago_quest import analytics
from heago_quest.models import Daily, Habit, SaveState


NOW = datetime(2026, 6, 10, 15, 0, tzinfo=UTC)  # Wednesday


def _at(day_offset: int, hour: int = 12) -> datetime:
    return (NOW + timedelta(days=day_offset)).replace(hour=hour)


def test_activity_level_buckets() -> None:
    expected = {0: 0, 1: 1, 2: 1, 3: 2, 4: 2, 5: 3, 6: 3, 7: 4, 25: 4}
    assert {count: analytics.activity_level(count) for count in expected} == expected


def test_week_starts_on_sunday() -> None:
    assert analytics.week_start(date(2026, 6, 10)) == date(2026, 6, 7)
    assert analytics.week_start(date(2026, 6, 7)) == date(2026, 6, 7)
    assert analytics.week_start(date(2026, 6, 13)) == date(2026, 6, 7)


def test_completions_on_counts_habits_and_dailies() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=(_at(0, 8), _at(0, 9), _at(-1)))]
    dailies = [Daily(id="d1", title="Walk", completion_history=(_at(0),))]
    assert analytics.completions_on(habits, dailies, NOW.date(), UTC) == 3
    assert analytics.completions_on(habits, dailies, NOW.date() - timedelta(days=1), UTC) == 1
    assert analytics.completions_on(habits, dailies, NOW.date() - timedelta(days=2), UTC) == 0


def test_weekly_completions_since_sunday() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=(_at(-3), _at(-4), _at(0)))]
    dailies = [Daily(id="d1", title="Walk", completion_history=(_at(-2),))]
    # Sunday is NOW - 3 days; Saturday (NOW - 4) belongs to the previous week.
    assert analytics.weekly_completions(habits, dailies, NOW, UTC) == 3


def test_consistency_rate_counts_distinct_days_in_window() -> None:
    history = (_at(0, 8), _at(0, 9), _at(-5), _at(-29), _at(-30))
    habits = [Habit(id="h1", title="Water", completion_history=history)]
    assert analytics.consistency_rate(habits, [], NOW, UTC) == pytest.approx(3 / 30)


def test_current_streak_stops_at_first_gap() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=(_at(0), _at(-1)))]
    dailies = [Daily(id="d1", title="Walk", completion_history=(_at(-2), _at(-4)))]
    assert analytics.current_streak(habits, dailies, NOW, UTC) == 3


def test_current_streak_requires_today() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=(_at(-1), _at(-2)))]
    assert analytics.current_streak(habits, [], NOW, UTC) == 0


def test_current_streak_is_capped() -> None:
    history = tuple(_at(-offset) for offset in range(45))
    habits = [Habit(id="h1", title="Water", completion_history=history)]
    assert analytics.current_streak(habits, [], NOW, UTC) == 30


def test_habit_goal_progress_caps_at_full() -> None:
    habit = Habit(id="h1", title="Water", goal=2, completion_history=(_at(0, 8), _at(0, 9), _at(0, 10), _at(-1)))
    progress = analytics.habit_goal_progress(habit, NOW, UTC)
    assert progress == {"habit_id": "h1", "today": 3, "goal": 2, "percent": 100.0}


def test_progress_summary_totals_and_leaderboard() -> None:
    state = SaveState(
        habits=(Habit(id="h1", title="Water", goal=4, completion_history=(_at(0),)),),
        dailies=(
            Daily(id="d1", title="Walk", streak=2, best_streak=8, completion_history=(_at(-1),)),
            Daily(id="d2", title="Read", streak=5, best_streak=5, completion_history=(_at(0), _at(-1))),
        ),
    )
    summary = analytics.progress_summary(state, NOW, UTC)
    assert summary["habit_actions"] == 1
    assert summary["daily_completions"] == 3
    assert summary["average_daily_streak"] == 3.5
    assert summary["best_daily_streak"] == 8
    assert summary["longest_current_streak"] == 5
    assert [row["id"] for row in summary["streak_leaderboard"]] == ["d2", "d1"]
    assert summary["current_streak_days"] == 2
    assert summary["consistency_percent"] == 7
    assert summary["goals"] == [{"habit_id": "h1", "today": 1, "goal": 4, "percent": 25.0}]


def test_progress_summary_handles_empty_state() -> None:
    summary = analytics.progress_summary(SaveState(), NOW, UTC)
    assert summary["average_daily_streak"] == 0.0
    assert summary["best_daily_streak"] == 0
    assert summary["streak_leaderboard"] == []


def test_month_calendar_grid() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=tuple(_at(0, hour) for hour in range(8, 13)))]
    view = analytics.month_calendar(habits, [], 2026, 6, NOW, UTC)
    assert view["month_name"] == "June"
    # June 1st 2026 is a Monday.
    assert view["leading_blanks"] == 1
    assert len(view["days"]) == 30
    today = view["days"][9]
    assert today["date"] == "2026-06-10"
    assert today["count"] == 5
    assert today["activity_level"] == 3
    assert today["is_today"] is True
    assert sum(1 for day in view["days"] if day["is_today"]) == 1


def test_month_calendar_rejects_bad_month() -> None:
    with pytest.raises(ValueError):
        analytics.month_calendar([], [], 2026, 13, NOW, UTC)


def test_completions_for_day_sorted_by_time() -> None:
    habits = [Habit(id="h1", title="Water", completion_history=(_at(0, 14),))]
    dailies = [Daily(id="d1", title="Walk", completion_history=(_at(0, 7), _at(-1)))]
    rows = analytics.completions_for_day(habits, dailies, NOW.date(), UTC)
    assert [(row["type"], row["title"]) for row in rows] == [("daily", "Walk"), ("habit", "Water")]
    assert rows[0]["timestamp"] == _at(0, 7).isoformat()
