from __future__ import annotations

"""Read-only progress analytics and calendar views over completion histories."""

import calendar
from collections import Counter
from collections.abc import Iterator, Sequence
from datetime import date, datetime, timedelta, tzinfo
from typing import Any

from .models import Daily, Habit, SaveState, local_date


CONSISTENCY_WINDOW_DAYS = 30
STREAK_SCAN_DAYS = 30
ACTIVITY_THRESHOLDS = (0, 2, 4, 6)


def _completions(habits: Sequence[Habit], dailies: Sequence[Daily]) -> Iterator[dict[str, Any]]:
    for habit in habits:
        for ts in habit.completion_history:
            yield {"type": "habit", "id": habit.id, "title": habit.title, "timestamp": ts}
    for daily in dailies:
        for ts in daily.completion_history:
            yield {"type": "daily", "id": daily.id, "title": daily.title, "timestamp": ts}


def _daily_counts(habits: Sequence[Habit], dailies: Sequence[Daily], tz: tzinfo | None) -> Counter[date]:
    return Counter(local_date(item["timestamp"], tz) for item in _completions(habits, dailies))


def completions_on(habits: Sequence[Habit], dailies: Sequence[Daily], day: date, tz: tzinfo | None = None) -> int:
    return _daily_counts(habits, dailies, tz)[day]


def activity_level(count: int) -> int:
    """Heatmap bucket: 0 for none, then 1-2, 3-4, 5-6 and 7+ map to 1..4."""

    for level, upper in enumerate(ACTIVITY_THRESHOLDS):
        if count <= upper:
            return level
    return len(ACTIVITY_THRESHOLDS)


def week_start(day: date) -> date:
    """Most recent Sunday on or before `day`."""

    return day - timedelta(days=(day.weekday() + 1) % 7)


def weekly_completions(habits: Sequence[Habit], dailies: Sequence[Daily], now: datetime, tz: tzinfo | None = None) -> int:
    start = week_start(local_date(now, tz))
    return sum(count for day, count in _daily_counts(habits, dailies, tz).items() if day >= start)


def consistency_rate(
    habits: Sequence[Habit],
    dailies: Sequence[Daily],
    now: datetime,
    tz: tzinfo | None = None,
    window_days: int = CONSISTENCY_WINDOW_DAYS,
) -> float:
    today = local_date(now, tz)
    first = today - timedelta(days=window_days - 1)
    active_days = {day for day in _daily_counts(habits, dailies, tz) if first <= day <= today}
    return len(active_days) / window_days


def current_streak(
    habits: Sequence[Habit],
    dailies: Sequence[Daily],
    now: datetime,
    tz: tzinfo | None = None,
    max_days: int = STREAK_SCAN_DAYS,
) -> int:
    counts = _daily_counts(habits, dailies, tz)
    day = local_date(now, tz)
    streak = 0
    while streak < max_days and counts[day] > 0:
        streak += 1
        day -= timedelta(days=1)
    return streak


def habit_goal_progress(habit: Habit, now: datetime, tz: tzinfo | None = None) -> dict[str, Any]:
    today = local_date(now, tz)
    done_today = sum(1 for ts in habit.completion_history if local_date(ts, tz) == today)
    percent = min(done_today / habit.goal * 100, 100.0) if habit.goal else 0.0
    return {"habit_id": habit.id, "today": done_today, "goal": habit.goal, "percent": round(percent, 1)}


def progress_summary(state: SaveState, now: datetime, tz: tzinfo | None = None) -> dict[str, Any]:
    dailies = state.dailies
    avg_streak = round(sum(d.streak for d in dailies) / len(dailies), 1) if dailies else 0.0
    rate = consistency_rate(state.habits, dailies, now, tz)
    leaderboard = sorted(dailies, key=lambda d: d.streak, reverse=True)
    return {
        "habit_actions": sum(len(h.completion_history) for h in state.habits),
        "daily_completions": sum(len(d.completion_history) for d in dailies),
        "average_daily_streak": avg_streak,
        "best_daily_streak": max((d.best_streak for d in dailies), default=0),
        "longest_current_streak": max((d.streak for d in dailies), default=0),
        "weekly_completions": weekly_completions(state.habits, dailies, now, tz),
        "consistency_rate": rate,
        "consistency_percent": round(rate * 100),
        "current_streak_days": current_streak(state.habits, dailies, now, tz),
        "streak_leaderboard": [
            {"id": d.id, "title": d.title, "streak": d.streak, "best_streak": d.best_streak} for d in leaderboard
        ],
        "goals": [habit_goal_progress(h, now, tz) for h in state.habits if h.goal],
    }


def month_calendar(
    habits: Sequence[Habit],
    dailies: Sequence[Daily],
    year: int,
    month: int,
    now: datetime,
    tz: tzinfo | None = None,
) -> dict[str, Any]:
    """Heatmap rows for one month laid out on a Sunday-first grid."""

    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    counts = _daily_counts(habits, dailies, tz)
    today = local_date(now, tz)
    first_weekday, days_in_month = calendar.monthrange(year, month)
    days = []
    for day_number in range(1, days_in_month + 1):
        day = date(year, month, day_number)
        count = counts[day]
        days.append(
            {
                "date": day.isoformat(),
                "day": day_number,
                "count": count,
                "activity_level": activity_level(count),
                "is_today": day == today,
            }
        )
    return {
        "year": year,
        "month": month,
        "month_name": calendar.month_name[month],
        "leading_blanks": (first_weekday + 1) % 7,
        "days": days,
        "current_streak_days": current_streak(habits, dailies, now, tz),
    }


def completions_for_day(
    habits: Sequence[Habit],
    dailies: Sequence[Daily],
    day: date,
    tz: tzinfo | None = None,
) -> list[dict[str, Any]]:
    rows = [item for item in _completions(habits, dailies) if local_date(item["timestamp"], tz) == day]
    rows.sort(key=lambda item: item["timestamp"])
    return [{**item, "timestamp": item["timestamp"].isoformat()} for item in rows]
