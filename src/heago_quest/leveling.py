from __future__ import annotations

"""Numeric helpers shared by the progress engine and the snapshot migration."""


MIN_HABIT_VALUE = -10
MAX_HABIT_VALUE = 10
MIN_HP = 0
MAX_HP = 999
BASE_LEVEL_XP = 100
LEVEL_XP_STEP = 30


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


def xp_to_next_level(level: int) -> int:
    """XP needed to advance from `level` to `level + 1`."""

    return BASE_LEVEL_XP + (level - 1) * LEVEL_XP_STEP


def level_up_hp_cap(level: int) -> int:
    return 50 + level * 5
