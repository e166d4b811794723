from __future__ import annotations

"""Once-per-local-day reset of daily completion flags."""

import asyncio
import sys
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, tzinfo

from .models import SaveState, local_date


def reset_due(state: SaveState, now: datetime, tz: tzinfo | None = None) -> bool:
    return local_date(state.last_reset, tz) != local_date(now, tz)


def apply_daily_reset(state: SaveState, now: datetime, tz: tzinfo | None = None) -> tuple[SaveState, bool]:
    """Clear every daily's `done` flag if the local date changed since the last reset.

    Any number of missed days collapses into this single reset; streaks, best
    streaks and histories are left alone.
    """

    if not reset_due(state, now, tz):
        return state, False
    dailies = tuple(replace(daily, done=False) for daily in state.dailies)
    return replace(state, dailies=dailies, last_reset=now), True


class DailyResetScheduler:
    """Cooperative periodic re-check run as an asyncio task on the serving loop."""

    def __init__(self, check: Callable[[], object], interval_seconds: float) -> None:
        self.check = check
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.check()
            except Exception as exc:  # noqa: BLE001
                print(f"[scheduler] daily reset check failed: {exc}", file=sys.stderr)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
