"""Daily practice streak.

The streak is a small state machine driven by one event, "the user practised
on this day". Keeping it in a single transition function means every call
site (lesson practice, writing, listening) advances it the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional


@dataclass(frozen=True)
class StreakState:
    current: int = 0
    longest: int = 0
    last_day: Optional[date] = None
    total_days: int = 0


def apply_practice_event(state: StreakState, day: date) -> StreakState:
    if state.last_day is not None and day <= state.last_day:
        # Same day, or an out-of-order event for a day already counted
        return state
    if state.last_day is not None and state.last_day == day - timedelta(days=1):
        current = state.current + 1
    else:
        current = 1
    return replace(
        state,
        current=current,
        longest=max(state.longest, current),
        last_day=day,
        total_days=state.total_days + 1,
    )


def current_streak_on(state: StreakState, today: date) -> int:
    """Streak as seen on ``today``: a missed day breaks it."""
    if state.last_day is None:
        return 0
    if state.last_day >= today - timedelta(days=1):
        return state.current
    return 0
