"""
quotebook.engine.streak — Daily Streak Walk
============================================

Pure day-walking logic.  The caller supplies an ``is_active(day)`` probe
(typically backed by :mod:`quotebook.services.activity_service`); this
module decides which days to ask about and when to stop.

Days are UTC calendar days everywhere in this module.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, time, timedelta

from quotebook.constants import MAX_STREAK_LOOKBACK_DAYS

__all__ = ["day_window", "utc_today", "walk_streak"]


def utc_today(now: datetime | None = None) -> date:
    """The current UTC calendar day (naive *now* is taken as UTC)."""
    if now is None:
        return datetime.now(UTC).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(UTC).date()


def day_window(day: date) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` UTC bounds of *day*.

    Equivalent to the inclusive ``00:00:00.000 – 23:59:59.999`` window
    without losing sub-millisecond timestamps at the edge.
    """
    start = datetime.combine(day, time.min, tzinfo=UTC)
    return start, start + timedelta(days=1)


def walk_streak(
    is_active: Callable[[date], bool],
    today: date,
    max_days: int = MAX_STREAK_LOOKBACK_DAYS,
) -> int:
    """Count consecutive active days ending with (and including) *today*.

    Walks backward one day at a time and stops at the first inactive day,
    or after *max_days* probes.
    """
    streak = 0
    day = today
    for _ in range(max_days):
        if not is_active(day):
            break
        streak += 1
        day -= timedelta(days=1)
    return streak
