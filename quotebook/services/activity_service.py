"""
quotebook.services.activity_service — Per-Metric Activity Counters
===================================================================

Read-only counters over the tables written by the journal, the photo feed
and the follow graph.  Each counter is a plain synchronous function so the
badge engine can fan them out concurrently through ``run_db``.

Qualifying content is **pluggable**: photo-post counts run through a named
:data:`CONTENT_FILTERS` entry chosen per badge, so the rule for "which
posts count" lives in configuration rather than in this module.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date

from sqlalchemy import Engine, Select, exists, func, select
from sqlalchemy.orm import Session

from quotebook.constants import MAX_STREAK_LOOKBACK_DAYS
from quotebook.database.engine import get_session
from quotebook.database.models import (
    ActionType,
    Favorite,
    Follow,
    PhotoPost,
    PostStatus,
    Quote,
    UserAction,
)
from quotebook.engine.streak import day_window, utc_today, walk_streak

logger = logging.getLogger(__name__)

ContentFilter = Callable[[Select, str | None], Select]


# ---------------------------------------------------------------------------
# Qualifying-content filters — (statement, rubric) → statement
# ---------------------------------------------------------------------------
def _published(stmt: Select, rubric: str | None) -> Select:
    """Every published post counts."""
    return stmt.where(PhotoPost.status == PostStatus.PUBLISHED.value)


def _published_in_rubric(stmt: Select, rubric: str | None) -> Select:
    """Only published posts tagged with *rubric* count."""
    stmt = _published(stmt, rubric)
    if rubric:
        stmt = stmt.where(PhotoPost.rubric == rubric)
    return stmt


CONTENT_FILTERS: dict[str, ContentFilter] = {
    "published": _published,
    "rubric": _published_in_rubric,
}


def get_content_filter(name: str) -> ContentFilter:
    """Look up a content filter by name.

    Raises
    ------
    KeyError
        If *name* is not registered.
    """
    try:
        return CONTENT_FILTERS[name]
    except KeyError:
        raise KeyError(
            f"Unknown content filter {name!r}; expected one of {sorted(CONTENT_FILTERS)}"
        ) from None


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------
def count_qualifying_posts(
    engine: Engine,
    user_id: str,
    *,
    content_filter: str = "published",
    rubric: str | None = None,
) -> int:
    """Count the user's photo posts that pass *content_filter*."""
    apply_filter = get_content_filter(content_filter)
    stmt = select(func.count()).select_from(PhotoPost).where(PhotoPost.user_id == user_id)
    with get_session(engine) as session:
        return session.scalar(apply_filter(stmt, rubric)) or 0


def count_following(engine: Engine, user_id: str) -> int:
    """How many users *user_id* follows."""
    with get_session(engine) as session:
        return session.scalar(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        ) or 0


# ---------------------------------------------------------------------------
# Streak sources — checked in this order, cheapest/most common first
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActivitySource:
    """One table whose rows mark a day as active."""

    name: str
    model: type
    user_column: str
    action_type: str | None = None

    def had_activity(self, session: Session, user_id: str, day: date) -> bool:
        start, end = day_window(day)
        model = self.model
        conditions = [
            getattr(model, self.user_column) == user_id,
            model.created_at >= start,
            model.created_at < end,
        ]
        if self.action_type is not None:
            conditions.append(model.type == self.action_type)
        return bool(session.scalar(select(exists().where(*conditions))))


ACTIVITY_SOURCES: tuple[ActivitySource, ...] = (
    ActivitySource("photo_post", PhotoPost, "user_id"),
    ActivitySource("quote", Quote, "user_id"),
    ActivitySource("like", Favorite, "user_id"),
    ActivitySource("follow", Follow, "follower_id"),
    ActivitySource("check_in", UserAction, "user_id", ActionType.DAILY_LOGIN.value),
)


def had_activity_on(session: Session, user_id: str, day: date) -> bool:
    """True if any source has a row for *user_id* on UTC *day*."""
    return any(source.had_activity(session, user_id, day) for source in ACTIVITY_SOURCES)


def compute_streak(
    engine: Engine,
    user_id: str,
    *,
    today: date | None = None,
    max_days: int = MAX_STREAK_LOOKBACK_DAYS,
) -> int:
    """Consecutive UTC days, ending with today, on which the user was active.

    A user with no activity today has a streak of 0, even if yesterday was
    active.
    """
    today = today or utc_today()
    with get_session(engine) as session:
        streak = walk_streak(
            lambda day: had_activity_on(session, user_id, day),
            today,
            max_days,
        )
    logger.debug("Streak for user %s as of %s: %d", user_id, today, streak)
    return streak
