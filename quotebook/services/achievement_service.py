"""
quotebook.services.achievement_service — Profile Achievement Flags
===================================================================

Permanent "did you ever earn this" records on the user profile.  Unlike
entitlements they never expire.  Inserts are add-to-set: the composite
primary key rejects duplicates and the duplicate is treated as success.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError

from quotebook.constants import as_utc, utcnow
from quotebook.database.engine import get_session
from quotebook.database.models import UserAchievement

logger = logging.getLogger(__name__)


def has_achievement(engine: Engine, user_id: str, achievement_id: str) -> bool:
    with get_session(engine) as session:
        return session.get(UserAchievement, (user_id, achievement_id)) is not None


def get_achievement_ids(engine: Engine, user_id: str) -> set[str]:
    """Achievement slugs the user has already earned."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        ).all()
    return set(rows)


def record_achievement(
    engine: Engine,
    user_id: str,
    achievement_id: str,
    *,
    unlocked_at: datetime | None = None,
) -> bool:
    """Add *achievement_id* to the profile.

    Returns True if the flag was newly added, False if it already existed.
    """
    with get_session(engine) as session:
        if session.get(UserAchievement, (user_id, achievement_id)) is not None:
            return False
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(UserAchievement(
                    user_id=user_id,
                    achievement_id=achievement_id,
                    unlocked_at=as_utc(unlocked_at) or utcnow(),
                ))
                session.flush()
        except IntegrityError:
            return False

    logger.info("Recorded achievement %r for user %s", achievement_id, user_id)
    return True
