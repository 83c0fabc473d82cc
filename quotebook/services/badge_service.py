"""
quotebook.services.badge_service — Badge Progress & Claim Workflow
===================================================================

Progress
    :func:`get_progress` resolves the user once, then runs every metric
    counter the badge needs **concurrently** (``asyncio.gather`` over
    :func:`~quotebook.database.engine.run_db`).  Counters are read-only
    and independent, so no coordination is needed between them.  Nothing
    is cached: each call recomputes from the source tables.

Claim
    :func:`claim_badge` is idempotent per (user, badge):

    * unresolvable user        → ``success=False, error="user not found"``
    * active grant exists      → ``success=True, already_claimed=True`` with
      the *existing* expiry (re-claiming never extends access)
    * progress incomplete      → ``success=False, error="requirements not met"``
    * otherwise                → grant ``grant_days`` of access, then record
      the achievement flag

    The two writes are not one transaction.  The entitlement is the source
    of truth for access, so a failed achievement write is logged and the
    grant is kept.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from quotebook.constants import as_utc, utcnow
from quotebook.database.engine import run_db
from quotebook.engine.badges import (
    ALICE_BADGE,
    METRIC_FOLLOWING,
    METRIC_LIKES_GIVEN_TO_OTHERS,
    METRIC_PHOTOS,
    METRIC_STREAK,
    BadgeDefinition,
    BadgeProgress,
    ClaimResult,
    combine_progress,
)
from quotebook.engine.streak import utc_today
from quotebook.services import (
    achievement_service,
    activity_service,
    entitlement_service,
    favorite_service,
)
from quotebook.services.identity import resolve_user_id

logger = logging.getLogger(__name__)

ERROR_USER_NOT_FOUND = "user not found"
ERROR_REQUIREMENTS_NOT_MET = "requirements not met"
ERROR_CLAIM_FAILED = "failed to claim badge"


# ---------------------------------------------------------------------------
# Metric counters — (engine, user_id, badge, today) → int
# ---------------------------------------------------------------------------
def _count_photos(engine: Engine, user_id: str, badge: BadgeDefinition, today: date) -> int:
    return activity_service.count_qualifying_posts(
        engine,
        user_id,
        content_filter=badge.content_filter,
        rubric=badge.content_rubric,
    )


def _count_following(engine: Engine, user_id: str, badge: BadgeDefinition, today: date) -> int:
    return activity_service.count_following(engine, user_id)


def _count_likes_to_others(
    engine: Engine, user_id: str, badge: BadgeDefinition, today: date
) -> int:
    return favorite_service.count_likes_given_to_others(engine, user_id)


def _count_streak(engine: Engine, user_id: str, badge: BadgeDefinition, today: date) -> int:
    return activity_service.compute_streak(engine, user_id, today=today)


METRIC_COUNTERS: dict[str, Callable[[Engine, str, BadgeDefinition, date], int]] = {
    METRIC_PHOTOS: _count_photos,
    METRIC_FOLLOWING: _count_following,
    METRIC_LIKES_GIVEN_TO_OTHERS: _count_likes_to_others,
    METRIC_STREAK: _count_streak,
}


# ---------------------------------------------------------------------------
# Claimed check
# ---------------------------------------------------------------------------
def is_claimed(
    engine: Engine,
    user_id: str,
    badge: BadgeDefinition,
    *,
    now: datetime | None = None,
) -> bool:
    """True if the user holds the badge's grant *or* its achievement flag.

    The grant may have expired while the permanent flag remains; either
    one marks the badge as claimed.
    """
    if entitlement_service.has_access(
        engine, user_id, badge.entitlement_kind, badge.resource_id, now=now,
    ):
        return True
    try:
        return achievement_service.has_achievement(engine, user_id, badge.id)
    except SQLAlchemyError:
        logger.warning(
            "Could not check %r achievement for user %s", badge.id, user_id, exc_info=True,
        )
        return False


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------
async def _progress_for(
    engine: Engine,
    user_id: str,
    badge: BadgeDefinition,
    now: datetime | None,
) -> BadgeProgress:
    today = utc_today(now)
    metrics = list(badge.requirements)
    *values, claimed = await asyncio.gather(
        *(run_db(METRIC_COUNTERS[name], engine, user_id, badge, today) for name in metrics),
        run_db(is_claimed, engine, user_id, badge, now=now),
    )
    progress = combine_progress(badge, dict(zip(metrics, values)), claimed=claimed)
    logger.info(
        "Badge %r progress for user %s: %d%% (completed=%s, claimed=%s)",
        badge.id, user_id, progress.percent, progress.completed, progress.claimed,
    )
    return progress


async def get_progress(
    engine: Engine,
    raw_user_id: str | int,
    badge: BadgeDefinition | None = None,
    *,
    now: datetime | None = None,
) -> BadgeProgress:
    """Compute a fresh progress snapshot for *badge*.

    *raw_user_id* may be external or internal.  An unknown user gets an
    all-zero, unclaimed snapshot.  Store errors propagate.
    """
    badge = badge or ALICE_BADGE
    user_id = await run_db(resolve_user_id, engine, raw_user_id)
    if user_id is None:
        return combine_progress(badge, {})
    return await _progress_for(engine, user_id, badge, now)


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------
async def _record_achievement_best_effort(
    engine: Engine, user_id: str, badge: BadgeDefinition, unlocked_at: datetime
) -> None:
    try:
        added = await run_db(
            achievement_service.record_achievement,
            engine, user_id, badge.id, unlocked_at=unlocked_at,
        )
    except SQLAlchemyError:
        logger.exception(
            "Could not persist %r achievement for user %s; grant kept", badge.id, user_id,
        )
        return
    if added:
        logger.info("Added %r achievement to user %s profile", badge.id, user_id)


async def _claim(
    engine: Engine,
    raw_user_id: str | int,
    badge: BadgeDefinition,
    now: datetime | None,
) -> ClaimResult:
    user_id = await run_db(resolve_user_id, engine, raw_user_id)
    if user_id is None:
        logger.warning("Badge %r claim: could not resolve user %s", badge.id, raw_user_id)
        return ClaimResult(success=False, error=ERROR_USER_NOT_FOUND)

    claimed_at = as_utc(now) or utcnow()

    existing = await run_db(
        entitlement_service.get_active,
        engine, user_id, badge.entitlement_kind, badge.resource_id, now=claimed_at,
    )
    if existing is not None:
        logger.info("User %s already holds %r grant (idempotent claim)", user_id, badge.id)
        await _record_achievement_best_effort(engine, user_id, badge, claimed_at)
        return ClaimResult(
            success=True,
            already_claimed=True,
            expires_at=as_utc(existing.expires_at),
            message="badge already claimed",
        )

    progress = await _progress_for(engine, user_id, badge, claimed_at)
    if not progress.completed:
        logger.info("User %s has not completed %r requirements", user_id, badge.id)
        return ClaimResult(
            success=False, error=ERROR_REQUIREMENTS_NOT_MET, progress=progress,
        )

    entitlement = await run_db(
        entitlement_service.grant,
        engine,
        user_id,
        badge.entitlement_kind,
        badge.resource_id,
        expires_at=claimed_at + timedelta(days=badge.grant_days),
        granted_by=badge.granted_by,
        metadata={
            "badge": badge.id,
            "claimed_at": claimed_at.isoformat(),
            "progress": progress.counts(),
        },
    )
    await _record_achievement_best_effort(engine, user_id, badge, claimed_at)

    logger.info("Badge %r claimed by user %s", badge.id, user_id)
    return ClaimResult(
        success=True,
        expires_at=as_utc(entitlement.expires_at),
        message="badge claimed",
        progress=progress,
    )


async def claim_badge(
    engine: Engine,
    raw_user_id: str | int,
    badge: BadgeDefinition | None = None,
    *,
    now: datetime | None = None,
) -> ClaimResult:
    """Claim *badge* for the user.  Never raises for business outcomes."""
    badge = badge or ALICE_BADGE
    try:
        return await _claim(engine, raw_user_id, badge, now)
    except SQLAlchemyError:
        logger.exception("Error claiming badge %r for user %s", badge.id, raw_user_id)
        return ClaimResult(success=False, error=ERROR_CLAIM_FAILED)
