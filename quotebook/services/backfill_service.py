"""
quotebook.services.backfill_service — Quote Flag → Favorite Backfill
=====================================================================

One-shot migration utility.  Older journal versions marked a like by
setting ``quotes.is_favorite``; this copies those flags into the
``favorites`` table so likes are counted the same way everywhere.

Quotes that normalize to the same key for the same user collapse into one
Favorite, dated by the earliest quote.  Existing Favorite rows are left
untouched, so the backfill can be run repeatedly.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from quotebook.database.engine import get_session
from quotebook.database.models import Favorite, Quote
from quotebook.engine.normalize import KEY_SEPARATOR

logger = logging.getLogger(__name__)


def backfill_favorites_from_quotes(
    engine: Engine,
    *,
    dry_run: bool = False,
) -> dict:
    """Create a Favorite for every flagged quote that lacks one.

    Args:
        engine: SQLAlchemy engine.
        dry_run: If True, compute but don't write. Returns what *would* be written.

    Returns:
        ``{"quotes_read": N, "favorites_created": M, "already_present": K, ...}``
    """
    quotes_read = 0
    created = 0
    already_present = 0

    with get_session(engine) as session:
        rows = session.scalars(
            select(Quote)
            .where(Quote.is_favorite.is_(True))
            .order_by(Quote.created_at, Quote.id)
        ).all()

        # Earliest quote wins for each (user, key)
        earliest: dict[tuple[str, str], Quote] = {}
        for quote in rows:
            quotes_read += 1
            key = f"{quote.normalized_text}{KEY_SEPARATOR}{quote.normalized_author}"
            earliest.setdefault((quote.user_id, key), quote)

        user_ids = {user_id for user_id, _ in earliest}
        existing: set[tuple[str, str]] = set()
        if user_ids:
            liked = session.execute(
                select(Favorite.user_id, Favorite.normalized_key)
                .where(Favorite.user_id.in_(sorted(user_ids)))
            )
            existing = {(row.user_id, row.normalized_key) for row in liked}

        for (user_id, key), quote in earliest.items():
            if (user_id, key) in existing:
                already_present += 1
                continue
            if not dry_run:
                session.add(Favorite(
                    user_id=user_id,
                    normalized_key=key,
                    text=quote.text.strip(),
                    author=(quote.author or "").strip(),
                    created_at=quote.created_at,
                    updated_at=quote.created_at,
                ))
            created += 1

    action = "would create" if dry_run else "created"
    logger.info(
        "Backfill: %s %d favorites from %d flagged quotes (%d already present)",
        action, created, quotes_read, already_present,
    )

    return {
        "quotes_read": quotes_read,
        "favorites_created": created,
        "already_present": already_present,
        "dry_run": dry_run,
        "timestamp": datetime.now(UTC).isoformat(),
    }
