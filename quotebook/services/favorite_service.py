"""
quotebook.services.favorite_service — Quote Likes
==================================================

One Favorite row per (user, NormalizedKey).  Uniqueness is enforced by the
``uq_favorites_user_key`` constraint; a concurrent duplicate insert is
caught inside a SAVEPOINT and treated as the idempotent success path.

All ``user_id`` arguments are internal ids (see
:mod:`quotebook.services.identity`).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine, delete, distinct, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quotebook.database.engine import get_session
from quotebook.database.models import Favorite, Quote
from quotebook.engine.normalize import KEY_SEPARATOR, compute_key

logger = logging.getLogger(__name__)


def _find(session: Session, user_id: str, key: str) -> Favorite | None:
    return session.scalar(
        select(Favorite).where(
            Favorite.user_id == user_id, Favorite.normalized_key == key
        )
    )


def add_favorite(engine: Engine, user_id: str, text: str, author: str | None = "") -> Favorite:
    """Like a quote.  Safe to call repeatedly with the same inputs.

    Re-liking refreshes the stored display ``text``/``author`` but never
    creates a second row.
    """
    key = compute_key(text, author)
    display_text = (text or "").strip()
    display_author = (author or "").strip()

    with get_session(engine) as session:
        favorite = _find(session, user_id, key)
        if favorite is None:
            favorite = Favorite(
                user_id=user_id,
                normalized_key=key,
                text=display_text,
                author=display_author,
            )
            try:
                with session.begin_nested():   # SAVEPOINT
                    session.add(favorite)
                    session.flush()
                session.refresh(favorite)
                logger.info("User %s liked %r", user_id, key)
                return favorite
            except IntegrityError:
                # Another writer inserted the same pair first; use its row.
                favorite = _find(session, user_id, key)
                if favorite is None:
                    raise

        favorite.text = display_text
        favorite.author = display_author
        session.flush()
        session.refresh(favorite)
        return favorite


def remove_favorite(
    engine: Engine, user_id: str, text: str, author: str | None = ""
) -> Favorite | None:
    """Unlike a quote.  Returns the deleted row, or ``None`` if it was not liked."""
    key = compute_key(text, author)
    with get_session(engine) as session:
        favorite = _find(session, user_id, key)
        if favorite is None:
            return None
        session.delete(favorite)
    logger.info("User %s unliked %r", user_id, key)
    return favorite


def remove_favorite_by_key(engine: Engine, user_id: str, normalized_key: str) -> int:
    """Delete a like addressed by its NormalizedKey.  Returns rows deleted."""
    with get_session(engine) as session:
        result = session.execute(
            delete(Favorite).where(
                Favorite.user_id == user_id,
                Favorite.normalized_key == normalized_key,
            )
        )
        return result.rowcount  # type: ignore[return-value]


def count_unique_likers(engine: Engine, keys: Iterable[str]) -> dict[str, int]:
    """Number of distinct users who liked each key, in one grouped query.

    Every requested key is present in the result; unliked keys map to 0.
    """
    wanted = set(keys)
    if not wanted:
        return {}

    with get_session(engine) as session:
        rows = session.execute(
            select(
                Favorite.normalized_key,
                func.count(distinct(Favorite.user_id)).label("cnt"),
            )
            .where(Favorite.normalized_key.in_(sorted(wanted)))
            .group_by(Favorite.normalized_key)
        ).all()

    counts = dict.fromkeys(wanted, 0)
    counts.update({row.normalized_key: row.cnt for row in rows})
    return counts


def get_liked_keys(engine: Engine, user_id: str, keys: Iterable[str]) -> set[str]:
    """Subset of *keys* that *user_id* has liked."""
    wanted = set(keys)
    if not wanted:
        return set()
    with get_session(engine) as session:
        rows = session.scalars(
            select(Favorite.normalized_key).where(
                Favorite.user_id == user_id,
                Favorite.normalized_key.in_(sorted(wanted)),
            )
        ).all()
    return set(rows)


def list_favorites(engine: Engine, user_id: str, limit: int = 50) -> list[Favorite]:
    """The user's likes, newest first."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Favorite)
            .where(Favorite.user_id == user_id)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .limit(limit)
        ).all()
    return list(rows)


def count_likes_given_to_others(engine: Engine, user_id: str) -> int:
    """Distinct quotes liked by *user_id* that were authored by someone else.

    A like counts only if its NormalizedKey matches a quote saved by a
    *different* user, so liking one's own quotes never inflates the metric.
    """
    quote_key = Quote.normalized_text + KEY_SEPARATOR + Quote.normalized_author
    with get_session(engine) as session:
        count = session.scalar(
            select(func.count(distinct(Favorite.normalized_key)))
            .select_from(Favorite)
            .join(Quote, quote_key == Favorite.normalized_key)
            .where(Favorite.user_id == user_id, Quote.user_id != user_id)
        )
    return count or 0
