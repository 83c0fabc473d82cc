"""
quotebook.services.entitlement_service — Access Grants
=======================================================

Grant, revoke and check time-bounded access to protected resources
(audio, packages, subscriptions).

* One row per ``(user_id, kind, resource_id)``; granting again overwrites
  expiry, provenance and metadata in place.
* Expiry is evaluated at read time — :func:`purge_expired` is housekeeping,
  never required for correctness.
* :func:`has_access` **fails closed**: any store error denies access.

All ``user_id`` arguments are internal ids.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime

from sqlalchemy import Engine, delete, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from quotebook.constants import DEFAULT_GRANTED_BY, NEVER_EXPIRES, as_utc, utcnow
from quotebook.database.engine import get_session
from quotebook.database.models import Entitlement, EntitlementKind

logger = logging.getLogger(__name__)

# How many rows to delete in each purge batch
BATCH_SIZE = 1_000


def _not_expired(now: datetime):
    """SQL predicate: the grant never expires or expires after *now*."""
    return or_(Entitlement.expires_at.is_(None), Entitlement.expires_at > now)


def _find(session: Session, user_id: str, kind: str, resource_id: str) -> Entitlement | None:
    return session.scalar(
        select(Entitlement).where(
            Entitlement.user_id == user_id,
            Entitlement.kind == kind,
            Entitlement.resource_id == resource_id,
        )
    )


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------
def grant(
    engine: Engine,
    user_id: str,
    kind: EntitlementKind | str,
    resource_id: str,
    *,
    expires_at: datetime | None = None,
    granted_by: str = DEFAULT_GRANTED_BY,
    metadata: dict | None = None,
) -> Entitlement:
    """Grant (or re-grant) access.  Idempotent on ``(user_id, kind, resource_id)``.

    Calling again overwrites ``expires_at``, ``granted_by`` and ``metadata``
    of the existing row instead of adding a duplicate.

    Raises
    ------
    SQLAlchemyError
        On any store failure (logged first).
    """
    kind = EntitlementKind(kind)
    values = {
        "expires_at": as_utc(expires_at),
        "granted_by": granted_by or DEFAULT_GRANTED_BY,
        "metadata_": metadata or {},
        "granted_at": utcnow(),
    }

    try:
        with get_session(engine) as session:
            entitlement = _find(session, user_id, kind, resource_id)
            if entitlement is None:
                entitlement = Entitlement(
                    user_id=user_id, kind=kind.value, resource_id=resource_id, **values
                )
                try:
                    with session.begin_nested():   # SAVEPOINT
                        session.add(entitlement)
                        session.flush()
                except IntegrityError:
                    # Concurrent grant won the insert; update its row instead.
                    entitlement = _find(session, user_id, kind, resource_id)
                    if entitlement is None:
                        raise
                    for field, value in values.items():
                        setattr(entitlement, field, value)
            else:
                for field, value in values.items():
                    setattr(entitlement, field, value)
            session.flush()
            session.refresh(entitlement)
    except SQLAlchemyError:
        logger.exception(
            "Error granting %s/%s to user %s", kind.value, resource_id, user_id,
        )
        raise

    logger.info(
        "Granted %s/%s to user %s (expires_at=%s, granted_by=%s)",
        kind.value, resource_id, user_id, values["expires_at"], values["granted_by"],
    )
    return entitlement


def revoke(engine: Engine, user_id: str, kind: EntitlementKind | str, resource_id: str) -> int:
    """Remove a grant.  Returns the number of rows deleted (0 or 1)."""
    kind = EntitlementKind(kind)
    try:
        with get_session(engine) as session:
            result = session.execute(
                delete(Entitlement).where(
                    Entitlement.user_id == user_id,
                    Entitlement.kind == kind.value,
                    Entitlement.resource_id == resource_id,
                )
            )
            deleted = result.rowcount
    except SQLAlchemyError:
        logger.exception(
            "Error revoking %s/%s from user %s", kind.value, resource_id, user_id,
        )
        raise

    logger.info("Revoked %s/%s from user %s (%d row)", kind.value, resource_id, user_id, deleted)
    return deleted


def purge_expired(engine: Engine, *, now: datetime | None = None) -> int:
    """Delete expired grants in bounded batches.  Returns rows deleted."""
    cutoff = as_utc(now) or utcnow()
    total = 0
    while True:
        with get_session(engine) as session:
            ids = session.scalars(
                select(Entitlement.id)
                .where(Entitlement.expires_at.is_not(None), Entitlement.expires_at <= cutoff)
                .limit(BATCH_SIZE)
            ).all()
            if not ids:
                break
            result = session.execute(delete(Entitlement).where(Entitlement.id.in_(ids)))
            total += result.rowcount  # type: ignore[operator]

    logger.info("Purged %d expired entitlements (cutoff=%s)", total, cutoff.isoformat())
    return total


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_active(
    engine: Engine,
    user_id: str,
    kind: EntitlementKind | str,
    resource_id: str,
    *,
    now: datetime | None = None,
) -> Entitlement | None:
    """Return the unexpired grant for the triple, or ``None``."""
    kind = EntitlementKind(kind)
    with get_session(engine) as session:
        return session.scalar(
            select(Entitlement).where(
                Entitlement.user_id == user_id,
                Entitlement.kind == kind.value,
                Entitlement.resource_id == resource_id,
                _not_expired(as_utc(now) or utcnow()),
            )
        )


def has_access(
    engine: Engine,
    user_id: str | None,
    kind: EntitlementKind | str,
    resource_id: str,
    *,
    now: datetime | None = None,
) -> bool:
    """True iff an unexpired grant exists.  Never raises; errors deny access."""
    if not user_id:
        return False
    try:
        entitlement = get_active(engine, user_id, kind, resource_id, now=now)
    except (SQLAlchemyError, ValueError):
        logger.exception(
            "Error checking %s/%s access for user %s; denying", kind, resource_id, user_id,
        )
        return False

    allowed = entitlement is not None
    logger.debug(
        "Access check user=%s %s/%s → %s", user_id, kind, resource_id, allowed,
    )
    return allowed


def list_for_user(
    engine: Engine,
    user_id: str,
    kind: EntitlementKind | str | None = None,
    *,
    include_expired: bool = False,
    now: datetime | None = None,
) -> list[Entitlement]:
    """All grants for a user, optionally narrowed to one *kind*.

    Expired grants are left out unless *include_expired* is set.
    """
    stmt = select(Entitlement).where(Entitlement.user_id == user_id)
    if kind is not None:
        stmt = stmt.where(Entitlement.kind == EntitlementKind(kind).value)
    if not include_expired:
        stmt = stmt.where(_not_expired(as_utc(now) or utcnow()))

    with get_session(engine) as session:
        rows = session.scalars(stmt.order_by(Entitlement.granted_at.desc())).all()
    return list(rows)


def remaining_days(
    engine: Engine,
    user_id: str,
    kind: EntitlementKind | str,
    resource_id: str,
    *,
    now: datetime | None = None,
) -> int | None:
    """Whole days of access left, rounded up.

    ``None`` if there is no active grant, :data:`NEVER_EXPIRES` (-1) if the
    grant has no expiry.
    """
    now = as_utc(now) or utcnow()
    try:
        entitlement = get_active(engine, user_id, kind, resource_id, now=now)
    except SQLAlchemyError:
        logger.exception("Error getting remaining days for %s/%s", kind, resource_id)
        return None

    if entitlement is None:
        return None
    if entitlement.expires_at is None:
        return NEVER_EXPIRES

    seconds_left = (as_utc(entitlement.expires_at) - now).total_seconds()
    return max(0, math.ceil(seconds_left / 86_400))
