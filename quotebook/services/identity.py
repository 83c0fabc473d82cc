"""
quotebook.services.identity — External → Internal User Id Resolution
======================================================================

Most of the product passes around the platform-issued (numeric) user id,
while favorites, entitlements and achievements are keyed by the internal
hex id.  This module is the only place allowed to tell the two apart.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from quotebook.constants import INTERNAL_ID_PATTERN
from quotebook.database.engine import get_session
from quotebook.database.models import User

logger = logging.getLogger(__name__)


def is_internal_id(value: object) -> bool:
    """True if *value* is already an internal user id.

    A 32-digit decimal external id would also match; platform ids are far
    shorter, so the two never collide in practice.
    """
    return isinstance(value, str) and bool(INTERNAL_ID_PATTERN.match(value))


def resolve_user_id(engine: Engine, raw_id: str | int | None) -> str | None:
    """Map *raw_id* (external or internal) to the internal user id.

    Returns ``None`` when the id is empty, is the unresolved ``"me"``
    placeholder, or no user has that external id.  Lookup failures are
    logged and also resolve to ``None`` so callers deny by default.
    """
    if raw_id is None or raw_id == "":
        logger.warning("resolve_user_id called with empty id")
        return None

    raw = str(raw_id).strip()
    if raw == "me":
        logger.warning('resolve_user_id called with "me"; resolve it from auth context first')
        return None

    if is_internal_id(raw):
        return raw

    try:
        with get_session(engine) as session:
            internal_id = session.scalar(select(User.id).where(User.external_id == raw))
    except SQLAlchemyError:
        logger.exception("Error resolving user id %s", raw)
        return None

    if internal_id is None:
        logger.warning("User not found for external id %s", raw)
        return None

    logger.debug("Resolved external id %s → %s", raw, internal_id)
    return internal_id
