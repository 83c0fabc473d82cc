"""
quotebook.constants — Shared Constants & Helpers
=================================================

Single source of truth for engine-wide constants and UTC time helpers.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------
# Internal user ids are uuid4().hex — 32 lowercase hex characters.
INTERNAL_ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")

# ---------------------------------------------------------------------------
# Streaks
# ---------------------------------------------------------------------------
# Upper bound on how many days the streak walk looks back.  Performance
# safeguard for very long histories, not a product rule.
MAX_STREAK_LOOKBACK_DAYS = 60

# ---------------------------------------------------------------------------
# Entitlements
# ---------------------------------------------------------------------------
NEVER_EXPIRES = -1  # remaining_days() sentinel for non-expiring grants
DEFAULT_GRANTED_BY = "system"


# ---------------------------------------------------------------------------
# Time helpers — everything in this package reasons in UTC
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as an aware UTC datetime.

    Some backends (SQLite) hand back naive datetimes for
    ``DateTime(timezone=True)`` columns; those are stored in UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
