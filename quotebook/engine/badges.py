"""
quotebook.engine.badges — Badge Definitions & Progress Combination
===================================================================

A badge is unlocked when *every* tracked metric meets its threshold at the
same time.  This module holds the badge catalogue and the pure arithmetic
that folds per-metric counts into one :class:`BadgeProgress`; the counters
themselves live in :mod:`quotebook.services.badge_service`.

This module is pure calculation — no database I/O.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from quotebook.database.models import EntitlementKind

# ---------------------------------------------------------------------------
# Metrics a badge may require
# ---------------------------------------------------------------------------
METRIC_PHOTOS = "photos"
METRIC_FOLLOWING = "following"
METRIC_LIKES_GIVEN_TO_OTHERS = "likes_given_to_others"
METRIC_STREAK = "streak"

VALID_METRICS: tuple[str, ...] = (
    METRIC_PHOTOS,
    METRIC_FOLLOWING,
    METRIC_LIKES_GIVEN_TO_OTHERS,
    METRIC_STREAK,
)


# ---------------------------------------------------------------------------
# Badge definition
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class BadgeDefinition:
    """Static description of one badge and the access it unlocks.

    Parameters
    ----------
    id : Slug, also used as the achievement id on the profile.
    title : Human-readable name.
    requirements : Mapping of metric name → required value.
    entitlement_kind / resource_id : What claiming the badge grants.
    grant_days : Length of the granted access.
    granted_by : Provenance tag stored on the entitlement.
    content_filter : Name of the qualifying-content filter for ``photos``.
    content_rubric : Rubric passed to that filter, if it uses one.
    """

    id: str
    title: str
    requirements: Mapping[str, int]
    entitlement_kind: EntitlementKind
    resource_id: str
    grant_days: int = 30
    granted_by: str = ""
    content_filter: str = "published"
    content_rubric: str | None = None

    def __post_init__(self) -> None:
        unknown = set(self.requirements) - set(VALID_METRICS)
        if unknown:
            raise ValueError(f"Badge {self.id!r} has unknown metrics: {sorted(unknown)}")
        if not self.requirements:
            raise ValueError(f"Badge {self.id!r} has no requirements")
        if any(required <= 0 for required in self.requirements.values()):
            raise ValueError(f"Badge {self.id!r} requirements must be positive")
        if self.grant_days <= 0:
            raise ValueError(f"Badge {self.id!r} grant_days must be positive")
        if not self.granted_by:
            object.__setattr__(self, "granted_by", f"{self.id}_badge")


ALICE_BADGE = BadgeDefinition(
    id="alice",
    title="Alice in Wonderland",
    requirements={
        METRIC_PHOTOS: 10,
        METRIC_FOLLOWING: 5,
        METRIC_LIKES_GIVEN_TO_OTHERS: 10,
        METRIC_STREAK: 30,
    },
    entitlement_kind=EntitlementKind.AUDIO,
    resource_id="alice_wonderland",
    grant_days=30,
    granted_by="alice_badge",
)

DEFAULT_BADGES: dict[str, BadgeDefinition] = {ALICE_BADGE.id: ALICE_BADGE}


# ---------------------------------------------------------------------------
# Progress snapshot
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MetricProgress:
    current: int
    required: int

    @property
    def met(self) -> bool:
        return self.current >= self.required

    @property
    def percent(self) -> float:
        """Completion of this metric, capped at 100."""
        return min(self.current / self.required, 1.0) * 100

    def to_dict(self) -> dict[str, int]:
        return {"current": self.current, "required": self.required}


@dataclass(frozen=True, slots=True)
class BadgeProgress:
    """Derived, never persisted.  Recomputed on every request."""

    badge_id: str
    metrics: dict[str, MetricProgress] = field(default_factory=dict)
    completed: bool = False
    percent: int = 0
    claimed: bool = False

    def to_dict(self) -> dict:
        data: dict = {name: m.to_dict() for name, m in self.metrics.items()}
        data.update(
            badge=self.badge_id,
            completed=self.completed,
            percent=self.percent,
            claimed=self.claimed,
        )
        return data

    def counts(self) -> dict[str, int]:
        """Plain ``metric → current`` mapping (stored in grant metadata)."""
        return {name: m.current for name, m in self.metrics.items()}


def combine_progress(
    badge: BadgeDefinition,
    counts: Mapping[str, int],
    *,
    claimed: bool = False,
) -> BadgeProgress:
    """Fold per-metric *counts* into a :class:`BadgeProgress`.

    ``completed`` is the AND of all metrics meeting their threshold;
    ``percent`` is the rounded mean of the per-metric percentages, each
    capped at 100, rounded half-up.  Missing counts are treated as 0.
    """
    metrics = {
        name: MetricProgress(current=int(counts.get(name, 0)), required=required)
        for name, required in badge.requirements.items()
    }
    completed = all(m.met for m in metrics.values())
    mean = sum(m.percent for m in metrics.values()) / len(metrics)
    percent = math.floor(mean + 0.5)  # half-up, not banker's rounding
    return BadgeProgress(
        badge_id=badge.id,
        metrics=metrics,
        completed=completed,
        percent=percent,
        claimed=claimed,
    )


# ---------------------------------------------------------------------------
# Claim result
# ---------------------------------------------------------------------------
@dataclass(slots=True)
class ClaimResult:
    """Outcome of a badge claim.  Business outcomes never raise."""

    success: bool
    already_claimed: bool = False
    expires_at: datetime | None = None
    error: str | None = None
    message: str | None = None
    progress: BadgeProgress | None = None

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.message:
            data["message"] = self.message
        if self.already_claimed:
            data["already_claimed"] = True
        if self.success or self.expires_at is not None:
            data["expires_at"] = self.expires_at.isoformat() if self.expires_at else None
        if self.error:
            data["error"] = self.error
        if self.progress is not None:
            data["progress"] = self.progress.to_dict()
        return data
