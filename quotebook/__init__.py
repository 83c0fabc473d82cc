"""
Quotebook — Engagement & Entitlement Engine for a Quote Journal
================================================================
Deduplicates likes on free-text quotes, tracks multi-source daily streaks,
folds several activity metrics into badge progress, and grants time-bounded
access when a badge is claimed.

Package layout::

    quotebook/
    ├── config.py          # YAML → typed Python config (badge catalogue)
    ├── constants.py       # Id format, lookback bounds, UTC helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (users, quotes, favorites, entitlements…)
    ├── engine/
    │   ├── normalize.py   # Quote text normalization + dedup keys
    │   ├── streak.py      # Pure day-walking streak logic
    │   └── badges.py      # Badge definitions + progress combination
    ├── services/
    │   ├── identity.py            # External ↔ internal user id resolution
    │   ├── favorite_service.py    # Likes (idempotent upsert, aggregates)
    │   ├── entitlement_service.py # Access grants (upsert, expiry, revoke)
    │   ├── activity_service.py    # Metric counters + streak probes
    │   ├── achievement_service.py # Permanent profile achievement flags
    │   ├── badge_service.py       # Progress + claim workflow
    │   └── backfill_service.py    # Legacy quote flags → favorites
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + engine/config injection
        └── routes/        # Likes, badges, entitlements, admin endpoints
"""

__version__ = "0.1.0"
