"""
quotebook.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for the badge catalogue and a few service settings.
Secrets and connection strings stay in the environment (``DATABASE_URL``,
``JWT_SECRET``); they never appear in this file.

Usage::

    from quotebook.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "Quotebook"
    print(cfg.badges["alice"].title) # "Alice in Wonderland"

A file without a ``badges`` section gets the built-in catalogue
(:data:`~quotebook.engine.badges.DEFAULT_BADGES`).
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from quotebook.database.models import EntitlementKind
from quotebook.engine.badges import DEFAULT_BADGES, BadgeDefinition
from quotebook.services.activity_service import get_content_filter


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class QuotebookConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    app_name: str = "Quotebook"
    api_port: int = 8000

    # Maximum number of favorites returned by list endpoints
    favorites_page_size: int = 50

    badges: Mapping[str, BadgeDefinition] = field(
        default_factory=lambda: dict(DEFAULT_BADGES)
    )

    def get_badge(self, badge_id: str) -> BadgeDefinition | None:
        return self.badges.get(badge_id)


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------
def _parse_badge(badge_id: str, raw: dict) -> BadgeDefinition:
    """Build a :class:`BadgeDefinition` from one ``badges.<id>`` mapping.

    Raises
    ------
    KeyError
        If ``requirements``, ``entitlement_kind`` or ``resource_id`` is missing,
        or the content filter is not registered.
    ValueError
        If the entitlement kind or a threshold is invalid.
    """
    content_filter = raw.get("content_filter", "published")
    get_content_filter(content_filter)

    return BadgeDefinition(
        id=badge_id,
        title=raw.get("title", badge_id),
        requirements={name: int(value) for name, value in raw["requirements"].items()},
        entitlement_kind=EntitlementKind(raw["entitlement_kind"]),
        resource_id=str(raw["resource_id"]),
        grant_days=int(raw.get("grant_days", 30)),
        granted_by=raw.get("granted_by", ""),
        content_filter=content_filter,
        content_rubric=raw.get("content_rubric"),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> QuotebookConfig:
    """Read *path* and return a :class:`QuotebookConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If a badge definition is invalid.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    raw_badges = raw.get("badges")
    badges = (
        {str(badge_id): _parse_badge(str(badge_id), entry) for badge_id, entry in raw_badges.items()}
        if raw_badges
        else dict(DEFAULT_BADGES)
    )

    return QuotebookConfig(
        app_name=raw["app_name"],
        api_port=int(raw.get("api_port", 8000)),
        favorites_page_size=int(raw.get("favorites_page_size", 50)),
        badges=badges,
    )
