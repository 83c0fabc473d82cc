"""
quotebook.api.deps — FastAPI dependency injection
===================================================

Bearer tokens are HS256 JWTs issued by the main product.  ``sub`` carries
the platform (external) user id; admin tokens also set ``is_admin``.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header, HTTPException, status
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from quotebook.config import QuotebookConfig, load_config
from quotebook.database.engine import create_db_engine, run_db
from quotebook.engine.badges import BadgeDefinition
from quotebook.services.identity import resolve_user_id

_WEAK_SECRETS = frozenset({
    "quotebook-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> QuotebookConfig:
    return load_config(os.getenv("QUOTEBOOK_CONFIG", "config.yaml"))


def _decode_bearer(authorization: str | None) -> dict:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid token")
    if not payload.get("sub"):
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Token has no subject")
    return payload


def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return its payload. Raises 401 if invalid."""
    return _decode_bearer(authorization)


def get_current_admin(
    authorization: Annotated[str | None, Header()] = None,
) -> dict:
    """Validate JWT and return admin user payload. Raises 401/403."""
    payload = _decode_bearer(authorization)
    if not payload.get("is_admin"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "Not admin")
    return payload


async def get_current_user_id(
    user: Annotated[dict, Depends(get_current_user)],
    engine: Annotated[Engine, Depends(get_engine)],
) -> str:
    """Internal id of the caller. Raises 404 if the profile does not exist."""
    user_id = await run_db(resolve_user_id, engine, user["sub"])
    if user_id is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    return user_id


def get_badge(
    badge_id: str,
    config: Annotated[QuotebookConfig, Depends(get_config)],
) -> BadgeDefinition:
    """Look up ``{badge_id}`` in the configured catalogue. Raises 404."""
    badge = config.get_badge(badge_id)
    if badge is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Unknown badge {badge_id!r}")
    return badge
