"""
quotebook.api.routes.admin — Admin endpoints (JWT‑protected)
=============================================================
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from quotebook.api.deps import get_current_admin, get_engine
from quotebook.api.routes.entitlements import entitlement_dict
from quotebook.constants import as_utc, utcnow
from quotebook.database.engine import run_db
from quotebook.database.models import EntitlementKind
from quotebook.services import backfill_service, entitlement_service
from quotebook.services.identity import resolve_user_id

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class EntitlementTarget(BaseModel):
    user_id: str  # external or internal id
    kind: EntitlementKind
    resource_id: str = Field(min_length=1, max_length=100)


class EntitlementGrant(EntitlementTarget):
    expires_at: datetime | None = None
    days: int | None = Field(None, gt=0)  # alternative to expires_at
    granted_by: str = Field("admin", max_length=50)
    metadata: dict = Field(default_factory=dict)


async def _resolve_or_404(engine: Engine, raw_id: str) -> str:
    user_id = await run_db(resolve_user_id, engine, raw_id)
    if user_id is None:
        raise HTTPException(404, "User not found")
    return user_id


# ---------------------------------------------------------------------------
# Entitlements
# ---------------------------------------------------------------------------
@router.post("/entitlements")
async def grant_entitlement(
    body: EntitlementGrant,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    if body.expires_at is not None and body.days is not None:
        raise HTTPException(422, "Give either expires_at or days, not both")
    user_id = await _resolve_or_404(engine, body.user_id)

    expires_at = as_utc(body.expires_at)
    if body.days is not None:
        expires_at = utcnow() + timedelta(days=body.days)

    entitlement = await run_db(
        entitlement_service.grant,
        engine,
        user_id,
        body.kind,
        body.resource_id,
        expires_at=expires_at,
        granted_by=body.granted_by,
        metadata={**body.metadata, "admin": admin["sub"]},
    )
    return entitlement_dict(entitlement)


@router.delete("/entitlements")
async def revoke_entitlement(
    body: EntitlementTarget,
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    user_id = await _resolve_or_404(engine, body.user_id)
    removed = await run_db(
        entitlement_service.revoke, engine, user_id, body.kind, body.resource_id,
    )
    logger.info(
        "Admin %s revoked %s/%s from user %s", admin["sub"], body.kind, body.resource_id, user_id,
    )
    return {"removed": removed}


@router.get("/entitlements/{user_id}")
async def user_entitlements(
    user_id: str,
    kind: EntitlementKind | None = None,
    include_expired: bool = Query(False),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    internal_id = await _resolve_or_404(engine, user_id)
    rows = await run_db(
        entitlement_service.list_for_user,
        engine, internal_id, kind, include_expired=include_expired,
    )
    return [entitlement_dict(e) for e in rows]


@router.post("/entitlements/purge")
async def purge_entitlements(
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    purged = await run_db(entitlement_service.purge_expired, engine)
    return {"purged": purged}


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------
@router.post("/backfill/favorites")
async def backfill_favorites(
    dry_run: bool = Query(True),
    admin: dict = Depends(get_current_admin),
    engine: Engine = Depends(get_engine),
):
    return await run_db(
        backfill_service.backfill_favorites_from_quotes, engine, dry_run=dry_run,
    )
