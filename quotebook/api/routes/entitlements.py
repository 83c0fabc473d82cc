"""
quotebook.api.routes.entitlements — Caller access checks
=========================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import Engine

from quotebook.api.deps import get_current_user_id, get_engine
from quotebook.constants import as_utc
from quotebook.database.engine import run_db
from quotebook.database.models import Entitlement, EntitlementKind
from quotebook.services import entitlement_service

router = APIRouter(prefix="/entitlements", tags=["entitlements"])


def entitlement_dict(entitlement: Entitlement) -> dict:
    expires_at = as_utc(entitlement.expires_at)
    granted_at = as_utc(entitlement.granted_at)
    return {
        "id": entitlement.id,
        "user_id": entitlement.user_id,
        "kind": entitlement.kind,
        "resource_id": entitlement.resource_id,
        "expires_at": expires_at.isoformat() if expires_at else None,
        "granted_at": granted_at.isoformat() if granted_at else None,
        "granted_by": entitlement.granted_by,
        "metadata": entitlement.metadata_ or {},
    }


@router.get("")
async def my_entitlements(
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    """The caller's active grants."""
    rows = await run_db(entitlement_service.list_for_user, engine, user_id)
    return [entitlement_dict(e) for e in rows]


@router.get("/{kind}/{resource_id}")
async def check_access(
    kind: EntitlementKind,
    resource_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    has_access = await run_db(entitlement_service.has_access, engine, user_id, kind, resource_id)
    remaining = None
    if has_access:
        remaining = await run_db(
            entitlement_service.remaining_days, engine, user_id, kind, resource_id,
        )
    return {"has_access": has_access, "remaining_days": remaining}
