"""
quotebook.api.routes.badges — Badge progress & claim endpoints
===============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

from quotebook.api.deps import get_badge, get_config, get_current_user, get_engine
from quotebook.config import QuotebookConfig
from quotebook.engine.badges import BadgeDefinition
from quotebook.services import badge_service

router = APIRouter(prefix="/badges", tags=["badges"])

# Claim error → HTTP status; the body is always the full claim result
_CLAIM_ERROR_STATUS = {
    badge_service.ERROR_USER_NOT_FOUND: 404,
    badge_service.ERROR_REQUIREMENTS_NOT_MET: 400,
    badge_service.ERROR_CLAIM_FAILED: 500,
}


@router.get("")
def list_badges(config: QuotebookConfig = Depends(get_config)):
    return [
        {
            "id": badge.id,
            "title": badge.title,
            "requirements": dict(badge.requirements),
            "entitlement_kind": str(badge.entitlement_kind),
            "resource_id": badge.resource_id,
            "grant_days": badge.grant_days,
        }
        for badge in config.badges.values()
    ]


@router.get("/{badge_id}/progress")
async def badge_progress(
    badge: BadgeDefinition = Depends(get_badge),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    progress = await badge_service.get_progress(engine, user["sub"], badge)
    return progress.to_dict()


@router.post("/{badge_id}/claim")
async def claim(
    badge: BadgeDefinition = Depends(get_badge),
    user: dict = Depends(get_current_user),
    engine: Engine = Depends(get_engine),
):
    result = await badge_service.claim_badge(engine, user["sub"], badge)
    status_code = 200 if result.success else _CLAIM_ERROR_STATUS.get(result.error or "", 400)
    return JSONResponse(status_code=status_code, content=result.to_dict())
