"""
quotebook.api.routes.likes — Quote like endpoints
==================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from quotebook.api.deps import get_config, get_current_user_id, get_engine
from quotebook.config import QuotebookConfig
from quotebook.database.engine import run_db
from quotebook.database.models import Favorite
from quotebook.services import favorite_service

router = APIRouter(prefix="/likes", tags=["likes"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class LikeRequest(BaseModel):
    text: str = Field(min_length=1)
    author: str = Field("", max_length=200)


class CountsRequest(BaseModel):
    keys: list[str] = Field(default_factory=list, max_length=500)


def _favorite_dict(favorite: Favorite) -> dict:
    return {
        "id": favorite.id,
        "key": favorite.normalized_key,
        "text": favorite.text,
        "author": favorite.author,
        "created_at": favorite.created_at.isoformat() if favorite.created_at else None,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.get("")
async def list_likes(
    limit: int | None = Query(None, ge=1, le=200),
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
    config: QuotebookConfig = Depends(get_config),
):
    """The caller's likes, newest first."""
    favorites = await run_db(
        favorite_service.list_favorites,
        engine, user_id, limit or config.favorites_page_size,
    )
    return [_favorite_dict(f) for f in favorites]


@router.post("")
async def like(
    body: LikeRequest,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    favorite = await run_db(favorite_service.add_favorite, engine, user_id, body.text, body.author)
    return _favorite_dict(favorite)


@router.delete("")
async def unlike(
    body: LikeRequest,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    removed = await run_db(
        favorite_service.remove_favorite, engine, user_id, body.text, body.author,
    )
    return {"removed": removed is not None}


@router.post("/counts")
async def like_counts(
    body: CountsRequest,
    user_id: str = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
):
    """Unique-liker counts per key plus which of them the caller liked."""
    counts = await run_db(favorite_service.count_unique_likers, engine, body.keys)
    liked = await run_db(favorite_service.get_liked_keys, engine, user_id, body.keys)
    return {"counts": counts, "liked": sorted(liked)}
