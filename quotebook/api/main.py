"""
quotebook.api.main — FastAPI application entry point
======================================================

Run with::

    uvicorn quotebook.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from quotebook import __version__  # noqa: E402
from quotebook.api.deps import get_config, get_engine  # noqa: E402
from quotebook.api.routes.admin import router as admin_router  # noqa: E402
from quotebook.api.routes.badges import router as badges_router  # noqa: E402
from quotebook.api.routes.entitlements import router as entitlements_router  # noqa: E402
from quotebook.api.routes.likes import router as likes_router  # noqa: E402

logger = logging.getLogger(__name__)


def _cors_origins() -> list[str]:
    """Resolve allowed CORS origins from env with safe defaults.

    Priority:
      1) CORS_ALLOW_ORIGINS (comma-separated)
      2) FRONTEND_URL (single origin)
    """
    raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if raw:
        return [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

    frontend_url = os.getenv("FRONTEND_URL", "").strip()
    if frontend_url:
        return [frontend_url.rstrip("/")]

    return []


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle — warm the DB engine and load config."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    config = app.dependency_overrides.get(get_config, get_config)()
    logger.info(
        "%s API started — engine ready (%s), %d badge(s) configured",
        config.app_name, engine.url.database, len(config.badges),
    )
    yield
    logger.info("%s API shutting down", config.app_name)


app = FastAPI(
    title="Quotebook Engagement API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount routers
app.include_router(likes_router, prefix="/api")
app.include_router(badges_router, prefix="/api")
app.include_router(entitlements_router, prefix="/api")
app.include_router(admin_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
