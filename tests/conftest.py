"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import os

# ---------------------------------------------------------------------------
# Ensure a valid JWT_SECRET is always set for test runs.
# This must happen before any import of quotebook.api.deps which validates
# the secret at module-load time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

from collections.abc import Callable  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite renders JSONB as TEXT; SQLAlchemy's JSON processors still apply.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from quotebook.database.engine import get_session  # noqa: E402
from quotebook.database.models import Base, User  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine(tmp_path) -> Engine:
    """File-backed SQLite engine with all Quotebook tables.

    A file (not ``:memory:``) so that the threads used by ``run_db`` each
    get their own connection to the same database.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'quotebook.db'}",
        echo=False,
        connect_args={"check_same_thread": False, "timeout": 15},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a session for seeding and inspecting rows."""
    with Session(db_engine, expire_on_commit=False) as session:
        yield session
        session.rollback()


@pytest.fixture
def make_user(db_engine: Engine) -> Callable[..., User]:
    """Factory: ``make_user("1001")`` inserts a user with that external id."""

    def _make(external_id: str, display_name: str | None = None) -> User:
        with get_session(db_engine) as session:
            user = User(external_id=external_id, display_name=display_name)
            session.add(user)
            session.flush()
        return user

    return _make


def make_token(sub: str = "1001", *, is_admin: bool = False) -> str:
    """Create a user (or admin) JWT.  Usable from tests and fixtures."""
    import jwt

    from quotebook.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "is_admin": is_admin},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


@pytest.fixture
def client(db_engine: Engine):
    """FastAPI TestClient wired to the test engine and default config."""
    from fastapi.testclient import TestClient

    from quotebook.api.deps import get_config, get_engine
    from quotebook.api.main import app
    from quotebook.config import QuotebookConfig

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_config] = lambda: QuotebookConfig()
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
