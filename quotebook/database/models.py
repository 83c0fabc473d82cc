"""
quotebook.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- users              — Reader profiles (internal hex PK + platform external_id)
- user_achievements  — Earned achievement slugs ("did you ever earn this")
- quotes             — Saved quotes (written by the journal, read here)
- photo_posts        — Community photo posts (written by the feed, read here)
- follows            — Follower → following edges
- user_actions       — Generic action stream (daily check-ins)
- favorites          — One like per (user, normalized quote key)
- entitlements       — Time-bounded access grants per (user, kind, resource)

All timestamps are stored in UTC.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from quotebook.engine.normalize import normalize


def new_internal_id() -> str:
    """Generate a fresh internal user id (32 lowercase hex chars)."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Quotebook ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EntitlementKind(enum.StrEnum):
    """Categories of grantable resources."""
    AUDIO = "audio"
    PACKAGE = "package"
    SUBSCRIPTION = "subscription"


class PostStatus(enum.StrEnum):
    PUBLISHED = "published"
    DRAFT = "draft"
    HIDDEN = "hidden"


class ActionType(enum.StrEnum):
    """Event types in the user_actions stream that count toward streaks."""
    DAILY_LOGIN = "daily_login"


# ---------------------------------------------------------------------------
# Users — one row per reader
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_internal_id)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    achievements: Mapped[list[UserAchievement]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("external_id", name="uq_users_external_id"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} external_id={self.external_id!r}>"


# ---------------------------------------------------------------------------
# UserAchievement — permanent "earned" flags on the profile
# ---------------------------------------------------------------------------
class UserAchievement(Base):
    __tablename__ = "user_achievements"

    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    achievement_id: Mapped[str] = mapped_column(String(50), primary_key=True)
    unlocked_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="achievements")

    def __repr__(self) -> str:
        return f"<UserAchievement user={self.user_id} achievement={self.achievement_id!r}>"


# ---------------------------------------------------------------------------
# Quote — journal entries authored by a user
# ---------------------------------------------------------------------------
class Quote(Base):
    __tablename__ = "quotes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    # Kept in sync with text/author so likes can be matched in SQL
    normalized_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    normalized_author: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_quotes_user_time", "user_id", "created_at"),
        Index("ix_quotes_normalized", "normalized_text", "normalized_author"),
    )

    @validates("text")
    def _sync_normalized_text(self, key: str, value: str) -> str:
        self.normalized_text = normalize(value)
        return value

    @validates("author")
    def _sync_normalized_author(self, key: str, value: str | None) -> str:
        value = value or ""
        self.normalized_author = normalize(value)
        return value

    def __repr__(self) -> str:
        return f"<Quote id={self.id} user={self.user_id} author={self.author!r}>"


# ---------------------------------------------------------------------------
# PhotoPost — community photo feed
# ---------------------------------------------------------------------------
class PhotoPost(Base):
    __tablename__ = "photo_posts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    caption: Mapped[str | None] = mapped_column(Text, default=None)
    rubric: Mapped[str | None] = mapped_column(String(100), default=None)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PostStatus.PUBLISHED.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_photo_posts_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<PhotoPost id={self.id} user={self.user_id} status={self.status!r}>"


# ---------------------------------------------------------------------------
# Follow — follower → following edges
# ---------------------------------------------------------------------------
class Follow(Base):
    __tablename__ = "follows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    follower_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    following_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
        Index("ix_follows_follower_time", "follower_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Follow {self.follower_id} -> {self.following_id}>"


# ---------------------------------------------------------------------------
# UserAction — generic append-only action stream
# ---------------------------------------------------------------------------
class UserAction(Base):
    __tablename__ = "user_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_user_actions_user_type_time", "user_id", "type", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<UserAction id={self.id} user={self.user_id} type={self.type!r}>"


# ---------------------------------------------------------------------------
# Favorite — one like per (user, normalized quote)
# ---------------------------------------------------------------------------
class Favorite(Base):
    __tablename__ = "favorites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    normalized_key: Mapped[str] = mapped_column(Text, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "normalized_key", name="uq_favorites_user_key"),
        Index("ix_favorites_key_time", "normalized_key", "created_at"),
        Index("ix_favorites_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Favorite id={self.id} user={self.user_id} key={self.normalized_key!r}>"


# ---------------------------------------------------------------------------
# Entitlement — time-bounded access grants
# ---------------------------------------------------------------------------
class Entitlement(Base):
    """Access right to a resource.

    ``expires_at`` of ``None`` means the grant never expires.  Expiry is
    evaluated at read time; nothing sweeps rows in the background.
    """
    __tablename__ = "entitlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    resource_id: Mapped[str] = mapped_column(String(100), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, default=None
    )
    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    granted_by: Mapped[str] = mapped_column(String(50), nullable=False, default="system")
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id", "kind", "resource_id",
            name="uq_entitlements_user_kind_resource",
        ),
        CheckConstraint(
            "kind IN ('audio', 'package', 'subscription')",
            name="ck_entitlements_kind",
        ),
        Index("ix_entitlements_expires_at", "expires_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Entitlement user={self.user_id} kind={self.kind!r} "
            f"resource={self.resource_id!r} expires={self.expires_at}>"
        )
