"""Initial engagement schema: users, activity sources, favorites, entitlements

Revision ID: 5c2e9d7a4f10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9d7a4f10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def _user_fk(name: str = "user_id", **kw) -> sa.Column:
    return sa.Column(
        name,
        sa.String(32),
        sa.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        **kw,
    )


def upgrade() -> None:
    """Create every table the engagement engine reads or writes."""
    op.create_table(
        "users",
        sa.Column("id", sa.String(32), primary_key=True),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("display_name", sa.String(100), nullable=True),
        _created_at(),
        sa.UniqueConstraint("external_id", name="uq_users_external_id"),
    )

    op.create_table(
        "user_achievements",
        _user_fk(primary_key=True),
        sa.Column("achievement_id", sa.String(50), primary_key=True),
        sa.Column(
            "unlocked_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Activity sources (written by the journal, photo feed and follow graph)
    op.create_table(
        "quotes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("author", sa.String(200), nullable=False, server_default=""),
        sa.Column("normalized_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("normalized_author", sa.String(200), nullable=False, server_default=""),
        sa.Column("is_favorite", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
    )
    op.create_index("ix_quotes_user_time", "quotes", ["user_id", "created_at"])
    op.create_index("ix_quotes_normalized", "quotes", ["normalized_text", "normalized_author"])

    op.create_table(
        "photo_posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("caption", sa.Text(), nullable=True),
        sa.Column("rubric", sa.String(100), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="published"),
        _created_at(),
    )
    op.create_index("ix_photo_posts_user_time", "photo_posts", ["user_id", "created_at"])

    op.create_table(
        "follows",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk("follower_id"),
        _user_fk("following_id"),
        _created_at(),
        sa.UniqueConstraint("follower_id", "following_id", name="uq_follows_pair"),
    )
    op.create_index("ix_follows_follower_time", "follows", ["follower_id", "created_at"])

    op.create_table(
        "user_actions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("type", sa.String(50), nullable=False),
        _created_at(),
    )
    op.create_index(
        "ix_user_actions_user_type_time", "user_actions", ["user_id", "type", "created_at"],
    )

    # Owned by the engine
    op.create_table(
        "favorites",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("normalized_key", sa.Text(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("author", sa.String(200), nullable=False, server_default=""),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "normalized_key", name="uq_favorites_user_key"),
    )
    op.create_index("ix_favorites_key_time", "favorites", ["normalized_key", "created_at"])
    op.create_index("ix_favorites_user_time", "favorites", ["user_id", "created_at"])

    op.create_table(
        "entitlements",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        _user_fk(),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("resource_id", sa.String(100), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "granted_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("granted_by", sa.String(50), nullable=False, server_default="system"),
        sa.Column("metadata", postgresql.JSONB(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "user_id", "kind", "resource_id", name="uq_entitlements_user_kind_resource",
        ),
        sa.CheckConstraint(
            "kind IN ('audio', 'package', 'subscription')", name="ck_entitlements_kind",
        ),
    )
    op.create_index("ix_entitlements_expires_at", "entitlements", ["expires_at"])


def downgrade() -> None:
    """Drop the engagement schema."""
    op.drop_index("ix_entitlements_expires_at", table_name="entitlements")
    op.drop_table("entitlements")
    op.drop_index("ix_favorites_user_time", table_name="favorites")
    op.drop_index("ix_favorites_key_time", table_name="favorites")
    op.drop_table("favorites")
    op.drop_index("ix_user_actions_user_type_time", table_name="user_actions")
    op.drop_table("user_actions")
    op.drop_index("ix_follows_follower_time", table_name="follows")
    op.drop_table("follows")
    op.drop_index("ix_photo_posts_user_time", table_name="photo_posts")
    op.drop_table("photo_posts")
    op.drop_index("ix_quotes_normalized", table_name="quotes")
    op.drop_index("ix_quotes_user_time", table_name="quotes")
    op.drop_table("quotes")
    op.drop_table("user_achievements")
    op.drop_table("users")
