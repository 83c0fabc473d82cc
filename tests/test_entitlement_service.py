"""
tests/test_entitlement_service.py — Access Grants
==================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from quotebook.constants import NEVER_EXPIRES, as_utc
from quotebook.database.models import Entitlement, EntitlementKind
from quotebook.services import entitlement_service

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)
AUDIO = EntitlementKind.AUDIO


def _row_count(db_session) -> int:
    return db_session.scalar(select(func.count()).select_from(Entitlement))


class TestGrant:
    def test_grant_and_check(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "alice_wonderland",
            expires_at=NOW + timedelta(days=30), granted_by="alice_badge",
            metadata={"badge": "alice"},
        )
        assert entitlement_service.has_access(db_engine, user.id, AUDIO, "alice_wonderland", now=NOW)

        row = entitlement_service.get_active(db_engine, user.id, AUDIO, "alice_wonderland", now=NOW)
        assert row.granted_by == "alice_badge"
        assert row.metadata_ == {"badge": "alice"}
        assert as_utc(row.expires_at) == NOW + timedelta(days=30)

    def test_regrant_overwrites_in_place(self, db_engine, db_session, make_user):
        user = make_user("1")
        first = entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW + timedelta(days=1),
        )
        second = entitlement_service.grant(
            db_engine, user.id, "audio", "book",
            expires_at=NOW + timedelta(days=10), granted_by="admin",
        )
        assert first.id == second.id
        assert _row_count(db_session) == 1
        assert as_utc(second.expires_at) == NOW + timedelta(days=10)
        assert second.granted_by == "admin"

    def test_concurrent_grant_updates_existing_row(self, db_engine, db_session, make_user, monkeypatch):
        user = make_user("1")
        first = entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW + timedelta(days=1), granted_by="badge",
        )

        real_find = entitlement_service._find
        calls = []

        def find(session, *args):
            calls.append(args)
            return None if len(calls) == 1 else real_find(session, *args)

        monkeypatch.setattr(entitlement_service, "_find", find)
        second = entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW + timedelta(days=10), granted_by="admin",
        )

        assert len(calls) == 2
        assert second.id == first.id
        assert second.granted_by == "admin"
        assert as_utc(second.expires_at) == NOW + timedelta(days=10)
        assert _row_count(db_session) == 1

    def test_default_provenance_is_system(self, db_engine, make_user):
        user = make_user("1")
        row = entitlement_service.grant(db_engine, user.id, AUDIO, "book", granted_by="")
        assert row.granted_by == "system"
        assert row.expires_at is None

    def test_unknown_kind_rejected(self, db_engine, make_user):
        user = make_user("1")
        with pytest.raises(ValueError):
            entitlement_service.grant(db_engine, user.id, "video", "book")

    def test_store_error_reraised(self, db_engine, make_user):
        user = make_user("1")
        with patch(
            "quotebook.services.entitlement_service.get_session",
            side_effect=OperationalError("INSERT", {}, Exception("db down")),
        ):
            with pytest.raises(OperationalError):
                entitlement_service.grant(db_engine, user.id, AUDIO, "book")


class TestHasAccess:
    def test_expired_grant_denied(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW - timedelta(seconds=1),
        )
        assert not entitlement_service.has_access(db_engine, user.id, AUDIO, "book", now=NOW)

    def test_never_expiring_grant(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "book")
        assert entitlement_service.has_access(db_engine, user.id, AUDIO, "book")

    def test_other_resource_denied(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "book")
        assert not entitlement_service.has_access(db_engine, user.id, AUDIO, "other")
        assert not entitlement_service.has_access(
            db_engine, user.id, EntitlementKind.PACKAGE, "book",
        )

    def test_empty_user_denied(self, db_engine):
        assert not entitlement_service.has_access(db_engine, None, AUDIO, "book")
        assert not entitlement_service.has_access(db_engine, "", AUDIO, "book")

    def test_store_error_fails_closed(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "book")
        with patch(
            "quotebook.services.entitlement_service.get_active",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            assert entitlement_service.has_access(db_engine, user.id, AUDIO, "book") is False


class TestRevokeAndList:
    def test_revoke(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "book")
        assert entitlement_service.revoke(db_engine, user.id, AUDIO, "book") == 1
        assert entitlement_service.revoke(db_engine, user.id, AUDIO, "book") == 0
        assert not entitlement_service.has_access(db_engine, user.id, AUDIO, "book")

    def test_list_for_user(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "a")
        entitlement_service.grant(db_engine, user.id, EntitlementKind.PACKAGE, "b")
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "old", expires_at=NOW - timedelta(days=1),
        )

        active = entitlement_service.list_for_user(db_engine, user.id, now=NOW)
        assert {e.resource_id for e in active} == {"a", "b"}

        audio = entitlement_service.list_for_user(db_engine, user.id, AUDIO, now=NOW)
        assert {e.resource_id for e in audio} == {"a"}

        everything = entitlement_service.list_for_user(
            db_engine, user.id, include_expired=True, now=NOW,
        )
        assert {e.resource_id for e in everything} == {"a", "b", "old"}

    def test_purge_expired(self, db_engine, db_session, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "keep")
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "future", expires_at=NOW + timedelta(days=1),
        )
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "gone", expires_at=NOW - timedelta(days=1),
        )
        assert entitlement_service.purge_expired(db_engine, now=NOW) == 1
        assert _row_count(db_session) == 2


class TestRemainingDays:
    def test_rounds_up(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW + timedelta(days=2, hours=1),
        )
        assert entitlement_service.remaining_days(db_engine, user.id, AUDIO, "book", now=NOW) == 3

    def test_never_expires(self, db_engine, make_user):
        user = make_user("1")
        entitlement_service.grant(db_engine, user.id, AUDIO, "book")
        assert entitlement_service.remaining_days(db_engine, user.id, AUDIO, "book") == NEVER_EXPIRES

    def test_missing_or_expired(self, db_engine, make_user):
        user = make_user("1")
        assert entitlement_service.remaining_days(db_engine, user.id, AUDIO, "book") is None
        entitlement_service.grant(
            db_engine, user.id, AUDIO, "book", expires_at=NOW - timedelta(hours=1),
        )
        assert entitlement_service.remaining_days(db_engine, user.id, AUDIO, "book", now=NOW) is None
