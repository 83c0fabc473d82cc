"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Exercises the HTTP surface against a SQLite engine: auth guards, likes,
badge progress/claim and entitlement checks.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from conftest import make_token

from quotebook.constants import utcnow
from quotebook.database.models import EntitlementKind
from quotebook.engine.normalize import compute_key
from quotebook.services import badge_service, entitlement_service


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def reader(make_user):
    return make_user("1001", "Reader")


@pytest.fixture
def reader_headers(reader) -> dict:
    return _auth(make_token("1001"))


@pytest.fixture
def admin_headers() -> dict:
    return _auth(make_token("5000", is_admin=True))


# ===========================================================================
# Health & auth
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestAuthGuards:
    def test_missing_token(self, client):
        assert client.get("/api/likes").status_code == 401

    def test_garbage_token(self, client):
        resp = client.get("/api/likes", headers=_auth("not-a-jwt"))
        assert resp.status_code == 401

    def test_unknown_user(self, client):
        resp = client.get("/api/likes", headers=_auth(make_token("424242")))
        assert resp.status_code == 404

    @pytest.mark.parametrize("path", [
        "/api/admin/entitlements/1001",
    ])
    def test_admin_requires_admin(self, client, reader_headers, path):
        assert client.get(path).status_code == 401
        assert client.get(path, headers=reader_headers).status_code == 403


# ===========================================================================
# Likes
# ===========================================================================
class TestLikes:
    def test_like_unlike_cycle(self, client, reader_headers):
        resp = client.post(
            "/api/likes", json={"text": "«Hello» — world...", "author": ""},
            headers=reader_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["key"] == compute_key("hello-world")

        # Variant of the same quote is the same like
        client.post("/api/likes", json={"text": "hello-world"}, headers=reader_headers)
        listed = client.get("/api/likes", headers=reader_headers).json()
        assert len(listed) == 1

        resp = client.request(
            "DELETE", "/api/likes", json={"text": "Hello-World"}, headers=reader_headers,
        )
        assert resp.json() == {"removed": True}

        resp = client.request(
            "DELETE", "/api/likes", json={"text": "Hello-World"}, headers=reader_headers,
        )
        assert resp.json() == {"removed": False}

    def test_empty_text_rejected(self, client, reader_headers):
        resp = client.post("/api/likes", json={"text": ""}, headers=reader_headers)
        assert resp.status_code == 422

    def test_oversized_author_rejected(self, client, reader_headers):
        resp = client.post(
            "/api/likes", json={"text": "Hello", "author": "x" * 201}, headers=reader_headers,
        )
        assert resp.status_code == 422
        assert client.get("/api/likes", headers=reader_headers).json() == []

    def test_counts(self, client, make_user, reader_headers):
        make_user("1002")
        client.post("/api/likes", json={"text": "Shared"}, headers=reader_headers)
        client.post("/api/likes", json={"text": "shared."}, headers=_auth(make_token("1002")))

        shared, lonely = compute_key("Shared"), compute_key("Lonely")
        resp = client.post(
            "/api/likes/counts", json={"keys": [shared, lonely]}, headers=reader_headers,
        )
        assert resp.status_code == 200
        assert resp.json() == {"counts": {shared: 2, lonely: 0}, "liked": [shared]}


# ===========================================================================
# Badges
# ===========================================================================
class TestBadges:
    def test_list_badges(self, client):
        resp = client.get("/api/badges")
        assert resp.status_code == 200
        assert [b["id"] for b in resp.json()] == ["alice"]

    def test_progress(self, client, reader, reader_headers):
        resp = client.get("/api/badges/alice/progress", headers=reader_headers)
        assert resp.status_code == 200
        body = resp.json()
        assert body["badge"] == "alice"
        assert body["photos"] == {"current": 0, "required": 10}
        assert body["completed"] is False
        assert body["claimed"] is False

    def test_unknown_badge(self, client, reader_headers):
        resp = client.get("/api/badges/nope/progress", headers=reader_headers)
        assert resp.status_code == 404

    def test_claim_not_met(self, client, reader, reader_headers):
        resp = client.post("/api/badges/alice/claim", headers=reader_headers)
        assert resp.status_code == 400
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "requirements not met"
        assert body["progress"]["completed"] is False

    def test_claim_unknown_user(self, client):
        resp = client.post("/api/badges/alice/claim", headers=_auth(make_token("424242")))
        assert resp.status_code == 404
        assert resp.json()["error"] == "user not found"

    def test_claim_success_then_idempotent(self, client, reader, reader_headers, monkeypatch):
        for name in list(badge_service.METRIC_COUNTERS):
            monkeypatch.setitem(badge_service.METRIC_COUNTERS, name, lambda *args: 1_000)

        first = client.post("/api/badges/alice/claim", headers=reader_headers)
        assert first.status_code == 200
        assert first.json()["success"] is True

        second = client.post("/api/badges/alice/claim", headers=reader_headers)
        assert second.status_code == 200
        assert second.json()["already_claimed"] is True
        assert second.json()["expires_at"] == first.json()["expires_at"]

        access = client.get(
            "/api/entitlements/audio/alice_wonderland", headers=reader_headers,
        ).json()
        assert access == {"has_access": True, "remaining_days": 30}


# ===========================================================================
# Entitlements
# ===========================================================================
class TestEntitlements:
    def test_no_access(self, client, reader, reader_headers):
        resp = client.get("/api/entitlements/audio/alice_wonderland", headers=reader_headers)
        assert resp.json() == {"has_access": False, "remaining_days": None}

    def test_invalid_kind(self, client, reader, reader_headers):
        resp = client.get("/api/entitlements/video/x", headers=reader_headers)
        assert resp.status_code == 422

    def test_my_entitlements(self, client, db_engine, reader, reader_headers):
        entitlement_service.grant(
            db_engine, reader.id, EntitlementKind.PACKAGE, "pack",
            expires_at=utcnow() + timedelta(days=3),
        )
        resp = client.get("/api/entitlements", headers=reader_headers)
        assert [e["resource_id"] for e in resp.json()] == ["pack"]

    def test_admin_grant_list_revoke(self, client, reader, reader_headers, admin_headers):
        resp = client.post(
            "/api/admin/entitlements",
            json={"user_id": "1001", "kind": "audio", "resource_id": "book", "days": 7},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == reader.id
        assert body["granted_by"] == "admin"
        assert body["metadata"] == {"admin": "5000"}

        access = client.get("/api/entitlements/audio/book", headers=reader_headers).json()
        assert access == {"has_access": True, "remaining_days": 7}

        listed = client.get("/api/admin/entitlements/1001", headers=admin_headers).json()
        assert [e["resource_id"] for e in listed] == ["book"]

        resp = client.request(
            "DELETE", "/api/admin/entitlements",
            json={"user_id": "1001", "kind": "audio", "resource_id": "book"},
            headers=admin_headers,
        )
        assert resp.json() == {"removed": 1}

        access = client.get("/api/entitlements/audio/book", headers=reader_headers).json()
        assert access["has_access"] is False

    def test_admin_grant_unknown_user(self, client, admin_headers):
        resp = client.post(
            "/api/admin/entitlements",
            json={"user_id": "424242", "kind": "audio", "resource_id": "book"},
            headers=admin_headers,
        )
        assert resp.status_code == 404

    def test_admin_grant_rejects_both_expiry_forms(self, client, reader, admin_headers):
        resp = client.post(
            "/api/admin/entitlements",
            json={
                "user_id": "1001", "kind": "audio", "resource_id": "book",
                "days": 3, "expires_at": "2030-01-01T00:00:00Z",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 422

    @pytest.mark.parametrize("field, value", [("granted_by", "g" * 51), ("resource_id", "r" * 101)])
    def test_admin_grant_rejects_oversized_fields(self, client, reader, admin_headers, field, value):
        payload = {"user_id": "1001", "kind": "audio", "resource_id": "book", field: value}
        resp = client.post("/api/admin/entitlements", json=payload, headers=admin_headers)
        assert resp.status_code == 422

    def test_admin_backfill_defaults_to_dry_run(self, client, admin_headers):
        resp = client.post("/api/admin/backfill/favorites", headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["dry_run"] is True
