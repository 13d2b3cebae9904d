"""
tests/test_api_routes.py -- Integration tests for the /api/v1 routes.

These tests exercise the full stack: FastAPI routing -> Access Gate dependency
injection -> ledger / lifecycle / stores -> response model serialization ->
exception handlers. Unit testing route functions would miss middleware,
dependency injection, and the error envelope.

Coverage:
  - Auth: 401 without credentials, session cookie and X-API-Key both resolve
  - Discord login redirects when the provider is not configured; logout 303
  - Openings: create / close / remove / patch / transfer with status mapping
    (400 validation, 401, 403, 404, 409 already_closed)
  - Pages: the implicit page gate as seen over HTTP
  - Admin console: 401 / 403 guard, grants, API keys, pages, stats

Fixtures used (from conftest.py):
  - api: ApiHarness -- TestClient (follow_redirects=False) over a per-module
    in-memory database; api.login(id) returns headers carrying a session cookie.
"""

from __future__ import annotations

import pytest

from auth.permissions import DEPARTMENTS_POSTS, Action

MEDIC = {
    "title": "Need a medic",
    "description": "Looking for EMS staff tonight",
    "category": "Department",
    "tags": "ems, night",
    "contact": "disc#1234",
}


def _create(api, headers, **overrides) -> dict:
    resp = api.client.post("/api/v1/openings", json={**MEDIC, **overrides}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class TestAuthRoutes:
    def test_me_unauthenticated(self, api) -> None:
        resp = api.client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_me_with_session(self, api) -> None:
        headers = api.login("42", "medic-lead")
        data = api.client.get("/api/v1/auth/me", headers=headers).json()
        assert data["id"] == "42"
        assert data["username"] == "medic-lead"
        assert data["is_admin"] is False

    def test_me_for_allow_listed_admin(self, api) -> None:
        data = api.client.get("/api/v1/auth/me", headers=api.admin()).json()
        assert data["is_admin"] is True

    def test_bogus_session_cookie(self, api) -> None:
        resp = api.client.get("/api/v1/auth/me", headers={"Cookie": "pm_session=not-a-session"})
        assert resp.status_code == 401

    def test_discord_login_without_provider_redirects_to_failure(self, api) -> None:
        resp = api.client.get("/api/v1/auth/discord")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/departments?auth=failed"

    def test_discord_callback_without_provider_redirects_to_failure(self, api) -> None:
        resp = api.client.get("/api/v1/auth/discord/callback?code=abc&state=xyz")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/departments?auth=failed"

    def test_logout_revokes_session(self, api) -> None:
        headers = api.login("44", "leaving")
        resp = api.client.post("/api/v1/auth/logout", headers=headers)
        assert resp.status_code == 303
        assert resp.headers["location"] == "/departments"
        assert api.client.get("/api/v1/auth/me", headers=headers).status_code == 401

    def test_logout_without_session(self, api) -> None:
        assert api.client.post("/api/v1/auth/logout").status_code == 303


# ---------------------------------------------------------------------------
# Openings
# ---------------------------------------------------------------------------


class TestOpeningRoutes:
    def test_create_requires_login(self, api) -> None:
        resp = api.client.post("/api/v1/openings", json=MEDIC)
        assert resp.status_code == 401

    def test_create_and_list(self, api) -> None:
        headers = api.login("42", "medic-lead")
        created = _create(api, headers)
        assert created["state"] == "open"
        assert created["author_id"] == "42"
        assert created["author_name"] == "medic-lead"
        assert created["tags"] == ["ems", "night"]

        listed = api.client.get("/api/v1/openings").json()
        assert created["id"] in [o["id"] for o in listed]
        assert "ems" in api.client.get("/api/v1/openings/tags").json()["tags"]

    def test_invalid_payload_is_400(self, api) -> None:
        headers = api.login("42", "medic-lead")
        resp = api.client.post("/api/v1/openings", json={**MEDIC, "category": "Cartel"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "validation_error"

    def test_medic_scenario_over_http(self, api) -> None:
        author = api.login("42", "medic-lead")
        other = api.login("43", "bystander")
        opening_id = _create(api, author)["id"]

        resp = api.client.post(f"/api/v1/openings/{opening_id}/close", headers=other)
        assert resp.status_code == 403

        resp = api.client.post(f"/api/v1/openings/{opening_id}/close", headers=author)
        assert resp.status_code == 200
        assert resp.json()["state"] == "closed"

        resp = api.client.post(f"/api/v1/openings/{opening_id}/close", headers=author)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "already_closed"

        listed = [o["id"] for o in api.client.get("/api/v1/openings").json()]
        assert opening_id not in listed

    def test_close_missing(self, api) -> None:
        resp = api.client.post("/api/v1/openings/no-such-id/close", headers=api.login("42"))
        assert resp.status_code == 404

    def test_delete_without_grant_closes_own_opening(self, api) -> None:
        author = api.login("42", "medic-lead")
        opening_id = _create(api, author)["id"]
        resp = api.client.delete(f"/api/v1/openings/{opening_id}", headers=author)
        assert resp.status_code == 200
        assert resp.json()["status"] == "closed"
        assert resp.json()["opening"]["closed_at"] is not None

    def test_delete_without_grant_on_others_opening(self, api) -> None:
        opening_id = _create(api, api.login("42", "medic-lead"))["id"]
        resp = api.client.delete(f"/api/v1/openings/{opening_id}", headers=api.login("43"))
        assert resp.status_code == 403

    def test_delete_with_grant_hard_deletes(self, api) -> None:
        opening_id = _create(api, api.login("42", "medic-lead"))["id"]
        api.state.ledger.grant("50", DEPARTMENTS_POSTS, Action.DELETE, granted_by="1001")
        moderator = api.login("50", "moderator")

        resp = api.client.delete(f"/api/v1/openings/{opening_id}", headers=moderator)
        assert resp.status_code == 200
        assert resp.json()["status"] == "deleted"

        resp = api.client.delete(f"/api/v1/openings/{opening_id}", headers=moderator)
        assert resp.status_code == 404

    def test_patch_requires_modify_grant(self, api) -> None:
        author = api.login("42", "medic-lead")
        opening_id = _create(api, author)["id"]
        resp = api.client.patch(f"/api/v1/openings/{opening_id}", json={"title": "Edited title"}, headers=author)
        assert resp.status_code == 403

    def test_patch_with_modify_grant(self, api) -> None:
        opening_id = _create(api, api.login("42", "medic-lead"))["id"]
        api.state.ledger.grant("51", DEPARTMENTS_POSTS, Action.MODIFY, granted_by="1001")
        editor = api.login("51", "editor")

        resp = api.client.patch(f"/api/v1/openings/{opening_id}", json={"title": "Edited title"}, headers=editor)
        assert resp.status_code == 200
        assert resp.json()["title"] == "Edited title"
        assert resp.json()["description"] == MEDIC["description"]

        resp = api.client.patch(f"/api/v1/openings/{opening_id}", json={}, headers=editor)
        assert resp.status_code == 400

        resp = api.client.patch("/api/v1/openings/no-such-id", json={"title": "Edited title"}, headers=editor)
        assert resp.status_code == 404

    def test_transfer(self, api) -> None:
        opening_id = _create(api, api.login("42", "medic-lead"))["id"]
        api.state.ledger.grant("51", DEPARTMENTS_POSTS, Action.MODIFY, granted_by="1001")
        editor = api.login("51", "editor")

        resp = api.client.post(
            f"/api/v1/openings/{opening_id}/transfer",
            json={"new_owner_id": "999", "new_owner_name": "New Owner"},
            headers=editor,
        )
        assert resp.status_code == 200
        assert resp.json()["author_id"] == "999"
        assert api.state.identities.get("999").username == "New Owner"

    def test_transfer_without_grant(self, api) -> None:
        author = api.login("42", "medic-lead")
        opening_id = _create(api, author)["id"]
        resp = api.client.post(
            f"/api/v1/openings/{opening_id}/transfer",
            json={"new_owner_id": "999", "new_owner_name": "New Owner"},
            headers=author,
        )
        assert resp.status_code == 403

    def test_include_closed_is_restricted(self, api) -> None:
        assert api.client.get("/api/v1/openings?include_closed=true").status_code == 401
        resp = api.client.get("/api/v1/openings?include_closed=true", headers=api.login("43"))
        assert resp.status_code == 403

    def test_include_closed_for_admin(self, api) -> None:
        author = api.login("42", "medic-lead")
        opening_id = _create(api, author)["id"]
        api.client.post(f"/api/v1/openings/{opening_id}/close", headers=author)

        resp = api.client.get("/api/v1/openings?include_closed=true", headers=api.admin())
        assert resp.status_code == 200
        closed = [o for o in resp.json() if o["id"] == opening_id]
        assert closed and closed[0]["state"] == "closed"


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


class TestPageRoutes:
    def test_ungated_page_is_public(self, api) -> None:
        resp = api.client.get("/api/v1/pages/access", params={"path": "/showcases"})
        assert resp.json() == {"path": "/showcases", "allowed": True}

    def test_first_grant_gates_page(self, api) -> None:
        resp = api.client.post(
            "/api/v1/admin/permissions",
            json={"user_id": "42", "resource": "page:/secret", "action": "view"},
            headers=api.admin(),
        )
        assert resp.status_code == 201

        anon = api.client.get("/api/v1/pages/access", params={"path": "/secret"}).json()
        assert anon["allowed"] is False
        other = api.client.get("/api/v1/pages/access", params={"path": "/secret"}, headers=api.login("43")).json()
        assert other["allowed"] is False
        holder = api.client.get("/api/v1/pages/access", params={"path": "/secret"}, headers=api.login("42")).json()
        assert holder["allowed"] is True


# ---------------------------------------------------------------------------
# Admin console
# ---------------------------------------------------------------------------


class TestAdminGuard:
    @pytest.mark.parametrize(
        "path",
        ["/api/v1/admin/users", "/api/v1/admin/pages", "/api/v1/admin/stats", "/api/v1/admin/api-keys"],
    )
    def test_anonymous_is_401(self, api, path: str) -> None:
        assert api.client.get(path).status_code == 401

    def test_plain_user_is_403(self, api) -> None:
        resp = api.client.get("/api/v1/admin/users", headers=api.login("43"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_console_grant_opens_admin(self, api) -> None:
        api.state.ledger.grant("60", DEPARTMENTS_POSTS, Action.ADMIN, granted_by="1001")
        headers = api.login("60", "mod-only")
        assert api.client.get("/api/v1/admin/users", headers=headers).status_code == 403

        api.client.post(
            "/api/v1/admin/permissions",
            json={"user_id": "60", "resource": "users", "action": "read"},
            headers=api.admin(),
        )
        assert api.client.get("/api/v1/admin/users", headers=headers).status_code == 200


class TestAdminPermissions:
    def test_grant_list_revoke(self, api) -> None:
        admin = api.admin()
        resp = api.client.post(
            "/api/v1/admin/permissions",
            json={"user_id": "70", "resource": "departments:posts", "action": "delete", "expires_in_days": 7},
            headers=admin,
        )
        assert resp.status_code == 201
        grant = resp.json()
        assert grant["granted_by"] == "1001"
        assert grant["expires_at"] is not None

        perms = api.client.get("/api/v1/admin/users/70/permissions", headers=admin).json()
        assert [(p["resource"], p["action"]) for p in perms] == [("departments:posts", "delete")]

        resp = api.client.request(
            "DELETE",
            "/api/v1/admin/permissions",
            json={"user_id": "70", "resource": "departments:posts", "action": "delete"},
            headers=admin,
        )
        assert resp.status_code == 204
        assert api.client.get("/api/v1/admin/users/70/permissions", headers=admin).json() == []

    def test_revoke_missing_grant_is_204(self, api) -> None:
        resp = api.client.request(
            "DELETE",
            "/api/v1/admin/permissions",
            json={"user_id": "71", "resource": "users", "action": "read"},
            headers=api.admin(),
        )
        assert resp.status_code == 204

    def test_grant_creates_shadow_identity(self, api) -> None:
        api.client.post(
            "/api/v1/admin/permissions",
            json={"user_id": "123456789012", "resource": "page:/rules", "action": "read"},
            headers=api.admin(),
        )
        found = api.client.get("/api/v1/admin/users", params={"q": "789012"}, headers=api.admin()).json()
        assert [u["username"] for u in found] == ["Unregistered-789012"]

    @pytest.mark.parametrize(
        "body",
        [
            {"user_id": "70", "resource": "departments", "action": "delete"},
            {"user_id": "70", "resource": "page:no-slash", "action": "view"},
            {"user_id": "70", "resource": "users", "action": "destroy"},
            {"user_id": "70", "resource": "users", "action": "read", "expires_in_days": 0},
            {"user_id": "70", "resource": "users", "action": "read", "expires_in_days": 3651},
            {"user_id": "", "resource": "users", "action": "read"},
        ],
    )
    def test_invalid_grant_is_422(self, api, body: dict) -> None:
        resp = api.client.post("/api/v1/admin/permissions", json=body, headers=api.admin())
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestAdminApiKeys:
    def test_issue_authenticate_list_revoke(self, api) -> None:
        admin = api.admin()
        api.login("80", "bot-owner")
        resp = api.client.post(
            "/api/v1/admin/api-keys",
            json={"user_id": "80", "name": "ci-bot", "expires_in_days": 30},
            headers=admin,
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["key"].startswith("PMA_Admin.80.")

        me = api.client.get("/api/v1/auth/me", headers={"X-API-Key": created["key"]})
        assert me.status_code == 200
        assert me.json()["username"] == "bot-owner"

        keys = api.client.get("/api/v1/admin/api-keys", params={"user": "80"}, headers=admin).json()
        assert [k["id"] for k in keys] == [created["id"]]
        assert "key" not in keys[0]
        assert "key_hash" not in keys[0]
        assert keys[0]["last_used_at"] is not None

        resp = api.client.delete(f"/api/v1/admin/api-keys/{created['id']}", headers=admin)
        assert resp.status_code == 204
        assert api.client.get("/api/v1/auth/me", headers={"X-API-Key": created["key"]}).status_code == 401

    def test_revoke_by_unrelated_admin_is_silent(self, api) -> None:
        created = api.client.post(
            "/api/v1/admin/api-keys",
            json={"user_id": "81", "name": "other-bot"},
            headers=api.admin(),
        ).json()
        api.client.post(
            "/api/v1/admin/permissions",
            json={"user_id": "82", "resource": "api_keys", "action": "admin"},
            headers=api.admin(),
        )
        other_admin = api.login("82", "second-admin")

        resp = api.client.delete(f"/api/v1/admin/api-keys/{created['id']}", headers=other_admin)
        assert resp.status_code == 204
        assert api.client.get("/api/v1/auth/me", headers={"X-API-Key": created["key"]}).status_code == 200

    def test_invalid_key_is_401(self, api) -> None:
        assert api.client.get("/api/v1/auth/me", headers={"X-API-Key": "PMA_Admin.1.nope"}).status_code == 401


class TestAdminPagesAndStats:
    def test_pages_listing(self, api) -> None:
        pages = api.client.get("/api/v1/admin/pages", headers=api.admin()).json()
        assert [p["path"] for p in pages] == ["/", "/showcases", "/departments", "/rules", "/tos", "/admin"]
        assert all(p["resource"] == f"page:{p['path']}" for p in pages)

    def test_stats(self, api) -> None:
        api.client.get("/api/v1/openings")
        resp = api.client.get("/api/v1/admin/stats", params={"period": "7d"}, headers=api.admin())
        assert resp.status_code == 200
        stats = resp.json()
        assert stats["period"] == "7d"
        assert stats["total_requests"] >= 1
        assert stats["requests_by_endpoint"].get("/api/v1/openings", 0) >= 1
        assert 0.0 <= stats["error_rate"] <= 1.0

    def test_stats_bad_period(self, api) -> None:
        resp = api.client.get("/api/v1/admin/stats", params={"period": "1y"}, headers=api.admin())
        assert resp.status_code == 422
