from __future__ import annotations

from fastapi.testclient import TestClient

from giki.auth.models import Role
from tests._helpers.auth import login_as, login_wallet


def test_user_admin_requires_admin(client: TestClient) -> None:
    assert client.get("/api/users").status_code == 401

    login_wallet(client)
    r = client.get("/api/users")
    assert r.status_code == 403
    assert r.json() == {
        "success": False,
        "error": "Insufficient permissions",
        "code": "INSUFFICIENT_PERMISSIONS",
    }

    login_as(client, Role.editor)
    assert client.get("/api/users").status_code == 403


def test_list_and_get_users(client: TestClient) -> None:
    users = client.app.state.users  # type: ignore[attr-defined]
    for i in range(3):
        users.create("0x" + f"{i + 1:02x}" * 20)
    admin = login_as(client, Role.admin)

    r = client.get("/api/users")
    assert r.status_code == 200
    data = r.json()
    assert data["total"] == 4
    assert len(data["users"]) == 4

    r = client.get("/api/users", params={"role": "admin"})
    assert [u["id"] for u in r.json()["users"]] == [admin["user"]["id"]]

    r = client.get("/api/users", params={"limit": 2, "offset": 1})
    assert len(r.json()["users"]) == 2
    assert r.json()["total"] == 4

    assert client.get("/api/users", params={"role": "owner"}).status_code == 422

    r = client.get(f"/api/users/{admin['user']['id']}")
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "admin"

    r = client.get("/api/users/u_missing")
    assert r.status_code == 404
    assert r.json()["code"] == "USER_NOT_FOUND"


def test_role_change_applies_on_next_login(client: TestClient) -> None:
    target_addr = "0x" + "ab" * 20
    target = client.app.state.users.create(target_addr)  # type: ignore[attr-defined]
    login_as(client, Role.admin)

    r = client.patch(f"/api/users/{target.id}/role", json={"role": "editor"})
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "editor"

    assert client.patch(f"/api/users/{target.id}/role", json={"role": "owner"}).status_code == 422
    assert client.patch("/api/users/u_missing/role", json={"role": "editor"}).status_code == 404

    r = client.get("/api/admin/audit")
    assert r.status_code == 200
    changed = [it for it in r.json()["items"] if it["event"] == "users.role_changed"]
    assert changed and changed[-1]["meta"]["to"] == "editor"

    client.cookies.clear()
    r = client.post("/api/auth/login", json={"address": target_addr})
    assert r.json()["user"]["role"] == "editor"
    assert client.get("/api/users").status_code == 403


def test_update_profile(client: TestClient) -> None:
    r = client.patch("/api/users/profile", json={"name": "Alice"})
    assert r.status_code == 401

    login_wallet(client)
    r = client.patch("/api/users/profile", json={"name": "Alice", "email": "a@example.org"})
    assert r.status_code == 200
    user = r.json()["user"]
    assert (user["name"], user["email"]) == ("Alice", "a@example.org")
    assert client.get("/api/auth/me").json()["user"]["name"] == "Alice"

    assert client.patch("/api/users/profile", json={}).status_code == 400
    assert client.patch("/api/users/profile", json={"name": 3}).status_code == 400


def test_audit_route_is_admin_only(client: TestClient) -> None:
    login_wallet(client)
    assert client.get("/api/admin/audit").status_code == 403
    login_as(client, Role.admin)
    r = client.get("/api/admin/audit", params={"limit": 5})
    assert r.status_code == 200
    items = r.json()["items"]
    assert 0 < len(items) <= 5
    assert any(it["event"] == "auth.login_ok" for it in items)


def test_profile_preferences(client: TestClient) -> None:
    assert client.get("/api/users/profile").status_code == 401

    data = login_wallet(client)
    r = client.get("/api/users/profile")
    assert r.status_code == 200
    assert r.json()["user"]["id"] == data["user"]["id"]
    assert r.json()["user"]["preferences"]["theme"] == "system"

    r = client.patch(
        "/api/users/profile",
        json={"preferences": {"theme": "dark", "email_notifications": False}},
    )
    assert r.status_code == 200, r.text
    prefs = r.json()["user"]["preferences"]
    assert (prefs["theme"], prefs["language"], prefs["email_notifications"]) == (
        "dark",
        "en",
        False,
    )
    me = client.get("/api/auth/me").json()
    assert me["user"]["preferences"] == prefs

    r = client.patch("/api/users/profile", json={"preferences": {"email_notifications": "no"}})
    assert r.status_code == 400
    assert r.json()["code"] == "INVALID_REQUEST"
    assert client.patch("/api/users/profile", json={"preferences": []}).status_code == 400


def test_me_reports_permissions(client: TestClient) -> None:
    login_wallet(client)
    assert client.get("/api/auth/me").json()["permissions"] == {
        "role": "viewer",
        "can_view": True,
        "can_edit": False,
        "can_delete": False,
        "can_manage_users": False,
    }
    login_as(client, Role.editor)
    perms = client.get("/api/auth/me").json()["permissions"]
    assert (perms["can_edit"], perms["can_delete"]) == (True, False)
    login_as(client, Role.admin)
    perms = client.get("/api/auth/me").json()["permissions"]
    assert all(perms[k] for k in ("can_view", "can_edit", "can_delete", "can_manage_users"))
