from __future__ import annotations

import pytest

from giki.auth.errors import InvalidRequest, PersistenceFailure, UserNotFound
from giki.auth.models import Role
from giki.auth.users import UserStore
from giki.store.db import Database

ADDR = "0x" + "Ab" * 20


def test_create_normalizes_and_defaults(users: UserStore) -> None:
    u = users.create(ADDR)
    assert u.address == ADDR.lower()
    assert u.role == Role.viewer
    assert u.id.startswith("u_")
    assert users.get_by_address(ADDR.upper().replace("0X", "0x")) == u


def test_create_is_case_insensitively_unique(users: UserStore, db: Database) -> None:
    a = users.create(ADDR)
    b = users.create(ADDR.lower())
    assert a.id == b.id
    row = db.query_one("SELECT COUNT(*) AS n FROM users")
    assert row is not None and int(row["n"]) == 1


def test_get_or_create_for_login(users: UserStore, db: Database) -> None:
    u, created = users.get_or_create_for_login(ADDR)
    assert created is True
    db.execute("UPDATE users SET last_login = 1 WHERE id = ?", (u.id,))
    again, created = users.get_or_create_for_login(ADDR)
    assert created is False
    assert again.id == u.id
    assert again.last_login is not None and again.last_login > 1


def test_update_profile(users: UserStore) -> None:
    u = users.create(ADDR)
    got = users.update_profile(u.id, name="  Alice ", email="a@example.org")
    assert (got.name, got.email) == ("Alice", "a@example.org")
    # empty string clears the field
    assert users.update_profile(u.id, email="").email is None
    with pytest.raises(InvalidRequest):
        users.update_profile(u.id)
    with pytest.raises(UserNotFound):
        users.update_profile("u_missing", name="x")


def test_new_user_has_default_preferences(users: UserStore) -> None:
    u = users.create(ADDR)
    assert u.preferences.to_public() == {
        "language": "en",
        "theme": "system",
        "email_notifications": True,
        "avatar_url": None,
    }


def test_update_preferences(users: UserStore, db: Database) -> None:
    u = users.create(ADDR)
    got = users.update_profile(u.id, preferences={"language": "fr", "email_notifications": False})
    assert (got.preferences.language, got.preferences.theme) == ("fr", "system")
    assert got.preferences.email_notifications is False
    assert got.name is None

    # partial updates keep earlier choices; empty strings fall back to defaults
    got = users.update_profile(u.id, preferences={"theme": "dark", "language": ""})
    assert (got.preferences.language, got.preferences.theme) == ("en", "dark")
    assert got.preferences.email_notifications is False

    for bad in ["dark", {"email_notifications": "yes"}, {"theme": 3}]:
        with pytest.raises(InvalidRequest):
            users.update_profile(u.id, preferences=bad)  # type: ignore[arg-type]

    # rows without a preferences record still read back with defaults
    db.execute("DELETE FROM user_preferences WHERE user_id = ?", (u.id,))
    assert users.get(u.id).preferences.theme == "system"
    got = users.update_profile(u.id, preferences={"theme": "light"})
    assert got.preferences.theme == "light"


def test_set_role(users: UserStore) -> None:
    u = users.create(ADDR)
    assert users.set_role(u.id, Role.admin).role == Role.admin
    with pytest.raises(UserNotFound):
        users.set_role("u_missing", Role.admin)


def test_list_users_filter_and_paging(users: UserStore) -> None:
    for i in range(5):
        u = users.create("0x" + f"{i:02x}" * 20)
        if i % 2 == 0:
            users.set_role(u.id, Role.editor)
    page, total = users.list_users(limit=2, offset=0)
    assert total == 5 and len(page) == 2
    editors, n = users.list_users(role=Role.editor)
    assert n == 3
    assert {u.role for u in editors} == {Role.editor}


def test_db_errors_surface_as_persistence_failure(db: Database) -> None:
    with pytest.raises(PersistenceFailure) as ei:
        db.query("SELECT * FROM no_such_table")
    assert ei.value.status_code == 500
    with pytest.raises(PersistenceFailure):
        db.execute("INSERT INTO no_such_table VALUES (1)")
