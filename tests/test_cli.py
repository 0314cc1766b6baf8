from __future__ import annotations

import json

from click.testing import CliRunner

from giki.auth.models import Role, now_ts
from giki.auth.sessions import SessionStore
from giki.auth.users import UserStore
from giki.cli import cli
from giki.config import get_settings
from giki.store.db import Database


def _db() -> Database:
    return Database(get_settings().public.auth_db_path())


def test_users_set_role_and_list() -> None:
    addr = "0x" + "9a" * 20
    UserStore(_db()).create(addr)
    runner = CliRunner()

    res = runner.invoke(cli, ["users", "set-role", addr.upper().replace("0X", "0x"), "editor"])
    assert res.exit_code == 0, res.output
    assert "editor" in res.output
    user = UserStore(_db()).get_by_address(addr)
    assert user is not None and user.role == Role.editor

    res = runner.invoke(cli, ["users", "list", "--role", "editor"])
    assert res.exit_code == 0
    assert addr in res.output
    assert "total=1" in res.output

    res = runner.invoke(cli, ["users", "set-role", "0x" + "00" * 20, "admin"])
    assert res.exit_code != 0
    assert "no user" in res.output


def test_sessions_expire() -> None:
    db = _db()
    uid = UserStore(db).create("0x" + "9b" * 20).id
    SessionStore(db).create(uid, "old", expires_at=now_ts() - 5)
    res = CliRunner().invoke(cli, ["sessions", "expire"])
    assert res.exit_code == 0
    assert "expired=1" in res.output


def test_config_report_has_no_secret_values() -> None:
    res = CliRunner().invoke(cli, ["config", "report"])
    assert res.exit_code == 0
    data = json.loads(res.output)
    assert data["secrets"]["jwt_secret"] == "SET"
    assert get_settings().secret.jwt_secret.get_secret_value() not in res.output
