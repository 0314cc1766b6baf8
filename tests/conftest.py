from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from giki.auth.flow import AuthFlow
from giki.auth.sessions import SessionStore
from giki.auth.tokens import TokenService
from giki.auth.users import UserStore
from giki.config import get_settings
from giki.store.db import Database
from tests._helpers.auth import TEST_JWT_SECRET


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    root = tmp_path_factory.mktemp("giki_test")
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("GIKI_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("GIKI_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    monkeypatch.setenv("COOKIE_SECURE", "0")
    monkeypatch.delenv("STRICT_SECRETS", raising=False)
    monkeypatch.delenv("ALLOW_UNSIGNED_LOGIN", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def db(tmp_path: Path) -> Database:
    return Database(tmp_path / "auth.db")


@pytest.fixture()
def tokens() -> TokenService:
    return TokenService(secret=TEST_JWT_SECRET)


@pytest.fixture()
def users(db: Database) -> UserStore:
    return UserStore(db)


@pytest.fixture()
def sessions(db: Database) -> SessionStore:
    return SessionStore(db)


@pytest.fixture()
def flow(tokens: TokenService, users: UserStore, sessions: SessionStore) -> AuthFlow:
    return AuthFlow(tokens=tokens, users=users, sessions=sessions)


@pytest.fixture()
def client() -> Iterator[TestClient]:
    from giki.server import create_app

    with TestClient(create_app()) as c:
        yield c
