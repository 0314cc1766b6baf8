from __future__ import annotations

import pytest
from pydantic import ValidationError

from config.settings import DEV_JWT_SECRET, ConfigError, get_safe_config_report, get_settings
from giki.auth.tokens import TokenService
from tests._helpers.auth import TEST_JWT_SECRET


def test_production_blocks_weak_secrets(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("JWT_SECRET", DEV_JWT_SECRET)
    monkeypatch.delenv("COOKIE_SECURE", raising=False)
    # Defaults are weak; production must fail fast.
    get_settings.cache_clear()
    with pytest.raises(ConfigError):
        _ = get_settings()


def test_strict_secrets_outside_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JWT_SECRET", "short")
    get_settings.cache_clear()
    assert get_settings().public.app_env == "test"

    monkeypatch.setenv("STRICT_SECRETS", "1")
    get_settings.cache_clear()
    with pytest.raises(ConfigError):
        _ = get_settings()


def test_production_cookies_default_secure(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.delenv("COOKIE_SECURE", raising=False)
    get_settings.cache_clear()
    s = get_settings()
    assert s.public.effective_cookie_secure() is True

    monkeypatch.setenv("COOKIE_SECURE", "0")
    get_settings.cache_clear()
    with pytest.raises(ConfigError):
        _ = get_settings()


def test_token_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ACCESS_TOKEN_MINUTES", "5")
    monkeypatch.setenv("REFRESH_TOKEN_DAYS", "1")
    get_settings.cache_clear()
    svc = TokenService.from_settings(get_settings())
    assert svc.access_ttl_seconds == 300
    assert svc.refresh_ttl_seconds == 86400
    assert svc.leeway_seconds == 120

    monkeypatch.setenv("TOKEN_LEEWAY_SECONDS", "30")
    get_settings.cache_clear()
    with pytest.raises(ValidationError):
        _ = get_settings()


def test_safe_config_report_hides_secrets() -> None:
    report = get_safe_config_report()
    assert report["secrets"]["jwt_secret"] == "SET"
    assert TEST_JWT_SECRET not in str(report)
    assert report["public"]["access_token_minutes"] == 15
    assert report["public"]["allow_unsigned_login"] is True
