from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- deployment ---
    app_env: str = Field(default="development", alias="APP_ENV")  # development|production|test
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")

    # --- storage ---
    # Runtime-only state directory (auth DB). Prefer a non-repo mount in production.
    state_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "_state").resolve(), alias="GIKI_STATE_DIR"
    )
    auth_db_name: str = Field(default="auth.db", alias="GIKI_AUTH_DB_NAME")

    # --- logging ---
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="GIKI_LOG_DIR"
    )
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    # --- tokens ---
    jwt_alg: str = Field(default="HS256", alias="JWT_ALG")
    access_token_minutes: int = Field(default=15, alias="ACCESS_TOKEN_MINUTES")
    refresh_token_days: int = Field(default=7, alias="REFRESH_TOKEN_DAYS")
    # Clock skew tolerated between the issuing and verifying hosts (never below 60s).
    token_leeway_seconds: int = Field(default=120, ge=60, alias="TOKEN_LEEWAY_SECONDS")

    # --- cookies ---
    # Unset => Secure only when APP_ENV=production.
    cookie_secure: bool | None = Field(default=None, alias="COOKIE_SECURE")

    # --- login policy ---
    # Relaxed mode: accept a bare address claim when no signature/message is posted.
    # Strict deployments should set ALLOW_UNSIGNED_LOGIN=0.
    allow_unsigned_login: bool = Field(default=True, alias="ALLOW_UNSIGNED_LOGIN")
    login_rate_limit: int = Field(default=10, alias="LOGIN_RATE_LIMIT")
    login_rate_window_seconds: int = Field(default=60, alias="LOGIN_RATE_WINDOW_SECONDS")
    refresh_rate_limit: int = Field(default=30, alias="REFRESH_RATE_LIMIT")

    cors_origins: str = Field(default="", alias="CORS_ORIGINS")  # comma-separated

    def is_production(self) -> bool:
        return str(self.app_env or "").strip().lower() in {"prod", "production"}

    def effective_cookie_secure(self) -> bool:
        if self.cookie_secure is None:
            return self.is_production()
        return bool(self.cookie_secure)

    def auth_db_path(self) -> Path:
        return Path(self.state_dir) / str(self.auth_db_name or "auth.db")

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in (self.cors_origins or "").split(",") if o.strip()]
