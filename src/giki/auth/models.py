from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Role(str, Enum):
    viewer = "viewer"
    editor = "editor"
    admin = "admin"


class TokenType(str, Enum):
    access = "access"
    refresh = "refresh"


@dataclass(frozen=True, slots=True)
class UserPreferences:
    language: str = "en"
    theme: str = "system"
    email_notifications: bool = True
    avatar_url: str | None = None

    def to_public(self) -> dict[str, Any]:
        return {
            "language": self.language,
            "theme": self.theme,
            "email_notifications": self.email_notifications,
            "avatar_url": self.avatar_url,
        }


@dataclass(frozen=True, slots=True)
class User:
    id: str
    address: str
    name: str | None
    email: str | None
    role: Role
    created_at: int
    updated_at: int
    last_login: int | None
    preferences: UserPreferences = field(default_factory=UserPreferences)

    def to_public(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "address": self.address,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "last_login": self.last_login,
            "preferences": self.preferences.to_public(),
        }


@dataclass(frozen=True, slots=True)
class Session:
    id: str
    user_id: str
    refresh_token: str
    user_agent: str | None
    ip_address: str | None
    is_active: bool
    created_at: int
    last_active: int
    expires_at: int

    def is_valid(self, now: int | None = None) -> bool:
        ts = now_ts() if now is None else int(now)
        return bool(self.is_active) and ts < int(self.expires_at)

    def to_public(self, *, current: bool = False) -> dict[str, Any]:
        # The refresh token itself never leaves the server.
        return {
            "id": self.id,
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "last_active": self.last_active,
            "expires_at": self.expires_at,
            "current": current,
        }


@dataclass(frozen=True, slots=True)
class TokenSubject:
    """Identity bound into every token: who, which wallet, what role."""

    sub: str
    address: str
    role: Role


@dataclass(frozen=True, slots=True)
class Claims:
    sub: str
    address: str
    role: Role
    type: TokenType
    iat: int
    exp: int
    jti: str | None = None

    @property
    def subject(self) -> TokenSubject:
        return TokenSubject(sub=self.sub, address=self.address, role=self.role)


class RefreshStatus(str, Enum):
    valid = "valid"
    expired = "expired"
    revoked = "revoked"
    not_found = "not_found"


@dataclass(frozen=True, slots=True)
class RefreshCheck:
    """Outcome of matching a refresh token against its session record."""

    status: RefreshStatus
    session: Session | None = None

    @property
    def ok(self) -> bool:
        return self.status == RefreshStatus.valid


def now_ts() -> int:
    return int(time.time())


def normalize_address(address: str) -> str:
    return str(address or "").strip().lower()
