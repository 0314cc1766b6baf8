from __future__ import annotations

import sqlite3
from dataclasses import replace
from typing import Any

from giki.auth.errors import InvalidRequest, PersistenceFailure, UserNotFound
from giki.auth.models import Role, User, UserPreferences, normalize_address, now_ts
from giki.store.db import Database
from giki.utils.crypto import random_id
from giki.utils.log import logger

# Users without a preferences row read back the defaults.
_USER_SELECT = """
    SELECT u.*, p.language, p.theme, p.email_notifications, p.avatar_url
    FROM users u LEFT JOIN user_preferences p ON p.user_id = u.id
"""


def _row_to_user(row: sqlite3.Row) -> User:
    defaults = UserPreferences()
    prefs = UserPreferences(
        language=str(row["language"] or defaults.language),
        theme=str(row["theme"] or defaults.theme),
        email_notifications=(
            bool(row["email_notifications"])
            if row["email_notifications"] is not None
            else defaults.email_notifications
        ),
        avatar_url=(str(row["avatar_url"]) if row["avatar_url"] is not None else None),
    )
    return User(
        id=str(row["id"]),
        address=str(row["address"]),
        name=(str(row["name"]) if row["name"] is not None else None),
        email=(str(row["email"]) if row["email"] is not None else None),
        role=Role(str(row["role"])),
        created_at=int(row["created_at"]),
        updated_at=int(row["updated_at"]),
        last_login=(int(row["last_login"]) if row["last_login"] is not None else None),
        preferences=prefs,
    )


def merge_preferences(current: UserPreferences, patch: Any) -> UserPreferences:
    """
    Apply a partial preferences object. Unknown keys are ignored; empty
    language/theme fall back to the defaults.
    """
    if not isinstance(patch, dict):
        raise InvalidRequest("preferences must be an object")
    changes: dict[str, Any] = {}
    for key in ("language", "theme"):
        if key in patch:
            v = patch[key]
            if v is not None and not isinstance(v, str):
                raise InvalidRequest(f"preferences.{key} must be a string")
            changes[key] = (v or "").strip() or getattr(UserPreferences(), key)
    if "email_notifications" in patch:
        v = patch["email_notifications"]
        if not isinstance(v, bool):
            raise InvalidRequest("preferences.email_notifications must be a boolean")
        changes["email_notifications"] = v
    if "avatar_url" in patch:
        v = patch["avatar_url"]
        if v is not None and not isinstance(v, str):
            raise InvalidRequest("preferences.avatar_url must be a string")
        changes["avatar_url"] = (v or "").strip() or None
    return replace(current, **changes)


class UserStore:
    """
    Wallet-keyed user records. Addresses are stored lowercased, so lookups
    are case-insensitive.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def get(self, user_id: str) -> User | None:
        row = self.db.query_one(f"{_USER_SELECT} WHERE u.id = ?", (user_id,))
        return _row_to_user(row) if row is not None else None

    def get_by_address(self, address: str) -> User | None:
        row = self.db.query_one(
            f"{_USER_SELECT} WHERE u.address = ?", (normalize_address(address),)
        )
        return _row_to_user(row) if row is not None else None

    def create(
        self,
        address: str,
        *,
        name: str | None = None,
        email: str | None = None,
        role: Role = Role.viewer,
    ) -> User:
        now = now_ts()
        user = User(
            id=random_id("u_", 12),
            address=normalize_address(address),
            name=name,
            email=email,
            role=Role(role),
            created_at=now,
            updated_at=now,
            last_login=now,
        )
        # A concurrent first login for the same address may win the UNIQUE race.
        self.db.execute(
            """
            INSERT INTO users (id, address, name, email, role, created_at, updated_at, last_login)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(address) DO NOTHING
            """,
            (
                user.id,
                user.address,
                user.name,
                user.email,
                user.role.value,
                user.created_at,
                user.updated_at,
                user.last_login,
            ),
        )
        stored = self.get_by_address(user.address)
        if stored is None:
            raise PersistenceFailure("User could not be created")
        if stored.id == user.id:
            self.db.execute(
                "INSERT INTO user_preferences (user_id, updated_at) VALUES (?, ?) "
                "ON CONFLICT(user_id) DO NOTHING",
                (user.id, now),
            )
            logger.info("user_created", user_id=user.id, role=user.role.value)
        return stored

    def get_or_create_for_login(self, address: str) -> tuple[User, bool]:
        """
        Resolve the user signing in; (user, created). Known users get last_login bumped.
        """
        user = self.get_by_address(address)
        if user is None:
            return self.create(address), True
        self.touch_last_login(user.id)
        return self.get(user.id) or user, False

    def touch_last_login(self, user_id: str) -> None:
        self.db.execute("UPDATE users SET last_login = ? WHERE id = ?", (now_ts(), user_id))

    def update_profile(
        self,
        user_id: str,
        *,
        name: str | None = None,
        email: str | None = None,
        preferences: dict[str, Any] | None = None,
    ) -> User:
        fields: list[str] = []
        values: list[object] = []
        if name is not None:
            fields.append("name = ?")
            values.append(name.strip() or None)
        if email is not None:
            fields.append("email = ?")
            values.append(email.strip() or None)
        if not fields and preferences is None:
            raise InvalidRequest("Nothing to update")
        current = self.get(user_id)
        if current is None:
            raise UserNotFound()
        prefs = None
        if preferences is not None:
            prefs = merge_preferences(current.preferences, preferences)

        now = now_ts()
        fields.append("updated_at = ?")
        values.append(now)
        values.append(user_id)
        n = self.db.execute(f"UPDATE users SET {', '.join(fields)} WHERE id = ?", values)
        if n == 0:
            raise UserNotFound()
        if prefs is not None:
            self.db.execute(
                """
                INSERT INTO user_preferences
                  (user_id, language, theme, email_notifications, avatar_url, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                  language = excluded.language,
                  theme = excluded.theme,
                  email_notifications = excluded.email_notifications,
                  avatar_url = excluded.avatar_url,
                  updated_at = excluded.updated_at
                """,
                (
                    user_id,
                    prefs.language,
                    prefs.theme,
                    int(prefs.email_notifications),
                    prefs.avatar_url,
                    now,
                ),
            )
        user = self.get(user_id)
        if user is None:
            raise UserNotFound()
        return user

    def set_role(self, user_id: str, role: Role) -> User:
        n = self.db.execute(
            "UPDATE users SET role = ?, updated_at = ? WHERE id = ?",
            (Role(role).value, now_ts(), user_id),
        )
        if n == 0:
            raise UserNotFound()
        user = self.get(user_id)
        if user is None:
            raise UserNotFound()
        logger.info("user_role_changed", user_id=user_id, role=user.role.value)
        return user

    def list_users(
        self, *, role: Role | None = None, limit: int = 10, offset: int = 0
    ) -> tuple[list[User], int]:
        where = ""
        params: list[object] = []
        if role is not None:
            where = "WHERE u.role = ?"
            params.append(Role(role).value)
        count_row = self.db.query_one(f"SELECT COUNT(*) AS n FROM users u {where}", params)
        total = int(count_row["n"]) if count_row is not None else 0
        rows = self.db.query(
            f"{_USER_SELECT} {where} ORDER BY u.created_at DESC, u.id LIMIT ? OFFSET ?",
            [*params, max(1, int(limit)), max(0, int(offset))],
        )
        return [_row_to_user(r) for r in rows], total
