from __future__ import annotations

import sqlite3

from giki.auth.models import RefreshCheck, RefreshStatus, Session, now_ts
from giki.store.db import Database
from giki.utils.crypto import random_id
from giki.utils.log import logger


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        refresh_token=str(row["refresh_token"]),
        user_agent=(str(row["user_agent"]) if row["user_agent"] is not None else None),
        ip_address=(str(row["ip_address"]) if row["ip_address"] is not None else None),
        is_active=bool(int(row["is_active"])),
        created_at=int(row["created_at"]),
        last_active=int(row["last_active"]),
        expires_at=int(row["expires_at"]),
    )


class SessionStore:
    """
    One row per login, keyed by the refresh token it was issued with.

    Rows are soft-deleted (is_active=0) and never reactivated; expired rows
    are left for out-of-band cleanup.
    """

    def __init__(self, db: Database) -> None:
        self.db = db

    def create(
        self,
        user_id: str,
        refresh_token: str,
        *,
        expires_at: int,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> Session:
        now = now_ts()
        sess = Session(
            id=random_id("s_", 12),
            user_id=user_id,
            refresh_token=refresh_token,
            user_agent=(user_agent or None),
            ip_address=(ip_address or None),
            is_active=True,
            created_at=now,
            last_active=now,
            expires_at=int(expires_at),
        )
        self.db.execute(
            """
            INSERT INTO sessions (
              id, user_id, refresh_token, user_agent, ip_address,
              is_active, created_at, last_active, expires_at
            )
            VALUES (?, ?, ?, ?, ?, 1, ?, ?, ?)
            """,
            (
                sess.id,
                sess.user_id,
                sess.refresh_token,
                sess.user_agent,
                sess.ip_address,
                sess.created_at,
                sess.last_active,
                sess.expires_at,
            ),
        )
        logger.info("session_created", session_id=sess.id, user_id=user_id)
        return sess

    def get(self, session_id: str) -> Session | None:
        row = self.db.query_one("SELECT * FROM sessions WHERE id = ?", (session_id,))
        return _row_to_session(row) if row is not None else None

    def get_by_token(self, refresh_token: str) -> Session | None:
        row = self.db.query_one(
            "SELECT * FROM sessions WHERE refresh_token = ?", (refresh_token,)
        )
        return _row_to_session(row) if row is not None else None

    def find_active_by_token(self, refresh_token: str) -> Session | None:
        row = self.db.query_one(
            """
            SELECT * FROM sessions
            WHERE refresh_token = ? AND is_active = 1 AND expires_at > ?
            """,
            (refresh_token, now_ts()),
        )
        return _row_to_session(row) if row is not None else None

    def check_refresh(self, refresh_token: str) -> RefreshCheck:
        """
        Classify a refresh token against its session record.

        Independent of the token's own signature/expiry check; both must pass.
        """
        sess = self.get_by_token(refresh_token)
        if sess is None:
            return RefreshCheck(status=RefreshStatus.not_found)
        if not sess.is_active:
            return RefreshCheck(status=RefreshStatus.revoked, session=sess)
        if not sess.is_valid():
            return RefreshCheck(status=RefreshStatus.expired, session=sess)
        return RefreshCheck(status=RefreshStatus.valid, session=sess)

    def list_active(self, user_id: str) -> list[Session]:
        rows = self.db.query(
            """
            SELECT * FROM sessions
            WHERE user_id = ? AND is_active = 1 AND expires_at > ?
            ORDER BY last_active DESC, created_at DESC
            """,
            (user_id, now_ts()),
        )
        return [_row_to_session(r) for r in rows]

    def touch(self, session_id: str) -> None:
        self.db.execute(
            "UPDATE sessions SET last_active = ? WHERE id = ?", (now_ts(), session_id)
        )

    def deactivate(self, session_id: str) -> bool:
        self.db.execute("UPDATE sessions SET is_active = 0 WHERE id = ?", (session_id,))
        logger.info("session_deactivated", session_id=session_id)
        return True

    def deactivate_all(self, user_id: str) -> bool:
        n = self.db.execute(
            "UPDATE sessions SET is_active = 0 WHERE user_id = ? AND is_active = 1", (user_id,)
        )
        logger.info("sessions_deactivated_all", user_id=user_id, count=n)
        return True

    def expire_stale(self) -> int:
        """Mark expired-but-active sessions inactive; returns how many were flipped."""
        n = self.db.execute(
            "UPDATE sessions SET is_active = 0 WHERE is_active = 1 AND expires_at <= ?",
            (now_ts(),),
        )
        if n > 0:
            logger.info("sessions_expired", count=n)
        return n
