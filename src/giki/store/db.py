from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from giki.auth.errors import PersistenceFailure
from giki.utils.log import logger

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
      id TEXT PRIMARY KEY,
      address TEXT UNIQUE NOT NULL,
      name TEXT,
      email TEXT,
      role TEXT NOT NULL DEFAULT 'viewer',
      created_at INTEGER NOT NULL,
      updated_at INTEGER NOT NULL,
      last_login INTEGER
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
      id TEXT PRIMARY KEY,
      user_id TEXT NOT NULL,
      refresh_token TEXT UNIQUE NOT NULL,
      user_agent TEXT,
      ip_address TEXT,
      is_active INTEGER NOT NULL DEFAULT 1,
      created_at INTEGER NOT NULL,
      last_active INTEGER NOT NULL,
      expires_at INTEGER NOT NULL,
      FOREIGN KEY(user_id) REFERENCES users(id)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS user_preferences (
      user_id TEXT PRIMARY KEY,
      language TEXT NOT NULL DEFAULT 'en',
      theme TEXT NOT NULL DEFAULT 'system',
      email_notifications INTEGER NOT NULL DEFAULT 1,
      avatar_url TEXT,
      updated_at INTEGER NOT NULL,
      FOREIGN KEY(user_id) REFERENCES users(id)
    );
    """,
    "CREATE INDEX IF NOT EXISTS sessions_user ON sessions(user_id);",
    "CREATE INDEX IF NOT EXISTS users_role ON users(role);",
)


class Database:
    """
    Parameterized-query front for the SQLite auth DB.

    One short-lived connection per call; every sqlite3 error surfaces as
    PersistenceFailure so callers never handle driver exceptions.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init()

    def _conn(self) -> sqlite3.Connection:
        con = sqlite3.connect(str(self.db_path), timeout=10.0)
        con.row_factory = sqlite3.Row
        return con

    def _init(self) -> None:
        con = self._conn()
        try:
            con.execute("PRAGMA journal_mode=WAL;")
            for stmt in SCHEMA:
                con.execute(stmt)
            con.commit()
        finally:
            con.close()
        logger.info("auth_db_ready", path=str(self.db_path))

    def query(self, sql: str, params: Sequence[Any] = ()) -> list[sqlite3.Row]:
        try:
            con = self._conn()
            try:
                return list(con.execute(sql, tuple(params)).fetchall())
            finally:
                con.close()
        except sqlite3.Error as ex:
            logger.error("db_query_failed", error=str(ex))
            raise PersistenceFailure() from ex

    def query_one(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Row | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a write statement; returns the affected row count."""
        try:
            con = self._conn()
            try:
                cur = con.execute(sql, tuple(params))
                con.commit()
                return int(cur.rowcount)
            finally:
                con.close()
        except sqlite3.Error as ex:
            logger.error("db_execute_failed", error=str(ex))
            raise PersistenceFailure() from ex
