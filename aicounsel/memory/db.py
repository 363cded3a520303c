# aicounsel/memory/db.py

import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from aicounsel.core.errors import PersistenceError

USER_COLUMNS = ("log_data", "nickname", "birthdate", "gender")


def get_connection(db_path: str) -> sqlite3.Connection:
    """
    Return a SQLite connection.
    Uses Row factory to allow dict-like access.
    Caller is responsible for closing.
    """
    conn = sqlite3.connect(Path(db_path))
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str) -> None:
    """
    Initialize the database schema if it does not exist.
    Safe to call multiple times.
    """
    conn = get_connection(db_path)
    cur = conn.cursor()

    # users: one row per account, keyed by email
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            user_email TEXT PRIMARY KEY,
            nickname TEXT,
            birthdate TEXT,
            gender TEXT,
            log_data TEXT           -- JSON string {"log": [...], "last_updated_at": ...}
        )
        """
    )

    # action_num: append-only counter, one row per registration action
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS action_num (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_email TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """
    )

    conn.commit()
    conn.close()


class SqliteRecordStore:
    """
    Local stand-in for the hosted user table.

    Same contract as RestRecordStore: updates touch the row matching the
    email; a missing row is created so local development works without a
    separate sign-up step.
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        try:
            init_db(db_path)
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to initialize SQLite store at {db_path}: {e}") from e

    def fetch_user(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT user_email, nickname, birthdate, gender, log_data FROM users WHERE user_email = ?",
                    (email,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to read user {email!r}: {e}") from e
        return dict(row) if row is not None else None

    def fetch_log_data(self, email: str) -> Optional[str]:
        row = self.fetch_user(email)
        if row is None:
            return None
        return row["log_data"]

    def update_user(self, email: str, fields: Dict[str, Any]) -> None:
        unknown = set(fields) - set(USER_COLUMNS)
        if unknown:
            raise PersistenceError(f"Unknown user columns: {sorted(unknown)}")
        if not fields:
            return

        assignments = ", ".join(f"{col} = ?" for col in fields)
        try:
            conn = get_connection(self.db_path)
            try:
                cur = conn.cursor()
                cur.execute("INSERT OR IGNORE INTO users (user_email) VALUES (?)", (email,))
                cur.execute(
                    f"UPDATE users SET {assignments} WHERE user_email = ?",
                    (*fields.values(), email),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update user {email!r}: {e}") from e

    def insert_action(self, email: str) -> None:
        try:
            conn = get_connection(self.db_path)
            try:
                conn.execute("INSERT INTO action_num (user_email) VALUES (?)", (email,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to insert action for {email!r}: {e}") from e

    def count_actions(self, email: str) -> int:
        try:
            conn = get_connection(self.db_path)
            try:
                row = conn.execute(
                    "SELECT COUNT(*) AS n FROM action_num WHERE user_email = ?",
                    (email,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to count actions for {email!r}: {e}") from e
        return int(row["n"])
