"""
SQLite-based recipient verification registry.
"""

import secrets
import sqlite3
from datetime import datetime, UTC
from typing import Optional

from ...models.notification import VerificationState
from .recipients import RecipientRegistryBase, normalize_email


class SQLiteRecipientRegistry(RecipientRegistryBase):
    """Persists verification state across restarts of the API and workers"""

    def __init__(self, db_path: str = "recipients.db"):
        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS recipients (
                email TEXT PRIMARY KEY,
                state TEXT NOT NULL,
                token TEXT UNIQUE,
                requested_at TEXT,
                verified_at TEXT,
                CHECK (state IN ('Pending', 'Verified'))
            )
        """)

        conn.commit()
        conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def get(self, email: str) -> Optional[dict]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            SELECT email, state, token, requested_at, verified_at
            FROM recipients
            WHERE email = ?
        """, (normalize_email(email),))

        row = cursor.fetchone()
        conn.close()

        return dict(row) if row is not None else None

    def begin_verification(self, email: str) -> str:
        key = normalize_email(email)
        record = self.get(key)
        if record is not None and record["token"]:
            return record["token"]

        token = secrets.token_urlsafe(24)
        requested_at = datetime.now(UTC).isoformat()

        conn = self._get_connection()
        cursor = conn.cursor()

        if record is None:
            cursor.execute("""
                INSERT INTO recipients (email, state, token, requested_at)
                VALUES (?, ?, ?, ?)
            """, (key, VerificationState.PENDING.value, token, requested_at))
        else:
            cursor.execute("""
                UPDATE recipients
                SET token = ?, requested_at = ?
                WHERE email = ?
            """, (token, requested_at, key))

        conn.commit()
        conn.close()

        return token

    def confirm(self, token: str) -> Optional[str]:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("SELECT email FROM recipients WHERE token = ?", (token,))
        row = cursor.fetchone()
        if row is None:
            conn.close()
            return None

        cursor.execute("""
            UPDATE recipients
            SET state = ?, verified_at = ?
            WHERE token = ?
        """, (VerificationState.VERIFIED.value, datetime.now(UTC).isoformat(), token))

        conn.commit()
        conn.close()

        return row["email"]

    def mark_verified(self, email: str) -> None:
        conn = self._get_connection()
        cursor = conn.cursor()

        cursor.execute("""
            INSERT INTO recipients (email, state, verified_at)
            VALUES (?, ?, ?)
            ON CONFLICT(email) DO UPDATE SET state = excluded.state, verified_at = excluded.verified_at
        """, (normalize_email(email), VerificationState.VERIFIED.value, datetime.now(UTC).isoformat()))

        conn.commit()
        conn.close()
