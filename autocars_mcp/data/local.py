"""SQLite-backed local storage: credential cache, data bundles, licenses, settings."""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any

from autocars_mcp.data.models import License, User
from autocars_mcp.errors import DuplicateEmailError

_CREATE_SQL = """\
CREATE TABLE IF NOT EXISTS accounts (
    id          TEXT PRIMARY KEY,
    email       TEXT NOT NULL UNIQUE,
    secret      TEXT NOT NULL,
    store_name  TEXT NOT NULL DEFAULT '',
    role        TEXT NOT NULL DEFAULT 'user',
    created_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS user_data (
    user_id     TEXT PRIMARY KEY,
    payload     TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS licenses (
    key           TEXT PRIMARY KEY,
    status        TEXT NOT NULL DEFAULT 'available',
    generated_by  TEXT NOT NULL DEFAULT '',
    created_at    TEXT NOT NULL,
    used_by       TEXT,
    used_at       TEXT
);
CREATE INDEX IF NOT EXISTS idx_licenses_created_at
    ON licenses(created_at);
CREATE TABLE IF NOT EXISTS settings (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL
);
"""


class SqliteLocalStore:
    """Thread-safe local persistence; one row per account bundle."""

    def __init__(self, db_path: str = ":memory:") -> None:
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")
            self._conn.executescript(_CREATE_SQL)

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=row["id"],
            email=row["email"],
            secret=row["secret"],
            store_name=row["store_name"],
            role=row["role"],
        )

    @staticmethod
    def _row_to_license(row: sqlite3.Row) -> License:
        return License(
            key=row["key"],
            status=row["status"],
            generated_by=row["generated_by"],
            created_at=row["created_at"],
            used_by=row["used_by"],
            used_at=row["used_at"],
        )

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ── Credential cache ───────────────────────────────────────────

    def list_accounts(self) -> list[User]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT * FROM accounts ORDER BY created_at"
            ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def find_account_by_email(self, email: str) -> User | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT * FROM accounts WHERE email = ?", (email,)
            ).fetchone()
        return self._row_to_user(row) if row else None

    def find_account(self, email: str, secret: str) -> User | None:
        """Exact match on both e-mail and secret."""
        user = self.find_account_by_email(email)
        if user is None or user.secret != secret:
            return None
        return user

    def add_account(self, user: User) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    """INSERT INTO accounts (id, email, secret, store_name, role, created_at)
                       VALUES (?, ?, ?, ?, ?, ?)""",
                    (user.id, user.email, user.secret, user.store_name, user.role, self._now()),
                )
                self._conn.commit()
        except sqlite3.IntegrityError as exc:
            raise DuplicateEmailError(user.email) from exc

    def upsert_account(self, user: User) -> None:
        """Insert or refresh a cached account, keyed by id."""
        with self._lock:
            self._conn.execute(
                """INSERT INTO accounts (id, email, secret, store_name, role, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       email=excluded.email,
                       secret=excluded.secret,
                       store_name=excluded.store_name,
                       role=excluded.role""",
                (user.id, user.email, user.secret, user.store_name, user.role, self._now()),
            )
            self._conn.commit()

    # ── Per-account data bundles ───────────────────────────────────

    def load_user_data(self, user_id: str) -> dict[str, Any] | None:
        """Return the stored bundle, or None. Raises ValueError on corrupt JSON."""
        with self._lock:
            row = self._conn.execute(
                "SELECT payload FROM user_data WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        document = json.loads(row["payload"])
        if not isinstance(document, dict):
            raise ValueError(f"Stored data for {user_id} is not an object")
        return document

    def save_user_data(self, user_id: str, document: dict[str, Any]) -> None:
        now_iso = self._now()
        payload = json.dumps({**document, "lastUpdated": now_iso}, ensure_ascii=False)
        with self._lock:
            self._conn.execute(
                """INSERT INTO user_data (user_id, payload, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(user_id) DO UPDATE SET
                       payload=excluded.payload, updated_at=excluded.updated_at""",
                (user_id, payload, now_iso),
            )
            self._conn.commit()

    # ── Licenses ───────────────────────────────────────────────────

    def get_license(self, key: str) -> License | None:
        with self._lock:
            row = self._conn.execute("SELECT * FROM licenses WHERE key = ?", (key,)).fetchone()
        return self._row_to_license(row) if row else None

    def list_licenses(self, *, status: str = "") -> list[License]:
        """Return licenses, newest first."""
        with self._lock:
            if status:
                rows = self._conn.execute(
                    "SELECT * FROM licenses WHERE status = ? ORDER BY created_at DESC",
                    (status,),
                ).fetchall()
            else:
                rows = self._conn.execute(
                    "SELECT * FROM licenses ORDER BY created_at DESC"
                ).fetchall()
        return [self._row_to_license(r) for r in rows]

    def save_license(self, license_: License) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT INTO licenses (key, status, generated_by, created_at, used_by, used_at)
                   VALUES (?, ?, ?, ?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       status=excluded.status,
                       used_by=excluded.used_by,
                       used_at=excluded.used_at""",
                (
                    license_.key,
                    license_.status,
                    license_.generated_by,
                    license_.created_at,
                    license_.used_by,
                    license_.used_at,
                ),
            )
            self._conn.commit()

    # ── Settings ───────────────────────────────────────────────────

    def get_setting(self, key: str) -> str | None:
        with self._lock:
            row = self._conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_setting(self, key: str, value: str) -> None:
        with self._lock:
            self._conn.execute(
                """INSERT INTO settings (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value=excluded.value, updated_at=excluded.updated_at""",
                (key, value, self._now()),
            )
            self._conn.commit()

    def delete_setting(self, key: str) -> bool:
        with self._lock:
            cursor = self._conn.execute("DELETE FROM settings WHERE key = ?", (key,))
            self._conn.commit()
            return cursor.rowcount > 0
