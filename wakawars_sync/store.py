"""SQLite-backed store for users, daily stats, provider logs and achievements."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional

from .config import Config
from .sync.models import DailyStatRecord, ProviderLogEntry, UserTarget

__all__ = ["SqliteUserStore", "StoredDailyStat", "StoredProviderLog", "StoredAchievement"]

logger = logging.getLogger(__name__)


@dataclass
class StoredDailyStat:
    """A daily stat row as read back from the database."""

    user_id: int
    date_key: str
    total_seconds: float
    status: str
    error: Optional[str]
    fetched_at: datetime
    updated_at: datetime


@dataclass
class StoredProviderLog:
    """A provider log row."""

    id: int
    provider: str
    user_id: int
    endpoint: str
    range_key: Optional[str]
    status_code: Optional[int]
    ok: bool
    payload: Any
    error: Optional[str]
    fetched_at: datetime


@dataclass
class StoredAchievement:
    """An achievement granted to a user."""

    achievement_id: str
    context_kind: str
    context_key: str
    awarded_at: datetime
    metadata: Any


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _json_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str)


class SqliteUserStore:
    """SQLite implementation of the user store used by the sync coordinator.

    Safe to use from the batch runner's worker threads: each thread gets its
    own connection.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file. Defaults to data dir.
        """
        if db_path is None:
            db_path = Config.get_data_dir() / "wakawars.db"

        self.db_path = Path(db_path)
        self._local = threading.local()
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if not hasattr(self._local, "connection"):
            self._local.connection = sqlite3.connect(str(self.db_path), timeout=30)
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database cursor."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            cursor.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._cursor() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    username TEXT NOT NULL UNIQUE,
                    api_key TEXT NOT NULL DEFAULT '',
                    timezone TEXT,
                    created_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS daily_stats (
                    user_id INTEGER NOT NULL,
                    date_key TEXT NOT NULL,
                    total_seconds REAL NOT NULL DEFAULT 0,
                    status TEXT NOT NULL,
                    error TEXT,
                    fetched_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, date_key)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS provider_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    provider TEXT NOT NULL,
                    user_id INTEGER NOT NULL,
                    endpoint TEXT NOT NULL,
                    range_key TEXT,
                    status_code INTEGER,
                    ok INTEGER NOT NULL,
                    payload TEXT,
                    error TEXT,
                    fetched_at TEXT NOT NULL
                )
                """
            )
            cursor.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_provider_logs_user
                ON provider_logs(user_id, fetched_at)
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS achievements (
                    user_id INTEGER NOT NULL,
                    achievement_id TEXT NOT NULL,
                    context_kind TEXT NOT NULL,
                    context_key TEXT NOT NULL,
                    awarded_at TEXT NOT NULL,
                    metadata TEXT,
                    PRIMARY KEY (user_id, achievement_id, context_kind, context_key)
                )
                """
            )

    # Users

    def add_user(self, username: str, api_key: str, timezone: Optional[str] = None) -> int:
        """Create or update a user by username.

        Returns:
            The user's id
        """
        now = _utc_now_iso()
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO users (username, api_key, timezone, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(username) DO UPDATE SET
                    api_key = excluded.api_key,
                    timezone = COALESCE(excluded.timezone, users.timezone)
                """,
                (username, api_key, timezone, now),
            )
            cursor.execute("SELECT id FROM users WHERE username = ?", (username,))
            return cursor.fetchone()["id"]

    def get_user(self, user_id: int) -> Optional[UserTarget]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT id, username, api_key, timezone FROM users WHERE id = ?",
                (user_id,),
            )
            row = cursor.fetchone()
            return self._to_target(row) if row else None

    def list_users(self) -> list[UserTarget]:
        """All users, keys as stored (untrimmed)."""
        with self._cursor() as cursor:
            cursor.execute("SELECT id, username, api_key, timezone FROM users ORDER BY id")
            return [self._to_target(row) for row in cursor.fetchall()]

    def set_timezone(self, user_id: int, timezone: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE users SET timezone = ? WHERE id = ?",
                (timezone, user_id),
            )
        logger.info(f"User {user_id} timezone set to {timezone}")

    @staticmethod
    def _to_target(row: sqlite3.Row) -> UserTarget:
        return UserTarget(
            id=row["id"],
            api_key=row["api_key"],
            timezone=row["timezone"],
            username=row["username"],
        )

    # Daily stats

    def upsert_daily_stat(self, record: DailyStatRecord) -> None:
        """Insert or replace the stat for (user_id, date_key); last write wins."""
        now = _utc_now_iso()
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO daily_stats
                    (user_id, date_key, total_seconds, status, error, fetched_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, date_key) DO UPDATE SET
                    total_seconds = excluded.total_seconds,
                    status = excluded.status,
                    error = excluded.error,
                    fetched_at = excluded.fetched_at,
                    updated_at = excluded.updated_at
                """,
                (
                    record.user_id,
                    record.date_key,
                    record.total_seconds,
                    record.status,
                    record.error,
                    _iso(record.fetched_at),
                    now,
                ),
            )

    def get_daily_stats(
        self, date_key: str, user_ids: Optional[list[int]] = None
    ) -> list[StoredDailyStat]:
        """Daily stats for a date, optionally limited to some users."""
        query = """
            SELECT user_id, date_key, total_seconds, status, error, fetched_at, updated_at
            FROM daily_stats
            WHERE date_key = ?
        """
        params: list[Any] = [date_key]
        if user_ids is not None:
            if not user_ids:
                return []
            placeholders = ",".join("?" * len(user_ids))
            query += f" AND user_id IN ({placeholders})"
            params.extend(user_ids)
        query += " ORDER BY total_seconds DESC, user_id ASC"

        with self._cursor() as cursor:
            cursor.execute(query, params)
            return [
                StoredDailyStat(
                    user_id=row["user_id"],
                    date_key=row["date_key"],
                    total_seconds=float(row["total_seconds"]),
                    status=row["status"],
                    error=row["error"],
                    fetched_at=datetime.fromisoformat(row["fetched_at"]),
                    updated_at=datetime.fromisoformat(row["updated_at"]),
                )
                for row in cursor.fetchall()
            ]

    # Provider logs

    def create_provider_log(self, entry: ProviderLogEntry) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO provider_logs
                    (provider, user_id, endpoint, range_key, status_code, ok,
                     payload, error, fetched_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.provider,
                    entry.user_id,
                    entry.endpoint,
                    entry.range_key,
                    entry.status_code,
                    1 if entry.ok else 0,
                    _json_or_none(entry.payload),
                    entry.error,
                    _iso(entry.fetched_at),
                ),
            )

    def list_provider_logs(
        self, user_id: Optional[int] = None, limit: int = 100
    ) -> list[StoredProviderLog]:
        """Most recent provider logs first."""
        query = """
            SELECT id, provider, user_id, endpoint, range_key, status_code, ok,
                   payload, error, fetched_at
            FROM provider_logs
        """
        params: list[Any] = []
        if user_id is not None:
            query += " WHERE user_id = ?"
            params.append(user_id)
        query += " ORDER BY id DESC LIMIT ?"
        params.append(limit)

        with self._cursor() as cursor:
            cursor.execute(query, params)
            return [
                StoredProviderLog(
                    id=row["id"],
                    provider=row["provider"],
                    user_id=row["user_id"],
                    endpoint=row["endpoint"],
                    range_key=row["range_key"],
                    status_code=row["status_code"],
                    ok=bool(row["ok"]),
                    payload=json.loads(row["payload"]) if row["payload"] else None,
                    error=row["error"],
                    fetched_at=datetime.fromisoformat(row["fetched_at"]),
                )
                for row in cursor.fetchall()
            ]

    # Achievements

    def grant_achievement(
        self,
        user_id: int,
        achievement_id: str,
        context_kind: str,
        context_key: str,
        awarded_at: datetime,
        metadata: Any = None,
    ) -> bool:
        """Grant an achievement once per context.

        Returns:
            True if newly granted, False if it already existed
        """
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT OR IGNORE INTO achievements
                    (user_id, achievement_id, context_kind, context_key, awarded_at, metadata)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    achievement_id,
                    context_kind,
                    context_key,
                    _iso(awarded_at),
                    _json_or_none(metadata),
                ),
            )
            return cursor.rowcount > 0

    def list_achievements(self, user_id: int) -> list[StoredAchievement]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT achievement_id, context_kind, context_key, awarded_at, metadata
                FROM achievements
                WHERE user_id = ?
                ORDER BY awarded_at ASC, achievement_id ASC
                """,
                (user_id,),
            )
            return [
                StoredAchievement(
                    achievement_id=row["achievement_id"],
                    context_kind=row["context_kind"],
                    context_key=row["context_key"],
                    awarded_at=datetime.fromisoformat(row["awarded_at"]),
                    metadata=json.loads(row["metadata"]) if row["metadata"] else None,
                )
                for row in cursor.fetchall()
            ]

    def close(self) -> None:
        """Close the database connection."""
        if hasattr(self._local, "connection"):
            self._local.connection.close()
            del self._local.connection
