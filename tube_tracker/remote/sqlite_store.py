"""
Self-hosted RemoteStore backed by a SQLite file.

Same tables and composite keys as the PostgREST backend, with JSON
columns stored as TEXT. Suitable for a single-machine deployment and for
tests.

Atomicity:
    - Credit reservation is one conditional UPDATE under the store lock
      (`credits - cost >= 0`), so the balance can never go negative.
    - Batch progress upserts run in one transaction.
    - Progress upserts only overwrite a row if the incoming updated_at is
      not older (last-write-wins).

All sqlite work runs on a worker thread via asyncio.to_thread().
"""

import asyncio
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Any, Callable, Generator, TypeVar

from tube_tracker.core.exceptions import RemoteStoreError
from tube_tracker.core.logger import get_logger
from tube_tracker.core.models import CreditBalance, ReserveResult
from tube_tracker.remote.base import CacheEntry, RemoteStore, cache_table
from tube_tracker.utils import parse_iso, to_iso, utc_now

logger = get_logger(__name__)

T = TypeVar("T")


REMOTE_SCHEMA_VERSION = 1


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS user_playlists (
    user_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    video_count INTEGER DEFAULT 0,
    last_accessed_at TEXT,
    created_at TEXT,
    PRIMARY KEY (user_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS user_progress (
    user_id TEXT NOT NULL,
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (user_id, video_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS user_notes (
    user_id TEXT NOT NULL,
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    PRIMARY KEY (user_id, video_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS cached_video_notes (
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    cached_at TEXT NOT NULL,
    PRIMARY KEY (video_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS video_tests (
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    payload TEXT NOT NULL,
    score INTEGER,
    cached_at TEXT NOT NULL,
    PRIMARY KEY (user_id, video_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS cached_playlists (
    playlist_id TEXT PRIMARY KEY,
    payload TEXT NOT NULL,
    cached_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS user_credits (
    user_id TEXT PRIMARY KEY,
    credits INTEGER NOT NULL CHECK (credits >= 0),
    last_daily_bonus_at TEXT
);

CREATE TABLE IF NOT EXISTS credit_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    action TEXT NOT NULL,
    amount INTEGER NOT NULL,
    balance_after INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_user_playlists_accessed ON user_playlists(user_id, last_accessed_at);
CREATE INDEX IF NOT EXISTS idx_user_progress_playlist ON user_progress(user_id, playlist_id);
CREATE INDEX IF NOT EXISTS idx_user_notes_playlist ON user_notes(user_id, playlist_id);
CREATE INDEX IF NOT EXISTS idx_video_tests_playlist ON video_tests(user_id, playlist_id);
CREATE INDEX IF NOT EXISTS idx_credit_transactions_user ON credit_transactions(user_id);
"""


class SqliteRemoteStore(RemoteStore):
    """
    RemoteStore implementation on a local SQLite file.

    Uses a single persistent connection with thread locking, like
    LocalStore. Users get `initial_credits` the first time their balance
    is read or reserved against.
    """

    def __init__(self, db_path: Path, initial_credits: int = 100) -> None:
        self.db_path = db_path
        self.initial_credits = initial_credits
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_database()
        except (OSError, sqlite3.Error) as e:
            raise RemoteStoreError(
                f"Failed to initialize remote store: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False
            )
            self._conn.row_factory = sqlite3.Row
        yield self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        with self._lock:
            with self._get_connection() as conn:
                try:
                    with conn:
                        yield conn
                except sqlite3.Error as e:
                    raise RemoteStoreError(
                        f"Remote store {operation} failed: {e}",
                        details={"operation": operation}
                    ) from e

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA_SQL)
            conn.execute("DELETE FROM schema_version")
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (REMOTE_SCHEMA_VERSION,)
            )
            conn.commit()

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(func, *args)

    async def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # =========================================================================
    # Playlist ownership
    # =========================================================================

    async def list_user_playlists(self, user_id: str) -> list[dict[str, Any]]:
        return await self._run(self._list_user_playlists, user_id)

    def _list_user_playlists(self, user_id: str) -> list[dict[str, Any]]:
        with self._transaction("list playlists") as conn:
            cursor = conn.execute("""
                SELECT playlist_id AS id, title, description, thumbnail_url,
                       video_count, last_accessed_at
                FROM user_playlists
                WHERE user_id = ?
                ORDER BY last_accessed_at DESC
            """, (user_id,))
            return [dict(row) for row in cursor.fetchall()]

    async def save_user_playlist(self, user_id: str, playlist: dict[str, Any]) -> None:
        await self._run(self._save_user_playlist, user_id, playlist)

    def _save_user_playlist(self, user_id: str, playlist: dict[str, Any]) -> None:
        with self._transaction("save playlist") as conn:
            conn.execute("""
                INSERT INTO user_playlists (
                    user_id, playlist_id, title, description, thumbnail_url,
                    video_count, last_accessed_at, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, playlist_id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    thumbnail_url = excluded.thumbnail_url,
                    video_count = excluded.video_count,
                    last_accessed_at = excluded.last_accessed_at
            """, (
                user_id, playlist["id"], playlist.get("title"),
                playlist.get("description"), playlist.get("thumbnail_url"),
                playlist.get("video_count", 0), playlist.get("last_accessed_at"),
                to_iso(utc_now())
            ))

    async def delete_user_playlist(self, user_id: str, playlist_id: str) -> None:
        await self._run(self._delete_user_playlist, user_id, playlist_id)

    def _delete_user_playlist(self, user_id: str, playlist_id: str) -> None:
        with self._transaction("delete playlist") as conn:
            for table in ("user_progress", "user_notes", "user_playlists"):
                conn.execute(
                    f"DELETE FROM {table} WHERE user_id = ? AND playlist_id = ?",
                    (user_id, playlist_id)
                )

    # =========================================================================
    # Progress
    # =========================================================================

    async def get_progress(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        return await self._run(self._get_progress, user_id, playlist_id)

    def _get_progress(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        with self._transaction("read progress") as conn:
            cursor = conn.execute(
                "SELECT * FROM user_progress WHERE user_id = ? AND playlist_id = ?",
                (user_id, playlist_id)
            )
            return [
                {**dict(row), "completed": bool(row["completed"])}
                for row in cursor.fetchall()
            ]

    async def upsert_progress(self, records: list[dict[str, Any]]) -> None:
        if records:
            await self._run(self._upsert_progress, records)

    def _upsert_progress(self, records: list[dict[str, Any]]) -> None:
        with self._transaction("upsert progress") as conn:
            conn.executemany("""
                INSERT INTO user_progress (user_id, video_id, playlist_id, completed, updated_at)
                VALUES (:user_id, :video_id, :playlist_id, :completed, :updated_at)
                ON CONFLICT(user_id, video_id, playlist_id) DO UPDATE SET
                    completed = excluded.completed,
                    updated_at = excluded.updated_at
                WHERE excluded.updated_at >= user_progress.updated_at
            """, [{**r, "completed": 1 if r["completed"] else 0} for r in records])

    # =========================================================================
    # Per-user notes
    # =========================================================================

    async def get_user_notes(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        return await self._run(self._get_user_notes, user_id, playlist_id)

    def _get_user_notes(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        with self._transaction("read notes") as conn:
            cursor = conn.execute(
                "SELECT payload FROM user_notes WHERE user_id = ? AND playlist_id = ?",
                (user_id, playlist_id)
            )
            return [json.loads(row["payload"]) for row in cursor.fetchall()]

    async def upsert_user_notes(self, user_id: str, notes: dict[str, Any]) -> None:
        await self._run(self._upsert_user_notes, user_id, notes)

    def _upsert_user_notes(self, user_id: str, notes: dict[str, Any]) -> None:
        row = {**notes, "user_id": user_id}
        with self._transaction("upsert notes") as conn:
            conn.execute("""
                INSERT INTO user_notes (user_id, video_id, playlist_id, payload, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id, video_id, playlist_id) DO UPDATE SET
                    payload = excluded.payload,
                    created_at = excluded.created_at
            """, (
                user_id, row["video_id"], row["playlist_id"],
                json.dumps(row), row["created_at"]
            ))

    # =========================================================================
    # Generation cache
    # =========================================================================

    async def get_cached(self, kind: str, key: tuple[str, ...]) -> CacheEntry | None:
        return await self._run(self._get_cached, kind, key)

    def _get_cached(self, kind: str, key: tuple[str, ...]) -> CacheEntry | None:
        table = cache_table(kind)
        where = table.key_dict(key)
        clause = " AND ".join(f"{column} = ?" for column in where)
        with self._transaction(f"read {table.name}") as conn:
            row = conn.execute(
                f"SELECT payload, cached_at FROM {table.name} WHERE {clause}",
                tuple(where.values())
            ).fetchone()
            if row is None:
                return None
            return CacheEntry(
                payload=json.loads(row["payload"]),
                cached_at=parse_iso(row["cached_at"]) or utc_now()
            )

    async def put_cached(self, kind: str, key: tuple[str, ...], payload: dict[str, Any]) -> None:
        await self._run(self._put_cached, kind, key, payload)

    def _put_cached(self, kind: str, key: tuple[str, ...], payload: dict[str, Any]) -> None:
        table = cache_table(kind)
        row: dict[str, Any] = {
            **table.key_dict(key),
            "payload": json.dumps(payload),
            "cached_at": to_iso(utc_now()),
        }
        if table.name == "video_tests":
            row["score"] = payload.get("score")

        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        updates = ", ".join(
            f"{column} = excluded.{column}"
            for column in row if column not in table.key_columns
        )
        conflict = ", ".join(table.key_columns)
        with self._transaction(f"write {table.name}") as conn:
            conn.execute(
                f"INSERT INTO {table.name} ({columns}) VALUES ({placeholders}) "
                f"ON CONFLICT({conflict}) DO UPDATE SET {updates}",
                tuple(row.values())
            )

    # =========================================================================
    # Tests
    # =========================================================================

    async def get_test_results(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        return await self._run(self._get_test_results, user_id, playlist_id)

    def _get_test_results(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        with self._transaction("read test results") as conn:
            cursor = conn.execute("""
                SELECT payload FROM video_tests
                WHERE user_id = ? AND playlist_id = ? AND score IS NOT NULL
            """, (user_id, playlist_id))
            return [json.loads(row["payload"]) for row in cursor.fetchall()]

    async def save_test_result(self, record: dict[str, Any]) -> None:
        await self._run(self._save_test_result, record)

    def _save_test_result(self, record: dict[str, Any]) -> None:
        with self._transaction("save test result") as conn:
            cursor = conn.execute("""
                UPDATE video_tests SET payload = ?, score = ?
                WHERE user_id = ? AND video_id = ? AND playlist_id = ?
            """, (
                json.dumps(record), record.get("score"),
                record["user_id"], record["video_id"], record["playlist_id"]
            ))
            if cursor.rowcount == 0:
                raise RemoteStoreError(
                    "No stored test to grade",
                    details={"video_id": record["video_id"], "playlist_id": record["playlist_id"]}
                )

    # =========================================================================
    # Credits
    # =========================================================================

    def _ensure_credit_row(self, conn: sqlite3.Connection, user_id: str) -> None:
        conn.execute(
            "INSERT OR IGNORE INTO user_credits (user_id, credits) VALUES (?, ?)",
            (user_id, self.initial_credits)
        )

    async def get_credits(self, user_id: str) -> CreditBalance:
        return await self._run(self._get_credits, user_id)

    def _get_credits(self, user_id: str) -> CreditBalance:
        with self._transaction("read credits") as conn:
            self._ensure_credit_row(conn, user_id)
            row = conn.execute(
                "SELECT credits, last_daily_bonus_at FROM user_credits WHERE user_id = ?",
                (user_id,)
            ).fetchone()
            bonus = row["last_daily_bonus_at"]
            return CreditBalance(
                user_id=user_id,
                credits=row["credits"],
                last_daily_bonus_at=date.fromisoformat(bonus) if bonus else None
            )

    async def reserve_credits(self, user_id: str, cost: int, action: str) -> ReserveResult:
        return await self._run(self._reserve_credits, user_id, cost, action)

    def _reserve_credits(self, user_id: str, cost: int, action: str) -> ReserveResult:
        with self._transaction("reserve credits") as conn:
            self._ensure_credit_row(conn, user_id)
            cursor = conn.execute("""
                UPDATE user_credits SET credits = credits - ?
                WHERE user_id = ? AND credits - ? >= 0
            """, (cost, user_id, cost))
            balance = conn.execute(
                "SELECT credits FROM user_credits WHERE user_id = ?", (user_id,)
            ).fetchone()["credits"]

            if cursor.rowcount == 0:
                return ReserveResult(
                    success=False,
                    new_balance=balance,
                    message=f"Insufficient credits: {action} costs {cost}, balance is {balance}"
                )

            conn.execute("""
                INSERT INTO credit_transactions (user_id, action, amount, balance_after, created_at)
                VALUES (?, ?, ?, ?, ?)
            """, (user_id, action, -cost, balance, to_iso(utc_now())))
            return ReserveResult(success=True, new_balance=balance, message="")
