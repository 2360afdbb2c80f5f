"""
Thread-safe SQLite on-device cache for tube-tracker (the LocalStore).

The local store is disposable: once a user is signed in, everything in it
can be rebuilt from the remote store and YouTube. It exists so a playlist
opens instantly and works offline.

Schema:
    playlists:  One row per playlist id, ordered by last_accessed_at
    videos:     Composite key (id, playlist_id), replaced wholesale on refresh
    progress:   Pre-login shadow progress, key (video_id, playlist_id)
    notes:      Generated notes, key (video_id, playlist_id), JSON payload

Versioning:
    The schema script only ever adds tables and indices (IF NOT EXISTS), so
    opening a file written by an older version applies the script and bumps
    schema_version. A file written by a newer version is refused.

Usage:
    store = LocalStore(data_dir / "local.db")

    store.save_playlist(playlist.to_database_dict(), [v.to_database_dict() for v in videos])
    for row in store.get_videos(playlist_id):
        ...

All methods are synchronous and guarded by one lock; async callers run
them through asyncio.to_thread().
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from tube_tracker.core.exceptions import LocalStoreError


DATABASE_VERSION = 3


_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS playlists (
    id TEXT PRIMARY KEY,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    video_count INTEGER DEFAULT 0,
    last_accessed_at TEXT
);

CREATE TABLE IF NOT EXISTS videos (
    id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    title TEXT,
    thumbnail_url TEXT,
    channel_title TEXT,
    position INTEGER NOT NULL,
    PRIMARY KEY (id, playlist_id)
);

CREATE TABLE IF NOT EXISTS progress (
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    completed INTEGER NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (video_id, playlist_id)
);

CREATE TABLE IF NOT EXISTS notes (
    video_id TEXT NOT NULL,
    playlist_id TEXT NOT NULL,
    payload TEXT NOT NULL,  -- JSON, Notes.to_database_dict()
    created_at TEXT NOT NULL,
    PRIMARY KEY (video_id, playlist_id)
);

CREATE INDEX IF NOT EXISTS idx_playlists_last_accessed ON playlists(last_accessed_at);
CREATE INDEX IF NOT EXISTS idx_videos_playlist ON videos(playlist_id);
CREATE INDEX IF NOT EXISTS idx_progress_playlist ON progress(playlist_id);
CREATE INDEX IF NOT EXISTS idx_notes_playlist ON notes(playlist_id);
CREATE INDEX IF NOT EXISTS idx_notes_created ON notes(created_at);
"""


class LocalStore:
    """
    Thread-safe SQLite cache of playlists, videos, shadow progress and notes.

    Uses a single persistent connection with thread locking for safety.
    All public methods acquire self._lock before executing, and every
    write runs in a transaction that is rolled back on error.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None

        if not db_path.parent.exists():
            try:
                db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise LocalStoreError(
                    f"Cannot create directory for local store: {db_path.parent}",
                    details={"path": str(db_path.parent), "original_error": str(e)}
                ) from e

        try:
            self._init_database()
        except sqlite3.Error as e:
            raise LocalStoreError(
                f"Failed to initialize local store: {e}",
                details={"path": str(db_path)}
            ) from e

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Get the persistent database connection.

        The connection is created once and reused for all operations.
        """
        if self._conn is None:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=30.0,
                check_same_thread=False  # We handle thread safety with _lock
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA journal_mode = WAL")
        yield self._conn

    @contextmanager
    def _transaction(self, operation: str) -> Generator[sqlite3.Connection, None, None]:
        """
        Run a block under the lock inside one transaction.

        Commits on success, rolls back on any exception, and converts
        sqlite3 errors into LocalStoreError.
        """
        with self._lock:
            with self._get_connection() as conn:
                try:
                    with conn:
                        yield conn
                except sqlite3.Error as e:
                    raise LocalStoreError(
                        f"Local store {operation} failed: {e}",
                        details={"operation": operation, "path": str(self.db_path)}
                    ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'schema_version'"
            )
            has_version_table = cursor.fetchone() is not None

            if has_version_table:
                row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
                if row is not None and row[0] > DATABASE_VERSION:
                    raise LocalStoreError(
                        f"Local store was written by a newer version "
                        f"(schema {row[0]}, this build supports {DATABASE_VERSION})",
                        details={"expected": DATABASE_VERSION, "actual": row[0]}
                    )

            conn.executescript(_SCHEMA_SQL)
            conn.execute("DELETE FROM schema_version")
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (DATABASE_VERSION,))
            conn.commit()

    def schema_version(self) -> int:
        with self._transaction("read schema version") as conn:
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            return row[0] if row else 0

    # =========================================================================
    # Playlist Operations
    # =========================================================================

    def get_playlists(self) -> list[dict[str, Any]]:
        """All cached playlists, most recently accessed first."""
        with self._transaction("list playlists") as conn:
            cursor = conn.execute(
                "SELECT * FROM playlists ORDER BY last_accessed_at DESC, id"
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_playlist(self, playlist_id: str) -> dict[str, Any] | None:
        with self._transaction("read playlist") as conn:
            cursor = conn.execute("SELECT * FROM playlists WHERE id = ?", (playlist_id,))
            row = cursor.fetchone()
            return dict(row) if row else None

    def playlist_exists(self, playlist_id: str) -> bool:
        with self._transaction("check playlist") as conn:
            cursor = conn.execute("SELECT 1 FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.fetchone() is not None

    def save_playlist(self, playlist: dict[str, Any], videos: list[dict[str, Any]]) -> None:
        """
        Insert or fully overwrite a playlist together with its videos.

        Used when a playlist is added for the first time. Playlist and
        videos are written in one transaction.
        """
        with self._transaction("save playlist") as conn:
            conn.execute("""
                INSERT INTO playlists (id, title, description, thumbnail_url, video_count, last_accessed_at)
                VALUES (:id, :title, :description, :thumbnail_url, :video_count, :last_accessed_at)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    description = excluded.description,
                    thumbnail_url = excluded.thumbnail_url,
                    video_count = excluded.video_count,
                    last_accessed_at = excluded.last_accessed_at
            """, playlist)
            self._replace_videos(conn, playlist["id"], videos)

    def merge_remote_playlists(self, playlists: list[dict[str, Any]]) -> int:
        """
        Merge a signed-in user's remote playlist list into the cache.

        Missing playlists are inserted. For playlists already cached only
        last_accessed_at is overwritten (the remote value is fresher); the
        local title/description/thumbnail/video_count are left alone.

        Returns:
            Number of playlists that were not cached before.
        """
        inserted = 0
        with self._transaction("merge remote playlists") as conn:
            for playlist in playlists:
                exists = conn.execute(
                    "SELECT 1 FROM playlists WHERE id = ?", (playlist["id"],)
                ).fetchone() is not None
                conn.execute("""
                    INSERT INTO playlists (id, title, description, thumbnail_url, video_count, last_accessed_at)
                    VALUES (:id, :title, :description, :thumbnail_url, :video_count, :last_accessed_at)
                    ON CONFLICT(id) DO UPDATE SET
                        last_accessed_at = excluded.last_accessed_at
                """, playlist)
                if not exists:
                    inserted += 1
        return inserted

    def touch_playlist(self, playlist_id: str, accessed_at: str) -> bool:
        """Bump last_accessed_at. Returns False if the playlist is not cached."""
        with self._transaction("touch playlist") as conn:
            cursor = conn.execute(
                "UPDATE playlists SET last_accessed_at = ? WHERE id = ?",
                (accessed_at, playlist_id)
            )
            return cursor.rowcount > 0

    def apply_refresh(
        self,
        playlist_id: str,
        title: str,
        thumbnail_url: str,
        video_count: int,
        accessed_at: str,
        videos: list[dict[str, Any]]
    ) -> bool:
        """
        Store a fresh YouTube fetch for a cached playlist.

        Updates the refreshable playlist fields and replaces the video set
        wholesale, all in one transaction. A playlist that is no longer
        cached (deleted while the fetch was running) is left absent.

        Returns:
            True if the playlist was cached and updated, False otherwise.
        """
        with self._transaction("refresh playlist") as conn:
            cursor = conn.execute("""
                UPDATE playlists SET
                    title = ?, thumbnail_url = ?, video_count = ?, last_accessed_at = ?
                WHERE id = ?
            """, (title, thumbnail_url, video_count, accessed_at, playlist_id))
            if cursor.rowcount == 0:
                return False
            self._replace_videos(conn, playlist_id, videos)
            return True

    def delete_playlist(self, playlist_id: str) -> bool:
        """
        Delete a playlist with its videos, shadow progress and notes.

        All four deletes run in one transaction: either everything for the
        playlist is gone or nothing is.

        Returns:
            True if the playlist row existed.
        """
        with self._transaction("delete playlist") as conn:
            conn.execute("DELETE FROM videos WHERE playlist_id = ?", (playlist_id,))
            conn.execute("DELETE FROM progress WHERE playlist_id = ?", (playlist_id,))
            conn.execute("DELETE FROM notes WHERE playlist_id = ?", (playlist_id,))
            cursor = conn.execute("DELETE FROM playlists WHERE id = ?", (playlist_id,))
            return cursor.rowcount > 0

    # =========================================================================
    # Video Operations
    # =========================================================================

    def _replace_videos(
        self,
        conn: sqlite3.Connection,
        playlist_id: str,
        videos: list[dict[str, Any]]
    ) -> None:
        """Upsert every video by (id, playlist_id) and drop the ones no longer listed."""
        keep_ids = [video["id"] for video in videos]
        if keep_ids:
            placeholders = ",".join("?" for _ in keep_ids)
            conn.execute(
                f"DELETE FROM videos WHERE playlist_id = ? AND id NOT IN ({placeholders})",
                (playlist_id, *keep_ids)
            )
        else:
            conn.execute("DELETE FROM videos WHERE playlist_id = ?", (playlist_id,))

        conn.executemany("""
            INSERT INTO videos (id, playlist_id, title, thumbnail_url, channel_title, position)
            VALUES (:id, :playlist_id, :title, :thumbnail_url, :channel_title, :position)
            ON CONFLICT(id, playlist_id) DO UPDATE SET
                title = excluded.title,
                thumbnail_url = excluded.thumbnail_url,
                channel_title = excluded.channel_title,
                position = excluded.position
        """, [{**video, "playlist_id": playlist_id} for video in videos])

    def get_videos(self, playlist_id: str) -> list[dict[str, Any]]:
        """Videos of a playlist ordered by position."""
        with self._transaction("list videos") as conn:
            cursor = conn.execute(
                "SELECT * FROM videos WHERE playlist_id = ? ORDER BY position, id",
                (playlist_id,)
            )
            return [dict(row) for row in cursor.fetchall()]

    # =========================================================================
    # Shadow Progress
    # =========================================================================

    def get_progress(self, playlist_id: str) -> list[dict[str, Any]]:
        with self._transaction("list progress") as conn:
            cursor = conn.execute(
                "SELECT video_id, playlist_id, completed, updated_at FROM progress WHERE playlist_id = ?",
                (playlist_id,)
            )
            return [
                {**dict(row), "completed": bool(row["completed"]), "user_id": None}
                for row in cursor.fetchall()
            ]

    def put_progress(self, record: dict[str, Any]) -> None:
        """
        Upsert one shadow progress row, keeping whichever write is newer.
        """
        with self._transaction("save progress") as conn:
            conn.execute("""
                INSERT INTO progress (video_id, playlist_id, completed, updated_at)
                VALUES (:video_id, :playlist_id, :completed, :updated_at)
                ON CONFLICT(video_id, playlist_id) DO UPDATE SET
                    completed = excluded.completed,
                    updated_at = excluded.updated_at
                WHERE excluded.updated_at >= progress.updated_at
            """, {**record, "completed": 1 if record["completed"] else 0})

    def delete_progress(self, playlist_id: str, video_ids: list[str] | None = None) -> int:
        """
        Delete shadow progress for a playlist.

        Args:
            playlist_id: Playlist whose rows are removed.
            video_ids: Only these videos, or every row of the playlist if None.

        Returns:
            Number of rows removed.
        """
        with self._transaction("delete progress") as conn:
            if video_ids is None:
                cursor = conn.execute(
                    "DELETE FROM progress WHERE playlist_id = ?", (playlist_id,)
                )
            elif not video_ids:
                return 0
            else:
                placeholders = ",".join("?" for _ in video_ids)
                cursor = conn.execute(
                    f"DELETE FROM progress WHERE playlist_id = ? AND video_id IN ({placeholders})",
                    (playlist_id, *video_ids)
                )
            return cursor.rowcount

    # =========================================================================
    # Notes
    # =========================================================================

    def get_notes(self, playlist_id: str) -> list[dict[str, Any]]:
        with self._transaction("list notes") as conn:
            cursor = conn.execute(
                "SELECT payload FROM notes WHERE playlist_id = ?", (playlist_id,)
            )
            return [json.loads(row["payload"]) for row in cursor.fetchall()]

    def put_notes(self, notes: dict[str, Any]) -> None:
        """Replace the notes for (video_id, playlist_id) with a new artifact."""
        with self._transaction("save notes") as conn:
            conn.execute("""
                INSERT INTO notes (video_id, playlist_id, payload, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(video_id, playlist_id) DO UPDATE SET
                    payload = excluded.payload,
                    created_at = excluded.created_at
            """, (
                notes["video_id"], notes["playlist_id"],
                json.dumps(notes), notes["created_at"]
            ))
