"""
RemoteStore contract for tube-tracker.

The remote store is authoritative for every user-scoped record: playlist
ownership, progress, notes, tests and the credit balance. It also hosts
the shared generation cache. Two backends implement this contract:

    SqliteRemoteStore  - self-hosted relational file (tube_tracker.remote.sqlite_store)
    RestRemoteStore    - PostgREST / Supabase project (tube_tracker.remote.rest_store)

Tables and composite keys (identical in both backends):

    user_playlists      (user_id, playlist_id)
    user_progress       (user_id, video_id, playlist_id)
    user_notes          (user_id, video_id, playlist_id)
    cached_video_notes  (video_id, playlist_id)
    video_tests         (user_id, video_id, playlist_id)
    cached_playlists    (playlist_id)

Every write is a key-based upsert that replaces the whole row, so
retrying any write is safe. Failures are raised as RemoteStoreError
(is_transient=True for connectivity problems).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from tube_tracker.core.config import Config
from tube_tracker.core.exceptions import ConfigError, TubeTrackerError
from tube_tracker.core.models import CreditBalance, ReserveResult


@dataclass(frozen=True)
class CacheTable:
    """
    Where one artifact kind lives in the remote store.

    Attributes:
        name: Table name.
        key_columns: Column names matching the kind's key tuple, in order.
    """

    name: str
    key_columns: tuple[str, ...]

    def key_dict(self, key: tuple[str, ...]) -> dict[str, str]:
        if len(key) != len(self.key_columns):
            raise TubeTrackerError(
                f"Cache key for {self.name} needs {len(self.key_columns)} parts, got {len(key)}",
                details={"table": self.name, "key": list(key)}
            )
        return dict(zip(self.key_columns, key))


# Artifact kind -> cache table. Keys are the GenerationCache key tuples.
CACHE_TABLES: dict[str, CacheTable] = {
    "notes": CacheTable("cached_video_notes", ("video_id", "playlist_id")),
    "test": CacheTable("video_tests", ("video_id", "playlist_id", "user_id")),
    "playlist": CacheTable("cached_playlists", ("playlist_id",)),
}


def cache_table(kind: str) -> CacheTable:
    try:
        return CACHE_TABLES[kind]
    except KeyError:
        raise TubeTrackerError(
            f"Unknown cache kind: {kind}",
            details={"kind": kind}
        ) from None


@dataclass(frozen=True)
class CacheEntry:
    """
    One cached artifact row.

    Attributes:
        payload: The artifact's cache dict (key columns included).
        cached_at: When the row was last written.
    """

    payload: dict[str, Any]
    cached_at: datetime


class RemoteStore(ABC):
    """
    Async interface to the authoritative store.

    Playlist dicts use the LocalStore layout (id, title, description,
    thumbnail_url, video_count, last_accessed_at). Progress, notes and test
    dicts use the to_database_dict()/to_cache_dict() layout of their models.
    """

    # =========================================================================
    # Playlist ownership
    # =========================================================================

    @abstractmethod
    async def list_user_playlists(self, user_id: str) -> list[dict[str, Any]]:
        """The user's playlists, most recently accessed first."""

    @abstractmethod
    async def save_user_playlist(self, user_id: str, playlist: dict[str, Any]) -> None:
        """Upsert the user's ownership row for a playlist."""

    @abstractmethod
    async def delete_user_playlist(self, user_id: str, playlist_id: str) -> None:
        """Delete the user's ownership, progress and notes rows for a playlist."""

    # =========================================================================
    # Progress
    # =========================================================================

    @abstractmethod
    async def get_progress(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def upsert_progress(self, records: list[dict[str, Any]]) -> None:
        """
        Upsert progress rows keyed (user_id, video_id, playlist_id).

        Either every row is written or the call raises.
        """

    # =========================================================================
    # Per-user notes
    # =========================================================================

    @abstractmethod
    async def get_user_notes(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    async def upsert_user_notes(self, user_id: str, notes: dict[str, Any]) -> None:
        ...

    # =========================================================================
    # Generation cache
    # =========================================================================

    @abstractmethod
    async def get_cached(self, kind: str, key: tuple[str, ...]) -> CacheEntry | None:
        ...

    @abstractmethod
    async def put_cached(self, kind: str, key: tuple[str, ...], payload: dict[str, Any]) -> None:
        """Replace the cached artifact for key (no field-level merge)."""

    # =========================================================================
    # Tests
    # =========================================================================

    @abstractmethod
    async def get_test_results(self, user_id: str, playlist_id: str) -> list[dict[str, Any]]:
        """Graded test records (score present) of the user for a playlist."""

    @abstractmethod
    async def save_test_result(self, record: dict[str, Any]) -> None:
        """Persist score, answers and performance level on an existing test record."""

    # =========================================================================
    # Credits
    # =========================================================================

    @abstractmethod
    async def get_credits(self, user_id: str) -> CreditBalance:
        ...

    @abstractmethod
    async def reserve_credits(self, user_id: str, cost: int, action: str) -> ReserveResult:
        """
        Atomically check and decrement the balance.

        A negative cost is a refund and always succeeds. On insufficient
        balance returns success=False and leaves the balance unchanged.
        """

    async def close(self) -> None:
        """Release connections. Default is a no-op."""


def create_remote_store(config: Config) -> RemoteStore:
    """
    Build the backend selected by `remote.backend`.

    Raises:
        ConfigError: If the selected backend is missing required settings.
    """
    remote = config.remote
    if remote.backend == "sqlite":
        from tube_tracker.remote.sqlite_store import SqliteRemoteStore

        if remote.database is None:
            raise ConfigError(
                "remote.database is required for the sqlite backend",
                details={"field": "remote.database"}
            )
        return SqliteRemoteStore(remote.database, initial_credits=remote.initial_credits)

    if remote.backend == "rest":
        from tube_tracker.remote.rest_store import RestRemoteStore

        if not remote.url or not remote.api_key:
            raise ConfigError(
                "remote.url and remote.api_key are required for the rest backend",
                details={"field": "remote.url"}
            )
        return RestRemoteStore(remote.url, remote.api_key)

    raise ConfigError(
        f"Unknown remote backend: {remote.backend}",
        details={"field": "remote.backend", "value": remote.backend}
    )
