"""
Reconciliation between the on-device cache and the authoritative store.

Ownership rules:
    - YouTube is authoritative for playlist titles, thumbnails and video lists.
    - The remote store is authoritative for everything user-scoped.
    - The local store is a disposable cache plus the pre-login shadow of
      progress. Anything in it can be rebuilt.

Opening a playlist:
    1. Local videos, progress and notes are read and handed to the shell
       immediately (on_local_snapshot).
    2. A background refresh against YouTube is always started. There is
       no freshness short-circuit.
    3. For a signed-in user, shadow progress is migrated (write remote,
       confirm, then delete local), and remote progress, notes and test
       results are merged in. Remote progress replaces the local map;
       remote notes override local notes for the same video.

Failure policy:
    Background work (refresh, migration, remote delete, ownership save)
    is logged to sync_failures.log and never raises. Foreground writes
    (toggle while signed in, add playlist) raise typed errors.
"""

import asyncio
from dataclasses import replace
from typing import Any, Callable, Protocol, TypeVar

from tube_tracker.core.database import LocalStore
from tube_tracker.core.exceptions import (
    InvalidPlaylistError,
    NotFoundError,
    PartialSyncError,
    TubeTrackerError,
)
from tube_tracker.core.identity import User
from tube_tracker.core.logger import get_logger, log_sync_failure
from tube_tracker.core.models import ProgressRecord
from tube_tracker.credits.ledger import CreditLedger
from tube_tracker.generation.cache import CacheKind, GenerationCache
from tube_tracker.generation.models import Notes, TestRecord
from tube_tracker.remote.base import RemoteStore
from tube_tracker.sync.models import PlaylistSnapshot, RefreshResult
from tube_tracker.sync.tasks import BackgroundTasks
from tube_tracker.utils import parse_iso, to_iso, utc_now
from tube_tracker.youtube.client import extract_playlist_id
from tube_tracker.youtube.models import Playlist, PlaylistBundle, Video

logger = get_logger(__name__)

T = TypeVar("T")


class PlaylistFetcher(Protocol):
    """Anything that can fetch a playlist from the platform (YouTubeClient)."""

    async def fetch_playlist(self, playlist_id: str) -> PlaylistBundle:
        ...


class SyncCoordinator:
    """
    Orchestrates LocalStore, RemoteStore, the playlist cache and YouTube.

    The coordinator holds no per-playlist state: every call returns a new
    immutable snapshot or list, and the caller keeps its own copy.
    """

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        cache: GenerationCache,
        fetcher: PlaylistFetcher,
        tasks: BackgroundTasks | None = None
    ) -> None:
        self._store = store
        self._remote = remote
        self._cache = cache
        self._fetcher = fetcher
        self.tasks = tasks or BackgroundTasks()

    async def _local(self, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking LocalStore call off the event loop."""
        return await asyncio.to_thread(func, *args)

    async def _playlist_index(self) -> list[Playlist]:
        rows = await self._local(self._store.get_playlists)
        return [Playlist.from_database_dict(row) for row in rows]

    # =========================================================================
    # Playlist index
    # =========================================================================

    async def load_playlist_index(self, user: User | None = None) -> list[Playlist]:
        """
        Return cached playlists, most recently accessed first.

        For a signed-in user the remote playlist list is merged in first:
        missing playlists are inserted and, for existing ones, only
        last_accessed_at is taken from the remote row. Never writes to the
        remote store. A remote failure is logged and the local view returned.
        """
        if user is not None:
            try:
                remote_rows = await self._remote.list_user_playlists(user.id)
            except TubeTrackerError as e:
                logger.warning(f"Could not load remote playlists, showing local copy: {e}")
            else:
                rows = [_normalize_playlist_row(row) for row in remote_rows]
                inserted = await self._local(self._store.merge_remote_playlists, rows)
                if inserted:
                    logger.info(f"Added {inserted} playlists from your account")

        return await self._playlist_index()

    # =========================================================================
    # Open / refresh
    # =========================================================================

    async def open_playlist(
        self,
        playlist_id: str,
        user: User | None = None,
        on_local_snapshot: Callable[[PlaylistSnapshot], None] | None = None
    ) -> PlaylistSnapshot:
        """
        Open a playlist: local snapshot first, then reconcile with the remote store.

        Args:
            playlist_id: Playlist to open.
            user: Signed-in user, or None for anonymous use.
            on_local_snapshot: Called with the local-only snapshot before any
                               remote round trip, for immediate display.

        Returns:
            The reconciled snapshot. Its `refresh` attribute is the background
            refresh task; await it (or drain()) to observe the fresh video list.
        """
        snapshot = await self._local_snapshot(playlist_id)

        refresh_task = self.tasks.spawn(
            self.refresh(playlist_id, force_refresh=False),
            name=f"refresh:{playlist_id}"
        )
        snapshot = replace(snapshot, refresh=refresh_task)

        if on_local_snapshot is not None:
            on_local_snapshot(snapshot)

        if user is None:
            return snapshot

        # a playlist added while signed out gets its ownership row here
        if snapshot.playlist is not None:
            await self._save_ownership(user, snapshot.playlist.to_database_dict())

        shadow_rows = await self._local(self._store.get_progress, playlist_id)
        if shadow_rows:
            try:
                await self._migrate_progress(
                    user, playlist_id,
                    [ProgressRecord.from_database_dict(row) for row in shadow_rows]
                )
            except PartialSyncError as e:
                log_sync_failure(logger, "migrate_progress", playlist_id, str(e), user_id=user.id)

        try:
            remote_progress = await self._remote.get_progress(user.id, playlist_id)
            remote_notes = await self._remote.get_user_notes(user.id, playlist_id)
            remote_tests = await self._remote.get_test_results(user.id, playlist_id)
        except TubeTrackerError as e:
            logger.warning(f"Remote data for playlist {playlist_id} unavailable, showing local copy: {e}")
            return snapshot

        progress = {row["video_id"]: bool(row["completed"]) for row in remote_progress}
        notes = dict(snapshot.notes)
        for row in remote_notes:
            try:
                remote_note = Notes.from_cache_dict(row, user_id=user.id)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable remote notes row for {playlist_id}: {e}")
                continue
            notes[remote_note.video_id] = remote_note
        test_results = {}
        for row in remote_tests:
            try:
                result = TestRecord.from_cache_dict(row).result
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable remote test row for {playlist_id}: {e}")
                continue
            if result is not None:
                test_results[result.video_id] = result

        return replace(
            snapshot,
            progress=progress,
            notes=notes,
            test_results=test_results,
            remote_synced=True
        )

    async def _local_snapshot(self, playlist_id: str) -> PlaylistSnapshot:
        playlist_row = await self._local(self._store.get_playlist, playlist_id)
        video_rows = await self._local(self._store.get_videos, playlist_id)
        progress_rows = await self._local(self._store.get_progress, playlist_id)
        notes_rows = await self._local(self._store.get_notes, playlist_id)

        notes = [Notes.from_database_dict(row) for row in notes_rows]
        return PlaylistSnapshot(
            playlist=Playlist.from_database_dict(playlist_row) if playlist_row else None,
            videos=tuple(Video.from_database_dict(row) for row in video_rows),
            progress={row["video_id"]: bool(row["completed"]) for row in progress_rows},
            notes={note.video_id: note for note in notes},
        )

    async def _migrate_progress(
        self,
        user: User,
        playlist_id: str,
        records: list[ProgressRecord]
    ) -> None:
        """
        Move pre-login shadow progress into the user's remote progress.

        The local rows are deleted only after the remote upsert succeeded,
        so a failure leaves them in place for the next signed-in open.
        Re-running after a partial failure is safe: remote writes are
        keyed upserts.

        Raises:
            PartialSyncError: If the remote upsert failed.
        """
        try:
            await self._remote.upsert_progress(
                [record.for_user(user.id).to_database_dict() for record in records]
            )
        except TubeTrackerError as e:
            raise PartialSyncError(
                f"Progress migration failed, {len(records)} local rows kept: {e}",
                details={"playlist_id": playlist_id, "rows": len(records)}
            ) from e

        try:
            await self._local(
                self._store.delete_progress,
                playlist_id,
                [record.video_id for record in records]
            )
        except TubeTrackerError as e:
            # rows stay behind and are migrated again on the next open
            logger.warning(f"Migrated progress but could not clear local rows: {e}")
            return

        logger.info(f"Migrated {len(records)} progress rows for playlist {playlist_id}")

    async def refresh(self, playlist_id: str, force_refresh: bool = False) -> RefreshResult | None:
        """
        Re-fetch a cached playlist from YouTube (through the playlist cache).

        Updates title, thumbnail, video count and last access time and
        replaces the video list, all in one local transaction. A playlist
        deleted while the fetch was running stays deleted.

        Returns:
            The new videos and playlist index, or None if the refresh failed
            (logged) or the playlist is no longer cached.
        """
        try:
            bundle = await self._cache.get_or_generate(
                CacheKind.PLAYLIST,
                (playlist_id,),
                force_refresh,
                lambda: self._fetcher.fetch_playlist(playlist_id)
            )
            applied = await self._local(
                self._store.apply_refresh,
                playlist_id,
                bundle.playlist.title,
                bundle.playlist.thumbnail_url,
                bundle.playlist.video_count,
                to_iso(utc_now()),
                [video.to_database_dict() for video in bundle.videos]
            )
            if not applied:
                logger.debug(f"Playlist {playlist_id} no longer cached, refresh discarded")
                return None

            playlist_row = await self._local(self._store.get_playlist, playlist_id)
            video_rows = await self._local(self._store.get_videos, playlist_id)
            playlists = await self._playlist_index()
        except TubeTrackerError as e:
            log_sync_failure(logger, "refresh", playlist_id, str(e))
            return None

        return RefreshResult(
            playlist=Playlist.from_database_dict(playlist_row),
            videos=tuple(Video.from_database_dict(row) for row in video_rows),
            playlists=tuple(playlists)
        )

    # =========================================================================
    # Add / delete
    # =========================================================================

    async def add_playlist(
        self,
        source: str,
        user: User | None = None,
        ledger: CreditLedger | None = None
    ) -> Playlist:
        """
        Add a playlist from a URL or bare id.

        An already cached playlist only has its access time bumped. A new
        one is fetched from YouTube (paid as "search" when a ledger is
        given), stored in the shared playlist cache, inserted locally with
        its videos and, for a signed-in user, recorded as owned remotely.

        Raises:
            InvalidPlaylistError: If no playlist id can be extracted.
            InsufficientCreditsError: If the ledger refuses the search.
            PlaylistNotFoundError, YouTubeError, TransientNetworkError: On fetch failure.
        """
        playlist_id = extract_playlist_id(source)
        if playlist_id is None:
            raise InvalidPlaylistError(
                "Invalid YouTube Playlist URL",
                details={"source": source}
            )

        accessed_at = to_iso(utc_now())
        existing = await self._local(self._store.get_playlist, playlist_id)
        if existing is not None:
            await self._local(self._store.touch_playlist, playlist_id, accessed_at)
            if user is not None:
                await self._save_ownership(
                    user, {**existing, "last_accessed_at": accessed_at}
                )
            return Playlist.from_database_dict({**existing, "last_accessed_at": accessed_at})

        async def fetch() -> PlaylistBundle:
            return await self._fetcher.fetch_playlist(playlist_id)

        if ledger is not None:
            bundle = await ledger.metered("search", fetch)
        else:
            bundle = await fetch()

        await self._cache.store(CacheKind.PLAYLIST, (playlist_id,), bundle)

        playlist = bundle.playlist.touched(parse_iso(accessed_at))
        await self._local(
            self._store.save_playlist,
            playlist.to_database_dict(),
            [video.to_database_dict() for video in bundle.videos]
        )
        logger.info(f"Added playlist '{playlist.title}' ({len(bundle.videos)} videos)")

        if user is not None:
            await self._save_ownership(user, playlist.to_database_dict())

        return playlist

    async def _save_ownership(self, user: User, playlist_row: dict[str, Any]) -> None:
        """Upsert the user's ownership row. Failure is logged, not raised."""
        try:
            await self._remote.save_user_playlist(user.id, playlist_row)
        except TubeTrackerError as e:
            log_sync_failure(
                logger, "save_ownership", playlist_row["id"], str(e), user_id=user.id
            )

    async def delete_playlist(self, playlist_id: str, user: User | None = None) -> None:
        """
        Delete a playlist locally (all-or-nothing), then remotely.

        The remote delete is not rolled back into the local store on
        failure; it is written to sync_failures.log for a later retry.
        """
        await self._local(self._store.delete_playlist, playlist_id)
        logger.info(f"Deleted playlist {playlist_id} locally")

        if user is None:
            return

        try:
            await self._remote.delete_user_playlist(user.id, playlist_id)
        except TubeTrackerError as e:
            log_sync_failure(logger, "delete_remote", playlist_id, str(e), user_id=user.id)

    # =========================================================================
    # Progress
    # =========================================================================

    async def set_progress(
        self,
        playlist_id: str,
        video_id: str,
        completed: bool,
        user: User | None = None
    ) -> ProgressRecord:
        """
        Write one progress record: remotely when signed in, to the local shadow otherwise.

        Raises:
            RemoteStoreError / LocalStoreError: If the write failed.
        """
        record = ProgressRecord(
            user_id=user.id if user else None,
            video_id=video_id,
            playlist_id=playlist_id,
            completed=completed,
            updated_at=utc_now(),
        )
        if user is not None:
            await self._remote.upsert_progress([record.to_database_dict()])
        else:
            await self._local(self._store.put_progress, record.to_database_dict())
        return record

    async def toggle_progress(
        self,
        snapshot: PlaylistSnapshot,
        video_id: str,
        user: User | None = None
    ) -> PlaylistSnapshot:
        """
        Flip a video's watched state.

        Returns:
            A new snapshot with the flipped state. The given snapshot is unchanged.

        Raises:
            NotFoundError: If the snapshot has no playlist.
        """
        if snapshot.playlist is None:
            raise NotFoundError(
                "Cannot mark progress on a playlist that is not loaded",
                details={"video_id": video_id}
            )
        completed = not snapshot.is_completed(video_id)
        await self.set_progress(snapshot.playlist.id, video_id, completed, user)
        return snapshot.with_progress(video_id, completed)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def drain(self) -> None:
        """Wait for every background refresh to finish."""
        await self.tasks.drain()

    async def close(self) -> None:
        """Cancel outstanding background work."""
        await self.tasks.cancel()


def _normalize_playlist_row(row: dict[str, Any]) -> dict[str, Any]:
    """Remote playlist row in LocalStore layout with a canonical timestamp."""
    accessed = parse_iso(row.get("last_accessed_at")) or utc_now()
    return {
        "id": row["id"],
        "title": row.get("title") or "",
        "description": row.get("description") or "",
        "thumbnail_url": row.get("thumbnail_url") or "",
        "video_count": int(row.get("video_count") or 0),
        "last_accessed_at": to_iso(accessed),
    }
