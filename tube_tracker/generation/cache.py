"""
Content-addressed cache in front of paid generation and platform calls.

Artifacts are stored in the remote store keyed by:

    NOTES     (video_id, playlist_id)             -> Notes
    TEST      (video_id, playlist_id, user_id)    -> TestRecord
    PLAYLIST  (playlist_id,)                      -> PlaylistBundle

Notes and playlist fetches are shared across users; tests are per user.

Semantics of get_or_generate():
    - Not forced: a hit is returned unchanged and the generator is not called.
    - Miss or forced: the generator is awaited, then its result replaces
      the row for the key (no field-level merge).
    - Generator failure: nothing is written and the error propagates.

Cache I/O is best-effort: a failed read is logged and treated as a miss,
a failed write is logged and the fresh artifact is still returned.
"""

from datetime import timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, Union

from tube_tracker.core.config import CacheConfig
from tube_tracker.core.exceptions import TubeTrackerError
from tube_tracker.core.logger import get_logger
from tube_tracker.generation.models import Notes, TestRecord
from tube_tracker.remote.base import RemoteStore
from tube_tracker.utils import utc_now
from tube_tracker.youtube.models import PlaylistBundle

logger = get_logger(__name__)


Artifact = Union[Notes, TestRecord, PlaylistBundle]


class CacheKind(str, Enum):
    NOTES = "notes"
    TEST = "test"
    PLAYLIST = "playlist"


_DECODERS: dict[CacheKind, Callable[[dict[str, Any]], Artifact]] = {
    CacheKind.NOTES: Notes.from_cache_dict,
    CacheKind.TEST: TestRecord.from_cache_dict,
    CacheKind.PLAYLIST: PlaylistBundle.from_cache_dict,
}


class GenerationCache:
    """
    Read-through cache for generated artifacts.

    Args:
        remote: Store holding the cache tables.
        max_age: Optional per-kind maximum entry age. Older entries count
                 as misses. Kinds without an entry never expire.
    """

    def __init__(
        self,
        remote: RemoteStore,
        max_age: dict[CacheKind, timedelta] | None = None
    ) -> None:
        self._remote = remote
        self._max_age = dict(max_age or {})

    @classmethod
    def from_config(cls, remote: RemoteStore, config: CacheConfig) -> "GenerationCache":
        max_age = {}
        if config.playlist_max_age_hours > 0:
            max_age[CacheKind.PLAYLIST] = timedelta(hours=config.playlist_max_age_hours)
        return cls(remote, max_age=max_age)

    async def lookup(self, kind: CacheKind, key: tuple[str, ...]) -> Artifact | None:
        """
        Return the cached artifact for key, or None on miss.

        Expired entries, unreadable rows and store failures all count as a miss.
        """
        try:
            entry = await self._remote.get_cached(kind.value, key)
        except TubeTrackerError as e:
            logger.warning(f"Cache read failed for {kind.value} {key}: {e}")
            return None

        if entry is None:
            return None

        max_age = self._max_age.get(kind)
        if max_age is not None and utc_now() - entry.cached_at > max_age:
            logger.debug(f"Cache entry for {kind.value} {key} expired")
            return None

        try:
            return _DECODERS[kind](entry.payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable cache entry for {kind.value} {key}: {e}")
            return None

    async def store(self, kind: CacheKind, key: tuple[str, ...], artifact: Artifact) -> bool:
        """
        Replace the cached artifact for key.

        Returns:
            False if the write failed (logged), True otherwise.
        """
        try:
            await self._remote.put_cached(kind.value, key, artifact.to_cache_dict())
        except TubeTrackerError as e:
            logger.warning(f"Cache write failed for {kind.value} {key}: {e}")
            return False
        return True

    async def get_or_generate(
        self,
        kind: CacheKind,
        key: tuple[str, ...],
        force_regenerate: bool,
        generator_fn: Callable[[], Awaitable[Artifact]]
    ) -> Artifact:
        """
        Return a cached artifact or generate, store and return a new one.

        Args:
            kind: Artifact kind.
            key: Key tuple for the kind (see module docstring).
            force_regenerate: Skip the lookup and always call generator_fn.
            generator_fn: Zero-argument coroutine function producing the artifact.

        Raises:
            Whatever generator_fn raises; the cache is untouched in that case.
        """
        if not force_regenerate:
            cached = await self.lookup(kind, key)
            if cached is not None:
                logger.debug(f"Cache hit for {kind.value} {key}")
                return cached

        artifact = await generator_fn()
        await self.store(kind, key, artifact)
        return artifact
