"""
Study notes and quizzes for playlist videos.

Notes and tests are paid, cached artifacts:

    generate_notes -> metered "notes", cached per (video, playlist), stored
                      locally and (signed in) in the user's remote notes
    generate_test  -> metered "test", cached per (video, playlist, user),
                      stored ungraded until submit_test() scores it

Cost policy on cache hits (credits.charge_on_cache_hit):
    true  - every explicit request is charged, even when served from cache
    false - a non-forced request answered from cache is free
A forced regeneration is always charged.
"""

import asyncio
from typing import Awaitable, Callable, Protocol, TypeVar

from tube_tracker.core.database import LocalStore
from tube_tracker.core.exceptions import NotFoundError, TubeTrackerError, UnauthorizedError
from tube_tracker.core.identity import User
from tube_tracker.core.logger import get_logger, log_sync_failure
from tube_tracker.credits.ledger import CreditLedger
from tube_tracker.generation.cache import CacheKind, GenerationCache
from tube_tracker.generation.models import Notes, TestRecord, TestResult
from tube_tracker.remote.base import RemoteStore
from tube_tracker.youtube.models import Video

logger = get_logger(__name__)

T = TypeVar("T")


class StudyGenerator(Protocol):
    """The generation capability (GeneratorClient)."""

    async def generate_notes(self, video: Video, playlist_id: str) -> Notes:
        ...

    async def generate_test(self, video: Video, playlist_id: str, user_id: str) -> TestRecord:
        ...


class StudyService:
    """Generates, caches, stores and grades notes and tests."""

    def __init__(
        self,
        store: LocalStore,
        remote: RemoteStore,
        cache: GenerationCache,
        generator: StudyGenerator,
        charge_on_cache_hit: bool = True
    ) -> None:
        self._store = store
        self._remote = remote
        self._cache = cache
        self._generator = generator
        self.charge_on_cache_hit = charge_on_cache_hit

    async def _paid(
        self,
        action: str,
        kind: CacheKind,
        key: tuple[str, ...],
        force_regenerate: bool,
        ledger: CreditLedger | None,
        generator_fn: Callable[[], Awaitable[T]]
    ) -> T:
        """Serve from cache or generate, charging according to the cost policy."""
        if not force_regenerate and not self.charge_on_cache_hit:
            cached = await self._cache.lookup(kind, key)
            if cached is not None:
                logger.debug(f"Serving cached {action} for {key} without charge")
                return cached

        async def produce() -> T:
            return await self._cache.get_or_generate(kind, key, force_regenerate, generator_fn)

        if ledger is None:
            return await produce()
        return await ledger.metered(action, produce)

    async def generate_notes(
        self,
        video: Video,
        playlist_id: str,
        user: User | None,
        ledger: CreditLedger | None,
        force_regenerate: bool = False
    ) -> Notes:
        """
        Get notes for a video, generating them if needed.

        The notes are saved locally; for a signed-in user they are also
        upserted into the user's remote notes. Either save failing is
        logged and the paid-for notes are still returned.

        Raises:
            InsufficientCreditsError: Balance too low (nothing generated).
            GenerationError, TransientNetworkError: Generation failed (refunded).
        """
        notes = await self._paid(
            "notes",
            CacheKind.NOTES,
            (video.id, playlist_id),
            force_regenerate,
            ledger,
            lambda: self._generator.generate_notes(video, playlist_id)
        )

        try:
            await asyncio.to_thread(self._store.put_notes, notes.to_database_dict())
        except TubeTrackerError as e:
            log_sync_failure(logger, "save_notes_local", playlist_id, str(e))

        if user is not None:
            notes = notes.for_user(user.id)
            try:
                await self._remote.upsert_user_notes(user.id, notes.to_cache_dict())
            except TubeTrackerError as e:
                log_sync_failure(logger, "save_notes", playlist_id, str(e), user_id=user.id)

        return notes

    async def generate_test(
        self,
        video: Video,
        playlist_id: str,
        user: User | None,
        ledger: CreditLedger | None,
        force_regenerate: bool = False
    ) -> TestRecord:
        """
        Get the user's test for a video, generating it if needed.

        A new test is stored ungraded. A cached one is returned as stored,
        including its score if it was already submitted.

        Raises:
            UnauthorizedError: If no user is signed in.
            InsufficientCreditsError: Balance too low (nothing generated).
            GenerationError, TransientNetworkError: Generation failed (refunded).
        """
        if user is None:
            raise UnauthorizedError(
                "Sign in to take tests",
                details={"video_id": video.id}
            )

        return await self._paid(
            "test",
            CacheKind.TEST,
            (video.id, playlist_id, user.id),
            force_regenerate,
            ledger,
            lambda: self._generator.generate_test(video, playlist_id, user.id)
        )

    async def submit_test(
        self,
        user: User,
        video_id: str,
        playlist_id: str,
        answers: list[int]
    ) -> TestResult:
        """
        Grade answers against the stored test and persist the result.

        Raises:
            NotFoundError: If the user has no stored test for the video.
            ValueError: If the number of answers does not match the questions.
        """
        entry = await self._remote.get_cached(
            CacheKind.TEST.value, (video_id, playlist_id, user.id)
        )
        if entry is None:
            raise NotFoundError(
                "No test found for this video",
                details={"video_id": video_id, "playlist_id": playlist_id}
            )

        graded = TestRecord.from_cache_dict(entry.payload).graded(answers)
        await self._remote.save_test_result(graded.to_cache_dict())

        result = graded.result
        logger.info(
            f"Test for {video_id}: {result.score}/{result.total_questions} "
            f"({result.performance_level.value})"
        )
        return result
