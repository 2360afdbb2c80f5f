"""Test configuration and fixtures"""

import asyncio
from typing import Callable

import pytest

from tube_tracker.core.database import LocalStore
from tube_tracker.core.identity import User
from tube_tracker.core.exceptions import GenerationError
from tube_tracker.generation.cache import GenerationCache
from tube_tracker.generation.models import Notes, TestRecord, parse_questions
from tube_tracker.remote.sqlite_store import SqliteRemoteStore
from tube_tracker.sync.coordinator import SyncCoordinator
from tube_tracker.sync.study import StudyService
from tube_tracker.utils import utc_now
from tube_tracker.youtube.models import Playlist, PlaylistBundle, Video


PLAYLIST_ID = "PLtest000000000001"


def build_bundle(playlist_id: str = PLAYLIST_ID, count: int = 5, title: str = "Test Playlist") -> PlaylistBundle:
    """Bundle with `count` videos at positions 0..count-1"""
    playlist = Playlist(
        id=playlist_id,
        title=title,
        description="A playlist for tests",
        thumbnail_url="https://i.ytimg.com/vi/x/hqdefault.jpg",
        video_count=count,
        last_accessed_at=utc_now(),
    )
    videos = tuple(
        Video(
            id=f"vid{i:03d}",
            playlist_id=playlist_id,
            title=f"Lesson {i + 1}",
            thumbnail_url="",
            channel_title="Test Channel",
            position=i,
        )
        for i in range(count)
    )
    return PlaylistBundle(playlist=playlist, videos=videos)


def notes_payload(topic: str = "Recursion") -> dict:
    """Generator response for mode=notes"""
    return {
        "topic": topic,
        "source": "description",
        "keyTakeaways": ["Base case first", "Shrink the input"],
        "concepts": [{"term": "Base case", "meaning": "Input solved directly"}],
        "mustRemember": ["Every call must progress"],
        "formulaOrLogic": {"formula": "T(n) = T(n-1) + O(1)", "whenToUse": "Linear recursion"},
        "summary": "Recursion solves a problem through smaller copies of itself.",
    }


def quiz_payload(correct_index: int = 1) -> dict:
    """Generator response for mode=test: ten questions, all answered by correct_index"""
    return {
        "questions": [
            {
                "question": f"Question {i + 1}?",
                "options": ["A", "B", "C", "D"],
                "correct_index": correct_index,
                "explanation": "Because.",
            }
            for i in range(10)
        ]
    }


class FakeFetcher:
    """Stands in for YouTubeClient.fetch_playlist"""

    def __init__(self) -> None:
        self.bundles: dict[str, PlaylistBundle] = {}
        self.calls: list[str] = []
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def fetch_playlist(self, playlist_id: str) -> PlaylistBundle:
        self.calls.append(playlist_id)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.bundles[playlist_id]


class FakeGenerator:
    """Stands in for GeneratorClient"""

    def __init__(self) -> None:
        self.notes_calls = 0
        self.test_calls = 0
        self.fail = False
        self.topic = "Recursion"

    async def generate_notes(self, video: Video, playlist_id: str) -> Notes:
        self.notes_calls += 1
        if self.fail:
            raise GenerationError("Failed to generate notes")
        return Notes.from_generator(video.id, playlist_id, notes_payload(self.topic))

    async def generate_test(self, video: Video, playlist_id: str, user_id: str) -> TestRecord:
        self.test_calls += 1
        if self.fail:
            raise GenerationError("Failed to generate test")
        return TestRecord(
            user_id=user_id,
            video_id=video.id,
            playlist_id=playlist_id,
            questions=parse_questions(quiz_payload()),
            created_at=utc_now(),
        )


@pytest.fixture
def make_bundle() -> Callable[..., PlaylistBundle]:
    """Factory for PlaylistBundle test data"""
    return build_bundle


@pytest.fixture
def local_store(tmp_path):
    """Fresh LocalStore in a temporary directory"""
    store = LocalStore(tmp_path / "local.db")
    yield store
    store.close()


@pytest.fixture
def remote_store(tmp_path):
    """Fresh sqlite RemoteStore with 100 starting credits"""
    store = SqliteRemoteStore(tmp_path / "remote.db", initial_credits=100)
    yield store
    asyncio.run(store.close())


@pytest.fixture
def cache(remote_store):
    return GenerationCache(remote_store)


@pytest.fixture
def fetcher(make_bundle):
    fake = FakeFetcher()
    fake.bundles[PLAYLIST_ID] = make_bundle()
    return fake


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def coordinator(local_store, remote_store, cache, fetcher):
    return SyncCoordinator(local_store, remote_store, cache, fetcher)


@pytest.fixture
def study(local_store, remote_store, cache, generator):
    return StudyService(local_store, remote_store, cache, generator)


@pytest.fixture
def user():
    return User(id="user-1", email="student@example.com")
