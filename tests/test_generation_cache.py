"""Tests for the generation cache"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from tube_tracker.core.config import CacheConfig
from tube_tracker.core.exceptions import GenerationError, RemoteStoreError
from tube_tracker.generation.cache import CacheKind, GenerationCache
from tube_tracker.generation.models import Notes

from conftest import PLAYLIST_ID, build_bundle, notes_payload


KEY = ("vid000", PLAYLIST_ID)


def _notes(topic):
    return Notes.from_generator("vid000", PLAYLIST_ID, notes_payload(topic))


class TestGetOrGenerate:
    """Test read-through semantics"""

    @pytest.mark.asyncio
    async def test_hit_skips_generator(self, cache):
        generator_fn = AsyncMock(return_value=_notes("First"))

        first = await cache.get_or_generate(CacheKind.NOTES, KEY, False, generator_fn)
        second = await cache.get_or_generate(CacheKind.NOTES, KEY, False, generator_fn)

        assert generator_fn.await_count == 1
        assert first == second

    @pytest.mark.asyncio
    async def test_forced_call_replaces_entry(self, cache):
        await cache.get_or_generate(CacheKind.NOTES, KEY, False, AsyncMock(return_value=_notes("First")))
        await cache.get_or_generate(CacheKind.NOTES, KEY, True, AsyncMock(return_value=_notes("Second")))

        cached = await cache.lookup(CacheKind.NOTES, KEY)
        assert cached.topic == "Second"

    @pytest.mark.asyncio
    async def test_generator_failure_leaves_cache_untouched(self, cache):
        await cache.store(CacheKind.NOTES, KEY, _notes("Kept"))
        failing = AsyncMock(side_effect=GenerationError("boom"))

        with pytest.raises(GenerationError):
            await cache.get_or_generate(CacheKind.NOTES, KEY, True, failing)

        assert (await cache.lookup(CacheKind.NOTES, KEY)).topic == "Kept"

    @pytest.mark.asyncio
    async def test_playlist_bundle_round_trips(self, cache):
        bundle = build_bundle(count=3)
        await cache.store(CacheKind.PLAYLIST, (PLAYLIST_ID,), bundle)

        cached = await cache.lookup(CacheKind.PLAYLIST, (PLAYLIST_ID,))
        assert cached.playlist.title == bundle.playlist.title
        assert cached.videos == bundle.videos


class TestBestEffort:
    """Test that cache I/O failures never break generation"""

    @pytest.mark.asyncio
    async def test_read_failure_is_a_miss(self):
        remote = AsyncMock()
        remote.get_cached.side_effect = RemoteStoreError("down", is_transient=True)
        cache = GenerationCache(remote)

        result = await cache.get_or_generate(
            CacheKind.NOTES, KEY, False, AsyncMock(return_value=_notes("Fresh"))
        )

        assert result.topic == "Fresh"

    @pytest.mark.asyncio
    async def test_write_failure_still_returns_artifact(self):
        remote = AsyncMock()
        remote.get_cached.return_value = None
        remote.put_cached.side_effect = RemoteStoreError("down", is_transient=True)
        cache = GenerationCache(remote)

        result = await cache.get_or_generate(
            CacheKind.NOTES, KEY, False, AsyncMock(return_value=_notes("Fresh"))
        )

        assert result.topic == "Fresh"
        assert await cache.store(CacheKind.NOTES, KEY, result) is False

    @pytest.mark.asyncio
    async def test_unreadable_entry_is_a_miss(self, remote_store):
        await remote_store.put_cached("notes", KEY, {"unexpected": True})

        assert await GenerationCache(remote_store).lookup(CacheKind.NOTES, KEY) is None


class TestExpiry:
    """Test per-kind maximum age"""

    @pytest.mark.asyncio
    async def test_expired_playlist_is_a_miss(self, remote_store):
        cache = GenerationCache(remote_store, max_age={CacheKind.PLAYLIST: timedelta(seconds=-1)})
        await cache.store(CacheKind.PLAYLIST, (PLAYLIST_ID,), build_bundle())

        assert await cache.lookup(CacheKind.PLAYLIST, (PLAYLIST_ID,)) is None

    @pytest.mark.asyncio
    async def test_from_config_disables_expiry_with_zero(self, remote_store):
        cache = GenerationCache.from_config(remote_store, CacheConfig(playlist_max_age_hours=0))
        await cache.store(CacheKind.PLAYLIST, (PLAYLIST_ID,), build_bundle())

        assert await cache.lookup(CacheKind.PLAYLIST, (PLAYLIST_ID,)) is not None
