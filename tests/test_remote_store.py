"""Tests for the RemoteStore backends"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from tube_tracker.core.exceptions import ConfigError, RemoteStoreError, TubeTrackerError
from tube_tracker.core.config import parse_config
from tube_tracker.remote.base import cache_table, create_remote_store
from tube_tracker.remote.rest_store import RestRemoteStore
from tube_tracker.remote.sqlite_store import SqliteRemoteStore

from conftest import PLAYLIST_ID


def _progress(user_id, video_id, completed, updated_at):
    return {
        "user_id": user_id,
        "video_id": video_id,
        "playlist_id": PLAYLIST_ID,
        "completed": completed,
        "updated_at": updated_at,
    }


class TestSqlitePlaylists:
    """Test playlist ownership rows"""

    @pytest.mark.asyncio
    async def test_save_list_and_delete(self, remote_store):
        await remote_store.save_user_playlist("u1", {
            "id": PLAYLIST_ID, "title": "Algorithms", "description": "",
            "thumbnail_url": "", "video_count": 3,
            "last_accessed_at": "2030-01-01T00:00:00+00:00",
        })
        await remote_store.upsert_progress([_progress("u1", "vid000", True, "2030-01-01T00:00:00+00:00")])

        rows = await remote_store.list_user_playlists("u1")
        assert [row["id"] for row in rows] == [PLAYLIST_ID]
        assert await remote_store.list_user_playlists("u2") == []

        await remote_store.delete_user_playlist("u1", PLAYLIST_ID)
        assert await remote_store.list_user_playlists("u1") == []
        assert await remote_store.get_progress("u1", PLAYLIST_ID) == []

    @pytest.mark.asyncio
    async def test_saving_again_replaces_row(self, remote_store):
        playlist = {
            "id": PLAYLIST_ID, "title": "Algorithms",
            "last_accessed_at": "2030-01-01T00:00:00+00:00",
        }
        await remote_store.save_user_playlist("u1", playlist)
        await remote_store.save_user_playlist("u1", {**playlist, "last_accessed_at": "2031-01-01T00:00:00+00:00"})

        rows = await remote_store.list_user_playlists("u1")
        assert len(rows) == 1
        assert rows[0]["last_accessed_at"] == "2031-01-01T00:00:00+00:00"


class TestSqliteProgress:
    """Test progress upserts"""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, remote_store):
        record = _progress("u1", "vid000", True, "2030-01-01T00:00:00+00:00")
        await remote_store.upsert_progress([record])
        await remote_store.upsert_progress([record])

        rows = await remote_store.get_progress("u1", PLAYLIST_ID)
        assert len(rows) == 1
        assert rows[0]["completed"] is True

    @pytest.mark.asyncio
    async def test_older_write_loses(self, remote_store):
        await remote_store.upsert_progress([_progress("u1", "vid000", True, "2030-01-01T00:00:02+00:00")])
        await remote_store.upsert_progress([_progress("u1", "vid000", False, "2030-01-01T00:00:01+00:00")])

        rows = await remote_store.get_progress("u1", PLAYLIST_ID)
        assert rows[0]["completed"] is True

    @pytest.mark.asyncio
    async def test_users_are_isolated(self, remote_store):
        await remote_store.upsert_progress([_progress("u1", "vid000", True, "2030-01-01T00:00:00+00:00")])

        assert await remote_store.get_progress("u2", PLAYLIST_ID) == []


class TestSqliteCache:
    """Test generation cache tables"""

    @pytest.mark.asyncio
    async def test_put_replaces_whole_payload(self, remote_store):
        key = ("vid000", PLAYLIST_ID)
        await remote_store.put_cached("notes", key, {"topic": "a", "extra": 1})
        await remote_store.put_cached("notes", key, {"topic": "b"})

        entry = await remote_store.get_cached("notes", key)
        assert entry.payload == {"topic": "b"}

    @pytest.mark.asyncio
    async def test_missing_entry(self, remote_store):
        assert await remote_store.get_cached("playlist", (PLAYLIST_ID,)) is None

    @pytest.mark.asyncio
    async def test_graded_tests_only(self, remote_store):
        ungraded = {"user_id": "u1", "video_id": "vid000", "playlist_id": PLAYLIST_ID, "score": None}
        await remote_store.put_cached("test", ("vid000", PLAYLIST_ID, "u1"), ungraded)
        assert await remote_store.get_test_results("u1", PLAYLIST_ID) == []

        await remote_store.save_test_result({**ungraded, "score": 7})
        results = await remote_store.get_test_results("u1", PLAYLIST_ID)
        assert results[0]["score"] == 7

    @pytest.mark.asyncio
    async def test_grading_unknown_test_fails(self, remote_store):
        with pytest.raises(RemoteStoreError):
            await remote_store.save_test_result(
                {"user_id": "u1", "video_id": "nope", "playlist_id": PLAYLIST_ID, "score": 1}
            )

    def test_key_length_is_checked(self):
        with pytest.raises(TubeTrackerError):
            cache_table("test").key_dict(("vid000", PLAYLIST_ID))


class TestSqliteCredits:
    """Test atomic credit reservation"""

    @pytest.mark.asyncio
    async def test_new_user_gets_initial_credits(self, remote_store):
        balance = await remote_store.get_credits("u1")
        assert balance.credits == 100

    @pytest.mark.asyncio
    async def test_reserve_and_refuse(self, remote_store):
        first = await remote_store.reserve_credits("u1", 60, "notes")
        second = await remote_store.reserve_credits("u1", 60, "notes")

        assert first.success is True
        assert first.new_balance == 40
        assert second.success is False
        assert second.new_balance == 40
        assert "Insufficient" in second.message

    @pytest.mark.asyncio
    async def test_negative_cost_refunds(self, remote_store):
        await remote_store.reserve_credits("u1", 30, "test")
        refund = await remote_store.reserve_credits("u1", -30, "refund_test")

        assert refund.success is True
        assert refund.new_balance == 100

    @pytest.mark.asyncio
    async def test_concurrent_reservations_never_overdraw(self, remote_store):
        results = await asyncio.gather(*[
            remote_store.reserve_credits("u1", 15, "search") for _ in range(20)
        ])

        assert sum(1 for r in results if r.success) == 6
        balance = await remote_store.get_credits("u1")
        assert balance.credits == 10


class TestRestStore:
    """Test PostgREST request shapes"""

    @pytest.mark.asyncio
    async def test_upsert_progress_uses_composite_conflict(self):
        store = RestRemoteStore("https://example.supabase.co/", "anon")
        store._request = AsyncMock(return_value=None)

        await store.upsert_progress([_progress("u1", "vid000", True, "2030-01-01T00:00:00+00:00")])

        args, kwargs = store._request.call_args
        assert args == ("POST", "user_progress")
        assert kwargs["params"] == {"on_conflict": "user_id,video_id,playlist_id"}
        assert "resolution=merge-duplicates" in kwargs["prefer"]

    @pytest.mark.asyncio
    async def test_get_cached_filters_by_key(self):
        store = RestRemoteStore("https://example.supabase.co", "anon")
        store._request = AsyncMock(return_value=[
            {"payload": {"topic": "x"}, "cached_at": "2030-01-01T00:00:00Z"}
        ])

        entry = await store.get_cached("test", ("vid000", PLAYLIST_ID, "u1"))

        params = store._request.call_args.kwargs["params"]
        assert params["video_id"] == "eq.vid000"
        assert params["playlist_id"] == f"eq.{PLAYLIST_ID}"
        assert params["user_id"] == "eq.u1"
        assert entry.payload == {"topic": "x"}
        assert entry.cached_at.year == 2030

    @pytest.mark.asyncio
    async def test_reserve_maps_rpc_response(self):
        store = RestRemoteStore("https://example.supabase.co", "anon")
        store._request = AsyncMock(return_value={
            "success": False, "new_credits": 3, "message": "Insufficient credits"
        })

        result = await store.reserve_credits("u1", 10, "notes")

        args, kwargs = store._request.call_args
        assert args == ("POST", "rpc/deduct_credits")
        assert kwargs["json_body"] == {"cost": 10, "action_type": "notes"}
        assert result.success is False
        assert result.new_balance == 3

    @pytest.mark.asyncio
    async def test_reserve_rejects_unexpected_payload(self):
        store = RestRemoteStore("https://example.supabase.co", "anon")
        store._request = AsyncMock(return_value=None)

        with pytest.raises(RemoteStoreError):
            await store.reserve_credits("u1", 10, "notes")

    @pytest.mark.asyncio
    async def test_save_test_result_requires_matching_row(self):
        store = RestRemoteStore("https://example.supabase.co", "anon")
        store._request = AsyncMock(return_value=[])
        record = {"user_id": "u1", "video_id": "nope", "playlist_id": PLAYLIST_ID, "score": 1}

        with pytest.raises(RemoteStoreError):
            await store.save_test_result(record)

    @pytest.mark.asyncio
    async def test_save_test_result_patches_stored_test(self):
        store = RestRemoteStore("https://example.supabase.co", "anon")
        store._request = AsyncMock(return_value=[{"video_id": "vid000"}])
        record = {"user_id": "u1", "video_id": "vid000", "playlist_id": PLAYLIST_ID, "score": 7}

        await store.save_test_result(record)

        args, kwargs = store._request.call_args
        assert args == ("PATCH", "video_tests")
        assert kwargs["params"]["video_id"] == "eq.vid000"
        assert kwargs["json_body"]["score"] == 7
        assert kwargs["prefer"] == "return=representation"


class TestCreateRemoteStore:
    """Test backend selection from configuration"""

    def _raw(self, tmp_path, remote):
        return {
            "local": {"database": str(tmp_path / "local.db")},
            "remote": remote,
            "youtube": {"api_key": "key"},
            "generator": {"url": "https://gen.example/api"},
        }

    def test_sqlite_backend(self, tmp_path):
        config = parse_config(self._raw(tmp_path, {"database": str(tmp_path / "remote.db")}))
        store = create_remote_store(config)
        try:
            assert isinstance(store, SqliteRemoteStore)
        finally:
            asyncio.run(store.close())

    def test_rest_backend(self, tmp_path):
        config = parse_config(self._raw(tmp_path, {
            "backend": "rest", "url": "https://example.supabase.co", "api_key": "anon"
        }))
        assert isinstance(create_remote_store(config), RestRemoteStore)

    def test_rest_backend_requires_url(self, tmp_path):
        with pytest.raises(ConfigError):
            parse_config(self._raw(tmp_path, {"backend": "rest", "api_key": "anon"}))
