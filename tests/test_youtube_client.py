"""Tests for the YouTube Data API client"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from tube_tracker.core.exceptions import (
    GenerationError,
    MalformedResponseError,
    PlaylistNotFoundError,
)
from tube_tracker.generation.generator import GeneratorClient
from tube_tracker.youtube.client import YouTubeClient, extract_playlist_id

from conftest import build_bundle, notes_payload


def _item(video_id, position, title=None):
    return {
        "snippet": {
            "title": title or f"Lesson {position + 1}",
            "position": position,
            "channelTitle": "Test Channel",
            "resourceId": {"videoId": video_id},
            "thumbnails": {"medium": {"url": f"https://i.ytimg.com/vi/{video_id}/mq.jpg"}},
        }
    }


PLAYLIST_RESOURCE = {
    "snippet": {
        "title": "Algorithms",
        "description": "Course",
        "thumbnails": {"high": {"url": "https://i.ytimg.com/high.jpg"}},
    },
    "contentDetails": {"itemCount": 4},
}


class TestExtractPlaylistId:
    """Test playlist id extraction"""

    @pytest.mark.parametrize("source,expected", [
        ("https://www.youtube.com/playlist?list=PL123456789012", "PL123456789012"),
        ("https://www.youtube.com/watch?v=abc&list=PLabcdefghijkl&index=2", "PLabcdefghijkl"),
        ("https://example.com/playlist/PLzzzzzzzzzzzz", "PLzzzzzzzzzzzz"),
        ("  PL123456789012  ", "PL123456789012"),
        ("short", None),
        ("not a playlist", None),
        ("", None),
    ])
    def test_extract(self, source, expected):
        assert extract_playlist_id(source) == expected


class TestFetchPlaylist:
    """Test paging and filtering with a stubbed transport"""

    @pytest.mark.asyncio
    async def test_follows_pages_and_drops_unavailable(self):
        client = YouTubeClient(api_key="key")
        client._get_json = AsyncMock(side_effect=[
            {"items": [PLAYLIST_RESOURCE]},
            {"items": [_item("v2", 2), _item("v0", 0)], "nextPageToken": "page2"},
            {"items": [_item("gone", 1, "Deleted video"), _item("v3", 3)]},
        ])

        bundle = await client.fetch_playlist("PL123456789012")

        assert bundle.playlist.title == "Algorithms"
        assert bundle.playlist.video_count == 4
        assert [v.id for v in bundle.videos] == ["v0", "v2", "v3"]
        second_page_params = client._get_json.call_args_list[2].args[1]
        assert second_page_params["pageToken"] == "page2"

    @pytest.mark.asyncio
    async def test_stops_at_max_pages(self):
        client = YouTubeClient(api_key="key", max_pages=2)
        client._get_json = AsyncMock(side_effect=[
            {"items": [_item("v0", 0)], "nextPageToken": "p2"},
            {"items": [_item("v1", 1)], "nextPageToken": "p3"},
        ])

        videos = await client.get_playlist_videos("PL123456789012")

        assert [v.id for v in videos] == ["v0", "v1"]
        assert client._get_json.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_playlist(self):
        client = YouTubeClient(api_key="key")
        client._get_json = AsyncMock(return_value={"items": []})

        with pytest.raises(PlaylistNotFoundError):
            await client.get_playlist("PL123456789012")


def _generator_with_response(status, text):
    response = MagicMock()
    response.status = status
    response.text = AsyncMock(return_value=text)
    session = MagicMock()
    session.post.return_value.__aenter__.return_value = response
    return GeneratorClient("https://generator.example/api/generate", session=session), session


class TestGeneratorClient:
    """Test the generation endpoint client"""

    VIDEO = build_bundle().videos[0]

    @pytest.mark.asyncio
    async def test_notes_request(self):
        client, session = _generator_with_response(200, json.dumps(notes_payload("Graphs")))

        notes = await client.generate_notes(self.VIDEO, "PL1")

        assert notes.topic == "Graphs"
        body = session.post.call_args.kwargs["json"]
        assert body == {
            "videoId": "vid000",
            "videoTitle": "Lesson 1",
            "channelTitle": "Test Channel",
            "mode": "notes",
        }

    @pytest.mark.asyncio
    async def test_error_status_uses_server_message(self):
        client, _ = _generator_with_response(500, '{"error": "model overloaded"}')

        with pytest.raises(GenerationError, match="model overloaded"):
            await client.generate_notes(self.VIDEO, "PL1")

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        client, _ = _generator_with_response(200, "<html>")

        with pytest.raises(MalformedResponseError):
            await client.generate_test(self.VIDEO, "PL1", "user-1")

    @pytest.mark.asyncio
    async def test_short_test_rejected(self):
        client, _ = _generator_with_response(200, '{"questions": []}')

        with pytest.raises(MalformedResponseError):
            await client.generate_test(self.VIDEO, "PL1", "user-1")
