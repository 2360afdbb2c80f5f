"""
YouTube module for tube-tracker.

Fetches playlist metadata and video lists from the YouTube Data API v3.

Usage:
    from tube_tracker.youtube import YouTubeClient, extract_playlist_id

    playlist_id = extract_playlist_id(url)
    async with YouTubeClient.from_config(config.youtube) as client:
        bundle = await client.fetch_playlist(playlist_id)
"""

from tube_tracker.youtube.client import YouTubeClient, extract_playlist_id
from tube_tracker.youtube.models import Playlist, PlaylistBundle, Video

__all__ = [
    "YouTubeClient",
    "extract_playlist_id",
    "Playlist",
    "PlaylistBundle",
    "Video",
]
