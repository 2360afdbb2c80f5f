"""
Data models for YouTube entities.

Immutable dataclasses for playlists and videos as tube-tracker stores
them. They are independent of both storage formats: LocalStore rows go
through to_database_dict()/from_database_dict(), the generation cache
through to_cache_dict()/from_cache_dict().

Design Decisions:
    - All dataclasses are frozen (immutable) to prevent accidental modification
    - Videos are owned by exactly one playlist; (id, playlist_id) is the key
    - `position` is the rank reported by YouTube (gaps where private or
      deleted entries were dropped) and is the only ordering consumers may rely on
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any

from tube_tracker.utils import parse_iso, to_iso, utc_now


@dataclass(frozen=True)
class Video:
    """
    One entry of a playlist.

    Attributes:
        id: YouTube video id (11 characters). Example: "dQw4w9WgXcQ"
        playlist_id: Owning playlist id.
        title: Video title.
        thumbnail_url: Medium (or default) thumbnail URL, may be empty.
        channel_title: Uploader channel name, passed to the generator.
        position: Zero-based rank in the playlist.
    """

    id: str
    playlist_id: str
    title: str
    thumbnail_url: str
    channel_title: str
    position: int

    @classmethod
    def from_youtube_api(cls, playlist_id: str, item: dict[str, Any]) -> "Video":
        """
        Create a Video from one `playlistItems` resource.

        Args:
            playlist_id: Id of the playlist being fetched.
            item: Item from the `items` array of a playlistItems response.
        """
        snippet = item.get("snippet", {})
        thumbnails = snippet.get("thumbnails") or {}
        thumbnail_url = (
            (thumbnails.get("medium") or {}).get("url")
            or (thumbnails.get("default") or {}).get("url")
            or ""
        )
        return cls(
            id=snippet.get("resourceId", {}).get("videoId", ""),
            playlist_id=playlist_id,
            title=snippet.get("title", ""),
            thumbnail_url=thumbnail_url,
            channel_title=snippet.get("channelTitle", ""),
            position=int(snippet.get("position", 0)),
        )

    def to_database_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "playlist_id": self.playlist_id,
            "title": self.title,
            "thumbnail_url": self.thumbnail_url,
            "channel_title": self.channel_title,
            "position": self.position,
        }

    @classmethod
    def from_database_dict(cls, data: dict[str, Any]) -> "Video":
        return cls(
            id=data["id"],
            playlist_id=data["playlist_id"],
            title=data.get("title") or "",
            thumbnail_url=data.get("thumbnail_url") or "",
            channel_title=data.get("channel_title") or "",
            position=int(data.get("position") or 0),
        )


@dataclass(frozen=True)
class Playlist:
    """
    Playlist metadata as cached locally and owned remotely.

    Attributes:
        id: YouTube playlist id. Example: "PLx0sYbCqOb8TBPRdmBHs5Iftvv9TPboYG"
        title: Playlist title.
        description: Playlist description (may be empty).
        thumbnail_url: High (or medium) thumbnail URL, may be empty.
        video_count: Item count reported by YouTube. Can differ from the
                     number of stored videos because private/deleted
                     entries are dropped.
        last_accessed_at: Last selection or refresh, used to order the index.
    """

    id: str
    title: str
    description: str
    thumbnail_url: str
    video_count: int
    last_accessed_at: datetime

    @classmethod
    def from_youtube_api(cls, playlist_id: str, item: dict[str, Any]) -> "Playlist":
        """
        Create a Playlist from one `playlists` resource (snippet + contentDetails).
        """
        snippet = item.get("snippet", {})
        content = item.get("contentDetails", {})
        thumbnails = snippet.get("thumbnails") or {}
        thumbnail_url = (
            (thumbnails.get("high") or {}).get("url")
            or (thumbnails.get("medium") or {}).get("url")
            or ""
        )
        return cls(
            id=playlist_id,
            title=snippet.get("title", "Untitled playlist"),
            description=snippet.get("description", ""),
            thumbnail_url=thumbnail_url,
            video_count=int(content.get("itemCount", 0)),
            last_accessed_at=utc_now(),
        )

    def touched(self, when: datetime | None = None) -> "Playlist":
        """Copy of this playlist with last_accessed_at bumped."""
        return replace(self, last_accessed_at=when or utc_now())

    def to_database_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "thumbnail_url": self.thumbnail_url,
            "video_count": self.video_count,
            "last_accessed_at": to_iso(self.last_accessed_at),
        }

    @classmethod
    def from_database_dict(cls, data: dict[str, Any]) -> "Playlist":
        return cls(
            id=data["id"],
            title=data.get("title") or "",
            description=data.get("description") or "",
            thumbnail_url=data.get("thumbnail_url") or "",
            video_count=int(data.get("video_count") or 0),
            last_accessed_at=parse_iso(data.get("last_accessed_at")) or utc_now(),
        )


@dataclass(frozen=True)
class PlaylistBundle:
    """
    Result of one full fetch from YouTube: metadata plus ordered videos.

    This is the artifact stored in the shared playlist cache so a second
    user adding the same playlist does not spend YouTube quota.
    """

    playlist: Playlist
    videos: tuple[Video, ...]

    def to_cache_dict(self) -> dict[str, Any]:
        """Flat `cached_playlists` row; videos are embedded as a list."""
        return {
            "playlist_id": self.playlist.id,
            "title": self.playlist.title,
            "description": self.playlist.description,
            "thumbnail_url": self.playlist.thumbnail_url,
            "video_count": self.playlist.video_count,
            "videos": [video.to_database_dict() for video in self.videos],
        }

    @classmethod
    def from_cache_dict(cls, data: dict[str, Any]) -> "PlaylistBundle":
        playlist_id = data["playlist_id"]
        playlist = Playlist(
            id=playlist_id,
            title=data.get("title") or "",
            description=data.get("description") or "",
            thumbnail_url=data.get("thumbnail_url") or "",
            video_count=int(data.get("video_count") or 0),
            last_accessed_at=utc_now(),
        )
        videos = tuple(
            sorted(
                (
                    Video.from_database_dict({**v, "playlist_id": playlist_id})
                    for v in data.get("videos") or []
                ),
                key=lambda v: v.position
            )
        )
        return cls(playlist=playlist, videos=videos)
