"""
YouTube Data API v3 client for tube-tracker.

Fetches playlist metadata and the full ordered video list for one
playlist. Requests are made with aiohttp and throttled with
asyncio-throttle so a burst of refreshes cannot exhaust the API quota.

Fetch Workflow:
    1. GET /playlists?part=snippet,contentDetails&id=<id>
       - empty `items` -> PlaylistNotFoundError (missing or private)
    2. GET /playlistItems?part=snippet&maxResults=50 page by page
       - follows nextPageToken, at most `max_pages` pages
       - drops "Private video" and "Deleted video" entries
    3. Return a PlaylistBundle (metadata + videos ordered by position)

Error Mapping:
    - Connection errors, timeouts, HTTP 5xx -> TransientNetworkError
    - Other HTTP 4xx (bad key, quota)        -> YouTubeError
    - No playlist for the id                 -> PlaylistNotFoundError

Usage:
    async with YouTubeClient.from_config(config.youtube) as client:
        bundle = await client.fetch_playlist("PL...")
"""

import asyncio
import re
from typing import Any

import aiohttp
from asyncio_throttle import Throttler

from tube_tracker.core.config import DEFAULT_YOUTUBE_BASE_URL, YouTubeConfig
from tube_tracker.core.exceptions import (
    PlaylistNotFoundError,
    TransientNetworkError,
    YouTubeError,
)
from tube_tracker.core.logger import get_logger
from tube_tracker.youtube.models import Playlist, PlaylistBundle, Video

logger = get_logger(__name__)


ITEMS_PER_PAGE = 50

# Titles YouTube substitutes for entries the caller cannot watch
UNAVAILABLE_TITLES = frozenset({"Private video", "Deleted video"})

_LIST_PARAM_PATTERN = re.compile(r"[&?]list=([^&]+)", re.IGNORECASE)
_PLAYLIST_PATH_PATTERN = re.compile(r"/playlist/([^/?#&]+)", re.IGNORECASE)
_BARE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
_MIN_BARE_ID_LENGTH = 12


def extract_playlist_id(source: str) -> str | None:
    """
    Extract a YouTube playlist id from a URL or a bare id.

    Args:
        source: Any of
            - https://www.youtube.com/playlist?list=PLxxxx
            - https://www.youtube.com/watch?v=abc&list=PLxxxx
            - https://example.com/playlist/PLxxxx
            - PLxxxx (at least 12 characters of letters, digits, _ and -)

    Returns:
        The playlist id, or None if the input matches none of the forms.

    Example:
        >>> extract_playlist_id("https://youtube.com/playlist?list=PL123456789012")
        'PL123456789012'
        >>> extract_playlist_id("not a playlist") is None
        True
    """
    source = source.strip()
    if not source:
        return None

    match = _LIST_PARAM_PATTERN.search(source)
    if match:
        return match.group(1)

    match = _PLAYLIST_PATH_PATTERN.search(source)
    if match:
        return match.group(1)

    if len(source) >= _MIN_BARE_ID_LENGTH and _BARE_ID_PATTERN.match(source):
        return source

    return None


class YouTubeClient:
    """
    Async YouTube Data API client.

    The aiohttp session is created lazily on first request and closed by
    close() / the async context manager. A session may also be injected
    (tests, shared connection pools), in which case close() leaves it open.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_YOUTUBE_BASE_URL,
        max_pages: int = 10,
        requests_per_second: int = 5,
        session: aiohttp.ClientSession | None = None,
        timeout_seconds: float = 30.0
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._max_pages = max_pages
        self._throttler = Throttler(rate_limit=requests_per_second, period=1.0)
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    @classmethod
    def from_config(cls, config: YouTubeConfig) -> "YouTubeClient":
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            max_pages=config.max_pages,
            requests_per_second=config.requests_per_second,
        )

    async def __aenter__(self) -> "YouTubeClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _get_json(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """
        Perform one throttled GET against the Data API.

        Args:
            endpoint: Resource name, e.g. "playlists" or "playlistItems".
            params: Query parameters (the API key is added here).

        Returns:
            Decoded JSON body.

        Raises:
            TransientNetworkError: Connection error, timeout or HTTP 5xx.
            YouTubeError: Any other non-OK response.
        """
        url = f"{self._base_url}/{endpoint}"
        query = {key: str(value) for key, value in params.items()}
        query["key"] = self._api_key

        try:
            async with self._throttler:
                async with self._get_session().get(url, params=query) as response:
                    if response.status >= 500:
                        raise TransientNetworkError(
                            f"YouTube API unavailable ({response.status})",
                            details={"endpoint": endpoint, "status": response.status}
                        )
                    if response.status >= 400:
                        message = await _error_message(response)
                        raise YouTubeError(
                            f"YouTube API Error: {message}",
                            details={"endpoint": endpoint, "status": response.status}
                        )
                    return await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise TransientNetworkError(
                f"Cannot reach YouTube API: {e}",
                details={"endpoint": endpoint, "original_error": str(e)}
            ) from e
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(
                "YouTube API request timed out",
                details={"endpoint": endpoint}
            ) from e

    async def get_playlist(self, playlist_id: str) -> Playlist:
        """
        Fetch playlist metadata.

        Raises:
            PlaylistNotFoundError: If no playlist exists for the id or it is private.
        """
        data = await self._get_json(
            "playlists",
            {"part": "snippet,contentDetails", "id": playlist_id}
        )
        items = data.get("items") or []
        if not items:
            raise PlaylistNotFoundError(
                "Playlist not found or is private.",
                details={"playlist_id": playlist_id}
            )
        return Playlist.from_youtube_api(playlist_id, items[0])

    async def get_playlist_videos(self, playlist_id: str) -> list[Video]:
        """
        Fetch every watchable video of a playlist, following pagination.

        Stops after max_pages pages (50 items each) even if YouTube reports
        more, which bounds quota usage for very large playlists.
        """
        videos: list[Video] = []
        page_token = ""
        pages = 0

        while True:
            params: dict[str, Any] = {
                "part": "snippet",
                "maxResults": ITEMS_PER_PAGE,
                "playlistId": playlist_id,
            }
            if page_token:
                params["pageToken"] = page_token

            data = await self._get_json("playlistItems", params)
            for item in data.get("items") or []:
                snippet = item.get("snippet") or {}
                if snippet.get("title") in UNAVAILABLE_TITLES:
                    continue
                video = Video.from_youtube_api(playlist_id, item)
                if video.id:
                    videos.append(video)

            pages += 1
            page_token = data.get("nextPageToken") or ""
            if not page_token or pages >= self._max_pages:
                break

        if page_token:
            logger.warning(
                f"Playlist {playlist_id} truncated after {pages} pages "
                f"({len(videos)} videos)"
            )

        return sorted(videos, key=lambda v: v.position)

    async def fetch_playlist(self, playlist_id: str) -> PlaylistBundle:
        """
        Fetch metadata and videos for a playlist.

        This is the fetcher capability used by the sync layer.
        """
        playlist = await self.get_playlist(playlist_id)
        videos = await self.get_playlist_videos(playlist_id)
        logger.debug(f"Fetched playlist {playlist_id}: {len(videos)} videos")
        return PlaylistBundle(playlist=playlist, videos=tuple(videos))


async def _error_message(response: aiohttp.ClientResponse) -> str:
    """Pull `error.message` out of an API error body, falling back to the reason phrase."""
    try:
        body = await response.json(content_type=None)
    except ValueError:
        return response.reason or "Unknown Error"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return response.reason or "Unknown Error"
