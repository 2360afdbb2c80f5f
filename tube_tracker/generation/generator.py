"""
Client for the notes/test generation endpoint.

The endpoint is an LLM proxy that accepts

    POST {"videoId", "videoTitle", "channelTitle", "mode": "notes" | "test"}

and answers with the notes object or {"questions": [...]}. On failure it
answers non-OK with {"error": "..."}.

Responses are validated before they leave this module
(Notes.from_generator / parse_questions), so callers only ever see
well-formed artifacts or a typed error:

    - Connection errors, timeouts     -> TransientNetworkError
    - Non-OK response                 -> GenerationError (server's error text)
    - Undecodable or ill-shaped JSON  -> MalformedResponseError
"""

import asyncio
import json
from typing import Any

import aiohttp

from tube_tracker.core.config import GeneratorConfig
from tube_tracker.core.exceptions import (
    GenerationError,
    MalformedResponseError,
    TransientNetworkError,
)
from tube_tracker.core.logger import get_logger
from tube_tracker.generation.models import Notes, TestRecord, parse_questions
from tube_tracker.utils import utc_now
from tube_tracker.youtube.models import Video

logger = get_logger(__name__)


GENERATION_MODES = ("notes", "test")


class GeneratorClient:
    """Async client for the generation endpoint."""

    def __init__(
        self,
        url: str,
        timeout_seconds: float = 60.0,
        session: aiohttp.ClientSession | None = None
    ) -> None:
        self._url = url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: GeneratorConfig) -> "GeneratorClient":
        return cls(config.url, timeout_seconds=config.timeout_seconds)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def generate(
        self,
        kind: str,
        video_id: str,
        title: str,
        channel_title: str
    ) -> dict[str, Any]:
        """
        Call the endpoint and return the decoded JSON object.

        Args:
            kind: "notes" or "test".
            video_id: YouTube video id.
            title: Video title.
            channel_title: Uploader channel, helps the model pick a domain.

        Raises:
            TransientNetworkError: Endpoint unreachable or timed out.
            GenerationError: Endpoint answered non-OK.
            MalformedResponseError: Body is not a JSON object.
        """
        if kind not in GENERATION_MODES:
            raise ValueError(f"Unknown generation kind: {kind}")

        body = {
            "videoId": video_id,
            "videoTitle": title,
            "channelTitle": channel_title,
            "mode": kind,
        }

        try:
            async with self._get_session().post(self._url, json=body) as response:
                text = await response.text()
                status = response.status
        except aiohttp.ClientError as e:
            raise TransientNetworkError(
                f"Cannot reach generator: {e}",
                details={"kind": kind, "video_id": video_id}
            ) from e
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(
                "Generator request timed out",
                details={"kind": kind, "video_id": video_id}
            ) from e

        try:
            data = json.loads(text) if text else None
        except ValueError:
            data = None

        if status >= 400:
            message = data.get("error") if isinstance(data, dict) else None
            raise GenerationError(
                message or f"Failed to generate {kind} ({status})",
                details={"kind": kind, "video_id": video_id, "status": status}
            )

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Generator returned invalid JSON for {kind}",
                details={"kind": kind, "video_id": video_id}
            )

        return data

    async def generate_notes(self, video: Video, playlist_id: str) -> Notes:
        payload = await self.generate("notes", video.id, video.title, video.channel_title)
        notes = Notes.from_generator(video.id, playlist_id, payload)
        logger.debug(f"Generated notes for {video.id} ({len(notes.key_takeaways)} takeaways)")
        return notes

    async def generate_test(self, video: Video, playlist_id: str, user_id: str) -> TestRecord:
        payload = await self.generate("test", video.id, video.title, video.channel_title)
        return TestRecord(
            user_id=user_id,
            video_id=video.id,
            playlist_id=playlist_id,
            questions=parse_questions(payload),
            created_at=utc_now(),
        )
