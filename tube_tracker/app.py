"""
Wiring of tube-tracker components from a Config.

Usage:
    config = load_config()
    app = Application.from_config(config)
    try:
        playlists = await app.coordinator.load_playlist_index(app.identity.current_user())
    finally:
        await app.close()
"""

import asyncio

from tube_tracker.core.config import Config
from tube_tracker.core.database import LocalStore
from tube_tracker.core.exceptions import NotFoundError
from tube_tracker.core.identity import IdentityProvider, User
from tube_tracker.core.logger import get_logger
from tube_tracker.credits.ledger import CreditLedger
from tube_tracker.generation.cache import GenerationCache
from tube_tracker.generation.generator import GeneratorClient
from tube_tracker.remote.base import RemoteStore, create_remote_store
from tube_tracker.sync.coordinator import SyncCoordinator
from tube_tracker.sync.study import StudyService
from tube_tracker.youtube.client import YouTubeClient
from tube_tracker.youtube.models import Video

logger = get_logger(__name__)


class Application:
    """All long-lived collaborators for one process."""

    def __init__(
        self,
        config: Config,
        store: LocalStore,
        remote: RemoteStore,
        youtube: YouTubeClient,
        generator: GeneratorClient,
        identity: IdentityProvider
    ) -> None:
        self.config = config
        self.store = store
        self.remote = remote
        self.youtube = youtube
        self.generator = generator
        self.identity = identity
        self.cache = GenerationCache.from_config(remote, config.cache)
        self.coordinator = SyncCoordinator(store, remote, self.cache, youtube)
        self.study = StudyService(
            store, remote, self.cache, generator,
            charge_on_cache_hit=config.credits.charge_on_cache_hit
        )
        self._ledgers: dict[str, CreditLedger] = {}

    @classmethod
    def from_config(cls, config: Config) -> "Application":
        identity = IdentityProvider()
        if config.user is not None:
            identity.sign_in(User(id=config.user.id, email=config.user.email))

        return cls(
            config=config,
            store=LocalStore(config.local.database),
            remote=create_remote_store(config),
            youtube=YouTubeClient.from_config(config.youtube),
            generator=GeneratorClient.from_config(config.generator),
            identity=identity,
        )

    def ledger_for(self, user: User | None) -> CreditLedger | None:
        """The user's credit ledger; anonymous use is not metered."""
        if user is None:
            return None
        if user.id not in self._ledgers:
            self._ledgers[user.id] = CreditLedger(
                self.remote, user.id, costs=self.config.credits.costs
            )
        return self._ledgers[user.id]

    async def find_video(self, playlist_id: str, video_id: str) -> Video:
        """
        Look up a cached video.

        Raises:
            NotFoundError: If the video is not in the cached playlist.
        """
        rows = await asyncio.to_thread(self.store.get_videos, playlist_id)
        for row in rows:
            if row["id"] == video_id:
                return Video.from_database_dict(row)
        raise NotFoundError(
            f"Video {video_id} is not in playlist {playlist_id}",
            details={"playlist_id": playlist_id, "video_id": video_id}
        )

    async def close(self) -> None:
        """Stop background work and release every connection."""
        await self.coordinator.close()
        await self.youtube.close()
        await self.generator.close()
        await self.remote.close()
        self.store.close()
