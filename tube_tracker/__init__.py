"""
tube-tracker: Study YouTube playlists with tracked progress.

This package keeps a per-user record of which videos of a YouTube
playlist have been watched, and generates study notes and quizzes for
individual videos, paid for with a credit balance.

Architecture:
    Two stores are reconciled by the sync layer:

    LOCAL (core/database.py): On-device sqlite cache
        - Playlists and their videos (rebuilt from YouTube at any time)
        - Pre-login "shadow" progress of anonymous users
        - Notes generated on this device

    REMOTE (remote/): Authoritative store
        - Playlist ownership, progress, notes and test results per user
        - Shared generation cache (notes, tests, playlist fetches)
        - Credit balances with an atomic reserve operation

    YouTube (youtube/) is authoritative for playlist metadata and the
    video list. The generator (generation/) produces notes and tests.

Modules:
    core/        - Configuration, local store, identity, logging, exceptions
    youtube/     - YouTube Data API client and playlist/video models
    remote/      - Authoritative store interface with sqlite and REST backends
    generation/  - Generator client, notes/test models, generation cache
    credits/     - Credit ledger wrapping metered operations
    sync/        - Coordinator, study service, segmentation, background tasks
    app.py       - Wiring of all components from a Config
    cli.py       - Command-line interface

Usage:
    Command Line:
        tube add "https://www.youtube.com/playlist?list=PL..."
        tube open PL... --part 2
        tube toggle PL... dQw4w9WgXcQ
        tube notes PL... dQw4w9WgXcQ

    Python API:
        from tube_tracker import load_config, setup_logging
        from tube_tracker.app import Application

        config = load_config()
        setup_logging(config.log_directory)
        app = Application.from_config(config)
        user = app.identity.current_user()

        playlist = await app.coordinator.add_playlist(url, user, app.ledger_for(user))
        snapshot = await app.coordinator.open_playlist(playlist.id, user)
        snapshot = await app.coordinator.toggle_progress(snapshot, video_id, user)
        await app.close()

Dependencies:
    - aiohttp: HTTP client for YouTube, the generator and the REST store
    - asyncio-throttle: Rate limiting of YouTube requests
    - rich-click: CLI framework with colors
    - tqdm: Progress bars
    - pyyaml: Configuration file parsing
    - python-dotenv: Secrets from a .env file
"""

__version__ = "0.1.0"
__author__ = "tube-tracker"
__license__ = "MIT"

# Convenience imports for common usage
from tube_tracker.core import (
    Config,
    ConfigError,
    InsufficientCreditsError,
    LocalStore,
    LocalStoreError,
    RemoteStoreError,
    TubeTrackerError,
    User,
    get_logger,
    load_config,
    setup_logging,
)
from tube_tracker.youtube import Playlist, Video, YouTubeClient, extract_playlist_id

__all__ = [
    # Version
    "__version__",
    # Core
    "Config",
    "load_config",
    "LocalStore",
    "User",
    "setup_logging",
    "get_logger",
    # Exceptions
    "TubeTrackerError",
    "ConfigError",
    "LocalStoreError",
    "RemoteStoreError",
    "InsufficientCreditsError",
    # YouTube
    "YouTubeClient",
    "extract_playlist_id",
    "Playlist",
    "Video",
]
