"""
Core module for tube-tracker.

This module provides the foundational components used throughout the application:
    - exceptions: Custom exception classes for error handling
    - config: Configuration loading and validation
    - database: Thread-safe sqlite store for the on-device cache
    - identity: Current-user provider with sign-in/sign-out notifications
    - models: Progress and credit records shared by both stores
    - logger: Logging system with multiple outputs

Usage:
    from tube_tracker.core import (
        Config, load_config,
        LocalStore,
        setup_logging, get_logger,
        TubeTrackerError, ConfigError, LocalStoreError
    )
"""

from tube_tracker.core.config import (
    CacheConfig,
    Config,
    CreditsConfig,
    GeneratorConfig,
    LocalConfig,
    RemoteConfig,
    UserConfig,
    YouTubeConfig,
    load_config,
    parse_config,
)
from tube_tracker.core.database import DATABASE_VERSION, LocalStore
from tube_tracker.core.exceptions import (
    ConfigError,
    GenerationError,
    InsufficientCreditsError,
    InvalidPlaylistError,
    LocalStoreError,
    MalformedResponseError,
    NotFoundError,
    PartialSyncError,
    PlaylistNotFoundError,
    RemoteStoreError,
    TransientNetworkError,
    TubeTrackerError,
    UnauthorizedError,
    YouTubeError,
)
from tube_tracker.core.identity import IdentityProvider, User
from tube_tracker.core.logger import (
    get_logger,
    log_credit_failure,
    log_sync_failure,
    setup_logging,
    shutdown_logging,
)
from tube_tracker.core.models import CreditBalance, ProgressRecord, ReserveResult

__all__ = [
    # Config
    "Config",
    "LocalConfig",
    "RemoteConfig",
    "YouTubeConfig",
    "GeneratorConfig",
    "CreditsConfig",
    "CacheConfig",
    "UserConfig",
    "load_config",
    "parse_config",
    # Local store
    "LocalStore",
    "DATABASE_VERSION",
    # Identity
    "IdentityProvider",
    "User",
    # Models
    "ProgressRecord",
    "CreditBalance",
    "ReserveResult",
    # Exceptions
    "TubeTrackerError",
    "ConfigError",
    "LocalStoreError",
    "RemoteStoreError",
    "NotFoundError",
    "PlaylistNotFoundError",
    "InvalidPlaylistError",
    "UnauthorizedError",
    "InsufficientCreditsError",
    "TransientNetworkError",
    "YouTubeError",
    "GenerationError",
    "MalformedResponseError",
    "PartialSyncError",
    # Logger
    "setup_logging",
    "get_logger",
    "log_sync_failure",
    "log_credit_failure",
    "shutdown_logging",
]
