"""
Exception classes for tube-tracker.

Every failure that crosses a module boundary is raised as one of these
typed exceptions, so callers never see raw sqlite3 or aiohttp errors.

Exception Hierarchy:
    TubeTrackerError (base)
        ConfigError - Configuration file issues
        LocalStoreError - On-device sqlite cache issues
        RemoteStoreError - Authoritative store issues (transient or not)
        NotFoundError - Entity absent upstream
            PlaylistNotFoundError - Playlist missing or private on YouTube
        InvalidPlaylistError - Input is not a playlist URL or id
        UnauthorizedError - Operation requires a signed-in user
        InsufficientCreditsError - Metered operation refused by the ledger
        TransientNetworkError - Platform/generator unreachable
        YouTubeError - YouTube Data API rejected the request
        GenerationError - Generator call failed
            MalformedResponseError - Generator returned an invalid shape
        PartialSyncError - Progress migration failed part-way

Propagation:
    Background paths (playlist refresh, best-effort cache writes) catch
    TubeTrackerError and log it. Foreground paths (add playlist, generate
    notes/test, toggle while signed in) let it propagate to the shell.
    Credit ledger errors always propagate.
"""


class TubeTrackerError(Exception):
    """
    Base exception for all tube-tracker errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (ids, status codes).

    Example:
        try:
            await coordinator.add_playlist(url, user)
        except TubeTrackerError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        """
        Initialize the base exception.

        Args:
            message: Human-readable error description that will be shown to the user.
            details: Optional dictionary containing additional context about the error.
                     Common keys include:
                     - 'playlist_id': Playlist involved in the error
                     - 'video_id': Video involved in the error
                     - 'original_error': The underlying exception if wrapping another error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(TubeTrackerError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Example:
        raise ConfigError(
            "'youtube.api_key' must be a non-empty string",
            details={'field': 'youtube.api_key'}
        )
    """
    pass


class LocalStoreError(TubeTrackerError):
    """
    Raised when the on-device sqlite cache cannot be read or written.

    The local store is disposable, so this is only CRITICAL at startup
    (e.g. schema written by a newer version). At runtime, background paths
    log it and foreground paths surface it.
    """
    pass


class RemoteStoreError(TubeTrackerError):
    """
    Raised when the authoritative remote store rejects or fails a request.

    Attributes:
        is_transient: True if the failure is a connectivity problem and the
                      same request may succeed later (network down, 5xx).

    Example:
        raise RemoteStoreError(
            "Failed to upsert progress: 503",
            details={'table': 'user_progress', 'status': 503},
            is_transient=True
        )
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        is_transient: bool = False
    ) -> None:
        super().__init__(message, details)
        self.is_transient = is_transient


class NotFoundError(TubeTrackerError):
    """
    Raised when a playlist, video or test does not exist.

    Surfaced to the user as-is; never retried.
    """
    pass


class PlaylistNotFoundError(NotFoundError):
    """Raised when YouTube reports no playlist for the id (missing or private)."""
    pass


class InvalidPlaylistError(TubeTrackerError):
    """Raised when user input cannot be parsed into a playlist id."""
    pass


class UnauthorizedError(TubeTrackerError):
    """Raised when an operation that needs a signed-in user is called anonymously."""
    pass


class InsufficientCreditsError(TubeTrackerError):
    """
    Raised when a metered operation cannot be paid for.

    Raised either by the optimistic pre-check (no round trip made) or
    after the store refused the reservation because the cached balance
    was stale. In both cases no generation call has been made.

    Attributes:
        required: Credits the action costs.
        available: Balance known at the time of refusal (None if unknown).
    """

    def __init__(
        self,
        message: str,
        required: int,
        available: int | None = None,
        details: dict | None = None
    ) -> None:
        super().__init__(message, details)
        self.required = required
        self.available = available


class TransientNetworkError(TubeTrackerError):
    """
    Raised when YouTube or the generator is unreachable.

    Background operations swallow it; foreground operations surface it and
    metered ones trigger the refund path.
    """
    pass


class YouTubeError(TubeTrackerError):
    """
    Raised when the YouTube Data API rejects a request (bad key, quota, 4xx).

    Example:
        raise YouTubeError(
            "YouTube API Error: API key not valid",
            details={'status': 400, 'playlist_id': 'PL...'}
        )
    """
    pass


class GenerationError(TubeTrackerError):
    """
    Raised when the notes/test generator fails.

    Always triggers a refund when raised inside a metered operation.
    """
    pass


class MalformedResponseError(GenerationError):
    """
    Raised when the generator answered but the payload has the wrong shape.

    Kept distinct from TransientNetworkError so the shell can tell the
    user to retry the generation rather than check their connection.

    Example:
        raise MalformedResponseError(
            "Question 3 must have exactly 4 options",
            details={'kind': 'test', 'question_index': 3}
        )
    """
    pass


class PartialSyncError(TubeTrackerError):
    """
    Raised when migrating local progress to the remote store fails.

    The local shadow rows are kept, so the migration is retried on the
    next signed-in open of the playlist.
    """
    pass
