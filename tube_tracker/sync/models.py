"""
Immutable views returned by the sync layer.

The coordinator never keeps per-playlist state of its own. Each operation
returns a fresh snapshot, and the shell keeps whichever copy it is
currently showing.
"""

import asyncio
from dataclasses import dataclass, field, replace

from tube_tracker.generation.models import Notes, TestResult
from tube_tracker.sync.segmentation import segment
from tube_tracker.youtube.models import Playlist, Video


@dataclass(frozen=True)
class PlaylistSnapshot:
    """
    Everything needed to display one playlist.

    Attributes:
        playlist: Playlist metadata (None if it is not cached locally).
        videos: Videos ordered by position.
        progress: video_id -> completed.
        notes: video_id -> Notes.
        test_results: video_id -> graded TestResult (signed-in users only).
        remote_synced: True once remote progress/notes/tests were merged in.
                       False for anonymous users and when the remote
                       read failed (local values are shown instead).
        refresh: Background refresh started by open_playlist(), if any.
    """

    playlist: Playlist | None
    videos: tuple[Video, ...]
    progress: dict[str, bool] = field(default_factory=dict)
    notes: dict[str, Notes] = field(default_factory=dict)
    test_results: dict[str, TestResult] = field(default_factory=dict)
    remote_synced: bool = False
    refresh: "asyncio.Task | None" = field(default=None, compare=False, repr=False)

    @property
    def playlist_id(self) -> str | None:
        return self.playlist.id if self.playlist else None

    @property
    def completed_count(self) -> int:
        """Completed videos that are still part of the playlist."""
        video_ids = {video.id for video in self.videos}
        return sum(
            1 for video_id, completed in self.progress.items()
            if completed and video_id in video_ids
        )

    def is_completed(self, video_id: str) -> bool:
        return self.progress.get(video_id, False)

    def segments(self) -> list[list[Video]]:
        return segment(self.videos)

    def with_progress(self, video_id: str, completed: bool) -> "PlaylistSnapshot":
        return replace(self, progress={**self.progress, video_id: completed})

    def with_notes(self, notes: Notes) -> "PlaylistSnapshot":
        return replace(self, notes={**self.notes, notes.video_id: notes})

    def with_videos(self, playlist: Playlist, videos: tuple[Video, ...]) -> "PlaylistSnapshot":
        return replace(self, playlist=playlist, videos=videos)

    def with_test_result(self, result: TestResult) -> "PlaylistSnapshot":
        return replace(self, test_results={**self.test_results, result.video_id: result})


@dataclass(frozen=True)
class RefreshResult:
    """
    Outcome of a successful refresh.

    Attributes:
        playlist: Updated playlist metadata.
        videos: New video list ordered by position.
        playlists: Updated playlist index, most recently accessed first.
    """

    playlist: Playlist
    videos: tuple[Video, ...]
    playlists: tuple[Playlist, ...]
