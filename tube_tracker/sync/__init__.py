"""
Sync module for tube-tracker.

Reconciles the local cache, the remote store and YouTube, and exposes the
study operations (notes, tests) built on top of them.

Usage:
    from tube_tracker.sync import SyncCoordinator, StudyService
"""

from tube_tracker.sync.coordinator import SyncCoordinator
from tube_tracker.sync.models import PlaylistSnapshot, RefreshResult
from tube_tracker.sync.segmentation import part_count, segment, select_segment
from tube_tracker.sync.study import StudyService
from tube_tracker.sync.tasks import BackgroundTasks

__all__ = [
    "SyncCoordinator",
    "StudyService",
    "PlaylistSnapshot",
    "RefreshResult",
    "BackgroundTasks",
    "part_count",
    "segment",
    "select_segment",
]
