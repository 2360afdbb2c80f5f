"""
User-scoped records shared by both stores and the credit ledger.

Progress lives in LocalStore only as a pre-login shadow copy (user_id is
None) and in RemoteStore as the authoritative per-user record. Credit
balances only exist remotely.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from tube_tracker.utils import parse_iso, to_iso, utc_now


@dataclass(frozen=True)
class ProgressRecord:
    """
    Watched state of one video for one user.

    Identity is (user_id, video_id, playlist_id). When two writes race,
    the one with the later updated_at wins.

    Attributes:
        user_id: Owner, or None for the local pre-login shadow copy.
        video_id: YouTube video id.
        playlist_id: Playlist the video was watched in.
        completed: True once marked as watched.
        updated_at: Time of the write, used for last-write-wins.
    """

    user_id: str | None
    video_id: str
    playlist_id: str
    completed: bool
    updated_at: datetime

    @property
    def key(self) -> tuple[str | None, str, str]:
        return (self.user_id, self.video_id, self.playlist_id)

    def for_user(self, user_id: str) -> "ProgressRecord":
        """Copy of a shadow record attributed to a signed-in user."""
        return ProgressRecord(
            user_id=user_id,
            video_id=self.video_id,
            playlist_id=self.playlist_id,
            completed=self.completed,
            updated_at=self.updated_at,
        )

    def to_database_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "video_id": self.video_id,
            "playlist_id": self.playlist_id,
            "completed": self.completed,
            "updated_at": to_iso(self.updated_at),
        }

    @classmethod
    def from_database_dict(cls, data: dict[str, Any]) -> "ProgressRecord":
        return cls(
            user_id=data.get("user_id"),
            video_id=data["video_id"],
            playlist_id=data["playlist_id"],
            completed=bool(data.get("completed")),
            updated_at=parse_iso(data.get("updated_at")) or utc_now(),
        )


@dataclass(frozen=True)
class CreditBalance:
    """
    A user's consumable balance.

    Only ever changed through the store's atomic reserve operation.
    """

    user_id: str
    credits: int
    last_daily_bonus_at: date | None = None


@dataclass(frozen=True)
class ReserveResult:
    """
    Outcome of one atomic check-and-decrement.

    Attributes:
        success: False when the balance could not cover the cost.
        new_balance: Balance after the call (unchanged on failure).
        message: Server-provided explanation, shown to the user on refusal.
    """

    success: bool
    new_balance: int
    message: str = ""
