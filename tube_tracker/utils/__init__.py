"""
Small helpers shared across tube-tracker.

Timestamps are stored as ISO-8601 strings in both stores and handled as
timezone-aware UTC datetimes everywhere else.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Serialize a datetime for storage, assuming UTC if it is naive.

    Always UTC with microseconds so stored strings compare in time order.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str | datetime | None) -> datetime | None:
    """
    Parse a stored timestamp back into an aware UTC datetime.

    Accepts the trailing 'Z' that PostgREST emits, naive strings (taken as
    UTC) and datetimes passed through unchanged. Returns None for None or
    an empty string.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


__all__ = ["utc_now", "to_iso", "parse_iso"]
