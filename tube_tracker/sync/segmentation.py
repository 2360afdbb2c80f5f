"""
Splitting long playlists into display parts.

Pure functions, no I/O. The part count grows with the playlist length:

    n <= 20   -> 1 part
    n <= 60   -> 2 parts
    n <= 120  -> 3 parts
    n >  120  -> 4 parts

Each part holds ceil(n / parts) videos except the last, which holds the
remainder. Examples: 45 -> 23/22, 61 -> 21/21/19, 121 -> 31/31/31/28.
"""

import math
from typing import Sequence, TypeVar

T = TypeVar("T")


# (upper bound inclusive, parts)
_PART_THRESHOLDS = ((20, 1), (60, 2), (120, 3))
_MAX_PARTS = 4


def part_count(n: int) -> int:
    """Number of parts for a playlist of n videos."""
    for upper, parts in _PART_THRESHOLDS:
        if n <= upper:
            return parts
    return _MAX_PARTS


def segment(items: Sequence[T]) -> list[list[T]]:
    """
    Split items into contiguous parts, preserving order.

    Returns:
        A list of parts; empty input gives an empty list.
    """
    n = len(items)
    if n == 0:
        return []
    size = math.ceil(n / part_count(n))
    return [list(items[start:start + size]) for start in range(0, n, size)]


def select_segment(segments: Sequence[Sequence[T]], index: int) -> tuple[int, Sequence[T]]:
    """
    Pick the segment to display.

    An index outside [0, len(segments)) falls back to segment 0, so a
    playlist that shrank on refresh never leaves the viewer on a missing
    part.

    Returns:
        (effective index, segment). With no segments: (0, []).
    """
    if not segments:
        return 0, []
    if not 0 <= index < len(segments):
        index = 0
    return index, segments[index]
