"""Plot-progress ledger arithmetic."""

import math
from typing import Optional

MAX_PROGRESS = 100

# Fixed amount removed from the ledger when a chapter is deleted. Deletion never
# recomputes progress from the chapter-count ratio.
DELETION_PROGRESS_DECREMENT = 1


def clamp_progress(value: int) -> int:
    return max(0, min(MAX_PROGRESS, int(value)))


def ratio_progress(cumulative_chapter_count: int, estimated_total_chapters: int) -> Optional[int]:
    """Percentage implied by chapter count, or None when no total is estimated."""
    if estimated_total_chapters <= 0:
        return None
    # Half-up rounding, not Python's banker's rounding.
    ratio = cumulative_chapter_count / estimated_total_chapters * 100
    return min(MAX_PROGRESS, int(math.floor(ratio + 0.5)))


def next_progress(
    current: int,
    manual_increment: int,
    remaining: Optional[int] = None,
    cumulative_chapter_count: int = 0,
    estimated_total_chapters: int = 0,
) -> int:
    """Compute the progress a batch should commit.

    The manual increment is clamped to what remains before 100. When a total
    chapter estimate is set, the ratio-derived value wins whenever it advances
    progress further than ``current``; otherwise the clamped increment applies.
    The result never falls below ``current``.

    Args:
        current: Progress before the batch.
        manual_increment: Slider-style increment requested by the author.
        remaining: Headroom before 100; derived from ``current`` when omitted.
        cumulative_chapter_count: Chapter count after the batch is appended.
        estimated_total_chapters: Planned book length; ``<= 0`` disables the ratio path.
    """
    if remaining is None:
        remaining = MAX_PROGRESS - current
    clamped_increment = max(0, min(manual_increment, remaining))

    calculated = ratio_progress(cumulative_chapter_count, estimated_total_chapters)
    if calculated is not None and calculated > current:
        return calculated
    return current + clamped_increment


def progress_after_deletion(current: int, deleted_count: int = 1) -> int:
    """Ledger value after removing ``deleted_count`` chapters by hand."""
    return max(0, current - DELETION_PROGRESS_DECREMENT * deleted_count)
