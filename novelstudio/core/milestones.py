"""Chapter-range parsing and milestone scheduling against a batch window."""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .architecture import KeyMilestone


_NUMBER_RE = re.compile(r"\d+")


@dataclass(frozen=True)
class ChapterRange:
    """Closed interval of 1-based chapter numbers."""

    start: int
    end: int

    def overlaps(self, other: "ChapterRange") -> bool:
        """Closed-interval overlap; touching boundaries count."""
        return self.start <= other.end and self.end >= other.start

    def contains(self, chapter_number: int) -> bool:
        return self.start <= chapter_number <= self.end

    def __str__(self) -> str:
        if self.start == self.end:
            return str(self.start)
        return f"{self.start}-{self.end}"


def parse_range(text: Optional[str]) -> Optional[ChapterRange]:
    """Best-effort parse of a free-text chapter range.

    Every run of digits is extracted; the first is the start and the second, if
    any, the end. Anything beyond the second number is ignored, so labels such as
    "第20-30章" or "Ch 10 to 20" parse, while labels carrying extra numbers (dates,
    volume numbers) are not treated specially.

    Returns None when the text holds no digits.
    """
    if not text:
        return None
    numbers = _NUMBER_RE.findall(text)
    if not numbers:
        return None
    start = int(numbers[0])
    end = int(numbers[1]) if len(numbers) > 1 else start
    return ChapterRange(start, end)


def batch_window(existing_count: int, batch_size: int) -> ChapterRange:
    """Window of chapter numbers a batch appended after ``existing_count`` will occupy."""
    return ChapterRange(existing_count + 1, existing_count + batch_size)


def is_active(window: ChapterRange, milestone_range: Optional[ChapterRange]) -> bool:
    """True when the milestone range overlaps the batch window; unparsable ranges never do."""
    if milestone_range is None:
        return False
    return milestone_range.start <= window.end and milestone_range.end >= window.start


def active_milestones(
    milestones: Iterable["KeyMilestone"], window: ChapterRange
) -> List["KeyMilestone"]:
    """All milestones overlapping ``window``, ordered by range start.

    Overlapping milestones are all returned; no precedence is applied between them.
    The sort is stable, so milestones sharing a start keep their planned order.
    """
    hits = [m for m in milestones if is_active(window, m.chapter_span)]
    return sorted(hits, key=lambda m: m.chapter_span.start)


def milestones_at(milestones: Iterable["KeyMilestone"], chapter_number: int) -> List["KeyMilestone"]:
    """Milestones whose range covers a single chapter number."""
    return [m for m in milestones if m.chapter_span and m.chapter_span.contains(chapter_number)]
