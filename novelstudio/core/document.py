"""Chapter stubs and prose helpers for Novel Pipeline Studio."""

from typing import Dict, Any
from dataclasses import dataclass
import re


_CJK_RE = re.compile(r"[\u4e00-\u9fa5]")
_WHITESPACE_RE = re.compile(r"\s")


def count_words(text: str) -> int:
    """Count words, treating CJK prose as one word per non-whitespace character."""
    if not text:
        return 0
    if _CJK_RE.search(text):
        return len(_WHITESPACE_RE.sub("", text))
    return len(text.split())


def tail(text: str, length: int) -> str:
    """Last ``length`` characters of ``text``."""
    if length <= 0:
        return ""
    return text[-length:]


def excerpt(text: str, length: int) -> str:
    """First ``length`` characters of ``text``, with an ellipsis when cut."""
    if len(text) <= length:
        return text
    return text[:length] + "..."


@dataclass
class Chapter:
    """A planned chapter: title, scene-level summary and optional writing guidance.

    Chapters are numbered by their position in the project's sequence; ``id`` is
    the stable identity prose is keyed by.
    """

    id: int
    title: str
    summary: str = ""
    writing_guidance: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert chapter to dictionary for serialization."""
        return {
            "id": self.id,
            "title": self.title,
            "summary": self.summary,
            "writingGuidance": self.writing_guidance,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Chapter":
        """Create chapter from dictionary."""
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            summary=data.get("summary", ""),
            writing_guidance=data.get("writingGuidance") or "",
        )
