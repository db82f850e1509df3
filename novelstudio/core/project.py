"""Project aggregate for Novel Pipeline Studio."""

from typing import Dict, Any, Optional, List, Iterable
from dataclasses import dataclass, field
from datetime import datetime
import uuid

from .architecture import Architecture, KeyMilestone, record_list, record_mapping
from .character import Character
from .document import Chapter
from .exceptions import ChapterNotFoundError, MilestoneNotFoundError
from .progress import clamp_progress, progress_after_deletion


DEFAULT_TITLE = "新书"


@dataclass
class ProjectSettings:
    """Style and tone tags applied to planning and drafting."""

    styles: List[str] = field(default_factory=list)
    tones: List[str] = field(default_factory=list)

    def style_text(self, separator: str = " + ", default: str = "常规") -> str:
        return separator.join(self.styles) or default

    def tone_text(self, separator: str = " + ", default: str = "正常") -> str:
        return separator.join(self.tones) or default

    def to_dict(self) -> Dict[str, Any]:
        return {"styles": list(self.styles), "tones": list(self.tones)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProjectSettings":
        data = record_mapping(data, "settings")
        return cls(
            styles=list(record_list(data.get("styles"), "settings.styles")),
            tones=list(record_list(data.get("tones"), "settings.tones")),
        )


class Project:
    """A single novel: premise, architecture, cast, ordered chapters and their prose.

    Chapter numbers are 1-based positions in ``chapters``. Prose in ``content`` is
    keyed by chapter id, so inserting or deleting chapters never re-associates text.
    Every id handed out by :meth:`allocate_id` is unique for the project's lifetime.
    """

    def __init__(
        self,
        title: str = DEFAULT_TITLE,
        project_id: Optional[str] = None,
        idea: str = "",
    ):
        self.id = project_id or uuid.uuid4().hex
        self.title = title
        self.last_modified = datetime.now()
        self.idea = idea
        self.current_step = 1
        self.plot_progress = 0
        self.architecture = Architecture()
        self.characters: List[Character] = []
        self.chapters: List[Chapter] = []
        self.content: Dict[int, str] = {}
        self.rolling_summary: Optional[str] = None
        self.settings = ProjectSettings()
        self._next_id = 1

    # Identity

    def allocate_id(self) -> int:
        """Hand out the next never-used entity id."""
        allocated = self._next_id
        self._next_id += 1
        return allocated

    def _all_ids(self) -> Iterable[int]:
        yield from (c.id for c in self.chapters)
        yield from (c.id for c in self.characters)
        yield from (m.id for m in self.architecture.key_milestones)
        yield from (q.id for q in self.architecture.side_quests)
        yield from self.content.keys()

    def _reserve_existing_ids(self) -> None:
        self._next_id = max([self._next_id, *(i + 1 for i in self._all_ids())])

    def touch(self) -> None:
        self.last_modified = datetime.now()

    # Chapters

    def chapter_at(self, index: int) -> Chapter:
        """Chapter at 0-based ``index``."""
        if index < 0 or index >= len(self.chapters):
            raise ChapterNotFoundError(f"Chapter position {index + 1} does not exist")
        return self.chapters[index]

    def find_chapter(self, chapter_id: int) -> Optional[Chapter]:
        return next((c for c in self.chapters if c.id == chapter_id), None)

    def chapter_number(self, chapter_id: int) -> Optional[int]:
        """1-based chapter number of ``chapter_id``, or None once it is gone."""
        for position, chapter in enumerate(self.chapters, start=1):
            if chapter.id == chapter_id:
                return position
        return None

    def get_content(self, chapter_id: int) -> str:
        return self.content.get(chapter_id, "")

    def set_content(self, chapter_id: int, text: str) -> None:
        if self.find_chapter(chapter_id) is None:
            raise ChapterNotFoundError(f"Chapter {chapter_id} does not exist")
        self.content[chapter_id] = text

    def written_chapter_count(self) -> int:
        return sum(1 for c in self.chapters if self.content.get(c.id))

    def append_chapters(self, stubs: Iterable[Dict[str, str]]) -> List[Chapter]:
        """Append stubs in order, each with a freshly allocated id."""
        appended = []
        for stub in stubs:
            chapter = Chapter(
                id=self.allocate_id(),
                title=stub.get("title", ""),
                summary=stub.get("summary", ""),
                writing_guidance=stub.get("writing_guidance", ""),
            )
            self.chapters.append(chapter)
            appended.append(chapter)
        return appended

    def insert_chapter(
        self,
        after_index: int,
        title: str = "新插入章节",
        summary: str = "",
        writing_guidance: str = "建议补充过渡情节",
    ) -> Chapter:
        """Insert a placeholder stub directly after position ``after_index`` (0-based).

        Use ``after_index=-1`` to insert at the front.
        """
        if after_index < -1 or after_index >= len(self.chapters):
            raise ChapterNotFoundError(f"Cannot insert after position {after_index + 1}")
        chapter = Chapter(
            id=self.allocate_id(),
            title=title,
            summary=summary,
            writing_guidance=writing_guidance,
        )
        self.chapters.insert(after_index + 1, chapter)
        return chapter

    def delete_chapter(self, index: int) -> Chapter:
        """Remove the chapter at ``index`` with its prose; progress drops by the fixed step."""
        chapter = self.chapter_at(index)
        del self.chapters[index]
        self.content.pop(chapter.id, None)
        self.plot_progress = progress_after_deletion(self.plot_progress)
        return chapter

    # Cast and milestones

    def get_character(self, character_id: int) -> Optional[Character]:
        return next((c for c in self.characters if c.id == character_id), None)

    def active_characters(self, character_ids: Optional[Iterable[int]] = None) -> List[Character]:
        """Characters selected for a batch; all characters when no selection is given."""
        if character_ids is None:
            return list(self.characters)
        wanted = set(character_ids)
        return [c for c in self.characters if c.id in wanted]

    def add_milestone(self, milestone: KeyMilestone) -> None:
        self.architecture.key_milestones.append(milestone)

    def set_milestone_range(self, milestone_id: int, label: str) -> KeyMilestone:
        milestone = self.architecture.get_milestone(milestone_id)
        if milestone is None:
            raise MilestoneNotFoundError(f"Milestone {milestone_id} does not exist")
        milestone.set_range(label)
        return milestone

    def remove_milestone(self, milestone_id: int) -> None:
        self.architecture.key_milestones = [
            m for m in self.architecture.key_milestones if m.id != milestone_id
        ]

    # Serialization

    def to_dict(self) -> Dict[str, Any]:
        """Convert project to the persisted record layout."""
        return {
            "id": self.id,
            "title": self.title,
            "lastModified": int(self.last_modified.timestamp() * 1000),
            "idea": self.idea,
            "currentStep": self.current_step,
            "plotProgress": self.plot_progress,
            "architecture": self.architecture.to_dict(),
            "characterList": [c.to_dict() for c in self.characters],
            "chapters": [c.to_dict() for c in self.chapters],
            "content": {str(k): v for k, v in self.content.items()},
            "rollingSummary": self.rolling_summary,
            "settings": self.settings.to_dict(),
            "nextId": self._next_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        """Create project from a persisted record.

        Optional fields missing from older records take defaults. Structural problems
        (wrong types, missing ids) raise ``KeyError``, ``TypeError`` or ``ValueError``.
        """
        if not isinstance(data, dict):
            raise TypeError("Project record must be a JSON object")

        project = cls(
            title=data.get("title") or DEFAULT_TITLE,
            project_id=str(data["id"]) if data.get("id") else None,
            idea=data.get("idea") or "",
        )
        project.current_step = min(3, max(1, int(data.get("currentStep") or 1)))
        project.plot_progress = clamp_progress(data.get("plotProgress") or 0)
        project.architecture = Architecture.from_dict(data.get("architecture"))
        project.characters = [Character.from_dict(c) for c in record_list(data.get("characterList"), "characterList")]
        project.chapters = [Chapter.from_dict(c) for c in record_list(data.get("chapters"), "chapters")]
        project.content = {}
        for key, text in record_mapping(data.get("content"), "content").items():
            if not isinstance(text, str):
                raise TypeError(f"content[{key}] must be text")
            project.content[int(key)] = text
        project.rolling_summary = data.get("rollingSummary") or None
        if project.rolling_summary is not None and not isinstance(project.rolling_summary, str):
            raise TypeError("rollingSummary must be text")
        project.settings = ProjectSettings.from_dict(data.get("settings"))
        project._next_id = int(data.get("nextId") or 1)
        project._reserve_existing_ids()

        modified = data.get("lastModified")
        if isinstance(modified, (int, float)):
            project.last_modified = datetime.fromtimestamp(modified / 1000)
        elif isinstance(modified, str):
            project.last_modified = datetime.fromisoformat(modified)

        return project

    def __repr__(self) -> str:
        return f"Project(id={self.id!r}, title={self.title!r}, chapters={len(self.chapters)})"
