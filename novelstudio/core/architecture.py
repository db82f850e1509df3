"""World bible, milestones, side quests and the architecture that holds them."""

from enum import Enum
from typing import Dict, List, Any, Optional
from dataclasses import dataclass, field

from .milestones import ChapterRange, parse_range


def record_mapping(value: Any, what: str) -> Dict[str, Any]:
    """A nested record object; missing reads as empty, any other shape is a TypeError."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise TypeError(f"{what} must be an object, not {type(value).__name__}")
    return value


def record_list(value: Any, what: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{what} must be a list, not {type(value).__name__}")
    return value


WORLD_BIBLE_FIELDS = (
    "time",
    "location",
    "rules",
    "social_structure",
    "power_system",
    "map_structure",
)

WORLD_BIBLE_LABELS = {
    "time": "时间背景",
    "location": "地理环境",
    "rules": "核心法则",
    "social_structure": "社会体系",
    "power_system": "力量体系",
    "map_structure": "地图结构",
}

_BIBLE_KEYS = {
    "time": "time",
    "location": "location",
    "rules": "rules",
    "social_structure": "socialStructure",
    "power_system": "powerSystem",
    "map_structure": "mapStructure",
}


@dataclass
class WorldBible:
    """The six named world-setting fields."""

    time: str = ""
    location: str = ""
    rules: str = ""
    social_structure: str = ""
    power_system: str = ""
    map_structure: str = ""

    def is_populated(self) -> bool:
        return any(getattr(self, name).strip() for name in WORLD_BIBLE_FIELDS)

    def describe(self) -> str:
        """Labelled listing used inside prompts; empty fields read as undecided."""
        return "\n".join(
            f"- {WORLD_BIBLE_LABELS[name]}: {getattr(self, name) or '未定'}"
            for name in WORLD_BIBLE_FIELDS
        )

    def to_dict(self) -> Dict[str, str]:
        return {key: getattr(self, name) for name, key in _BIBLE_KEYS.items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "WorldBible":
        data = record_mapping(data, "worldBible")
        return cls(**{name: data.get(key) or "" for name, key in _BIBLE_KEYS.items()})


class MilestoneType(Enum):
    """Kind of planned plot event."""
    DUNGEON = "dungeon"
    SECT = "sect"
    LOCATION = "location"
    GROWTH = "growth"
    OTHER = "other"

    @classmethod
    def from_label(cls, value: Any) -> "MilestoneType":
        """Lenient lookup for stored records; unknown kinds read as OTHER."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            return cls.OTHER
        value = value.strip()
        if value in MILESTONE_TYPE_LABELS:
            return MILESTONE_TYPE_LABELS[value]
        try:
            return cls(value.lower())
        except ValueError:
            return cls.OTHER


MILESTONE_TYPE_LABELS = {
    "副本": MilestoneType.DUNGEON,
    "宗门": MilestoneType.SECT,
    "势力": MilestoneType.SECT,
    "地图": MilestoneType.LOCATION,
    "换地图": MilestoneType.LOCATION,
    "成长": MilestoneType.GROWTH,
    "其他": MilestoneType.OTHER,
}


@dataclass
class KeyMilestone:
    """A planned plot event expected to land in a chapter range.

    ``expected_chapter_range`` is the author-facing label. ``chapter_span`` is the
    numeric interval derived from it and is what scheduling reads; assign the label
    through :meth:`set_range` so the two never drift.
    """

    id: int
    name: str
    type: MilestoneType = MilestoneType.OTHER
    description: str = ""
    expected_chapter_range: str = ""
    chapter_span: Optional[ChapterRange] = field(default=None, compare=False)

    def __post_init__(self):
        if self.chapter_span is None:
            self.chapter_span = parse_range(self.expected_chapter_range)

    def set_range(self, label: str) -> None:
        self.expected_chapter_range = label
        self.chapter_span = parse_range(label)

    def prompt_line(self) -> str:
        return (
            f"- [{self.type.value}] {self.name}: {self.description} "
            f"(planned range: {self.expected_chapter_range or 'unspecified'})"
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "description": self.description,
            "expectedChapterRange": self.expected_chapter_range,
        }
        if self.chapter_span is not None:
            data["chapterSpan"] = [self.chapter_span.start, self.chapter_span.end]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyMilestone":
        """Create milestone from a stored record.

        A stored ``chapterSpan`` is authoritative; records without one (or with an
        unusable one) fall back to parsing the label.
        """
        data = record_mapping(data, "keyMilestones entry")
        return cls(
            id=int(data["id"]),
            name=data.get("name", ""),
            type=MilestoneType.from_label(data.get("type")),
            description=data.get("description", ""),
            expected_chapter_range=data.get("expectedChapterRange") or "",
            chapter_span=_stored_span(data.get("chapterSpan")),
        )


def _stored_span(value: Any) -> Optional[ChapterRange]:
    if isinstance(value, list) and len(value) == 2 and all(
        isinstance(n, int) and not isinstance(n, bool) for n in value
    ):
        return ChapterRange(*value)
    return None


@dataclass
class SideQuest:
    """A sub-plot used for character development."""

    id: int
    title: str
    location: str = ""
    origin: str = ""
    process: str = ""
    reward_or_impact: str = ""
    associated_characters: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "location": self.location,
            "origin": self.origin,
            "process": self.process,
            "rewardOrImpact": self.reward_or_impact,
            "associatedCharacters": list(self.associated_characters),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SideQuest":
        data = record_mapping(data, "sideQuests entry")
        return cls(
            id=int(data["id"]),
            title=data.get("title", ""),
            location=data.get("location", ""),
            origin=data.get("origin", ""),
            process=data.get("process", ""),
            reward_or_impact=data.get("rewardOrImpact", ""),
            associated_characters=list(record_list(data.get("associatedCharacters"), "associatedCharacters")),
        )


@dataclass
class Architecture:
    """Stage-one output: world bible, plot, side quests, timeline and milestones."""

    world_bible: WorldBible = field(default_factory=WorldBible)
    main_plot: str = ""
    plot_structure: str = ""
    side_quests: List[SideQuest] = field(default_factory=list)
    timeline: str = ""
    key_milestones: List[KeyMilestone] = field(default_factory=list)

    @property
    def source_material(self) -> str:
        """Most detailed plot description available."""
        return self.plot_structure or self.main_plot

    def is_populated(self) -> bool:
        return bool(
            self.world_bible.is_populated()
            or self.main_plot.strip()
            or self.plot_structure.strip()
            or self.timeline.strip()
            or self.side_quests
            or self.key_milestones
        )

    def get_milestone(self, milestone_id: int) -> Optional[KeyMilestone]:
        return next((m for m in self.key_milestones if m.id == milestone_id), None)

    def get_side_quest(self, quest_id: int) -> Optional[SideQuest]:
        return next((q for q in self.side_quests if q.id == quest_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "worldBible": self.world_bible.to_dict(),
            "mainPlot": self.main_plot,
            "plotStructure": self.plot_structure,
            "sideQuests": [q.to_dict() for q in self.side_quests],
            "timeline": self.timeline,
            "keyMilestones": [m.to_dict() for m in self.key_milestones],
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Architecture":
        data = record_mapping(data, "architecture")
        return cls(
            world_bible=WorldBible.from_dict(data.get("worldBible")),
            main_plot=data.get("mainPlot") or "",
            plot_structure=data.get("plotStructure") or "",
            side_quests=[SideQuest.from_dict(q) for q in record_list(data.get("sideQuests"), "sideQuests")],
            timeline=data.get("timeline") or "",
            key_milestones=[KeyMilestone.from_dict(m) for m in record_list(data.get("keyMilestones"), "keyMilestones")],
        )
