"""Core domain models for Novel Pipeline Studio."""

from .architecture import Architecture, WorldBible, KeyMilestone, MilestoneType, SideQuest
from .character import Character
from .document import Chapter, count_words
from .milestones import ChapterRange, parse_range, is_active, active_milestones
from .progress import next_progress
from .project import Project, ProjectSettings
from .stages import Stage, StageController

__all__ = [
    "Architecture",
    "WorldBible",
    "KeyMilestone",
    "MilestoneType",
    "SideQuest",
    "Character",
    "Chapter",
    "count_words",
    "ChapterRange",
    "parse_range",
    "is_active",
    "active_milestones",
    "next_progress",
    "Project",
    "ProjectSettings",
    "Stage",
    "StageController",
]
