"""
Novel Pipeline Studio - staged, AI-assisted authoring of long serialized novels.
"""

__version__ = "1.0.0"

from .core import Project, Character, Chapter, Stage, StageController
from .ai import (
    LLMClient,
    LLMConfig,
    ArchitectureGenerator,
    BatchChapterGenerator,
    ChapterPlanner,
    ChapterDraftPipeline,
    StyleAnalyzer,
)
from .editor import ConsistencyAuditor, LogicCorrector, RollingMemoryCompactor
from .io import FileHandler, ProjectStore

__all__ = [
    "Project",
    "Character",
    "Chapter",
    "Stage",
    "StageController",
    "LLMClient",
    "LLMConfig",
    "ArchitectureGenerator",
    "BatchChapterGenerator",
    "ChapterPlanner",
    "ChapterDraftPipeline",
    "StyleAnalyzer",
    "ConsistencyAuditor",
    "LogicCorrector",
    "RollingMemoryCompactor",
    "FileHandler",
    "ProjectStore",
]
