"""Backend integration and generation modules for Novel Pipeline Studio."""

from .config import LLMConfig, ModelTier, Provider, load_config
from .llm_client import LLMClient
from .parser import parse_json, parse_payload
from .architecture_generator import ArchitectureGenerator
from .planner import BatchChapterGenerator, BatchResult, ChapterPlanner
from .draft_pipeline import ChapterDraftPipeline, DraftResult, GenerationMode, MimicrySettings, WriteMode
from .style_analyzer import StyleAnalyzer

__all__ = [
    "LLMConfig",
    "ModelTier",
    "Provider",
    "load_config",
    "LLMClient",
    "parse_json",
    "parse_payload",
    "ArchitectureGenerator",
    "BatchChapterGenerator",
    "BatchResult",
    "ChapterPlanner",
    "ChapterDraftPipeline",
    "DraftResult",
    "GenerationMode",
    "MimicrySettings",
    "WriteMode",
    "StyleAnalyzer",
]
