"""Response schemas for every structured backend request.

Required fields accept exactly one key (the one the prompt asks for). Optional
fields accept a short whitelist of alternates that models commonly produce:

    writingGuidance   writing_guidance, guidance
    plotFunction      plot_function, function
    expectedChapterRange  expected_chapter_range, chapterRange, range
    rewardOrImpact    reward_or_impact, reward
    timelineStage     timeline_stage
    worldBible        world_bible
    characterList     character_list, characters
    sideQuests        quests, or the bare array itself
    socialStructure / powerSystem / mapStructure   snake_case forms

Optional fields sent as ``null`` take their default. Strings are stripped;
non-string values for string fields are rejected rather than stringified.
"""

from typing import Any, List, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from ..core.architecture import MILESTONE_TYPE_LABELS, MilestoneType


def _optional(*names: str, default: Any = "") -> Any:
    return Field(default=default, validation_alias=AliasChoices(*names))


class Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


# Planning

class ChapterStubPayload(Payload):
    title: str
    summary: str
    writing_guidance: str = _optional("writingGuidance", "writing_guidance", "guidance")


class ChapterBatchPayload(Payload):
    chapters: List[ChapterStubPayload]


class CastSelectionPayload(Payload):
    selected_names: List[str] = Field(alias="selectedNames")


class MilestonePayload(Payload):
    name: str
    type: MilestoneType = MilestoneType.OTHER
    description: str = ""
    expected_chapter_range: str = _optional(
        "expectedChapterRange", "expected_chapter_range", "chapterRange", "range"
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return MilestoneType.OTHER
            return MILESTONE_TYPE_LABELS.get(value, value.lower())
        return value


class MilestoneListPayload(Payload):
    milestones: List[MilestonePayload]


# Architecture

class WorldBiblePayload(Payload):
    time: str = ""
    location: str = ""
    rules: str = ""
    social_structure: str = _optional("socialStructure", "social_structure")
    power_system: str = _optional("powerSystem", "power_system")
    map_structure: str = _optional("mapStructure", "map_structure")


class CharacterPayload(Payload):
    name: str
    role: str = ""
    plot_function: str = _optional("plotFunction", "plot_function", "function")
    traits: str = ""
    bio: str = ""


class ArchitecturePayload(Payload):
    main_plot: str = Field(alias="mainPlot")
    title: str = ""
    world_bible: WorldBiblePayload = Field(
        default_factory=WorldBiblePayload,
        validation_alias=AliasChoices("worldBible", "world_bible"),
    )
    character_list: List[CharacterPayload] = _optional(
        "characterList", "character_list", "characters", default=[]
    )
    timeline: str = ""


class SideQuestPayload(Payload):
    title: str
    location: str = ""
    origin: str = ""
    process: str = ""
    reward_or_impact: str = _optional("rewardOrImpact", "reward_or_impact", "reward")
    timeline_stage: str = _optional("timelineStage", "timeline_stage")


class SideQuestListPayload(Payload):
    """A bare JSON array, or an object wrapping it (JSON-object-only backends)."""

    side_quests: List[SideQuestPayload] = Field(validation_alias=AliasChoices("sideQuests", "quests"))

    @model_validator(mode="before")
    @classmethod
    def _wrap_array(cls, data: Any) -> Any:
        if isinstance(data, list):
            return {"sideQuests": data}
        return data


# Editorial reports

class ConsistencyIssuePayload(Payload):
    severity: Literal["high", "medium", "low"]
    description: str
    location: str = ""
    suggestion: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def _lower_severity(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class ConsistencyReportPayload(Payload):
    overall_score: int = Field(alias="overallScore", ge=0, le=100)
    issues: List[ConsistencyIssuePayload] = Field(default_factory=list)
    summary: str = ""


class LogicIssuePayload(Payload):
    chapter_index: int = Field(alias="chapterIndex")
    new_summary: str = Field(alias="newSummary")
    title: str = ""
    reason: str = ""


class LogicScanPayload(Payload):
    issues: List[LogicIssuePayload] = Field(default_factory=list)
