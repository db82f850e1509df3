"""Chapter prose drafting as a pipeline of named stages."""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from ..core.document import tail
from ..core.exceptions import ChapterNotFoundError, OperationCancelledError
from ..core.project import Project
from ..core.stages import Stage, StageController
from .config import ModelTier

logger = logging.getLogger(__name__)

PREVIOUS_CONTEXT_CHARS = 2000
CONTINUE_CONTEXT_CHARS = 500
FIRST_CHAPTER_CONTEXT = "（第一章）"
CONTINUE_SEPARATOR = "\n\n"
TARGET_LENGTH = 2000

# In deep mode, finishing every tenth chapter makes a memory sync due.
MEMORY_SYNC_INTERVAL = 10

DEFAULT_MIMIC_WRITER = "鲁迅"


class GenerationMode(Enum):
    FAST = "fast"
    DEEP = "deep"


class WriteMode(Enum):
    AUTO = "auto"          # replace the chapter's prose
    CONTINUE = "continue"  # append after the existing prose


@dataclass
class MimicrySettings:
    """Style imitation. A custom style prompt outranks a named writer."""

    active: bool = False
    name: str = DEFAULT_MIMIC_WRITER
    custom_style_prompt: Optional[str] = None

    def instruction(self, project: Project) -> str:
        if self.active:
            if self.custom_style_prompt:
                return f"[HIGHEST PRIORITY: style imitation] {self.custom_style_prompt}"
            if self.name:
                return (
                    f"[Style imitation] Imitate the well-known writer \"{self.name}\" completely: "
                    "their brushwork, narrative rhythm and rhetoric."
                )
        return (
            f"[Writing style] Follow 【{project.settings.style_text()}】 "
            f"and convey 【{project.settings.tone_text()}】."
        )


@dataclass
class DraftStage:
    """One named step. ``render`` turns the previous step's text into this step's prompt."""

    name: str
    system_instruction: str
    tier: ModelTier
    render: Callable[[str], str]


@dataclass
class StageOutcome:
    stage: str
    text: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class DraftResult:
    chapter_id: int
    chapter_number: int
    text: str
    content: str
    mode: GenerationMode
    outcomes: List[StageOutcome] = field(default_factory=list)
    memory_sync_due: bool = False


def _as_prompt(text: str) -> str:
    return text


def _de_ai_prompt(text: str) -> str:
    return (
        f"Draft to improve:\n\"\"\"{text}\"\"\"\n"
        "Task: a deep polish that removes the machine-written feel. Cut down parallelism and "
        "stacked rhetorical patterns (排比), fix stiff transitions, and add description of the surroundings."
    )


def _final_polish_prompt(text: str) -> str:
    return (
        f"Polished draft:\n\"\"\"{text}\"\"\"\n"
        "Task: logic check and final version. Check for conflicts with the setting, refine the wording, "
        "and output the final text only."
    )


FAST_STAGES = [
    DraftStage("draft", "You are a ghostwriter.", ModelTier.FAST, _as_prompt),
]

DEEP_STAGES = [
    DraftStage("draft", "You are a ghostwriter.", ModelTier.DEEP, _as_prompt),
    DraftStage("de_ai_polish", "You are a professional fiction editor.", ModelTier.DEEP, _de_ai_prompt),
    DraftStage("final_polish", "You give manuscripts their final polish.", ModelTier.DEEP, _final_polish_prompt),
]


class ChapterDraftPipeline:
    """Writes one chapter's prose in fast (one stage) or deep (three stages) mode.

    Each stage sees only the previous stage's output. The chapter's stored prose
    is written once, after the last stage succeeds; a failure or cancellation at
    any stage leaves it exactly as it was.
    """

    def __init__(self, ai_client, stages: Optional[StageController] = None):
        self.ai_client = ai_client
        self.stage_controller = stages or StageController()

    def stages_for(self, mode: GenerationMode) -> List[DraftStage]:
        return DEEP_STAGES if mode is GenerationMode.DEEP else FAST_STAGES

    async def write(
        self,
        project: Project,
        index: int,
        mode: GenerationMode = GenerationMode.DEEP,
        write_mode: WriteMode = WriteMode.AUTO,
        mimicry: Optional[MimicrySettings] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> DraftResult:
        self.stage_controller.require(project, Stage.WRITING)
        chapter = project.chapter_at(index)
        chapter_id = chapter.id

        prompt = self.build_prompt(project, index, write_mode, mimicry or MimicrySettings())
        outcomes = await self.run_stages(self.stages_for(mode), prompt, cancel_event)
        last = outcomes[-1]
        if not last.ok:
            logger.warning(
                "Drafting chapter %d stopped at stage '%s'; stored prose unchanged", index + 1, last.stage
            )
            raise last.error

        return self._commit(project, chapter_id, last.text, mode, write_mode, outcomes)

    async def run_stages(
        self,
        stages: List[DraftStage],
        seed: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[StageOutcome]:
        """Thread text through ``stages``; stop at the first failed outcome."""
        outcomes = []
        text = seed
        for stage in stages:
            if cancel_event is not None and cancel_event.is_set():
                outcomes.append(StageOutcome(stage.name, error=OperationCancelledError("Drafting cancelled")))
                break
            logger.debug("Draft stage '%s' starting", stage.name)
            try:
                text = await self.ai_client.complete(
                    stage.render(text),
                    system_instruction=stage.system_instruction,
                    model_tier=stage.tier,
                )
            except Exception as e:
                outcomes.append(StageOutcome(stage.name, error=e))
                break
            outcomes.append(StageOutcome(stage.name, text=text))
        if cancel_event is not None and cancel_event.is_set() and outcomes[-1].ok:
            outcomes.append(StageOutcome("commit", error=OperationCancelledError("Drafting cancelled")))
        return outcomes

    def build_prompt(
        self,
        project: Project,
        index: int,
        write_mode: WriteMode,
        mimicry: MimicrySettings,
    ) -> str:
        chapter = project.chapter_at(index)

        previous_context = FIRST_CHAPTER_CONTEXT
        if index > 0:
            previous = project.get_content(project.chapters[index - 1].id)
            if previous:
                previous_context = f"...{tail(previous, PREVIOUS_CONTEXT_CHARS)}"

        lines = [f"[Write chapter] {chapter.title}"]
        if project.rolling_summary:
            lines.append(f"[Story so far]: \"\"\"{project.rolling_summary}\"\"\"")
        lines.append(f"[Outline]: {chapter.summary}")
        if chapter.writing_guidance:
            lines.append(f"[Writing guidance]: {chapter.writing_guidance}")
        lines.append(f"[Preceding text]: \"\"\"{previous_context}\"\"\"")
        lines.append(
            f"[Requirements] 1. About {TARGET_LENGTH} characters. 2. Style: {mimicry.instruction(project)} "
            "3. No summarizing remarks."
        )
        if write_mode is WriteMode.CONTINUE:
            existing = tail(project.get_content(chapter.id), CONTINUE_CONTEXT_CHARS)
            lines.append(f"[Continue] Pick up directly from the current text: {existing} and move the plot forward.")
        lines.append("Begin:")
        return "\n".join(lines)

    def _commit(self, project, chapter_id, text, mode, write_mode, outcomes) -> DraftResult:
        number = project.chapter_number(chapter_id)
        if number is None:
            raise ChapterNotFoundError("The chapter was deleted while it was being written")

        existing = project.get_content(chapter_id)
        if write_mode is WriteMode.CONTINUE and existing:
            content = existing + CONTINUE_SEPARATOR + text
        else:
            content = text
        project.set_content(chapter_id, content)

        sync_due = (
            mode is GenerationMode.DEEP
            and number > 1
            and number % MEMORY_SYNC_INTERVAL == 0
        )
        logger.info(
            "Chapter %d prose %s (%s mode, %d chars)",
            number, "extended" if write_mode is WriteMode.CONTINUE else "written", mode.value, len(content),
        )
        return DraftResult(
            chapter_id=chapter_id,
            chapter_number=number,
            text=text,
            content=content,
            mode=mode,
            outcomes=outcomes,
            memory_sync_due=sync_due,
        )
