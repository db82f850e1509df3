"""Planning-stage generation: chapter batches, milestones, casting and stub rewrites."""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..core.architecture import KeyMilestone
from ..core.character import find_protagonist, match_names
from ..core.document import Chapter
from ..core.exceptions import ChapterNotFoundError, ParseError, UserInputError
from ..core.milestones import ChapterRange, active_milestones, batch_window
from ..core.progress import MAX_PROGRESS, next_progress
from ..core.project import Project
from ..core.stages import Stage, StageController
from .config import ModelTier
from .parser import parse_payload
from .schemas import CastSelectionPayload, ChapterBatchPayload, ChapterStubPayload, MilestoneListPayload

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50
DEFAULT_PLOT_INCREMENT = 20
DEFAULT_ESTIMATED_TOTAL = 300

# Chapters below this count are the opening, where world-building must stay implicit.
EARLY_PHASE_CHAPTERS = 10

MIN_CHAPTERS_FOR_RESYNC = 5
RESYNC_SUMMARY_LIMIT = 50000
NO_PLOT = "no main plot provided"

EARLY_PHASE_INSTRUCTION = """Opening chapters: world-building must surface naturally.
These are among the first chapters of the book. While advancing the plot, reveal the world
(power system, currency, geography) through what the protagonist sees, says and runs into.
Do NOT write blocks of exposition; the reader should absorb the world without noticing."""


@dataclass
class BatchResult:
    """Outcome of one committed chapter batch."""

    chapters: List[Chapter]
    window: ChapterRange
    previous_progress: int
    progress: int
    milestones: List[KeyMilestone] = field(default_factory=list)


class BatchChapterGenerator:
    """Generates chapter stubs in batches and keeps progress and milestones in step."""

    def __init__(self, ai_client, stages: Optional[StageController] = None):
        self.ai_client = ai_client
        self.stages = stages or StageController()

    async def generate(
        self,
        project: Project,
        batch_size: int = DEFAULT_BATCH_SIZE,
        manual_increment: int = DEFAULT_PLOT_INCREMENT,
        estimated_total: int = DEFAULT_ESTIMATED_TOTAL,
        character_ids: Optional[Iterable[int]] = None,
    ) -> BatchResult:
        """Request ``batch_size`` stubs after the last chapter and append them.

        Nothing is appended, and progress is untouched, unless the whole response
        parses. A response with more chapters than requested is cut to the batch
        size; progress is computed from the chapters actually appended.
        """
        self.stages.require(project, Stage.PLANNING)
        if batch_size < 1:
            raise UserInputError("Batch size must be at least 1")
        cast = project.active_characters(character_ids)
        if not cast:
            raise UserInputError("Select at least one active character for this batch")

        existing = len(project.chapters)
        window = batch_window(existing, batch_size)
        milestones = active_milestones(project.architecture.key_milestones, window)
        current = project.plot_progress
        target = next_progress(
            current,
            manual_increment,
            cumulative_chapter_count=window.end,
            estimated_total_chapters=estimated_total,
        )

        prompt = self._batch_prompt(project, cast, window, milestones, current, target, estimated_total)
        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a master planner of serialized novels.",
            json_mode=True,
            model_tier=ModelTier.FAST,
        )
        stubs = parse_payload(text, ChapterBatchPayload).chapters
        if not stubs:
            raise ParseError("The backend returned no chapters")
        if len(stubs) > batch_size:
            logger.warning("Batch returned %d chapters for %d requested; extra dropped", len(stubs), batch_size)
            stubs = stubs[:batch_size]

        progress = next_progress(
            current,
            manual_increment,
            cumulative_chapter_count=existing + len(stubs),
            estimated_total_chapters=estimated_total,
        )
        appended = project.append_chapters(stub.model_dump() for stub in stubs)
        project.plot_progress = min(MAX_PROGRESS, progress)
        logger.info(
            "Appended chapters %d-%d to project %s; progress %d%% -> %d%%",
            existing + 1, existing + len(appended), project.id, current, project.plot_progress,
        )
        return BatchResult(
            chapters=appended,
            window=window,
            previous_progress=current,
            progress=project.plot_progress,
            milestones=milestones,
        )

    def _batch_prompt(self, project, cast, window, milestones, current, target, estimated_total) -> str:
        protagonist = find_protagonist(cast)
        others = "、".join(c.name for c in cast if c is not protagonist) or "none"
        styles = project.settings.style_text("、", "standard")
        tones = project.settings.tone_text("、", "normal")
        source = project.architecture.source_material or NO_PLOT

        if milestones:
            milestone_block = (
                f"MANDATORY plot milestones for this batch (chapters {window}):\n"
                "Every milestone below falls inside this batch and must be written into the plan. "
                "Where two overlap, fit both in; order them by their planned ranges.\n"
                + "\n".join(m.prompt_line() for m in milestones)
            )
        else:
            milestone_block = (
                "No preset milestones fall in this batch. Bridge freely along the main plot "
                "and set up the coming climaxes."
            )
        early = EARLY_PHASE_INSTRUCTION if window.start - 1 < EARLY_PHASE_CHAPTERS else ""

        return f"""Novel architecture / outline:
\"\"\"{source}\"\"\"

Global progress context:
- Planned length of the book: {estimated_total} chapters.
- This batch covers chapters {window.start} to {window.end}.
- Overall plot progress: {current}% -> {target}%.

Cast for this batch: point-of-view character {protagonist.name}; others: {others}

{milestone_block}

Task: write detailed outlines for {window.end - window.start + 1} chapters.

{early}

For every chapter produce three fields:
1. title: the chapter title.
2. summary: a scene-by-scene breakdown. Not "he defeats the enemy" but "he sidesteps the fireball,
   counters with the frost charm won in chapter three and strikes the weak point...". The more detail the better.
3. writingGuidance: writing advice tailored to this outline (combat, romance, daily life...), e.g.
   "use inner monologue to heighten the tension" or "switch between several viewpoints".

Format:
1. About 70% of the story from the protagonist's point of view.
2. Style: {styles}; tone: {tones}.
3. Return JSON, with writingGuidance always present:
{{"chapters": [{{"title": "title", "summary": "plain-text outline", "writingGuidance": "suggested technique"}}]}}
The chapters array must hold exactly {window.end - window.start + 1} items."""


class ChapterPlanner:
    """The other planning-stage operations: milestones, casting, rewrites and resync."""

    def __init__(self, ai_client, stages: Optional[StageController] = None):
        self.ai_client = ai_client
        self.stages = stages or StageController()

    async def extract_milestones(self, project: Project, estimated_total: int = DEFAULT_ESTIMATED_TOTAL) -> List[KeyMilestone]:
        """Replace the milestone list with key plot events pulled from the structure."""
        self.stages.require(project, Stage.PLANNING)
        source = project.architecture.source_material
        if not source.strip():
            raise UserInputError("Generate the main plot in the architecture stage first")

        prompt = f"""Main plot outline:
\"\"\"{source}\"\"\"

The book is planned at {estimated_total} chapters.

Extract every key plot milestone that should steer chapter planning. Focus on:
1. dungeons and major events  2. sects and factions entering  3. map changes  4. major growth of the protagonist.

Spread the milestones sensibly across chapters 1 to {estimated_total} and give each an approximate chapter range.

Return JSON in story order:
{{"milestones": [{{"name": "short name", "type": "dungeon" | "sect" | "location" | "growth" | "other",
  "description": "description", "expectedChapterRange": "suggested range, e.g. 第20-30章"}}]}}"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a plot analyst.",
            json_mode=True,
            model_tier=ModelTier.FAST,
        )
        payload = parse_payload(text, MilestoneListPayload)

        milestones = [
            KeyMilestone(
                id=project.allocate_id(),
                name=m.name,
                type=m.type,
                description=m.description,
                expected_chapter_range=m.expected_chapter_range,
            )
            for m in payload.milestones
        ]
        project.architecture.key_milestones = milestones
        unparsed = [m.name for m in milestones if m.chapter_span is None]
        if unparsed:
            logger.warning("Milestones without a usable chapter range: %s", ", ".join(unparsed))
        logger.info("Extracted %d milestones for project %s", len(milestones), project.id)
        return milestones

    async def select_cast(
        self,
        project: Project,
        batch_size: int = DEFAULT_BATCH_SIZE,
        manual_increment: int = DEFAULT_PLOT_INCREMENT,
    ) -> List[int]:
        """Ids of the characters the backend says must appear in the next batch."""
        self.stages.require(project, Stage.PLANNING)
        if not project.characters:
            raise UserInputError("The project has no characters to choose from")

        current = project.plot_progress
        target = min(MAX_PROGRESS, current + max(0, min(manual_increment, MAX_PROGRESS - current)))
        structure = project.architecture.source_material or NO_PLOT
        roster = "\n".join(f"- {c.name} ({c.role}, {c.plot_function})" for c in project.characters)
        prompt = f"""Main plot structure:
\"\"\"{structure[:2000]}...\"\"\"
Current plot progress: {current}%. The next task is to plan about {batch_size} chapters, reaching {target}%.
Available characters:
{roster}
Work out what the coming plot needs and pick the characters who MUST appear.
Return JSON: {{"selectedNames": ["name 1", "name 2"]}}"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a casting director.",
            json_mode=True,
            model_tier=ModelTier.FAST,
        )
        names = parse_payload(text, CastSelectionPayload).selected_names
        selected = match_names(project.characters, names)
        if not selected:
            logger.warning("Cast selection matched none of: %s", ", ".join(names))
        return selected

    async def rewrite_chapter(self, project: Project, index: int) -> Chapter:
        """Regenerate the stub at ``index`` so it bridges its neighbours."""
        self.stages.require(project, Stage.PLANNING)
        chapter = project.chapter_at(index)
        chapter_id = chapter.id
        previous = project.chapters[index - 1].summary if index > 0 else "the story begins"
        following = project.chapters[index + 1].summary if index < len(project.chapters) - 1 else "the story continues"

        prompt = (
            f"Task: rewrite the outline of chapter {index + 1}. "
            f"Context: previous chapter [{previous}], next chapter [{following}]. "
            f"Main plot: {project.architecture.source_material}. Current title: {chapter.title}. "
            "Write an outline that links what comes before and after, and provide writing guidance for this chapter "
            'at the same time. Return JSON: {"title": "suggested title", "summary": "plain-text outline", '
            '"writingGuidance": "writing advice"}'
        )
        text = await self.ai_client.complete(
            prompt,
            system_instruction="You fix plot outlines.",
            json_mode=True,
            model_tier=ModelTier.FAST,
        )
        payload = parse_payload(text, ChapterStubPayload)

        chapter = project.find_chapter(chapter_id)
        if chapter is None:
            raise ChapterNotFoundError("The chapter was deleted while it was being rewritten")
        chapter.title = payload.title
        chapter.summary = payload.summary
        chapter.writing_guidance = payload.writing_guidance
        logger.info("Rewrote chapter %d of project %s", project.chapter_number(chapter_id), project.id)
        return chapter

    async def resync_structure(self, project: Project) -> str:
        """Revise the plot structure to match the chapters actually planned."""
        self.stages.require(project, Stage.PLANNING)
        if len(project.chapters) < MIN_CHAPTERS_FOR_RESYNC:
            raise UserInputError(
                f"At least {MIN_CHAPTERS_FOR_RESYNC} chapters are needed before the structure is revised"
            )

        summaries = "\n".join(f"第{i}章: {c.summary}" for i, c in enumerate(project.chapters, start=1))
        prompt = f"""Structure revision. Original structure:
\"\"\"{project.architecture.source_material}\"\"\"
Chapters the author actually planned:
\"\"\"{summaries[:RESYNC_SUMMARY_LIMIT]}...\"\"\"
Instruction: using the chapters the author actually planned, adjust and correct the original structure
lightly and repair any logical gaps. Output the revised detailed plot structure."""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You rebuild story architecture.",
            model_tier=ModelTier.FAST,
        )
        project.architecture.plot_structure = text.strip()
        logger.info("Plot structure resynced from %d chapters", len(project.chapters))
        return project.architecture.plot_structure
