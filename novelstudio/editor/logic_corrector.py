"""Chapter-plan logic scan with summary replacement proposals."""

from dataclasses import dataclass
from typing import List, Optional
import logging

from ..ai.config import ModelTier
from ..ai.parser import parse_payload
from ..ai.schemas import LogicScanPayload
from ..core.exceptions import UserInputError
from ..core.project import Project
from ..core.stages import Stage, StageController

logger = logging.getLogger(__name__)


@dataclass
class LogicIssue:
    """A proposed summary replacement for one chapter.

    ``chapter_index`` is the 0-based position at scan time; ``chapter_id`` pins the
    chapter itself, so later inserts or deletes cannot redirect the fix.
    """

    chapter_index: int
    chapter_id: int
    title: str
    reason: str
    old_summary: str
    new_summary: str


class LogicCorrector:
    """Finds contradictions, power-scaling breaks and plot drift across the chapter plan."""

    def __init__(self, ai_client, stages: Optional[StageController] = None):
        self.ai_client = ai_client
        self.stages = stages or StageController()

    async def scan(self, project: Project) -> List[LogicIssue]:
        """Ask for per-chapter issues; issues pointing at no chapter are dropped."""
        self.stages.require(project, Stage.PLANNING)
        if not project.chapters:
            raise UserInputError("There are no chapters to check")

        listing = "\n".join(
            f"[Ch{i}] {c.title}: {c.summary}" for i, c in enumerate(project.chapters, start=1)
        )
        prompt = f"""Logic correction task. Main plot:
\"\"\"{project.architecture.source_material}\"\"\"
Chapter list:
\"\"\"{listing}\"\"\"
Scan for contradictions between chapters, broken power scaling, and drift away from the main plot.
chapterIndex is 0-based (Ch1 is 0).
Return JSON: {{"issues": [{{"chapterIndex": 0, "title": "", "reason": "", "newSummary": ""}}]}}"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You diagnose plot logic.",
            json_mode=True,
            model_tier=ModelTier.FAST,
        )
        payload = parse_payload(text, LogicScanPayload)

        issues = []
        for item in payload.issues:
            if not 0 <= item.chapter_index < len(project.chapters):
                logger.warning("Dropping logic issue for missing chapter index %d", item.chapter_index)
                continue
            chapter = project.chapters[item.chapter_index]
            issues.append(LogicIssue(
                chapter_index=item.chapter_index,
                chapter_id=chapter.id,
                title=item.title,
                reason=item.reason,
                old_summary=chapter.summary,
                new_summary=item.new_summary,
            ))
        logger.info("Logic scan found %d issue(s)", len(issues))
        return issues

    def valid_issues(self, project: Project, issues: List[LogicIssue]) -> List[LogicIssue]:
        """Issues whose chapter still exists."""
        return [i for i in issues if project.find_chapter(i.chapter_id) is not None]

    def apply_all(self, project: Project, issues: List[LogicIssue]) -> List[LogicIssue]:
        """Replace the summary of every chapter that still exists; skip the rest.

        Returns the issues that were applied.
        """
        applicable = self.valid_issues(project, issues)
        skipped = len(issues) - len(applicable)
        if skipped:
            logger.warning("Skipping %d logic fix(es) for deleted chapters", skipped)
        for issue in applicable:
            project.find_chapter(issue.chapter_id).summary = issue.new_summary
        logger.info("Applied %d logic fix(es) to project %s", len(applicable), project.id)
        return applicable
