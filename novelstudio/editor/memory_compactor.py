"""Rolling story memory: a bounded digest that replaces itself on every sync."""

import logging
import re
from typing import Optional

from ..ai.config import ModelTier
from ..core.document import excerpt
from ..core.project import Project
from ..core.stages import Stage, StageController

logger = logging.getLogger(__name__)

SYNC_WINDOW = 10
EXCERPT_CHARS = 1000
DIGEST_LIMIT = 3000
EMPTY_DIGEST = "故事开始..."

_SENTENCE_BREAK_RE = re.compile(r"[。！？.!?\n]")


def bound_digest(text: str, limit: int = DIGEST_LIMIT) -> str:
    """Keep the most recent ``limit`` characters, starting on a sentence boundary when one exists."""
    text = text.strip()
    if len(text) <= limit:
        return text
    kept = text[-limit:]
    match = _SENTENCE_BREAK_RE.search(kept)
    if match and match.end() < len(kept):
        kept = kept[match.end():]
    return kept.strip()


class RollingMemoryCompactor:
    """Folds the last ten chapters and the current digest into a new digest."""

    def __init__(self, ai_client, digest_limit: int = DIGEST_LIMIT, stages: Optional[StageController] = None):
        self.ai_client = ai_client
        self.digest_limit = digest_limit
        self.stages = stages or StageController()

    def window_start(self, active_index: int) -> int:
        return max(0, active_index - (SYNC_WINDOW - 1))

    def build_prompt(self, project: Project, active_index: int) -> str:
        project.chapter_at(active_index)  # raises for a stale index
        start = self.window_start(active_index)
        blocks = []
        for number, chapter in enumerate(project.chapters[start:active_index + 1], start=start + 1):
            prose = excerpt(project.get_content(chapter.id), EXCERPT_CHARS)
            blocks.append(f"[Ch{number} {chapter.title}]:\n{prose}")
        current = project.rolling_summary or EMPTY_DIGEST
        new_text = "\n\n".join(blocks)

        return f"""Story memory update.
Current global story memory: \"\"\"{current}\"\"\"
New chapters: \"\"\"{new_text}\"\"\"
Merge the key points of the new chapters into the global memory and rewrite it as one continuous memory
that replaces the old one. Use short declarative sentences. Keep it under {self.digest_limit} characters,
compressing older events harder than recent ones."""

    async def sync(self, project: Project, active_index: int) -> str:
        """Replace ``project.rolling_summary`` with a digest covering chapters up to ``active_index``."""
        self.stages.require(project, Stage.WRITING)
        prompt = self.build_prompt(project, active_index)
        text = await self.ai_client.complete(
            prompt,
            system_instruction="You keep the story's memory.",
            model_tier=ModelTier.DEEP,
        )
        digest = bound_digest(text, self.digest_limit)
        if len(digest) < len(text.strip()):
            logger.warning("Digest trimmed from %d to %d characters", len(text.strip()), len(digest))
        project.rolling_summary = digest
        logger.info(
            "Rolling memory synced through chapter %d (%d chars)", active_index + 1, len(digest)
        )
        return digest
