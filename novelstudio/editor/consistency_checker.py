"""Corpus-wide consistency audit of the architecture."""

from dataclasses import dataclass, field
from typing import Any, Dict, List
import json
import logging

from ..ai.config import ModelTier
from ..ai.parser import parse_payload
from ..ai.schemas import ConsistencyReportPayload
from ..core.exceptions import UserInputError
from ..core.project import Project

logger = logging.getLogger(__name__)

SEVERITY_ORDER = {"high": 0, "medium": 1, "low": 2}


@dataclass
class ConsistencyIssue:
    severity: str
    location: str
    description: str
    suggestion: str = ""


@dataclass
class ConsistencyReport:
    """Read-only audit result; applying suggestions is left to the author."""

    overall_score: int
    summary: str = ""
    issues: List[ConsistencyIssue] = field(default_factory=list)

    def by_severity(self, severity: str) -> List[ConsistencyIssue]:
        return [i for i in self.issues if i.severity == severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overallScore": self.overall_score,
            "summary": self.summary,
            "issues": [
                {
                    "severity": i.severity,
                    "location": i.location,
                    "description": i.description,
                    "suggestion": i.suggestion,
                }
                for i in self.issues
            ],
        }


class ConsistencyAuditor:
    """Checks world bible, cast, plot and side quests against one another."""

    def __init__(self, ai_client):
        self.ai_client = ai_client

    async def audit(self, project: Project) -> ConsistencyReport:
        """Run the audit. Never modifies ``project``."""
        arch = project.architecture
        if not arch.main_plot.strip() or not arch.plot_structure.strip():
            raise UserInputError("Generate both the main plot and the plot structure before the audit")

        text = await self.ai_client.complete(
            self.build_prompt(project),
            system_instruction="You are a logic auditor for fiction settings.",
            json_mode=True,
            model_tier=ModelTier.DEEP,
        )
        payload = parse_payload(text, ConsistencyReportPayload)

        issues = [
            ConsistencyIssue(
                severity=i.severity,
                location=i.location,
                description=i.description,
                suggestion=i.suggestion,
            )
            for i in payload.issues
        ]
        issues.sort(key=lambda i: SEVERITY_ORDER[i.severity])
        logger.info("Consistency audit: score %d, %d issue(s)", payload.overall_score, len(issues))
        return ConsistencyReport(overall_score=payload.overall_score, summary=payload.summary, issues=issues)

    def build_prompt(self, project: Project) -> str:
        arch = project.architecture

        def dump(value) -> str:
            return json.dumps(value, ensure_ascii=False)

        return f"""Whole-book consistency audit.
Scan the settings archive below for contradictions, logical gaps and setting conflicts.

Archive:
1. World bible: {dump(arch.world_bible.to_dict())}
2. Characters: {dump([c.to_dict() for c in project.characters])}
3. Main plot: {arch.main_plot}
4. Plot structure: {arch.plot_structure}
5. Side quests: {dump([q.to_dict() for q in arch.side_quests])}

Check:
- Does any character act against their established personality?
- Does the plot break the world's laws or power system?
- Do the main plot, the detailed structure and the side quests conflict?
- Do power levels stay consistent throughout?

Return JSON: {{"issues": [{{"severity": "high" | "medium" | "low", "location": "module name",
  "description": "the conflict", "suggestion": "how to fix it"}}], "overallScore": 0-100, "summary": "overall assessment"}}"""
