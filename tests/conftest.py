"""Shared fixtures: a scripted completion client and small project builders."""

from typing import Any, Dict, List

import pytest

from novelstudio.ai.config import ModelTier
from novelstudio.core.character import Character
from novelstudio.core.project import Project
from novelstudio.io.project_store import ProjectStore


class FakeCompletionClient:
    """Stands in for LLMClient. Replies are consumed in order; an exception is raised instead of returned."""

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    async def complete(
        self,
        prompt: str,
        system_instruction: str = "",
        json_mode: bool = False,
        model_tier: ModelTier = ModelTier.FAST,
        temperature: float = None,
    ) -> str:
        self.calls.append({
            "prompt": prompt,
            "system_instruction": system_instruction,
            "json_mode": json_mode,
            "model_tier": model_tier,
        })
        if not self.responses:
            raise AssertionError("Unexpected completion call")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    @property
    def prompts(self) -> List[str]:
        return [c["prompt"] for c in self.calls]


@pytest.fixture
def fake_client():
    return FakeCompletionClient()


@pytest.fixture
def store(tmp_path):
    return ProjectStore(tmp_path / "projects")


def build_project(stage: int = 1, chapters: int = 0, with_cast: bool = True) -> Project:
    project = Project(title="青云志", idea="一个少年在修仙界逆天改命")
    project.architecture.main_plot = "林凡从外门弟子一路成长为宗主。"
    project.architecture.plot_structure = "第一卷：外门。第二卷：内门。第三卷：宗门大战。"
    if with_cast:
        project.characters = [
            Character(id=project.allocate_id(), name="林凡", role="主角"),
            Character(id=project.allocate_id(), name="苏雪", role="女主"),
            Character(id=project.allocate_id(), name="赵天", role="反派"),
        ]
    project.append_chapters(
        {"title": f"第{i}回", "summary": f"摘要{i}", "writing_guidance": ""}
        for i in range(1, chapters + 1)
    )
    project.current_step = stage
    return project


@pytest.fixture
def make_project():
    return build_project
