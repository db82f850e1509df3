"""Tests for milestone extraction, casting, stub rewrites and structure resync."""

import asyncio
import json

import pytest

from conftest import FakeCompletionClient
from novelstudio.ai.planner import ChapterPlanner
from novelstudio.core.architecture import MilestoneType
from novelstudio.core.exceptions import ChapterNotFoundError, ParseError, UserInputError
from novelstudio.core.milestones import ChapterRange


def test_extract_milestones_replaces_and_normalizes(fake_client, make_project):
    project = make_project(stage=2)
    fake_client.queue(json.dumps({"milestones": [
        {"name": "外门大比", "type": "宗门", "description": "d", "expectedChapterRange": "第20-30章"},
        {"name": "大结局", "type": "other", "expectedChapterRange": "最后"},
    ]}, ensure_ascii=False))
    project.architecture.key_milestones = []

    found = asyncio.run(ChapterPlanner(fake_client).extract_milestones(project, estimated_total=200))

    assert project.architecture.key_milestones == found
    assert found[0].type is MilestoneType.SECT
    assert found[0].chapter_span == ChapterRange(20, 30)
    assert found[1].chapter_span is None
    assert "200 chapters" in fake_client.prompts[0]


def test_extract_milestones_needs_plot(fake_client, make_project):
    project = make_project(stage=2)
    project.architecture.main_plot = ""
    project.architecture.plot_structure = ""

    with pytest.raises(UserInputError):
        asyncio.run(ChapterPlanner(fake_client).extract_milestones(project))
    assert fake_client.calls == []


def test_select_cast_matches_names(fake_client, make_project):
    project = make_project(stage=2)
    fake_client.queue('{"selectedNames": ["苏雪", "林凡师兄", "路人甲"]}')

    ids = asyncio.run(ChapterPlanner(fake_client).select_cast(project))

    assert ids == [project.characters[0].id, project.characters[1].id]


def test_rewrite_chapter(fake_client, make_project):
    project = make_project(stage=2, chapters=3)
    fake_client.queue('{"title": "新标题", "summary": "衔接前后", "writingGuidance": "节奏放慢"}')

    chapter = asyncio.run(ChapterPlanner(fake_client).rewrite_chapter(project, 1))

    assert project.chapters[1] is chapter
    assert (chapter.title, chapter.summary, chapter.writing_guidance) == ("新标题", "衔接前后", "节奏放慢")
    assert "摘要1" in fake_client.prompts[0]
    assert "摘要3" in fake_client.prompts[0]


def test_rewrite_bad_reply_keeps_stub(fake_client, make_project):
    project = make_project(stage=2, chapters=2)
    fake_client.queue('{"summary": "no title"}')

    with pytest.raises(ParseError):
        asyncio.run(ChapterPlanner(fake_client).rewrite_chapter(project, 0))
    assert project.chapters[0].title == "第1回"


def test_rewrite_of_deleted_chapter_fails(make_project):
    project = make_project(stage=2, chapters=2)

    class DeletingClient(FakeCompletionClient):
        async def complete(self, *args, **kwargs):
            project.delete_chapter(0)
            return await super().complete(*args, **kwargs)

    client = DeletingClient('{"title": "t", "summary": "s"}')

    with pytest.raises(ChapterNotFoundError):
        asyncio.run(ChapterPlanner(client).rewrite_chapter(project, 0))
    assert project.chapters[0].title == "第2回"


def test_resync_needs_five_chapters(fake_client, make_project):
    with pytest.raises(UserInputError):
        asyncio.run(ChapterPlanner(fake_client).resync_structure(make_project(stage=2, chapters=4)))

    project = make_project(stage=2, chapters=5)
    fake_client.queue("  修订后的结构  ")
    asyncio.run(ChapterPlanner(fake_client).resync_structure(project))

    assert project.architecture.plot_structure == "修订后的结构"
    assert "第5章: 摘要5" in fake_client.prompts[0]
