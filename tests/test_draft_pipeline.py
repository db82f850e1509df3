"""Tests for the staged chapter drafting pipeline."""

import asyncio

import pytest

from conftest import FakeCompletionClient
from novelstudio.ai.config import ModelTier
from novelstudio.ai.draft_pipeline import (
    FIRST_CHAPTER_CONTEXT,
    ChapterDraftPipeline,
    GenerationMode,
    MimicrySettings,
    WriteMode,
)
from novelstudio.core.exceptions import (
    ChapterNotFoundError,
    OperationCancelledError,
    ServiceError,
    StageLockedError,
)


def test_deep_mode_threads_three_stages(fake_client, make_project):
    project = make_project(stage=3, chapters=2)
    fake_client.queue("初稿", "润色稿", "定稿")

    result = asyncio.run(ChapterDraftPipeline(fake_client).write(project, 0))

    assert result.content == project.get_content(project.chapters[0].id) == "定稿"
    assert [o.stage for o in result.outcomes] == ["draft", "de_ai_polish", "final_polish"]
    assert all(c["model_tier"] is ModelTier.DEEP for c in fake_client.calls)
    assert "初稿" in fake_client.prompts[1]
    assert "润色稿" in fake_client.prompts[2]


def test_polish_failure_keeps_stored_prose(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    chapter_id = project.chapters[0].id
    project.set_content(chapter_id, "原稿，一字不改。")
    fake_client.queue("初稿", ServiceError("upstream failure"))

    with pytest.raises(ServiceError):
        asyncio.run(ChapterDraftPipeline(fake_client).write(project, 0))

    assert project.get_content(chapter_id) == "原稿，一字不改。"
    assert len(fake_client.calls) == 2


def test_fast_mode_is_one_fast_call(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    fake_client.queue("快速稿")

    result = asyncio.run(ChapterDraftPipeline(fake_client).write(project, 0, mode=GenerationMode.FAST))

    assert result.content == "快速稿"
    assert [c["model_tier"] for c in fake_client.calls] == [ModelTier.FAST]


def test_continue_appends_with_separator(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    chapter_id = project.chapters[0].id
    project.set_content(chapter_id, "上半章")
    fake_client.queue("下半章")

    result = asyncio.run(ChapterDraftPipeline(fake_client).write(
        project, 0, mode=GenerationMode.FAST, write_mode=WriteMode.CONTINUE
    ))

    assert result.content == "上半章\n\n下半章"
    assert result.text == "下半章"
    assert "上半章" in fake_client.prompts[0]


def test_continue_on_empty_chapter_writes_fresh(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    fake_client.queue("新内容")

    result = asyncio.run(ChapterDraftPipeline(fake_client).write(
        project, 0, mode=GenerationMode.FAST, write_mode=WriteMode.CONTINUE
    ))

    assert result.content == "新内容"


def test_memory_sync_due_every_tenth_deep_chapter(fake_client, make_project):
    project = make_project(stage=3, chapters=10)
    pipeline = ChapterDraftPipeline(fake_client)

    fake_client.queue("a", "b", "c")
    assert asyncio.run(pipeline.write(project, 9)).memory_sync_due

    fake_client.queue("a", "b", "c")
    assert not asyncio.run(pipeline.write(project, 8)).memory_sync_due

    fake_client.queue("fast")
    assert not asyncio.run(pipeline.write(project, 9, mode=GenerationMode.FAST)).memory_sync_due


def test_prompt_context(fake_client, make_project):
    project = make_project(stage=3, chapters=2)
    project.rolling_summary = "林凡拜入青云门。"
    project.set_content(project.chapters[0].id, "甲" * 2500 + "乙" * 10)
    pipeline = ChapterDraftPipeline(fake_client)

    first = pipeline.build_prompt(project, 0, WriteMode.AUTO, MimicrySettings())
    second = pipeline.build_prompt(project, 1, WriteMode.AUTO, MimicrySettings(active=True, name="金庸"))

    assert FIRST_CHAPTER_CONTEXT in first
    assert "林凡拜入青云门。" in first
    assert "..." + "甲" * 1990 + "乙" * 10 in second
    assert "甲" * 1991 not in second
    assert "金庸" in second


def test_custom_style_outranks_named_writer(make_project):
    project = make_project()
    mimicry = MimicrySettings(active=True, name="鲁迅", custom_style_prompt="短句，冷峻")

    instruction = mimicry.instruction(project)

    assert "短句，冷峻" in instruction
    assert "鲁迅" not in instruction
    assert "常规" in MimicrySettings().instruction(project)


def test_cancel_before_start(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    event = asyncio.Event()
    event.set()

    with pytest.raises(OperationCancelledError):
        asyncio.run(ChapterDraftPipeline(fake_client).write(project, 0, cancel_event=event))
    assert fake_client.calls == []


def test_cancel_between_stages_keeps_prose(make_project):
    project = make_project(stage=3, chapters=1)
    chapter_id = project.chapters[0].id
    project.set_content(chapter_id, "旧稿")
    event = asyncio.Event()

    class CancellingClient(FakeCompletionClient):
        async def complete(self, *args, **kwargs):
            text = await super().complete(*args, **kwargs)
            event.set()
            return text

    client = CancellingClient("初稿", "润色稿", "定稿")

    with pytest.raises(OperationCancelledError):
        asyncio.run(ChapterDraftPipeline(client).write(project, 0, cancel_event=event))

    assert project.get_content(chapter_id) == "旧稿"
    assert len(client.calls) == 1


def test_chapter_deleted_while_drafting(make_project):
    project = make_project(stage=3, chapters=2)

    class DeletingClient(FakeCompletionClient):
        async def complete(self, *args, **kwargs):
            project.delete_chapter(0)
            return await super().complete(*args, **kwargs)

    with pytest.raises(ChapterNotFoundError):
        asyncio.run(ChapterDraftPipeline(DeletingClient("稿")).write(project, 0, mode=GenerationMode.FAST))
    assert project.content == {}


def test_requires_writing_stage(fake_client, make_project):
    with pytest.raises(StageLockedError):
        asyncio.run(ChapterDraftPipeline(fake_client).write(make_project(stage=2, chapters=1), 0))
    assert fake_client.calls == []
