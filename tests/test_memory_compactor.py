"""Tests for the rolling story memory."""

import asyncio

import pytest

from novelstudio.ai.config import ModelTier
from novelstudio.core.exceptions import ChapterNotFoundError, StageLockedError
from novelstudio.editor.memory_compactor import (
    DIGEST_LIMIT,
    EMPTY_DIGEST,
    RollingMemoryCompactor,
    bound_digest,
)


def test_bound_digest_keeps_recent_sentences():
    text = "旧事。" * 2000 + "新事发生了。"

    digest = bound_digest(text, 100)

    assert len(digest) <= 100
    assert digest.endswith("新事发生了。")
    assert digest.startswith("旧事。")
    assert bound_digest("  short  ", 100) == "short"


def test_sync_replaces_digest(fake_client, make_project):
    project = make_project(stage=3, chapters=3)
    for chapter in project.chapters:
        project.set_content(chapter.id, f"{chapter.title}的正文")
    fake_client.queue("林凡入门，结识苏雪。")

    digest = asyncio.run(RollingMemoryCompactor(fake_client).sync(project, 2))

    assert project.rolling_summary == digest == "林凡入门，结识苏雪。"
    assert EMPTY_DIGEST in fake_client.prompts[0]
    assert fake_client.calls[0]["model_tier"] is ModelTier.DEEP


def test_window_covers_last_ten_chapters(fake_client, make_project):
    project = make_project(stage=3, chapters=13)
    project.rolling_summary = "前情"

    prompt = RollingMemoryCompactor(fake_client).build_prompt(project, 12)

    assert "[Ch4 第4回]" in prompt
    assert "[Ch13 第13回]" in prompt
    assert "[Ch3 第3回]" not in prompt
    assert "前情" in prompt


def test_excerpts_are_clipped(fake_client, make_project):
    project = make_project(stage=3, chapters=1)
    project.set_content(project.chapters[0].id, "字" * 1500)

    prompt = RollingMemoryCompactor(fake_client).build_prompt(project, 0)

    assert "字" * 1000 + "..." in prompt
    assert "字" * 1001 not in prompt


def test_digest_stays_bounded_over_many_syncs(fake_client, make_project):
    project = make_project(stage=3, chapters=40)
    compactor = RollingMemoryCompactor(fake_client)

    for active in (9, 19, 29, 39):
        fake_client.queue((project.rolling_summary or "") + "又发生了很多事情。" * 400)
        asyncio.run(compactor.sync(project, active))
        assert len(project.rolling_summary) <= DIGEST_LIMIT


def test_stale_index_makes_no_request(fake_client, make_project):
    project = make_project(stage=3, chapters=2)

    with pytest.raises(ChapterNotFoundError):
        asyncio.run(RollingMemoryCompactor(fake_client).sync(project, 5))
    assert fake_client.calls == []


def test_requires_writing_stage(fake_client, make_project):
    with pytest.raises(StageLockedError):
        asyncio.run(RollingMemoryCompactor(fake_client).sync(make_project(stage=2, chapters=1), 0))
