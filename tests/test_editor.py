"""Tests for the consistency audit and the logic corrector."""

import asyncio
import json

import pytest

from novelstudio.core.exceptions import ParseError, StageLockedError, UserInputError
from novelstudio.editor.consistency_checker import ConsistencyAuditor
from novelstudio.editor.logic_corrector import LogicCorrector

AUDIT_REPLY = json.dumps({
    "overallScore": 72,
    "summary": "整体尚可",
    "issues": [
        {"severity": "low", "location": "支线", "description": "奖励偏高"},
        {"severity": "high", "location": "力量体系", "description": "境界倒挂", "suggestion": "调整境界"},
        {"severity": "medium", "location": "人物", "description": "性格突变"},
    ],
}, ensure_ascii=False)


def test_audit_reports_sorted_by_severity(fake_client, make_project):
    project = make_project(stage=1)
    before = project.to_dict()
    fake_client.queue(AUDIT_REPLY)

    report = asyncio.run(ConsistencyAuditor(fake_client).audit(project))

    assert report.overall_score == 72
    assert [i.severity for i in report.issues] == ["high", "medium", "low"]
    assert report.by_severity("high")[0].suggestion == "调整境界"
    assert report.to_dict()["overallScore"] == 72
    assert project.to_dict() == before


def test_audit_needs_plot_and_structure(fake_client, make_project):
    project = make_project()
    project.architecture.plot_structure = ""

    with pytest.raises(UserInputError):
        asyncio.run(ConsistencyAuditor(fake_client).audit(project))
    assert fake_client.calls == []


def test_audit_rejects_bad_score(fake_client, make_project):
    fake_client.queue('{"overallScore": "great", "issues": []}')

    with pytest.raises(ParseError):
        asyncio.run(ConsistencyAuditor(fake_client).audit(make_project()))


def test_logic_scan_drops_unknown_chapters(fake_client, make_project):
    project = make_project(stage=2, chapters=3)
    fake_client.queue(json.dumps({"issues": [
        {"chapterIndex": 1, "title": "第2回", "reason": "战力崩坏", "newSummary": "修正后的摘要"},
        {"chapterIndex": 7, "title": "?", "reason": "?", "newSummary": "?"},
    ]}, ensure_ascii=False))

    issues = asyncio.run(LogicCorrector(fake_client).scan(project))

    assert len(issues) == 1
    assert issues[0].chapter_id == project.chapters[1].id
    assert issues[0].old_summary == "摘要2"
    assert project.chapters[1].summary == "摘要2"


def test_apply_all_skips_deleted_chapters(fake_client, make_project):
    project = make_project(stage=2, chapters=3)
    fake_client.queue(json.dumps({"issues": [
        {"chapterIndex": 0, "newSummary": "新摘要一"},
        {"chapterIndex": 2, "newSummary": "新摘要三"},
    ]}, ensure_ascii=False))
    corrector = LogicCorrector(fake_client)
    issues = asyncio.run(corrector.scan(project))

    project.delete_chapter(0)
    applied = corrector.apply_all(project, issues)

    assert [i.new_summary for i in applied] == ["新摘要三"]
    assert [c.summary for c in project.chapters] == ["摘要2", "新摘要三"]


def test_logic_scan_gating(fake_client, make_project):
    with pytest.raises(StageLockedError):
        asyncio.run(LogicCorrector(fake_client).scan(make_project(stage=1, chapters=2)))
    with pytest.raises(UserInputError):
        asyncio.run(LogicCorrector(fake_client).scan(make_project(stage=2)))
    assert fake_client.calls == []
