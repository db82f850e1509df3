"""Tests for architecture-stage generation."""

import asyncio
import json

import pytest

from novelstudio.ai.architecture_generator import ArchitectureGenerator, UNTITLED
from novelstudio.ai.config import ModelTier
from novelstudio.core.exceptions import ParseError, UserInputError
from novelstudio.core.project import Project

ARCHITECTURE_REPLY = json.dumps({
    "title": "逆天剑尊",
    "worldBible": {"time": "上古", "powerSystem": "练气、筑基、金丹"},
    "mainPlot": "少年崛起。",
    "characterList": [
        {"name": "林凡", "role": "主角", "plotFunction": "成长线"},
        {"name": "苏雪", "role": "女主"},
    ],
    "timeline": "百年",
}, ensure_ascii=False)


def test_generate_architecture(fake_client):
    project = Project(idea="剑修逆袭")
    fake_client.queue(ARCHITECTURE_REPLY)

    asyncio.run(ArchitectureGenerator(fake_client).generate_architecture(project))

    assert project.title == "逆天剑尊"
    assert project.architecture.world_bible.power_system == "练气、筑基、金丹"
    assert project.architecture.main_plot == "少年崛起。"
    assert [c.name for c in project.characters] == ["林凡", "苏雪"]
    assert project.characters[0].plot_function == "成长线"
    assert len({c.id for c in project.characters}) == 2
    assert fake_client.calls[0]["json_mode"] is True
    assert fake_client.calls[0]["model_tier"] is ModelTier.DEEP


def test_untitled_architecture(fake_client):
    project = Project(idea="剑修逆袭")
    fake_client.queue('{"mainPlot": "plot"}')

    asyncio.run(ArchitectureGenerator(fake_client).generate_architecture(project))

    assert project.title == UNTITLED


def test_architecture_needs_premise(fake_client):
    with pytest.raises(UserInputError):
        asyncio.run(ArchitectureGenerator(fake_client).generate_architecture(Project()))
    assert fake_client.calls == []


def test_architecture_without_main_plot_is_rejected(fake_client):
    project = Project(idea="剑修逆袭")
    before = project.to_dict()
    fake_client.queue('{"title": "x", "characterList": []}')

    with pytest.raises(ParseError):
        asyncio.run(ArchitectureGenerator(fake_client).generate_architecture(project))
    assert project.to_dict() == before


def test_blend_idea(fake_client):
    project = Project()
    fake_client.queue("  新的构思  ")

    idea = asyncio.run(ArchitectureGenerator(fake_client).blend_idea(project, ["玄幻", "系统"], "", strict=True))

    assert idea == project.idea == "新的构思"
    assert "玄幻 + 系统" in fake_client.prompts[0]
    with pytest.raises(UserInputError):
        asyncio.run(ArchitectureGenerator(fake_client).blend_idea(project, [], "  "))


def test_world_field(fake_client, make_project):
    project = make_project()
    fake_client.queue("九州大陆")

    asyncio.run(ArchitectureGenerator(fake_client).generate_world_field(project, "location"))

    assert project.architecture.world_bible.location == "九州大陆"
    with pytest.raises(UserInputError):
        asyncio.run(ArchitectureGenerator(fake_client).generate_world_field(project, "weather"))


def test_side_quests_append_with_stage(fake_client, make_project):
    project = make_project()
    fake_client.queue(json.dumps([
        {"title": "寻药", "location": "药谷", "timelineStage": "外门期"},
        {"title": "救人", "rewardOrImpact": "结识盟友"},
    ], ensure_ascii=False))

    added = asyncio.run(ArchitectureGenerator(fake_client).generate_side_quests(project))

    assert [q.title for q in project.architecture.side_quests] == ["寻药 [外门期]", "救人"]
    assert added[1].reward_or_impact == "结识盟友"


def test_refine_character(fake_client, make_project):
    project = make_project()
    target = project.characters[2]
    fake_client.queue('{"name": "赵天", "role": "反派", "plotFunction": "宿敌", "traits": "阴狠", "bio": "世家子"}')

    asyncio.run(ArchitectureGenerator(fake_client).refine_character(project, target.id))

    assert (target.plot_function, target.traits, target.bio) == ("宿敌", "阴狠", "世家子")
    with pytest.raises(UserInputError):
        asyncio.run(ArchitectureGenerator(fake_client).refine_character(project, 999))
