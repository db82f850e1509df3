"""Architecture-stage generation: premise, world bible, plot, cast and side quests."""

import logging
from typing import List, Sequence

from ..core.architecture import SideQuest, WorldBible, WORLD_BIBLE_FIELDS, WORLD_BIBLE_LABELS
from ..core.character import Character
from ..core.exceptions import UserInputError
from ..core.project import Project
from .config import ModelTier
from .parser import parse_payload
from .schemas import ArchitecturePayload, CharacterPayload, SideQuestListPayload, SideQuestPayload

logger = logging.getLogger(__name__)

UNTITLED = "未命名"


class ArchitectureGenerator:
    """Builds the stage-one material for a project.

    Every method issues its completion call(s) first and only then writes to the
    project, so a failed call leaves the project exactly as it was.
    """

    def __init__(self, ai_client):
        self.ai_client = ai_client

    async def blend_idea(self, project: Project, tags: Sequence[str] = (), custom_input: str = "", strict: bool = False) -> str:
        """Turn genre tags and free text into a premise that replaces ``project.idea``."""
        custom_input = custom_input.strip()
        if not tags and not custom_input:
            raise UserInputError("Pick at least one tag or describe an idea")

        mode = (
            "Build strictly on the material below; do not add unrelated genres."
            if strict
            else "Blend the material below freely into something surprising."
        )
        parts = [f"As a veteran web-fiction editor, develop a novel premise. {mode}"]
        if tags:
            parts.append(f"Tags / styles: {' + '.join(tags)}")
        if custom_input:
            parts.append(f"Author's own ideas and requirements: {custom_input}")
        parts.append("Output: a book title, a blurb, the core reader hooks, and a short sketch of the world.")

        text = await self.ai_client.complete(
            "\n".join(parts),
            system_instruction="You are a creative director for serialized fiction.",
            model_tier=ModelTier.DEEP,
        )
        project.idea = text.strip()
        logger.info("Premise replaced for project %s", project.id)
        return project.idea

    async def generate_architecture(self, project: Project) -> Project:
        """Generate title, world bible, main plot, timeline and cast from the premise."""
        if not project.idea.strip():
            raise UserInputError("Enter a premise (idea) before generating the architecture")

        prompt = f"""Premise: {project.idea}

Build the complete architecture of this novel.

Structural principles (map and power progression):
1. The protagonist is held in each region until they outgrow it, moving from small maps to larger ones.
2. Regions are tiered by power (starter area, advanced area, core realm).
3. Growth and exploration follow a clear timeline.

In mainPlot, mark dungeons as 【副本：NAME】, sects as <<宗门：NAME>> and maps as [地图：NAME].
Give the protagonist the role "主角".

Return JSON:
{{
  "title": "book title",
  "worldBible": {{
    "time": "time period",
    "location": "geography",
    "rules": "core laws of the world",
    "socialStructure": "social, political and economic order",
    "powerSystem": "realms / power levels",
    "mapStructure": "map regions"
  }},
  "mainPlot": "main plot synopsis",
  "characterList": [
    {{"name": "name", "role": "主角", "plotFunction": "plot function", "traits": "traits", "bio": "short bio"}}
  ],
  "timeline": "overall time span"
}}"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a novel architect.",
            json_mode=True,
            model_tier=ModelTier.DEEP,
        )
        payload = parse_payload(text, ArchitecturePayload)

        project.title = payload.title or UNTITLED
        project.architecture.world_bible = WorldBible(**payload.world_bible.model_dump())
        project.architecture.main_plot = payload.main_plot
        project.architecture.timeline = payload.timeline
        project.characters = [self._character(project, c) for c in payload.character_list]
        logger.info(
            "Architecture generated for project %s (%d characters)", project.id, len(project.characters)
        )
        return project

    async def generate_world_field(self, project: Project, field_name: str) -> str:
        """Write one world-bible field from the premise and the other fields."""
        if field_name not in WORLD_BIBLE_FIELDS:
            raise UserInputError(f"Unknown world setting '{field_name}'")
        if not project.idea.strip():
            raise UserInputError("Enter a premise (idea) before generating world settings")

        label = WORLD_BIBLE_LABELS[field_name]
        prompt = f"""Novel premise:
\"\"\"{project.idea}\"\"\"

Write a detailed, original and internally consistent setting for 【{label}】.

Current world settings for reference:
{project.architecture.world_bible.describe()}

Requirements:
1. Be concrete, not generic.
2. Suit web-fiction readers: novelty, payoff, immersion.
3. Keep it between 200 and 500 characters.
4. Output the setting itself and nothing else."""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a world builder.",
            model_tier=ModelTier.DEEP,
        )
        setattr(project.architecture.world_bible, field_name, text.strip())
        logger.info("World setting %s written for project %s", field_name, project.id)
        return text

    async def generate_plot_structure(self, project: Project) -> str:
        """Expand the main plot into the detailed plot structure."""
        main_plot = self._require_main_plot(project)
        prompt = f"""Main plot synopsis:
\"\"\"{main_plot}\"\"\"

Expand it into a detailed plot structure. Follow a strict nested-map progression and break it down
to concrete dungeons, sects, scene changes and growth breakthroughs."""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a story structure specialist.",
            model_tier=ModelTier.DEEP,
        )
        project.architecture.plot_structure = text.strip()
        logger.info("Plot structure written for project %s", project.id)
        return project.architecture.plot_structure

    async def generate_side_quests(self, project: Project) -> List[SideQuest]:
        """Design three to five side quests and append them."""
        main_plot = self._require_main_plot(project)
        cast = ", ".join(f"{c.name} ({c.role})" for c in project.characters) or "none yet"
        prompt = f"""Main plot:
\"\"\"{main_plot}\"\"\"
Existing characters: {cast}

Design 3-5 compelling side quests.
Return a JSON array:
[{{"title": "quest title", "location": "map or place", "origin": "what triggers it",
  "process": "what happens", "rewardOrImpact": "rewards and consequences", "timelineStage": "when it happens"}}]"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a quest designer.",
            json_mode=True,
            model_tier=ModelTier.DEEP,
        )
        payloads = parse_payload(text, SideQuestListPayload).side_quests

        quests = []
        for item in payloads:
            title = f"{item.title} [{item.timeline_stage}]" if item.timeline_stage else item.title
            quests.append(SideQuest(
                id=project.allocate_id(),
                title=title,
                location=item.location,
                origin=item.origin,
                process=item.process,
                reward_or_impact=item.reward_or_impact,
            ))
        project.architecture.side_quests.extend(quests)
        logger.info("Added %d side quests to project %s", len(quests), project.id)
        return quests

    async def refine_side_quest(self, project: Project, quest_id: int) -> SideQuest:
        """Flesh out one side quest's location, origin, process and reward."""
        quest = project.architecture.get_side_quest(quest_id)
        if quest is None:
            raise UserInputError(f"Side quest {quest_id} does not exist")

        cast = ", ".join(c.name for c in project.characters)
        prompt = f"""Side quest design.

Main plot:
\"\"\"{project.architecture.main_plot or 'not set'}\"\"\"

Existing characters: {cast}

Draft of the quest:
- Title / period: {quest.title}
- Location: {quest.location or 'not set'}
- Origin: {quest.origin or 'not set'}
- Process: {quest.process or 'not set'}

Complete its location, origin, detailed process, and the reward or lasting impact on the characters.
Keep it consistent with the tone of the main plot and make the conflict and payoff vivid.

Return JSON: {{"title": "final title", "location": "place", "origin": "origin", "process": "process", "rewardOrImpact": "reward and impact"}}"""

        text = await self.ai_client.complete(
            prompt,
            system_instruction="You refine side quests.",
            json_mode=True,
            model_tier=ModelTier.DEEP,
        )
        payload = parse_payload(text, SideQuestPayload)

        quest.title = payload.title
        quest.location = payload.location
        quest.origin = payload.origin
        quest.process = payload.process
        quest.reward_or_impact = payload.reward_or_impact
        logger.info("Side quest %d refined", quest_id)
        return quest

    async def refine_character(self, project: Project, character_id: int) -> Character:
        """Rewrite one character's role, plot function, traits and bio."""
        character = project.get_character(character_id)
        if character is None:
            raise UserInputError(f"Character {character_id} does not exist")

        prompt = (
            f"Complete the profile of the character 【{character.name}】 "
            f"based on the main plot: {project.architecture.main_plot or 'not set'}.\n"
            "Cover role, plot function, personality traits and a short biography.\n"
            'Return JSON: {"name": "name", "role": "role", "plotFunction": "plot function", '
            '"traits": "traits", "bio": "short bio"}'
        )
        text = await self.ai_client.complete(
            prompt,
            system_instruction="You are a character designer.",
            json_mode=True,
            model_tier=ModelTier.DEEP,
        )
        payload = parse_payload(text, CharacterPayload)

        character.name = payload.name
        character.role = payload.role
        character.plot_function = payload.plot_function
        character.traits = payload.traits
        character.bio = payload.bio
        logger.info("Character %d refined", character_id)
        return character

    def _require_main_plot(self, project: Project) -> str:
        if not project.architecture.main_plot.strip():
            raise UserInputError("Generate or enter the main plot first")
        return project.architecture.main_plot

    def _character(self, project: Project, payload: CharacterPayload) -> Character:
        return Character(
            id=project.allocate_id(),
            name=payload.name,
            role=payload.role,
            plot_function=payload.plot_function,
            traits=payload.traits,
            bio=payload.bio,
        )
