"""Basic usage example for Novel Pipeline Studio."""

import asyncio
from novelstudio import (
    ArchitectureGenerator,
    BatchChapterGenerator,
    ChapterDraftPipeline,
    LLMClient,
    ProjectStore,
    StageController,
)
from novelstudio.ai import load_config


async def main():
    """Example of one pass through the three authoring stages."""

    # Projects live as JSON files in this directory
    store = ProjectStore("projects")
    project = store.create(idea="A disgraced alchemist discovers her apprentice is the heir of a fallen sect")

    # Reads ANTHROPIC_API_KEY (or NOVELSTUDIO_PROVIDER / NOVELSTUDIO_API_KEY) from the environment
    client = LLMClient(load_config())
    stages = StageController()

    async with store.busy(project.id):
        await ArchitectureGenerator(client).generate_architecture(project)
        stages.advance(project)

        batch = await BatchChapterGenerator(client).generate(project, batch_size=10)
        print(f"Planned {len(batch.chapters)} chapters, progress {batch.progress}%")
        stages.advance(project)

        result = await ChapterDraftPipeline(client).write(project, 0)
        store.commit(project)

    store.flush()
    print(f"Chapter {result.chapter_number}:")
    print(result.content)


if __name__ == "__main__":
    asyncio.run(main())
