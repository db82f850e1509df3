"""Main CLI entry point for Novel Pipeline Studio."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from ..ai.architecture_generator import ArchitectureGenerator
from ..ai.config import load_config
from ..ai.draft_pipeline import ChapterDraftPipeline, GenerationMode, MimicrySettings, WriteMode
from ..ai.llm_client import LLMClient
from ..ai.planner import (
    BatchChapterGenerator,
    ChapterPlanner,
    DEFAULT_BATCH_SIZE,
    DEFAULT_ESTIMATED_TOTAL,
    DEFAULT_PLOT_INCREMENT,
)
from ..ai.style_analyzer import StyleAnalyzer
from ..core.architecture import WORLD_BIBLE_FIELDS
from ..core.document import count_words
from ..core.exceptions import NovelStudioError
from ..core.stages import STAGE_LABELS, Stage, StageController
from ..editor.consistency_checker import ConsistencyAuditor
from ..editor.logic_corrector import LogicCorrector
from ..editor.memory_compactor import RollingMemoryCompactor
from ..io.file_handler import EXPORT_FORMATS, FileHandler
from ..io.project_store import ProjectStore

DEFAULT_STORE = Path.home() / ".novelstudio" / "projects"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _fail(message: str) -> None:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


def _save_on_exit(store: ProjectStore):
    def close():
        try:
            store.flush()
        except NovelStudioError as e:
            _fail(f"{e}. Reload the project and retry.")
    return close


def _client(ctx) -> LLMClient:
    if 'client' not in ctx.obj:
        ctx.obj['client'] = LLMClient(load_config(ctx.obj['config_path']))
    return ctx.obj['client']


def _generate(ctx, project_id, operation):
    """Run one generation call with the project's busy slot held, then commit and save."""
    store = ctx.obj['store']

    async def runner():
        async with store.busy(project_id) as project:
            result = await operation(project)
            store.commit(project)
            return result

    try:
        return asyncio.run(runner())
    finally:
        store.flush()


@click.group()
@click.version_option(version="1.0.0")
@click.option('--store', 'store_dir', type=click.Path(file_okay=False), envvar='NOVELSTUDIO_STORE',
              default=str(DEFAULT_STORE), show_default=True, help='Directory holding project files')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False), envvar='NOVELSTUDIO_CONFIG',
              help='YAML settings file (provider, api_key, base_url, ...)')
@click.option('--verbose', '-v', is_flag=True, help='Debug logging')
@click.pass_context
def cli(ctx, store_dir, config_path, verbose):
    """Novel Pipeline Studio - staged long-form novel authoring"""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT)
    load_dotenv()
    ctx.ensure_object(dict)
    store = ProjectStore(store_dir)
    ctx.obj['store'] = store
    ctx.obj['config_path'] = config_path
    ctx.obj['file_handler'] = FileHandler()
    ctx.obj['stages'] = StageController()
    ctx.call_on_close(_save_on_exit(store))


@cli.group()
def project():
    """Project management commands"""
    pass


@cli.group()
def arch():
    """Architecture stage: premise, world, plot, cast"""
    pass


@cli.group()
def plan():
    """Planning stage: milestones and chapter outlines"""
    pass


@cli.group()
def write():
    """Writing stage: chapter prose and story memory"""
    pass


# Project Commands
@project.command()
@click.option('--title', default='新书', help='Title of the novel')
@click.option('--idea', default='', help='Premise of the novel')
@click.pass_context
def create(ctx, title, idea):
    """Create a new novel project"""
    try:
        new_project = ctx.obj['store'].create(title=title, idea=idea)
        click.echo(f"✅ Created project '{new_project.title}'")
        click.echo(f"🆔 {new_project.id}")
    except NovelStudioError as e:
        _fail(f"Error creating project: {e}")


@project.command(name='list')
@click.pass_context
def list_projects(ctx):
    """List projects, most recent first"""
    projects = ctx.obj['store'].list()
    if not projects:
        click.echo("📭 No projects yet")
        return
    for p in projects:
        click.echo(
            f"📖 {p.title}  [{p.id}]  stage {p.current_step}/3  "
            f"{len(p.chapters)} chapters  {p.plot_progress}%  "
            f"{p.last_modified.strftime('%Y-%m-%d %H:%M')}"
        )


@project.command()
@click.argument('project_id')
@click.pass_context
def show(ctx, project_id):
    """Show project status"""
    try:
        p = ctx.obj['store'].get(project_id)
    except NovelStudioError as e:
        _fail(str(e))

    total_words = sum(count_words(p.get_content(c.id)) for c in p.chapters)

    click.echo(f"\n📊 Project Status: {p.title}")
    click.echo("=" * 50)
    click.echo(f"🧭 Stage: {p.current_step} ({STAGE_LABELS[Stage(p.current_step)]})")
    click.echo(f"📈 Plot progress: {p.plot_progress}%")
    click.echo(f"📚 Chapters planned: {len(p.chapters)}  written: {p.written_chapter_count()}")
    click.echo(f"📝 Word count: {total_words:,}")
    click.echo(f"👥 Characters: {len(p.characters)}")
    click.echo(f"🚩 Milestones: {len(p.architecture.key_milestones)}")
    if p.idea:
        click.echo(f"\n💡 Idea: {p.idea[:200]}")
    if p.rolling_summary:
        click.echo(f"🧠 Memory: {len(p.rolling_summary)} chars")
    if p.current_step < Stage.WRITING:
        following = Stage(p.current_step + 1)
        if ctx.obj['stages'].can_advance(p, following):
            click.echo(f"➡️  Ready for the {STAGE_LABELS[following]} stage")
        else:
            for reason in ctx.obj['stages'].missing_requirements(p, following):
                click.echo(f"⏳ Next stage needs: {reason}")


@project.command()
@click.argument('project_id')
@click.confirmation_option(prompt='Are you sure you want to delete this project?')
@click.pass_context
def delete(ctx, project_id):
    """Delete a project permanently"""
    try:
        ctx.obj['store'].delete(project_id)
        click.echo("✅ Project deleted")
    except NovelStudioError as e:
        _fail(str(e))


@project.command(name='import')
@click.argument('file_path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def import_project(ctx, file_path):
    """Import a project from an exported JSON record"""
    try:
        p = ctx.obj['store'].import_file(file_path)
        click.echo(f"✅ Imported '{p.title}' as {p.id}")
    except NovelStudioError as e:
        _fail(f"Import failed: {e}")


@project.command()
@click.argument('project_id')
@click.option('--format', 'format_type', type=click.Choice(EXPORT_FORMATS), default='txt')
@click.option('--output', type=click.Path(dir_okay=False), help='Output file (default: <title>.<format>)')
@click.pass_context
def export(ctx, project_id, format_type, output):
    """Export a project as text, HTML, DOCX or JSON"""
    try:
        p = ctx.obj['store'].get(project_id)
        path = ctx.obj['file_handler'].export_project(p, output or f"{p.title}.{format_type}", format_type)
        click.echo(f"✅ Exported to {path}")
    except (NovelStudioError, OSError) as e:
        _fail(f"Export failed: {e}")


@project.command()
@click.argument('project_id')
@click.option('--idea', help='Premise text')
@click.option('--title', help='Book title')
@click.option('--style', 'styles', multiple=True, help='Style tag (repeatable)')
@click.option('--tone', 'tones', multiple=True, help='Tone tag (repeatable)')
@click.pass_context
def edit(ctx, project_id, idea, title, styles, tones):
    """Edit premise, title and style/tone tags"""
    def apply(p):
        if idea is not None:
            p.idea = idea
        if title is not None:
            p.title = title
        if styles:
            p.settings.styles = list(styles)
        if tones:
            p.settings.tones = list(tones)

    try:
        ctx.obj['store'].update(project_id, apply)
        click.echo("✅ Project updated")
    except NovelStudioError as e:
        _fail(str(e))


@project.command()
@click.argument('project_id')
@click.option('--to', 'target', type=click.IntRange(1, 3), help='Target stage (default: next)')
@click.pass_context
def advance(ctx, project_id, target):
    """Move to the next authoring stage"""
    try:
        ctx.obj['store'].update(project_id, lambda p: ctx.obj['stages'].advance(p, target))
        p = ctx.obj['store'].get(project_id)
        click.echo(f"✅ Stage {p.current_step}: {STAGE_LABELS[Stage(p.current_step)]}")
    except NovelStudioError as e:
        _fail(str(e))


# Architecture Commands
@arch.command()
@click.argument('project_id')
@click.option('--tag', 'tags', multiple=True, help='Genre / style tag (repeatable)')
@click.option('--input', 'custom_input', default='', help='Your own ideas')
@click.option('--strict', is_flag=True, help='Stay strictly within the given material')
@click.pass_context
def blend(ctx, project_id, tags, custom_input, strict):
    """Blend tags and ideas into a premise"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        click.echo("🤖 Blending ideas...")
        idea = _generate(ctx, project_id, lambda p: generator.blend_idea(p, tags, custom_input, strict))
        click.echo(f"✅ New premise:\n{idea}")
    except NovelStudioError as e:
        _fail(f"Error blending idea: {e}")


@arch.command()
@click.argument('project_id')
@click.pass_context
def generate(ctx, project_id):
    """Generate world bible, main plot and cast from the premise"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        click.echo("🤖 Building the architecture...")
        p = _generate(ctx, project_id, generator.generate_architecture)
        click.echo(f"✅ '{p.title}': {len(p.characters)} characters")
    except NovelStudioError as e:
        _fail(f"Error generating architecture: {e}")


@arch.command()
@click.argument('project_id')
@click.argument('field_name', type=click.Choice(WORLD_BIBLE_FIELDS))
@click.pass_context
def world(ctx, project_id, field_name):
    """Generate one world-bible field"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        text = _generate(ctx, project_id, lambda p: generator.generate_world_field(p, field_name))
        click.echo(f"✅ {field_name}:\n{text}")
    except NovelStudioError as e:
        _fail(f"Error generating {field_name}: {e}")


@arch.command()
@click.argument('project_id')
@click.pass_context
def structure(ctx, project_id):
    """Expand the main plot into a detailed structure"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        click.echo("🤖 Deepening the plot structure...")
        _generate(ctx, project_id, generator.generate_plot_structure)
        click.echo("✅ Plot structure written")
    except NovelStudioError as e:
        _fail(f"Error generating structure: {e}")


@arch.command()
@click.argument('project_id')
@click.pass_context
def quests(ctx, project_id):
    """Design 3-5 side quests"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        added = _generate(ctx, project_id, generator.generate_side_quests)
        click.echo(f"✅ Added {len(added)} side quests")
        for q in added:
            click.echo(f"  • [{q.id}] {q.title}")
    except NovelStudioError as e:
        _fail(f"Error designing side quests: {e}")


@arch.command(name='refine-quest')
@click.argument('project_id')
@click.argument('quest_id', type=int)
@click.pass_context
def refine_quest(ctx, project_id, quest_id):
    """Flesh out one side quest"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        quest = _generate(ctx, project_id, lambda p: generator.refine_side_quest(p, quest_id))
        click.echo(f"✅ {quest.title}")
    except NovelStudioError as e:
        _fail(f"Error refining side quest: {e}")


@arch.command(name='refine-character')
@click.argument('project_id')
@click.argument('character_id', type=int)
@click.pass_context
def refine_character(ctx, project_id, character_id):
    """Complete one character's profile"""
    try:
        generator = ArchitectureGenerator(_client(ctx))
        character = _generate(ctx, project_id, lambda p: generator.refine_character(p, character_id))
        click.echo(f"✅ {character.brief()}")
    except NovelStudioError as e:
        _fail(f"Error refining character: {e}")


@arch.command()
@click.argument('project_id')
@click.pass_context
def audit(ctx, project_id):
    """Whole-book consistency audit (read-only)"""
    try:
        auditor = ConsistencyAuditor(_client(ctx))
        click.echo("🔍 Auditing settings...")
        report = _generate(ctx, project_id, auditor.audit)
    except NovelStudioError as e:
        _fail(f"Audit failed: {e}")

    click.echo(f"\n📊 Score: {report.overall_score}/100")
    if report.summary:
        click.echo(report.summary)
    icons = {"high": "🔴", "medium": "🟠", "low": "🟡"}
    for issue in report.issues:
        click.echo(f"{icons[issue.severity]} [{issue.location}] {issue.description}")
        if issue.suggestion:
            click.echo(f"   💡 {issue.suggestion}")


# Planning Commands
@plan.command()
@click.argument('project_id')
@click.option('--total', default=DEFAULT_ESTIMATED_TOTAL, show_default=True, help='Planned chapter count')
@click.pass_context
def milestones(ctx, project_id, total):
    """Extract key plot milestones from the structure"""
    try:
        planner = ChapterPlanner(_client(ctx))
        found = _generate(ctx, project_id, lambda p: planner.extract_milestones(p, total))
        click.echo(f"✅ {len(found)} milestones")
        for m in found:
            click.echo(f"  • [{m.id}] [{m.type.value}] {m.name} ({m.expected_chapter_range or '?'})")
    except NovelStudioError as e:
        _fail(f"Error extracting milestones: {e}")


@plan.command(name='range')
@click.argument('project_id')
@click.argument('milestone_id', type=int)
@click.argument('label')
@click.pass_context
def milestone_range(ctx, project_id, milestone_id, label):
    """Set a milestone's expected chapter range"""
    try:
        ctx.obj['store'].update(project_id, lambda p: p.set_milestone_range(milestone_id, label))
        m = ctx.obj['store'].get(project_id).architecture.get_milestone(milestone_id)
        span = m.chapter_span or "unparsable, never scheduled"
        click.echo(f"✅ {m.name}: {label} ({span})")
    except NovelStudioError as e:
        _fail(str(e))


@plan.command(name='drop-milestone')
@click.argument('project_id')
@click.argument('milestone_id', type=int)
@click.pass_context
def drop_milestone(ctx, project_id, milestone_id):
    """Remove a milestone from the plan"""
    try:
        ctx.obj['store'].update(project_id, lambda p: p.remove_milestone(milestone_id))
        click.echo("✅ Milestone removed")
    except NovelStudioError as e:
        _fail(str(e))


@plan.command()
@click.argument('project_id')
@click.option('--batch-size', default=DEFAULT_BATCH_SIZE, show_default=True)
@click.option('--increment', default=DEFAULT_PLOT_INCREMENT, show_default=True)
@click.pass_context
def cast(ctx, project_id, batch_size, increment):
    """Let the backend pick the cast for the next batch"""
    try:
        planner = ChapterPlanner(_client(ctx))
        ids = _generate(ctx, project_id, lambda p: planner.select_cast(p, batch_size, increment))
    except NovelStudioError as e:
        _fail(f"Casting failed: {e}")
    if not ids:
        click.echo("⚠️  No characters matched; choose them by hand")
        return
    click.echo(f"✅ Selected: {','.join(str(i) for i in ids)}")


@plan.command()
@click.argument('project_id')
@click.option('--batch-size', default=DEFAULT_BATCH_SIZE, show_default=True)
@click.option('--increment', default=DEFAULT_PLOT_INCREMENT, show_default=True, help='Manual progress increment')
@click.option('--total', default=DEFAULT_ESTIMATED_TOTAL, show_default=True, help='Planned chapter count (0 disables)')
@click.option('--cast', 'cast_ids', help='Comma-separated character ids (default: everyone)')
@click.pass_context
def batch(ctx, project_id, batch_size, increment, total, cast_ids):
    """Generate the next batch of chapter outlines"""
    character_ids = None
    if cast_ids:
        try:
            character_ids = [int(x.strip()) for x in cast_ids.split(',')]
        except ValueError:
            _fail("Invalid cast format. Use: 1,2,3")

    try:
        generator = BatchChapterGenerator(_client(ctx))
        click.echo(f"🤖 Planning {batch_size} chapters...")
        result = _generate(
            ctx, project_id,
            lambda p: generator.generate(p, batch_size, increment, total, character_ids),
        )
    except NovelStudioError as e:
        _fail(f"Error generating chapters: {e}")

    for m in result.milestones:
        click.echo(f"🚩 {m.name} ({m.expected_chapter_range})")
    click.echo(f"✅ Added {len(result.chapters)} chapters; progress {result.previous_progress}% -> {result.progress}%")


@plan.command()
@click.argument('project_id')
@click.argument('number', type=int)
@click.pass_context
def rewrite(ctx, project_id, number):
    """Regenerate the outline of chapter NUMBER"""
    try:
        planner = ChapterPlanner(_client(ctx))
        chapter = _generate(ctx, project_id, lambda p: planner.rewrite_chapter(p, number - 1))
        click.echo(f"✅ {chapter.title}")
    except NovelStudioError as e:
        _fail(f"Error rewriting chapter: {e}")


@plan.command()
@click.argument('project_id')
@click.pass_context
def resync(ctx, project_id):
    """Revise the plot structure from the chapters planned so far"""
    try:
        planner = ChapterPlanner(_client(ctx))
        _generate(ctx, project_id, planner.resync_structure)
        click.echo("✅ Structure adjusted to the current chapters")
    except NovelStudioError as e:
        _fail(f"Error resyncing structure: {e}")


@plan.command()
@click.argument('project_id')
@click.argument('after', type=int)
@click.pass_context
def insert(ctx, project_id, after):
    """Insert a placeholder chapter after chapter AFTER (0 = at the front)"""
    try:
        ctx.obj['store'].update(project_id, lambda p: p.insert_chapter(after - 1))
        click.echo(f"✅ Inserted chapter {after + 1}")
    except NovelStudioError as e:
        _fail(str(e))


@plan.command(name='delete')
@click.argument('project_id')
@click.argument('number', type=int)
@click.confirmation_option(prompt='Delete this chapter and its prose?')
@click.pass_context
def delete_chapter(ctx, project_id, number):
    """Delete chapter NUMBER and its prose"""
    try:
        p = ctx.obj['store'].update(project_id, lambda p: p.delete_chapter(number - 1))
        click.echo(f"✅ Deleted; progress now {p.plot_progress}%")
    except NovelStudioError as e:
        _fail(str(e))


@plan.command()
@click.argument('project_id')
@click.option('--apply', 'apply_fixes', is_flag=True, help='Apply every proposed summary')
@click.pass_context
def logic(ctx, project_id, apply_fixes):
    """Scan chapter outlines for logic problems"""
    store = ctx.obj['store']
    try:
        corrector = LogicCorrector(_client(ctx))
        click.echo("🔍 Scanning the whole book...")
        issues = _generate(ctx, project_id, corrector.scan)
    except NovelStudioError as e:
        _fail(f"Logic scan failed: {e}")

    if not issues:
        click.echo("✅ No logic problems found")
        return
    for issue in issues:
        click.echo(f"⚠️  Ch{issue.chapter_index + 1} {issue.title}: {issue.reason}")
        click.echo(f"   ➡️  {issue.new_summary}")
    if apply_fixes:
        applied = []
        try:
            store.update(project_id, lambda p: applied.extend(corrector.apply_all(p, issues)))
            store.flush()
        except NovelStudioError as e:
            _fail(f"Could not apply fixes: {e}")
        click.echo(f"✅ Applied {len(applied)} fix(es)")


# Writing Commands
@write.command(name='chapter')
@click.argument('project_id')
@click.argument('number', type=int)
@click.option('--mode', type=click.Choice([m.value for m in GenerationMode]), default='deep', show_default=True)
@click.option('--continue', 'continue_', is_flag=True, help='Append to the existing prose')
@click.option('--mimic', help='Imitate a named writer')
@click.option('--style-file', type=click.Path(exists=True, dir_okay=False), help='Imitate the style of a sample file')
@click.pass_context
def write_chapter(ctx, project_id, number, mode, continue_, mimic, style_file):
    """Write the prose of chapter NUMBER"""
    try:
        client = _client(ctx)
        mimicry = MimicrySettings()
        if style_file:
            sample = ctx.obj['file_handler'].read_file(style_file)
            click.echo("🎨 Analyzing style sample...")
            mimicry = asyncio.run(StyleAnalyzer(client).analyze_sample(sample))
        elif mimic:
            mimicry = MimicrySettings(active=True, name=mimic)

        pipeline = ChapterDraftPipeline(client)
        click.echo(f"🤖 Writing chapter {number} ({mode} mode)...")
        result = _generate(
            ctx, project_id,
            lambda p: pipeline.write(
                p, number - 1,
                mode=GenerationMode(mode),
                write_mode=WriteMode.CONTINUE if continue_ else WriteMode.AUTO,
                mimicry=mimicry,
            ),
        )
    except (NovelStudioError, OSError) as e:
        _fail(f"Error writing chapter: {e}")

    click.echo(f"✅ Chapter {result.chapter_number}: {count_words(result.content):,} words")
    if result.memory_sync_due and click.confirm("10 chapters done. Sync the story memory now?"):
        ctx.invoke(sync_memory, project_id=project_id, number=result.chapter_number)


@write.command(name='sync-memory')
@click.argument('project_id')
@click.argument('number', type=int)
@click.pass_context
def sync_memory(ctx, project_id, number):
    """Fold the ten chapters up to NUMBER into the story memory"""
    try:
        compactor = RollingMemoryCompactor(_client(ctx))
        click.echo("🧠 Updating story memory...")
        digest = _generate(ctx, project_id, lambda p: compactor.sync(p, number - 1))
        click.echo(f"✅ Memory updated ({len(digest)} chars)")
    except NovelStudioError as e:
        _fail(f"Memory sync failed: {e}")


@write.command()
@click.argument('sample_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--local', is_flag=True, help='Only local statistics, no backend call')
@click.pass_context
def style(ctx, sample_file, local):
    """Analyze the writing style of a sample"""
    text = ctx.obj['file_handler'].read_file(sample_file)
    analyzer = StyleAnalyzer()
    stats = analyzer.basic_analysis(text)
    click.echo(f"📝 Words: {stats['total_words']:,}  Sentences: {stats['total_sentences']:,}")
    click.echo(f"📏 Avg sentence: {stats['avg_sentence_length']:.1f}  Dialogue: {stats['dialogue_ratio']:.0%}")
    if local:
        return
    try:
        analyzer = StyleAnalyzer(_client(ctx))
        mimicry = asyncio.run(analyzer.analyze_sample(text))
        click.echo(f"\n🎨 Style instruction:\n{mimicry.custom_style_prompt}")
    except NovelStudioError as e:
        _fail(f"Style analysis failed: {e}")


def main():
    """Main entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
