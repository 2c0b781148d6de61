"""
RedZone Command Line Interface
==============================

Management commands for the ingestion core.

Usage:
    redzone --help                       # Show all commands
    redzone check-config                 # Validate configuration
    redzone init-db                      # Initialize database
    redzone add-source NAME URL --type RSS
    redzone load-tags tags.json          # Load the tag dictionary
    redzone sources --all                # Source health
    redzone set-active ID --off          # Pause polling of a source
    redzone disable-broken               # Pause sources whose last fetch failed
    redzone ingest                       # Run one batch over all active sources
    redzone gap-check                    # Heal stale sources
    redzone serve                        # Run the timer service
"""

import asyncio
import json
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from .config.settings import get_settings
from .database.connection import get_db_manager
from .database.models import Source, SourceType, Tag, TagType
from .database.schema import DatabaseSchema
from .scheduler.service import SchedulerService, build_components
from .utils.exceptions import RedZoneError
from .utils.logging import configure_application_logging

console = Console()


def _configure_logging(debug: bool) -> None:
    settings = get_settings()
    configure_application_logging(
        settings.logging, level="DEBUG" if debug else settings.get_effective_log_level()
    )


def _print_batch(result) -> None:
    if result is None:
        console.print("[yellow]⏭️  A batch is already running; nothing started[/yellow]")
        return

    table = Table(title="Batch Result")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Sources succeeded", str(result.succeeded))
    table.add_row("Sources failed", str(result.failed))
    table.add_row("Items ingested", str(result.items_ingested))
    table.add_row("Items skipped (duplicates)", str(result.skipped))
    table.add_row("Item errors", str(result.item_errors))
    table.add_row("Duration", f"{result.duration_seconds:.2f}s")
    console.print(table)

    for failure in result.failures:
        console.print(f"  [red]❌ {failure['source_name']}: {failure['error']}[/red]")


@click.group(invoke_without_command=True)
@click.option('--debug', is_flag=True, help='Enable debug logging')
@click.pass_context
def cli(ctx, debug):
    """RedZone - fantasy football content ingestion."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
    elif ctx.invoked_subcommand != 'check-config':
        try:
            _configure_logging(debug)
        except RedZoneError as e:
            console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
            sys.exit(1)


@cli.command()
def check_config():
    """Validate configuration and environment variables."""
    console.print("[bold blue]🔧 Checking RedZone Configuration[/bold blue]")

    try:
        settings = get_settings(reload=True)
    except RedZoneError as e:
        console.print(f"[bold red]❌ Configuration error: {e}[/bold red]")
        sys.exit(1)

    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Database path", settings.database.path)
    table.add_row("Log level", settings.get_effective_log_level())
    table.add_row("Fetch timeout", f"{settings.limits.fetch_timeout}s")
    table.add_row("Ingest interval", f"{settings.scheduler.ingest_interval_minutes} min")
    table.add_row("Gap check interval", f"{settings.scheduler.gap_check_interval_hours} h")
    table.add_row("Gap threshold", f"{settings.scheduler.gap_threshold_hours} h")
    table.add_row("Concurrent sources", str(settings.processing.max_concurrent_sources))
    console.print(table)
    console.print("[bold green]✅ All configuration checks passed![/bold green]")


@cli.command()
def init_db():
    """Create database tables and indexes."""
    console.print("[bold blue]🗄️ Initializing RedZone Database[/bold blue]")
    settings = get_settings()

    schema = DatabaseSchema(settings.database.path)
    try:
        schema.create_tables()
    except RedZoneError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)
    if not schema.verify_schema():
        console.print("[bold red]❌ Database schema verification failed[/bold red]")
        sys.exit(1)

    counts = get_db_manager(settings.database.path, settings.database.pool_size).table_counts()
    table = Table(title="Database Information")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", style="green")
    for name, count in counts.items():
        table.add_row(name, str(count))
    console.print(table)
    console.print(f"[bold green]✅ Database initialized at {settings.database.path}[/bold green]")


@cli.command()
@click.argument('name')
@click.argument('feed_url')
@click.option('--type', 'source_type', type=click.Choice([t.value for t in SourceType]),
              default=SourceType.RSS.value, show_default=True, help='Kind of feed')
@click.option('--website-url', help='Publisher website')
@click.option('--logo-url', help='Publisher logo')
@click.option('--inactive', is_flag=True, help='Register without polling')
def add_source(name, feed_url, source_type, website_url, logo_url, inactive):
    """Register a feed as a source."""
    components = build_components()
    try:
        source = Source(
            name=name,
            type=SourceType(source_type),
            feed_url=feed_url,
            website_url=website_url,
            logo_url=logo_url,
            is_active=not inactive,
        )
        source_id = components.source_repository.create_source(source)
    except (ValueError, RedZoneError) as e:
        console.print(f"[bold red]❌ Could not add source: {e}[/bold red]")
        sys.exit(1)

    console.print(f"[bold green]✅ Added source {name} ({source_id})[/bold green]")


@cli.command()
@click.argument('slug')
@click.argument('name')
@click.option('--type', 'tag_type', type=click.Choice([t.value for t in TagType]), required=True)
@click.option('--pattern', 'patterns', multiple=True, required=True,
              help='Regular expression (repeatable), matched case-insensitively')
def add_tag(slug, name, tag_type, patterns):
    """Create or update a tag."""
    components = build_components()
    tag_id = components.tag_repository.upsert_tag(
        Tag(slug=slug, name=name, type=TagType(tag_type), patterns=list(patterns))
    )
    console.print(f"[bold green]✅ Stored tag {slug} ({tag_id})[/bold green]")


@cli.command()
@click.argument('path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
def load_tags(path):
    """Load tags from a JSON file: a list of {slug, name, type, patterns}."""
    try:
        entries = json.loads(path.read_text(encoding='utf-8'))
    except json.JSONDecodeError as e:
        console.print(f"[bold red]❌ Invalid JSON in {path}: {e}[/bold red]")
        sys.exit(1)

    components = build_components()
    stored = 0
    for entry in entries:
        try:
            components.tag_repository.upsert_tag(Tag(**entry))
            stored += 1
        except (ValueError, TypeError) as e:
            console.print(f"  [yellow]⚠️ Skipped {entry.get('slug', '?')}: {e}[/yellow]")

    console.print(f"[bold green]✅ Stored {stored} tag(s) from {path}[/bold green]")


@cli.command()
@click.option('--all', 'show_all', is_flag=True, help='Include inactive sources')
def sources(show_all):
    """Show sources and their ingestion health."""
    components = build_components()
    rows = components.source_repository.list_sources(active_only=not show_all)
    counts = components.content_repository.count_by_source()

    table = Table(title="Sources")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Active")
    table.add_column("Items", justify="right")
    table.add_column("Last ingested")
    table.add_column("Last error", style="red")

    for source in rows:
        minutes = source.staleness_minutes()
        table.add_row(
            source.name,
            source.type.value,
            "yes" if source.is_active else "no",
            str(counts.get(source.id, 0)),
            "never" if minutes is None else f"{minutes} min ago",
            (source.last_error or "")[:60],
        )
    console.print(table)


@cli.command()
@click.argument('source_id')
@click.option('--on/--off', 'active', default=True, show_default=True, help='Resume or pause polling')
def set_active(source_id, active):
    """Resume or pause polling of a source."""
    components = build_components()
    if not components.source_repository.set_active(source_id, active):
        console.print(f"[bold red]❌ Source {source_id} not found[/bold red]")
        sys.exit(1)

    state = "active" if active else "paused"
    console.print(f"[bold green]✅ Source {source_id} is now {state}[/bold green]")


@cli.command()
@click.option('--dry-run', is_flag=True, help='List the sources without pausing them')
def disable_broken(dry_run):
    """Pause every active source whose last fetch failed."""
    components = build_components()
    broken = components.source_repository.find_sources_with_errors()

    if not broken:
        console.print("[bold green]✅ No failing sources[/bold green]")
        return

    for source in broken:
        console.print(f"  [yellow]- {source.name}: {(source.last_error or '')[:80]}[/yellow]")
        if not dry_run:
            components.source_repository.set_active(source.id, False)

    verb = "Would pause" if dry_run else "Paused"
    console.print(f"[bold]{verb} {len(broken)} source(s)[/bold]")


@cli.command()
def ingest():
    """Run one ingestion batch over all active sources."""
    components = build_components()
    console.print("[bold blue]🔄 Running ingestion batch...[/bold blue]")
    result = asyncio.run(components.scheduler.ingest_all_active_sources())
    _print_batch(result)


@cli.command()
@click.argument('source_id')
def ingest_source(source_id):
    """Ingest a single source by ID."""
    components = build_components()
    components.tag_matcher.load_dictionary()

    try:
        result = asyncio.run(components.orchestrator.ingest_source(source_id))
    except RedZoneError as e:
        console.print(f"[bold red]❌ {e}[/bold red]")
        sys.exit(1)

    console.print(
        f"[bold green]✅ {result.source_name}: {result.created} new, "
        f"{result.skipped} skipped, {result.errors} errors[/bold green]"
    )


@cli.command()
def gap_check():
    """Find stale sources and heal them with a batch."""
    components = build_components()
    result = asyncio.run(components.gap_detector.check_and_heal_gaps())

    if result.silently_empty:
        console.print(f"[yellow]⚠️ Silently empty: {', '.join(result.silently_empty)}[/yellow]")
    if not result.has_gaps:
        console.print("[bold green]✅ No gaps detected[/bold green]")
        return

    for stale in result.stale_sources:
        console.print(f"  [yellow]- {stale.name}: {stale.age_label}[/yellow]")
    _print_batch(result.batch_result)


@cli.command()
def serve():
    """Run the scheduler service until interrupted."""
    components = build_components()
    service = SchedulerService(components.scheduler, components.gap_detector)
    settings = get_settings()

    console.print("[bold blue]🕐 RedZone scheduler service starting...[/bold blue]")
    console.print(f"📅 Batch every {settings.scheduler.ingest_interval_minutes} min, "
                  f"gap check every {settings.scheduler.gap_check_interval_hours} h")
    console.print("Press Ctrl+C to stop.")

    async def run():
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, service.stop)
            except NotImplementedError:
                # Windows event loops have no signal handler support
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(service.stop))
        await service.run_service()

    asyncio.run(run())
    console.print("👋 Scheduler stopped")


if __name__ == '__main__':
    cli()
