"""
Command-line interface for the ingestion pipeline.

Runs scans once, on a schedule, or behind the HTTP trigger, using the
Click framework.
"""

import logging
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from shared.config import ScanConfig
from shared.constants import SUMMARY_ERROR_LIMIT
from shared.exceptions import ConfigurationError, IngestError
from shared.models import ScanResult, StorageProvider
from .provider_factory import StoreFactory
from .scanner import ScanOrchestrator
from .scheduler import ScanScheduler

console = Console()


def _configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_config(ctx: click.Context) -> ScanConfig:
    params = ctx.obj
    try:
        config = ScanConfig.from_env(params.get('env_file'))
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)

    if params.get('provider'):
        config.provider = StorageProvider(params['provider'])
    if params.get('music_dir'):
        config.music_dir = params['music_dir']
    if params.get('workers'):
        config.scan_workers = params['workers']
    config.log_level = params.get('log_level') or config.log_level

    _configure_logging(config.log_level)
    try:
        config.validate()
    except ConfigurationError as e:
        console.print(f"[red]{e.message}[/red]")
        sys.exit(1)
    return config


def _build_orchestrator(config: ScanConfig) -> ScanOrchestrator:
    try:
        store = StoreFactory.create(config)
    except IngestError as e:
        console.print(f"[red]Object store unavailable: {e.message}[/red]")
        sys.exit(1)
    return ScanOrchestrator.from_config(config, store)


def print_summary(result: ScanResult):
    """Render a scan result as a table plus the first few errors."""
    table = Table(title="Scan Summary", show_header=False, border_style="cyan")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Scanned", f"{result.scanned_count} files")
    table.add_row("New", f"{result.new_count} songs")
    table.add_row("Updated", f"{result.updated_count} songs")
    table.add_row("Total in database", f"{result.total_catalog_size} songs")
    table.add_row("Albums", str(len(result.albums)))
    table.add_row("Duration", f"{result.duration_seconds:.1f}s")
    console.print(table)

    if result.cancelled:
        console.print("[yellow]Scan was cancelled before all files were processed.[/yellow]")

    if result.errors:
        console.print(f"\n[yellow]Errors encountered: {len(result.errors)}[/yellow]")
        for err in result.errors[:SUMMARY_ERROR_LIMIT]:
            console.print(f"   - {err.object_key}: {err.message}")
        if len(result.errors) > SUMMARY_ERROR_LIMIT:
            console.print(f"   ... and {len(result.errors) - SUMMARY_ERROR_LIMIT} more errors")


@click.group()
@click.version_option(version="1.0.0")
@click.option('--env-file', type=click.Path(dir_okay=False), default=None,
              help='Read settings from this .env file')
@click.option('--provider', type=click.Choice([p.value for p in StorageProvider]),
              help='Object store to scan (r2=Cloudflare R2, local=directory)')
@click.option('--music-dir', type=click.Path(file_okay=False), help='Root directory for the local store')
@click.option('--workers', type=int, help='Parallel scan workers')
@click.option('--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False))
@click.pass_context
def cli(ctx, env_file, provider, music_dir, workers, log_level):
    """
    Music library ingestion.

    Scans the bucket and keeps the song catalog in sync with it.
    """
    ctx.ensure_object(dict)
    ctx.obj.update(
        env_file=env_file,
        provider=provider,
        music_dir=music_dir,
        workers=workers,
        log_level=log_level,
    )


@cli.command()
@click.pass_context
def scan(ctx):
    """Run one full scan and print a summary."""
    config = _load_config(ctx)
    orchestrator = _build_orchestrator(config)

    console.print(f"[cyan]Scanning {StoreFactory.get_provider_name(config.provider)}...[/cyan]")
    try:
        result = orchestrator.run_scan()
    except IngestError as e:
        console.print(f"[bold red]Scan failed: {e.message}[/bold red]")
        sys.exit(1)

    print_summary(result)
    console.print("[bold green]Scan completed![/bold green]")


@cli.command()
@click.option('--limit', default=5, show_default=True, help='Objects to show')
@click.pass_context
def check(ctx, limit):
    """Check that the object store is reachable and readable."""
    config = _load_config(ctx)
    try:
        store = StoreFactory.create(config)
        objects = store.list_objects()
    except IngestError as e:
        console.print(f"[red]Connectivity check failed: {e.message}[/red]")
        sys.exit(1)

    console.print(f"[green]Listed {len(objects)} objects.[/green]")
    if not objects:
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("URL")
    for obj in objects[:limit]:
        table.add_row(obj.key, str(obj.size), store.access_url(obj.key))
    console.print(table)

    first = objects[0]
    try:
        head = store.head_object(first.key)
        presigned = store.access_url(first.key, presigned=True)
    except IngestError as e:
        console.print(f"[red]Object access failed: {e.message}[/red]")
        sys.exit(1)
    console.print(f"[green]HEAD ok ({head.size if head else '?'} bytes), presigned URL length {len(presigned)}[/green]")


@cli.command()
@click.pass_context
def schedule(ctx):
    """Run scans on the configured interval in the foreground."""
    config = _load_config(ctx)
    orchestrator = _build_orchestrator(config)
    scheduler = ScanScheduler.from_config(config, orchestrator)

    console.print(Panel.fit(
        f"[bold cyan]Scheduled scans every {config.scan_interval_hours:g} hours[/bold cyan]\n"
        f"Retries: {config.scan_max_retries} x {config.scan_retry_delay:g}s",
        border_style="cyan"
    ))
    scheduler.run_forever()


@cli.command()
@click.option('--no-schedule', is_flag=True, help='Only serve the on-demand endpoint')
@click.pass_context
def serve(ctx, no_schedule):
    """Serve POST /api/songs/scan, with scheduled scans in the background."""
    from .api import create_app

    config = _load_config(ctx)
    orchestrator = _build_orchestrator(config)

    scheduler = None
    if not no_schedule:
        scheduler = ScanScheduler.from_config(config, orchestrator)
        scheduler.start()

    app = create_app(orchestrator)
    console.print(f"[green]Listening on http://{config.api_host}:{config.api_port}[/green]")
    try:
        app.run(host=config.api_host, port=config.api_port, threaded=True)
    finally:
        if scheduler:
            scheduler.stop(timeout=5)


if __name__ == '__main__':
    cli()
