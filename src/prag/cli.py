"""CLI entry point for prag."""

import logging
import time
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn
from rich.table import Table

from .config import ConfigError, DEFAULT_CONFIG, load_settings
from .models import IndexStatus, SourceType

console = Console()


@click.group()
@click.option("--config", "-c", "config_path", default=None, help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.pass_context
def cli(ctx, config_path, verbose):
    """prag - Hybrid retrieval over your project files."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _engine(ctx):
    from .engine import RagEngine

    try:
        settings = load_settings(ctx.obj.get("config_path"))
    except ConfigError as e:
        console.print(f"[red]Invalid configuration: {e}[/]")
        raise SystemExit(1)
    return RagEngine(settings)


def _wait_for_index(indexer) -> bool:
    """Render progress until the first run finishes. False if it failed."""
    with Progress(
        TextColumn("[blue]Indexing"),
        BarColumn(),
        TaskProgressColumn(),
        TextColumn("{task.completed}/{task.total} files"),
        console=console,
    ) as progress:
        task = progress.add_task("index", total=None)
        while True:
            p = indexer.get_index_progress()
            progress.update(task, completed=p.files_indexed, total=p.files_total or None)
            if p.status not in (IndexStatus.NOT_STARTED, IndexStatus.INDEXING):
                break
            time.sleep(0.2)

    p = indexer.get_index_progress()
    if p.status == IndexStatus.FAILED:
        console.print(f"[red]Indexing failed: {p.error}[/]")
        return False
    console.print(f"[green]✓ Indexed {p.files_indexed} file(s)[/]")
    return True


def _watch_forever(indexer):
    console.print("[bold]Watching for changes... (Ctrl+C to stop)[/]")
    try:
        while indexer.get_index_progress().status == IndexStatus.WATCHING:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopping watcher...[/]")
    indexer.stop_watching()
    console.print("[green]✓ Watcher stopped.[/]")


@cli.command()
@click.option("--path", default=None, help="Custom data directory")
def init(path):
    """Create the data directory and a starter config."""
    import yaml

    data_path = Path(path).expanduser().resolve() if path else Path(DEFAULT_CONFIG["data_path"]).expanduser()
    console.print(f"[bold green]Initializing prag at {data_path}[/]")
    (data_path / "projects").mkdir(parents=True, exist_ok=True)

    config_file = data_path / "config.yaml"
    if config_file.exists():
        console.print(f"  [dim]Config already exists: {config_file}[/]")
        return

    cfg = {k: v for k, v in DEFAULT_CONFIG.items() if k != "indexing"}
    cfg["data_path"] = str(data_path)
    header = (
        "# Claude API key for intent classification (or set ANTHROPIC_API_KEY env var)\n"
        "# claude_api_key: sk-ant-your-key-here\n\n"
        "# File selection rules live under `indexing:` (supported_extensions,\n"
        "# binary_extensions, exclude_file_names, common_excludes, project_types).\n"
        "# Only list the keys you want to change.\n\n"
    )
    config_file.write_text(header + yaml.dump(cfg, default_flow_style=False, sort_keys=False))
    console.print(f"  Created config: {config_file}")
    console.print("[bold green]✓ prag initialized![/]")


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--project", "-p", required=True, help="Project id")
@click.option("--watch/--no-watch", default=False, help="Keep watching for changes")
@click.pass_context
def index(ctx, paths, project, watch):
    """Index files and folders into a project."""
    with _engine(ctx) as engine:
        indexer = engine.indexer(project)
        if not indexer.ensure_indexed(list(paths), watch=watch):
            console.print(f"[red]Project {project} is in a failed state. Run 'prag reindex'.[/]")
            raise SystemExit(1)
        if not _wait_for_index(indexer):
            raise SystemExit(1)
        if watch:
            _watch_forever(indexer)


@cli.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--project", "-p", required=True, help="Project id")
@click.pass_context
def reindex(ctx, paths, project):
    """Drop a project's index and rebuild it."""
    with _engine(ctx) as engine:
        indexer = engine.indexer(project)
        indexer.clear_and_reindex(list(paths), watch=False)
        if not _wait_for_index(indexer):
            raise SystemExit(1)


@cli.command()
@click.option("--project", "-p", required=True, help="Project id")
@click.pass_context
def status(ctx, project):
    """Show what is indexed for a project."""
    with _engine(ctx) as engine:
        indexer = engine.indexer(project)
        console.print(f"\n[bold]📊 Project {project}[/]")
        for source in SourceType:
            count = engine.tracker.get_file_count(project, source.value)
            console.print(f"  Indexed {source.value}: {count}")
        console.print(f"  Vector chunks: {indexer.vector_store.count()}")
        console.print(f"  Keyword chunks: {indexer.keyword_store.count()}")


def _print_results(chunks):
    table = Table(title="Search Results")
    table.add_column("#", style="dim", width=3)
    table.add_column("File", style="cyan")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Ranks", justify="right", style="dim")
    table.add_column("Preview", max_width=60)

    for i, sc in enumerate(chunks, 1):
        ranks = f"{sc.vector_rank or '-'}/{sc.keyword_rank or '-'}"
        # Skip the FILE/NAME/EXT header in the preview
        body = sc.text.split("---\n", 1)[-1]
        preview = body[:80].replace("\n", " ")
        table.add_row(str(i), f"{sc.chunk.file_path}#{sc.chunk.chunk_index}", f"{sc.score:.4f}", ranks, preview)

    console.print(table)


@cli.command()
@click.argument("query")
@click.option("--project", "-p", required=True, help="Project id")
@click.option("--n", "-n", default=None, type=int, help="Number of results")
@click.pass_context
def search(ctx, query, project, n):
    """Hybrid search without intent classification."""
    with _engine(ctx) as engine:
        console.print(f"[blue]Searching for: '{query}'[/]\n")
        results = engine.indexer(project).retriever().retrieve(query, max_results=n)
        if not results:
            console.print("[yellow]No results found. Have you run 'prag index'?[/]")
            return
        _print_results(results)


@cli.command()
@click.argument("message")
@click.option("--project", "-p", required=True, help="Project id")
@click.pass_context
def retrieve(ctx, message, project):
    """Classify a message and retrieve context for it when useful."""
    with _engine(ctx) as engine:
        result = engine.retrieve(project, message)
        if not result.retrieved:
            console.print("[dim]Retrieval skipped: the message does not need the knowledge base.[/]")
            return
        if result.is_empty:
            console.print("[yellow]No results found.[/]")
            return
        _print_results(result.chunks)


if __name__ == "__main__":
    cli()
