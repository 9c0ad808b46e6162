"""
rollsync status - Show synchronization progress.
"""

from datetime import datetime, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from rollsync.exceptions import InitializationError, PersistenceError

app = typer.Typer(name="status", help="Show synchronization progress", invoke_without_command=True)

console = Console()


@app.callback()
def status(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    history: int = typer.Option(5, "--history", "-n", help="Number of progress records to list"),
) -> None:
    """
    Display the latest cursors, the progress history and artifact counts.
    """
    if ctx.invoked_subcommand is not None:
        return

    from rollsync.runner import initialize

    try:
        _, settings, store = initialize(project_dir, env=env)
        records = store.history(history)
        total = store.count()
        counts = store.artifact_counts()
    except (InitializationError, PersistenceError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    console.print(f"\n[bold blue]Source[/bold blue] {settings.source.graphql_url}")
    console.print(f"[dim]Streams: {', '.join(s.value for s in settings.sync.streams)}[/dim]\n")

    if not records:
        console.print("[yellow]No progress recorded yet[/yellow]")
    else:
        cursor_table = Table(title="Cursors", show_header=True)
        cursor_table.add_column("Stream", style="cyan")
        cursor_table.add_column("Cursor", style="green")
        for stream, cursor in records[0].after.as_dict().items():
            cursor_table.add_row(stream, cursor or "-")
        console.print(cursor_table)

        history_table = Table(title=f"Progress ({len(records)} of {total})", show_header=True)
        history_table.add_column("Id", style="cyan", justify="right")
        history_table.add_column("Time", style="green")
        history_table.add_column("Advanced", style="yellow")
        history_table.add_column("Outputs", style="dim")
        for record in records:
            when = datetime.fromtimestamp(record.timestamp_ms / 1000, tz=timezone.utc)
            moved = ", ".join(s.value for s in record.before.changed_streams(record.after))
            history_table.add_row(str(record.id), when.isoformat(timespec="seconds"), moved, record.output_ids or "-")
        console.print(history_table)

    if counts:
        count_table = Table(title="Artifacts", show_header=True)
        count_table.add_column("Table", style="cyan")
        count_table.add_column("Rows", style="green", justify="right")
        for name, rows in counts.items():
            count_table.add_row(name, str(rows))
        console.print(count_table)
