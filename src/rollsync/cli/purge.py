"""
rollsync purge - Delete old progress records.
"""

from pathlib import Path

import typer

from rollsync.exceptions import InitializationError, PersistenceError

app = typer.Typer(name="purge", help="Delete old progress records", invoke_without_command=True)


@app.callback()
def purge(
    ctx: typer.Context,
    older_than: float = typer.Option(
        ..., "--older-than", min=0.001, help="Delete records older than this many seconds"
    ),
    env: str | None = typer.Option(None, help="Environment"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    One-off retention purge. The latest record is always kept.
    """
    if ctx.invoked_subcommand is not None:
        return

    from rollsync.runner import initialize
    from rollsync.sync.retention import RetentionPurger

    try:
        _, _, store = initialize(project_dir, env=env)
        deleted = RetentionPurger(store, period=older_than, max_age=older_than).purge_once()
    except (InitializationError, PersistenceError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(f"Deleted {deleted} progress records")
