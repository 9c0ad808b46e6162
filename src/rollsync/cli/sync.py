"""
rollsync sync - Run the synchronizer.
"""

import asyncio
from pathlib import Path

import typer

from rollsync.exceptions import InitializationError, SyncError
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.cli.sync")


app = typer.Typer(name="sync", help="Run the synchronizer", invoke_without_command=True)


@app.callback()
def sync(
    ctx: typer.Context,
    env: str | None = typer.Option(None, help="Environment (dev, staging, prod)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
    once: bool = typer.Option(False, "--once", help="Run a single poll cycle and exit"),
) -> None:
    """
    Synchronize until interrupted (SIGINT/SIGTERM).
    """
    if ctx.invoked_subcommand is not None:
        return

    from rollsync.runner import SyncRunner, initialize

    try:
        _, settings, store = initialize(project_dir, env=env, verbose=verbose)
    except InitializationError as e:
        logger.error(f"Initialization failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    runner = SyncRunner(settings, store)
    try:
        if once:
            result = asyncio.run(runner.run_once())
            if result.error is not None:
                typer.echo(f"Fetch failed: {result.error}", err=True)
                raise typer.Exit(1)
            typer.echo(f"Committed {len(result.artifacts)} artifacts; cursors: {result.after}")
        else:
            asyncio.run(runner.run())
    except SyncError as e:
        if once:
            # the loop logs its own halt
            logger.error(f"Sync cycle failed: {e}")
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e
    except KeyboardInterrupt:
        typer.echo("Interrupted")
