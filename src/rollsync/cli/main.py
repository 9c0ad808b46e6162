"""
Main CLI entry point.
"""

import typer

from rollsync import __version__
from rollsync.cli import abi, purge, status, sync


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"rollsync version {__version__}")
        raise typer.Exit()


app = typer.Typer(
    name="rollsync",
    help="Rollsync - synchronize rollup outputs, inputs and reports into a state database",
    add_completion=True,
)

# Register subcommands
app.add_typer(sync.app, name="sync")
app.add_typer(status.app, name="status")
app.add_typer(purge.app, name="purge")
app.add_typer(abi.app, name="abi")


@app.callback(invoke_without_command=True)
def entrypoint(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        help="Show version and exit.",
    ),
):
    """
    Rollsync - synchronize rollup outputs, inputs and reports into a state database.

    Run 'rollsync <command> --help' for help on a specific command.
    """
    if ctx.invoked_subcommand is None:
        if not version:
            typer.echo(ctx.get_help())
            raise typer.Exit()


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
