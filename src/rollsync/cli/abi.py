"""
rollsync abi - Look up a contract ABI on the block explorer.
"""

import asyncio
import json
from pathlib import Path

import typer

from rollsync.config.settings import ExplorerSettings
from rollsync.exceptions import RollsyncError

app = typer.Typer(name="abi", help="Fetch a verified contract ABI from the block explorer", invoke_without_command=True)


@app.callback()
def abi(
    ctx: typer.Context,
    address: str = typer.Argument(..., help="Contract address"),
    env: str | None = typer.Option(None, help="Environment"),
    project_dir: Path = typer.Option(Path.cwd(), "--project-dir", "-d", help="Project directory"),
) -> None:
    """
    Print the contract's ABI as JSON.

    Reads the ``explorer`` section of rollsync.yaml when present.
    """
    if ctx.invoked_subcommand is not None:
        return

    from rollsync.config.loader import CONFIG_FILENAME, load_config
    from rollsync.config.settings import SyncSettings
    from rollsync.explorer import ExplorerClient

    try:
        explorer = ExplorerSettings()
        if (project_dir / CONFIG_FILENAME).is_file():
            explorer = SyncSettings.from_config(load_config(project_dir, env=env)).explorer

        async def lookup():
            async with ExplorerClient(explorer.base_url, explorer.api_key, explorer.timeout) as client:
                return await client.get_abi(address)

        result = asyncio.run(lookup())
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    except RollsyncError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    typer.echo(json.dumps(result, indent=2))
