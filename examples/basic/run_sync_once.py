"""
Run one synchronization cycle for the demo project.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

from rollsync import SyncRunner, initialize


def main() -> None:
    project_dir = Path(__file__).parent
    _, settings, store = initialize(project_dir)

    result = asyncio.run(SyncRunner(settings, store).run_once())
    if result.error is not None:
        raise SystemExit(f"Fetch failed: {result.error}")

    print(f"{len(result.artifacts)} artifacts, cursors: {result.after}")
    for record in store.history(limit=3):
        print(record)


if __name__ == "__main__":
    main()
