"""
Periodic purge of old progress records.

Only the latest record matters for resuming, so history older than
``max_age`` is dropped every ``period`` seconds.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

from rollsync.sync.store import ProgressStore
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.sync.retention")


class RetentionPurger:
    def __init__(
        self,
        store: ProgressStore,
        period: float = 600.0,
        max_age: float = 600.0,
        *,
        clock: Callable[[], float] = time.time,
    ):
        if period <= 0 or max_age <= 0:
            raise ValueError("period and max_age must be > 0")
        self.store = store
        self.period = period
        self.max_age = max_age
        self.clock = clock
        self._stopping = asyncio.Event()

    def stop(self) -> None:
        self._stopping.set()

    def purge_once(self) -> int:
        """Delete records older than ``max_age``; returns how many."""
        cutoff_ms = int((self.clock() - self.max_age) * 1000)
        deleted = self.store.purge_before(cutoff_ms)
        if deleted:
            logger.info(f"Purged {deleted} progress records older than {self.max_age:.0f}s")
        return deleted

    async def run(self, ready: asyncio.Event | Callable[[], Any] | None = None) -> None:
        """Purge every ``period`` seconds until ``stop()`` or cancellation."""
        if isinstance(ready, asyncio.Event):
            ready.set()
        elif ready is not None:
            ready()

        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.period)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await asyncio.to_thread(self.purge_once)
            except Exception as e:
                logger.error(f"Retention purge failed, will retry in {self.period:.0f}s: {e}")
        logger.debug("Retention purger stopped")
