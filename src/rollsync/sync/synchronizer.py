"""
Synchronizer loop.

Polls the upstream for one page covering every enabled stream, decodes it,
commits the artifacts together with the cursor move, then sleeps for the
poll interval. The cursor triple is passed into each cycle and returned from
it; the loop keeps no other mutable sync state.

States::

    STARTING -> POLLING -> (DECODING -> PERSISTING)* -> SLEEPING -> POLLING ... -> STOPPED
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, TypeVar

from rollsync.exceptions import DecodeError, ProtocolError, SyncError, TransportError
from rollsync.sync.decoder import ArtifactDecoder
from rollsync.sync.query import build_query
from rollsync.sync.types import ALL_STREAMS, Artifact, CursorTriple, Page, Stream, SyncProgressRecord
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.sync.synchronizer")

T = TypeVar("T")

DECODE_ERROR_POLICIES = ("halt", "skip")


class SyncState(str, Enum):
    STARTING = "starting"
    POLLING = "polling"
    DECODING = "decoding"
    PERSISTING = "persisting"
    SLEEPING = "sleeping"
    STOPPED = "stopped"


class PageFetcher(Protocol):
    async def fetch(self, query: str) -> Page: ...


class CursorStore(Protocol):
    def get_last(self) -> CursorTriple | None: ...

    def commit_advance(
        self, artifacts: Iterable[Artifact], before: CursorTriple, after: CursorTriple
    ) -> SyncProgressRecord | None: ...


@dataclass(frozen=True)
class CycleResult:
    """Outcome of one poll cycle."""

    before: CursorTriple
    after: CursorTriple
    artifacts: tuple[Artifact, ...] = ()
    committed: bool = False
    record: SyncProgressRecord | None = None
    error: SyncError | None = None
    skipped: tuple[DecodeError, ...] = ()
    stopped: bool = False

    @property
    def advanced(self) -> bool:
        return self.before != self.after


def compute_advance(cursors: CursorTriple, page: Page, streams: Iterable[Stream] = ALL_STREAMS) -> CursorTriple:
    """
    Cursor triple after applying ``page``.

    A stream moves to its page's end cursor when the page has more data or
    returned entries, and the end cursor is set and new. An empty terminal
    page leaves the stream where it is.
    """
    after = cursors
    for stream in streams:
        stream_page = page.get(stream)
        if stream_page is None:
            continue
        info = stream_page.page_info
        if not (info.has_next_page or stream_page.entries):
            continue
        if not info.end_cursor or info.end_cursor == cursors.get(stream):
            continue
        after = after.advance(stream, info.end_cursor)
    return after


class Synchronizer:
    """
    Drives one upstream source into one progress store.

    Args:
        fetcher: object with ``async fetch(query) -> Page``
        store: object with ``get_last()`` and ``commit_advance(...)``; called
            from a worker thread
        decoder: artifact decoder (default: auto-detected payload encoding)
        batch_size: entries requested per stream and cycle
        poll_interval: seconds between cycles, also after a failed fetch
        streams: enabled streams; disabled streams never move
        include_encoding: request the payload encoding field on outputs
        on_decode_error: ``"halt"`` stops the loop, ``"skip"`` logs and drops
            the entry
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        store: CursorStore,
        decoder: ArtifactDecoder | None = None,
        *,
        batch_size: int = 10,
        poll_interval: float = 3.0,
        streams: Iterable[Stream] = ALL_STREAMS,
        include_encoding: bool = False,
        on_decode_error: str = "halt",
    ):
        if on_decode_error not in DECODE_ERROR_POLICIES:
            raise ValueError(f"on_decode_error must be one of {', '.join(DECODE_ERROR_POLICIES)}")
        if poll_interval <= 0:
            raise ValueError(f"poll_interval must be > 0, got {poll_interval}")
        self.fetcher = fetcher
        self.store = store
        self.decoder = decoder or ArtifactDecoder()
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.streams = tuple(s for s in ALL_STREAMS if s in set(streams))
        self.include_encoding = include_encoding
        self.on_decode_error = on_decode_error

        self.state = SyncState.STOPPED
        self.cursors = CursorTriple()
        self.ready = asyncio.Event()
        self._stopping = asyncio.Event()
        self._failures = 0

    def __repr__(self) -> str:
        return f"Synchronizer(streams={[s.value for s in self.streams]}, state={self.state.value})"

    def stop(self) -> None:
        """Ask the loop to stop at its next suspension point."""
        if not self._stopping.is_set():
            logger.info("Synchronizer stop requested")
        self._stopping.set()

    @property
    def stopping(self) -> bool:
        return self._stopping.is_set()

    def _set_state(self, state: SyncState) -> None:
        if state is not self.state:
            logger.debug(f"Synchronizer {self.state.value} -> {state.value}")
        self.state = state

    async def load_cursors(self) -> CursorTriple:
        """Resume point from the store, or the empty triple."""
        last = await asyncio.to_thread(self.store.get_last)
        return last or CursorTriple()

    async def run(self, ready: asyncio.Event | Callable[[], Any] | None = None) -> None:
        """
        Run until ``stop()`` or cancellation.

        ``ready`` is set (or called) once, after the resume cursors are loaded.

        Raises:
            DecodeError: a page could not be decoded (with ``on_decode_error="halt"``)
            PersistenceError: a commit failed
        """
        self._set_state(SyncState.STARTING)
        try:
            cursors = await self.load_cursors()
            self.cursors = cursors
            logger.info(f"Synchronizer starting from {cursors}")
            self._signal_ready(ready)

            while not self._stopping.is_set():
                result = await self.run_cycle(cursors)
                cursors = self.cursors = result.after
                if result.stopped:
                    break
                await self._sleep()
        except asyncio.CancelledError:
            logger.debug("Synchronizer cancelled")
            raise
        except SyncError as e:
            logger.error(f"Synchronizer halted, operator action required: {e}")
            raise
        finally:
            self._set_state(SyncState.STOPPED)
        logger.info(f"Synchronizer stopped at {cursors}")

    def _signal_ready(self, ready: asyncio.Event | Callable[[], Any] | None) -> None:
        if self.ready.is_set():
            return
        self.ready.set()
        if ready is None:
            return
        if isinstance(ready, asyncio.Event):
            ready.set()
        else:
            ready()

    async def run_cycle(self, cursors: CursorTriple) -> CycleResult:
        """
        One fetch, decode and commit round starting from ``cursors``.

        Transport and protocol failures are logged and returned in the
        result with the cursors unchanged. Decode and persistence failures
        propagate.
        """
        self._set_state(SyncState.POLLING)
        query = build_query(self.batch_size, cursors, self.streams, include_encoding=self.include_encoding)
        try:
            page = await self._race_stop(self.fetcher.fetch(query))
        except (TransportError, ProtocolError) as e:
            self._failures += 1
            logger.warning(f"Fetch failed, we will try again in {self.poll_interval}s: {e}")
            source = getattr(self.fetcher, "url", None)
            if self._failures == 1 and source:
                logger.warning(f"Please ensure that the GraphQL endpoint is up and running at {source}")
            return CycleResult(before=cursors, after=cursors, error=e)

        if page is None:
            return CycleResult(before=cursors, after=cursors, stopped=True)
        if self._failures:
            logger.info(f"Upstream reachable again after {self._failures} failed attempts")
            self._failures = 0

        self._set_state(SyncState.DECODING)
        artifacts, skipped = self._decode_page(page)
        after = compute_advance(cursors, page, self.streams)

        if not artifacts and after == cursors:
            logger.debug("No new data")
            return CycleResult(before=cursors, after=cursors, skipped=skipped)

        self._set_state(SyncState.PERSISTING)
        record = await asyncio.to_thread(self.store.commit_advance, artifacts, cursors, after)
        moved = ", ".join(s.value for s in cursors.changed_streams(after)) or "none"
        logger.info(f"Committed {len(artifacts)} artifacts, advanced streams: {moved}")
        return CycleResult(
            before=cursors,
            after=after,
            artifacts=tuple(artifacts),
            committed=True,
            record=record,
            skipped=skipped,
        )

    def _decode_page(self, page: Page) -> tuple[list[Artifact], tuple[DecodeError, ...]]:
        artifacts: list[Artifact] = []
        skipped: list[DecodeError] = []
        for stream in self.streams:
            stream_page = page.get(stream)
            if stream_page is None:
                continue
            for entry in stream_page.entries:
                try:
                    artifacts.append(self.decoder.decode(entry, stream))
                except DecodeError as e:
                    if self.on_decode_error == "halt":
                        raise
                    logger.error(f"Skipping undecodable {stream.value} entry {entry.index}: {e}")
                    skipped.append(e)
        return artifacts, tuple(skipped)

    async def _race_stop(self, awaitable: Awaitable[T]) -> T | None:
        """Await ``awaitable`` unless stop is requested first; None when stopped."""
        work = asyncio.ensure_future(awaitable)
        if self._stopping.is_set():
            work.cancel()
            await asyncio.gather(work, return_exceptions=True)
            return None

        stop_wait = asyncio.ensure_future(self._stopping.wait())
        try:
            done, _ = await asyncio.wait({work, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_wait.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            return work.result()
        await asyncio.gather(work, return_exceptions=True)
        return None

    async def _sleep(self) -> None:
        self._set_state(SyncState.SLEEPING)
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.poll_interval)
        except asyncio.TimeoutError:
            pass
