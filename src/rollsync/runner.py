"""
Rollsync startup and process lifecycle.

Orchestrates initialization in order:
1. Config (with validation) and typed settings
2. Logging
3. Connections (with validation, must be before the progress store)
4. Progress store (schema and tables)

then runs the synchronizer and the retention purger until stopped.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

from rollsync.config.loader import Config, load_config, resolve_env
from rollsync.config.settings import SyncSettings
from rollsync.connections.manager import get_connection, init_connections
from rollsync.exceptions import ConnectionError_, InitializationError, RollsyncError
from rollsync.sync.decoder import ArtifactDecoder
from rollsync.sync.fetcher import GraphQLFetcher
from rollsync.sync.retention import RetentionPurger
from rollsync.sync.store import ProgressStore
from rollsync.sync.synchronizer import CycleResult, PageFetcher, Synchronizer
from rollsync.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("rollsync.runner")


class RollsyncInitializer:
    """Handles complete initialization of a Rollsync project."""

    def __init__(self, project_dir: Path, env: str | None = None, verbose: bool = False):
        self.project_dir = Path(project_dir)
        self.env = resolve_env(env)
        self.verbose = verbose

        self.config: Config | None = None
        self.settings: SyncSettings | None = None
        self.store: ProgressStore | None = None

    def initialize_all(self) -> tuple[Config, SyncSettings, ProgressStore]:
        """
        Initialize all components in the correct order.

        Raises:
            InitializationError: If any initialization step fails
        """
        self.config, self.settings = self._initialize_config()
        self._initialize_logging()
        self._initialize_connections()
        self.store = self._initialize_store()
        return self.config, self.settings, self.store

    def _initialize_config(self) -> tuple[Config, SyncSettings]:
        try:
            config = load_config(self.project_dir, env=self.env)
            return config, SyncSettings.from_config(config)
        except RollsyncError as e:
            raise InitializationError(e.message, details=e.details) from None
        except Exception as e:
            raise InitializationError(f"Unexpected error loading config: {e}") from None

    def _initialize_logging(self) -> None:
        try:
            setup_logging_from_config(self.config.data, self.project_dir)
            if self.verbose:
                logging.getLogger("rollsync").setLevel(logging.DEBUG)
        except (OSError, ValueError, TypeError) as e:
            raise InitializationError(f"Failed to initialize logging: {e}") from None

    def _initialize_connections(self) -> None:
        try:
            init_connections(self.config.data, base_dir=self.project_dir)
        except (ValueError, RuntimeError, OSError, ConnectionError_) as e:
            raise InitializationError(str(e)) from None
        except Exception as e:
            raise InitializationError(f"Failed to initialize connections: {e}") from None

    def _initialize_store(self) -> ProgressStore:
        try:
            backend = get_connection(self.settings.state_connection).connection
            store = ProgressStore(backend)
            store.initialize()
            return store
        except RollsyncError as e:
            raise InitializationError(f"Failed to initialize progress store: {e.message}") from None
        except Exception as e:
            raise InitializationError(f"Failed to initialize progress store: {e}") from None


def initialize(
    project_dir: Path, env: str | None = None, verbose: bool = False
) -> tuple[Config, SyncSettings, ProgressStore]:
    """Initialize a Rollsync project (config, logging, connections, store)."""
    return RollsyncInitializer(project_dir, env=env, verbose=verbose).initialize_all()


def build_synchronizer(settings: SyncSettings, store: ProgressStore, fetcher: PageFetcher) -> Synchronizer:
    loop_settings = settings.sync
    return Synchronizer(
        fetcher,
        store,
        ArtifactDecoder(loop_settings.payload_encoding),
        batch_size=loop_settings.batch_size,
        poll_interval=loop_settings.poll_interval,
        streams=loop_settings.streams,
        include_encoding=loop_settings.request_encoding_field,
        on_decode_error=loop_settings.on_decode_error,
    )


class SyncRunner:
    """Runs the synchronizer (and the retention purger) for one source."""

    def __init__(self, settings: SyncSettings, store: ProgressStore):
        self.settings = settings
        self.store = store
        self.synchronizer: Synchronizer | None = None
        self.purger: RetentionPurger | None = None

    def _fetcher(self) -> GraphQLFetcher:
        source = self.settings.source
        return GraphQLFetcher(
            source.graphql_url, streams=self.settings.sync.streams, timeout=source.timeout, headers=source.headers
        )

    async def run_once(self) -> CycleResult:
        """Single cycle from the stored cursors."""
        async with self._fetcher() as fetcher:
            self.synchronizer = build_synchronizer(self.settings, self.store, fetcher)
            cursors = await self.synchronizer.load_cursors()
            return await self.synchronizer.run_cycle(cursors)

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM, ``stop()`` or a fatal sync error."""
        async with self._fetcher() as fetcher:
            self.synchronizer = build_synchronizer(self.settings, self.store, fetcher)
            retention = self.settings.retention
            if retention.enabled:
                self.purger = RetentionPurger(self.store, retention.period, retention.max_age)

            loop = asyncio.get_running_loop()
            installed = self._install_signal_handlers(loop)

            background: list[asyncio.Task] = []
            if self.purger is not None:
                background.append(asyncio.create_task(self.purger.run()))
            try:
                await self.synchronizer.run()
            finally:
                self.stop()
                for t in background:
                    t.cancel()
                if background:
                    await asyncio.gather(*background, return_exceptions=True)
                for sig in installed:
                    loop.remove_signal_handler(sig)

    def stop(self) -> None:
        if self.synchronizer is not None:
            self.synchronizer.stop()
        if self.purger is not None:
            self.purger.stop()

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.stop)
                installed.append(sig)
            except (NotImplementedError, RuntimeError) as e:
                logger.debug(f"Cannot install handler for {sig.name}: {e}")
        return installed
