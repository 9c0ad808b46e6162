"""
Durable synchronization progress.

Every cycle that moves a cursor appends one ``sync_progress`` row in the same
transaction as the artifacts that page unlocked. The latest row is where a
restarted synchronizer resumes.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

import ibis

from rollsync.exceptions import PersistenceError
from rollsync.sync.artifacts import ArtifactHandler, ArtifactTables
from rollsync.sync.types import Artifact, CursorTriple, Input, Notice, Report, SyncProgressRecord, Voucher
from rollsync.utils.logging import get_logger
from rollsync.utils.sql import SqlRunner, sql_value

logger = get_logger("rollsync.sync.store")

_COLUMNS = (
    "id, timestamp_ms, ini_outputs_cursor, end_outputs_cursor, ini_inputs_cursor, end_inputs_cursor, "
    "ini_reports_cursor, end_reports_cursor, output_ids"
)


def _row_to_record(row: tuple) -> SyncProgressRecord:
    return SyncProgressRecord(
        id=int(row[0]),
        timestamp_ms=int(row[1]),
        before=CursorTriple(outputs=row[2], inputs=row[4], reports=row[6]),
        after=CursorTriple(outputs=row[3], inputs=row[5], reports=row[7]),
        output_ids=row[8] or "",
    )


def output_ids(artifacts: Iterable[Artifact]) -> str:
    """``"input:output;..."`` audit list of the outputs in ``artifacts``."""
    return ";".join(f"{a.input_index}:{a.output_index}" for a in artifacts if isinstance(a, (Voucher, Notice)))


class ProgressStore:
    """
    Progress history and transactional commit of artifacts.

    Args:
        connection: ibis backend (or an existing ``SqlRunner`` on one)
        schema: schema holding the progress and artifact tables
        handler: artifact capability; defaults to ``ArtifactTables(schema)``
        clock: seconds since the epoch, injectable for tests
    """

    def __init__(
        self,
        connection: ibis.BaseBackend | SqlRunner,
        *,
        schema: str = "rollsync",
        handler: ArtifactHandler | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.sql = connection if isinstance(connection, SqlRunner) else SqlRunner(connection)
        self.schema = schema
        self.handler = handler if handler is not None else ArtifactTables(schema)
        self.clock = clock
        self.table = f"{schema}.sync_progress"
        self._initialized = False

    def initialize(self) -> None:
        """Create the schema, progress table and artifact tables if they don't exist."""
        if self._initialized:
            return
        try:
            self.sql.execute(f"CREATE SCHEMA IF NOT EXISTS {self.schema}")
            self.sql.execute(f"CREATE SEQUENCE IF NOT EXISTS {self.schema}.sync_progress_seq")
            self.sql.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.table} (
                    id BIGINT PRIMARY KEY DEFAULT nextval('{self.schema}.sync_progress_seq'),
                    timestamp_ms BIGINT NOT NULL,
                    ini_outputs_cursor TEXT,
                    end_outputs_cursor TEXT,
                    ini_inputs_cursor TEXT,
                    end_inputs_cursor TEXT,
                    ini_reports_cursor TEXT,
                    end_reports_cursor TEXT,
                    output_ids TEXT
                )
                """
            )
            self.handler.create_tables(self.sql)
        except Exception as e:
            raise PersistenceError(f"Could not initialize state tables in schema '{self.schema}': {e}") from e
        self._initialized = True
        logger.debug(f"State database initialized with schema '{self.schema}'")

    # --- Reads ---------------------------------------------------------------

    def get_last_record(self) -> SyncProgressRecord | None:
        """Most recent progress record by timestamp, then id."""
        rows = self._fetch(f"SELECT {_COLUMNS} FROM {self.table} ORDER BY timestamp_ms DESC, id DESC LIMIT 1")
        return _row_to_record(rows[0]) if rows else None

    def get_last(self) -> CursorTriple | None:
        """Cursor triple to resume from, or None if nothing was ever committed."""
        record = self.get_last_record()
        return record.after if record else None

    def history(self, limit: int = 10) -> list[SyncProgressRecord]:
        rows = self._fetch(
            f"SELECT {_COLUMNS} FROM {self.table} ORDER BY timestamp_ms DESC, id DESC LIMIT {int(limit)}"
        )
        return [_row_to_record(row) for row in rows]

    def count(self) -> int:
        return int(self._fetch(f"SELECT COUNT(*) FROM {self.table}")[0][0])

    def _fetch(self, query: str) -> list[tuple]:
        try:
            return self.sql.fetchall(query)
        except Exception as e:
            raise PersistenceError(f"Could not read {self.table}: {e}") from e

    # --- Writes --------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[SqlRunner]:
        with self.sql.transaction() as sql:
            yield sql

    def commit_advance(
        self, artifacts: Iterable[Artifact], before: CursorTriple, after: CursorTriple
    ) -> SyncProgressRecord | None:
        """
        Persist ``artifacts`` and record the move from ``before`` to ``after``.

        All-or-nothing. Returns the appended record, or None when no cursor
        moved or the same transition was already recorded (a re-delivered page).

        Raises:
            PersistenceError: on any storage failure, or when the stored
                cursors show another writer moved them
        """
        artifacts = list(artifacts)
        try:
            with self.transaction():
                last = self.get_last_record()
                stored = last.after if last else CursorTriple()
                redelivered = last is not None and before != after and stored == after
                if stored != before and not redelivered:
                    raise PersistenceError(
                        f"Stored cursors ({stored}) do not match the cycle's starting cursors ({before}); "
                        f"is another synchronizer writing to {self.table}?",
                        details={"stored": stored.as_dict(), "before": before.as_dict()},
                    )

                for artifact in artifacts:
                    self._handle(artifact)

                if before == after or redelivered:
                    if redelivered:
                        logger.info(f"Page already applied ({after}), artifacts re-applied idempotently")
                    return None

                timestamp_ms = int(self.clock() * 1000)
                if last is not None:
                    timestamp_ms = max(timestamp_ms, last.timestamp_ms)
                record = self._append(timestamp_ms, before, after, output_ids(artifacts))
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Commit of {len(artifacts)} artifacts failed, nothing was applied: {e}") from e

        logger.debug(f"Recorded progress #{record.id}: {before} -> {after}")
        return record

    def _handle(self, artifact: Artifact) -> None:
        if isinstance(artifact, (Voucher, Notice)):
            self.handler.handle_output(self.sql, artifact)
        elif isinstance(artifact, Input):
            self.handler.handle_input(self.sql, artifact)
        elif isinstance(artifact, Report):
            self.handler.handle_report(self.sql, artifact)
        else:
            raise TypeError(f"Unsupported artifact {artifact!r}")

    def _append(
        self, timestamp_ms: int, before: CursorTriple, after: CursorTriple, ids: str
    ) -> SyncProgressRecord:
        values = ", ".join(
            sql_value(v)
            for v in (
                timestamp_ms,
                before.outputs,
                after.outputs,
                before.inputs,
                after.inputs,
                before.reports,
                after.reports,
                ids,
            )
        )
        rows = self.sql.fetchall(
            f"INSERT INTO {self.table} (timestamp_ms, ini_outputs_cursor, end_outputs_cursor, "
            f"ini_inputs_cursor, end_inputs_cursor, ini_reports_cursor, end_reports_cursor, output_ids) "
            f"VALUES ({values}) RETURNING id"
        )
        return SyncProgressRecord(
            id=int(rows[0][0]), timestamp_ms=timestamp_ms, before=before, after=after, output_ids=ids
        )

    def purge_before(self, cutoff_ms: int) -> int:
        """
        Delete records older than ``cutoff_ms``. The latest record is always kept.

        Returns:
            Number of deleted records
        """
        try:
            with self.transaction():
                last = self.get_last_record()
                if last is None:
                    return 0
                rows = self.sql.fetchall(
                    f"DELETE FROM {self.table} WHERE timestamp_ms < {int(cutoff_ms)} AND id <> {last.id} RETURNING id"
                )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Could not purge {self.table}: {e}") from e
        return len(rows)

    def artifact_counts(self) -> dict[str, int]:
        """Row counts from the handler, when it can report them."""
        counts = getattr(self.handler, "counts", None)
        if counts is None:
            return {}
        try:
            return counts(self.sql)
        except Exception as e:
            raise PersistenceError(f"Could not count artifacts: {e}") from e
