"""
Raw SQL execution on an ibis backend.

The state tables are written with hand-built SQL so that artifacts and the
progress record can share one transaction. DuckDB runs everything on its
single connection with explicit ``BEGIN TRANSACTION``/``COMMIT``; Postgres
goes through the backend's ``begin()`` cursor, which commits on exit.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import ibis

from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.utils.sql")


def escape_sql_string(value: str) -> str:
    """Escape single quotes for SQL strings."""
    return value.replace("'", "''")


def sql_value(value: Any) -> str:
    """Convert Python value to SQL literal."""
    if value is None:
        return "NULL"
    # bool before int: isinstance(True, int) is True
    elif isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    elif isinstance(value, int):
        return str(value)
    else:
        return f"'{escape_sql_string(str(value))}'"


class SqlRunner:
    """
    Executes SQL statements against one ibis backend.

    Calls are serialized with a re-entrant lock, so the synchronizer and the
    retention purger can share a backend from worker threads. A transaction
    holds the lock until it commits or rolls back.
    """

    def __init__(self, backend: ibis.BaseBackend):
        self.backend = backend
        self._lock = threading.RLock()
        self._cursor: Any = None
        self._depth = 0

    @property
    def dialect(self) -> str:
        return self.backend.name

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    def execute(self, query: str) -> None:
        """Execute a statement for its side effects."""
        self._run(query, fetch=False)

    def fetchall(self, query: str) -> list[tuple]:
        """Execute a statement and return every row."""
        return self._run(query, fetch=True) or []

    def _run(self, query: str, fetch: bool) -> list[tuple] | None:
        with self._lock:
            if self.dialect == "duckdb":
                result = self.backend.con.execute(query)
                return result.fetchall() if fetch else None
            if self._cursor is not None:
                self._cursor.execute(query)
                return self._cursor.fetchall() if fetch else None
            with self.backend.begin() as cursor:
                cursor.execute(query)
                return cursor.fetchall() if fetch else None

    @contextmanager
    def transaction(self) -> Iterator["SqlRunner"]:
        """
        All-or-nothing scope. Nested calls join the outer transaction.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self
                finally:
                    self._depth -= 1
                return

            self._depth = 1
            try:
                if self.dialect == "duckdb":
                    yield from self._duckdb_transaction()
                else:
                    with self.backend.begin() as cursor:
                        self._cursor = cursor
                        yield self
            finally:
                self._cursor = None
                self._depth = 0

    def _duckdb_transaction(self) -> Iterator["SqlRunner"]:
        con = self.backend.con
        con.execute("BEGIN TRANSACTION")
        try:
            yield self
        except BaseException:
            try:
                con.execute("ROLLBACK")
            except Exception as e:
                logger.warning(f"Rollback failed: {e}")
            raise
        con.execute("COMMIT")
