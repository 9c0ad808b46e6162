"""
DuckDB state database via ibis.
"""

import re
from pathlib import Path

import ibis

from rollsync.connections.base import BaseConnection
from rollsync.exceptions import ConnectionError_
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.connections.duckdb")


class DuckDBConnection(BaseConnection):
    """DuckDB connection wrapper using ibis.

    Config::

        connections:
          state:
            type: duckdb
            path: data/rollsync.duckdb   # or ":memory:"
    """

    @property
    def connection(self) -> ibis.BaseBackend:
        """Get DuckDB connection via ibis (lazy initialization)."""
        if self._connection is None:
            path = str(self.config.get("path", ":memory:"))

            if path == ":memory:":
                self._connection = ibis.duckdb.connect()
                return self._connection

            Path(path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = ibis.duckdb.connect(path)
            except Exception as e:
                error_str = str(e)
                if "lock" in error_str.lower() or "conflicting" in error_str.lower():
                    pid_match = re.search(r"PID\s+(\d+)", error_str)
                    pid_info = f" (PID: {pid_match.group(1)})" if pid_match else ""
                    # Only one synchronizer may own a state file
                    raise ConnectionError_(
                        f"Cannot connect to DuckDB database '{path}': File is locked by another process{pid_info}.\n"
                        f"Another synchronizer is probably running against the same state database.",
                        details={"path": path},
                    ) from e
                raise ConnectionError_(
                    f"Cannot connect to DuckDB database '{path}': {error_str}", details={"path": path}
                ) from e
            logger.debug(f"Opened DuckDB state database at {path}")

        return self._connection
