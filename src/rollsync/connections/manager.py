"""
Connection manager.

Registry of the configured state database connections.
"""

import threading
from pathlib import Path
from typing import Any

from rollsync.connections.base import BaseConnection
from rollsync.connections.duckdb import DuckDBConnection
from rollsync.connections.postgres import PostgresConnection
from rollsync.exceptions import ConnectionNotFoundError
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.connections.manager")

CONNECTION_TYPES: dict[str, type[BaseConnection]] = {
    "duckdb": DuckDBConnection,
    "postgres": PostgresConnection,
}


class ConnectionManager:
    """Manages connections declared under ``connections`` in the config."""

    def __init__(self, config: dict[str, Any], validate: bool = True, base_dir: Path | None = None):
        self.config = config
        self.base_dir = base_dir
        self._connections: dict[str, BaseConnection] = {}
        self._load_connections()

        if validate:
            self.validate()

    def _load_connections(self) -> None:
        """Load connections from configuration."""
        for name, conn_config in (self.config.get("connections") or {}).items():
            conn_type = (conn_config or {}).get("type")
            conn_class = CONNECTION_TYPES.get(conn_type)
            if conn_class is None:
                logger.warning(f"Unknown connection type '{conn_type}' for connection '{name}', skipping")
                continue
            self._connections[name] = conn_class(name, self._resolve_path(conn_config))

    def _resolve_path(self, conn_config: dict[str, Any]) -> dict[str, Any]:
        """Make a relative DuckDB file path relative to the project directory."""
        path = conn_config.get("path")
        if self.base_dir is None or not path or path == ":memory:" or Path(path).is_absolute():
            return conn_config
        return {**conn_config, "path": str(self.base_dir / path)}

    def get(self, name: str) -> BaseConnection:
        """Get connection by name."""
        if name not in self._connections:
            raise ConnectionNotFoundError(name)
        return self._connections[name]

    def list(self) -> list[str]:
        """List all connection names."""
        return list(self._connections.keys())

    def validate(self) -> None:
        """Validate all connections can be opened."""
        if not self._connections:
            logger.warning("No connections defined in configuration")
            return

        errors = []
        for conn_name, conn_obj in self._connections.items():
            try:
                _ = conn_obj.connection
            except Exception as e:
                errors.append(f"Connection '{conn_name}': Cannot connect.\n  Error: {e}")

        if errors:
            error_message = "Connection validation failed:\n\n" + "\n\n".join(
                f"{i}. {err}" for i, err in enumerate(errors, 1)
            )
            raise ValueError(error_message)

    def close_all(self) -> None:
        """Close every open connection."""
        for conn_obj in self._connections.values():
            conn_obj.close()


# Global connection manager instance with thread-safe access
_connection_manager: ConnectionManager | None = None
_connection_manager_lock = threading.Lock()


def get_connection(name: str) -> BaseConnection:
    """Get connection by name from the global connection manager (thread-safe)."""
    with _connection_manager_lock:
        if _connection_manager is None:
            raise RuntimeError("Connection manager not initialized. Call init_connections() first.")
        return _connection_manager.get(name)


def init_connections(config: dict[str, Any], validate: bool = True, base_dir: Path | None = None) -> ConnectionManager:
    """Initialize the global connection manager (thread-safe), closing the previous one."""
    global _connection_manager
    with _connection_manager_lock:
        if _connection_manager is not None:
            _connection_manager.close_all()
        _connection_manager = ConnectionManager(config, validate=validate, base_dir=base_dir)
        return _connection_manager
