"""
State database connections (DuckDB, Postgres) via ibis.
"""

from rollsync.connections.base import BaseConnection
from rollsync.connections.duckdb import DuckDBConnection
from rollsync.connections.manager import ConnectionManager, get_connection, init_connections
from rollsync.connections.postgres import PostgresConnection

__all__ = [
    "BaseConnection",
    "ConnectionManager",
    "get_connection",
    "init_connections",
    "DuckDBConnection",
    "PostgresConnection",
]
