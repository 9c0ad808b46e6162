"""
Rollsync - synchronize rollup outputs, inputs and reports from a GraphQL node
into a local state database.
"""

__version__ = "0.1.0"

from rollsync.config import Config, SyncSettings, load_config

# Exceptions
from rollsync.exceptions import (
    ConfigurationError,
    ConnectionNotFoundError,
    DecodeError,
    InitializationError,
    PersistenceError,
    ProtocolError,
    RollsyncConnectionError,
    RollsyncError,
    SyncError,
    TransportError,
)
from rollsync.explorer import ExplorerClient
from rollsync.runner import SyncRunner, initialize
from rollsync.sync import (
    ArtifactDecoder,
    CursorTriple,
    GraphQLFetcher,
    ProgressStore,
    RetentionPurger,
    Synchronizer,
    build_query,
)

# Logging utilities
from rollsync.utils.logging import get_logger, setup_logging, setup_logging_from_config

__all__ = [
    "__version__",
    # Config
    "Config",
    "SyncSettings",
    "load_config",
    # Sync
    "ArtifactDecoder",
    "CursorTriple",
    "GraphQLFetcher",
    "ProgressStore",
    "RetentionPurger",
    "Synchronizer",
    "build_query",
    # Runtime
    "ExplorerClient",
    "SyncRunner",
    "initialize",
    # Exceptions
    "ConfigurationError",
    "ConnectionNotFoundError",
    "DecodeError",
    "InitializationError",
    "PersistenceError",
    "ProtocolError",
    "RollsyncConnectionError",
    "RollsyncError",
    "SyncError",
    "TransportError",
    # Logging
    "get_logger",
    "setup_logging",
    "setup_logging_from_config",
]
