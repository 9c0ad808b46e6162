"""
Abstract base connection class for the ibis-backed state database.
"""

from abc import ABC, abstractmethod
from typing import Any

import ibis

from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.connections.base")


class BaseConnection(ABC):
    """
    Base class for state database connections using ibis.

    Subclasses build the backend lazily on first access of ``connection`` so
    configuration can be loaded and validated before anything touches disk or
    the network.
    """

    def __init__(self, name: str, config: dict[str, Any]):
        """
        Initialize connection.

        Args:
            name: Connection name (from config)
            config: Connection configuration dictionary
        """
        self.name = name
        self.config = config
        self._connection: ibis.BaseBackend | None = None

    @property
    @abstractmethod
    def connection(self) -> ibis.BaseBackend:
        """Get ibis backend connection (lazy initialization)."""

    def close(self) -> None:
        """Close connection and cleanup resources."""
        if self._connection is None:
            return
        if hasattr(self._connection, "disconnect"):
            try:
                self._connection.disconnect()
            except Exception as e:
                logger.debug(f"Error during disconnect() for {self.name}: {e}")
        self._connection = None

    def __enter__(self) -> "BaseConnection":
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        try:
            self.close()
        except Exception as e:
            # Don't override the original exception if one occurred
            if exc_type is None:
                raise
            logger.warning(f"Error closing connection {self.name} during context exit: {e}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name='{self.name}')"
