"""
Rollsync exception hierarchy.

All domain-specific exceptions inherit from RollsyncError, making it easy
to catch any synchronizer error with a single base class while still allowing
fine-grained handling when needed.

Hierarchy::

    RollsyncError
    ├── ConfigurationError        - config loading, parsing, validation
    ├── ConnectionError_          - state database connection issues
    │   └── ConnectionNotFoundError - named connection not registered
    ├── InitializationError       - startup orchestration failures
    └── SyncError                 - one synchronization cycle failed
        ├── TransportError        - network/timeout (retried)
        ├── ProtocolError         - malformed upstream response (retried)
        ├── DecodeError           - payload does not decode (fatal)
        └── PersistenceError      - storage commit failed (fatal)
"""

from __future__ import annotations


class RollsyncError(Exception):
    """Base exception for all Rollsync errors."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# --- Configuration -----------------------------------------------------------


class ConfigurationError(RollsyncError):
    """Raised when configuration loading, parsing, or validation fails."""


# --- Connections -------------------------------------------------------------


class ConnectionError_(RollsyncError):
    """Raised when a database connection cannot be established.

    Named with trailing underscore to avoid shadowing the builtin
    ``ConnectionError``; the public alias ``RollsyncConnectionError``
    is preferred for external use.
    """


RollsyncConnectionError = ConnectionError_


class ConnectionNotFoundError(ConnectionError_):
    """Raised when a named connection is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Connection not found: {name}", details={"connection": name})
        self.connection_name = name


# --- Initialization ----------------------------------------------------------


class InitializationError(RollsyncError):
    """Raised during startup when a required component fails to initialize.

    Exception chaining is suppressed (``from None``) at the raise sites to keep
    CLI output clean.
    """


# --- Synchronization ---------------------------------------------------------


class SyncError(RollsyncError):
    """Raised when a synchronization cycle fails.

    ``retryable`` tells the loop whether the same cycle may simply be tried
    again after the poll interval.
    """

    retryable: bool = False


class TransportError(SyncError):
    """Raised on connection failures and timeouts talking to the upstream."""

    retryable = True


class ProtocolError(SyncError):
    """Raised when the upstream answers with something that is not a valid page."""

    retryable = True


class DecodeError(SyncError):
    """Raised when a raw entry does not conform to the expected encoding.

    Decoding is deterministic, so retrying reproduces the same failure.
    """

    def __init__(
        self,
        message: str,
        *,
        stream: str | None = None,
        index: int | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, details={"stream": stream, "index": index})
        self.stream = stream
        self.index = index
        if cause is not None:
            self.__cause__ = cause


class PersistenceError(SyncError):
    """Raised when artifacts or progress cannot be committed.

    The commit is all-or-nothing, so nothing from the failed page is visible.
    """
