"""
Typed settings derived from the loaded configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from rollsync.config.loader import Config
from rollsync.config.resolver import is_unresolved
from rollsync.exceptions import ConfigurationError
from rollsync.sync.types import ALL_STREAMS, Stream

DEFAULT_GRAPHQL_URL = "http://localhost:5000/graphql"
DEFAULT_EXPLORER_URL = "https://api.etherscan.io/api"

PAYLOAD_ENCODINGS = ("auto", "v1", "v2")
DECODE_ERROR_POLICIES = ("halt", "skip")


@dataclass(frozen=True)
class SourceSettings:
    graphql_url: str = DEFAULT_GRAPHQL_URL
    timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LoopSettings:
    batch_size: int = 10
    poll_interval: float = 3.0
    streams: tuple[Stream, ...] = ALL_STREAMS
    payload_encoding: str = "auto"
    request_encoding_field: bool = False
    on_decode_error: str = "halt"


@dataclass(frozen=True)
class RetentionSettings:
    enabled: bool = True
    period: float = 600.0
    max_age: float = 600.0


@dataclass(frozen=True)
class ExplorerSettings:
    base_url: str = DEFAULT_EXPLORER_URL
    api_key: str | None = None
    timeout: float = 30.0


@dataclass(frozen=True)
class SyncSettings:
    """All settings the runner needs, validated."""

    source: SourceSettings = field(default_factory=SourceSettings)
    sync: LoopSettings = field(default_factory=LoopSettings)
    retention: RetentionSettings = field(default_factory=RetentionSettings)
    explorer: ExplorerSettings = field(default_factory=ExplorerSettings)
    state_connection: str = "state"

    @classmethod
    def from_config(cls, config: Config | dict[str, Any]) -> SyncSettings:
        if isinstance(config, dict):
            config = Config(config)

        source = config.section("source")
        sync = config.section("sync")
        retention = config.section("retention")
        explorer = config.section("explorer")
        state = config.section("state")

        headers = source.get("headers") or {}
        if not isinstance(headers, dict):
            raise ConfigurationError("source.headers must be a mapping", details={"key": "source.headers"})

        api_key = explorer.get("api_key")
        if not api_key or is_unresolved(api_key):
            api_key = None

        return cls(
            source=SourceSettings(
                graphql_url=_str(source, "graphql_url", DEFAULT_GRAPHQL_URL, "source"),
                timeout=_positive(source, "timeout", 30.0, "source"),
                headers={str(k): str(v) for k, v in headers.items()},
            ),
            sync=LoopSettings(
                batch_size=_batch_size(sync.get("batch_size", 10)),
                poll_interval=_positive(sync, "poll_interval", 3.0, "sync"),
                streams=_streams(sync.get("streams")),
                payload_encoding=_choice(sync, "payload_encoding", "auto", PAYLOAD_ENCODINGS, "sync"),
                request_encoding_field=bool(sync.get("request_encoding_field", False)),
                on_decode_error=_choice(sync, "on_decode_error", "halt", DECODE_ERROR_POLICIES, "sync"),
            ),
            retention=RetentionSettings(
                enabled=bool(retention.get("enabled", True)),
                period=_positive(retention, "period", 600.0, "retention"),
                max_age=_positive(retention, "max_age", 600.0, "retention"),
            ),
            explorer=ExplorerSettings(
                base_url=_str(explorer, "base_url", DEFAULT_EXPLORER_URL, "explorer"),
                api_key=api_key,
                timeout=_positive(explorer, "timeout", 30.0, "explorer"),
            ),
            state_connection=_str(state, "connection", "state", "state"),
        )


def _str(section: dict[str, Any], key: str, default: str, prefix: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{prefix}.{key} must be a non-empty string", details={"key": f"{prefix}.{key}"})
    return value


def _positive(section: dict[str, Any], key: str, default: float, prefix: str) -> float:
    value = section.get(key, default)
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"{prefix}.{key} must be a number, got {value!r}", details={"key": f"{prefix}.{key}"}
        ) from None
    if number <= 0:
        raise ConfigurationError(f"{prefix}.{key} must be > 0, got {value!r}", details={"key": f"{prefix}.{key}"})
    return number


def _batch_size(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(
            f"sync.batch_size must be a positive integer, got {value!r}", details={"key": "sync.batch_size"}
        )
    return value


def _choice(section: dict[str, Any], key: str, default: str, choices: tuple[str, ...], prefix: str) -> str:
    value = str(section.get(key, default)).lower()
    if value not in choices:
        raise ConfigurationError(
            f"{prefix}.{key} must be one of {', '.join(choices)}, got {value!r}",
            details={"key": f"{prefix}.{key}"},
        )
    return value


def _streams(value: Any) -> tuple[Stream, ...]:
    if value is None:
        return ALL_STREAMS
    if not isinstance(value, list) or not value:
        raise ConfigurationError("sync.streams must be a non-empty list", details={"key": "sync.streams"})
    try:
        requested = {Stream(str(v).lower()) for v in value}
    except ValueError:
        raise ConfigurationError(
            f"sync.streams entries must be among {', '.join(s.value for s in ALL_STREAMS)}, got {value!r}",
            details={"key": "sync.streams"},
        ) from None
    return tuple(s for s in ALL_STREAMS if s in requested)
