"""
GraphQL fetch client.

One POST per ``fetch`` call, parsed into a ``Page``. Retry policy belongs to
the synchronizer loop, so nothing here retries.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import Iterable
from typing import Any

import aiohttp

from rollsync.exceptions import ProtocolError, TransportError
from rollsync.sync.query import ENCODING_FIELD
from rollsync.sync.types import ALL_STREAMS, Page, PageInfo, PayloadEncoding, RawEntry, Stream, StreamPage
from rollsync.utils.logging import get_logger

logger = get_logger("rollsync.sync.fetcher")


class GraphQLFetcher:
    """
    Client for the rollup node's GraphQL endpoint.

    Example:
        ```python
        async with GraphQLFetcher("http://localhost:5000/graphql") as fetcher:
            page = await fetcher.fetch(build_query(10, CursorTriple()))
        ```
    """

    def __init__(
        self,
        url: str,
        *,
        streams: Iterable[Stream] = ALL_STREAMS,
        timeout: float = 30.0,
        headers: dict[str, str] | None = None,
    ):
        self.url = url
        self.streams = tuple(s for s in ALL_STREAMS if s in set(streams))
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.default_headers = {"Content-Type": "application/json", **(headers or {})}
        self.session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Ensure session exists, creating it if needed."""
        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(timeout=self.timeout, headers=self.default_headers)
            return self.session

    async def __aenter__(self) -> GraphQLFetcher:
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Explicitly close the session."""
        async with self._session_lock:
            if self.session and not self.session.closed:
                await self.session.close()
            self.session = None

    async def fetch(self, query: str) -> Page:
        """
        Execute ``query`` and parse the response.

        Raises:
            TransportError: connection failure or timeout
            ProtocolError: non-2xx status, non-JSON body, GraphQL errors or malformed page
        """
        session = await self._ensure_session()
        body = {"query": query, "variables": {}, "operationName": None}

        start_time = time.monotonic()
        try:
            async with session.post(self.url, json=body) as response:
                status = response.status
                raw = await response.read()
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Timed out after {self.timeout.total}s querying {self.url}", details={"url": self.url}
            ) from e
        except aiohttp.ClientError as e:
            raise TransportError(f"Error sending request to {self.url}: {e}", details={"url": self.url}) from e
        duration = time.monotonic() - start_time

        log_level = logger.debug if status <= 299 else logger.warning
        log_level(f"POST {self.url} {status} {duration:.2f}s {len(raw)}")

        if status > 299:
            raise ProtocolError(
                f"Unexpected HTTP status {status} from {self.url}: {raw[:200].decode(errors='replace')}",
                details={"url": self.url, "status": status},
            )
        try:
            payload = json.loads(raw.decode("utf-8"))
        except ValueError as e:
            raise ProtocolError(
                f"Response from {self.url} is not JSON: {raw[:200].decode(errors='replace')}",
                details={"url": self.url},
            ) from e

        return parse_page(payload, self.streams)


def parse_page(body: Any, streams: Iterable[Stream] = ALL_STREAMS) -> Page:
    """
    Turn a decoded GraphQL response body into a ``Page``.

    Only ``streams`` are read; the others are left as ``None``.

    Raises:
        ProtocolError: if the body carries GraphQL errors or has the wrong shape
    """
    if not isinstance(body, dict):
        raise ProtocolError(f"Response body must be an object, got {type(body).__name__}")
    errors = body.get("errors")
    if errors is not None and not isinstance(errors, list):
        raise ProtocolError(f"'errors' must be a list, got {type(errors).__name__}")
    if errors:
        messages = "; ".join(str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors)
        raise ProtocolError(f"GraphQL errors: {messages}", details={"errors": errors})
    data = body.get("data")
    if not isinstance(data, dict):
        raise ProtocolError("Response has no 'data' object")

    pages: dict[str, StreamPage] = {}
    for stream in streams:
        stream = Stream(stream)
        pages[stream.value] = _parse_stream(stream, data.get(stream.value))
    return Page(**pages)


def _parse_stream(stream: Stream, connection: Any) -> StreamPage:
    if not isinstance(connection, dict):
        raise ProtocolError(
            f"'data.{stream.value}' is missing or not an object",
            details={"stream": stream.value},
        )
    edges = connection.get("edges")
    page_info = connection.get("pageInfo")
    if not isinstance(edges, list) or not isinstance(page_info, dict):
        raise ProtocolError(
            f"'data.{stream.value}' must carry 'edges' and 'pageInfo'",
            details={"stream": stream.value},
        )

    entries = tuple(_parse_edge(stream, edge, position) for position, edge in enumerate(edges))
    return StreamPage(
        entries=entries,
        page_info=PageInfo(
            start_cursor=_optional_str(page_info.get("startCursor"), stream, "startCursor"),
            end_cursor=_optional_str(page_info.get("endCursor"), stream, "endCursor"),
            has_next_page=_flag(page_info.get("hasNextPage"), stream, "hasNextPage"),
            has_previous_page=_flag(page_info.get("hasPreviousPage"), stream, "hasPreviousPage"),
        ),
    )


def _parse_edge(stream: Stream, edge: Any, position: int) -> RawEntry:
    where = f"{stream.value} edge {position}"
    if not isinstance(edge, dict) or not isinstance(edge.get("node"), dict):
        raise ProtocolError(f"{where} has no 'node' object", details={"stream": stream.value})
    node = edge["node"]

    cursor = edge.get("cursor")
    if not isinstance(cursor, str):
        raise ProtocolError(f"{where} has no cursor", details={"stream": stream.value})
    blob = node.get("blob")
    if not isinstance(blob, str):
        raise ProtocolError(f"{where} has no blob", details={"stream": stream.value})

    input_index = None
    encoding = None
    proof = None
    if stream is not Stream.INPUTS:
        if node.get("inputIndex") is None:
            raise ProtocolError(f"{where} has no inputIndex", details={"stream": stream.value})
        input_index = _index(node["inputIndex"], where, "inputIndex")
    if stream is Stream.OUTPUTS:
        encoding = _encoding(node.get(ENCODING_FIELD), where)
        proof = node.get("proofByInputIndexAndOutputIndex")
        if proof is not None and not isinstance(proof, dict):
            raise ProtocolError(f"{where} has a malformed proof", details={"stream": stream.value})

    return RawEntry(
        cursor=cursor,
        index=_index(node.get("index"), where, "index"),
        blob=blob,
        input_index=input_index,
        encoding=encoding,
        proof=proof,
    )


def _index(value: Any, where: str, field: str) -> int:
    """Indices arrive as JSON integers or as decimal strings (BigInt columns)."""
    if isinstance(value, bool):
        raise ProtocolError(f"{where}: {field} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    raise ProtocolError(f"{where}: {field} must be an integer, got {value!r}")


def _optional_str(value: Any, stream: Stream, field: str) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ProtocolError(
            f"'data.{stream.value}.pageInfo.{field}' must be a string",
            details={"stream": stream.value},
        )
    return value


def _flag(value: Any, stream: Stream, field: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ProtocolError(
            f"'data.{stream.value}.pageInfo.{field}' must be a boolean",
            details={"stream": stream.value},
        )
    return value


def _encoding(value: Any, where: str) -> PayloadEncoding | None:
    if value is None:
        return None
    try:
        return PayloadEncoding(str(value).lower())
    except ValueError:
        raise ProtocolError(f"{where}: unknown {ENCODING_FIELD} {value!r}") from None
