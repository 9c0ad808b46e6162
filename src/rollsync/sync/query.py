"""
GraphQL query composition for the three rollup streams.
"""

from __future__ import annotations

import json
from collections.abc import Iterable

from rollsync.sync.types import ALL_STREAMS, CursorTriple, Stream

PROOF_FIELDS = (
    "validityOutputIndexWithinInput",
    "validityOutputHashesRootHash",
    "validityOutputHashesInEpochSiblings",
    "validityOutputHashInOutputHashesSiblings",
    "validityOutputEpochRootHash",
    "validityMachineStateHash",
    "validityInputIndexWithinEpoch",
)

ENCODING_FIELD = "payloadEncoding"

_PAGE_INFO = """      pageInfo {
        startCursor
        endCursor
        hasNextPage
        hasPreviousPage
      }"""


def _node_fields(stream: Stream, include_encoding: bool) -> list[str]:
    if stream is Stream.OUTPUTS:
        fields = ["index", "inputIndex", "blob"]
        if include_encoding:
            fields.append(ENCODING_FIELD)
        proof = "\n".join(f"              {f}" for f in PROOF_FIELDS)
        fields.append(f"proofByInputIndexAndOutputIndex {{\n{proof}\n            }}")
        return fields
    if stream is Stream.INPUTS:
        return ["index", "blob"]
    return ["index", "inputIndex", "blob"]


def _arguments(batch_size: int, cursor: str | None) -> str:
    if cursor is None:
        return f"first: {batch_size}"
    return f"first: {batch_size}, after: {json.dumps(cursor)}"


def build_query(
    batch_size: int,
    cursors: CursorTriple,
    streams: Iterable[Stream] = ALL_STREAMS,
    *,
    include_encoding: bool = False,
) -> str:
    """
    Compose one query requesting up to ``batch_size`` entries per stream.

    A stream with no cursor is requested from the start; otherwise only the
    entries after its cursor. All enabled streams share one round trip.

    Raises:
        ValueError: if ``batch_size`` is negative or no stream is enabled
    """
    if batch_size < 0:
        raise ValueError(f"batch_size must be non-negative, got {batch_size}")
    enabled = [s for s in ALL_STREAMS if s in set(streams)]
    if not enabled:
        raise ValueError("at least one stream must be requested")

    blocks = []
    for stream in enabled:
        fields = "\n".join(f"            {f}" for f in _node_fields(stream, include_encoding))
        blocks.append(
            f"    {stream.value}({_arguments(batch_size, cursors.get(stream))}) {{\n"
            f"      edges {{\n"
            f"        cursor\n"
            f"        node {{\n"
            f"{fields}\n"
            f"        }}\n"
            f"      }}\n"
            f"{_PAGE_INFO}\n"
            f"    }}"
        )
    return "query {\n" + "\n".join(blocks) + "\n}"
