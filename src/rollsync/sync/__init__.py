"""
Multi-stream cursor synchronization of rollup outputs, inputs and reports.
"""

from rollsync.sync.artifacts import ArtifactHandler, ArtifactTables
from rollsync.sync.decoder import NOTICE_SELECTOR, VOUCHER_SELECTOR, ArtifactDecoder
from rollsync.sync.fetcher import GraphQLFetcher, parse_page
from rollsync.sync.query import build_query
from rollsync.sync.retention import RetentionPurger
from rollsync.sync.store import ProgressStore
from rollsync.sync.synchronizer import CycleResult, Synchronizer, SyncState, compute_advance
from rollsync.sync.types import (
    ALL_STREAMS,
    CursorTriple,
    Input,
    Notice,
    Page,
    PageInfo,
    PayloadEncoding,
    RawEntry,
    Report,
    Stream,
    StreamPage,
    SyncProgressRecord,
    Voucher,
)

__all__ = [
    "ALL_STREAMS",
    "ArtifactDecoder",
    "ArtifactHandler",
    "ArtifactTables",
    "CursorTriple",
    "CycleResult",
    "GraphQLFetcher",
    "Input",
    "Notice",
    "NOTICE_SELECTOR",
    "Page",
    "PageInfo",
    "PayloadEncoding",
    "ProgressStore",
    "RawEntry",
    "Report",
    "RetentionPurger",
    "Stream",
    "StreamPage",
    "SyncProgressRecord",
    "SyncState",
    "Synchronizer",
    "Voucher",
    "VOUCHER_SELECTOR",
    "build_query",
    "compute_advance",
    "parse_page",
]
