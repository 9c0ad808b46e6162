"""
Type definitions for the rollup synchronizer.

Raw upstream pages, decoded artifacts, cursor triples and progress records.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar


class Stream(str, Enum):
    """One of the three independently paginated upstream collections."""

    OUTPUTS = "outputs"
    INPUTS = "inputs"
    REPORTS = "reports"


# Fixed processing order: reports reference inputs that should already be durable
ALL_STREAMS: tuple[Stream, ...] = (Stream.OUTPUTS, Stream.INPUTS, Stream.REPORTS)


class PayloadEncoding(str, Enum):
    """Output payload generation. V2 prefixes a 4-byte kind selector."""

    V1 = "v1"
    V2 = "v2"


class ArtifactKind(str, Enum):
    VOUCHER = "voucher"
    NOTICE = "notice"
    INPUT = "input"
    REPORT = "report"


class CompletionStatus(str, Enum):
    """Processing status of an input on the rollup node."""

    UNPROCESSED = "UNPROCESSED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXCEPTION = "EXCEPTION"
    MACHINE_HALTED = "MACHINE_HALTED"
    CYCLE_LIMIT_EXCEEDED = "CYCLE_LIMIT_EXCEEDED"
    TIME_LIMIT_EXCEEDED = "TIME_LIMIT_EXCEEDED"
    PAYLOAD_LENGTH_LIMIT_EXCEEDED = "PAYLOAD_LENGTH_LIMIT_EXCEEDED"


@dataclass(frozen=True)
class CursorTriple:
    """
    Position of the synchronizer in each stream.

    ``None`` means "from the beginning". Instances are immutable; a cycle
    receives one triple and returns a new one.
    """

    outputs: str | None = None
    inputs: str | None = None
    reports: str | None = None

    def get(self, stream: Stream) -> str | None:
        return getattr(self, Stream(stream).value)

    def advance(self, stream: Stream, cursor: str | None) -> CursorTriple:
        return dataclasses.replace(self, **{Stream(stream).value: cursor})

    def changed_streams(self, other: CursorTriple) -> list[Stream]:
        """Streams whose cursor differs between ``self`` and ``other``."""
        return [s for s in ALL_STREAMS if self.get(s) != other.get(s)]

    @property
    def is_empty(self) -> bool:
        return all(self.get(s) is None for s in ALL_STREAMS)

    def as_dict(self) -> dict[str, str | None]:
        return {s.value: self.get(s) for s in ALL_STREAMS}

    def __str__(self) -> str:
        return ", ".join(f"{s.value}={self.get(s) or '-'}" for s in ALL_STREAMS)


@dataclass(frozen=True)
class PageInfo:
    start_cursor: str | None = None
    end_cursor: str | None = None
    has_next_page: bool = False
    has_previous_page: bool = False


@dataclass(frozen=True)
class RawEntry:
    """
    One undecoded edge of a stream page.

    ``encoding`` is set only when the upstream states the payload generation
    explicitly; ``proof`` carries the output validity fields when present.
    """

    cursor: str
    index: int
    blob: str
    input_index: int | None = None
    encoding: PayloadEncoding | None = None
    proof: dict[str, Any] | None = dataclasses.field(default=None, compare=False, hash=False)


@dataclass(frozen=True)
class StreamPage:
    entries: tuple[RawEntry, ...] = ()
    page_info: PageInfo = PageInfo()

    @property
    def is_empty(self) -> bool:
        return not self.entries


@dataclass(frozen=True)
class Page:
    """One fetch result; streams that were not requested are ``None``."""

    outputs: StreamPage | None = None
    inputs: StreamPage | None = None
    reports: StreamPage | None = None

    def get(self, stream: Stream) -> StreamPage | None:
        return getattr(self, Stream(stream).value)

    @property
    def entry_count(self) -> int:
        return sum(len(p.entries) for p in (self.outputs, self.inputs, self.reports) if p is not None)


@dataclass(frozen=True)
class Voucher:
    input_index: int
    output_index: int
    destination: str
    payload: str
    value: int = 0
    executed: bool = False

    kind: ClassVar[ArtifactKind] = ArtifactKind.VOUCHER

    @property
    def key(self) -> tuple[int, int]:
        return (self.input_index, self.output_index)


@dataclass(frozen=True)
class Notice:
    input_index: int
    output_index: int
    payload: str

    kind: ClassVar[ArtifactKind] = ArtifactKind.NOTICE

    @property
    def key(self) -> tuple[int, int]:
        return (self.input_index, self.output_index)


@dataclass(frozen=True)
class Input:
    """
    An advance request received by the application.

    The EvmAdvance fields are filled only when the blob carries the
    EvmAdvance envelope.
    """

    index: int
    blob: str
    status: CompletionStatus = CompletionStatus.UNPROCESSED
    chain_id: int | None = None
    app_contract: str | None = None
    msg_sender: str | None = None
    block_number: int | None = None
    block_timestamp: int | None = None
    prev_randao: str | None = None
    payload: str | None = None

    kind: ClassVar[ArtifactKind] = ArtifactKind.INPUT

    @property
    def key(self) -> int:
        return self.index


@dataclass(frozen=True)
class Report:
    input_index: int
    index: int
    blob: str

    kind: ClassVar[ArtifactKind] = ArtifactKind.REPORT

    @property
    def key(self) -> int:
        return self.index


Artifact = Voucher | Notice | Input | Report


@dataclass(frozen=True)
class SyncProgressRecord:
    """
    Append-only log entry moving the cursors from ``before`` to ``after``.

    ``output_ids`` is the ``"input:output;..."`` list of outputs committed
    together with the record.
    """

    id: int
    timestamp_ms: int
    before: CursorTriple
    after: CursorTriple
    output_ids: str = ""
