"""Shared typed models.

This module defines immutable records persisted by the store layer and
the option, progress, and summary models exchanged with the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping

from core.constants import DEFAULT_CONCURRENCY


class EventPhase(str, Enum):
    """Execution phase in which an event was emitted."""

    INITIALIZATION = "Initialization"
    APPLY_EXTRINSIC = "ApplyExtrinsic"
    FINALIZATION = "Finalization"


@dataclass(frozen=True)
class BlockRecord:
    """Normalized block header record.

    Attributes:
        number: Block height, unique per store.
        hash: Block hash, unique per store.
        parent_hash: Hash of the parent block.
        state_root: State trie root hash.
        extrinsics_root: Extrinsics trie root hash.
        timestamp: Block timestamp in epoch milliseconds.
        extrinsic_count: Number of extrinsics in the block.
        event_count: Number of events emitted by the block.
        author: Block author, not extracted yet and always None.
        chain_id: Chain identifier.
        indexed_at: UTC time the record was built.
    """

    number: int
    hash: str
    parent_hash: str
    state_root: str
    extrinsics_root: str
    timestamp: int
    extrinsic_count: int
    event_count: int
    author: str | None
    chain_id: int
    indexed_at: datetime


@dataclass(frozen=True)
class ExtrinsicRecord:
    """Normalized extrinsic record keyed by (block_number, extrinsic_index).

    Attributes:
        block_number: Height of the containing block.
        block_hash: Hash of the containing block.
        extrinsic_index: Position within the block.
        hash: Extrinsic hash.
        pallet: Call module name.
        method: Call function name.
        args: Decoded arguments by declared name.
        signer: Signer address for signed extrinsics.
        success: Whether dispatch succeeded.
        error: Dispatch error description when available.
        timestamp: Block timestamp in epoch milliseconds.
        nonce: Signer nonce for signed extrinsics.
        tip: Tip as a decimal string for signed extrinsics.
        is_signed: Whether the extrinsic carries a signature.
        chain_id: Chain identifier.
        indexed_at: UTC time the record was built.
    """

    block_number: int
    block_hash: str
    extrinsic_index: int
    hash: str
    pallet: str
    method: str
    args: Mapping[str, Any]
    signer: str | None
    success: bool
    error: str | None
    timestamp: int
    nonce: int | None
    tip: str | None
    is_signed: bool
    chain_id: int
    indexed_at: datetime


@dataclass(frozen=True)
class EventRecord:
    """Normalized event record keyed by (block_number, event_index)."""

    block_number: int
    block_hash: str
    event_index: int
    extrinsic_index: int | None
    pallet: str
    method: str
    data: tuple[Any, ...]
    phase: str
    topics: tuple[str, ...]
    timestamp: int
    chain_id: int
    indexed_at: datetime


@dataclass(frozen=True)
class ScanProgress:
    """Durable per-chain ingest checkpoint.

    Attributes:
        chain_id: Chain identifier, unique per store.
        chain_name: Human-readable chain name reported by the node.
        last_indexed_block: Highest height whose records are fully persisted.
        blocks_indexed: Cumulative persisted blocks.
        extrinsics_indexed: Cumulative persisted extrinsics.
        events_indexed: Cumulative persisted events.
        last_updated: UTC time of the last checkpoint write.
        is_complete: Whether the last run reached its end height.
        target_end_block: End height of the last run.
    """

    chain_id: int
    chain_name: str
    last_indexed_block: int
    blocks_indexed: int
    extrinsics_indexed: int
    events_indexed: int
    last_updated: datetime
    is_complete: bool
    target_end_block: int | None = None


@dataclass(frozen=True)
class NormalizedBlock:
    """All records produced for one block height."""

    block: BlockRecord
    extrinsics: tuple[ExtrinsicRecord, ...]
    events: tuple[EventRecord, ...]


@dataclass(frozen=True)
class BlockRange:
    """Inclusive range of block heights."""

    start: int
    end: int

    @property
    def size(self) -> int:
        """Number of heights covered by the range."""
        return self.end - self.start + 1


@dataclass(frozen=True)
class ProgressUpdate:
    """Progress callback payload emitted after every processed height.

    Attributes:
        last_indexed_block: Highest fully persisted height.
        blocks_indexed: Cumulative persisted blocks.
        extrinsics_indexed: Cumulative persisted extrinsics.
        events_indexed: Cumulative persisted events.
        active_fetches: Fetches still in flight in the window.
    """

    last_indexed_block: int
    blocks_indexed: int
    extrinsics_indexed: int
    events_indexed: int
    active_fetches: int


ProgressCallback = Callable[[ProgressUpdate], None]


@dataclass(frozen=True)
class IngestOptions:
    """Ingest invocation options.

    Attributes:
        start_height: Explicit first height, overrides resume.
        end_height: Explicit last height, defaults to the chain tip.
        concurrency: Maximum number of in-flight block fetches.
        from_latest: Start at the current chain tip when no start is given.
        on_progress: Optional sink called after every processed height.
    """

    start_height: int | None = None
    end_height: int | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    from_latest: bool = False
    on_progress: ProgressCallback | None = None


@dataclass(frozen=True)
class IngestSummary:
    """Outcome of one ingest invocation."""

    start_height: int
    end_height: int
    blocks_indexed: int
    extrinsics_indexed: int
    events_indexed: int
    skipped_heights: tuple[int, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class IndexerStats:
    """Persisted record counts for one chain."""

    block_count: int
    extrinsic_count: int
    event_count: int
    progress: ScanProgress | None
