"""Persistent store capability.

This module defines the async write and read surface the pipeline and
gap detector depend on. Backends enforce the uniqueness constraints and
raise ChainscanDuplicateRecordError on conflicting inserts.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from core.types import BlockRecord, EventRecord, ExtrinsicRecord, IndexerStats, ScanProgress


class IndexerStore(Protocol):
    """Document store holding blocks, extrinsics, events and scan progress."""

    async def ensure_indexes(self) -> None:
        """Create uniqueness constraints and lookup indexes."""
        ...

    async def close(self) -> None:
        """Release the underlying connection."""
        ...

    async def get_scan_progress(self, chain_id: int) -> ScanProgress | None:
        """Return the checkpoint for a chain, if one exists."""
        ...

    async def upsert_progress(self, progress: ScanProgress) -> None:
        """Create or replace the checkpoint for ``progress.chain_id``."""
        ...

    async def insert_block(self, block: BlockRecord) -> None:
        """Insert one block record."""
        ...

    async def insert_extrinsics(self, extrinsics: Sequence[ExtrinsicRecord]) -> None:
        """Insert a batch of extrinsic records."""
        ...

    async def insert_events(self, events: Sequence[EventRecord]) -> None:
        """Insert a batch of event records."""
        ...

    async def list_block_numbers(self, chain_id: int) -> list[int]:
        """Return persisted block heights for a chain in ascending order."""
        ...

    async def get_stats(self, chain_id: int) -> IndexerStats:
        """Return persisted record counts and the checkpoint for a chain."""
        ...
