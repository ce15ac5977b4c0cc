"""In-memory store backend.

This module keeps documents in process memory with the same uniqueness
constraints as the persistent backends. It serves dry runs and tests.
"""

from __future__ import annotations

from typing import Any, Sequence

from core.errors import ChainscanDuplicateRecordError
from core.types import BlockRecord, EventRecord, ExtrinsicRecord, IndexerStats, ScanProgress
from store.record_payload import (
    block_to_document,
    event_to_document,
    extrinsic_to_document,
    progress_from_document,
    progress_to_document,
)


class InMemoryIndexerStore:
    """Dictionary-backed store enforcing the record uniqueness constraints.

    Batches are applied all-or-nothing: a batch containing any conflicting
    key is rejected without writing.
    """

    def __init__(self) -> None:
        self.blocks: dict[int, dict[str, Any]] = {}
        self.extrinsics: dict[tuple[int, int], dict[str, Any]] = {}
        self.events: dict[tuple[int, int], dict[str, Any]] = {}
        self.scan_progress: dict[int, dict[str, Any]] = {}
        self._block_hashes: set[str] = set()
        self.closed = False

    async def ensure_indexes(self) -> None:
        """Constraints are enforced on insert; nothing to create."""

    async def close(self) -> None:
        self.closed = True

    async def get_scan_progress(self, chain_id: int) -> ScanProgress | None:
        document = self.scan_progress.get(chain_id)
        if document is None:
            return None
        return progress_from_document(document)

    async def upsert_progress(self, progress: ScanProgress) -> None:
        self.scan_progress[progress.chain_id] = progress_to_document(progress)

    async def insert_block(self, block: BlockRecord) -> None:
        if block.number in self.blocks or block.hash in self._block_hashes:
            raise ChainscanDuplicateRecordError(
                f"Block {block.number} ({block.hash}) already exists in store."
            )
        self.blocks[block.number] = block_to_document(block)
        self._block_hashes.add(block.hash)

    async def insert_extrinsics(self, extrinsics: Sequence[ExtrinsicRecord]) -> None:
        keyed = {
            (extrinsic.block_number, extrinsic.extrinsic_index): extrinsic_to_document(extrinsic)
            for extrinsic in extrinsics
        }
        _reject_conflicts("extrinsic", self.extrinsics, list(keyed), len(extrinsics))
        self.extrinsics.update(keyed)

    async def insert_events(self, events: Sequence[EventRecord]) -> None:
        keyed = {
            (event.block_number, event.event_index): event_to_document(event) for event in events
        }
        _reject_conflicts("event", self.events, list(keyed), len(events))
        self.events.update(keyed)

    async def list_block_numbers(self, chain_id: int) -> list[int]:
        return sorted(
            number for number, document in self.blocks.items() if document["chain_id"] == chain_id
        )

    async def get_stats(self, chain_id: int) -> IndexerStats:
        return IndexerStats(
            block_count=_count_for_chain(self.blocks.values(), chain_id),
            extrinsic_count=_count_for_chain(self.extrinsics.values(), chain_id),
            event_count=_count_for_chain(self.events.values(), chain_id),
            progress=await self.get_scan_progress(chain_id),
        )


def _reject_conflicts(
    kind: str,
    existing: dict[tuple[int, int], dict[str, Any]],
    keys: list[tuple[int, int]],
    batch_size: int,
) -> None:
    """Raise when a batch repeats a key or collides with stored keys."""
    if len(keys) != batch_size:
        raise ChainscanDuplicateRecordError(f"Duplicate {kind} keys within one batch.")
    conflicts = [key for key in keys if key in existing]
    if conflicts:
        block_number, index = conflicts[0]
        raise ChainscanDuplicateRecordError(
            f"{kind.capitalize()} ({block_number}, {index}) already exists in store."
        )


def _count_for_chain(documents: Any, chain_id: int) -> int:
    return sum(1 for document in documents if document["chain_id"] == chain_id)
