"""In-memory ledger and store doubles shared by unit and integration tests."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Sequence

from core.errors import ChainscanStoreError
from core.types import BlockRecord, EventRecord, ExtrinsicRecord, NormalizedBlock, ScanProgress
from ingest.ledger_client import FetchedBlock, RawBlock, RawEvent, RawExtrinsic
from ingest.record_normalizer import normalize_block
from store.memory_store import InMemoryIndexerStore

BASE_TIMESTAMP_MS = 1_700_000_000_000
INDEXED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def block_hash_for(height: int) -> str:
    return f"0x{height:064x}"


class PrunedStateError(Exception):
    """Error shaped like a JSON-RPC state-discarded response."""

    def __init__(self, height: int) -> None:
        super().__init__({"code": 4003, "message": f"State already discarded for {height}"})


class FakeLedger:
    """Deterministic ledger with per-height latency and injected failures."""

    def __init__(
        self,
        tip_height: int,
        chain_name: str = "Test Chain",
        delays: dict[int, float] | None = None,
        pruned_heights: Sequence[int] = (),
        errors: dict[int, list[Exception]] | None = None,
    ) -> None:
        self.tip_height = tip_height
        self.chain_name = chain_name
        self.delays = delays or {}
        self.pruned_heights = set(pruned_heights)
        self.errors = errors or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.requested_heights: list[int] = []
        self.height_calls = 0

    async def get_height(self) -> int:
        self.height_calls += 1
        return self.tip_height

    async def get_chain_name(self) -> str:
        return self.chain_name

    async def get_block_hash(self, height: int) -> str:
        self.requested_heights.append(height)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(height, 0.0))
            pending_errors = self.errors.get(height)
            if pending_errors:
                raise pending_errors.pop(0)
        finally:
            self.in_flight -= 1
        return block_hash_for(height)

    async def get_block(self, block_hash: str) -> RawBlock:
        height = int(block_hash, 16)
        return RawBlock(
            parent_hash=block_hash_for(max(0, height - 1)),
            state_root=f"0xstate{height}",
            extrinsics_root=f"0xroot{height}",
            extrinsics=sample_extrinsics(height),
        )

    async def state_at(self, block_hash: str) -> "FakeLedgerState":
        height = int(block_hash, 16)
        if height in self.pruned_heights:
            raise PrunedStateError(height)
        return FakeLedgerState(height)


class FakeLedgerState:
    def __init__(self, height: int) -> None:
        self._height = height

    async def get_timestamp(self) -> int:
        return BASE_TIMESTAMP_MS + self._height * 6000

    async def get_events(self) -> list[RawEvent]:
        return list(sample_events(self._height))


def sample_extrinsics(height: int) -> tuple[RawExtrinsic, ...]:
    """One unsigned timestamp inherent followed by one signed transfer."""
    return (
        RawExtrinsic(
            hash=f"0xinherent{height}",
            pallet="Timestamp",
            method="set",
            argument_names=("now",),
            argument_values=(BASE_TIMESTAMP_MS + height * 6000,),
        ),
        RawExtrinsic(
            hash=f"0xtransfer{height}",
            pallet="Balances",
            method="transfer_keep_alive",
            argument_names=("dest", "value"),
            argument_values=("5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty", 10**12),
            signer="5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",
            is_signed=True,
            nonce=height,
            tip=0,
        ),
    )


def sample_events(height: int) -> tuple[RawEvent, ...]:
    """Success events for both extrinsics and one finalization event."""
    return (
        RawEvent(
            phase="ApplyExtrinsic",
            extrinsic_index=0,
            pallet="System",
            method="ExtrinsicSuccess",
            data=({"weight": 1000},),
        ),
        RawEvent(
            phase="ApplyExtrinsic",
            extrinsic_index=1,
            pallet="Balances",
            method="Transfer",
            data=("5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY", 10**12),
        ),
        RawEvent(
            phase="ApplyExtrinsic",
            extrinsic_index=1,
            pallet="System",
            method="ExtrinsicSuccess",
            data=({"weight": 2000},),
        ),
        RawEvent(
            phase="Finalization",
            extrinsic_index=None,
            pallet="Treasury",
            method="Rollover",
            data=(height,),
        ),
    )


class RecordingStore(InMemoryIndexerStore):
    """In-memory store that records every write call in order."""

    def __init__(self, fail_on_block: int | None = None) -> None:
        super().__init__()
        self.fail_on_block = fail_on_block
        self.calls: list[tuple[str, object]] = []

    async def upsert_progress(self, progress: ScanProgress) -> None:
        self.calls.append(("upsert_progress", progress.last_indexed_block))
        await super().upsert_progress(progress)

    async def insert_block(self, block: BlockRecord) -> None:
        self.calls.append(("insert_block", block.number))
        if block.number == self.fail_on_block:
            raise ChainscanStoreError(f"Injected write failure at block {block.number}.")
        await super().insert_block(block)

    async def insert_extrinsics(self, extrinsics: Sequence[ExtrinsicRecord]) -> None:
        self.calls.append(("insert_extrinsics", extrinsics[0].block_number))
        await super().insert_extrinsics(extrinsics)

    async def insert_events(self, events: Sequence[EventRecord]) -> None:
        self.calls.append(("insert_events", events[0].block_number))
        await super().insert_events(events)

    def inserted_block_numbers(self) -> list[int]:
        return [int(value) for name, value in self.calls if name == "insert_block"]


async def no_sleep(_: float) -> None:
    """Sleep replacement that returns immediately."""


def normalized_block_for(height: int, chain_id: int = 1) -> NormalizedBlock:
    """Normalize the fake ledger payload for one height."""
    fetched = FetchedBlock(
        height=height,
        block_hash=block_hash_for(height),
        block=RawBlock(
            parent_hash=block_hash_for(max(0, height - 1)),
            state_root=f"0xstate{height}",
            extrinsics_root=f"0xroot{height}",
            extrinsics=sample_extrinsics(height),
        ),
        timestamp_ms=BASE_TIMESTAMP_MS + height * 6000,
        events=sample_events(height),
    )
    return normalize_block(fetched, chain_id, INDEXED_AT)


def progress_at(last_indexed_block: int, chain_id: int = 1, is_complete: bool = False) -> ScanProgress:
    return ScanProgress(
        chain_id=chain_id,
        chain_name="Test Chain",
        last_indexed_block=last_indexed_block,
        blocks_indexed=last_indexed_block + 1,
        extrinsics_indexed=2 * (last_indexed_block + 1),
        events_indexed=4 * (last_indexed_block + 1),
        last_updated=INDEXED_AT,
        is_complete=is_complete,
        target_end_block=last_indexed_block,
    )
