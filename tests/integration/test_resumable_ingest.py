"""Integration tests for interrupted and resumed ingest runs on SQLite."""

from __future__ import annotations

import asyncio

import pytest

from core.types import BlockRange, IngestOptions
from ingest.gap_detector import find_missing_ranges
from ingest.pipeline import index_chain
from ledger_fakes import FakeLedger
from store.sqlite_store import SqliteIndexerStore

CHAIN_ID = 1


class DecoderPanic(Exception):
    """Fatal ledger failure raised once for a chosen height."""


def _open_store(tmp_path) -> SqliteIndexerStore:
    return SqliteIndexerStore(str(tmp_path / "chain.db"))


def test_interrupted_run_resumes_without_gaps(tmp_path) -> None:
    """An interrupted run resumes at the failed height and leaves no gaps."""
    store = _open_store(tmp_path)
    ledger = FakeLedger(
        tip_height=10,
        delays={height: 0.001 * (10 - height) for height in range(11)},
        errors={6: [DecoderPanic("unsupported runtime version")]},
    )

    async def _interrupted_then_resumed() -> tuple[list[BlockRange], int, bool]:
        await store.ensure_indexes()
        with pytest.raises(DecoderPanic):
            await index_chain(ledger, store, CHAIN_ID, IngestOptions(concurrency=4))
        await index_chain(ledger, store, CHAIN_ID, IngestOptions(concurrency=4))
        progress = await store.get_scan_progress(CHAIN_ID)
        missing_ranges = await find_missing_ranges(store, CHAIN_ID)
        stats = await store.get_stats(CHAIN_ID)
        return missing_ranges, stats.block_count, progress.is_complete

    missing_ranges, block_count, is_complete = asyncio.run(_interrupted_then_resumed())

    assert (missing_ranges, block_count, is_complete) == ([], 11, True)


def test_interrupted_run_checkpoints_below_failed_height(tmp_path) -> None:
    """The checkpoint after an interruption names the last confirmed height."""
    store = _open_store(tmp_path)
    ledger = FakeLedger(tip_height=10, errors={4: [DecoderPanic("bad metadata")]})

    async def _interrupted() -> tuple[int, bool]:
        await store.ensure_indexes()
        with pytest.raises(DecoderPanic):
            await index_chain(ledger, store, CHAIN_ID, IngestOptions(concurrency=3))
        progress = await store.get_scan_progress(CHAIN_ID)
        return progress.last_indexed_block, progress.is_complete

    assert asyncio.run(_interrupted()) == (3, False)


def test_completed_run_is_a_no_op_on_rerun(tmp_path) -> None:
    """Re-running after completion processes nothing."""
    store = _open_store(tmp_path)
    ledger = FakeLedger(tip_height=4)

    async def _run_twice() -> int:
        await store.ensure_indexes()
        await index_chain(ledger, store, CHAIN_ID, IngestOptions())
        summary = await index_chain(ledger, store, CHAIN_ID, IngestOptions())
        return summary.blocks_indexed

    assert asyncio.run(_run_twice()) == 0


def test_resumed_checkpoint_keeps_cumulative_counts(tmp_path) -> None:
    """Checkpoint counts accumulate across interrupted and resumed runs."""
    store = _open_store(tmp_path)
    ledger = FakeLedger(tip_height=5, errors={3: [DecoderPanic("bad block")]})

    async def _counts() -> tuple[int, int, int]:
        await store.ensure_indexes()
        with pytest.raises(DecoderPanic):
            await index_chain(ledger, store, CHAIN_ID, IngestOptions(concurrency=2))
        await index_chain(ledger, store, CHAIN_ID, IngestOptions(concurrency=2))
        progress = await store.get_scan_progress(CHAIN_ID)
        return progress.blocks_indexed, progress.extrinsics_indexed, progress.events_indexed

    assert asyncio.run(_counts()) == (6, 12, 24)
