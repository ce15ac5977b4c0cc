"""Ordered block ingest orchestration.

This module drives a bounded window of concurrent block fetches over a
height range, normalizes and persists each height strictly in ascending
order, and checkpoints scan progress after every height so an
interrupted run resumes where it stopped.
"""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable

from core.errors import ChainscanIngestError, ChainscanStoreError
from core.logging_config import get_logger
from core.types import (
    BlockRange,
    IngestOptions,
    IngestSummary,
    NormalizedBlock,
    ProgressUpdate,
    ScanProgress,
)
from ingest.block_fetcher import BlockFetcher
from ingest.gap_detector import find_missing_ranges, log_missing_ranges
from ingest.ledger_client import FetchedBlock, LedgerClient
from ingest.record_normalizer import normalize_block
from ingest.retry_policy import (
    NETWORK_RETRY_POLICY,
    RetryPolicy,
    SleepFunction,
    retry_on_network_error,
)
from store.base import IndexerStore

_LOGGER = get_logger(__name__)

Clock = Callable[[], datetime]


class IngestPhase(str, Enum):
    """Lifecycle phase of one ingest invocation."""

    IDLE = "idle"
    RESOLVING_RANGE = "resolving_range"
    DRAINING_QUEUE = "draining_queue"
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    PERSISTING = "persisting"
    PROGRESS_UPDATED = "progress_updated"
    DONE = "done"
    FAILED = "failed"


@dataclass
class _RunCounters:
    """Cumulative and per-run record counters."""

    last_indexed_block: int
    blocks_indexed: int = 0
    extrinsics_indexed: int = 0
    events_indexed: int = 0
    run_blocks: int = 0
    run_extrinsics: int = 0
    run_events: int = 0
    skipped_heights: list[int] = field(default_factory=list)

    def record(self, normalized: NormalizedBlock) -> None:
        extrinsic_count = len(normalized.extrinsics)
        event_count = len(normalized.events)
        self.last_indexed_block = normalized.block.number
        self.blocks_indexed += 1
        self.extrinsics_indexed += extrinsic_count
        self.events_indexed += event_count
        self.run_blocks += 1
        self.run_extrinsics += extrinsic_count
        self.run_events += event_count


class BlockIngestRunner:
    """Stateful runner for one resumable ingest invocation."""

    def __init__(
        self,
        ledger: LedgerClient,
        store: IndexerStore,
        chain_id: int,
        options: IngestOptions,
        retry_policy: RetryPolicy = NETWORK_RETRY_POLICY,
        sleep: SleepFunction = asyncio.sleep,
        clock: Clock | None = None,
    ) -> None:
        self._ledger = ledger
        self._store = store
        self._chain_id = chain_id
        self._options = options
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._clock = clock or _utc_now
        self._fetcher = BlockFetcher(ledger, retry_policy=retry_policy, sleep=sleep)
        self._concurrency = normalize_concurrency(options.concurrency)
        self._phase = IngestPhase.IDLE

    @property
    def phase(self) -> IngestPhase:
        """Current lifecycle phase."""
        return self._phase

    async def run(self) -> IngestSummary:
        """Execute the ingest invocation and return its summary."""
        _validate_options(self._options)
        await self._report_missing_ranges()
        self._phase = IngestPhase.RESOLVING_RANGE
        progress = await self._store.get_scan_progress(self._chain_id)
        block_range = await self._resolve_range(progress)
        if block_range.start > block_range.end:
            self._phase = IngestPhase.DONE
            _LOGGER.info(
                "ingest_range_empty",
                chain_id=self._chain_id,
                start_height=block_range.start,
                end_height=block_range.end,
            )
            return IngestSummary(
                start_height=block_range.start,
                end_height=block_range.end,
                blocks_indexed=0,
                extrinsics_indexed=0,
                events_indexed=0,
            )
        chain_name = await self._call_ledger(self._ledger.get_chain_name)
        counters = _seed_counters(progress, block_range.start)
        _LOGGER.info(
            "ingest_started",
            chain_id=self._chain_id,
            chain_name=chain_name,
            start_height=block_range.start,
            end_height=block_range.end,
            total_blocks=block_range.size,
            concurrency=self._concurrency,
        )
        self._phase = IngestPhase.DRAINING_QUEUE
        await self._drain(block_range, chain_name, counters)
        self._phase = IngestPhase.DONE
        summary = IngestSummary(
            start_height=block_range.start,
            end_height=block_range.end,
            blocks_indexed=counters.run_blocks,
            extrinsics_indexed=counters.run_extrinsics,
            events_indexed=counters.run_events,
            skipped_heights=tuple(counters.skipped_heights),
        )
        _log_ingest_completion(self._chain_id, summary)
        return summary

    async def _report_missing_ranges(self) -> None:
        try:
            missing_ranges = await find_missing_ranges(self._store, self._chain_id)
        except ChainscanStoreError as error:
            _LOGGER.warning("gap_check_failed", chain_id=self._chain_id, error=str(error))
            return
        log_missing_ranges(self._chain_id, missing_ranges)

    async def _resolve_range(self, progress: ScanProgress | None) -> BlockRange:
        return await _resolve_range(
            self._options,
            progress,
            lambda: self._call_ledger(self._ledger.get_height),
        )

    async def _drain(self, block_range: BlockRange, chain_name: str, counters: _RunCounters) -> None:
        """Process heights in order while keeping the fetch window full."""
        window: deque[tuple[int, asyncio.Task[FetchedBlock | None]]] = deque()
        next_height = block_range.start
        try:
            while next_height <= block_range.end or window:
                while len(window) < self._concurrency and next_height <= block_range.end:
                    task = asyncio.create_task(self._fetcher.fetch(next_height))
                    window.append((next_height, task))
                    next_height += 1
                height, task = window.popleft()
                fetched = await self._process_height(height, task, block_range, chain_name, counters)
                if fetched is None:
                    counters.skipped_heights.append(height)
                self._emit_progress(counters, active_fetches=len(window))
        finally:
            await _cancel_pending(window)

    async def _process_height(
        self,
        height: int,
        task: asyncio.Task[FetchedBlock | None],
        block_range: BlockRange,
        chain_name: str,
        counters: _RunCounters,
    ) -> FetchedBlock | None:
        try:
            self._phase = IngestPhase.FETCHING
            fetched = await task
            if fetched is None:
                return None
            self._phase = IngestPhase.NORMALIZING
            normalized = normalize_block(fetched, self._chain_id, self._clock())
            self._phase = IngestPhase.PERSISTING
            await self._persist(normalized)
            counters.record(normalized)
            await self._store.upsert_progress(
                self._build_progress(
                    chain_name,
                    counters,
                    last_indexed_block=height,
                    is_complete=height == block_range.end,
                    end_height=block_range.end,
                )
            )
            self._phase = IngestPhase.PROGRESS_UPDATED
            return fetched
        except Exception as error:
            self._phase = IngestPhase.FAILED
            _LOGGER.error(
                "block_ingest_failed",
                chain_id=self._chain_id,
                height=height,
                error=str(error),
                error_type=type(error).__name__,
            )
            await self._store.upsert_progress(
                self._build_progress(
                    chain_name,
                    counters,
                    last_indexed_block=height - 1,
                    is_complete=False,
                    end_height=block_range.end,
                )
            )
            raise

    async def _persist(self, normalized: NormalizedBlock) -> None:
        writes: list[Awaitable[None]] = [self._store.insert_block(normalized.block)]
        if normalized.extrinsics:
            writes.append(self._store.insert_extrinsics(normalized.extrinsics))
        if normalized.events:
            writes.append(self._store.insert_events(normalized.events))
        await asyncio.gather(*writes)

    def _build_progress(
        self,
        chain_name: str,
        counters: _RunCounters,
        last_indexed_block: int,
        is_complete: bool,
        end_height: int,
    ) -> ScanProgress:
        return ScanProgress(
            chain_id=self._chain_id,
            chain_name=chain_name,
            last_indexed_block=last_indexed_block,
            blocks_indexed=counters.blocks_indexed,
            extrinsics_indexed=counters.extrinsics_indexed,
            events_indexed=counters.events_indexed,
            last_updated=self._clock(),
            is_complete=is_complete,
            target_end_block=end_height,
        )

    def _emit_progress(self, counters: _RunCounters, active_fetches: int) -> None:
        if self._options.on_progress is None:
            return
        self._options.on_progress(
            ProgressUpdate(
                last_indexed_block=counters.last_indexed_block,
                blocks_indexed=counters.blocks_indexed,
                extrinsics_indexed=counters.extrinsics_indexed,
                events_indexed=counters.events_indexed,
                active_fetches=active_fetches,
            )
        )

    async def _call_ledger(self, operation: Callable[[], Awaitable[object]]) -> object:
        return await retry_on_network_error(operation, sleep=self._sleep, policy=self._retry_policy)


async def index_chain(
    ledger: LedgerClient,
    store: IndexerStore,
    chain_id: int,
    options: IngestOptions,
) -> IngestSummary:
    """Ingest blocks, extrinsics and events for one chain.

    Args:
        ledger: Remote ledger to fetch from.
        store: Store to persist into; indexes must already exist.
        chain_id: Chain identifier stamped on every record.
        options: Range, concurrency and progress options.

    Returns:
        Summary of heights and records processed by this invocation.

    Raises:
        ChainscanIngestError: If options are invalid.
        ChainscanStoreError: If a write fails; progress is pinned below the failing height.
    """
    runner = BlockIngestRunner(ledger, store, chain_id, options)
    return await runner.run()


async def resolve_block_range(
    ledger: LedgerClient,
    store: IndexerStore,
    chain_id: int,
    options: IngestOptions,
) -> BlockRange:
    """Resolve the inclusive height range an invocation would process.

    The start is the explicit start height, else the chain tip when
    ``from_latest`` is set, else one past the checkpoint, else 0. The end
    is the explicit end height, else the chain tip.

    Args:
        ledger: Remote ledger, queried for the tip only when needed.
        store: Store holding the scan checkpoint.
        chain_id: Chain identifier.
        options: Ingest options.

    Returns:
        Resolved range; ``start > end`` means there is nothing to do.
    """
    _validate_options(options)
    progress = await store.get_scan_progress(chain_id)
    return await _resolve_range(
        options,
        progress,
        lambda: retry_on_network_error(ledger.get_height),
    )


def normalize_concurrency(concurrency: int) -> int:
    """Clamp the fetch window to at least one in-flight fetch."""
    return max(1, int(concurrency))


def _validate_options(options: IngestOptions) -> None:
    if options.start_height is not None and options.start_height < 0:
        raise ChainscanIngestError(
            f"Invalid start height {options.start_height}: heights start at 0."
        )
    if options.end_height is not None and options.end_height < 0:
        raise ChainscanIngestError(f"Invalid end height {options.end_height}: heights start at 0.")


async def _resolve_range(
    options: IngestOptions,
    progress: ScanProgress | None,
    fetch_tip: Callable[[], Awaitable[object]],
) -> BlockRange:
    tip_height: int | None = None

    async def _tip() -> int:
        nonlocal tip_height
        if tip_height is None:
            tip_height = int(await fetch_tip())
        return tip_height

    end_height = options.end_height if options.end_height is not None else await _tip()
    if options.start_height is not None:
        start_height = options.start_height
    elif options.from_latest:
        start_height = await _tip()
        _LOGGER.info("ingest_starting_from_latest", height=tip_height)
    elif progress is not None:
        start_height = progress.last_indexed_block + 1
        _LOGGER.info("ingest_resuming", chain_id=progress.chain_id, start_height=start_height)
    else:
        start_height = 0
    return BlockRange(start=start_height, end=end_height)


def _seed_counters(progress: ScanProgress | None, start_height: int) -> _RunCounters:
    """Seed cumulative counters from the previous checkpoint."""
    if progress is None:
        return _RunCounters(last_indexed_block=start_height - 1)
    return _RunCounters(
        last_indexed_block=start_height - 1,
        blocks_indexed=progress.blocks_indexed,
        extrinsics_indexed=progress.extrinsics_indexed,
        events_indexed=progress.events_indexed,
    )


async def _cancel_pending(window: deque[tuple[int, asyncio.Task[FetchedBlock | None]]]) -> None:
    """Cancel fetches still in flight after the drain loop stops."""
    pending = [task for _, task in window]
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _log_ingest_completion(chain_id: int, summary: IngestSummary) -> None:
    """Log run completion with contextual metadata."""
    _LOGGER.info(
        "ingest_completed",
        chain_id=chain_id,
        start_height=summary.start_height,
        end_height=summary.end_height,
        blocks_indexed=summary.blocks_indexed,
        extrinsics_indexed=summary.extrinsics_indexed,
        events_indexed=summary.events_indexed,
        skipped_heights=len(summary.skipped_heights),
    )
