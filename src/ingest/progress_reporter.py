"""Structured ingest progress reporting.

This module turns per-height progress updates into periodic log events
with completion percentage, throughput and ETA estimates.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable

from core.constants import DEFAULT_PROGRESS_LOG_INTERVAL_SECONDS
from core.logging_config import get_logger
from core.types import IngestSummary, ProgressUpdate

_LOGGER = get_logger(__name__)


@dataclass
class IngestProgressReporter:
    """Throttled progress sink for one ingest invocation."""

    start_height: int
    end_height: int
    concurrency: int
    log_interval_seconds: float = DEFAULT_PROGRESS_LOG_INTERVAL_SECONDS
    clock: Callable[[], float] = time.monotonic
    run_started_at: float | None = None
    last_logged_at: float | None = None
    heights_seen: int = 0

    def __call__(self, update: ProgressUpdate) -> None:
        now = self.clock()
        if self.run_started_at is None:
            self.run_started_at = now
        self.heights_seen += 1
        if not self._should_log(now):
            return
        self.last_logged_at = now
        total_heights = max(1, self.end_height - self.start_height + 1)
        blocks_remaining = max(0, total_heights - self.heights_seen)
        elapsed_seconds = now - self.run_started_at
        rate = _blocks_per_second(self.heights_seen, elapsed_seconds)
        _LOGGER.info(
            "ingest_progress",
            last_indexed_block=update.last_indexed_block,
            end_height=self.end_height,
            percent_complete=round(100.0 * self.heights_seen / total_heights, 2),
            blocks_remaining=blocks_remaining,
            blocks_indexed=update.blocks_indexed,
            extrinsics_indexed=update.extrinsics_indexed,
            events_indexed=update.events_indexed,
            blocks_per_second=round(rate, 3),
            eta_seconds=_eta_seconds(blocks_remaining, rate),
            active_fetches=update.active_fetches,
            concurrency=self.concurrency,
        )

    def log_completed(self, summary: IngestSummary) -> None:
        """Log final totals for the invocation."""
        elapsed_seconds = 0.0
        if self.run_started_at is not None:
            elapsed_seconds = self.clock() - self.run_started_at
        _LOGGER.info(
            "ingest_totals",
            start_height=summary.start_height,
            end_height=summary.end_height,
            blocks_indexed=summary.blocks_indexed,
            extrinsics_indexed=summary.extrinsics_indexed,
            events_indexed=summary.events_indexed,
            skipped_heights=len(summary.skipped_heights),
            elapsed_seconds=round(elapsed_seconds, 3),
        )

    def _should_log(self, now: float) -> bool:
        """Return true for the first height, the final height and each interval."""
        if self.last_logged_at is None:
            return True
        if self.heights_seen >= self.end_height - self.start_height + 1:
            return True
        return now - self.last_logged_at >= self.log_interval_seconds


def _blocks_per_second(heights_seen: int, elapsed_seconds: float) -> float:
    if elapsed_seconds <= 0:
        return 0.0
    return heights_seen / elapsed_seconds


def _eta_seconds(blocks_remaining: int, rate: float) -> float | None:
    """Estimate remaining seconds, or None before a rate is known."""
    if rate <= 0:
        return None
    return round(blocks_remaining / rate, 1)
