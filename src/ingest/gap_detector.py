"""Missing block range detection.

This module compares persisted block heights against the contiguous
range implied by the scan checkpoint. The report is advisory and never
changes where a run starts.
"""

from __future__ import annotations

from typing import Iterable

from core.logging_config import get_logger
from core.types import BlockRange
from store.base import IndexerStore

_LOGGER = get_logger(__name__)


def compute_missing_ranges(
    indexed_heights: Iterable[int],
    last_indexed_block: int,
) -> list[BlockRange]:
    """Compute missing height ranges below the checkpoint.

    Args:
        indexed_heights: Persisted heights in ascending order.
        last_indexed_block: Checkpoint height from scan progress.

    Returns:
        Missing inclusive ranges, in ascending order.
    """
    if last_indexed_block <= 0:
        return []
    missing_ranges: list[BlockRange] = []
    expected_height = 0
    highest_height: int | None = None
    for height in indexed_heights:
        if height > expected_height:
            missing_ranges.append(BlockRange(start=expected_height, end=height - 1))
        expected_height = height + 1
        highest_height = height
    if highest_height is None:
        return [BlockRange(start=0, end=last_indexed_block)]
    if highest_height < last_indexed_block:
        missing_ranges.append(BlockRange(start=highest_height + 1, end=last_indexed_block))
    return missing_ranges


async def find_missing_ranges(store: IndexerStore, chain_id: int) -> list[BlockRange]:
    """Report missing height ranges for a chain.

    Args:
        store: Store to read from.
        chain_id: Chain identifier.

    Returns:
        Missing ranges; empty when no checkpoint exists or it is at height 0.
    """
    progress = await store.get_scan_progress(chain_id)
    if progress is None or progress.last_indexed_block <= 0:
        return []
    indexed_heights = await store.list_block_numbers(chain_id)
    return compute_missing_ranges(indexed_heights, progress.last_indexed_block)


def log_missing_ranges(chain_id: int, missing_ranges: list[BlockRange]) -> None:
    """Log one warning per missing range and the total, or a clean report."""
    if not missing_ranges:
        _LOGGER.info("no_missing_blocks", chain_id=chain_id)
        return
    for block_range in missing_ranges:
        _LOGGER.warning(
            "missing_block_range",
            chain_id=chain_id,
            start=block_range.start,
            end=block_range.end,
            size=block_range.size,
        )
    _LOGGER.warning(
        "missing_blocks_total",
        chain_id=chain_id,
        ranges=len(missing_ranges),
        total_missing=sum(block_range.size for block_range in missing_ranges),
    )
