"""Per-height block fetching.

This module composes ledger calls into one fetch per height under the
network retry policy. Heights whose state the node has pruned resolve
to ``None`` so the pipeline can skip them.
"""

from __future__ import annotations

import asyncio

from core.logging_config import get_logger
from ingest.error_classification import is_state_pruned_error
from ingest.ledger_client import FetchedBlock, LedgerClient
from ingest.retry_policy import (
    NETWORK_RETRY_POLICY,
    RetryPolicy,
    SleepFunction,
    retry_on_network_error,
)

_LOGGER = get_logger(__name__)


class BlockFetcher:
    """Fetch full block payloads by height with network retries."""

    def __init__(
        self,
        ledger: LedgerClient,
        retry_policy: RetryPolicy = NETWORK_RETRY_POLICY,
        sleep: SleepFunction = asyncio.sleep,
    ) -> None:
        self._ledger = ledger
        self._retry_policy = retry_policy
        self._sleep = sleep

    async def fetch(self, height: int) -> FetchedBlock | None:
        """Fetch one height, returning None when its state is pruned.

        Args:
            height: Block height to fetch.

        Returns:
            Fetched payload, or None for a pruned height.

        Raises:
            Exception: Any error that is neither transient nor pruned.
        """
        try:
            return await retry_on_network_error(
                lambda: fetch_block_by_height(self._ledger, height),
                on_retry=lambda attempt, error, delay: _log_network_retry(
                    height, attempt, error, delay
                ),
                sleep=self._sleep,
                policy=self._retry_policy,
            )
        except Exception as error:
            if not is_state_pruned_error(error):
                raise
            _LOGGER.warning("block_skipped_state_pruned", height=height, error=str(error))
            return None


async def fetch_block_by_height(ledger: LedgerClient, height: int) -> FetchedBlock:
    """Fetch hash, body, timestamp and events for one height.

    Body and state accessor are requested together, then timestamp and
    events are read from that state together.
    """
    block_hash = await ledger.get_block_hash(height)
    block, state = await asyncio.gather(
        ledger.get_block(block_hash),
        ledger.state_at(block_hash),
    )
    timestamp_ms, events = await asyncio.gather(state.get_timestamp(), state.get_events())
    return FetchedBlock(
        height=height,
        block_hash=block_hash,
        block=block,
        timestamp_ms=timestamp_ms,
        events=tuple(events),
    )


def _log_network_retry(height: int, attempt: int, error: Exception, delay: float) -> None:
    _LOGGER.info(
        "block_fetch_network_retry",
        height=height,
        attempt=attempt,
        error=str(error),
        delay_seconds=delay,
    )
