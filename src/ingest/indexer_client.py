"""Python SDK for chain indexing.

This module wires runtime config to a ledger adapter and a store backend
and exposes high-level async APIs for indexing, gap reports and stats.
"""

from __future__ import annotations

from types import TracebackType

from core.config import ChainscanConfig
from core.errors import ChainscanError
from core.logging_config import get_logger
from core.types import BlockRange, IndexerStats, IngestOptions, IngestSummary
from ingest.gap_detector import find_missing_ranges
from ingest.ledger_client import LedgerClient
from ingest.pipeline import index_chain, normalize_concurrency, resolve_block_range
from ingest.substrate_client import SubstrateLedgerClient
from store.base import IndexerStore
from store.store_factory import build_store

_LOGGER = get_logger(__name__)


class IndexerClient:
    """Primary SDK entry point for indexing one configured chain."""

    def __init__(
        self,
        config: ChainscanConfig | None = None,
        ledger: LedgerClient | None = None,
        store: IndexerStore | None = None,
    ) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
            ledger: Optional ledger client; defaults to a Substrate node adapter.
            store: Optional store; defaults to the backend named by the store URI.
        """
        self._config = config or ChainscanConfig.from_env()
        self._ledger = ledger
        self._store = store
        self._owns_ledger = ledger is None
        self._connected = False

    @property
    def config(self) -> ChainscanConfig:
        return self._config

    async def connect(self) -> None:
        """Open the store and prepare its indexes.

        The ledger is connected on the first index call, so gap reports and
        stats work without a reachable node.

        Raises:
            ChainscanStoreError: If the store cannot be prepared.
        """
        if self._connected:
            return
        if self._store is None:
            self._store = build_store(self._config.store_uri, self._config.database_name)
        await self._store.ensure_indexes()
        self._connected = True
        _LOGGER.info(
            "indexer_client_connected",
            network=self._config.network.name,
            chain_id=self._config.network.id,
        )

    async def close(self) -> None:
        """Release ledger connections and the store client."""
        if self._owns_ledger and isinstance(self._ledger, SubstrateLedgerClient):
            await self._ledger.close()
        if self._store is not None:
            await self._store.close()
        self._connected = False

    async def __aenter__(self) -> "IndexerClient":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.close()

    async def index(self, options: IngestOptions | None = None) -> IngestSummary:
        """Index the configured chain.

        Args:
            options: Ingest options; defaults use the configured concurrency.

        Returns:
            Summary of the invocation.

        Raises:
            ChainscanIngestError: If options are invalid.
            ChainscanStoreError: If persistence fails.
        """
        store = self._require_store()
        resolved = options or IngestOptions(concurrency=self._config.concurrency)
        ledger = await self._ensure_ledger(resolved.concurrency)
        return await index_chain(ledger, store, self._config.network.id, resolved)

    async def resolve_range(self, options: IngestOptions) -> BlockRange:
        """Resolve the height range an index call with these options would cover."""
        store = self._require_store()
        ledger = await self._ensure_ledger(options.concurrency)
        return await resolve_block_range(ledger, store, self._config.network.id, options)

    async def find_missing_ranges(self) -> list[BlockRange]:
        """Report missing height ranges below the scan checkpoint."""
        store = self._require_store()
        return await find_missing_ranges(store, self._config.network.id)

    async def stats(self) -> IndexerStats:
        """Return record counts and the scan checkpoint for the chain."""
        store = self._require_store()
        return await store.get_stats(self._config.network.id)

    async def _ensure_ledger(self, concurrency: int) -> LedgerClient:
        """Connect the default ledger with one connection per in-flight fetch."""
        if self._ledger is None:
            ledger = SubstrateLedgerClient(
                self._config.network.ws_url, pool_size=normalize_concurrency(concurrency)
            )
            await ledger.connect()
            self._ledger = ledger
        return self._ledger

    def _require_store(self) -> IndexerStore:
        if not self._connected or self._store is None:
            raise ChainscanError(
                "IndexerClient is not connected. Use 'async with' or call connect()."
            )
        return self._store
