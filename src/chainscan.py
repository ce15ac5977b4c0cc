"""Public SDK surface for Chainscan.

This module provides a stable import path for library users.
It re-exports the primary client, the pipeline entry point and typed models.
"""

from __future__ import annotations

from core.config import ChainscanConfig
from core.networks import ChainConfig
from core.types import (
    BlockRange,
    IndexerStats,
    IngestOptions,
    IngestSummary,
    ProgressUpdate,
    ScanProgress,
)
from ingest.gap_detector import compute_missing_ranges, find_missing_ranges
from ingest.indexer_client import IndexerClient
from ingest.pipeline import BlockIngestRunner, IngestPhase, index_chain
from ingest.progress_reporter import IngestProgressReporter
from ingest.substrate_client import SubstrateLedgerClient
from store.store_factory import build_store

__all__ = [
    "BlockIngestRunner",
    "BlockRange",
    "ChainConfig",
    "ChainscanConfig",
    "IndexerClient",
    "IndexerStats",
    "IngestOptions",
    "IngestPhase",
    "IngestProgressReporter",
    "IngestSummary",
    "ProgressUpdate",
    "ScanProgress",
    "SubstrateLedgerClient",
    "build_store",
    "compute_missing_ranges",
    "find_missing_ranges",
    "index_chain",
]
