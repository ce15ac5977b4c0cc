"""Core constants used across Chainscan modules.

This module centralizes defaults, collection names, and ledger markers.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_NETWORK_NAME = "local"
DEFAULT_STORE_URI = "mongodb://localhost:27017"
DEFAULT_DATABASE_NAME = "chainscan_indexer"
DEFAULT_CONCURRENCY = 5
NETWORKS_FILE_VERSION = 1

LOCAL_CHAIN_ID = 1
LOCAL_CHAIN_NAME = "Storage Hub Solochain EVM Dev"
LOCAL_WS_URL = "ws://127.0.0.1:9888"
LOCAL_RPC_URL = "http://localhost:9888"

DEFAULT_RETRY_INITIAL_DELAY_SECONDS = 1.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 60.0
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0
NETWORK_RETRY_DELAY_SECONDS = 60.0

STATE_DISCARDED_RPC_CODE = 4003

BLOCKS_COLLECTION = "blocks"
EXTRINSICS_COLLECTION = "extrinsics"
EVENTS_COLLECTION = "events"
SCAN_PROGRESS_COLLECTION = "scan_progress"

SYSTEM_PALLET = "System"
EXTRINSIC_SUCCESS_EVENT = "ExtrinsicSuccess"
EXTRINSIC_FAILED_EVENT = "ExtrinsicFailed"
UNKNOWN_DISPATCH_ERROR = "Unknown error"

DEFAULT_PROGRESS_LOG_INTERVAL_SECONDS = 5.0
