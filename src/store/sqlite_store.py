"""SQLite store backend.

This module persists records as JSON documents in SQLite tables whose
key columns carry the uniqueness constraints and lookup indexes. It is
meant for local runs where a document database is not available.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Sequence

from core.errors import ChainscanDuplicateRecordError, ChainscanStoreError
from core.logging_config import get_logger
from core.types import BlockRecord, EventRecord, ExtrinsicRecord, IndexerStats, ScanProgress
from store.record_payload import (
    block_to_document,
    event_to_document,
    extrinsic_to_document,
    progress_from_document,
    progress_to_document,
)

_LOGGER = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS blocks (
    number INTEGER PRIMARY KEY,
    hash TEXT NOT NULL UNIQUE,
    chain_id INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    document TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_blocks_timestamp ON blocks(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_blocks_chain_number ON blocks(chain_id, number);

CREATE TABLE IF NOT EXISTS extrinsics (
    block_number INTEGER NOT NULL,
    extrinsic_index INTEGER NOT NULL,
    chain_id INTEGER NOT NULL,
    hash TEXT NOT NULL,
    pallet TEXT NOT NULL,
    method TEXT NOT NULL,
    signer TEXT,
    success INTEGER NOT NULL,
    timestamp INTEGER NOT NULL,
    document TEXT NOT NULL,
    PRIMARY KEY (block_number, extrinsic_index)
);
CREATE INDEX IF NOT EXISTS idx_extrinsics_hash ON extrinsics(hash);
CREATE INDEX IF NOT EXISTS idx_extrinsics_pallet_method ON extrinsics(pallet, method);
CREATE INDEX IF NOT EXISTS idx_extrinsics_signer ON extrinsics(signer);
CREATE INDEX IF NOT EXISTS idx_extrinsics_success ON extrinsics(success);
CREATE INDEX IF NOT EXISTS idx_extrinsics_timestamp ON extrinsics(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_extrinsics_chain_block ON extrinsics(chain_id, block_number);

CREATE TABLE IF NOT EXISTS events (
    block_number INTEGER NOT NULL,
    event_index INTEGER NOT NULL,
    extrinsic_index INTEGER,
    chain_id INTEGER NOT NULL,
    pallet TEXT NOT NULL,
    method TEXT NOT NULL,
    timestamp INTEGER NOT NULL,
    document TEXT NOT NULL,
    PRIMARY KEY (block_number, event_index)
);
CREATE INDEX IF NOT EXISTS idx_events_extrinsic ON events(extrinsic_index);
CREATE INDEX IF NOT EXISTS idx_events_pallet_method ON events(pallet, method);
CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp DESC);
CREATE INDEX IF NOT EXISTS idx_events_chain_block ON events(chain_id, block_number);

CREATE TABLE IF NOT EXISTS scan_progress (
    chain_id INTEGER PRIMARY KEY,
    document TEXT NOT NULL
);
"""


class SqliteIndexerStore:
    """SQLite-backed store; each batch is written in one transaction."""

    def __init__(self, database_path: str) -> None:
        self._database_path = database_path
        if database_path != ":memory:":
            Path(database_path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
        try:
            self._connection = sqlite3.connect(database_path)
            self._connection.execute("PRAGMA journal_mode=WAL;")
            self._connection.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.Error as error:
            raise ChainscanStoreError(
                f"Failed to open SQLite store at {database_path}: {error}. "
                "Check the path in CHAINSCAN_STORE_URI."
            ) from error

    async def ensure_indexes(self) -> None:
        try:
            self._connection.executescript(_SCHEMA)
        except sqlite3.Error as error:
            raise ChainscanStoreError(f"Failed to create SQLite schema: {error}.") from error
        _LOGGER.info("store_indexes_ensured", backend="sqlite", path=self._database_path)

    async def close(self) -> None:
        self._connection.close()

    async def get_scan_progress(self, chain_id: int) -> ScanProgress | None:
        row = self._fetch_one(
            "SELECT document FROM scan_progress WHERE chain_id = ?", (chain_id,)
        )
        if row is None:
            return None
        return progress_from_document(json.loads(row[0]))

    async def upsert_progress(self, progress: ScanProgress) -> None:
        self._write(
            "INSERT INTO scan_progress(chain_id, document) VALUES (?, ?) "
            "ON CONFLICT(chain_id) DO UPDATE SET document = excluded.document",
            [(progress.chain_id, _encode(progress_to_document(progress)))],
        )

    async def insert_block(self, block: BlockRecord) -> None:
        self._write(
            "INSERT INTO blocks(number, hash, chain_id, timestamp, document) "
            "VALUES (?, ?, ?, ?, ?)",
            [
                (
                    block.number,
                    block.hash,
                    block.chain_id,
                    block.timestamp,
                    _encode(block_to_document(block)),
                )
            ],
        )

    async def insert_extrinsics(self, extrinsics: Sequence[ExtrinsicRecord]) -> None:
        self._write(
            "INSERT INTO extrinsics(block_number, extrinsic_index, chain_id, hash, pallet, "
            "method, signer, success, timestamp, document) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    extrinsic.block_number,
                    extrinsic.extrinsic_index,
                    extrinsic.chain_id,
                    extrinsic.hash,
                    extrinsic.pallet,
                    extrinsic.method,
                    extrinsic.signer,
                    int(extrinsic.success),
                    extrinsic.timestamp,
                    _encode(extrinsic_to_document(extrinsic)),
                )
                for extrinsic in extrinsics
            ],
        )

    async def insert_events(self, events: Sequence[EventRecord]) -> None:
        self._write(
            "INSERT INTO events(block_number, event_index, extrinsic_index, chain_id, pallet, "
            "method, timestamp, document) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    event.block_number,
                    event.event_index,
                    event.extrinsic_index,
                    event.chain_id,
                    event.pallet,
                    event.method,
                    event.timestamp,
                    _encode(event_to_document(event)),
                )
                for event in events
            ],
        )

    async def list_block_numbers(self, chain_id: int) -> list[int]:
        rows = self._fetch_all(
            "SELECT number FROM blocks WHERE chain_id = ? ORDER BY number ASC", (chain_id,)
        )
        return [int(row[0]) for row in rows]

    async def get_stats(self, chain_id: int) -> IndexerStats:
        return IndexerStats(
            block_count=self._count("blocks", chain_id),
            extrinsic_count=self._count("extrinsics", chain_id),
            event_count=self._count("events", chain_id),
            progress=await self.get_scan_progress(chain_id),
        )

    def _count(self, table: str, chain_id: int) -> int:
        row = self._fetch_one(f"SELECT COUNT(*) FROM {table} WHERE chain_id = ?", (chain_id,))
        return int(row[0]) if row else 0

    def _write(self, statement: str, rows: Iterable[tuple[Any, ...]]) -> None:
        """Apply all rows in one transaction, rolling back on any failure."""
        try:
            with self._connection:
                self._connection.executemany(statement, rows)
        except sqlite3.IntegrityError as error:
            raise ChainscanDuplicateRecordError(
                f"SQLite rejected a conflicting insert: {error}."
            ) from error
        except sqlite3.Error as error:
            raise ChainscanStoreError(f"SQLite write failed: {error}.") from error

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> tuple[Any, ...] | None:
        try:
            return self._connection.execute(query, params).fetchone()
        except sqlite3.Error as error:
            raise ChainscanStoreError(f"SQLite read failed: {error}.") from error

    def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[tuple[Any, ...]]:
        try:
            return self._connection.execute(query, params).fetchall()
        except sqlite3.Error as error:
            raise ChainscanStoreError(f"SQLite read failed: {error}.") from error


def _encode(document: dict[str, Any]) -> str:
    return json.dumps(document, sort_keys=True, default=_json_default)


def _json_default(value: object) -> object:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
