"""MongoDB store backend.

This module persists records into four MongoDB collections through the
pymongo async client and creates the uniqueness constraints and lookup
indexes the indexer relies on.
"""

from __future__ import annotations

from typing import Any, Sequence

from bson.errors import InvalidDocument
from pymongo import ASCENDING, DESCENDING, AsyncMongoClient, IndexModel
from pymongo.errors import BulkWriteError, DuplicateKeyError, PyMongoError

from core.constants import (
    BLOCKS_COLLECTION,
    EVENTS_COLLECTION,
    EXTRINSICS_COLLECTION,
    SCAN_PROGRESS_COLLECTION,
)
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

_DUPLICATE_KEY_CODE = 11000

COLLECTION_INDEXES: dict[str, tuple[IndexModel, ...]] = {
    BLOCKS_COLLECTION: (
        IndexModel([("number", ASCENDING)], unique=True),
        IndexModel([("hash", ASCENDING)], unique=True),
        IndexModel([("timestamp", DESCENDING)]),
        IndexModel([("chain_id", ASCENDING), ("number", ASCENDING)]),
    ),
    EXTRINSICS_COLLECTION: (
        IndexModel([("block_number", ASCENDING), ("extrinsic_index", ASCENDING)], unique=True),
        IndexModel([("hash", ASCENDING)]),
        IndexModel([("pallet", ASCENDING), ("method", ASCENDING)]),
        IndexModel([("signer", ASCENDING)]),
        IndexModel([("success", ASCENDING)]),
        IndexModel([("timestamp", DESCENDING)]),
        IndexModel([("chain_id", ASCENDING), ("block_number", ASCENDING)]),
    ),
    EVENTS_COLLECTION: (
        IndexModel([("block_number", ASCENDING), ("event_index", ASCENDING)], unique=True),
        IndexModel([("extrinsic_index", ASCENDING)]),
        IndexModel([("pallet", ASCENDING), ("method", ASCENDING)]),
        IndexModel([("timestamp", DESCENDING)]),
        IndexModel([("chain_id", ASCENDING), ("block_number", ASCENDING)]),
    ),
    SCAN_PROGRESS_COLLECTION: (IndexModel([("chain_id", ASCENDING)], unique=True),),
}


class MongoIndexerStore:
    """MongoDB-backed store using the pymongo async client."""

    def __init__(self, uri: str, database_name: str) -> None:
        self._uri = uri
        self._client: AsyncMongoClient[dict[str, Any]] = AsyncMongoClient(uri, tz_aware=True)
        self._database = self._client[database_name]

    async def ensure_indexes(self) -> None:
        try:
            for collection_name, indexes in COLLECTION_INDEXES.items():
                await self._database[collection_name].create_indexes(list(indexes))
        except PyMongoError as error:
            raise ChainscanStoreError(
                f"Failed to create MongoDB indexes: {error}. "
                "Check CHAINSCAN_STORE_URI and that the server is reachable."
            ) from error
        _LOGGER.info("store_indexes_ensured", backend="mongodb", database=self._database.name)

    async def close(self) -> None:
        await self._client.close()

    async def get_scan_progress(self, chain_id: int) -> ScanProgress | None:
        try:
            document = await self._database[SCAN_PROGRESS_COLLECTION].find_one(
                {"chain_id": chain_id}
            )
        except PyMongoError as error:
            raise ChainscanStoreError(f"Failed to read scan progress: {error}.") from error
        if document is None:
            return None
        return progress_from_document(document)

    async def upsert_progress(self, progress: ScanProgress) -> None:
        try:
            await self._database[SCAN_PROGRESS_COLLECTION].update_one(
                {"chain_id": progress.chain_id},
                {"$set": progress_to_document(progress)},
                upsert=True,
            )
        except PyMongoError as error:
            raise ChainscanStoreError(f"Failed to write scan progress: {error}.") from error

    async def insert_block(self, block: BlockRecord) -> None:
        try:
            await self._database[BLOCKS_COLLECTION].insert_one(block_to_document(block))
        except DuplicateKeyError as error:
            raise ChainscanDuplicateRecordError(
                f"Block {block.number} ({block.hash}) already exists in store."
            ) from error
        except PyMongoError as error:
            raise ChainscanStoreError(f"Failed to insert block {block.number}: {error}.") from error
        except (InvalidDocument, OverflowError) as error:
            raise ChainscanStoreError(
                f"Block {block.number} cannot be encoded as BSON: {error}."
            ) from error

    async def insert_extrinsics(self, extrinsics: Sequence[ExtrinsicRecord]) -> None:
        await self._insert_many(
            EXTRINSICS_COLLECTION, [extrinsic_to_document(extrinsic) for extrinsic in extrinsics]
        )

    async def insert_events(self, events: Sequence[EventRecord]) -> None:
        await self._insert_many(EVENTS_COLLECTION, [event_to_document(event) for event in events])

    async def list_block_numbers(self, chain_id: int) -> list[int]:
        try:
            cursor = (
                self._database[BLOCKS_COLLECTION]
                .find({"chain_id": chain_id}, projection={"number": 1, "_id": 0})
                .sort("number", ASCENDING)
            )
            return [int(document["number"]) async for document in cursor]
        except PyMongoError as error:
            raise ChainscanStoreError(f"Failed to list block numbers: {error}.") from error

    async def get_stats(self, chain_id: int) -> IndexerStats:
        query = {"chain_id": chain_id}
        try:
            block_count = await self._database[BLOCKS_COLLECTION].count_documents(query)
            extrinsic_count = await self._database[EXTRINSICS_COLLECTION].count_documents(query)
            event_count = await self._database[EVENTS_COLLECTION].count_documents(query)
        except PyMongoError as error:
            raise ChainscanStoreError(f"Failed to count documents: {error}.") from error
        return IndexerStats(
            block_count=block_count,
            extrinsic_count=extrinsic_count,
            event_count=event_count,
            progress=await self.get_scan_progress(chain_id),
        )

    async def _insert_many(self, collection_name: str, documents: list[dict[str, Any]]) -> None:
        if not documents:
            return
        try:
            await self._database[collection_name].insert_many(documents, ordered=True)
        except BulkWriteError as error:
            if _is_duplicate_key_failure(error):
                raise ChainscanDuplicateRecordError(
                    f"MongoDB rejected conflicting {collection_name} documents."
                ) from error
            raise ChainscanStoreError(
                f"Failed to insert {collection_name} documents: {error}."
            ) from error
        except PyMongoError as error:
            raise ChainscanStoreError(
                f"Failed to insert {collection_name} documents: {error}."
            ) from error
        except (InvalidDocument, OverflowError) as error:
            raise ChainscanStoreError(
                f"{collection_name} documents cannot be encoded as BSON: {error}."
            ) from error


def _is_duplicate_key_failure(error: BulkWriteError) -> bool:
    write_errors = error.details.get("writeErrors", [])
    return any(item.get("code") == _DUPLICATE_KEY_CODE for item in write_errors)
