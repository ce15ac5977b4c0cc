"""Document serialization for persisted records.

This module centralizes record to document conversion. It is reused by
every store backend so documents share one field layout.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Mapping

from core.types import BlockRecord, EventRecord, ExtrinsicRecord, ScanProgress


def block_to_document(block: BlockRecord) -> dict[str, Any]:
    """Serialize a block record into a store document."""
    return asdict(block)


def extrinsic_to_document(extrinsic: ExtrinsicRecord) -> dict[str, Any]:
    """Serialize an extrinsic record into a store document."""
    document = asdict(extrinsic)
    document["args"] = dict(extrinsic.args)
    return document


def event_to_document(event: EventRecord) -> dict[str, Any]:
    """Serialize an event record into a store document.

    Tuples become lists so documents survive JSON and BSON encoding.
    """
    document = asdict(event)
    document["data"] = list(event.data)
    document["topics"] = list(event.topics)
    return document


def progress_to_document(progress: ScanProgress) -> dict[str, Any]:
    """Serialize a scan progress checkpoint into a store document."""
    return asdict(progress)


def progress_from_document(document: Mapping[str, Any]) -> ScanProgress:
    """Deserialize a scan progress document.

    Args:
        document: Stored payload; store-specific keys such as ``_id`` are ignored.

    Returns:
        Parsed checkpoint.
    """
    target_end_block = document.get("target_end_block")
    return ScanProgress(
        chain_id=int(document["chain_id"]),
        chain_name=str(document.get("chain_name", "")),
        last_indexed_block=int(document["last_indexed_block"]),
        blocks_indexed=int(document.get("blocks_indexed", 0)),
        extrinsics_indexed=int(document.get("extrinsics_indexed", 0)),
        events_indexed=int(document.get("events_indexed", 0)),
        last_updated=_parse_datetime(document.get("last_updated")),
        is_complete=bool(document.get("is_complete", False)),
        target_end_block=int(target_end_block) if target_end_block is not None else None,
    )


def _parse_datetime(value: object) -> datetime:
    """Parse stored timestamps, assuming UTC for naive values."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        parsed = datetime.fromisoformat(value)
    else:
        return datetime.fromtimestamp(0, tz=timezone.utc)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed
