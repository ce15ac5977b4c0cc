"""Block payload normalization.

This module turns one fetched block into a block record, its extrinsic
records and its event records. Extrinsic outcomes are read from the
System success/failure events applied at the same position.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Mapping, Sequence

from core.constants import (
    EXTRINSIC_FAILED_EVENT,
    EXTRINSIC_SUCCESS_EVENT,
    SYSTEM_PALLET,
    UNKNOWN_DISPATCH_ERROR,
)
from core.errors import ChainscanDecodeError
from core.logging_config import get_logger
from core.types import BlockRecord, EventPhase, EventRecord, ExtrinsicRecord, NormalizedBlock
from ingest.ledger_client import FetchedBlock, RawEvent, RawExtrinsic

_LOGGER = get_logger(__name__)

_MISSING = object()

# Integers outside this range cannot be stored as BSON int64.
_MIN_INT64 = -(2**63)
_MAX_INT64 = 2**63 - 1


def normalize_block(fetched: FetchedBlock, chain_id: int, indexed_at: datetime) -> NormalizedBlock:
    """Build all persisted records for one fetched height.

    Args:
        fetched: Fetched block payload.
        chain_id: Chain identifier stamped on every record.
        indexed_at: UTC time stamped on every record.

    Returns:
        Block, extrinsic and event records for the height.
    """
    block = BlockRecord(
        number=fetched.height,
        hash=fetched.block_hash,
        parent_hash=fetched.block.parent_hash,
        state_root=fetched.block.state_root,
        extrinsics_root=fetched.block.extrinsics_root,
        timestamp=fetched.timestamp_ms,
        extrinsic_count=len(fetched.block.extrinsics),
        event_count=len(fetched.events),
        author=None,
        chain_id=chain_id,
        indexed_at=indexed_at,
    )
    extrinsics = tuple(
        _build_extrinsic_record(fetched, index, extrinsic, chain_id, indexed_at)
        for index, extrinsic in enumerate(fetched.block.extrinsics)
    )
    events = tuple(
        _build_event_record(fetched, index, event, chain_id, indexed_at)
        for index, event in enumerate(fetched.events)
    )
    return NormalizedBlock(block=block, extrinsics=extrinsics, events=events)


def resolve_extrinsic_outcome(
    events: Sequence[RawEvent],
    extrinsic_index: int,
) -> tuple[bool, str | None]:
    """Resolve success and error for the extrinsic at a block position.

    The last System success or failure event applied at ``extrinsic_index``
    decides the outcome. Without such an event the extrinsic is recorded as
    unsuccessful with no error.

    Args:
        events: All events of the block.
        extrinsic_index: Position of the extrinsic in the block.

    Returns:
        Pair of success flag and optional error description.
    """
    success = False
    error: str | None = None
    for event in events:
        if event.phase != EventPhase.APPLY_EXTRINSIC.value:
            continue
        if event.extrinsic_index != extrinsic_index or event.pallet != SYSTEM_PALLET:
            continue
        if event.method == EXTRINSIC_SUCCESS_EVENT:
            success = True
            error = None
        elif event.method == EXTRINSIC_FAILED_EVENT:
            success = False
            error = describe_dispatch_error(event.data)
    return success, error


def describe_dispatch_error(data: Sequence[Any]) -> str:
    """Render the dispatch error carried by a failure event.

    Args:
        data: Failure event payload; the first value is the dispatch error.

    Returns:
        Readable error string, or a generic placeholder when undecodable.
    """
    if not data:
        return UNKNOWN_DISPATCH_ERROR
    try:
        dispatch_error = decode_argument_value(data[0])
    except ChainscanDecodeError:
        return UNKNOWN_DISPATCH_ERROR
    if isinstance(dispatch_error, str):
        return dispatch_error or UNKNOWN_DISPATCH_ERROR
    if dispatch_error is None:
        return UNKNOWN_DISPATCH_ERROR
    return json.dumps(dispatch_error, sort_keys=True)


def decode_arguments(extrinsic: RawExtrinsic) -> dict[str, Any]:
    """Decode declared call arguments by name.

    Raises:
        ChainscanDecodeError: If names and values disagree or a value is undecodable.
    """
    if len(extrinsic.argument_names) != len(extrinsic.argument_values):
        raise ChainscanDecodeError(
            f"{extrinsic.pallet}.{extrinsic.method} declares "
            f"{len(extrinsic.argument_names)} arguments but carries "
            f"{len(extrinsic.argument_values)} values."
        )
    return {
        name: decode_argument_value(value)
        for name, value in zip(extrinsic.argument_names, extrinsic.argument_values)
    }


def decode_argument_value(value: Any) -> Any:
    """Convert a decoded ledger value into plain JSON-compatible data.

    Scalars pass through, except integers wider than 64 bits, which become
    decimal strings. Bytes become 0x-prefixed hex, mappings and sequences
    are converted recursively, and wrapper objects exposing a ``value``
    attribute are unwrapped.

    Raises:
        ChainscanDecodeError: If the value has no plain representation.
    """
    if value is None or isinstance(value, (bool, float, str)):
        return value
    if isinstance(value, int):
        if _MIN_INT64 <= value <= _MAX_INT64:
            return value
        return str(value)
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {str(key): decode_argument_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [decode_argument_value(item) for item in value]
    wrapped = getattr(value, "value", _MISSING)
    if wrapped is not _MISSING and wrapped is not value:
        return decode_argument_value(wrapped)
    raise ChainscanDecodeError(f"Cannot decode argument of type {type(value).__name__}.")


def _build_extrinsic_record(
    fetched: FetchedBlock,
    index: int,
    extrinsic: RawExtrinsic,
    chain_id: int,
    indexed_at: datetime,
) -> ExtrinsicRecord:
    success, error = resolve_extrinsic_outcome(fetched.events, index)
    return ExtrinsicRecord(
        block_number=fetched.height,
        block_hash=fetched.block_hash,
        extrinsic_index=index,
        hash=extrinsic.hash,
        pallet=extrinsic.pallet,
        method=extrinsic.method,
        args=_decode_arguments_or_empty(fetched.height, index, extrinsic),
        signer=extrinsic.signer,
        success=success,
        error=error,
        timestamp=fetched.timestamp_ms,
        nonce=extrinsic.nonce if extrinsic.is_signed else None,
        tip=_format_tip(extrinsic),
        is_signed=extrinsic.is_signed,
        chain_id=chain_id,
        indexed_at=indexed_at,
    )


def _decode_arguments_or_empty(height: int, index: int, extrinsic: RawExtrinsic) -> dict[str, Any]:
    try:
        return decode_arguments(extrinsic)
    except ChainscanDecodeError as error:
        _LOGGER.debug(
            "extrinsic_args_undecodable",
            height=height,
            extrinsic_index=index,
            pallet=extrinsic.pallet,
            method=extrinsic.method,
            error=str(error),
        )
        return {}


def _format_tip(extrinsic: RawExtrinsic) -> str | None:
    if not extrinsic.is_signed or extrinsic.tip is None:
        return None
    return str(extrinsic.tip)


def _build_event_record(
    fetched: FetchedBlock,
    index: int,
    event: RawEvent,
    chain_id: int,
    indexed_at: datetime,
) -> EventRecord:
    is_applied = event.phase == EventPhase.APPLY_EXTRINSIC.value
    return EventRecord(
        block_number=fetched.height,
        block_hash=fetched.block_hash,
        event_index=index,
        extrinsic_index=event.extrinsic_index if is_applied else None,
        pallet=event.pallet,
        method=event.method,
        data=tuple(_decode_event_data(event.data)),
        phase=event.phase,
        topics=tuple(str(topic) for topic in event.topics),
        timestamp=fetched.timestamp_ms,
        chain_id=chain_id,
        indexed_at=indexed_at,
    )


def _decode_event_data(data: Sequence[Any]) -> list[Any]:
    decoded: list[Any] = []
    for item in data:
        try:
            decoded.append(decode_argument_value(item))
        except ChainscanDecodeError:
            decoded.append(str(item))
    return decoded
