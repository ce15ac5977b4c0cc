"""Substrate node adapter.

This module satisfies the ledger protocol on top of ``substrate-interface``.
The library is synchronous, so each call runs on a worker thread while it
holds one connection leased from a fixed pool. Concurrent fetches therefore
use separate websocket connections.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Mapping, Sequence, TypeVar

from substrateinterface import SubstrateInterface

from core.constants import DEFAULT_CONCURRENCY
from core.errors import ChainscanLedgerError
from core.logging_config import get_logger
from core.types import EventPhase
from ingest.ledger_client import RawBlock, RawEvent, RawExtrinsic

_LOGGER = get_logger(__name__)

T = TypeVar("T")

ConnectionFactory = Callable[[], Any]


class SubstrateLedgerClient:
    """Ledger client backed by a pool of ``SubstrateInterface`` connections."""

    def __init__(
        self,
        ws_url: str,
        pool_size: int = DEFAULT_CONCURRENCY,
        connection_factory: ConnectionFactory | None = None,
    ) -> None:
        self._ws_url = ws_url
        self._pool_size = max(1, pool_size)
        self._connection_factory = connection_factory or (
            lambda: SubstrateInterface(url=ws_url)
        )
        self._connections: list[Any] = []
        self._idle: asyncio.Queue[Any] | None = None

    async def connect(self) -> None:
        """Open every pooled connection.

        Raises:
            Exception: The underlying transport error when the node is unreachable.
        """
        if self._idle is not None:
            return
        idle: asyncio.Queue[Any] = asyncio.Queue()
        for _ in range(self._pool_size):
            connection = await asyncio.to_thread(self._connection_factory)
            self._connections.append(connection)
            idle.put_nowait(connection)
        self._idle = idle
        _LOGGER.info("ledger_connected", ws_url=self._ws_url, pool_size=self._pool_size)

    async def close(self) -> None:
        """Close every pooled connection."""
        connections = self._connections
        self._connections = []
        self._idle = None
        for connection in connections:
            await asyncio.to_thread(connection.close)
        if connections:
            _LOGGER.info("ledger_disconnected", ws_url=self._ws_url)

    async def get_height(self) -> int:
        header = await self._call(lambda substrate: substrate.get_block_header())
        return int(_header_of(header)["number"])

    async def get_chain_name(self) -> str:
        return str(await self._call(lambda substrate: substrate.chain))

    async def get_block_hash(self, height: int) -> str:
        block_hash = await self._call(lambda substrate: substrate.get_block_hash(height))
        if not block_hash:
            raise ChainscanLedgerError(
                f"Node returned no block hash for height {height}. "
                "Check that the height is not beyond the chain tip."
            )
        return str(block_hash)

    async def get_block(self, block_hash: str) -> RawBlock:
        block = await self._call(lambda substrate: substrate.get_block(block_hash=block_hash))
        if block is None:
            raise ChainscanLedgerError(f"Node returned no block for hash {block_hash}.")
        return raw_block_from_payload(block)

    async def state_at(self, block_hash: str) -> "SubstrateLedgerState":
        return SubstrateLedgerState(self, block_hash)

    async def _call(self, operation: Callable[[Any], T]) -> T:
        """Run one blocking call on a leased connection."""
        if self._idle is None:
            raise ChainscanLedgerError(
                f"Ledger client for {self._ws_url} is not connected. Call connect() first."
            )
        idle = self._idle
        connection = await idle.get()
        try:
            return await asyncio.to_thread(operation, connection)
        finally:
            idle.put_nowait(connection)


class SubstrateLedgerState:
    """State reads pinned to one block hash."""

    def __init__(self, client: SubstrateLedgerClient, block_hash: str) -> None:
        self._client = client
        self._block_hash = block_hash

    async def get_timestamp(self) -> int:
        result = await self._client._call(
            lambda substrate: substrate.query("Timestamp", "Now", block_hash=self._block_hash)
        )
        return int(_unwrap(result))

    async def get_events(self) -> list[RawEvent]:
        records = await self._client._call(
            lambda substrate: substrate.get_events(block_hash=self._block_hash)
        )
        return [raw_event_from_payload(_unwrap(record)) for record in records]


def raw_block_from_payload(block: Mapping[str, Any]) -> RawBlock:
    """Convert a ``get_block`` result into a raw block.

    Args:
        block: Mapping with ``header`` and ``extrinsics`` entries.

    Returns:
        Raw block with header roots and converted extrinsics.
    """
    header = _header_of(block)
    digest = header.get("digest") or {}
    return RawBlock(
        parent_hash=str(header.get("parentHash", "")),
        state_root=str(header.get("stateRoot", "")),
        extrinsics_root=str(header.get("extrinsicsRoot", "")),
        extrinsics=tuple(
            raw_extrinsic_from_payload(_unwrap(extrinsic))
            for extrinsic in block.get("extrinsics") or ()
        ),
        digest_logs=tuple(digest.get("logs") or ()),
    )


def raw_extrinsic_from_payload(payload: Mapping[str, Any]) -> RawExtrinsic:
    """Convert a decoded extrinsic value into a raw extrinsic."""
    call = payload.get("call") or {}
    call_args: Sequence[Mapping[str, Any]] = call.get("call_args") or ()
    signer = _format_address(payload.get("address"))
    is_signed = signer is not None
    return RawExtrinsic(
        hash=str(payload.get("extrinsic_hash") or ""),
        pallet=str(call.get("call_module", "")),
        method=str(call.get("call_function", "")),
        argument_names=tuple(str(argument.get("name")) for argument in call_args),
        argument_values=tuple(argument.get("value") for argument in call_args),
        signer=signer,
        is_signed=is_signed,
        nonce=payload.get("nonce") if is_signed else None,
        tip=payload.get("tip") if is_signed else None,
    )


def raw_event_from_payload(payload: Mapping[str, Any]) -> RawEvent:
    """Convert a decoded event record into a raw event.

    Both the flat layout (``module_id``, ``event_id``, ``attributes`` and
    ``extrinsic_idx`` at top level) and the nested ``event`` layout are
    accepted. A phase given as ``{"ApplyExtrinsic": n}`` carries its index.
    """
    event = payload.get("event") or {}
    phase, extrinsic_index = _parse_phase(payload.get("phase"), payload.get("extrinsic_idx"))
    attributes = payload.get("attributes", event.get("attributes"))
    return RawEvent(
        phase=phase,
        extrinsic_index=extrinsic_index,
        pallet=str(payload.get("module_id") or event.get("module_id") or ""),
        method=str(payload.get("event_id") or event.get("event_id") or ""),
        data=_attributes_to_data(attributes),
        topics=tuple(str(topic) for topic in payload.get("topics") or ()),
    )


def _parse_phase(phase: Any, extrinsic_index: Any) -> tuple[str, int | None]:
    if isinstance(phase, Mapping) and len(phase) == 1:
        ((phase_name, phase_value),) = phase.items()
        phase = phase_name
        if extrinsic_index is None and isinstance(phase_value, int):
            extrinsic_index = phase_value
    phase_name = str(phase or EventPhase.FINALIZATION.value)
    if phase_name != EventPhase.APPLY_EXTRINSIC.value:
        return phase_name, None
    return phase_name, int(extrinsic_index) if extrinsic_index is not None else None


def _attributes_to_data(attributes: Any) -> tuple[Any, ...]:
    """Flatten event attributes into ordered payload values."""
    if attributes is None:
        return ()
    if isinstance(attributes, Mapping):
        return tuple(attributes.values())
    if isinstance(attributes, (list, tuple)):
        return tuple(attributes)
    return (attributes,)


def _format_address(address: Any) -> str | None:
    if address is None:
        return None
    if isinstance(address, Mapping) and len(address) == 1:
        return str(next(iter(address.values())))
    return str(address)


def _header_of(block: Mapping[str, Any]) -> Mapping[str, Any]:
    header = block.get("header")
    if not isinstance(header, Mapping):
        raise ChainscanLedgerError("Node returned a block without a header.")
    return header


def _unwrap(value: Any) -> Any:
    """Return the decoded value of a scale object, or the value itself."""
    return getattr(value, "value", value)
