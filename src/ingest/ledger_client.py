"""Remote ledger capability and raw payload models.

This module defines the narrow async interface the pipeline needs from a
chain node, plus the client-neutral payloads it returns. Any concrete
client (a live node adapter, a fake in tests) satisfies the protocols.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class RawExtrinsic:
    """Extrinsic as returned by the ledger, before normalization.

    Attributes:
        hash: Extrinsic hash.
        pallet: Call module name.
        method: Call function name.
        argument_names: Declared argument names from call metadata.
        argument_values: Argument values, positionally matching the names.
        signer: Signer address when signed.
        is_signed: Whether the extrinsic carries a signature.
        nonce: Signer nonce when signed.
        tip: Tip amount when signed.
    """

    hash: str
    pallet: str
    method: str
    argument_names: tuple[str, ...] = ()
    argument_values: tuple[Any, ...] = ()
    signer: str | None = None
    is_signed: bool = False
    nonce: int | None = None
    tip: int | str | None = None


@dataclass(frozen=True)
class RawEvent:
    """Event record as returned by the ledger.

    Attributes:
        phase: Phase name: Initialization, ApplyExtrinsic or Finalization.
        extrinsic_index: Applying extrinsic position for ApplyExtrinsic events.
        pallet: Event module name.
        method: Event name.
        data: Ordered event payload values.
        topics: Event topics.
    """

    phase: str
    extrinsic_index: int | None
    pallet: str
    method: str
    data: tuple[Any, ...] = ()
    topics: tuple[str, ...] = ()


@dataclass(frozen=True)
class RawBlock:
    """Block header fields and body extrinsics."""

    parent_hash: str
    state_root: str
    extrinsics_root: str
    extrinsics: tuple[RawExtrinsic, ...] = ()
    digest_logs: tuple[Any, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class FetchedBlock:
    """Everything fetched for one height, ready for normalization."""

    height: int
    block_hash: str
    block: RawBlock
    timestamp_ms: int
    events: tuple[RawEvent, ...]


class LedgerState(Protocol):
    """State accessor scoped to one block hash."""

    async def get_timestamp(self) -> int:
        """Return the block timestamp in epoch milliseconds."""
        ...

    async def get_events(self) -> list[RawEvent]:
        """Return all events emitted by the block, in emission order."""
        ...


class LedgerClient(Protocol):
    """Async capability exposed by a chain node."""

    async def get_height(self) -> int:
        """Return the current chain tip height."""
        ...

    async def get_chain_name(self) -> str:
        """Return the chain name reported by the node."""
        ...

    async def get_block_hash(self, height: int) -> str:
        """Return the canonical block hash at a height."""
        ...

    async def get_block(self, block_hash: str) -> RawBlock:
        """Return the block body for a block hash."""
        ...

    async def state_at(self, block_hash: str) -> LedgerState:
        """Return a state accessor scoped to a block hash."""
        ...
