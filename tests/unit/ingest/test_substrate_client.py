"""Unit tests for the Substrate node adapter."""

from __future__ import annotations

import asyncio

import pytest

from core.errors import ChainscanLedgerError
from ingest.substrate_client import (
    SubstrateLedgerClient,
    raw_block_from_payload,
    raw_event_from_payload,
    raw_extrinsic_from_payload,
)


class _ScaleObject:
    def __init__(self, value: object) -> None:
        self.value = value


class _FakeSubstrate:
    """Synchronous stand-in for one ``SubstrateInterface`` connection."""

    chain = "Local Testnet"

    def __init__(self) -> None:
        self.closed = False

    def get_block_header(self) -> dict[str, object]:
        return {"header": {"number": 42}}

    def get_block_hash(self, height: int) -> str | None:
        return f"0x{height:04x}" if height <= 42 else None

    def get_block(self, block_hash: str) -> dict[str, object]:
        return {
            "header": {
                "parentHash": "0xparent",
                "stateRoot": "0xstate",
                "extrinsicsRoot": "0xroot",
                "number": int(block_hash, 16),
            },
            "extrinsics": [_ScaleObject(_SIGNED_EXTRINSIC)],
        }

    def query(self, module: str, storage_function: str, block_hash: str) -> _ScaleObject:
        return _ScaleObject(1_700_000_000_000)

    def get_events(self, block_hash: str) -> list[_ScaleObject]:
        return [_ScaleObject(_SUCCESS_EVENT)]

    def close(self) -> None:
        self.closed = True


_SIGNED_EXTRINSIC = {
    "extrinsic_hash": "0xfeed",
    "address": {"Id": "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY"},
    "nonce": 3,
    "tip": 0,
    "call": {
        "call_module": "Balances",
        "call_function": "transfer_keep_alive",
        "call_args": [
            {"name": "dest", "type": "AccountIdLookupOf", "value": "5FHneW46"},
            {"name": "value", "type": "Balance", "value": 100},
        ],
    },
}

_SUCCESS_EVENT = {
    "phase": "ApplyExtrinsic",
    "extrinsic_idx": 0,
    "module_id": "System",
    "event_id": "ExtrinsicSuccess",
    "attributes": {"dispatch_info": {"weight": 1}},
    "topics": [],
}


def _connected_client() -> tuple[SubstrateLedgerClient, list[_FakeSubstrate]]:
    connections: list[_FakeSubstrate] = []

    def factory() -> _FakeSubstrate:
        connection = _FakeSubstrate()
        connections.append(connection)
        return connection

    client = SubstrateLedgerClient("ws://node:9944", pool_size=2, connection_factory=factory)
    return client, connections


def test_raw_extrinsic_from_payload_reads_signed_fields() -> None:
    """Signed extrinsic payloads keep signer, nonce and positional arguments."""
    extrinsic = raw_extrinsic_from_payload(_SIGNED_EXTRINSIC)

    assert (
        extrinsic.signer,
        extrinsic.nonce,
        extrinsic.argument_names,
        extrinsic.argument_values,
    ) == (
        "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",
        3,
        ("dest", "value"),
        ("5FHneW46", 100),
    )


def test_raw_extrinsic_from_payload_marks_unsigned_inherents() -> None:
    """Payloads without an address are unsigned."""
    extrinsic = raw_extrinsic_from_payload(
        {"extrinsic_hash": "0x1", "call": {"call_module": "Timestamp", "call_function": "set"}}
    )

    assert (extrinsic.is_signed, extrinsic.signer, extrinsic.nonce) == (False, None, None)


def test_raw_event_from_payload_reads_nested_phase_index() -> None:
    """A phase mapping carries the applying extrinsic index."""
    event = raw_event_from_payload(
        {
            "phase": {"ApplyExtrinsic": 2},
            "event": {"module_id": "System", "event_id": "ExtrinsicFailed"},
            "attributes": ["BadOrigin", {"weight": 1}],
        }
    )

    assert (event.phase, event.extrinsic_index, event.pallet, event.data[0]) == (
        "ApplyExtrinsic",
        2,
        "System",
        "BadOrigin",
    )


def test_raw_event_from_payload_drops_index_outside_apply_phase() -> None:
    """Finalization events never carry an extrinsic index."""
    event = raw_event_from_payload(
        {"phase": "Finalization", "extrinsic_idx": 4, "module_id": "Session", "event_id": "X"}
    )

    assert event.extrinsic_index is None


def test_raw_block_from_payload_requires_header() -> None:
    """Blocks without a header are rejected."""
    with pytest.raises(ChainscanLedgerError):
        raw_block_from_payload({"extrinsics": []})

    assert True


def test_substrate_client_requires_connect() -> None:
    """Calls before connect should fail with a clear error."""
    client, _ = _connected_client()

    with pytest.raises(ChainscanLedgerError):
        asyncio.run(client.get_height())

    assert True


def test_substrate_client_reads_block_and_state() -> None:
    """Adapter should expose tip, block body, timestamp and events."""
    client, connections = _connected_client()

    async def _read() -> tuple[object, ...]:
        await client.connect()
        height = await client.get_height()
        block_hash = await client.get_block_hash(height)
        block = await client.get_block(block_hash)
        state = await client.state_at(block_hash)
        timestamp, events = await asyncio.gather(state.get_timestamp(), state.get_events())
        await client.close()
        return height, block.extrinsics[0].method, timestamp, events[0].method

    result = asyncio.run(_read())

    assert result == (42, "transfer_keep_alive", 1_700_000_000_000, "ExtrinsicSuccess") and all(
        connection.closed for connection in connections
    )


def test_substrate_client_rejects_heights_beyond_tip() -> None:
    """A missing block hash raises a ledger error."""
    client, _ = _connected_client()

    async def _read() -> str:
        await client.connect()
        return await client.get_block_hash(100)

    with pytest.raises(ChainscanLedgerError):
        asyncio.run(_read())

    assert True
