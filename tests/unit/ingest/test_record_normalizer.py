"""Unit tests for block payload normalization."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.errors import ChainscanDecodeError
from ingest.ledger_client import FetchedBlock, RawBlock, RawEvent, RawExtrinsic
from ingest.record_normalizer import (
    decode_argument_value,
    decode_arguments,
    describe_dispatch_error,
    normalize_block,
    resolve_extrinsic_outcome,
)
from ledger_fakes import block_hash_for, sample_events, sample_extrinsics

INDEXED_AT = datetime(2024, 5, 1, tzinfo=timezone.utc)


class _Opaque:
    __slots__ = ()


class _ScaleValue:
    def __init__(self, value: object) -> None:
        self.value = value


def _fetched(
    extrinsics: tuple[RawExtrinsic, ...],
    events: tuple[RawEvent, ...],
    height: int = 10,
) -> FetchedBlock:
    return FetchedBlock(
        height=height,
        block_hash=block_hash_for(height),
        block=RawBlock(
            parent_hash=block_hash_for(height - 1),
            state_root="0xstate",
            extrinsics_root="0xroot",
            extrinsics=extrinsics,
        ),
        timestamp_ms=1_700_000_060_000,
        events=events,
    )


def _apply(index: int, pallet: str, method: str, *data: object) -> RawEvent:
    return RawEvent(
        phase="ApplyExtrinsic",
        extrinsic_index=index,
        pallet=pallet,
        method=method,
        data=data,
    )


def test_normalize_block_builds_block_record() -> None:
    """Block record should carry header fields, counts and no author."""
    normalized = normalize_block(_fetched(sample_extrinsics(10), sample_events(10)), 1, INDEXED_AT)

    block = normalized.block
    assert (block.number, block.extrinsic_count, block.event_count, block.author) == (
        10,
        2,
        4,
        None,
    )


def test_normalize_block_keeps_nonce_and_tip_only_for_signed_extrinsics() -> None:
    """Unsigned extrinsics carry no nonce or tip; signed ones keep both."""
    normalized = normalize_block(_fetched(sample_extrinsics(10), sample_events(10)), 1, INDEXED_AT)

    inherent, transfer = normalized.extrinsics
    assert (inherent.nonce, inherent.tip, transfer.nonce, transfer.tip) == (None, None, 10, "0")


def test_normalize_block_sets_event_extrinsic_index_only_when_applied() -> None:
    """Finalization events have no extrinsic index."""
    normalized = normalize_block(_fetched(sample_extrinsics(10), sample_events(10)), 1, INDEXED_AT)

    assert [event.extrinsic_index for event in normalized.events] == [0, 1, 1, None]


def test_resolve_extrinsic_outcome_reads_failure_error() -> None:
    """A System failure event marks the extrinsic failed with its error."""
    events = [_apply(0, "System", "ExtrinsicFailed", {"Module": {"index": 5, "error": 2}})]

    outcome = resolve_extrinsic_outcome(events, 0)

    assert outcome == (False, '{"Module": {"error": 2, "index": 5}}')


def test_resolve_extrinsic_outcome_defaults_to_unsuccessful() -> None:
    """Without a System outcome event the extrinsic is unsuccessful."""
    events = [_apply(0, "Balances", "Transfer", "alice", 5)]

    assert resolve_extrinsic_outcome(events, 0) == (False, None)


def test_resolve_extrinsic_outcome_last_event_wins() -> None:
    """When both outcomes appear the later event decides."""
    events = [
        _apply(1, "System", "ExtrinsicFailed", "BadOrigin"),
        _apply(1, "System", "ExtrinsicSuccess", {}),
    ]

    assert resolve_extrinsic_outcome(events, 1) == (True, None)


def test_resolve_extrinsic_outcome_ignores_other_positions() -> None:
    """Events applied at other positions do not affect the outcome."""
    events = [_apply(0, "System", "ExtrinsicSuccess", {})]

    assert resolve_extrinsic_outcome(events, 1) == (False, None)


def test_describe_dispatch_error_falls_back_for_undecodable_data() -> None:
    """Undecodable or missing dispatch errors become a placeholder."""
    messages = [describe_dispatch_error(()), describe_dispatch_error((_Opaque(),))]

    assert messages == ["Unknown error", "Unknown error"]


def test_decode_argument_value_converts_nested_values() -> None:
    """Bytes, wrappers and nested containers become plain data."""
    decoded = decode_argument_value({"data": b"\x01\x02", "items": (_ScaleValue(3), [True])})

    assert decoded == {"data": "0x0102", "items": [3, [True]]}


def test_decode_argument_value_rejects_opaque_objects() -> None:
    """Objects without a plain representation raise a decode error."""
    with pytest.raises(ChainscanDecodeError):
        decode_argument_value(_Opaque())

    assert True


def test_decode_arguments_rejects_mismatched_names() -> None:
    """Argument names and values must line up."""
    extrinsic = RawExtrinsic(
        hash="0x1",
        pallet="Balances",
        method="transfer",
        argument_names=("dest",),
        argument_values=("alice", 5),
    )

    with pytest.raises(ChainscanDecodeError):
        decode_arguments(extrinsic)

    assert True


def test_normalize_block_contains_argument_decode_failures() -> None:
    """Undecodable arguments become an empty mapping without failing the block."""
    extrinsic = RawExtrinsic(
        hash="0x1",
        pallet="Utility",
        method="batch",
        argument_names=("calls",),
        argument_values=(_Opaque(),),
    )

    normalized = normalize_block(_fetched((extrinsic,), ()), 1, INDEXED_AT)

    assert normalized.extrinsics[0].args == {}


def test_normalize_block_stringifies_undecodable_event_data() -> None:
    """Undecodable event payload items are stored as strings."""
    opaque = _Opaque()
    event = RawEvent(
        phase="Finalization",
        extrinsic_index=None,
        pallet="Session",
        method="NewSession",
        data=(opaque, 4),
    )

    normalized = normalize_block(_fetched((), (event,)), 1, INDEXED_AT)

    assert normalized.events[0].data == (str(opaque), 4)


def test_decode_argument_value_renders_wide_integers_as_strings() -> None:
    """Integers beyond signed 64 bits become decimal strings."""
    values = [decode_argument_value(value) for value in (2**63 - 1, 2**63, -(2**63) - 1)]

    assert values == [2**63 - 1, "9223372036854775808", "-9223372036854775809"]


def test_normalize_block_stores_u128_balances_as_strings() -> None:
    """Large transfer amounts survive normalization as decimal strings."""
    amount = 10 * 10**18
    transfer = RawExtrinsic(
        hash="0xtransfer",
        pallet="Balances",
        method="transfer_keep_alive",
        argument_names=("dest", "value"),
        argument_values=("5FHneW46xGXgs5mUiveU4sbTyGBzmstUspZC92UhjJM694ty", amount),
        signer="5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY",
        is_signed=True,
        nonce=3,
        tip=0,
    )
    events = (
        _apply(0, "Balances", "Transfer", "5GrwvaEF5zXb26Fz9rcQpDWS57CtERHpNehXCPcNoHGKutQY", amount),
        _apply(0, "System", "ExtrinsicSuccess", {"weight": 1000}),
    )

    normalized = normalize_block(_fetched((transfer,), events), 1, INDEXED_AT)

    assert (normalized.extrinsics[0].args["value"], normalized.events[0].data[1]) == (
        str(amount),
        str(amount),
    )
