"""Ledger error classification.

This module sorts remote-call failures into three disjoint classes:
transient network faults that are retried, pruned-state errors whose
height is skipped, and fatal errors that stop the run.
"""

from __future__ import annotations

import asyncio
import errno
import socket
from enum import Enum
from typing import Mapping

from core.constants import STATE_DISCARDED_RPC_CODE


class ErrorClass(str, Enum):
    """Disjoint error classes used by the retry policy and pipeline."""

    TRANSIENT = "transient"
    PRUNED = "pruned"
    FATAL = "fatal"


_PRUNED_MESSAGE_MARKERS = (
    "state already discarded",
    "unknown block",
)

_NETWORK_MESSAGE_MARKERS = (
    "timeout",
    "timed out",
    "econnrefused",
    "econnreset",
    "enotfound",
    "enetunreach",
    "disconnected",
    "websocket is not connected",
    "abnormal closure",
    "connection closed",
    "connection is already closed",
    "connection to remote host was lost",
    "socket hang up",
    "no response received",
    "name or service not known",
)

_NETWORK_ERROR_CODES = frozenset({"ECONNREFUSED", "ECONNRESET", "ETIMEDOUT", "ENOTFOUND"})
_NETWORK_ERRNOS = frozenset({errno.ECONNREFUSED, errno.ECONNRESET, errno.ETIMEDOUT})
_NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    TimeoutError,
    asyncio.TimeoutError,
    ConnectionError,
    socket.gaierror,
)


def is_state_pruned_error(error: BaseException) -> bool:
    """Return whether an error means the node discarded state for a height.

    Args:
        error: Raised exception.

    Returns:
        True for pruned-state errors, which must be skipped, not retried.
    """
    if _error_code(error) == STATE_DISCARDED_RPC_CODE:
        return True
    message = _error_message(error)
    return any(marker in message for marker in _PRUNED_MESSAGE_MARKERS)


def is_network_error(error: BaseException) -> bool:
    """Return whether an error is a transient network fault.

    Pruned-state errors are never network errors, even when their message
    also matches a network marker.

    Args:
        error: Raised exception.

    Returns:
        True when the failed call should be retried.
    """
    if is_state_pruned_error(error):
        return False
    if isinstance(error, _NETWORK_ERROR_TYPES):
        return True
    if isinstance(error, OSError) and error.errno in _NETWORK_ERRNOS:
        return True
    code = _error_code(error)
    if isinstance(code, str) and code.upper() in _NETWORK_ERROR_CODES:
        return True
    message = _error_message(error)
    return any(marker in message for marker in _NETWORK_MESSAGE_MARKERS)


def classify_error(error: BaseException) -> ErrorClass:
    """Classify an error into exactly one class."""
    if is_state_pruned_error(error):
        return ErrorClass.PRUNED
    if is_network_error(error):
        return ErrorClass.TRANSIENT
    return ErrorClass.FATAL


def _error_message(error: BaseException) -> str:
    payload = _rpc_payload(error)
    if payload is not None and isinstance(payload.get("message"), str):
        return str(payload["message"]).lower()
    return str(error).lower()


def _error_code(error: BaseException) -> object:
    code = getattr(error, "code", None)
    if code is not None:
        return code
    payload = _rpc_payload(error)
    if payload is None:
        return None
    return payload.get("code")


def _rpc_payload(error: BaseException) -> Mapping[str, object] | None:
    """Return the JSON-RPC error object some clients pass as first arg."""
    if error.args and isinstance(error.args[0], Mapping):
        return error.args[0]
    return None
