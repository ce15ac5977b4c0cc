"""Chainscan exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class ChainscanError(Exception):
    """Base exception for all Chainscan failures."""


class ChainscanConfigError(ChainscanError):
    """Raised for invalid runtime configuration."""


class ChainscanLedgerError(ChainscanError):
    """Raised when the remote ledger returns an unusable payload."""


class ChainscanIngestError(ChainscanError):
    """Raised for invalid ingest requests."""


class ChainscanDecodeError(ChainscanError):
    """Raised when an extrinsic argument cannot be decoded."""


class ChainscanStoreError(ChainscanError):
    """Raised for persistent store failures."""


class ChainscanDuplicateRecordError(ChainscanStoreError):
    """Raised when an insert conflicts with a uniqueness constraint."""
