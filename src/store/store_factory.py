"""Store URI parsing and backend construction.

This module centralizes store URI validation so the CLI, SDK client and
tests select backends the same way.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import ChainscanConfigError
from store.base import IndexerStore

MONGODB_SCHEMES = ("mongodb://", "mongodb+srv://")
SQLITE_SCHEME = "sqlite:///"
MEMORY_SCHEME = "memory://"


@dataclass(frozen=True)
class StoreLocation:
    """Parsed store target."""

    backend: str
    target: str


def parse_store_uri(uri: str) -> StoreLocation:
    """Parse and validate a store URI.

    Args:
        uri: ``mongodb://...``, ``mongodb+srv://...``, ``sqlite:///path`` or ``memory://``.

    Returns:
        Backend name and backend-specific target.

    Raises:
        ChainscanConfigError: If the scheme is unsupported or the target is empty.
    """
    if uri.startswith(MONGODB_SCHEMES):
        return StoreLocation(backend="mongodb", target=uri)
    if uri.startswith(SQLITE_SCHEME):
        database_path = uri.removeprefix(SQLITE_SCHEME)
        if not database_path:
            raise ChainscanConfigError(
                f"Invalid store URI '{uri}': expected sqlite:///path/to/file.db."
            )
        return StoreLocation(backend="sqlite", target=database_path)
    if uri.startswith(MEMORY_SCHEME):
        return StoreLocation(backend="memory", target="")
    raise ChainscanConfigError(
        f"Unsupported store URI '{uri}'. "
        "Use mongodb://host:port, sqlite:///path/to/file.db or memory://."
    )


def build_store(uri: str, database_name: str) -> IndexerStore:
    """Construct the backend selected by a store URI.

    Backends are imported lazily so the MongoDB driver is only loaded
    when a MongoDB target is configured.

    Args:
        uri: Store URI.
        database_name: Database name for document stores.

    Returns:
        Unopened store; call ``ensure_indexes`` before writing.
    """
    location = parse_store_uri(uri)
    if location.backend == "mongodb":
        from store.mongo_store import MongoIndexerStore

        return MongoIndexerStore(location.target, database_name)
    if location.backend == "sqlite":
        from store.sqlite_store import SqliteIndexerStore

        return SqliteIndexerStore(location.target)
    from store.memory_store import InMemoryIndexerStore

    return InMemoryIndexerStore()
