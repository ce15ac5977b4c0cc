"""Runtime configuration model for Chainscan.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

from dataclasses import dataclass
import os

from core.constants import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DATABASE_NAME,
    DEFAULT_NETWORK_NAME,
    DEFAULT_STORE_URI,
)
from core.errors import ChainscanConfigError
from core.networks import ChainConfig, load_networks_file, resolve_network


@dataclass(frozen=True)
class ChainscanConfig:
    """Validated runtime configuration.

    Attributes:
        network: Chain the indexer connects to.
        store_uri: Store target, one of mongodb://, sqlite:/// or memory://.
        database_name: Database name for document stores.
        concurrency: Default number of in-flight block fetches.
    """

    network: ChainConfig
    store_uri: str
    database_name: str
    concurrency: int

    @classmethod
    def from_env(cls, network_name: str | None = None) -> "ChainscanConfig":
        """Build config from process environment variables.

        Args:
            network_name: Optional network name overriding CHAINSCAN_NETWORK.

        Returns:
            A validated config object.

        Raises:
            ChainscanConfigError: If environment values are invalid.
        """
        network_name = network_name or os.getenv("CHAINSCAN_NETWORK", DEFAULT_NETWORK_NAME)
        networks_file = os.getenv("CHAINSCAN_NETWORKS_FILE")
        extra_networks = load_networks_file(networks_file) if networks_file else None
        concurrency = _parse_concurrency(
            os.getenv("CHAINSCAN_CONCURRENCY", str(DEFAULT_CONCURRENCY))
        )
        return cls(
            network=resolve_network(network_name, extra_networks),
            store_uri=os.getenv("CHAINSCAN_STORE_URI", DEFAULT_STORE_URI),
            database_name=os.getenv("CHAINSCAN_DB_NAME", DEFAULT_DATABASE_NAME),
            concurrency=concurrency,
        )


def _parse_concurrency(raw_value: str) -> int:
    """Parse the concurrency environment value.

    Args:
        raw_value: Raw string from environment.

    Returns:
        Parsed positive integer.

    Raises:
        ChainscanConfigError: If value is not a positive integer.
    """
    try:
        concurrency = int(raw_value)
    except ValueError as error:
        raise ChainscanConfigError(
            "Invalid CHAINSCAN_CONCURRENCY value: "
            f"expected integer, got '{raw_value}'. "
            "Set CHAINSCAN_CONCURRENCY to a positive number."
        ) from error
    if concurrency < 1:
        raise ChainscanConfigError(
            f"Invalid CHAINSCAN_CONCURRENCY value {concurrency}: must be at least 1."
        )
    return concurrency
