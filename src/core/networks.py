"""Chain network definitions.

This module owns the built-in network table and the optional YAML file
that registers additional networks for the indexer to connect to.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, cast

import yaml

from core.constants import (
    DEFAULT_NETWORK_NAME,
    LOCAL_CHAIN_ID,
    LOCAL_CHAIN_NAME,
    LOCAL_RPC_URL,
    LOCAL_WS_URL,
    NETWORKS_FILE_VERSION,
)
from core.errors import ChainscanConfigError
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class ChainConfig:
    """Connection details for one chain.

    Attributes:
        id: Chain identifier used to key persisted records.
        name: Human-readable chain name.
        ws_url: WebSocket endpoint of the node.
        rpc_url: Optional HTTP endpoint of the node.
    """

    id: int
    name: str
    ws_url: str
    rpc_url: str | None = None


LOCAL_NETWORK = ChainConfig(
    id=LOCAL_CHAIN_ID,
    name=LOCAL_CHAIN_NAME,
    ws_url=LOCAL_WS_URL,
    rpc_url=LOCAL_RPC_URL,
)

BUILTIN_NETWORKS: Mapping[str, ChainConfig] = {DEFAULT_NETWORK_NAME: LOCAL_NETWORK}


def resolve_network(
    network_name: str,
    extra_networks: Mapping[str, ChainConfig] | None = None,
) -> ChainConfig:
    """Resolve a network by name, falling back to the local network.

    Args:
        network_name: Requested network name.
        extra_networks: Networks loaded from a networks file.

    Returns:
        Matching chain config, or the local network for unknown names.
    """
    networks = {**BUILTIN_NETWORKS, **(extra_networks or {})}
    network = networks.get(network_name)
    if network is None:
        _LOGGER.warning(
            "unknown_network",
            network=network_name,
            fallback=DEFAULT_NETWORK_NAME,
            known_networks=sorted(networks),
        )
        return LOCAL_NETWORK
    return network


def load_networks_file(networks_path: str) -> dict[str, ChainConfig]:
    """Load and validate a YAML networks file.

    Args:
        networks_path: Path to a file shaped as
            ``{version: 1, networks: {name: {id, name, ws_url, rpc_url}}}``.

    Returns:
        Networks keyed by name.

    Raises:
        ChainscanConfigError: If the file is missing or fails validation.
    """
    payload = _load_yaml_payload(networks_path)
    root_mapping = _expect_mapping(payload, "networks file root")
    version = root_mapping.get("version")
    if version != NETWORKS_FILE_VERSION:
        raise ChainscanConfigError(
            f"Unsupported networks file version {version!r}. "
            f"Set version: {NETWORKS_FILE_VERSION}."
        )
    networks_mapping = _expect_mapping(root_mapping.get("networks"), "networks")
    return {
        name: _parse_network(name, _expect_mapping(entry, f"network '{name}'"))
        for name, entry in networks_mapping.items()
    }


def _load_yaml_payload(networks_path: str) -> object:
    networks_file = Path(networks_path).expanduser().resolve()
    if not networks_file.exists():
        raise ChainscanConfigError(
            f"Networks file does not exist at {networks_file}. "
            "Fix CHAINSCAN_NETWORKS_FILE or unset it."
        )
    try:
        payload = cast(object, yaml.safe_load(networks_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise ChainscanConfigError(
            f"Failed to read networks file at {networks_file}: {error}. "
            "Check file permissions and retry."
        ) from error
    except yaml.YAMLError as error:
        raise ChainscanConfigError(
            f"Failed to parse networks file at {networks_file}: {error}. "
            "Fix YAML syntax and retry."
        ) from error
    if payload is None:
        raise ChainscanConfigError(
            f"Networks file at {networks_file} is empty. Define 'version' and 'networks'."
        )
    return payload


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise ChainscanConfigError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise ChainscanConfigError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )


def _parse_network(network_name: str, entry: Mapping[str, object]) -> ChainConfig:
    unknown_keys = sorted(set(entry) - {"id", "name", "ws_url", "rpc_url"})
    if unknown_keys:
        raise ChainscanConfigError(
            f"Network '{network_name}' has unsupported keys: {', '.join(unknown_keys)}."
        )
    chain_id = entry.get("id")
    if not isinstance(chain_id, int) or isinstance(chain_id, bool) or chain_id < 0:
        raise ChainscanConfigError(
            f"Network '{network_name}' field 'id' must be a non-negative integer."
        )
    ws_url = entry.get("ws_url")
    if not isinstance(ws_url, str) or not ws_url.startswith(("ws://", "wss://")):
        raise ChainscanConfigError(
            f"Network '{network_name}' field 'ws_url' must be a ws:// or wss:// URL."
        )
    display_name = entry.get("name", network_name)
    rpc_url = entry.get("rpc_url")
    if rpc_url is not None and not isinstance(rpc_url, str):
        raise ChainscanConfigError(f"Network '{network_name}' field 'rpc_url' must be a string.")
    return ChainConfig(id=chain_id, name=str(display_name), ws_url=ws_url, rpc_url=rpc_url)
