"""CAIP-2 network definitions for the supported SKALE chains."""

from __future__ import annotations

import re
from dataclasses import dataclass

from paperwall.errors import UnsupportedNetworkError


@dataclass(frozen=True)
class Network:
    """An EVM network reachable for USDC payments."""

    caip2: str
    name: str
    chain_id: int
    rpc_url: str
    usdc_address: str
    explorer_url: str


NETWORKS: dict[str, Network] = {
    "eip155:324705682": Network(
        caip2="eip155:324705682",
        name="SKALE Base Sepolia",
        chain_id=324705682,
        rpc_url="https://base-sepolia-testnet.skalenodes.com/v1/jubilant-horrible-ancha",
        usdc_address="0x2e08028E3C4c2356572E096d8EF835cD5C6030bD",
        explorer_url="https://base-sepolia-testnet-explorer.skalenodes.com",
    ),
    "eip155:1187947933": Network(
        caip2="eip155:1187947933",
        name="SKALE Base",
        chain_id=1187947933,
        rpc_url="https://skale-base.skalenodes.com/v1/base",
        usdc_address="0x85889c8c714505E0c94b30fcfcF64fE3Ac8FCb20",
        explorer_url="https://skale-base-explorer.skalenodes.com",
    ),
}

DEFAULT_NETWORK = "eip155:324705682"
FALLBACK_EXPLORER_URL = "https://blockscan.com"

_CAIP2_EIP155_RE = re.compile(r"eip155:([0-9]+)")


def get_network(caip2: str) -> Network:
    """Look up a network by CAIP-2 id.  Raises ``UnsupportedNetworkError``."""
    network = NETWORKS.get(caip2)
    if network is None:
        raise UnsupportedNetworkError(
            f"Unsupported network '{caip2}'. Available: {list_network_ids()}"
        )
    return network


def list_network_ids() -> list[str]:
    return list(NETWORKS.keys())


def list_networks() -> list[Network]:
    return list(NETWORKS.values())


def parse_chain_id(caip2: str) -> int:
    """Extract the numeric chain id from ``eip155:<id>``."""
    match = _CAIP2_EIP155_RE.fullmatch(caip2 or "")
    if match is None:
        raise UnsupportedNetworkError(
            f"Invalid CAIP-2 format (expected eip155:<chainId>): {caip2!r}"
        )
    return int(match.group(1))


def explorer_tx_url(caip2: str, tx_hash: str) -> str:
    """Block explorer link for *tx_hash*, with a generic fallback."""
    network = NETWORKS.get(caip2)
    base = network.explorer_url if network is not None else FALLBACK_EXPLORER_URL
    return f"{base}/tx/{tx_hash}"
