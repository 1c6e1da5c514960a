import pytest

from paperwall.errors import UnsupportedNetworkError
from paperwall.networks import (
    DEFAULT_NETWORK,
    explorer_tx_url,
    get_network,
    list_network_ids,
    list_networks,
    parse_chain_id,
)


def test_known_networks():
    assert list_network_ids() == ["eip155:324705682", "eip155:1187947933"]
    assert DEFAULT_NETWORK in list_network_ids()
    for net in list_networks():
        assert parse_chain_id(net.caip2) == net.chain_id


def test_get_network():
    net = get_network("eip155:1187947933")
    assert net.name == "SKALE Base"
    assert net.usdc_address.startswith("0x")


def test_unknown_network():
    with pytest.raises(UnsupportedNetworkError, match="eip155:1"):
        get_network("eip155:1")


@pytest.mark.parametrize(
    "value",
    ["", "eip155", "eip155:", "eip155:0x1", "cosmos:1", " eip155:1", "eip155:1\n", "eip155:\u0661"],
)
def test_parse_chain_id_rejects(value):
    with pytest.raises(UnsupportedNetworkError):
        parse_chain_id(value)


def test_explorer_url():
    assert explorer_tx_url("eip155:324705682", "0xab") == (
        "https://base-sepolia-testnet-explorer.skalenodes.com/tx/0xab"
    )
    assert explorer_tx_url("eip155:10", "0xab") == "https://blockscan.com/tx/0xab"
