import base64
import hashlib

import pytest

from paperwall.wallet import engine

# Well-known development account (Hardhat / Anvil account #0)
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
PAY_TO = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
ALT_PAY_TO = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"
SEPOLIA = "eip155:324705682"
SEPOLIA_USDC = "0x2e08028E3C4c2356572E096d8EF835cD5C6030bD"

ENV_KEY_BYTES = bytes(range(32))
ENV_KEY_B64 = base64.b64encode(ENV_KEY_BYTES).decode()


class CountingRandomSource:
    """Deterministic bytes: SHA-256 of a seed and a call counter."""

    def __init__(self, seed: bytes = b"paperwall-tests") -> None:
        self.seed = seed
        self.calls = 0

    def token_bytes(self, n: int) -> bytes:
        out = b""
        block = 0
        while len(out) < n:
            out += hashlib.sha256(
                self.seed + self.calls.to_bytes(4, "big") + block.to_bytes(4, "big")
            ).digest()
            block += 1
        self.calls += 1
        return out[:n]


@pytest.fixture(autouse=True)
def fast_kdf(request, monkeypatch):
    """Keep PBKDF2 cheap unless a test asks for the real iteration count."""
    if request.node.get_closest_marker("real_kdf") is None:
        monkeypatch.setattr(engine, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("PAPERWALL_PRIVATE_KEY", "PAPERWALL_WALLET_KEY", "PAPERWALL_HOME"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def paperwall_home(tmp_path, monkeypatch):
    home = tmp_path / "paperwall-home"
    monkeypatch.setenv("PAPERWALL_HOME", str(home))
    return home


@pytest.fixture
def env_key(monkeypatch):
    monkeypatch.setenv("PAPERWALL_WALLET_KEY", ENV_KEY_B64)
    return ENV_KEY_B64


@pytest.fixture
def counting_random():
    return CountingRandomSource()
