"""Encrypted ``wallet.json`` management.

The wallet file holds the address, the encrypted key record, the default
network and the encryption mode.  Wallets written before modes existed
have no ``encryptionMode`` field and are treated as machine-bound.
"""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from eth_account import Account
from web3 import Web3

from paperwall.config import WALLET_FILENAME
from paperwall.errors import WalletError
from paperwall.networks import DEFAULT_NETWORK, get_network
from paperwall.randomness import RandomSource
from paperwall.wallet.detector import EncryptionModeDetector, WalletMetadata
from paperwall.wallet.keys import EncryptedKeyRecord, decrypt_key, encrypt_key, generate_private_key
from paperwall.wallet.modes import EncryptionModeName

logger = logging.getLogger("paperwall.wallet.keystore")

PRIVATE_KEY_ENV_VAR = "PAPERWALL_PRIVATE_KEY"

_RAW_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_PREFIXED_KEY_RE = re.compile(r"^0x[0-9a-fA-F]{64}$")


@dataclass(frozen=True)
class WalletFile:
    address: str
    record: EncryptedKeyRecord
    network_id: str
    encryption_mode: Optional[str] = None

    @property
    def metadata(self) -> WalletMetadata:
        return WalletMetadata(encryption_mode=self.encryption_mode)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"address": self.address}
        data.update(self.record.to_dict())
        data["networkId"] = self.network_id
        if self.encryption_mode is not None:
            data["encryptionMode"] = self.encryption_mode
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WalletFile:
        try:
            address = data["address"]
        except KeyError:
            raise WalletError("Wallet file is missing 'address'") from None
        return cls(
            address=address,
            record=EncryptedKeyRecord.from_dict(data),
            network_id=data.get("networkId", DEFAULT_NETWORK),
            encryption_mode=data.get("encryptionMode"),
        )


@dataclass(frozen=True)
class WalletInfo:
    address: str
    network: str
    encryption_mode: EncryptionModeName
    storage_path: Path


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def wallet_path(config_dir: Path) -> Path:
    return Path(config_dir) / WALLET_FILENAME


def load_wallet(config_dir: Path) -> WalletFile | None:
    """Read ``wallet.json``.  Returns ``None`` if no wallet exists."""
    path = wallet_path(config_dir)
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    return WalletFile.from_dict(data)


def load_address(config_dir: Path) -> str | None:
    """Read the wallet address without decrypting anything."""
    wallet = load_wallet(config_dir)
    if wallet is None:
        return None
    raw_address = wallet.address
    if not raw_address.startswith("0x"):
        raw_address = "0x" + raw_address
    return Web3.to_checksum_address(raw_address)


def _write_wallet(config_dir: Path, wallet: WalletFile) -> Path:
    path = wallet_path(config_dir)
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    content = json.dumps(wallet.to_dict(), indent=2)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(content)
    if os.name == "posix":
        os.chmod(path, 0o600)
    return path


def _assert_no_existing_wallet(config_dir: Path) -> None:
    existing = load_wallet(config_dir)
    if existing is not None:
        raise WalletError(
            f"Wallet already exists (address: {existing.address}). "
            "Use --force to overwrite."
        )


# ---------------------------------------------------------------------------
# Create / import
# ---------------------------------------------------------------------------

def _store_key(
    config_dir: Path,
    raw_key: str,
    network: str,
    mode: EncryptionModeName | str,
    mode_input: str | None,
    force: bool,
    random_source: RandomSource | None,
) -> WalletInfo:
    get_network(network)
    if not force:
        _assert_no_existing_wallet(config_dir)

    detector = EncryptionModeDetector(random_source)
    mode_name = detector.detect_mode(WalletMetadata(encryption_mode=mode))
    strategy = detector.resolve_mode(mode_name)
    strategy.check_new_secret(mode_input)

    account = Account.from_key("0x" + raw_key)
    record = encrypt_key(raw_key, strategy, mode_input, random_source)

    wallet = WalletFile(
        address=account.address,
        record=record,
        network_id=network,
        encryption_mode=mode_name.value,
    )
    path = _write_wallet(config_dir, wallet)
    return WalletInfo(
        address=account.address,
        network=network,
        encryption_mode=mode_name,
        storage_path=path,
    )


def create_wallet(
    config_dir: Path,
    network: str = DEFAULT_NETWORK,
    mode: EncryptionModeName | str = EncryptionModeName.MACHINE_BOUND,
    mode_input: str | None = None,
    force: bool = False,
    random_source: RandomSource | None = None,
) -> WalletInfo:
    """Generate a new keypair and save it encrypted under *mode*.

    Raises
    ------
    WalletError
        If a wallet already exists and *force* is false.
    DeriveKeyError
        If the password is too weak or the env key is unusable.
    UnsupportedNetworkError
        If *network* is unknown.
    """
    raw_key = generate_private_key(random_source)
    info = _store_key(config_dir, raw_key, network, mode, mode_input, force, random_source)
    logger.info(f"Wallet created: {info.address} ({info.encryption_mode.value}, {network})")
    return info


def normalize_private_key(private_key_hex: str) -> str:
    """Strip an optional ``0x`` and validate 64 hex characters."""
    raw_key = private_key_hex[2:] if private_key_hex.startswith("0x") else private_key_hex
    if not _RAW_KEY_RE.match(raw_key):
        raise WalletError(
            "Invalid private key: must be 64 hex characters (with optional 0x prefix)"
        )
    return raw_key


def import_wallet(
    config_dir: Path,
    private_key_hex: str,
    network: str = DEFAULT_NETWORK,
    mode: EncryptionModeName | str = EncryptionModeName.MACHINE_BOUND,
    mode_input: str | None = None,
    force: bool = False,
    random_source: RandomSource | None = None,
) -> WalletInfo:
    """Encrypt and save an existing private key."""
    raw_key = normalize_private_key(private_key_hex)
    info = _store_key(config_dir, raw_key, network, mode, mode_input, force, random_source)
    logger.info(f"Wallet imported: {info.address} ({info.encryption_mode.value}, {network})")
    return info


# ---------------------------------------------------------------------------
# Decrypt
# ---------------------------------------------------------------------------

def get_wallet_encryption_mode(config_dir: Path) -> EncryptionModeName | None:
    """Mode of the stored wallet, or ``None`` if there is no wallet."""
    wallet = load_wallet(config_dir)
    if wallet is None:
        return None
    return EncryptionModeDetector().detect_mode(wallet.metadata)


def decrypt_wallet_key(wallet: WalletFile, mode_input: str | None = None) -> str:
    """Decrypt *wallet* and return the ``0x``-prefixed private key."""
    strategy = EncryptionModeDetector().detect_and_resolve(wallet.metadata)
    raw_key = decrypt_key(wallet.record, strategy, mode_input)
    return "0x" + raw_key


def resolve_private_key(
    config_dir: Path,
    mode_input: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Return the signing key.

    ``PAPERWALL_PRIVATE_KEY`` wins if set; otherwise the wallet file is
    decrypted with its recorded mode.

    Raises
    ------
    WalletError
        If the env key is malformed or no wallet is configured.
    AuthenticationError
        If the password / machine identity / env key does not match.
    """
    env = os.environ if environ is None else environ
    env_key = env.get(PRIVATE_KEY_ENV_VAR)
    if env_key:
        if not _PREFIXED_KEY_RE.match(env_key):
            raise WalletError(
                f"{PRIVATE_KEY_ENV_VAR} must be 0x followed by 64 hex characters"
            )
        return env_key

    wallet = load_wallet(config_dir)
    if wallet is None:
        raise WalletError("No wallet configured. Run: paperwall wallet create")
    return decrypt_wallet_key(wallet, mode_input)
