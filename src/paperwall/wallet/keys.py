"""Private key generation and the encrypt/decrypt round trip.

The persisted record keeps the historical flat format: ``encryptedKey`` is
``ciphertext || authTag`` hex encoded, with the salt and IV stored
alongside.
"""

from __future__ import annotations

import binascii
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from paperwall.errors import DecryptionError
from paperwall.randomness import RandomSource, random_bytes
from paperwall.wallet.engine import AUTH_TAG_LENGTH, IV_LENGTH, SALT_LENGTH, EncryptedData
from paperwall.wallet.modes import EncryptionMode

PRIVATE_KEY_LENGTH = 32


@dataclass(frozen=True)
class EncryptedKeyRecord:
    """Hex-encoded encrypted private key as stored in ``wallet.json``."""

    encrypted_key: str
    key_salt: str
    key_iv: str

    def to_dict(self) -> dict[str, str]:
        return {
            "encryptedKey": self.encrypted_key,
            "keySalt": self.key_salt,
            "keyIv": self.key_iv,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EncryptedKeyRecord:
        try:
            return cls(
                encrypted_key=str(data["encryptedKey"]),
                key_salt=str(data["keySalt"]),
                key_iv=str(data["keyIv"]),
            )
        except KeyError as exc:
            raise DecryptionError(f"Encrypted key record is missing field {exc}") from None


def generate_private_key(random_source: RandomSource | None = None) -> str:
    """Return 32 fresh random bytes as 64 lowercase hex characters."""
    return random_bytes(PRIVATE_KEY_LENGTH, random_source).hex()


def _wipe(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


def encrypt_key(
    private_key_hex: str,
    mode: EncryptionMode,
    identity_or_password: str | bytes | None = None,
    random_source: RandomSource | None = None,
) -> EncryptedKeyRecord:
    """Encrypt the UTF-8 bytes of *private_key_hex* under *mode*.

    A new 32-byte salt is drawn for every call, and the engine draws a new
    IV, so two encryptions of the same key never share either.
    """
    salt = random_bytes(SALT_LENGTH, random_source)
    plaintext = bytearray(private_key_hex.encode("utf-8"))
    key = mode.derive_key(salt, identity_or_password)
    try:
        encrypted = mode.encrypt(bytes(plaintext), key)
    finally:
        key.wipe()
        _wipe(plaintext)

    return EncryptedKeyRecord(
        encrypted_key=(encrypted.ciphertext + encrypted.auth_tag).hex(),
        key_salt=salt.hex(),
        key_iv=encrypted.iv.hex(),
    )


def _unhex(value: str, field: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except (ValueError, TypeError, binascii.Error):
        raise DecryptionError(f"{field} is not valid hex") from None


def decrypt_key(
    record: EncryptedKeyRecord,
    mode: EncryptionMode,
    identity_or_password: str | bytes | None = None,
) -> str:
    """Recover the exact private key string stored in *record*.

    Raises
    ------
    AuthenticationError
        If the salt, identity, password or ciphertext does not match.
    DecryptionError
        If the record itself is malformed.
    """
    combined = _unhex(record.encrypted_key, "encryptedKey")
    salt = _unhex(record.key_salt, "keySalt")
    iv = _unhex(record.key_iv, "keyIv")

    if len(combined) < AUTH_TAG_LENGTH:
        raise DecryptionError("encryptedKey is too short to contain an auth tag")
    if len(salt) != SALT_LENGTH:
        raise DecryptionError(f"keySalt must be {SALT_LENGTH} bytes, got {len(salt)}")
    if len(iv) != IV_LENGTH:
        raise DecryptionError(f"keyIv must be {IV_LENGTH} bytes, got {len(iv)}")

    encrypted = EncryptedData(
        ciphertext=combined[:-AUTH_TAG_LENGTH],
        iv=iv,
        auth_tag=combined[-AUTH_TAG_LENGTH:],
    )

    key = mode.derive_key(salt, identity_or_password)
    try:
        decrypted = bytearray(mode.decrypt(encrypted, key))
    finally:
        key.wipe()

    try:
        return decrypted.decode("utf-8")
    except UnicodeDecodeError:
        raise DecryptionError("Decrypted key is not valid UTF-8") from None
    finally:
        _wipe(decrypted)
