"""PBKDF2 key stretching and AES-256-GCM encryption shared by every mode.

The iteration count and hash are fixed so that every wallet written by any
mode can be read back by any other installation.
"""

from __future__ import annotations

from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from paperwall.errors import (
    AuthenticationError,
    DecryptionError,
    DeriveKeyError,
    EncryptionError,
)
from paperwall.randomness import RandomSource, random_bytes

PBKDF2_ITERATIONS = 600_000
AES_KEY_LENGTH = 32  # bytes (AES-256)
SALT_LENGTH = 32
IV_LENGTH = 12  # AES-GCM nonce
AUTH_TAG_LENGTH = 16

_ENGINE_TOKEN = object()


class EncryptionKey:
    """Opaque AES-256-GCM key produced by :meth:`KeyDerivationEngine.derive_key`.

    Cannot be built from outside the engine, cannot be pickled and never
    shows its material in ``repr``.  Call :meth:`wipe` when done with it.
    """

    __slots__ = ("_material",)

    def __init__(self, material: bytes, _token: object = None) -> None:
        if _token is not _ENGINE_TOKEN:
            raise TypeError("EncryptionKey can only be created by KeyDerivationEngine.derive_key()")
        self._material = bytearray(material)

    def wipe(self) -> None:
        """Overwrite the key material with zeros."""
        for i in range(len(self._material)):
            self._material[i] = 0
        self._material = bytearray()

    @property
    def wiped(self) -> bool:
        return len(self._material) == 0

    def _cipher(self) -> AESGCM:
        if self.wiped:
            raise ValueError("EncryptionKey has been wiped")
        return AESGCM(bytes(self._material))

    def __repr__(self) -> str:
        return "<EncryptionKey wiped>" if self.wiped else "<EncryptionKey>"

    def __reduce__(self):
        raise TypeError("EncryptionKey is not serializable")

    def __enter__(self) -> EncryptionKey:
        return self

    def __exit__(self, *exc_info) -> None:
        self.wipe()


@dataclass(frozen=True)
class EncryptedData:
    """Output of one encryption: ciphertext, 12-byte IV and 16-byte tag."""

    ciphertext: bytes
    iv: bytes
    auth_tag: bytes


class KeyDerivationEngine:
    """PBKDF2-HMAC-SHA256 (600k iterations) + AES-256-GCM.

    Parameters
    ----------
    random_source:
        Source for IVs.  Defaults to the process-wide source from
        :mod:`paperwall.randomness`.
    """

    def __init__(self, random_source: RandomSource | None = None) -> None:
        self._random = random_source

    def derive_key(self, salt: bytes, input: str | bytes) -> EncryptionKey:
        """Stretch *input* with *salt* into a 256-bit AES key.

        Raises
        ------
        DeriveKeyError
            If the salt is not 32 bytes or the input is empty.
        """
        if not isinstance(salt, (bytes, bytearray)) or len(salt) != SALT_LENGTH:
            raise DeriveKeyError(f"salt must be exactly {SALT_LENGTH} bytes")

        if isinstance(input, str):
            if not input:
                raise DeriveKeyError("password must not be empty")
            input_bytes = input.encode("utf-8")
        elif isinstance(input, (bytes, bytearray)):
            if not input:
                raise DeriveKeyError("key material must not be empty")
            input_bytes = bytes(input)
        else:
            raise DeriveKeyError(f"unsupported key input type: {type(input).__name__}")

        try:
            kdf = PBKDF2HMAC(
                algorithm=hashes.SHA256(),
                length=AES_KEY_LENGTH,
                salt=bytes(salt),
                iterations=PBKDF2_ITERATIONS,
            )
            material = kdf.derive(input_bytes)
        except Exception as exc:
            raise DeriveKeyError(f"Failed to derive key: {exc}") from exc

        return EncryptionKey(material, _ENGINE_TOKEN)

    def encrypt(self, plaintext: bytes, key: EncryptionKey) -> EncryptedData:
        """Encrypt *plaintext* under a fresh random IV."""
        _require_key(key)
        try:
            iv = random_bytes(IV_LENGTH, self._random)
            sealed = key._cipher().encrypt(iv, bytes(plaintext), None)
        except Exception as exc:
            raise EncryptionError(f"Failed to encrypt data: {exc}") from exc

        return EncryptedData(
            ciphertext=sealed[:-AUTH_TAG_LENGTH],
            iv=iv,
            auth_tag=sealed[-AUTH_TAG_LENGTH:],
        )

    def decrypt(self, encrypted: EncryptedData, key: EncryptionKey) -> bytes:
        """Decrypt and authenticate *encrypted*.

        Raises
        ------
        AuthenticationError
            If the tag does not verify (wrong key, salt, identity or tampering).
        DecryptionError
            If the IV or tag has the wrong length.
        """
        _require_key(key)
        if len(encrypted.iv) != IV_LENGTH:
            raise DecryptionError(f"IV must be {IV_LENGTH} bytes, got {len(encrypted.iv)}")
        if len(encrypted.auth_tag) != AUTH_TAG_LENGTH:
            raise DecryptionError(
                f"Auth tag must be {AUTH_TAG_LENGTH} bytes, got {len(encrypted.auth_tag)}"
            )
        try:
            return key._cipher().decrypt(
                bytes(encrypted.iv),
                bytes(encrypted.ciphertext) + bytes(encrypted.auth_tag),
                None,
            )
        except InvalidTag:
            raise AuthenticationError(
                "Decryption failed: invalid authentication tag or wrong key"
            ) from None


def _require_key(key: object) -> None:
    if not isinstance(key, EncryptionKey):
        raise TypeError("key must be an EncryptionKey from KeyDerivationEngine.derive_key()")
