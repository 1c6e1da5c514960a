"""Encryption modes protecting the wallet private key at rest.

Every mode shares the same cipher (:class:`KeyDerivationEngine`); they only
differ in where the key-derivation input comes from:

- ``machine-bound``: hostname + uid of the current user, nothing stored.
- ``password``: a password typed by the user.
- ``env-injected``: 32 raw bytes, base64 encoded in ``PAPERWALL_WALLET_KEY``.
"""

from __future__ import annotations

import base64
import binascii
import os
import re
import socket
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from paperwall.errors import AuthenticationError, DeriveKeyError
from paperwall.randomness import RandomSource
from paperwall.wallet.engine import EncryptedData, EncryptionKey, KeyDerivationEngine


class EncryptionModeName(str, Enum):
    MACHINE_BOUND = "machine-bound"
    PASSWORD = "password"
    ENV_INJECTED = "env-injected"


MACHINE_BINDING_SALT = "paperwall-agent-machine-bound-v1"
ENV_VAR_NAME = "PAPERWALL_WALLET_KEY"
ENV_KEY_LENGTH = 32
MIN_PASSWORD_LENGTH = 8

_KEY_HINT = (
    'Generate a key with: python -c "import base64, secrets; '
    'print(base64.b64encode(secrets.token_bytes(32)).decode())"'
)
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_WHITESPACE_RE = re.compile(r"\s")


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------

class EncryptionMode(ABC):
    """Strategy supplying the key-derivation input for one wallet mode."""

    name: EncryptionModeName

    def __init__(self, random_source: RandomSource | None = None) -> None:
        self._engine = KeyDerivationEngine(random_source)

    @abstractmethod
    def derive_key(self, salt: bytes, input: str | bytes | None = None) -> EncryptionKey:
        """Derive the AES key for this mode from *salt* and *input*."""

    def check_new_secret(self, input: str | bytes | None) -> None:
        """Validate *input* before it is used to encrypt a new wallet.

        Only generation flows call this; decryption accepts anything and
        lets authentication decide.
        """

    def encrypt(self, plaintext: bytes, key: EncryptionKey) -> EncryptedData:
        return self._engine.encrypt(plaintext, key)

    def decrypt(self, encrypted: EncryptedData, key: EncryptionKey) -> bytes:
        return self._engine.decrypt(encrypted, key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# ---------------------------------------------------------------------------
# Machine-bound
# ---------------------------------------------------------------------------

def _current_uid() -> int:
    getuid = getattr(os, "getuid", None)
    if getuid is None:
        # Windows has no uid; -1 keeps the identity format stable.
        return -1
    return getuid()


def get_machine_identity() -> str:
    """Return ``hostname:uid:<fixed salt>`` for the current process."""
    return f"{socket.gethostname()}:{_current_uid()}:{MACHINE_BINDING_SALT}"


class MachineBindingMode(EncryptionMode):
    """Bind the wallet to this host and OS user.

    The wallet becomes unreadable if the hostname or uid changes.
    """

    name = EncryptionModeName.MACHINE_BOUND

    def derive_key(self, salt: bytes, input: str | bytes | None = None) -> EncryptionKey:
        # input is ignored; the identity is always recomputed
        return self._engine.derive_key(salt, get_machine_identity())


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PasswordStrengthResult:
    valid: bool
    reason: Optional[str] = None


def validate_password_strength(password: str) -> PasswordStrengthResult:
    """Require at least 8 characters; no composition rules."""
    if len(password) < MIN_PASSWORD_LENGTH:
        return PasswordStrengthResult(
            valid=False,
            reason=(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters. "
                "Longer passphrases are more secure than short complex passwords."
            ),
        )
    return PasswordStrengthResult(valid=True)


class PasswordEncryptionMode(EncryptionMode):
    """Derive the wallet key from a user-supplied password."""

    name = EncryptionModeName.PASSWORD

    def derive_key(self, salt: bytes, input: str | bytes | None = None) -> EncryptionKey:
        if input is None:
            raise DeriveKeyError("Password is required for password-encrypted wallets")
        if not isinstance(input, str):
            raise DeriveKeyError(
                "Password mode requires a string input, not raw bytes"
            )
        if input == "":
            # Generation flows reject this in check_new_secret first; on
            # decrypt an empty answer is just a wrong password.
            raise AuthenticationError("Wrong password: the password is empty")
        return self._engine.derive_key(salt, input)

    def check_new_secret(self, input: str | bytes | None) -> None:
        if not isinstance(input, str):
            raise DeriveKeyError("Password is required for password-encrypted wallets")
        strength = validate_password_strength(input)
        if not strength.valid:
            raise DeriveKeyError(strength.reason or "Password too weak")


# ---------------------------------------------------------------------------
# Environment-injected
# ---------------------------------------------------------------------------

def decode_key_material(encoded: str) -> bytes:
    """Strictly decode a base64 key that must be exactly 32 bytes.

    Raises
    ------
    DeriveKeyError
        With a distinct message for empty, whitespace, non-base64 and
        wrong-length values.
    """
    if encoded == "":
        raise DeriveKeyError(f"{ENV_VAR_NAME} is empty. {_KEY_HINT}")

    if _WHITESPACE_RE.search(encoded):
        raise DeriveKeyError(
            f"{ENV_VAR_NAME} contains whitespace. The value must be a clean "
            "base64 string with no spaces or newlines."
        )

    if not _BASE64_RE.match(encoded):
        raise DeriveKeyError(f"{ENV_VAR_NAME} is not valid base64. {_KEY_HINT}")

    try:
        decoded = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise DeriveKeyError(
            f"{ENV_VAR_NAME} is not valid base64 (bad padding). {_KEY_HINT}"
        ) from None

    if len(decoded) != ENV_KEY_LENGTH:
        raise DeriveKeyError(
            f"{ENV_VAR_NAME} must decode to exactly {ENV_KEY_LENGTH} bytes, "
            f"got {len(decoded)}. {_KEY_HINT}"
        )
    return decoded


def read_key_from_environment(environ: Mapping[str, str] | None = None) -> str:
    """Return the raw ``PAPERWALL_WALLET_KEY`` value.

    Raises
    ------
    DeriveKeyError
        If the variable is unset.
    """
    env = os.environ if environ is None else environ
    value = env.get(ENV_VAR_NAME)
    if value is None:
        raise DeriveKeyError(
            f"Environment variable {ENV_VAR_NAME} is not set. "
            "For container deployments, set it to a base64-encoded 32-byte key.\n"
            f"{_KEY_HINT}"
        )
    return value


class EnvInjectedEncryptionMode(EncryptionMode):
    """Headless mode: key material comes from ``PAPERWALL_WALLET_KEY``.

    Parameters
    ----------
    environ:
        Mapping to read the variable from.  Defaults to ``os.environ`` at
        derivation time.
    """

    name = EncryptionModeName.ENV_INJECTED

    def __init__(
        self,
        random_source: RandomSource | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(random_source)
        self._environ = environ

    def derive_key(self, salt: bytes, input: str | bytes | None = None) -> EncryptionKey:
        # input is ignored; key material always comes from the environment
        key_bytes = decode_key_material(read_key_from_environment(self._environ))
        return self._engine.derive_key(salt, key_bytes)

    def check_new_secret(self, input: str | bytes | None) -> None:
        decode_key_material(read_key_from_environment(self._environ))
