"""Resolve which encryption mode a wallet file uses."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional, Union

from paperwall.errors import UnknownEncryptionModeError
from paperwall.randomness import RandomSource
from paperwall.wallet.modes import (
    EncryptionMode,
    EncryptionModeName,
    EnvInjectedEncryptionMode,
    MachineBindingMode,
    PasswordEncryptionMode,
)

VALID_MODES = frozenset(m.value for m in EncryptionModeName)


@dataclass(frozen=True)
class WalletMetadata:
    """The mode-relevant slice of a wallet file.

    ``encryption_mode=None`` means a legacy wallet written before modes
    existed; those are always machine-bound.
    """

    encryption_mode: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> WalletMetadata:
        return cls(encryption_mode=data.get("encryptionMode"))


MetadataLike = Union[WalletMetadata, Mapping[str, Any]]


class EncryptionModeDetector:
    """Maps wallet metadata to a mode name, and mode names to strategies."""

    def __init__(self, random_source: RandomSource | None = None) -> None:
        self._random = random_source

    def detect_mode(self, metadata: MetadataLike) -> EncryptionModeName:
        """Return the mode recorded in *metadata*.

        Raises
        ------
        UnknownEncryptionModeError
            If the recorded mode is set but not one of the known names.
        """
        if not isinstance(metadata, WalletMetadata):
            metadata = WalletMetadata.from_dict(metadata)

        mode = metadata.encryption_mode
        if mode is None:
            return EncryptionModeName.MACHINE_BOUND
        if isinstance(mode, EncryptionModeName):
            return mode
        if not isinstance(mode, str) or mode not in VALID_MODES:
            raise UnknownEncryptionModeError(str(mode))
        return EncryptionModeName(mode)

    def resolve_mode(self, name: EncryptionModeName | str) -> EncryptionMode:
        """Return a fresh strategy instance for *name*."""
        if isinstance(name, str) and not isinstance(name, EncryptionModeName):
            if name not in VALID_MODES:
                raise UnknownEncryptionModeError(name)
            name = EncryptionModeName(name)

        if name is EncryptionModeName.MACHINE_BOUND:
            return MachineBindingMode(self._random)
        if name is EncryptionModeName.PASSWORD:
            return PasswordEncryptionMode(self._random)
        if name is EncryptionModeName.ENV_INJECTED:
            return EnvInjectedEncryptionMode(self._random)
        raise UnknownEncryptionModeError(str(name))

    def detect_and_resolve(self, metadata: MetadataLike) -> EncryptionMode:
        return self.resolve_mode(self.detect_mode(metadata))

    @staticmethod
    def is_valid_mode(value: str) -> bool:
        return value in VALID_MODES
