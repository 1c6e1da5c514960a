"""Single source of randomness for salts, IVs, nonces and private keys.

Production code always reads from :func:`get_random_source`.  Tests can swap
in a deterministic source with :func:`set_random_source` and restore the
previous one afterwards.
"""

from __future__ import annotations

import secrets
from typing import Protocol


class RandomSource(Protocol):
    """Anything that can hand out *n* random bytes."""

    def token_bytes(self, n: int) -> bytes: ...


class SystemRandomSource:
    """Cryptographically secure bytes from the operating system."""

    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)

    def __repr__(self) -> str:
        return "SystemRandomSource()"


_source: RandomSource = SystemRandomSource()


def get_random_source() -> RandomSource:
    """Return the process-wide random source."""
    return _source


def set_random_source(source: RandomSource) -> RandomSource:
    """Install *source* process-wide and return the one it replaced."""
    global _source
    previous = _source
    _source = source
    return previous


def random_bytes(n: int, source: RandomSource | None = None) -> bytes:
    """Draw *n* bytes from *source*, or from the process-wide source."""
    src = source if source is not None else _source
    data = src.token_bytes(n)
    if len(data) != n:
        raise ValueError(f"Random source returned {len(data)} bytes, expected {n}")
    return data
