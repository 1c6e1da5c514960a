"""Exception hierarchy shared by the wallet and payment layers."""

from __future__ import annotations


class PaperwallError(Exception):
    """Base class for every error raised by paperwall."""


# ---------------------------------------------------------------------------
# Key derivation / encryption
# ---------------------------------------------------------------------------

class DeriveKeyError(PaperwallError):
    """Raised when a key cannot be derived from the supplied input."""


class EncryptionError(PaperwallError):
    """Raised when the AES-256-GCM encrypt primitive fails."""


class DecryptionError(PaperwallError):
    """Raised when encrypted data cannot be decrypted."""


class AuthenticationError(DecryptionError):
    """Raised when the GCM authentication tag does not verify.

    This is the expected signal for a wrong password, a wrong machine
    identity or tampered data.  Callers can catch it to re-prompt.
    """

    def __init__(self, message: str = "Authentication tag verification failed") -> None:
        super().__init__(message)


class UnknownEncryptionModeError(PaperwallError):
    """Raised when a wallet names an encryption mode we do not know."""

    def __init__(self, mode: str) -> None:
        self.mode = mode
        super().__init__(
            f'Unknown encryption mode: "{mode}". '
            "Valid modes: password, env-injected, machine-bound"
        )


# ---------------------------------------------------------------------------
# Wallet / network
# ---------------------------------------------------------------------------

class WalletError(PaperwallError):
    """Raised for wallet file problems (missing, already present, bad key)."""


class UnsupportedNetworkError(PaperwallError):
    """Raised for unknown or malformed CAIP-2 network identifiers."""


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------

class UnsafeUrlError(PaperwallError):
    """Raised when an outbound URL fails the allow-list policy."""


class PaymentError(PaperwallError):
    """Base class for payment submission failures."""


class PaymentTransportError(PaymentError):
    """The endpoint could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class PaymentDeclinedError(PaymentError):
    """The endpoint answered ``{"success": false}``."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"Payment URL error: {reason}")


class MalformedResponseError(PaymentError):
    """The endpoint answered with a body we cannot interpret."""


class ReceiptTransitionError(PaperwallError):
    """Raised when a terminal receipt is asked to change stage."""


class BudgetExceededError(PaymentError):
    """A payment was refused before signing because it breaks a spending limit.

    ``reason`` is one of ``per_request``, ``daily``, ``total``, ``max_price``
    or ``no_budget``.  ``limit`` and ``spent`` are smallest-unit strings when
    they apply.
    """

    def __init__(self, reason: str, limit: str | None = None, spent: str | None = None) -> None:
        self.reason = reason
        self.limit = limit
        self.spent = spent
        detail = f"Budget exceeded ({reason})"
        if limit is not None:
            detail += f": limit {limit}"
        if spent is not None:
            detail += f", already spent {spent}"
        super().__init__(detail)
