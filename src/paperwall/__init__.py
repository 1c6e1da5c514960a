"""Paperwall agent wallet: encrypted key storage and EIP-712 micropayments."""

__version__ = "0.1.0"

from paperwall.errors import (
    AuthenticationError,
    BudgetExceededError,
    DecryptionError,
    DeriveKeyError,
    EncryptionError,
    PaperwallError,
    PaymentDeclinedError,
    PaymentError,
    UnknownEncryptionModeError,
    WalletError,
)
from paperwall.payments.signer import PaymentTerms, SignedPayment, SignerDomain, sign_payment
from paperwall.wallet.manager import PaymentResult, WalletManager
from paperwall.wallet.modes import EncryptionModeName

__all__ = [
    "__version__",
    "AuthenticationError",
    "BudgetExceededError",
    "DecryptionError",
    "DeriveKeyError",
    "EncryptionError",
    "PaperwallError",
    "PaymentDeclinedError",
    "PaymentError",
    "UnknownEncryptionModeError",
    "WalletError",
    "PaymentTerms",
    "SignedPayment",
    "SignerDomain",
    "sign_payment",
    "PaymentResult",
    "WalletManager",
    "EncryptionModeName",
]
