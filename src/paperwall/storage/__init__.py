"""Paperwall storage layer -- async SQLite receipt store and Pydantic models."""

from paperwall.storage.database import (
    Database,
    ReceiptPage,
    ReceiptStore,
    SpendingTotals,
    get_database,
)
from paperwall.storage.models import (
    AuthorizationContext,
    DeclineContext,
    Receipt,
    ReceiptStage,
    SettlementContext,
    VerificationInfo,
)

__all__ = [
    "Database",
    "ReceiptPage",
    "ReceiptStore",
    "SpendingTotals",
    "get_database",
    "AuthorizationContext",
    "DeclineContext",
    "Receipt",
    "ReceiptStage",
    "SettlementContext",
    "VerificationInfo",
]
