"""Pydantic models for payment receipts and their database rows."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class ReceiptStage(str, Enum):
    """AP2 receipt lifecycle.  ``intent`` is the only non-terminal stage."""

    INTENT = "intent"
    SETTLED = "settled"
    DECLINED = "declined"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _new_id() -> str:
    """Generate a short hex ID (12 characters)."""
    return uuid.uuid4().hex[:12]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Receipt parts
# ---------------------------------------------------------------------------

class AuthorizationContext(BaseModel):
    """What the wallet signed."""

    model_config = ConfigDict(frozen=True)

    payer: str
    payee: str
    amount: str  # smallest unit, kept as string to preserve precision
    network: str
    nonce: str
    valid_before: str
    authorized_at: datetime = Field(default_factory=_utcnow)


class SettlementContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    network: str
    amount: str
    amount_formatted: str
    currency: str = "USDC"
    payer: str
    payee: str


class DeclineContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str


class VerificationInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    explorer_url: str
    network: str


class Receipt(BaseModel):
    """Maps to the ``receipts`` table."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    ap2_stage: ReceiptStage = ReceiptStage.INTENT
    url: str
    agent_id: Optional[str] = None
    authorization: AuthorizationContext
    settlement: Optional[SettlementContext] = None
    decline: Optional[DeclineContext] = None
    verification: Optional[VerificationInfo] = None

    @property
    def is_terminal(self) -> bool:
        return self.ap2_stage is not ReceiptStage.INTENT

    @classmethod
    def new_id(cls) -> str:
        return _new_id()
