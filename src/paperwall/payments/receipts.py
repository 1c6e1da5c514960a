"""Receipt creation and the intent -> settled/declined transition."""

from __future__ import annotations

from typing import Optional

from paperwall.errors import ReceiptTransitionError
from paperwall.networks import explorer_tx_url
from paperwall.payments.signer import SignedPayment
from paperwall.storage.models import (
    AuthorizationContext,
    DeclineContext,
    Receipt,
    ReceiptStage,
    SettlementContext,
    VerificationInfo,
)

USDC_DECIMALS = 6
_USDC_MULTIPLIER = 10 ** USDC_DECIMALS


def smallest_to_usdc(smallest: str) -> str:
    """Format a smallest-unit amount as USDC with at least two decimals.

    ``"10000"`` -> ``"0.01"``, ``"1500000"`` -> ``"1.50"``,
    ``"1234567"`` -> ``"1.234567"``.
    """
    value = int(smallest)
    whole, remainder = divmod(value, _USDC_MULTIPLIER)
    frac = str(remainder).rjust(USDC_DECIMALS, "0").rstrip("0")
    if len(frac) < 2:
        frac = frac.ljust(2, "0")
    return f"{whole}.{frac}"


def usdc_to_smallest(usdc: str) -> str:
    """Inverse of :func:`smallest_to_usdc` using integer arithmetic only."""
    whole_part, _, frac_part = usdc.partition(".")
    frac_part = frac_part.ljust(USDC_DECIMALS, "0")[:USDC_DECIMALS]
    return str(int(whole_part or "0") * _USDC_MULTIPLIER + int(frac_part))


def create_intent_receipt(
    url: str,
    signed: SignedPayment,
    network: str,
    agent_id: Optional[str] = None,
) -> Receipt:
    """Receipt for a signed but not yet submitted payment."""
    auth = signed.authorization
    return Receipt(
        url=url,
        agent_id=agent_id,
        authorization=AuthorizationContext(
            payer=auth.from_address,
            payee=auth.to,
            amount=auth.value,
            network=network,
            nonce=auth.nonce,
            valid_before=auth.valid_before,
        ),
    )


def _require_intent(receipt: Receipt, target: ReceiptStage) -> None:
    if receipt.ap2_stage is not ReceiptStage.INTENT:
        raise ReceiptTransitionError(
            f"Receipt {receipt.id} is already '{receipt.ap2_stage.value}'; "
            f"cannot move to '{target.value}'"
        )


def settle_receipt(receipt: Receipt, tx_hash: str) -> Receipt:
    """Return the ``settled`` successor of an ``intent`` receipt."""
    _require_intent(receipt, ReceiptStage.SETTLED)
    auth = receipt.authorization
    return receipt.model_copy(
        update={
            "ap2_stage": ReceiptStage.SETTLED,
            "settlement": SettlementContext(
                tx_hash=tx_hash,
                network=auth.network,
                amount=auth.amount,
                amount_formatted=smallest_to_usdc(auth.amount),
                payer=auth.payer,
                payee=auth.payee,
            ),
            "verification": VerificationInfo(
                explorer_url=explorer_tx_url(auth.network, tx_hash),
                network=auth.network,
            ),
        }
    )


def decline_receipt(receipt: Receipt, reason: str) -> Receipt:
    """Return the ``declined`` successor of an ``intent`` receipt."""
    _require_intent(receipt, ReceiptStage.DECLINED)
    return receipt.model_copy(
        update={
            "ap2_stage": ReceiptStage.DECLINED,
            "decline": DeclineContext(reason=reason),
        }
    )
