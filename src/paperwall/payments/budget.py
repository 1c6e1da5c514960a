"""Spending limits enforced before a payment is signed.

Limits come from :class:`~paperwall.config.BudgetConfig` in USDC; the
amount being paid and the running totals are in smallest units.  Checks run
in a fixed order and the first one that fails wins: per-request, max price,
daily, total.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from paperwall.config import BudgetConfig
from paperwall.errors import BudgetExceededError
from paperwall.payments.receipts import usdc_to_smallest
from paperwall.storage.database import SpendingTotals


class BudgetReason(str, Enum):
    PER_REQUEST = "per_request"
    DAILY = "daily"
    TOTAL = "total"
    MAX_PRICE = "max_price"
    NO_BUDGET = "no_budget"


@dataclass(frozen=True)
class BudgetCheckResult:
    allowed: bool
    reason: Optional[BudgetReason] = None
    limit: Optional[str] = None
    spent: Optional[str] = None

    def raise_for_denial(self) -> None:
        if not self.allowed:
            raise BudgetExceededError(self.reason.value, limit=self.limit, spent=self.spent)


ALLOWED = BudgetCheckResult(allowed=True)
NO_SPENDING = SpendingTotals(today=0, lifetime=0, count=0)

_USDC_RE = re.compile(r"[0-9]+(\.[0-9]+)?")


def utc_day_start(now: datetime | None = None) -> datetime:
    """Midnight UTC of the day containing *now*."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def needs_totals(budget: BudgetConfig) -> bool:
    return budget.daily_max is not None or budget.total_max is not None


def check_budget(
    amount: str,
    budget: BudgetConfig,
    totals: SpendingTotals = NO_SPENDING,
    max_price: str | None = None,
) -> BudgetCheckResult:
    """Decide whether paying *amount* (smallest units) stays within limits.

    Parameters
    ----------
    amount:
        Amount about to be signed, base-10 smallest units.
    budget:
        Configured limits.
    totals:
        Settled spend so far.  Only read when a daily or total limit is set.
    max_price:
        Optional per-call ceiling in USDC.  With no configured limits this
        is the only check; with ``require_limits`` and neither, the payment
        is refused as ``no_budget``.
    """
    value = int(amount)
    if max_price is not None and not _USDC_RE.fullmatch(max_price):
        raise ValueError(f"max price must be a USDC amount like '0.05', got {max_price!r}")

    if not budget.is_configured:
        if max_price is None:
            if budget.require_limits:
                return BudgetCheckResult(allowed=False, reason=BudgetReason.NO_BUDGET)
            return ALLOWED
        return _check_ceiling(value, max_price, BudgetReason.MAX_PRICE)

    if budget.per_request_max is not None:
        result = _check_ceiling(value, budget.per_request_max, BudgetReason.PER_REQUEST)
        if not result.allowed:
            return result

    if max_price is not None:
        result = _check_ceiling(value, max_price, BudgetReason.MAX_PRICE)
        if not result.allowed:
            return result

    if budget.daily_max is not None:
        limit = int(usdc_to_smallest(budget.daily_max))
        if totals.today + value > limit:
            return BudgetCheckResult(
                allowed=False, reason=BudgetReason.DAILY, limit=str(limit), spent=str(totals.today)
            )

    if budget.total_max is not None:
        limit = int(usdc_to_smallest(budget.total_max))
        if totals.lifetime + value > limit:
            return BudgetCheckResult(
                allowed=False, reason=BudgetReason.TOTAL, limit=str(limit), spent=str(totals.lifetime)
            )

    return ALLOWED


def _check_ceiling(value: int, ceiling_usdc: str, reason: BudgetReason) -> BudgetCheckResult:
    limit = int(usdc_to_smallest(ceiling_usdc))
    if value > limit:
        return BudgetCheckResult(allowed=False, reason=reason, limit=str(limit))
    return ALLOWED


def remaining(limit_usdc: str | None, spent: int) -> int | None:
    """Smallest units left under *limit_usdc*, floored at zero."""
    if limit_usdc is None:
        return None
    return max(int(usdc_to_smallest(limit_usdc)) - spent, 0)
