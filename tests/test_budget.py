from datetime import datetime, timedelta, timezone

import pytest

from paperwall.config import BudgetConfig
from paperwall.errors import BudgetExceededError
from paperwall.payments.budget import (
    BudgetReason,
    check_budget,
    needs_totals,
    remaining,
    utc_day_start,
)
from paperwall.storage import SpendingTotals

CENT = "10000"


def _totals(today=0, lifetime=0):
    return SpendingTotals(today=today, lifetime=lifetime, count=0)


class TestNoLimits:
    def test_allowed_by_default(self):
        assert check_budget(CENT, BudgetConfig()).allowed

    def test_required_limits_refuse(self):
        result = check_budget(CENT, BudgetConfig(require_limits=True))
        assert not result.allowed
        assert result.reason is BudgetReason.NO_BUDGET

    def test_max_price_alone_satisfies_requirement(self):
        assert check_budget(CENT, BudgetConfig(require_limits=True), max_price="0.01").allowed

    def test_max_price_alone(self):
        result = check_budget("10001", BudgetConfig(), max_price="0.01")
        assert result.reason is BudgetReason.MAX_PRICE
        assert result.limit == "10000"


class TestLimits:
    def test_per_request(self):
        budget = BudgetConfig(per_request_max="0.01")
        assert check_budget(CENT, budget).allowed

        result = check_budget("10001", budget)
        assert result.reason is BudgetReason.PER_REQUEST
        assert result.limit == "10000"
        assert result.spent is None

    def test_max_price_tighter_than_per_request(self):
        result = check_budget("20000", BudgetConfig(per_request_max="1"), max_price="0.015")
        assert result.reason is BudgetReason.MAX_PRICE
        assert result.limit == "15000"

    def test_per_request_checked_before_max_price(self):
        result = check_budget("50000", BudgetConfig(per_request_max="0.02"), max_price="0.03")
        assert result.reason is BudgetReason.PER_REQUEST

    def test_daily(self):
        budget = BudgetConfig(daily_max="0.05")
        assert check_budget(CENT, budget, _totals(today=40000)).allowed

        result = check_budget(CENT, budget, _totals(today=40001))
        assert result.reason is BudgetReason.DAILY
        assert result.limit == "50000"
        assert result.spent == "40001"

    def test_total(self):
        budget = BudgetConfig(total_max="1")
        result = check_budget(CENT, budget, _totals(today=0, lifetime=995000))
        assert result.reason is BudgetReason.TOTAL
        assert result.limit == "1000000"
        assert result.spent == "995000"

    def test_daily_reported_before_total(self):
        budget = BudgetConfig(daily_max="0.01", total_max="0.01")
        result = check_budget(CENT, budget, _totals(today=1, lifetime=1))
        assert result.reason is BudgetReason.DAILY

    def test_totals_ignored_without_period_limits(self):
        budget = BudgetConfig(per_request_max="1")
        assert check_budget(CENT, budget, _totals(today=10**12, lifetime=10**12)).allowed
        assert not needs_totals(budget)
        assert needs_totals(BudgetConfig(total_max="5"))

    @pytest.mark.parametrize("max_price", ["", "-1", "0.o1", "1e-2"])
    def test_bad_max_price(self, max_price):
        with pytest.raises(ValueError):
            check_budget(CENT, BudgetConfig(), max_price=max_price)


def test_denial_raises_typed_error():
    result = check_budget(CENT, BudgetConfig(daily_max="0.01"), _totals(today=5000))
    with pytest.raises(BudgetExceededError) as excinfo:
        result.raise_for_denial()
    assert excinfo.value.reason == "daily"
    assert excinfo.value.limit == "10000"
    assert excinfo.value.spent == "5000"


def test_allowed_does_not_raise():
    check_budget(CENT, BudgetConfig()).raise_for_denial()


def test_utc_day_start():
    late = datetime(2026, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-5)))
    assert utc_day_start(late) == datetime(2026, 3, 11, tzinfo=timezone.utc)


def test_remaining():
    assert remaining("0.05", 20000) == 30000
    assert remaining("0.01", 20000) == 0
    assert remaining(None, 20000) is None


class TestBudgetConfig:
    def test_yaml_floats_are_accepted(self):
        assert BudgetConfig(daily_max=0.5).daily_max == "0.5"

    @pytest.mark.parametrize("value", ["abc", "-1", "1.", "1,5"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValueError):
            BudgetConfig(total_max=value)

    def test_is_configured(self):
        assert not BudgetConfig(require_limits=True).is_configured
        assert BudgetConfig(per_request_max="0.1").is_configured
