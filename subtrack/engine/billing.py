"""
Billing cycle math.

Every amount is re-expressed through fixed conversion constants; there is no
calendar-accurate proration. A cycle the engine does not know is treated as
monthly rather than rejected.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable

from subtrack.core.validation import parse_amount
from subtrack.db.models import BillingCycle, Subscription

WEEKS_PER_MONTH = Decimal("4.33")
MONTHS_PER_YEAR = Decimal(12)
DAYS_PER_MONTH = Decimal(30)
WEEKS_PER_YEAR = Decimal(52)
DAYS_PER_YEAR = Decimal(365)
DAYS_PER_WEEK = Decimal(7)

_ONE = Decimal(1)

# _FACTORS[target][cycle] = (multiplier, divisor)
_FACTORS: dict[str, dict[str, tuple[Decimal, Decimal]]] = {
    BillingCycle.DAILY.value: {
        BillingCycle.DAILY.value: (_ONE, _ONE),
        BillingCycle.WEEKLY.value: (_ONE, DAYS_PER_WEEK),
        BillingCycle.MONTHLY.value: (_ONE, DAYS_PER_MONTH),
        BillingCycle.YEARLY.value: (_ONE, DAYS_PER_YEAR),
    },
    BillingCycle.WEEKLY.value: {
        BillingCycle.DAILY.value: (DAYS_PER_WEEK, _ONE),
        BillingCycle.WEEKLY.value: (_ONE, _ONE),
        BillingCycle.MONTHLY.value: (_ONE, WEEKS_PER_MONTH),
        BillingCycle.YEARLY.value: (_ONE, WEEKS_PER_YEAR),
    },
    BillingCycle.MONTHLY.value: {
        BillingCycle.DAILY.value: (DAYS_PER_MONTH, _ONE),
        BillingCycle.WEEKLY.value: (WEEKS_PER_MONTH, _ONE),
        BillingCycle.MONTHLY.value: (_ONE, _ONE),
        BillingCycle.YEARLY.value: (_ONE, MONTHS_PER_YEAR),
    },
    BillingCycle.YEARLY.value: {
        BillingCycle.DAILY.value: (DAYS_PER_YEAR, _ONE),
        BillingCycle.WEEKLY.value: (WEEKS_PER_YEAR, _ONE),
        BillingCycle.MONTHLY.value: (MONTHS_PER_YEAR, _ONE),
        BillingCycle.YEARLY.value: (_ONE, _ONE),
    },
}


def normalize_cycle(cycle: Any) -> str:
    """Lower-cased known cycle, or "monthly" for anything else."""
    value = getattr(cycle, "value", cycle)
    value = str(value or "").strip().lower()
    return value if value in _FACTORS else BillingCycle.MONTHLY.value


def _to_decimal(amount: Any) -> Decimal:
    parsed = parse_amount(amount)
    return parsed if parsed is not None else Decimal(0)


def period_equivalent(amount: Any, cycle: Any, target: Any) -> Decimal | int | float:
    """
    Re-express `amount`, billed every `cycle`, as an amount per `target` period.

    `period_equivalent(a, c, c) == a` for every cycle: a numeric amount comes
    back unchanged, anything else is parsed into a Decimal first.
    """
    multiplier, divisor = _FACTORS[normalize_cycle(target)][normalize_cycle(cycle)]
    if multiplier == _ONE and divisor == _ONE:
        if isinstance(amount, (int, float, Decimal)) and not isinstance(amount, bool):
            return amount
        return _to_decimal(amount)
    value = _to_decimal(amount)
    return value * multiplier / divisor


def monthly_equivalent(amount: Any, cycle: Any) -> Decimal | int | float:
    return period_equivalent(amount, cycle, BillingCycle.MONTHLY)


def subscription_period_amount(subscription: Subscription, target: Any) -> Decimal:
    return period_equivalent(subscription.amount, subscription.billing_cycle, target)


def total_monthly_spend(subscriptions: Iterable[Subscription], currency: str | None = None) -> Decimal:
    """
    Sum of monthly equivalents over active subscriptions, optionally in one currency only.
    """
    total = Decimal(0)
    for sub in subscriptions:
        if not sub.is_active:
            continue
        if currency is not None and sub.currency != currency.upper():
            continue
        total += monthly_equivalent(sub.amount, sub.billing_cycle)
    return total


def _add_months(value: date, months: int) -> date:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def next_billing_date_after(cycle: Any, from_date: date) -> date:
    """
    The billing date one cycle after `from_date`.

    Month arithmetic clamps to the last day of shorter months (Jan 31 -> Feb 28).
    Nothing in the engine calls this on payment; rolling the date forward is
    the caller's decision.
    """
    value = str(getattr(cycle, "value", cycle) or "").strip().lower()
    if value == BillingCycle.DAILY.value:
        return from_date + timedelta(days=1)
    if value == BillingCycle.WEEKLY.value:
        return from_date + timedelta(days=7)
    if value == BillingCycle.YEARLY.value:
        return _add_months(from_date, 12)
    if value == "quarterly":
        return _add_months(from_date, 3)
    return _add_months(from_date, 1)
