"""
Spending analytics.

The backend aggregates are preferred. When they cannot be fetched the same
shapes are recomputed from the current subscription list; those results
carry `estimated=True` because they extrapolate current state rather than
report payment history.
"""

from __future__ import annotations

import calendar
import logging
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Iterable

from pydantic import BaseModel, ValidationError as PydanticValidationError

from subtrack.core.config import UserPreferences
from subtrack.core.errors import SubtrackError
from subtrack.core.validation import parse_amount
from subtrack.db.models import BillingCycle, Budget, Subscription
from subtrack.engine.billing import normalize_cycle, subscription_period_amount, total_monthly_spend

if TYPE_CHECKING:
    from subtrack.db.api import SubaApiClient

logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

# Fixed per-bucket variation applied when spreading a current total over past buckets
SMOOTHING_MULTIPLIERS = (
    Decimal("0.92"), Decimal("1.00"), Decimal("1.08"), Decimal("0.97"),
    Decimal("1.05"), Decimal("0.98"), Decimal("1.12"), Decimal("0.95"),
    Decimal("1.03"), Decimal("1.07"), Decimal("0.93"), Decimal("1.01"),
)

DEFAULT_BUCKETS = {
    BillingCycle.WEEKLY.value: 8,
    BillingCycle.MONTHLY.value: 6,
    BillingCycle.YEARLY.value: 5,
}

BUDGET_WARNING_PERCENT = Decimal(80)

_CENT = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


class CategoryTotal(BaseModel):
    category: str
    total_amount: Decimal
    subscription_count: int = 0


class SpendingSummary(BaseModel):
    total_spent: Decimal
    total_subscriptions: int
    currency: str
    period: str
    estimated: bool = False


class TrendPoint(BaseModel):
    key: str
    label: str
    total_amount: Decimal


class TrendSeries(BaseModel):
    period: str
    points: list[TrendPoint]
    estimated: bool = False

    @property
    def total(self) -> Decimal:
        return sum((p.total_amount for p in self.points), Decimal(0))


class BudgetStatus(BaseModel):
    budget: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: Decimal
    currency: str
    level: str  # ok | warning | over


def _counted(subscriptions: Iterable[Subscription], currency: str) -> list[Subscription]:
    """
    Active subscriptions billed in `currency`. Other currencies are left out;
    there is no FX conversion.
    """
    wanted = currency.upper()
    return [s for s in subscriptions if s.is_active and s.currency == wanted]


def group_by_category(
    subscriptions: Iterable[Subscription],
    period: str,
    display_currency: str,
) -> list[CategoryTotal]:
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for sub in _counted(subscriptions, display_currency):
        category = sub.category or UNCATEGORIZED
        totals[category] = totals.get(category, Decimal(0)) + subscription_period_amount(sub, period)
        counts[category] = counts.get(category, 0) + 1

    return [
        CategoryTotal(category=category, total_amount=_money(amount), subscription_count=counts[category])
        for category, amount in totals.items()
    ]


def spending_summary(
    subscriptions: Iterable[Subscription],
    period: str,
    display_currency: str,
) -> SpendingSummary:
    counted = _counted(subscriptions, display_currency)
    total = sum((subscription_period_amount(s, period) for s in counted), Decimal(0))
    return SpendingSummary(
        total_spent=_money(total),
        total_subscriptions=len(counted),
        currency=display_currency.upper(),
        period=normalize_cycle(period),
        estimated=True,
    )


def _bucket_labels(period: str, count: int, today: date) -> list[tuple[str, str]]:
    if period == BillingCycle.WEEKLY.value:
        return [(f"wk-{i + 1}", f"W{i + 1}") for i in range(count)]
    if period == BillingCycle.YEARLY.value:
        return [(str(today.year - (count - 1 - i)), str(today.year - (count - 1 - i))) for i in range(count)]

    labels = []
    for back in range(count - 1, -1, -1):
        month_index = today.year * 12 + today.month - 1 - back
        year, month = divmod(month_index, 12)
        labels.append((f"{year}-{month + 1:02d}", calendar.month_abbr[month + 1]))
    return labels


def trend_series(
    subscriptions: Iterable[Subscription],
    period: str,
    bucket_count: int | None = None,
    *,
    display_currency: str = "NGN",
    today: date | None = None,
) -> TrendSeries:
    """
    Spread the current period total over `bucket_count` buckets.

    This is an estimate built from today's subscriptions, not history: each
    bucket gets an equal share scaled by a fixed smoothing multiplier.
    """
    target = normalize_cycle(period)
    if target == BillingCycle.DAILY.value:
        target = BillingCycle.MONTHLY.value
    count = bucket_count if bucket_count is not None else DEFAULT_BUCKETS[target]
    if count <= 0:
        return TrendSeries(period=target, points=[], estimated=True)

    total = spending_summary(subscriptions, target, display_currency).total_spent
    share = total / count
    points = [
        TrendPoint(
            key=key,
            label=label,
            total_amount=_money(share * SMOOTHING_MULTIPLIERS[i % len(SMOOTHING_MULTIPLIERS)]),
        )
        for i, (key, label) in enumerate(_bucket_labels(target, count, today or date.today()))
    ]
    return TrendSeries(period=target, points=points, estimated=True)


def budget_status(subscriptions: Iterable[Subscription], budget: Budget) -> BudgetStatus:
    """Monthly spend in the budget's currency against the budget."""
    spent = _money(total_monthly_spend(subscriptions, budget.currency))
    limit = budget.budget
    percent = _money(spent / limit * 100) if limit > 0 else Decimal(0)

    if limit > 0 and spent >= limit:
        level = "over"
    elif percent >= BUDGET_WARNING_PERCENT:
        level = "warning"
    else:
        level = "ok"

    return BudgetStatus(
        budget=limit,
        spent=spent,
        remaining=max(Decimal(0), limit - spent),
        percent_used=percent,
        currency=budget.currency,
        level=level,
    )


def _amount(row: dict[str, Any], *keys: str) -> Decimal:
    for key in keys:
        value = parse_amount(row.get(key))
        if value is not None:
            return value
    return Decimal(0)


class AnalyticsAggregator:
    """
    Backend analytics with a local fallback.

    Any failure of the remote call (network, timeout, 404, 5xx, unexpected
    payload) silently degrades to the local estimate.
    """

    def __init__(self, client: SubaApiClient | None, preferences: UserPreferences) -> None:
        self.client = client
        self.preferences = preferences

    @property
    def currency(self) -> str:
        return self.preferences.display_currency.upper()

    async def spending(self, subscriptions: list[Subscription], period: str = "monthly") -> SpendingSummary:
        if self.client is not None:
            try:
                row = await self.client.get_spending(period, self.currency)
                return SpendingSummary(
                    total_spent=_amount(row, "totalSpent", "total_spent", "total"),
                    total_subscriptions=int(
                        row.get("totalSubscriptions") or row.get("subscription_count") or 0
                    ),
                    currency=str(row.get("currency") or self.currency).upper(),
                    period=str(row.get("period") or period),
                )
            except (SubtrackError, PydanticValidationError, TypeError, ValueError) as exc:
                logger.warning("Spending analytics unavailable, using local estimate: %s", exc)
        return spending_summary(subscriptions, period, self.currency)

    async def categories(self, subscriptions: list[Subscription], period: str = "monthly") -> list[CategoryTotal]:
        if self.client is not None:
            try:
                rows = await self.client.get_categories(period, self.currency)
                return [
                    CategoryTotal(
                        category=row.get("category") or UNCATEGORIZED,
                        total_amount=_amount(row, "total_amount", "total"),
                        subscription_count=int(row.get("subscription_count") or 0),
                    )
                    for row in rows
                ]
            except (SubtrackError, PydanticValidationError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Category analytics unavailable, using local estimate: %s", exc)
        return group_by_category(subscriptions, period, self.currency)

    async def trends(
        self,
        subscriptions: list[Subscription],
        period: str = "monthly",
        bucket_count: int | None = None,
        today: date | None = None,
    ) -> TrendSeries:
        if self.client is not None:
            try:
                rows = await self.client.get_trends(period, self.currency)
                points = []
                for row in rows:
                    label = str(
                        row.get("label") or row.get("month_name") or row.get("year") or row.get("week") or ""
                    )
                    points.append(
                        TrendPoint(
                            key=str(row.get("month") or row.get("year") or row.get("week") or label),
                            label=label,
                            total_amount=_amount(row, "total_amount", "total"),
                        )
                    )
                return TrendSeries(period=normalize_cycle(period), points=points)
            except (SubtrackError, PydanticValidationError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("Trend analytics unavailable, using local estimate: %s", exc)
        return trend_series(
            subscriptions,
            period,
            bucket_count,
            display_currency=self.currency,
            today=today,
        )
