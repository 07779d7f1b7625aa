"""
Due-date classification.

Two "due soon" notions coexist on purpose: the fixed three-day badge shown on
cards, and the per-subscription `reminder_days_before` window used by the
list filter and reminder timing. A subscription five days out with a
seven-day lead time is due soon for the filter and not for the badge.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Iterable

from subtrack.core.validation import parse_calendar_date
from subtrack.db.models import Subscription, SubscriptionStatus

DUE_SOON_BADGE_DAYS = 3


class DueStatus(str, Enum):
    OVERDUE = "overdue"
    DUE_TODAY = "due_today"
    DUE_TOMORROW = "due_tomorrow"
    DUE_SOON = "due_soon"
    NORMAL = "normal"


class ListFilter(str, Enum):
    ALL = "all"
    ACTIVE = "active"
    DUE_SOON = "due_soon"
    OVERDUE = "overdue"
    PAUSED = "paused"
    CANCELLED = "cancelled"


def days_until(next_billing_date: date | datetime | str, today: date | datetime) -> int:
    """Whole calendar days from `today` to the billing date; negative when past."""
    due = parse_calendar_date(next_billing_date)
    if due is None:
        raise ValueError(f"Not a date: {next_billing_date!r}")
    return (due - parse_calendar_date(today)).days


def classify(
    next_billing_date: date | datetime | str | None,
    today: date | datetime,
    status: SubscriptionStatus | str,
    soon_threshold: int = DUE_SOON_BADGE_DAYS,
) -> DueStatus:
    # Unknown or legacy status strings are simply not active
    if getattr(status, "value", status) != SubscriptionStatus.ACTIVE.value or next_billing_date is None:
        return DueStatus.NORMAL

    days = days_until(next_billing_date, today)
    if days < 0:
        return DueStatus.OVERDUE
    if days == 0:
        return DueStatus.DUE_TODAY
    if days == 1:
        return DueStatus.DUE_TOMORROW
    if days <= soon_threshold:
        return DueStatus.DUE_SOON
    return DueStatus.NORMAL


def classify_subscription(sub: Subscription, today: date | datetime) -> DueStatus:
    return classify(sub.next_billing_date, today, sub.status)


def is_overdue(sub: Subscription, today: date | datetime) -> bool:
    return sub.is_active and sub.next_billing_date < parse_calendar_date(today)


def is_due_soon_badge(sub: Subscription, today: date | datetime) -> bool:
    """Card badge: billing within the fixed three-day window (today included)."""
    if not sub.is_active:
        return False
    return 0 <= days_until(sub.next_billing_date, today) <= DUE_SOON_BADGE_DAYS


def is_due_soon(sub: Subscription, today: date | datetime) -> bool:
    """List filter: billing within the subscription's own reminder lead time."""
    if not sub.is_active:
        return False
    return 0 <= days_until(sub.next_billing_date, today) <= sub.reminder_days_before


def due_label(sub: Subscription, today: date | datetime) -> str:
    if not sub.is_active:
        return sub.status.value.capitalize()

    days = days_until(sub.next_billing_date, today)
    if days < 0:
        return "Overdue"
    if days == 0:
        return "Due today"
    if days == 1:
        return "Due tomorrow"
    if days <= DUE_SOON_BADGE_DAYS:
        return "Due soon"
    return f"Due in {days} days"


def filter_subscriptions(
    subscriptions: Iterable[Subscription],
    name: ListFilter | str,
    today: date | datetime,
) -> list[Subscription]:
    selected = ListFilter(name)
    subs = list(subscriptions)

    if selected is ListFilter.ALL:
        return subs
    if selected is ListFilter.DUE_SOON:
        return [s for s in subs if is_due_soon(s, today)]
    if selected is ListFilter.OVERDUE:
        return [s for s in subs if is_overdue(s, today)]
    return [s for s in subs if s.status.value == selected.value]


def upcoming_payments(
    subscriptions: Iterable[Subscription],
    today: date | datetime,
    within_days: int = 30,
) -> list[tuple[Subscription, DueStatus]]:
    """
    Active subscriptions billing between today and `within_days` ahead, soonest first.
    """
    upcoming: list[tuple[Subscription, DueStatus]] = []
    for sub in subscriptions:
        if not sub.is_active:
            continue
        if 0 <= days_until(sub.next_billing_date, today) <= within_days:
            upcoming.append((sub, classify_subscription(sub, today)))
    upcoming.sort(key=lambda pair: (pair[0].next_billing_date, pair[0].name))
    return upcoming
