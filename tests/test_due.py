from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from subtrack.db.models import SubscriptionStatus
from subtrack.engine.due import (
    DueStatus,
    classify,
    classify_subscription,
    days_until,
    due_label,
    filter_subscriptions,
    is_due_soon,
    is_due_soon_badge,
    is_overdue,
    upcoming_payments,
)


class TestClassify:
    @pytest.mark.parametrize(
        "offset, expected",
        [
            (-1, DueStatus.OVERDUE),
            (-30, DueStatus.OVERDUE),
            (0, DueStatus.DUE_TODAY),
            (1, DueStatus.DUE_TOMORROW),
            (2, DueStatus.DUE_SOON),
            (3, DueStatus.DUE_SOON),
            (4, DueStatus.NORMAL),
            (10, DueStatus.NORMAL),
        ],
    )
    def test_active_buckets(self, today, offset, expected):
        assert classify(today + timedelta(days=offset), today, "active") == expected

    @pytest.mark.parametrize("status", ["paused", "cancelled"])
    def test_inactive_is_never_due(self, today, status):
        assert classify(today - timedelta(days=5), today, status) == DueStatus.NORMAL
        assert classify(today, today, status) == DueStatus.NORMAL

    @pytest.mark.parametrize("status", ["expired", "trial", ""])
    def test_unknown_status_is_normal(self, today, status):
        assert classify(today - timedelta(days=2), today, status) == DueStatus.NORMAL

    def test_status_enum_is_accepted(self, today):
        assert classify(today, today, SubscriptionStatus.ACTIVE) == DueStatus.DUE_TODAY

    def test_missing_date_is_normal(self, today):
        assert classify(None, today, "active") == DueStatus.NORMAL

    def test_time_of_day_is_ignored(self, today):
        late_evening = datetime.combine(today, datetime.min.time()).replace(hour=23, minute=59)
        tomorrow_morning = datetime.combine(today + timedelta(days=1), datetime.min.time()).replace(hour=0, minute=1)
        assert classify(tomorrow_morning, late_evening, "active") == DueStatus.DUE_TOMORROW
        assert days_until("2024-06-16T00:30:00.000Z", late_evening) == 1

    def test_custom_threshold(self, today):
        assert classify(today + timedelta(days=6), today, "active", soon_threshold=7) == DueStatus.DUE_SOON


class TestDueSoon:
    def test_filter_and_badge_use_different_windows(self, make_sub, today):
        sub = make_sub(
            days_out=5,
            amount=Decimal("3000"),
            currency="NGN",
            billing_cycle="yearly",
            reminder_days_before=7,
        )
        assert is_due_soon(sub, today) is True
        assert is_due_soon_badge(sub, today) is False

    def test_badge_uses_fixed_three_days(self, make_sub, today):
        sub = make_sub(days_out=3, reminder_days_before=1)
        assert is_due_soon_badge(sub, today) is True
        assert is_due_soon(sub, today) is False

    def test_overdue_is_not_due_soon(self, make_sub, today):
        sub = make_sub(days_out=-1, reminder_days_before=7)
        assert is_due_soon(sub, today) is False
        assert is_due_soon_badge(sub, today) is False

    def test_zero_lead_time_only_matches_today(self, make_sub, today):
        assert is_due_soon(make_sub(days_out=0, reminder_days_before=0), today) is True
        assert is_due_soon(make_sub(days_out=1, reminder_days_before=0), today) is False

    def test_paused_is_not_due_soon(self, make_sub, today):
        sub = make_sub(days_out=1, status="paused")
        assert is_due_soon(sub, today) is False
        assert is_due_soon_badge(sub, today) is False


class TestOverdue:
    def test_active_past_date(self, make_sub, today):
        assert is_overdue(make_sub(days_out=-1), today) is True

    def test_today_is_not_overdue(self, make_sub, today):
        assert is_overdue(make_sub(days_out=0), today) is False

    def test_cancelled_is_never_overdue(self, make_sub, today):
        assert is_overdue(make_sub(days_out=-10, status="cancelled"), today) is False


class TestListHelpers:
    def test_due_labels(self, make_sub, today):
        assert due_label(make_sub(days_out=-2), today) == "Overdue"
        assert due_label(make_sub(days_out=0), today) == "Due today"
        assert due_label(make_sub(days_out=1), today) == "Due tomorrow"
        assert due_label(make_sub(days_out=3), today) == "Due soon"
        assert due_label(make_sub(days_out=12), today) == "Due in 12 days"
        assert due_label(make_sub(days_out=1, status="paused"), today) == "Paused"

    def test_filters(self, make_sub, today):
        soon = make_sub(days_out=2)
        late = make_sub(days_out=-3)
        later = make_sub(days_out=20)
        paused = make_sub(days_out=-3, status="paused")
        cancelled = make_sub(days_out=1, status="cancelled")
        subs = [soon, late, later, paused, cancelled]

        assert filter_subscriptions(subs, "all", today) == subs
        assert filter_subscriptions(subs, "due_soon", today) == [soon]
        assert filter_subscriptions(subs, "overdue", today) == [late]
        assert filter_subscriptions(subs, "active", today) == [soon, late, later]
        assert filter_subscriptions(subs, "paused", today) == [paused]
        assert filter_subscriptions(subs, "cancelled", today) == [cancelled]

    def test_unknown_filter_is_rejected(self, make_sub, today):
        with pytest.raises(ValueError):
            filter_subscriptions([make_sub()], "weird", today)

    def test_upcoming_payments_sorted_and_bounded(self, make_sub, today):
        a = make_sub(days_out=9, name="B")
        b = make_sub(days_out=1, name="A")
        c = make_sub(days_out=45)
        d = make_sub(days_out=-1)
        e = make_sub(days_out=2, status="paused")

        upcoming = upcoming_payments([a, b, c, d, e], today, within_days=30)

        assert [sub for sub, _ in upcoming] == [b, a]
        assert upcoming[0][1] == DueStatus.DUE_TOMORROW
        assert classify_subscription(a, today) == DueStatus.NORMAL
