"""
Local payment reminders.

One trigger per active subscription, fired `reminder_days_before` days ahead
of the next billing date at the user's reminder hour. The notifier that
actually stores and fires triggers is injected; failures there are logged
and never reach the caller.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Iterable, Protocol
from zoneinfo import ZoneInfo

from pydantic import BaseModel

from subtrack.core.config import UserPreferences
from subtrack.db.models import Subscription

logger = logging.getLogger(__name__)

TRIGGER_PREFIX = "reminder:"
DIGEST_PREFIX = "digest:"
PAYMENT_REMINDER = "payment_reminder"
WEEKLY_INSIGHT = "weekly_insight"
MONTHLY_REPORT = "monthly_report"

_CURRENCY_SYMBOLS = {"NGN": "₦", "USD": "$"}


class Notice(BaseModel):
    """Anything the delivery channel can send: an id, a title and a body."""

    trigger_id: str
    title: str
    body: str
    kind: str

    @property
    def payload(self) -> dict[str, str]:
        return {"type": self.kind}


class ReminderTrigger(Notice):
    subscription_id: str
    fire_at: datetime
    kind: str = PAYMENT_REMINDER

    @property
    def payload(self) -> dict[str, str]:
        return {"subscriptionId": self.subscription_id, "type": self.kind}


# Repeating notices, independent of any subscription
WEEKLY_INSIGHT_NOTICE = Notice(
    trigger_id=f"{DIGEST_PREFIX}{WEEKLY_INSIGHT}",
    title="📊 Weekly Subscription Insight",
    body="Check your weekly subscription spending and get insights",
    kind=WEEKLY_INSIGHT,
)
MONTHLY_REPORT_NOTICE = Notice(
    trigger_id=f"{DIGEST_PREFIX}{MONTHLY_REPORT}",
    title="📈 Monthly Subscription Report",
    body="Your monthly subscription report is ready!",
    kind=MONTHLY_REPORT,
)


class NotificationScheduler(Protocol):
    """
    Device capability for local notifications.

    Implementations raise NotSupportedError when the capability is missing.
    """

    @property
    def available(self) -> bool: ...

    def schedule(self, trigger: ReminderTrigger) -> None: ...

    def cancel(self, trigger_id: str) -> None: ...

    def cancel_all(self) -> None: ...

    def scheduled(self) -> list[str]: ...


def trigger_id_for(subscription_id: str) -> str:
    return f"{TRIGGER_PREFIX}{subscription_id}"


def format_amount(amount: object, currency: str) -> str:
    symbol = _CURRENCY_SYMBOLS.get(currency.upper())
    return f"{symbol}{amount}" if symbol else f"{amount} {currency}"


class ReminderScheduler:
    def __init__(self, notifier: NotificationScheduler, preferences: UserPreferences) -> None:
        self.notifier = notifier
        self.preferences = preferences
        self.tz = ZoneInfo(preferences.timezone)

    def now(self) -> datetime:
        """Current time in the user's timezone."""
        return datetime.now(self.tz)

    def _localize(self, moment: datetime) -> datetime:
        # Naive datetimes are read as wall-clock time in the user's timezone
        if moment.tzinfo is None:
            return moment.replace(tzinfo=self.tz)
        return moment.astimezone(self.tz)

    def reminder_date(self, sub: Subscription) -> date:
        """
        Day the reminder fires. A skip can only push it later, never earlier.
        """
        due = sub.next_billing_date - timedelta(days=sub.reminder_days_before)
        if sub.next_reminder_date is not None and sub.next_reminder_date > due:
            return sub.next_reminder_date
        return due

    def build_trigger(self, sub: Subscription, now: datetime) -> ReminderTrigger | None:
        """
        Trigger for `sub`, or None when it should not have one: inactive, or
        its fire time is not after `now`.

        The trigger fires at `reminder_hour` in the user's timezone on the
        reminder day, whatever zone `now` is given in.
        """
        if not sub.is_active:
            return None

        remind_on = self.reminder_date(sub)
        fire_at = datetime.combine(remind_on, time(hour=self.preferences.reminder_hour), tzinfo=self.tz)
        if fire_at <= self._localize(now):
            return None

        days = (sub.next_billing_date - remind_on).days
        when = "today" if days == 0 else "tomorrow" if days == 1 else f"in {days} days"
        return ReminderTrigger(
            trigger_id=trigger_id_for(sub.id),
            subscription_id=sub.id,
            fire_at=fire_at,
            title="💰 Payment Reminder",
            body=(
                f"Your {sub.name} subscription "
                f"({format_amount(sub.amount, sub.currency)}) is due {when}"
            ),
        )

    def schedule_all(self, subscriptions: Iterable[Subscription], now: datetime) -> int:
        """
        Replace every scheduled reminder with one per eligible subscription.

        All existing triggers are cancelled before any is added, so calling
        this twice with the same input leaves the same triggers behind.
        Returns the number of triggers scheduled.
        """
        if not self.preferences.reminders_enabled:
            logger.debug("Reminders disabled, skipping scheduling")
            return 0
        if not self.notifier.available:
            logger.warning("Local notifications unavailable, reminders not scheduled")
            return 0

        try:
            self.notifier.cancel_all()
        except Exception:
            logger.exception("Failed to clear scheduled reminders, keeping existing ones")
            return 0

        count = 0
        for sub in subscriptions:
            trigger = self.build_trigger(sub, now)
            if trigger is None:
                continue
            try:
                self.notifier.schedule(trigger)
            except Exception:
                logger.exception("Failed to schedule reminder for %s", sub.id)
                continue
            count += 1

        logger.info("Scheduled %d payment reminders", count)
        return count

    def schedule(self, sub: Subscription, now: datetime) -> bool:
        """
        (Re)schedule the reminder for one subscription. Returns True when a trigger is pending.
        """
        self.cancel(sub.id)
        if not self.preferences.reminders_enabled or not self.notifier.available:
            return False

        trigger = self.build_trigger(sub, now)
        if trigger is None:
            return False
        try:
            self.notifier.schedule(trigger)
        except Exception:
            logger.exception("Failed to schedule reminder for %s", sub.id)
            return False
        return True

    def skip(self, sub: Subscription, now: datetime) -> bool:
        """
        Re-time a reminder after the user skipped it.

        Inactive subscriptions lose their trigger and never get a new one.
        """
        if not sub.is_active:
            self.cancel(sub.id)
            return False
        return self.schedule(sub, now)

    def cancel(self, subscription_id: str) -> None:
        try:
            self.notifier.cancel(trigger_id_for(subscription_id))
        except Exception:
            logger.exception("Failed to cancel reminder for %s", subscription_id)
