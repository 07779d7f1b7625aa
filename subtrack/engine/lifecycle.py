"""
Subscription lifecycle: status transitions and payment bookkeeping.

`SubscriptionLedger` works over an in-memory list fetched fresh for each
invocation. The validation helpers and the duplicate-payment guard are shared
with the remote-backed service so both paths enforce the same rules.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Iterable

from pydantic import ValidationError as PydanticValidationError

from subtrack.core.errors import DuplicatePaymentError, NotFoundError, ValidationError
from subtrack.core.validation import parse_amount, parse_calendar_date
from subtrack.db.models import (
    Payment,
    PaymentMethod,
    SkipDuration,
    Subscription,
    SubscriptionStatus,
    normalize_subscription,
)

if TYPE_CHECKING:
    from subtrack.engine.reminders import ReminderScheduler

logger = logging.getLogger(__name__)

_SKIP_DAYS = {
    SkipDuration.ONE_DAY: 1,
    SkipDuration.THREE_DAYS: 3,
    SkipDuration.ONE_WEEK: 7,
}

# Fields callers may not overwrite through update()
_READ_ONLY_FIELDS = frozenset({"id", "payment_count", "total_payments", "created_at"})


def parse_skip_duration(raw: SkipDuration | str | None) -> SkipDuration:
    """Unknown durations fall back to one day."""
    try:
        return SkipDuration(raw)
    except ValueError:
        return SkipDuration.ONE_DAY


def skip_until(duration: SkipDuration | str | None, today: date) -> date:
    return today + timedelta(days=_SKIP_DAYS[parse_skip_duration(duration)])


def validate_fields(fields: dict[str, Any], *, creating: bool) -> dict[str, Any]:
    """
    Check amount and billing date and return the fields with those normalized.
    """
    cleaned = dict(fields)

    if "amount" in cleaned or creating:
        amount = parse_amount(cleaned.get("amount"))
        if amount is None:
            raise ValidationError("Amount must be a number")
        if amount < 0:
            raise ValidationError("Amount cannot be negative")
        cleaned["amount"] = amount

    if "next_billing_date" in cleaned or creating:
        billing_date = parse_calendar_date(cleaned.get("next_billing_date"))
        if billing_date is None:
            raise ValidationError("Next billing date is required")
        cleaned["next_billing_date"] = billing_date

    if cleaned.get("reminder_days_before") is not None:
        try:
            lead = int(cleaned["reminder_days_before"])
        except (TypeError, ValueError) as exc:
            raise ValidationError("Reminder lead time must be a whole number of days") from exc
        if lead < 0:
            raise ValidationError("Reminder lead time cannot be negative")
        cleaned["reminder_days_before"] = lead

    return cleaned


def check_transition(current: SubscriptionStatus, new: SubscriptionStatus | str) -> SubscriptionStatus:
    """
    Allowed moves: active <-> paused, and either of them -> cancelled.

    Cancelled is terminal; staying cancelled is allowed.
    """
    try:
        target = SubscriptionStatus(new)
    except ValueError as exc:
        raise ValidationError(f"Unknown status '{new}'") from exc

    if current == SubscriptionStatus.CANCELLED and target != SubscriptionStatus.CANCELLED:
        raise ValidationError("Cancelled subscriptions cannot be reactivated")
    return target


class DuplicatePaymentGuard:
    """
    Rejects a second payment for the same subscription inside `window`.
    """

    def __init__(
        self,
        window: timedelta = timedelta(seconds=10),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.window = window
        self._clock = clock
        self._last_paid: dict[str, datetime] = {}

    def claim(self, subscription_id: str) -> None:
        now = self._clock()
        last = self._last_paid.get(subscription_id)
        if last is not None and now - last < self.window:
            raise DuplicatePaymentError(
                "This subscription was just marked as paid",
                status_code=409,
            )
        self._last_paid[subscription_id] = now

    def release(self, subscription_id: str) -> None:
        """Forget a claim whose payment did not go through."""
        self._last_paid.pop(subscription_id, None)


class SubscriptionLedger:
    """
    In-memory owner of subscriptions and their payments.

    `reminders`, when given, is told about cancellations and deletions so the
    pending trigger disappears immediately instead of on the next full resync.
    """

    def __init__(
        self,
        subscriptions: Iterable[Subscription] = (),
        *,
        reminders: ReminderScheduler | None = None,
        guard: DuplicatePaymentGuard | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._subs: dict[str, Subscription] = {s.id: s for s in subscriptions}
        self._payments: dict[str, list[Payment]] = {}
        self._reminders = reminders
        self._clock = clock
        self._guard = guard or DuplicatePaymentGuard(clock=clock)

    def subscriptions(self) -> list[Subscription]:
        return list(self._subs.values())

    def get(self, subscription_id: str) -> Subscription:
        sub = self._subs.get(subscription_id)
        if sub is None:
            raise NotFoundError(f"Subscription {subscription_id} not found", status_code=404)
        return sub

    def payments_for(self, subscription_id: str) -> list[Payment]:
        self.get(subscription_id)
        return list(self._payments.get(subscription_id, []))

    def create(self, fields: dict[str, Any]) -> Subscription:
        cleaned = validate_fields(fields, creating=True)
        now = self._clock()
        cleaned.setdefault("id", uuid.uuid4().hex)
        cleaned.setdefault("status", SubscriptionStatus.ACTIVE.value)
        cleaned.setdefault("created_at", now)
        cleaned["updated_at"] = now

        sub = normalize_subscription(cleaned)
        self._subs[sub.id] = sub
        logger.debug("Created subscription %s (%s)", sub.id, sub.name)
        return sub

    def update(self, subscription_id: str, fields: dict[str, Any]) -> Subscription:
        current = self.get(subscription_id)
        changes = {k: v for k, v in validate_fields(fields, creating=False).items() if k not in _READ_ONLY_FIELDS}
        if "status" in changes:
            changes["status"] = check_transition(current.status, changes["status"])
        changes["updated_at"] = self._clock()

        updated = normalize_subscription({**current.model_dump(), **changes})
        self._subs[subscription_id] = updated
        return updated

    def cancel(self, subscription_id: str) -> Subscription:
        current = self.get(subscription_id)
        if current.status == SubscriptionStatus.CANCELLED:
            return current

        cancelled = current.model_copy(
            update={"status": SubscriptionStatus.CANCELLED, "updated_at": self._clock()}
        )
        self._subs[subscription_id] = cancelled
        if self._reminders is not None:
            self._reminders.cancel(subscription_id)
        logger.info("Cancelled subscription %s", subscription_id)
        return cancelled

    def delete(self, subscription_id: str) -> None:
        self.get(subscription_id)
        del self._subs[subscription_id]
        self._payments.pop(subscription_id, None)
        if self._reminders is not None:
            self._reminders.cancel(subscription_id)
        logger.info("Deleted subscription %s", subscription_id)

    def mark_as_paid(self, subscription_id: str, payment: dict[str, Any] | None = None) -> Payment:
        """
        Record a payment against an active subscription.

        `next_billing_date` is left untouched; advancing it is up to the caller
        (see `billing.next_billing_date_after`).
        """
        sub = self._subs.get(subscription_id)
        if sub is None or not sub.is_active:
            raise NotFoundError(f"No active subscription {subscription_id}", status_code=404)

        details = dict(payment or {})
        amount = parse_amount(details.get("amount", sub.amount))
        if amount is None or amount <= 0:
            raise ValidationError("Invalid amount")

        now = self._clock()
        paid_at = parse_calendar_date(details.get("paid_at") or details.get("payment_date")) or now.date()
        try:
            record = Payment(
                id=str(details.get("id") or uuid.uuid4().hex),
                subscription_id=subscription_id,
                amount=amount,
                currency=str(details.get("currency") or sub.currency).upper(),
                method=details.get("method") or details.get("payment_method") or PaymentMethod.MANUAL,
                paid_at=paid_at,
                receipt_url=details.get("receipt_url"),
            )
        except PydanticValidationError as exc:
            raise ValidationError("Invalid payment details", detail=str(exc)) from exc

        self._guard.claim(subscription_id)

        self._payments.setdefault(subscription_id, []).append(record)
        self._subs[subscription_id] = sub.model_copy(
            update={
                "payment_count": sub.payment_count + 1,
                "total_payments": sub.total_payments + amount,
                "last_payment_date": paid_at,
                "skipped_at": None,
                "updated_at": now,
            }
        )
        logger.info("Recorded payment of %s %s for %s", amount, record.currency, subscription_id)
        return record

    def skip_reminder(self, subscription_id: str, duration: SkipDuration | str | None = None) -> Subscription:
        sub = self.get(subscription_id)
        now = self._clock()
        skipped = sub.model_copy(
            update={
                "skipped_at": now,
                "next_reminder_date": skip_until(duration, now.date()),
                "updated_at": now,
            }
        )
        self._subs[subscription_id] = skipped
        return skipped
