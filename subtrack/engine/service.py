from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from subtrack.core.errors import NotFoundError, SubtrackError, ValidationError
from subtrack.core.result import Result
from subtrack.core.validation import parse_amount
from subtrack.db.api import SubaApiClient
from subtrack.db.models import Budget, Payment, PaymentMethod, PaymentStats, Subscription, SubscriptionStatus
from subtrack.engine.lifecycle import (
    DuplicatePaymentGuard,
    check_transition,
    parse_skip_duration,
    validate_fields,
)
from subtrack.engine.reminders import ReminderScheduler

logger = logging.getLogger(__name__)


class SubscriptionService:
    """
    Subscription operations against the backend.

    Every method returns a Result instead of raising, so callers can render
    loading and error states the same way everywhere. Validation happens
    before any request is sent.
    """

    def __init__(
        self,
        client: SubaApiClient,
        reminders: ReminderScheduler | None = None,
        guard: DuplicatePaymentGuard | None = None,
    ) -> None:
        self.client = client
        self.reminders = reminders
        self.guard = guard or DuplicatePaymentGuard()

    async def fetch_subscriptions(self) -> Result[list[Subscription]]:
        """
        Current subscriptions. There is no local substitute for this data:
        failures come back as an empty list plus the error.
        """
        try:
            return Result.success(await self.client.list_subscriptions())
        except SubtrackError as exc:
            logger.error("Failed to fetch subscriptions: %s", exc.message)
            return Result.failure(exc, value=[])

    async def create(self, fields: dict[str, Any]) -> Result[Subscription]:
        try:
            cleaned = validate_fields(fields, creating=True)
            cleaned.setdefault("status", SubscriptionStatus.ACTIVE.value)
            sub = await self.client.create_subscription(cleaned)
        except SubtrackError as exc:
            return Result.failure(exc)

        self._reschedule(sub)
        return Result.success(sub)

    async def update(self, subscription_id: str, fields: dict[str, Any], current: Subscription | None = None) -> Result[Subscription]:
        """
        Partial update. Pass `current` to have status transitions checked before the request.
        """
        try:
            cleaned = validate_fields(fields, creating=False)
            if "status" in cleaned and current is not None:
                cleaned["status"] = check_transition(current.status, cleaned["status"])
            sub = await self.client.update_subscription(subscription_id, cleaned)
        except SubtrackError as exc:
            return Result.failure(exc)

        self._reschedule(sub)
        return Result.success(sub)

    async def cancel(self, subscription_id: str) -> Result[None]:
        try:
            await self.client.cancel_subscription(subscription_id)
        except SubtrackError as exc:
            return Result.failure(exc)

        if self.reminders is not None:
            self.reminders.cancel(subscription_id)
        return Result.success(None)

    async def delete(self, subscription_id: str) -> Result[None]:
        try:
            await self.client.delete_subscription(subscription_id)
        except SubtrackError as exc:
            return Result.failure(exc)

        if self.reminders is not None:
            self.reminders.cancel(subscription_id)
        return Result.success(None)

    async def mark_as_paid(
        self,
        sub: Subscription,
        *,
        amount: Decimal | str | None = None,
        method: PaymentMethod | str = PaymentMethod.MANUAL,
        payment_date: date | None = None,
    ) -> Result[Subscription]:
        """
        Record a payment for `sub`.

        The billing date is not rolled forward here; whatever the backend
        returns is passed through unchanged.
        """
        try:
            if not sub.is_active:
                raise NotFoundError(f"No active subscription {sub.id}", status_code=404)
            paid = parse_amount(sub.amount if amount is None else amount)
            if paid is None or paid <= 0:
                raise ValidationError("Invalid amount")
            try:
                pay_method = PaymentMethod(method)
            except ValueError as exc:
                raise ValidationError(f"Unknown payment method '{method}'") from exc

            self.guard.claim(sub.id)
        except SubtrackError as exc:
            return Result.failure(exc)

        try:
            updated = await self.client.mark_paid(
                sub.id,
                amount=paid,
                currency=sub.currency,
                method=pay_method,
                payment_date=payment_date,
            )
        except SubtrackError as exc:
            self.guard.release(sub.id)
            return Result.failure(exc)

        if updated is None:
            updated = sub.model_copy(
                update={
                    "payment_count": sub.payment_count + 1,
                    "total_payments": sub.total_payments + paid,
                    "last_payment_date": payment_date or date.today(),
                    "skipped_at": None,
                }
            )
        return Result.success(updated)

    async def skip_reminder(self, sub: Subscription, duration: str | None = None) -> Result[Subscription]:
        try:
            updated = await self.client.skip_reminder(sub.id, parse_skip_duration(duration))
        except SubtrackError as exc:
            return Result.failure(exc)

        updated = updated or sub
        if self.reminders is not None:
            self.reminders.skip(updated, self.reminders.now())
        return Result.success(updated)

    async def payment_history(self, subscription_id: str, *, limit: int = 20, offset: int = 0) -> Result[list[Payment]]:
        try:
            return Result.success(await self.client.list_payments(subscription_id, limit=limit, offset=offset))
        except SubtrackError as exc:
            return Result.failure(exc, value=[])

    async def payment_stats(self) -> Result[PaymentStats]:
        """
        Payment totals for the current user. On failure the value is an
        all-zero PaymentStats so summary cards can still render.
        """
        try:
            return Result.success(await self.client.get_payment_stats())
        except SubtrackError as exc:
            logger.error("Failed to fetch payment stats: %s", exc.message)
            return Result.failure(exc, value=PaymentStats())

    async def get_budget(self) -> Result[Budget]:
        try:
            return Result.success(await self.client.get_budget())
        except SubtrackError as exc:
            return Result.failure(exc)

    async def update_budget(self, budget: Decimal | str | int, currency: str | None = None) -> Result[Budget]:
        amount = parse_amount(budget)
        if amount is None or amount < 0:
            return Result.failure(ValidationError("Budget must be a non-negative number"))
        try:
            return Result.success(await self.client.update_budget(amount, currency))
        except SubtrackError as exc:
            return Result.failure(exc)

    async def refresh_reminders(self, now: datetime | None = None) -> Result[int]:
        """
        Fetch subscriptions and rebuild every reminder from them.
        """
        fetched = await self.fetch_subscriptions()
        if not fetched.ok:
            return Result(value=0, error=fetched.error, message=fetched.message)
        if self.reminders is None:
            return Result.success(0)
        return Result.success(self.reminders.schedule_all(fetched.value or [], now or self.reminders.now()))

    def _reschedule(self, sub: Subscription) -> None:
        if self.reminders is not None:
            self.reminders.schedule(sub, self.reminders.now())
