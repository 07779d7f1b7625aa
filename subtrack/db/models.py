from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from subtrack.core.errors import ValidationError
from subtrack.core.validation import parse_amount, parse_calendar_date


class BillingCycle(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Currency(str, Enum):
    NGN = "NGN"
    USD = "USD"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class PaymentMethod(str, Enum):
    MANUAL = "manual"
    WEBSITE = "website"
    USSD = "ussd"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_APP = "mobile_app"
    CARD = "card"
    BANK_USSD = "bank_ussd"
    QUICKTELLER = "quickteller"


class SkipDuration(str, Enum):
    ONE_DAY = "1 day"
    THREE_DAYS = "3 days"
    ONE_WEEK = "1 week"


DEFAULT_CURRENCY = Currency.NGN.value
DEFAULT_REMINDER_DAYS = 3


def _as_amount(value: Any) -> Any:
    parsed = parse_amount(value)
    return value if parsed is None else parsed


def _as_date(value: Any) -> Any:
    if isinstance(value, str):
        parsed = parse_calendar_date(value)
        return value if parsed is None else parsed
    if isinstance(value, datetime):
        return value.date()
    return value


class Subscription(BaseModel):
    id: str
    name: str
    service_provider: Optional[str] = None
    category: Optional[str] = None
    amount: Decimal = Field(ge=0)
    currency: str = DEFAULT_CURRENCY
    billing_cycle: str = BillingCycle.MONTHLY.value
    next_billing_date: date
    last_payment_date: Optional[date] = None
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    auto_renew: bool = True
    reminder_days_before: int = Field(default=DEFAULT_REMINDER_DAYS, ge=0)
    is_shared: bool = False
    notes: Optional[str] = None
    cancellation_link: Optional[str] = None
    logo_url: Optional[str] = None
    payment_count: int = Field(default=0, ge=0)
    total_payments: Decimal = Field(default=Decimal(0), ge=0)
    skipped_at: Optional[datetime] = None
    next_reminder_date: Optional[date] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        # Backend ids are integers; triggers and lookups key on text
        return str(value) if isinstance(value, int) else value

    @field_validator("amount", "total_payments", mode="before")
    @classmethod
    def _parse_amounts(cls, value: Any) -> Any:
        return _as_amount(value)

    @field_validator("next_billing_date", "last_payment_date", "next_reminder_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> Any:
        return _as_date(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        return (value or DEFAULT_CURRENCY).upper() if isinstance(value, str) or value is None else value

    @field_validator("billing_cycle", mode="before")
    @classmethod
    def _lower_cycle(cls, value: Any) -> Any:
        return (value or BillingCycle.MONTHLY.value).strip().lower() if isinstance(value, str) or value is None else value

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class Payment(BaseModel):
    id: str
    subscription_id: str
    amount: Decimal = Field(ge=0)
    currency: str = DEFAULT_CURRENCY
    method: PaymentMethod = PaymentMethod.MANUAL
    paid_at: date
    receipt_url: Optional[str] = None

    @field_validator("id", "subscription_id", mode="before")
    @classmethod
    def _id_as_text(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        return _as_amount(value)

    @field_validator("paid_at", mode="before")
    @classmethod
    def _parse_paid_at(cls, value: Any) -> Any:
        return _as_date(value)


class Budget(BaseModel):
    budget: Decimal = Field(default=Decimal(0), ge=0)
    currency: str = DEFAULT_CURRENCY

    @field_validator("budget", mode="before")
    @classmethod
    def _parse_budget(cls, value: Any) -> Any:
        return Decimal(0) if value in (None, "") else _as_amount(value)


class PaymentStats(BaseModel):
    """Payment totals across the user's active subscriptions."""

    total_subscriptions: int = Field(default=0, ge=0)
    total_payments: int = Field(default=0, ge=0)
    total_amount_paid: Decimal = Field(default=Decimal(0), ge=0)
    # AVG over no payments is null
    average_payment: Optional[Decimal] = None

    @field_validator("total_subscriptions", "total_payments", mode="before")
    @classmethod
    def _parse_counts(cls, value: Any) -> Any:
        return 0 if value in (None, "") else value

    @field_validator("total_amount_paid", mode="before")
    @classmethod
    def _parse_total(cls, value: Any) -> Any:
        return Decimal(0) if value in (None, "") else _as_amount(value)

    @field_validator("average_payment", mode="before")
    @classmethod
    def _parse_average(cls, value: Any) -> Any:
        return None if value in (None, "") else _as_amount(value)


def normalize_subscription(raw: dict[str, Any], default_reminder_days: int = DEFAULT_REMINDER_DAYS) -> Subscription:
    """
    Build the canonical Subscription from any payload shape the backend
    (or an older client build) has produced.

    Raises ValidationError when the payload cannot describe a subscription.
    """

    row = dict(raw)

    # Older payloads carry `logo` instead of `logo_url`, sometimes as {"uri": ...}
    logo = row.get("logo_url") or row.get("logo")
    if isinstance(logo, dict):
        logo = logo.get("uri")
    row["logo_url"] = logo if isinstance(logo, str) and logo else None

    if not row.get("status"):
        row["status"] = (
            SubscriptionStatus.CANCELLED.value
            if row.get("is_active") is False
            else SubscriptionStatus.ACTIVE.value
        )

    if row.get("reminder_days_before") in (None, ""):
        row["reminder_days_before"] = default_reminder_days
    if row.get("auto_renew") is None:
        row["auto_renew"] = True
    row["is_shared"] = bool(row.get("is_shared"))
    row["payment_count"] = row.get("payment_count") or 0
    row["total_payments"] = row.get("total_payments") or 0

    try:
        return Subscription.model_validate(row)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid subscription payload", detail=str(exc)) from exc


def normalize_payment(raw: dict[str, Any]) -> Payment:
    """
    Build a Payment from a payment history row.

    The backend writes both `method` and `payment_method`, and `paid_at` as a timestamp.
    """

    row = dict(raw)
    row["method"] = row.get("method") or row.get("payment_method") or PaymentMethod.MANUAL.value
    row["paid_at"] = row.get("paid_at") or row.get("payment_date")

    try:
        return Payment.model_validate(row)
    except PydanticValidationError as exc:
        raise ValidationError("Invalid payment payload", detail=str(exc)) from exc
