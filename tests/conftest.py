from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from itertools import count
from typing import Any, Callable

import pytest

from subtrack.core import Settings, UserPreferences
from subtrack.db.models import Subscription, normalize_subscription
from subtrack.engine.reminders import ReminderTrigger

TODAY = date(2024, 6, 15)

_ids = count(1)


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def now() -> datetime:
    return datetime(2024, 6, 15, 8, 30)


@pytest.fixture
def make_sub() -> Callable[..., Subscription]:
    def factory(days_out: int = 10, **overrides: Any) -> Subscription:
        row: dict[str, Any] = {
            "id": str(next(_ids)),
            "name": "Netflix",
            "category": "Entertainment",
            "amount": Decimal("3600"),
            "currency": "NGN",
            "billing_cycle": "monthly",
            "next_billing_date": TODAY + timedelta(days=days_out),
            "status": "active",
        }
        row.update(overrides)
        return normalize_subscription(row)

    return factory


@pytest.fixture
def preferences() -> UserPreferences:
    return UserPreferences(display_currency="NGN", reminder_hour=9)


@pytest.fixture
def settings() -> Settings:
    return Settings(api_base_url="http://api.test", api_token="token-123", request_timeout=2.0)


class FakeNotifier:
    """In-memory stand-in for the device notification scheduler."""

    def __init__(self, available: bool = True) -> None:
        self.available = available
        self.triggers: dict[str, ReminderTrigger] = {}
        self.cancel_all_calls = 0
        self.fail_on: set[str] = set()

    def schedule(self, trigger: ReminderTrigger) -> None:
        if trigger.subscription_id in self.fail_on:
            raise RuntimeError("device refused")
        self.triggers[trigger.trigger_id] = trigger

    def cancel(self, trigger_id: str) -> None:
        self.triggers.pop(trigger_id, None)

    def cancel_all(self) -> None:
        self.cancel_all_calls += 1
        self.triggers.clear()

    def scheduled(self) -> list[str]:
        return list(self.triggers)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()
