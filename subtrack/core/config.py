from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import BaseModel, Field, HttpUrl, ValidationError, field_validator


def _check_timezone(value: str) -> str:
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone '{value}'") from exc
    return value


class UserPreferences(BaseModel):
    """
    Per-user settings the engine needs, passed in explicitly.

    Reminder scheduling and analytics read these values from the object they
    are given instead of looking them up from storage themselves.
    """

    display_currency: str = "NGN"
    reminder_days_before: int = Field(default=3, ge=0)
    reminder_hour: int = Field(default=9, ge=0, le=23)
    reminders_enabled: bool = True
    timezone: str = "Africa/Lagos"

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        return _check_timezone(value)


class Settings(BaseModel):
    api_base_url: HttpUrl
    api_token: str | None = None
    bot_token: str | None = None
    reminder_chat_id: int | None = None
    environment: Literal["local", "staging", "production"] = "local"
    request_timeout: float = 10.0
    display_currency: str = "NGN"
    default_reminder_days: int = Field(default=3, ge=0)
    reminder_hour: int = Field(default=9, ge=0, le=23)
    timezone: str = "Africa/Lagos"
    duplicate_payment_window: float = 10.0
    resync_interval_minutes: int = 60

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        return _check_timezone(value)

    @property
    def is_debug(self) -> bool:
        return self.environment == "local"

    def preferences(self) -> UserPreferences:
        return UserPreferences(
            display_currency=self.display_currency.upper(),
            reminder_days_before=self.default_reminder_days,
            reminder_hour=self.reminder_hour,
            reminders_enabled=True,
            timezone=self.timezone,
        )


def _build_settings() -> Settings:
    # Load .env file once on first settings build (for local development)
    load_dotenv()

    chat_id = os.getenv("REMINDER_CHAT_ID")
    try:
        return Settings(
            api_base_url=os.environ["SUBA_API_URL"],
            api_token=os.getenv("SUBA_API_TOKEN"),
            bot_token=os.getenv("BOT_TOKEN"),
            reminder_chat_id=int(chat_id) if chat_id else None,
            environment=os.getenv("ENVIRONMENT", "local"),
            request_timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
            display_currency=os.getenv("DISPLAY_CURRENCY", "NGN"),
            default_reminder_days=int(os.getenv("DEFAULT_REMINDER_DAYS", "3")),
            reminder_hour=int(os.getenv("REMINDER_HOUR", "9")),
            timezone=os.getenv("TIMEZONE", "Africa/Lagos"),
            duplicate_payment_window=float(os.getenv("DUPLICATE_PAYMENT_WINDOW", "10")),
            resync_interval_minutes=int(os.getenv("RESYNC_INTERVAL_MINUTES", "60")),
        )
    except KeyError as exc:
        raise RuntimeError("Missing required environment variables: SUBA_API_URL") from exc
    except (ValidationError, ValueError) as exc:
        raise RuntimeError(f"Invalid settings: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Reads environment variables once and validates them with Pydantic.
    """

    return _build_settings()
