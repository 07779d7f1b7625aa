from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any


_AMOUNT_NOISE = re.compile(r"[\s,₦$]")
_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")


def parse_amount(raw: Any) -> Decimal | None:
    """
    Basic amount normalization.

    Accepts numbers and numeric strings (currency symbols, spaces and thousands
    separators are ignored). Returns a Decimal, or None if the value does not
    look like a number.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        raw = repr(raw)

    value = _AMOUNT_NOISE.sub("", str(raw))
    if not value:
        return None
    try:
        amount = Decimal(value)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_calendar_date(raw: Any) -> date | None:
    """
    Reduce a date-like value to a calendar date.

    Datetimes and ISO strings with a time part keep only their date, so
    time-of-day never leaks into day arithmetic.
    """

    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw

    match = _ISO_DATE_PREFIX.match(str(raw).strip())
    if match is None:
        return None
    try:
        return date.fromisoformat(match.group(0))
    except ValueError:
        return None
