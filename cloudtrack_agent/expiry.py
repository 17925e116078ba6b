"""Expiry date arithmetic."""

import math
from datetime import date, datetime
from typing import Optional, Union
from zoneinfo import ZoneInfo

# "Never expires": sorts after every dated resource and equals no finite threshold.
NO_EXPIRY = math.inf


def today_in(timezone: str = "UTC") -> date:
    """Return the calendar date the sweep considers "today" in the given zone."""
    return datetime.now(ZoneInfo(timezone)).date()


def date_key(day: date) -> str:
    """Format a date the way ``lastNotified`` stores it (YYYY-MM-DD)."""
    return day.isoformat()


def parse_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date.

    Accepts ``YYYY-MM-DD`` or a full ISO timestamp, whose time-of-day part is
    discarded.

    Raises:
        ValueError: If the value is not a valid date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = value.strip()
    if len(text) > 10 and text[10] in "T ":
        text = text[:10]
    return date.fromisoformat(text)


def days_remaining(expiry_date: Optional[Union[str, date]], today: Optional[date] = None) -> Union[int, float]:
    """
    Days from ``today`` until ``expiry_date``.

    Positive means days left, zero means it expires today and negative means
    days overdue. A missing expiry date returns NO_EXPIRY.
    """
    if not expiry_date:
        return NO_EXPIRY
    if today is None:
        today = today_in()
    return (parse_date(expiry_date) - today).days


def is_valid_date(value: Optional[str]) -> bool:
    if not value:
        return True
    try:
        parse_date(value)
    except (TypeError, ValueError):
        return False
    return True
