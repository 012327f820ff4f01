"""
Time Helpers

Validation and comparison of "HH:MM" clock strings and weekly periods.
Clock strings are compared lexically, so "08:00" < "17:30" < "24:00".
"""

import re
import time
from datetime import datetime, timezone
from typing import Optional

from .models import Period

_TIME_PATTERN = re.compile(r"^(?:0?[0-9]|1[0-9]|2[0-3]):[0-5][0-9]$")


def now_utc() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_time(dt: datetime) -> str:
    """Format a datetime as a zero-padded HH:MM string."""
    return dt.strftime("%H:%M")


def current_time_string() -> str:
    """Local wall-clock time as HH:MM."""
    return format_time(datetime.now())


def current_weekday() -> int:
    """Local weekday, Monday = 0 ... Sunday = 6."""
    return datetime.now().weekday()


def is_valid_time_string(value: str) -> bool:
    if not isinstance(value, str):
        return False
    return _TIME_PATTERN.match(value) is not None


def correct_time(value: str) -> str:
    """Zero-pad both fields of an H:M string ("8:5" -> "08:05").

    Strings that do not split into exactly two fields are returned unchanged.
    """
    parts = value.split(":")
    if len(parts) != 2:
        return value
    return ":".join(part.rjust(2, "0") for part in parts)


def is_period_valid(period: Period, auto_correct: bool = False) -> bool:
    """Check both period times; optionally repair them in place once."""
    if is_valid_time_string(period.from_time) and is_valid_time_string(period.until):
        return True

    if not auto_correct:
        return False

    period.from_time = correct_time(period.from_time)
    period.until = correct_time(period.until)
    return is_period_valid(period, auto_correct=False)


def is_period_active_on_day(period: Period, day: int) -> bool:
    if not 0 <= day < len(period.days):
        return False
    return bool(period.days[day])


def is_current_period(
    period: Period,
    now: Optional[str] = None,
    weekday: Optional[int] = None,
) -> bool:
    """Check whether the period covers the given clock time and weekday.

    Periods spanning midnight (from > until) never match.
    """
    now = now or current_time_string()
    day = current_weekday() if weekday is None else weekday

    if not is_period_valid(period, auto_correct=True):
        return False

    if not is_period_active_on_day(period, day):
        return False

    if now < period.from_time or now > period.until:
        return False

    return True


def get_timestamp_minus_interval(minutes: float) -> int:
    """Epoch milliseconds of now minus the given number of minutes."""
    return int(time.time() * 1000) - int(minutes * 60000)
