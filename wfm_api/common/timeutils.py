# wfm_api/common/timeutils.py
from __future__ import annotations

import calendar
import math
import re
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from wfm_api.common.errors import ConfigurationError

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)

TWO_PLACES = Decimal("0.01")


def parse_clock(text) -> time:
    """
    Parse a 12-hour clock string such as ``"9:00 AM"`` or ``"06:30pm"``.

    The AM/PM marker is mandatory; 24-hour strings, missing values and
    out-of-range parts raise ConfigurationError.
    """
    if not isinstance(text, str):
        raise ConfigurationError("INVALID_TIME_FORMAT", f"Time value is missing or not a string: {text!r}")
    m = _CLOCK_RE.match(text.strip())
    if not m:
        raise ConfigurationError(
            "INVALID_TIME_FORMAT",
            f"Invalid time format {text!r}; expected 'H:MM AM' or 'H:MM PM'",
        )
    hours, minutes, period = int(m.group(1)), int(m.group(2)), m.group(3).upper()
    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        raise ConfigurationError("INVALID_TIME_FORMAT", f"Time out of range: {text!r}")
    if period == "PM" and hours != 12:
        hours += 12
    elif period == "AM" and hours == 12:
        hours = 0
    return time(hours, minutes)


def format_clock(t: time) -> str:
    h = t.hour % 12 or 12
    return f"{h}:{t.minute:02d} {'AM' if t.hour < 12 else 'PM'}"


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def iter_days(start: date, end: date):
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)


def months_between(start_year: int, start_month: int, year: int, month: int) -> int:
    return (year - start_year) * 12 + (month - start_month)


def hours_between(start: datetime, end: datetime) -> Decimal:
    """Elapsed hours, two decimal places."""
    secs = Decimal(int((end - start).total_seconds()))
    return (secs / Decimal(3600)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def whole_minutes(start: datetime, end: datetime) -> int:
    return math.floor((end - start).total_seconds() / 60)


def money(v) -> Decimal:
    if v is None:
        return Decimal("0.00")
    return Decimal(str(v)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def dec(v, default="0") -> Decimal:
    if v is None or v == "":
        return Decimal(default)
    if isinstance(v, Decimal):
        return v
    return Decimal(str(v))
