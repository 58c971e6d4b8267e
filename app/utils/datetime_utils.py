"""
Common date/time helpers for the front desk.

Storage: visit dates and times-of-day are stored as clinic-local values
(the clinic works on wall-clock time; "today" means the clinic's today).
Timesheet slots use 12-hour labels such as "09:00 AM".

Anything that compares against "now" goes through clinic_now() or
to_clinic_local() so aware datetimes from callers are interpreted in the
configured clinic timezone.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from app.core.config import get_settings

_TIME_LABEL_RE = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*([AaPp][Mm])\s*$")


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().clinic_timezone)


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def clinic_now() -> datetime:
    """Current clinic-local wall-clock time as a naive datetime."""
    return utc_now().astimezone(clinic_tz()).replace(tzinfo=None)


def to_clinic_local(dt: datetime) -> datetime:
    """
    Convert dt to a naive clinic-local datetime.
    Naive values are assumed to already be clinic-local.
    """
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(clinic_tz()).replace(tzinfo=None)


def parse_time_label(label: str) -> time:
    """
    Parse a 12-hour label ("09:00 AM", "1:30 pm") into a time.

    Raises:
        ValueError: label is not a valid 12-hour time.
    """
    match = _TIME_LABEL_RE.match(label or "")
    if not match:
        raise ValueError(f"Invalid time label: {label!r}")

    hours, minutes, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if not 1 <= hours <= 12 or not 0 <= minutes <= 59:
        raise ValueError(f"Invalid time label: {label!r}")

    if meridiem == "PM" and hours != 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0
    return time(hours, minutes)


def format_time_label(value: time) -> str:
    """Format a time as a zero-padded 12-hour label, e.g. time(13, 0) -> "01:00 PM"."""
    return value.strftime("%I:%M %p")


def scheduled_datetime(day: date, value: time) -> datetime:
    """Naive clinic-local datetime of a scheduled date and time-of-day."""
    return datetime.combine(day, value)


def minutes_between(start: datetime, end: datetime) -> float:
    """Signed minutes from start to end."""
    return (end - start) / timedelta(minutes=1)
