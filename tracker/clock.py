"""
Transport Tracker - Local Time Helpers
Single local timezone used for "today", "now" and HH:MM inputs.
"""

import os
from datetime import datetime, date, time
from typing import Optional, Union

import pytz

# Local timezone (one region per deployment)
TIMEZONE_NAME = os.getenv('TRACKER_TIMEZONE', 'UTC')
LOCAL_TZ = pytz.timezone(TIMEZONE_NAME)


def get_local_now() -> datetime:
    """Get current datetime in the local timezone."""
    return datetime.now(LOCAL_TZ)


def get_local_date() -> date:
    """Get current date in the local timezone."""
    return get_local_now().date()


def localize(value: datetime) -> datetime:
    """Attach the local timezone to a naive datetime, or convert an aware one."""
    if value.tzinfo is None:
        return LOCAL_TZ.localize(value)
    return value.astimezone(LOCAL_TZ)


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse an HH:MM (or HH:MM:SS) string. Raises ValueError on bad input."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)

    parts = str(value).strip().split(':')
    if len(parts) not in (2, 3):
        raise ValueError(f"Invalid time of day: {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    return time(hours, minutes)


def time_on_date(value: Union[str, time], base_date: Optional[date] = None) -> datetime:
    """Resolve a time of day against a calendar date (defaults to today)."""
    day = base_date or get_local_date()
    return LOCAL_TZ.localize(datetime.combine(day, parse_time_of_day(value)))


def format_time(value: Optional[datetime]) -> str:
    """Format a timestamp as HH:MM in local time, '' when absent."""
    if value is None:
        return ''
    return localize(value).strftime('%H:%M')
