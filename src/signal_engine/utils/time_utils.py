"""
Time Utilities

Provides time-related utilities for:
- UTC clocks (injectable for tests)
- Exchange time zone conversion
- Market-hours window checks
- Timestamp parsing for inbound payloads
"""

from datetime import datetime, time, timezone
from typing import Callable, Optional, Union

import pytz


Clock = Callable[[], datetime]


class TimeUtils:
    """Core time utilities."""

    @staticmethod
    def now_utc() -> datetime:
        """Get current UTC time."""
        return datetime.now(timezone.utc)

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """Treat naive datetimes as UTC and convert aware ones to UTC."""
        if dt.tzinfo is None:
            return pytz.UTC.localize(dt)
        return dt.astimezone(pytz.UTC)

    @staticmethod
    def to_timezone(dt: datetime, target_tz: str) -> datetime:
        """Convert datetime to target timezone."""
        return TimeUtils.ensure_utc(dt).astimezone(pytz.timezone(target_tz))

    @staticmethod
    def parse_hhmm(value: str) -> time:
        hours, minutes = value.split(":")
        return time(int(hours), int(minutes))

    @staticmethod
    def is_within_window(dt: datetime, start: str, end: str, tz_name: str) -> bool:
        """True when dt, seen in tz_name, falls inside [start, end] inclusive, to the minute."""
        local = TimeUtils.to_timezone(dt, tz_name)
        local_time = time(local.hour, local.minute)
        return TimeUtils.parse_hhmm(start) <= local_time <= TimeUtils.parse_hhmm(end)

    @staticmethod
    def is_at_or_after(dt: datetime, hhmm: str, tz_name: str) -> bool:
        local = TimeUtils.to_timezone(dt, tz_name)
        return time(local.hour, local.minute) >= TimeUtils.parse_hhmm(hhmm)

    @staticmethod
    def from_unix_timestamp(timestamp: float) -> datetime:
        """Create datetime from Unix timestamp; values that look like milliseconds are scaled."""
        if abs(timestamp) > 1e11:
            timestamp = timestamp / 1000.0
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)

    @staticmethod
    def parse_timestamp(value: Union[str, int, float, datetime]) -> Optional[datetime]:
        """
        Parse a payload timestamp into an aware UTC datetime.

        Accepts datetimes, ISO-8601 strings (a trailing ``Z`` is allowed) and
        epoch seconds or milliseconds, numeric or as digit strings. Returns None
        when the value cannot be interpreted.
        """
        if isinstance(value, datetime):
            return TimeUtils.ensure_utc(value)
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            try:
                return TimeUtils.from_unix_timestamp(float(value))
            except (OverflowError, OSError, ValueError):
                return None
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return None
            try:
                return TimeUtils.from_unix_timestamp(float(text))
            except ValueError:
                pass
            except (OverflowError, OSError):
                return None
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                return TimeUtils.ensure_utc(datetime.fromisoformat(text))
            except ValueError:
                return None
        return None

    @staticmethod
    def seconds_between(earlier: datetime, later: datetime) -> float:
        return (TimeUtils.ensure_utc(later) - TimeUtils.ensure_utc(earlier)).total_seconds()
