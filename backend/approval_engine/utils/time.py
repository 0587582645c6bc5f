"""Time Utilities - UTC timestamps, local wall-clock time and parsing"""
from datetime import date, datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser
from dateutil import tz


def utc_now() -> datetime:
    """
    Get current UTC datetime.

    Returned naive (UTC implied) because pymongo hands back naive UTC
    datetimes, so stored and in-memory values stay comparable.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC"""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def local_now(timezone_name: str) -> datetime:
    """
    Get the current wall-clock time in the given IANA timezone

    Args:
        timezone_name: e.g. "Asia/Kolkata"; unknown names fall back to UTC
    """
    zone = tz.gettz(timezone_name) or tz.UTC
    return datetime.now(zone)


def format_hhmm(dt: datetime) -> str:
    """Zero-padded 24h time of day, e.g. "07:05" """
    return dt.strftime("%H:%M")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to naive UTC datetime

    Raises:
        ValueError: If the string is not a valid ISO 8601 timestamp
    """
    dt = date_parser.isoparse(iso_string)
    return to_utc_naive(dt)


def day_of(dt: datetime) -> date:
    """UTC calendar day of a stored timestamp"""
    return to_utc_naive(dt).date()


def days_ago(days: int, now: Optional[datetime] = None) -> datetime:
    """Cutoff `days` before now (naive UTC)"""
    return (now or utc_now()) - timedelta(days=days)
