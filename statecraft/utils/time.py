"""Time Utilities - unix timestamps, UTC datetimes and formatting"""
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Union
from dateutil import parser as date_parser


# A clock returns the current unix time in whole seconds
Clock = Callable[[], int]


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def unix_now() -> int:
    """Current unix time in whole seconds"""
    return int(time.time())


def floor_to_minute(ts: int) -> int:
    """Round a unix timestamp down to the start of its minute"""
    return ts - (ts % 60)


def to_unix(dt: datetime) -> int:
    """Convert a datetime to unix seconds (naive datetimes are taken as UTC)"""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def from_unix(ts: int) -> datetime:
    """Convert unix seconds to an aware UTC datetime"""
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    dt = date_parser.isoparse(iso_string)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def coerce_timestamp(value: Optional[Union[int, str, datetime]]) -> Optional[int]:
    """Accept unix seconds, an ISO string or a datetime; return unix seconds"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return to_unix(value)
    if isinstance(value, str):
        if value.strip().lstrip("-").isdigit():
            return int(value)
        return to_unix(parse_iso(value))
    return int(value)
