"""
Time helpers shared by the engine: timestamp parsing, relative-time
formatting and half-up rounding.

All datetimes handed back are timezone-aware UTC. Naive inputs are assumed
to be UTC already.
"""
import math
from datetime import datetime, date, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (with or without 'Z') or datetime. None on failure."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        try:
            dt = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def resolve_now(now: Any = None) -> datetime:
    """Injectable clock: parse ``now`` if given, else current UTC time."""
    return parse_timestamp(now) or utcnow()


def days_since(ts: Any, now: Any = None) -> Optional[int]:
    """Whole days elapsed since ``ts`` (floored). None when ts is unparseable."""
    dt = parse_timestamp(ts)
    if dt is None:
        return None
    seconds = (resolve_now(now) - dt).total_seconds()
    return math.floor(seconds / 86400)


def hours_since(ts: Any, now: Any = None) -> Optional[int]:
    dt = parse_timestamp(ts)
    if dt is None:
        return None
    return math.floor((resolve_now(now) - dt).total_seconds() / 3600)


def start_of_day(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def round_half_up(value: float) -> int:
    """Nearest int, x.5 towards +infinity (2.5 -> 3, -12.5 -> -12). Not banker's rounding."""
    return int((Decimal(str(value)) + Decimal('0.5')).to_integral_value(rounding=ROUND_FLOOR))


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'} ago"


def time_ago(ts: Any, now: Any = None) -> str:
    """
    Relative time label: "just now", "N minutes ago", "N hours ago",
    "N days ago", "N weeks ago". Floors at every unit, singular when N == 1.
    Unparseable timestamps give an empty string.
    """
    dt = parse_timestamp(ts)
    if dt is None:
        return ''
    seconds = (resolve_now(now) - dt).total_seconds()
    minutes = math.floor(seconds / 60)
    if minutes < 1:
        return 'just now'
    if minutes < 60:
        return _plural(minutes, 'minute')
    hours = minutes // 60
    if hours < 24:
        return _plural(hours, 'hour')
    days = hours // 24
    if days < 7:
        return _plural(days, 'day')
    return _plural(days // 7, 'week')
