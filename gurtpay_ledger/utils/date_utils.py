"""Date manipulation utilities"""

from datetime import datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current wall-clock time as an aware UTC datetime"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to aware UTC (SQLite hands back naive values)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_from_now(hours: Optional[int], now: Optional[datetime] = None) -> Optional[datetime]:
    """Expiry timestamp `hours` ahead of now, or None when no expiry is requested"""
    if hours is None:
        return None
    return (now or utcnow()) + timedelta(hours=hours)


def is_past(deadline: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True once wall-clock has moved beyond the deadline; a missing deadline never passes"""
    if deadline is None:
        return False
    return (now or utcnow()) > as_utc(deadline)
