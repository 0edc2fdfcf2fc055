import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

SECONDS_PER_DAY = 24 * 60 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Union[date, datetime]) -> datetime:
    """Normalize a stored date or timestamp to an aware UTC datetime. Dates map to midnight UTC."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def days_until(target: Union[date, datetime], now: Optional[datetime] = None) -> int:
    """Whole days from now until target, rounded up (negative once target has passed)."""
    now = as_utc(now or utcnow())
    delta = as_utc(target) - now
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)
