from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Optional


def safe_div(n: Optional[float], d: Optional[float]) -> float | None:
    """NULLIF-style division: undefined when either side is missing or d is 0."""
    if n is None or d is None or d == 0:
        return None
    return n / d


def mean(values: list[float]) -> float | None:
    if not values:
        return None
    return sum(values) / len(values)


def as_datetime(value: date | datetime) -> datetime:
    """Timezone-aware UTC datetime; naive values are read as UTC.

    A bare date compares as midnight UTC of that day.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def as_date(value: date | datetime) -> date:
    if isinstance(value, datetime):
        return as_datetime(value).date()
    return value


def month_key(value: date | datetime) -> tuple[int, int]:
    return value.year, value.month


def missing_fields(record: Any, fields: tuple[str, ...]) -> list[str]:
    return [f for f in fields if getattr(record, f, None) is None]
