"""General-purpose helper utilities for GearFlow."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

_SECONDS_PER_DAY = 86400.0


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a backend timestamp into a timezone-aware UTC datetime.

    Accepts ``datetime``, ``date`` and ISO-8601 strings (including the
    trailing ``Z`` the backend emits).  Naive values are assumed to be UTC.

    Args:
        value: Raw value from a row.

    Returns:
        Aware datetime, or None when the value is empty or unparseable.

    Examples:
        >>> parse_timestamp("2024-03-01T10:00:00Z").isoformat()
        '2024-03-01T10:00:00+00:00'
        >>> parse_timestamp("not a date") is None
        True
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_date(value: Any) -> date:
    """Coerce a date-like value into a ``date``.

    Raises:
        ValueError: If the value cannot be interpreted as a date.

    Examples:
        >>> to_date("2024-03-01")
        datetime.date(2024, 3, 1)
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_timestamp(value)
    if parsed is None:
        raise ValueError(f"Invalid date: {value!r}")
    return parsed.date()


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from *start* to *end* (negative if end is earlier)."""
    return (end - start).total_seconds() / _SECONDS_PER_DAY


def span_days(start: date, end: date) -> int:
    """Inclusive number of calendar days covered by ``start..end``.

    Examples:
        >>> span_days(date(2024, 3, 1), date(2024, 3, 7))
        7
        >>> span_days(date(2024, 3, 7), date(2024, 3, 1))
        0
    """
    return max((end - start).days + 1, 0)


def previous_period(start: date, end: date) -> tuple[date, date]:
    """Return the window of equal length immediately preceding ``start..end``.

    Examples:
        >>> previous_period(date(2024, 3, 8), date(2024, 3, 14))
        (datetime.date(2024, 3, 1), datetime.date(2024, 3, 7))
    """
    length = end - start
    prev_end = start - timedelta(days=1)
    return prev_end - length, prev_end


def safe_div(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safe division returning *default* when denominator is zero."""
    if denominator == 0:
        return default
    return numerator / denominator


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    """Clamp *value* into ``[low, high]``."""
    return max(low, min(high, value))


def pct_change(current: float, previous: float) -> float:
    """Percentage change from *previous* to *current*; 0 when previous is 0.

    Examples:
        >>> pct_change(15, 10)
        50.0
        >>> pct_change(5, 0)
        0.0
    """
    if previous == 0:
        return 0.0
    return round(((current - previous) / abs(previous)) * 100, 2)

