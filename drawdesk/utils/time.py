"""Time utilities."""
from datetime import UTC, date, datetime


def utcnow() -> datetime:
    """Return current UTC time with timezone awareness."""

    return datetime.now(tz=UTC)


def today() -> date:
    """Return the current UTC calendar date."""

    return utcnow().date()


def days_between(start: date, end: date) -> int:
    """Whole days from ``start`` to ``end``, floored at zero."""

    return max(0, (end - start).days)


__all__ = ["utcnow", "today", "days_between"]
