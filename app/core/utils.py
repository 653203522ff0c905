"""Shared utility functions."""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def safe_average(values) -> float:
    """Arithmetic mean rounded to 2 places, 0.0 for an empty collection."""
    values = list(values)
    if not values:
        return 0.0
    return round(sum(values) / len(values), 2)


def percentage(part: int, whole: int) -> float:
    return round((part / whole) * 100, 2) if whole else 0.0
