"""Datetime helpers shared across the application."""

from __future__ import annotations

from datetime import UTC, date, datetime

__all__ = [
    "utc_now",
    "ensure_utc",
    "serialize_datetime",
    "parse_datetime",
    "serialize_date",
    "parse_date",
]


def utc_now() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Return ``value`` in UTC, treating naive values as already UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def serialize_datetime(value: datetime | None) -> str | None:
    """Serialise ``value`` to an ISO 8601 UTC string."""
    normalized = ensure_utc(value)
    if normalized is None:
        return None
    return normalized.isoformat(timespec="microseconds")


def parse_datetime(value: str | None) -> datetime | None:
    """Parse an ISO 8601 string into a UTC ``datetime`` instance."""
    if value is None:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def serialize_date(value: date | None) -> str | None:
    """Serialise a calendar date as ``YYYY-MM-DD``."""
    if value is None:
        return None
    return value.isoformat()


def parse_date(value: str | None) -> date | None:
    """Parse ``YYYY-MM-DD`` text; return ``None`` for blank or malformed input."""
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None
