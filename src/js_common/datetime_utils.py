"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def minutes_ago(minutes: int, now: datetime | None = None) -> datetime:
    """Cutoff timestamp used by offer expiry."""
    return (now or utc_now()) - timedelta(minutes=minutes)


def iso_or_none(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
