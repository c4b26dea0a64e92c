"""Datetime helpers shared by the enrollment engine and scheduled jobs."""

from datetime import UTC, date, datetime


SECONDS_PER_DAY = 86400


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def utc_now() -> datetime:
    return datetime.now(UTC)


def utc_today(now: datetime | None = None) -> date:
    """Calendar day (UTC) used as the attendance key."""
    return (ensure_utc_aware(now) or utc_now()).astimezone(UTC).date()


def days_elapsed(since: datetime, now: datetime) -> float:
    """Fractional days between two instants."""
    return (now - since).total_seconds() / SECONDS_PER_DAY


def whole_days_elapsed(since: datetime, now: datetime) -> int:
    """Whole days between two instants (floor, never negative)."""
    return max(int(days_elapsed(since, now)), 0)
