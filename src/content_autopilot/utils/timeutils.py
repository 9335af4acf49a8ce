"""Time helpers.

SQLite hands back naive datetimes even for ``DateTime(timezone=True)``
columns, so anything read from the database is normalised to UTC before it is
compared with an aware ``now``.
"""

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO timestamp stored in a JSON setting; invalid values are None."""
    if not value:
        return None
    try:
        return ensure_utc(datetime.fromisoformat(value))
    except (TypeError, ValueError):
        return None


def hours_since(value: datetime | str | None, now: datetime) -> float:
    """Hours elapsed since ``value``; infinite when it was never set."""
    if isinstance(value, str):
        value = parse_timestamp(value)
    if value is None:
        return float("inf")
    return (now - ensure_utc(value)).total_seconds() / 3600  # type: ignore[operator]
