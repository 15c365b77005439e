"""UTC datetime utilities."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def minutes_from(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)


def is_past(moment: datetime | None, now: datetime) -> bool:
    """True when `moment` is set and strictly before `now`."""
    return moment is not None and moment < now
