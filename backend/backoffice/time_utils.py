from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server clock in UTC, stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = value.strip()
    return s or None


def as_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to UTC; naive ones are already UTC."""
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp from a request into a naive UTC datetime.

    Blank input gives None. A trailing "Z" or an explicit offset is honoured;
    a timestamp without offset is taken as UTC. A bare "YYYY-MM-DD" means
    midnight of that day.
    """
    s = _clean(value)
    if s is None:
        return None
    if s[-1] in "zZ":
        s = s[:-1] + "+00:00"
    return as_naive_utc(datetime.fromisoformat(s))


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    s = _clean(value)
    if s is None:
        return None
    return date.fromisoformat(s[:10])


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Half-open [start, end) range covering one UTC calendar day."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Render as "YYYY-MM-DDTHH:MM:SSZ" (seconds precision, naive read as UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")
