from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union

DateLike = Union[str, date, datetime, None]


def _naive_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a document timestamp as stored in the remote store.

    Accepts "YYYY-MM-DD", naive "YYYY-MM-DDTHH:MM[:SS]" (taken as UTC) and
    offset-aware forms including a trailing "Z". Blank input gives None.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _naive_utc(datetime.fromisoformat(text))


def coerce_date(value: DateLike) -> datetime:
    """
    Order/invoice date as a UTC-naive datetime; a missing date means today.

    Raises ValueError when the value cannot be interpreted.
    """
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return _naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    parsed = parse_iso_datetime(value) if isinstance(value, str) else None
    if parsed is None:
        raise ValueError("Invalid date provided for number generation.")
    return parsed


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 with a trailing 'Z', to the second. Naive values are UTC."""
    if dt is None:
        return None
    stamp = _naive_utc(dt).replace(microsecond=0)
    return stamp.isoformat() + "Z"


def now_z() -> str:
    """Write timestamp for createdAt/updatedAt fields."""
    return to_utc_z(utcnow())
