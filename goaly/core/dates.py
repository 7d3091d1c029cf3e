"""Date helpers shared by the goal model, the activation engine and sync.

Every datetime handled by Goaly is timezone-aware UTC. Parsing is tolerant:
anything that cannot be read as a date comes back as ``None`` (or the given
fallback) instead of raising, so one malformed record never derails an
import or a merge.
"""

import math
import re
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

DAY = timedelta(days=1)

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds.

    Truncation keeps in-memory values identical to what ``to_iso`` writes,
    so a goal compares equal to itself after a JSON round trip.
    """
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def _ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def normalize_date(value: Any, fallback: Optional[datetime] = None) -> Optional[datetime]:
    """Coerce a date-like value to an aware UTC datetime.

    Accepts datetimes, dates, ISO-8601 strings (a trailing ``Z`` is fine)
    and epoch milliseconds. Falsy or unparseable input returns ``fallback``.
    """
    if value is None or value == "" or value is False:
        return fallback
    if isinstance(value, datetime):
        return _ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return fallback
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return fallback
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return fallback
        try:
            return _ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return fallback
    return fallback


def parse_local_date(value: Any) -> Optional[datetime]:
    """Parse a calendar-date field such as a deadline or a pause date.

    Date-only strings (``2025-03-01``) land on midnight of that day; values
    carrying a time are parsed as-is.
    """
    if isinstance(value, str) and _DATE_ONLY.match(value.strip()):
        return normalize_date(value.strip() + "T00:00:00+00:00")
    return normalize_date(value)


def set_to_midnight(value: Any) -> datetime:
    """Return midnight of the given day; unparseable input means today."""
    normalized = normalize_date(value, fallback=utc_now())
    return normalized.replace(hour=0, minute=0, second=0, microsecond=0)


def days_until(deadline: Any, now: Optional[datetime] = None) -> float:
    """Whole days from ``now`` until ``deadline``, rounded up.

    Negative when the deadline has passed; ``nan`` when it cannot be parsed.
    """
    deadline_date = normalize_date(deadline)
    if deadline_date is None:
        return math.nan
    now = normalize_date(now, fallback=utc_now())
    return math.ceil((deadline_date - now) / DAY)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    if value is None:
        return None
    value = _ensure_utc(value)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def timestamp_ms(value: Any) -> int:
    """Epoch milliseconds for a date-like value, 0 when unparseable."""
    parsed = normalize_date(value)
    if parsed is None:
        return 0
    return int(parsed.timestamp() * 1000)
