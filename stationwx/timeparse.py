from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

# "2024-01-01 00:00", "2024-01-01T00:00:30": wall-clock UTC without a zone marker
_PLAIN_UTC_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[ T](\d{2}):(\d{2})(?::(\d{2}))?$"
)
_DMY_RE = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")

_FALLBACK_FORMATS = (
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y/%m/%d",
)


def as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _from_epoch_ms(value: float) -> datetime | None:
    if not math.isfinite(value):
        return None
    try:
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _parse_iso(val: str) -> datetime | None:
    try:
        return as_utc(datetime.fromisoformat(val.replace("Z", "+00:00")))
    except ValueError:
        return None


def _parse_rfc2822(val: str) -> datetime | None:
    try:
        return as_utc(parsedate_to_datetime(val))
    except (TypeError, ValueError, IndexError):
        return None


def parse_timestamp(value: object) -> datetime | None:
    """Parse an upstream timestamp into an aware UTC datetime.

    Numbers are epoch milliseconds. ``YYYY-MM-DD HH:mm[:SS]`` strings (space
    or ``T`` separator) are UTC. Other strings go through ISO-8601, RFC 2822
    and a few common calendar formats; naive results are taken as UTC.

    Returns None when the value cannot be parsed. Never substitutes "now"
    or the epoch.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, (int, float)):
        return _from_epoch_ms(float(value))
    if not isinstance(value, str):
        return None

    val = value.strip()
    if not val:
        return None

    m = _PLAIN_UTC_RE.match(val)
    if m:
        year, month, day, hour, minute, second = m.groups()
        try:
            return datetime(
                int(year), int(month), int(day), int(hour), int(minute),
                int(second or 0), tzinfo=timezone.utc,
            )
        except ValueError:
            return None

    dt = _parse_iso(val)
    if dt is not None:
        return dt
    dt = _parse_rfc2822(val)
    if dt is not None:
        return dt
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(val, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def parse_date_input(value: str | None, fallback: datetime) -> datetime:
    """Parse a date-range bound typed by a user (ISO or DD-MM-YYYY).

    Blank or unparsable input yields ``fallback``.
    """
    val = (value or "").strip()
    if not val:
        return fallback

    dt = _parse_iso(val)
    if dt is not None:
        return dt

    m = _DMY_RE.match(val)
    if m:
        day, month, year = m.groups()
        try:
            return datetime(int(year), int(month), int(day), tzinfo=timezone.utc)
        except ValueError:
            pass

    return fallback
