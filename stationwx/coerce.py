from __future__ import annotations

import logging
import math
import re
from typing import Any, Iterable, Mapping, Optional

from stationwx.models import Observation
from stationwx.timeparse import parse_timestamp

logger = logging.getLogger(__name__)

# Matched anywhere in the key, case-insensitive: "obs_time", "Date", "ts" ...
TIME_KEY_PATTERN = re.compile(r"time|ts|timestamp|obs_time|date", re.IGNORECASE)

# metric -> accepted keys (lowercase), first finite numeric one wins
METRIC_ALIASES: dict[str, tuple[str, ...]] = {
    "temp": ("temp", "temperature", "tmpf", "air_temp"),
    "precip": ("precip", "precipitation", "p01i", "rain"),
    "pressure": ("pressure", "mslp", "altimeter"),
    "humidity": ("humidity", "relh", "rh"),
    "dewpoint": ("dewpoint", "dwpt"),
    "wind": ("wind_speed", "wspd", "windspd", "windspeed"),
    "gust": ("wind_gust", "wgust", "gust"),
}

# Vector components used when no direct wind speed is reported
WIND_COMPONENTS = ("wind_x", "wind_y")


def is_number(val: Any) -> bool:
    """True for finite ints/floats. Booleans and numeric strings do not count."""
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        return False
    return math.isfinite(val)


def find_time_key(row: Mapping[str, Any]) -> Optional[str]:
    """Return the first key (in row order) that looks like a timestamp field."""
    for key in row:
        if isinstance(key, str) and TIME_KEY_PATTERN.search(key):
            return key
    return None


def pick(low: Mapping[str, Any], aliases: Iterable[str]) -> Optional[float]:
    """Value of the first alias present in ``low`` holding a finite number."""
    for name in aliases:
        val = low.get(name)
        if is_number(val):
            return float(val)
    return None


def coerce(row: Any) -> Optional[Observation]:
    """Map one raw record onto an Observation.

    Returns None for non-object rows and rows without a parsable timestamp.
    """
    if not isinstance(row, dict):
        return None

    time_key = find_time_key(row)
    if time_key is None:
        return None
    time = parse_timestamp(row[time_key])
    if time is None:
        return None

    # Later keys that differ only in case overwrite earlier ones
    low = {str(k).lower(): v for k, v in row.items()}

    values = {metric: pick(low, aliases) for metric, aliases in METRIC_ALIASES.items()}

    if values["wind"] is None:
        wx, wy = (low.get(k) for k in WIND_COMPONENTS)
        if is_number(wx) and is_number(wy):
            values["wind"] = math.hypot(wx, wy)

    return Observation(time=time, **values)


def coerce_rows(rows: Iterable[Any]) -> list[Observation]:
    """Coerce every row, drop the corrupted ones, sort ascending by time.

    The sort is stable; duplicate timestamps are kept.
    """
    rows = list(rows)
    out = [obs for obs in map(coerce, rows) if obs is not None]
    out.sort(key=lambda o: o.time)
    if len(out) < len(rows):
        logger.debug("Dropped %d corrupted rows of %d", len(rows) - len(out), len(rows))
    return out
