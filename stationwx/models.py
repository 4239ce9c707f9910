from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

METRICS: tuple[str, ...] = (
    "temp",
    "wind",
    "gust",
    "precip",
    "pressure",
    "humidity",
    "dewpoint",
)

METRIC_LABELS: dict[str, str] = {
    "temp": "Temperature",
    "wind": "Wind speed",
    "gust": "Wind gust",
    "precip": "Precipitation",
    "pressure": "Pressure",
    "humidity": "Humidity",
    "dewpoint": "Dewpoint",
}


@dataclass(frozen=True, slots=True)
class Station:
    """A weather station as listed by the upstream /stations endpoint."""

    sid: Optional[str]  # primary query identifier, None if the listing has none
    id: str             # display / lookup identifier
    name: str
    lat: float
    lon: float
    country: str = ""
    state: str = ""

    # Untouched source record, kept for candidate-code derivation
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_api_dict(self) -> dict:
        """Serialize for the JSON API response (the raw record is not exposed)."""
        return {
            "sid": self.sid,
            "id": self.id,
            "name": self.name,
            "lat": self.lat,
            "lon": self.lon,
            "country": self.country,
            "state": self.state,
        }


@dataclass(slots=True)
class Observation:
    """One canonical, time-stamped reading after field mapping.

    Metrics keep whatever unit the upstream used; a metric the row did not
    carry stays None and is never filled with zero.
    """

    time: datetime  # timezone-aware, UTC

    temp: Optional[float] = None
    wind: Optional[float] = None
    gust: Optional[float] = None
    precip: Optional[float] = None
    pressure: Optional[float] = None
    humidity: Optional[float] = None
    dewpoint: Optional[float] = None

    def to_api_dict(self) -> dict:
        """Serialize for the JSON API response. Absent metrics are omitted."""
        d: dict = {"time": self.time.strftime("%Y-%m-%dT%H:%M:%SZ")}
        for name in METRICS:
            val = getattr(self, name)
            if val is not None:
                d[name] = val
        return d


@dataclass(slots=True)
class SeriesResult:
    """Outcome of resolving one station to a canonical time series."""

    station: Station
    observations: list[Observation] = field(default_factory=list)
    candidates: list[str] = field(default_factory=list)  # full attempt order
    attempted: list[str] = field(default_factory=list)   # codes actually sent upstream
    used_code: Optional[str] = None                      # candidate that yielded rows

    # Diagnostics only
    total_rows: int = 0
    coerced_rows: int = 0
    in_range_rows: int = 0

    @property
    def dropped_rows(self) -> int:
        return max(0, self.total_rows - self.coerced_rows)

    def summary(self) -> str:
        text = (
            f"{self.total_rows} rows • {self.in_range_rows} in range • "
            f"{self.dropped_rows} dropped as corrupted"
        )
        if self.used_code:
            text += f" • code: {self.used_code}"
        return text

    def to_api_dict(self) -> dict:
        return {
            "station": self.station.to_api_dict(),
            "used_code": self.used_code,
            "candidates": list(self.candidates),
            "attempted": list(self.attempted),
            "total_rows": self.total_rows,
            "coerced_rows": self.coerced_rows,
            "in_range_rows": self.in_range_rows,
            "dropped_rows": self.dropped_rows,
            "summary": self.summary(),
            "observations": [o.to_api_dict() for o in self.observations],
        }
