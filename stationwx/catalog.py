from __future__ import annotations

import logging
import math
from typing import Any, Optional

from stationwx.codes import resolve_candidates
from stationwx.models import Station

logger = logging.getLogger(__name__)

SID_FIELDS = ("station_id", "icao", "wmo", "wmoid", "id", "code", "uid", "site", "station")
ID_FIELDS = ("id", "station_id", "code")
LAT_FIELDS = ("lat", "latitude", "y")
LON_FIELDS = ("lon", "longitude", "x")


def _first_present(raw: dict, keys: tuple[str, ...]) -> Any:
    """First value under ``keys`` that is not None (missing counts as None)."""
    for key in keys:
        val = raw.get(key)
        if val is not None:
            return val
    return None


def _first_truthy(raw: dict, keys: tuple[str, ...]) -> Any:
    for key in keys:
        val = raw.get(key)
        if val:
            return val
    return None


def _parse_coord(val: Any) -> float | None:
    """Parse a coordinate, returning None for missing or non-finite values."""
    if val is None or isinstance(val, bool):
        return None
    try:
        f = float(val)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def station_from_raw(raw: dict, index: int) -> Station | None:
    """Build a Station from one listing entry, or None if it has no usable position."""
    lat = _parse_coord(_first_present(raw, LAT_FIELDS))
    lon = _parse_coord(_first_present(raw, LON_FIELDS))
    if lat is None or lon is None:
        return None

    sid = _first_present(raw, SID_FIELDS)
    ident = _first_present(raw, ID_FIELDS)
    return Station(
        sid=str(sid) if sid is not None else None,
        id=str(ident) if ident is not None else f"station_{index}",
        name=str(_first_truthy(raw, ("name", "station_name", "id")) or f"Station {index}"),
        lat=lat,
        lon=lon,
        country=str(_first_truthy(raw, ("country", "ctry")) or ""),
        state=str(_first_truthy(raw, ("state", "region")) or ""),
        raw=raw,
    )


def normalize_stations(raw: Any) -> list[Station]:
    """Normalize a /stations payload (a list, or an object with a ``stations`` list).

    Entries that are not objects or lack finite coordinates are skipped.
    """
    if isinstance(raw, list):
        entries = raw
    elif isinstance(raw, dict) and isinstance(raw.get("stations"), list):
        entries = raw["stations"]
    else:
        return []

    stations: list[Station] = []
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        station = station_from_raw(entry, i)
        if station is not None:
            stations.append(station)
    return stations


class StationCatalog:
    """In-memory station set for one load epoch, replaced wholesale on reload."""

    def __init__(self) -> None:
        self._stations: list[Station] = []
        self._codes: dict[int, list[str]] = {}  # id(station) -> candidate codes
        self._loaded = False

    @property
    def stations(self) -> list[Station]:
        return list(self._stations)

    @property
    def count(self) -> int:
        return len(self._stations)

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self, raw: Any) -> int:
        """Replace the catalog with the stations in ``raw``. Returns the station count."""
        stations = normalize_stations(raw)
        self._stations = stations
        self._codes = {id(s): resolve_candidates(s) for s in stations}
        self._loaded = True
        logger.info("Loaded %d stations", len(stations))
        return len(stations)

    def codes_for(self, station: Station) -> list[str]:
        """Candidate codes for ``station``, cached for catalog members."""
        codes = self._codes.get(id(station))
        if codes is None:
            codes = resolve_candidates(station)
        return list(codes)

    def search(self, term: str) -> list[Station]:
        """Case-insensitive search over names, codes and K/C-prefixed variants.

        "BOS" finds a station listed as KBOS and vice versa. A blank term
        returns the whole catalog.
        """
        term = (term or "").strip().upper()
        if not term:
            return self.stations

        de_k = term[1:] if term.startswith("K") else term
        de_c = term[1:] if term.startswith("C") else term

        results: list[Station] = []
        for s in self._stations:
            blob = f"{s.sid or ''} {s.id or ''} {s.name or ''} {s.state or ''} {s.country or ''}".upper()
            if term in blob:
                results.append(s)
                continue
            codes = self._codes.get(id(s)) or resolve_candidates(s)
            if any(term in c or de_k in c or de_c in c for c in codes):
                results.append(s)
        return results

    def find(self, code: str) -> Optional[Station]:
        """Exact, case-insensitive lookup by id, sid or any candidate code."""
        needle = (code or "").strip().upper()
        if not needle:
            return None
        for s in self._stations:
            if s.id.upper() == needle or (s.sid or "").upper() == needle:
                return s
        for s in self._stations:
            if needle in (c.upper() for c in self._codes.get(id(s), ())):
                return s
        return None
