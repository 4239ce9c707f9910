from __future__ import annotations

from typing import Any

from stationwx.models import Station

# Raw listing fields that may hold an identifier the history endpoint accepts
RAW_CODE_FIELDS: tuple[str, ...] = (
    "station_id",
    "icao",
    "wmo",
    "wmoid",
    "code",
    "uid",
    "site",
    "station",
)

# country -> ICAO prefix added to 3-letter codes ("BOS" -> "KBOS")
ICAO_PREFIXES: dict[str, str] = {
    "US": "K",
    "CA": "C",
}


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _text(val: Any) -> str:
    return val if isinstance(val, str) else str(val)


def resolve_candidates(station: Station) -> list[str]:
    """Ordered, duplicate-free identifiers to try against the history endpoint.

    Order: uppercase base codes, then K/C-prefixed variants of 3-character
    codes, then the lowercase form of each of those. The first entry that
    returns data is the one reported back as the used code.
    """
    raw = station.raw or {}
    values = [station.sid, station.id] + [raw.get(f) for f in RAW_CODE_FIELDS]
    base = [_text(v) for v in values if v is not None and _text(v) != ""]

    uniq = _dedupe([c.upper() for c in base])

    country = (station.country or "").upper()
    is_us = country == "US" or bool(station.state)
    is_ca = country == "CA"

    with_prefixes = list(uniq)
    for code in uniq:
        if len(code) != 3:
            continue
        if is_us:
            with_prefixes.append(ICAO_PREFIXES["US"] + code)
        if is_ca:
            with_prefixes.append(ICAO_PREFIXES["CA"] + code)

    return _dedupe(with_prefixes + [c.lower() for c in with_prefixes])
