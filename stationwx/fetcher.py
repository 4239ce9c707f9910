from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Optional, Protocol, Sequence

from stationwx.codes import resolve_candidates
from stationwx.coerce import coerce_rows
from stationwx.config import DEFAULT_RANGE_START
from stationwx.models import SeriesResult, Station
from stationwx.timeparse import as_utc
from stationwx.unwrap import extract_rows

logger = logging.getLogger(__name__)


class HistorySource(Protocol):
    def history(self, code: str) -> Awaitable[Any]: ...


class ObservationFetcher:
    """Resolve a station to a canonical observation series.

    Candidate codes are tried in order until the history endpoint returns at
    least one row. Failures for individual candidates are not errors: the
    next candidate is tried, and an exhausted list yields an empty series.
    """

    def __init__(self, api: HistorySource) -> None:
        self.api = api

    async def _try(self, code: str, attempted: list[str]) -> Any:
        attempted.append(code)
        try:
            return await self.api.history(code)
        except Exception as exc:
            logger.debug("History fetch for %s failed: %s", code, exc)
            return None

    async def fetch_series(
        self,
        station: Station,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        candidates: Optional[Sequence[str]] = None,
    ) -> SeriesResult:
        codes = list(candidates) if candidates is not None else resolve_candidates(station)
        result = SeriesResult(station=station, candidates=codes)

        raw: Any = None
        for code in codes:
            resp = await self._try(code, result.attempted)
            if resp is not None and extract_rows(resp):
                raw = resp
                result.used_code = code
                break

        # Last resort: the listing's own identifier, verbatim
        if raw is None and station.sid is not None:
            raw = await self._try(station.sid, result.attempted)

        rows = extract_rows(raw)
        coerced = coerce_rows(rows)

        start = as_utc(start or DEFAULT_RANGE_START)
        end = as_utc(end or datetime.now(timezone.utc))
        series = [o for o in coerced if start <= o.time <= end]

        result.observations = series
        result.total_rows = len(rows)
        result.coerced_rows = len(coerced)
        result.in_range_rows = len(series)

        if result.used_code:
            logger.info("Station %s resolved via %s: %s", station.id, result.used_code, result.summary())
        else:
            logger.info(
                "Station %s: no candidate of %d returned rows (%s)",
                station.id, len(codes), result.summary(),
            )
        return result
