from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from stationwx.config import (
    API_BASE,
    HISTORY_PATH,
    STATIONS_PATH,
    UPSTREAM_TIMEOUT_SECONDS,
)
from stationwx.scheduler import RequestScheduler

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Accept": "application/json"}


def decode_body(text: str) -> Any:
    """Decode a response body that should be JSON but sometimes is not.

    Falls back to the literal text. Some upstream responses are JSON
    objects or arrays serialized into a JSON string; those are decoded once
    more. Other JSON strings stay strings.
    """
    try:
        data = json.loads(text)
    except ValueError:
        return text
    if isinstance(data, str) and data.strip().startswith(("{", "[")):
        try:
            return json.loads(data)
        except ValueError:
            return data
    return data


class UpstreamClient:
    """Thin async client for the station / history API. Not rate limited."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str = API_BASE,
        timeout: float = UPSTREAM_TIMEOUT_SECONDS,
    ) -> None:
        self._client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def get_stations(self) -> httpx.Response:
        url = f"{self.base_url}{STATIONS_PATH}"
        logger.info("Fetching station list: %s", url)
        return await self._client.get(url, headers=JSON_HEADERS, timeout=self.timeout)

    async def get_history(self, code: str) -> httpx.Response:
        url = f"{self.base_url}{HISTORY_PATH}"
        logger.debug("Fetching history for %s", code)
        return await self._client.get(
            url, params={"station": code}, headers=JSON_HEADERS, timeout=self.timeout,
        )

    async def fetch_stations(self) -> Any:
        """Fetch and decode the station list. Raises httpx.HTTPError on failure."""
        resp = await self.get_stations()
        resp.raise_for_status()
        return decode_body(resp.text)

    async def fetch_history(self, code: str) -> Any:
        """Fetch and decode history for one station code. Raises httpx.HTTPError on failure."""
        resp = await self.get_history(code)
        resp.raise_for_status()
        return decode_body(resp.text)


class WeatherApi:
    """Upstream calls routed through the shared RequestScheduler.

    Every outbound request in the process goes through one of these methods
    so that all of them draw from the same token bucket.
    """

    def __init__(self, upstream: UpstreamClient, scheduler: RequestScheduler) -> None:
        self.upstream = upstream
        self.scheduler = scheduler

    async def stations(self) -> Any:
        return await self.scheduler.schedule(self.upstream.fetch_stations)

    async def history(self, code: str) -> Any:
        return await self.scheduler.schedule(lambda: self.upstream.fetch_history(code))

    async def raw_stations(self) -> httpx.Response:
        return await self.scheduler.schedule(self.upstream.get_stations)

    async def raw_history(self, code: str) -> httpx.Response:
        return await self.scheduler.schedule(lambda: self.upstream.get_history(code))
