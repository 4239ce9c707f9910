from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import httpx
import uvicorn
from fastapi import FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from stationwx.catalog import StationCatalog
from stationwx.config import (
    API_BASE,
    APP_VERSION,
    DEFAULT_RANGE_START,
    RATE_CAPACITY,
    RATE_TICK_SECONDS,
    RATE_WINDOW_SECONDS,
    SERVER_HOST,
    SERVER_PORT,
    STATIC_DIR,
    UPSTREAM_TIMEOUT_SECONDS,
)
from stationwx.fetcher import ObservationFetcher
from stationwx.scheduler import RequestScheduler
from stationwx.timeparse import parse_date_input
from stationwx.upstream import UpstreamClient, WeatherApi

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# One bucket for every upstream call made by this process
scheduler = RequestScheduler(
    capacity=RATE_CAPACITY,
    window=RATE_WINDOW_SECONDS,
    tick_interval=RATE_TICK_SECONDS,
)
catalog = StationCatalog()
_api: WeatherApi | None = None  # set during lifespan
_catalog_lock: asyncio.Lock | None = None  # bound to the serving loop in lifespan


def _upstream_error(exc: Exception, error: str = "Upstream error") -> JSONResponse:
    return JSONResponse(status_code=502, content={"error": error, "detail": str(exc)})


async def _ensure_catalog(refresh: bool = False) -> None:
    """Load the station catalog on first use (or on refresh). Raises on upstream failure."""
    # Outside lifespan there is no serving loop to bind to, so loads are not serialized
    lock = _catalog_lock or asyncio.Lock()
    async with lock:
        if catalog.loaded and not refresh:
            return
        if _api is None:
            raise RuntimeError("Server not ready")
        raw = await _api.stations()
        catalog.load(raw)


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _api, _catalog_lock

    _catalog_lock = asyncio.Lock()
    async with httpx.AsyncClient() as client:
        _api = WeatherApi(
            UpstreamClient(client, base_url=API_BASE, timeout=UPSTREAM_TIMEOUT_SECONDS),
            scheduler,
        )
        scheduler.start()
        logger.info("Proxying %s (rate limit %d / %.0fs)", API_BASE, RATE_CAPACITY, RATE_WINDOW_SECONDS)
        try:
            yield
        finally:
            await scheduler.stop()
            _api = None
            _catalog_lock = None


app = FastAPI(title="Station History Server", version=APP_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _proxy_response(resp: httpx.Response) -> Response:
    return Response(
        content=resp.content,
        status_code=resp.status_code,
        media_type="application/json",
    )


@app.get("/api/stations")
async def proxy_stations():
    if _api is None:
        return JSONResponse(status_code=503, content={"error": "Server not ready"})
    try:
        resp = await _api.raw_stations()
    except Exception as exc:
        logger.exception("Upstream /stations failed")
        return _upstream_error(exc)
    return _proxy_response(resp)


@app.get("/api/historical_weather")
async def proxy_history(station: str = Query("")):
    if _api is None:
        return JSONResponse(status_code=503, content={"error": "Server not ready"})
    try:
        resp = await _api.raw_history(station)
    except Exception as exc:
        logger.exception("Upstream /historical_weather failed for %r", station)
        return _upstream_error(exc)
    return _proxy_response(resp)


@app.api_route("/healthz", methods=["GET", "HEAD"])
async def healthz():
    return {"status": "ok"}


@app.get("/api/v1/stations")
async def search_stations(q: str = Query(""), refresh: bool = Query(False)):
    try:
        await _ensure_catalog(refresh)
    except Exception as exc:
        logger.exception("Failed to load stations")
        return _upstream_error(exc, "Failed to load stations")

    results = catalog.search(q)
    return JSONResponse(
        content={
            "count": len(results),
            "total": catalog.count,
            "stations": [s.to_api_dict() for s in results],
        }
    )


@app.get("/api/v1/series")
async def get_series(
    station: str = Query(...),
    start: str = Query(""),
    end: str = Query(""),
):
    try:
        await _ensure_catalog()
    except Exception as exc:
        logger.exception("Failed to load stations")
        return _upstream_error(exc, "Failed to load stations")

    found = catalog.find(station)
    if found is None:
        return JSONResponse(status_code=404, content={"error": "Unknown station", "detail": station})

    range_start = parse_date_input(start, DEFAULT_RANGE_START)
    range_end = parse_date_input(end, datetime.now(timezone.utc))

    result = await ObservationFetcher(_api).fetch_series(
        found,
        start=range_start,
        end=range_end,
        candidates=catalog.codes_for(found),
    )
    return JSONResponse(content=result.to_api_dict())


if Path(STATIC_DIR).is_dir():
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")


def run() -> None:
    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    run()
