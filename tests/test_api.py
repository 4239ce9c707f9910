from unittest.mock import patch

import httpx
import pytest
from fastapi.testclient import TestClient

import stationwx.main as main_module
from stationwx.main import app, catalog

SAMPLE_STATIONS = {
    "stations": [
        {"station_id": "BOS", "name": "Boston Logan", "lat": 42.36, "lon": -71.06, "country": "US"},
        {"station_id": "SFO", "name": "San Francisco", "lat": 37.62, "lon": -122.37, "state": "CA"},
        {"station_id": "XXX", "name": "Nowhere"},  # no coordinates
    ]
}

HISTORY = {
    "KBOS": {
        "points": [
            {"timestamp": "2024-01-02 00:00", "temp": 6, "wind_x": 3, "wind_y": 4},
            {"timestamp": "2024-01-01 00:00", "temp": 5},
            {"timestamp": "bad"},
        ]
    },
}


class FakeApi:
    def __init__(self, stations=SAMPLE_STATIONS, history=HISTORY, fail_stations=False):
        self._stations = stations
        self._history = history
        self.fail_stations = fail_stations
        self.station_calls = 0

    async def stations(self):
        self.station_calls += 1
        if self.fail_stations:
            raise httpx.ConnectError("connection refused")
        return self._stations

    async def history(self, code):
        return self._history.get(code, {"points": []})

    async def raw_stations(self):
        if self.fail_stations:
            raise httpx.ConnectError("connection refused")
        return httpx.Response(200, json=self._stations)

    async def raw_history(self, code):
        if code == "DOWN":
            raise httpx.ReadTimeout("timed out")
        return httpx.Response(404 if code not in self._history else 200, json=self._history.get(code, {}))


@pytest.fixture(autouse=True)
def _clear_catalog():
    """Reset the catalog before each test."""
    catalog.load([])
    catalog._loaded = False
    yield
    catalog.load([])
    catalog._loaded = False


# Use TestClient without lifespan (we don't want real HTTP fetches in tests)
client = TestClient(app, raise_server_exceptions=True)


def test_healthz():
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_proxy_not_ready_without_lifespan():
    resp = client.get("/api/stations")
    assert resp.status_code == 503


def test_proxy_stations_passthrough():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/stations")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json() == SAMPLE_STATIONS


def test_proxy_history_forwards_status():
    with patch("stationwx.main._api", FakeApi()):
        ok = client.get("/api/historical_weather?station=KBOS")
        missing = client.get("/api/historical_weather?station=NOPE")
    assert ok.status_code == 200
    assert len(ok.json()["points"]) == 3
    assert missing.status_code == 404


def test_proxy_upstream_failure_is_502():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/historical_weather?station=DOWN")
    assert resp.status_code == 502
    data = resp.json()
    assert data["error"] == "Upstream error"
    assert "timed out" in data["detail"]


def test_search_loads_catalog_once():
    api = FakeApi()
    with patch("stationwx.main._api", api):
        all_resp = client.get("/api/v1/stations")
        bos_resp = client.get("/api/v1/stations?q=kbos")
    assert api.station_calls == 1

    data = all_resp.json()
    assert data["count"] == 2  # XXX has no coordinates
    assert data["total"] == 2

    bos = bos_resp.json()
    assert bos["count"] == 1
    assert bos["stations"][0]["sid"] == "BOS"
    assert "raw" not in bos["stations"][0]


def test_search_refresh_reloads():
    api = FakeApi()
    with patch("stationwx.main._api", api):
        client.get("/api/v1/stations")
        client.get("/api/v1/stations?refresh=true")
    assert api.station_calls == 2


def test_catalog_failure_is_reported():
    with patch("stationwx.main._api", FakeApi(fail_stations=True)):
        resp = client.get("/api/v1/stations")
    assert resp.status_code == 502
    assert resp.json()["error"] == "Failed to load stations"


def test_series_for_station():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/v1/series?station=BOS&start=2023-12-01&end=2024-02-01")
    assert resp.status_code == 200
    data = resp.json()
    assert data["used_code"] == "KBOS"
    assert data["candidates"] == ["BOS", "KBOS", "bos", "kbos"]
    assert data["attempted"] == ["BOS", "KBOS"]
    assert data["total_rows"] == 3
    assert data["coerced_rows"] == 2
    assert data["dropped_rows"] == 1
    assert data["in_range_rows"] == 2
    assert data["summary"] == "3 rows • 2 in range • 1 dropped as corrupted • code: KBOS"

    first, second = data["observations"]
    assert first == {"time": "2024-01-01T00:00:00Z", "temp": 5.0}
    assert second["temp"] == 6.0
    assert second["wind"] == pytest.approx(5.0)


def test_series_range_excludes_rows():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/v1/series?station=bos&start=02-01-2024")
    data = resp.json()
    assert data["in_range_rows"] == 1
    assert data["observations"][0]["temp"] == 6.0


def test_series_no_data():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/v1/series?station=SFO")
    assert resp.status_code == 200
    data = resp.json()
    assert data["used_code"] is None
    assert data["observations"] == []
    assert data["attempted"] == ["SFO", "KSFO", "sfo", "ksfo", "SFO"]


def test_series_unknown_station():
    with patch("stationwx.main._api", FakeApi()):
        resp = client.get("/api/v1/series?station=ZZZ")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Unknown station"


def test_catalog_lock_follows_lifespan():
    # Each served lifespan gets its own lock; repeated startups must not reuse one
    locks = []
    for _ in range(2):
        with TestClient(app) as served:
            locks.append(main_module._catalog_lock)
            with patch("stationwx.main._api", FakeApi()):
                resp = served.get("/api/v1/stations?refresh=true")
            assert resp.status_code == 200
            assert resp.json()["total"] == 2
        assert main_module._catalog_lock is None

    assert locks[0] is not None
    assert locks[1] is not None
    assert locks[0] is not locks[1]
