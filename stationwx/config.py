from __future__ import annotations

import os
from datetime import datetime, timezone

APP_VERSION = "0.3.0"

API_BASE = os.getenv("API_BASE", "https://sfc.windbornesystems.com").rstrip("/")
STATIONS_PATH = "/stations"
HISTORY_PATH = "/historical_weather"

UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "15"))

# Upstream allows 20 calls per minute, refilled in one batch.
RATE_CAPACITY = int(os.getenv("RATE_CAPACITY", "20"))
RATE_WINDOW_SECONDS = float(os.getenv("RATE_WINDOW_SECONDS", "60"))
RATE_TICK_SECONDS = float(os.getenv("RATE_TICK_SECONDS", "0.2"))

DEFAULT_RANGE_START = datetime(2000, 1, 1, tzinfo=timezone.utc)

STATIC_DIR = os.getenv("STATIC_DIR", "public")

SERVER_HOST = "0.0.0.0"
SERVER_PORT = int(os.getenv("PORT", "8080"))
