"""Central configuration for the expedition route engine.

All values are constants imported by the rest of the package. Adjust as needed
for your environment. Secrets are read from environment variables (optionally
via a local `.env`).
"""

from __future__ import annotations

import os

from dotenv import load_dotenv


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


# Pick up MAPBOX_ACCESS_TOKEN and overrides from a local .env file.
load_dotenv()


# ---------------------------------------------------------------------------
# Directions service
# ---------------------------------------------------------------------------
# Base URL of the multi-stop directions endpoint. The travel profile and the
# coordinate list are appended as path segments.
DIRECTIONS_BASE_URL = os.getenv(
    "DIRECTIONS_BASE_URL", "https://api.mapbox.com/directions/v5/mapbox"
)

# Access token pulled from the environment. Do not hardcode secrets.
MAPBOX_ACCESS_TOKEN = os.getenv("MAPBOX_ACCESS_TOKEN", "")

# Geometry encoding requested from the service: "polyline6" or "geojson".
DIRECTIONS_GEOMETRY = os.getenv("DIRECTIONS_GEOMETRY", "polyline6")

# Maximum coordinates accepted by the service in a single request. Longer
# routes are split into overlapping chunks client-side.
DIRECTIONS_MAX_WAYPOINTS = _env_int("DIRECTIONS_MAX_WAYPOINTS", 25)

# Decimal places used when rendering coordinates into the request path.
DIRECTIONS_COORDINATE_PRECISION = 6

# Quiet period (seconds) after the last waypoint/mode change before a fetch.
DIRECTIONS_DEBOUNCE_SECONDS = _env_float("DIRECTIONS_DEBOUNCE_SECONDS", 0.5)

# Ceiling (seconds) for a whole request group, all chunks included.
DIRECTIONS_TIMEOUT_SECONDS = _env_float("DIRECTIONS_TIMEOUT_SECONDS", 15.0)

# Waypoints matched further than this (metres) from their requested position
# are reported as possibly inaccessible. One value applies to every mode.
SNAP_WARNING_THRESHOLD_M = _env_float("SNAP_WARNING_THRESHOLD_M", 1000.0)

# Cache identical directions requests in memory for this long (seconds).
DIRECTIONS_CACHE_SIZE = _env_int("DIRECTIONS_CACHE_SIZE", 64)
DIRECTIONS_CACHE_TTL_SECONDS = _env_int("DIRECTIONS_CACHE_TTL_SECONDS", 600)


# ---------------------------------------------------------------------------
# HTTP / rate limiting
# ---------------------------------------------------------------------------
# HTTP session pool sizes.
HTTP_POOL_CONNECTIONS = 4
HTTP_POOL_MAXSIZE = 4

# Per-request socket timeout in seconds.
REQUEST_TIMEOUT = 15

# Transport-level retries for dropped connections; HTTP status retries are
# handled by the directions client.
HTTP_CONNECT_RETRIES = 3
HTTP_RETRY_BACKOFF = 0.5

HTTP_USER_AGENT = "expedition-route/0.1"

# RATE_LIMIT_MAX_CONCURRENT caps total in-flight requests.
RATE_LIMIT_MAX_CONCURRENT = 2
# RATE_LIMIT_JITTER_RANGE adds random delay (seconds) to smooth bursts.
RATE_LIMIT_JITTER_RANGE = (0.0, 0.0)
# RATE_LIMIT_NEAR_LIMIT_BUFFER starts throttling when this few requests remain.
RATE_LIMIT_NEAR_LIMIT_BUFFER = 3
# RATE_LIMIT_THROTTLE_SECONDS is the pause applied on 429s or near-limit signals.
RATE_LIMIT_THROTTLE_SECONDS = 10

# DIRECTIONS_MAX_RETRIES covers network failures, 429 and 5xx responses.
DIRECTIONS_MAX_RETRIES = _env_int("DIRECTIONS_MAX_RETRIES", 3)
# DIRECTIONS_BACKOFF_MAX_SECONDS caps the exponential backoff per attempt.
DIRECTIONS_BACKOFF_MAX_SECONDS = 4.0


# ---------------------------------------------------------------------------
# Waypoint sequencing
# ---------------------------------------------------------------------------
# How long a "moved to position N" notice stays visible.
REORDER_NOTICE_SECONDS = _env_float("REORDER_NOTICE_SECONDS", 4.0)


# ---------------------------------------------------------------------------
# Debrief replay animation
# ---------------------------------------------------------------------------
# Zoom level the camera settles on at each stop.
REPLAY_STOP_ZOOM = 13.0
# Direct fly-to used when there is nothing to animate along.
REPLAY_FLY_DURATION_S = 1.5
# Final precise settle on the destination after the keyframe chain.
REPLAY_SETTLE_DURATION_S = 0.4

# Keyframe count: round(segment_length * STEPS_PER_UNIT) clamped to the range.
REPLAY_MIN_STEPS = 6
REPLAY_MAX_STEPS = 20
REPLAY_STEPS_PER_UNIT = 8.0

# Total transition time: segment_length * DURATION_PER_UNIT clamped (seconds).
REPLAY_MIN_DURATION_S = 8.0
REPLAY_MAX_DURATION_S = 18.0
REPLAY_DURATION_PER_UNIT_S = 6.0

# Half-sine zoom dip: segment_length * ZOOM_DIP_PER_UNIT capped at MAX.
REPLAY_ZOOM_DIP_PER_UNIT = 1.2
REPLAY_MAX_ZOOM_DIP = 2.5

# Marker matching tolerance in degrees when highlighting a stop.
REPLAY_HIGHLIGHT_EPSILON = 0.0001

# Camera reset applied when leaving replay.
FIT_BOUNDS_PADDING = 50
FIT_BOUNDS_MAX_ZOOM = 10.0
FIT_BOUNDS_DURATION_S = 1.0
