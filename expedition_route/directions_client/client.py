"""Single-request directions client with retries, throttling and caching."""

from __future__ import annotations

import hashlib
import logging
import threading
import time
from typing import Any, Dict, List, Optional, Sequence

import polyline
import requests
from cachetools import TTLCache

from ..config import (
    DIRECTIONS_BACKOFF_MAX_SECONDS,
    DIRECTIONS_BASE_URL,
    DIRECTIONS_CACHE_SIZE,
    DIRECTIONS_CACHE_TTL_SECONDS,
    DIRECTIONS_COORDINATE_PRECISION,
    DIRECTIONS_GEOMETRY,
    DIRECTIONS_MAX_RETRIES,
    MAPBOX_ACCESS_TOKEN,
    REQUEST_TIMEOUT,
    SNAP_WARNING_THRESHOLD_M,
)
from ..errors import DirectionsError
from ..models import Coordinate, RouteChunk, TravelMode
from ..utils import json_dumps_sorted
from .rate_limiter import RateLimiter
from .response_handling import classify_payload, classify_response_status
from .session import get_default_session

LOGGER = logging.getLogger(__name__)

_POLYLINE_PRECISION = {"polyline": 5, "polyline6": 6}


def format_coordinates(
    coordinates: Sequence[Sequence[float]],
    precision: int = DIRECTIONS_COORDINATE_PRECISION,
) -> str:
    """Render ``(lat, lng)`` pairs as the ``lng,lat;lng,lat`` path segment."""

    return ";".join(
        f"{float(c[1]):.{precision}f},{float(c[0]):.{precision}f}" for c in coordinates
    )


def decode_geometry(geometry: Any, encoding: str) -> List[Coordinate]:
    """Decode a route geometry into ``(lat, lng)`` coordinates.

    Malformed geometry raises :class:`DirectionsError`.
    """

    if encoding in _POLYLINE_PRECISION:
        if not isinstance(geometry, str):
            raise DirectionsError("Directions geometry is not an encoded polyline")
        try:
            return [
                Coordinate(float(lat), float(lng))
                for lat, lng in polyline.decode(geometry, _POLYLINE_PRECISION[encoding])
            ]
        except (IndexError, TypeError, ValueError) as exc:
            raise DirectionsError("Directions polyline could not be decoded") from exc
    # GeoJSON LineString coordinates are [lng, lat].
    points = geometry.get("coordinates") if isinstance(geometry, dict) else None
    if not isinstance(points, list):
        raise DirectionsError("Directions geometry is missing coordinates")
    try:
        return [Coordinate(float(p[1]), float(p[0])) for p in points]
    except (IndexError, TypeError, ValueError) as exc:
        raise DirectionsError("Directions geometry has malformed points") from exc


class DirectionsClient:
    """Fetches one routed chunk per call from a Mapbox-style directions API.

    Calls are blocking; the fetcher runs them on a worker thread.
    """

    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        limiter: RateLimiter | None = None,
        access_token: str | None = None,
        base_url: str = DIRECTIONS_BASE_URL,
        timeout: float = REQUEST_TIMEOUT,
        geometry: str = DIRECTIONS_GEOMETRY,
        snap_threshold_m: float = SNAP_WARNING_THRESHOLD_M,
        cache: Optional[TTLCache] = None,
        max_retries: int = DIRECTIONS_MAX_RETRIES,
    ) -> None:
        if geometry not in (*_POLYLINE_PRECISION, "geojson"):
            raise ValueError(f"Unsupported geometry encoding: {geometry}")
        self._session = session or get_default_session()
        self._limiter = limiter or RateLimiter()
        self._access_token = (
            access_token if access_token is not None else MAPBOX_ACCESS_TOKEN
        )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._geometry = geometry
        self._snap_threshold_m = snap_threshold_m
        self._max_retries = max(1, max_retries)
        self._cache: TTLCache[str, RouteChunk] = (
            cache
            if cache is not None
            else TTLCache(
                maxsize=max(1, DIRECTIONS_CACHE_SIZE), ttl=DIRECTIONS_CACHE_TTL_SECONDS
            )
        )
        self._cache_lock = threading.Lock()

    def route(
        self, coordinates: Sequence[Sequence[float]], mode: TravelMode
    ) -> RouteChunk:
        """Return the routed geometry, legs and snap offsets for ``coordinates``."""

        if not mode.routed:
            raise ValueError("Straight-line mode does not use the directions service")
        if len(coordinates) < 2:
            raise ValueError("A directions request needs at least two coordinates")

        coord_path = format_coordinates(coordinates)
        key = self._cache_key(mode, coord_path)
        with self._cache_lock:
            cached = self._cache.get(key)
        if cached is not None:
            LOGGER.debug(
                "Cache hit for directions mode=%s points=%s", mode.value, len(coordinates)
            )
            return cached

        url = f"{self._base_url}/{mode.value}/{coord_path}"
        params = {
            "geometries": self._geometry,
            "overview": "full",
            "access_token": self._access_token,
        }
        context = f"Directions {mode.value} ({len(coordinates)} points)"
        data = self._fetch_json(url, params, context)

        error = classify_payload(data, threshold_m=self._snap_threshold_m)
        if error is not None:
            LOGGER.info("%s not routable: %s", context, error.message or error.kind)
            raise error

        chunk = self._parse_chunk(data)
        with self._cache_lock:
            self._cache[key] = chunk
        return chunk

    def _cache_key(self, mode: TravelMode, coord_path: str) -> str:
        signature = {
            "base": self._base_url,
            "profile": mode,
            "coordinates": coord_path,
            "geometries": self._geometry,
        }
        return hashlib.sha256(json_dumps_sorted(signature).encode("utf-8")).hexdigest()

    def _fetch_json(self, url: str, params: Dict[str, Any], context: str) -> Any:
        backoff = 1.0
        attempt = 0
        while True:
            attempt += 1
            can_retry = attempt < self._max_retries
            self._limiter.before_request()
            try:
                response = self._session.get(url, params=params, timeout=self._timeout)
            except requests.RequestException as exc:
                self._limiter.after_response(None, None)
                if can_retry:
                    LOGGER.warning(
                        "%s network error attempt=%s err=%s; retrying in %.1fs",
                        context,
                        attempt,
                        exc.__class__.__name__,
                        backoff,
                    )
                    time.sleep(backoff)
                    backoff = min(backoff * 2, DIRECTIONS_BACKOFF_MAX_SECONDS)
                    continue
                message = f"{context} network error: {exc.__class__.__name__}"
                LOGGER.error(message)
                raise DirectionsError(message) from exc
            else:
                self._limiter.after_response(response.headers, response.status_code)

            action, error = classify_response_status(
                response,
                context,
                attempt=attempt,
                backoff=backoff,
                can_retry=can_retry,
            )
            if action == "retry":
                time.sleep(backoff)
                backoff = min(backoff * 2, DIRECTIONS_BACKOFF_MAX_SECONDS)
                continue
            if action == "raise" and error is not None:
                raise error

            try:
                return response.json()
            except ValueError as exc:
                if can_retry:
                    LOGGER.warning(
                        "Non-JSON response for %s attempt=%s; retrying in %.1fs",
                        context,
                        attempt,
                        backoff,
                    )
                    time.sleep(backoff)
                    backoff = min(backoff * 2, DIRECTIONS_BACKOFF_MAX_SECONDS)
                    continue
                message = f"{context} returned non-JSON payload"
                LOGGER.error(message)
                raise DirectionsError(message) from exc

    def _parse_chunk(self, data: Dict[str, Any]) -> RouteChunk:
        route = data["routes"][0]
        try:
            legs = route.get("legs") or []
            leg_distances = [float(leg.get("distance") or 0.0) / 1000 for leg in legs]
            leg_durations = [float(leg.get("duration") or 0.0) for leg in legs]
        except (AttributeError, TypeError, ValueError) as exc:
            raise DirectionsError("Directions response has malformed legs") from exc
        try:
            snaps = [
                float((wp or {}).get("distance") or 0.0)
                for wp in data.get("waypoints") or []
            ]
        except (AttributeError, TypeError, ValueError) as exc:
            raise DirectionsError("Directions response has malformed waypoints") from exc
        return RouteChunk(
            geometry=decode_geometry(route.get("geometry"), self._geometry),
            leg_distances_km=leg_distances,
            leg_durations_s=leg_durations,
            snap_distances_m=snaps,
        )


__all__ = ["DirectionsClient", "decode_geometry", "format_coordinates"]
