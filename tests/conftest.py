"""Global pytest fixtures & helpers.

Adds project root to path and provides a fake directions client plus
waypoint factories shared by the fetcher, planner and replay tests.
"""
from __future__ import annotations

import os
import sys
import threading
import time
from datetime import date
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from expedition_route.geometry import haversine_km
from expedition_route.models import Coordinate, RouteChunk, RouteQuery, TravelMode


# --- Factory helpers -------------------------------------------------
def make_coordinates(count, lat=46.0, lng=7.0, step=0.01):
    """Return ``count`` distinct coordinates marching north-east."""
    return tuple(Coordinate(lat + i * step, lng + i * step) for i in range(count))


def make_query(count=3, mode=TravelMode.WALKING, round_trip=False, labels=None):
    coords = make_coordinates(count)
    if labels is None:
        labels = tuple(f"WP{i + 1}" for i in range(count))
    return RouteQuery(coordinates=coords, mode=mode, round_trip=round_trip, labels=tuple(labels))


def make_records():
    return [
        {"id": "a", "title": "Trailhead", "lat": 46.0, "lon": 7.0},
        {"id": "b", "title": "Hut", "lat": 46.05, "lon": 7.05, "date": "2025-02-05"},
        {"id": "c", "title": "Lake", "lat": 46.1, "lon": 7.1},
        {"id": "d", "title": "Summit", "lat": 46.15, "lon": 7.15, "date": "2025-02-01"},
    ]


class FakeDirectionsClient:
    """Stands in for ``DirectionsClient``: straight geometry, scripted failures.

    ``delays`` and ``errors`` are consumed one entry per call; ``snaps`` maps a
    coordinate to a snap distance in metres.
    """

    def __init__(self, delays=None, errors=None, snaps=None, duration_s=60.0):
        self.calls = []
        self._delays = list(delays or [])
        self._errors = list(errors or [])
        self._snaps = snaps or {}
        self._duration_s = duration_s
        self._lock = threading.Lock()

    def route(self, coordinates, mode):
        with self._lock:
            self.calls.append((list(coordinates), mode))
            delay = self._delays.pop(0) if self._delays else 0.0
            error = self._errors.pop(0) if self._errors else None
        if delay:
            time.sleep(delay)
        if error is not None:
            raise error
        coords = [Coordinate(*c) for c in coordinates]
        legs = [haversine_km(a, b) for a, b in zip(coords, coords[1:])]
        return RouteChunk(
            geometry=coords,
            leg_distances_km=legs,
            leg_durations_s=[self._duration_s] * len(legs),
            snap_distances_m=[float(self._snaps.get(c, 0.0)) for c in coords],
        )


# --- Fixtures --------------------------------------------------------
@pytest.fixture
def fake_client():
    return FakeDirectionsClient()


@pytest.fixture
def waypoint_records():
    return make_records()


@pytest.fixture
def feb():
    return lambda day: date(2025, 2, day)
