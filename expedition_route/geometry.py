"""Geometry helpers: great-circle distance, validation and polyline sampling.

Polyline arc lengths here are planar (degrees), matching how the replay
animation paces itself; real-world distances use :func:`haversine_km`.
"""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidCoordinateError
from .models import Coordinate

EARTH_RADIUS_KM = 6371.0

MetricArray = NDArray[np.float64]


def haversine_km(a: Sequence[float], b: Sequence[float]) -> float:
    """Great-circle distance in kilometres between two (lat, lng) pairs."""

    lat1, lng1 = math.radians(a[0]), math.radians(a[1])
    lat2, lng2 = math.radians(b[0]), math.radians(b[1])
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(
        dlng / 2
    ) ** 2
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def validate_coordinate(coordinate: Sequence[float]) -> Coordinate:
    """Return ``coordinate`` as a :class:`Coordinate` or raise if unusable."""

    try:
        lat, lng = float(coordinate[0]), float(coordinate[1])
    except (TypeError, ValueError, IndexError) as exc:
        raise InvalidCoordinateError(
            f"Invalid coordinates detected: {coordinate!r}"
        ) from exc
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise InvalidCoordinateError(f"Invalid coordinates detected: {lat}, {lng}")
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lng <= 180.0):
        raise InvalidCoordinateError(f"Coordinates out of range: {lat}, {lng}")
    return Coordinate(lat, lng)


def is_null_island(coordinate: Sequence[float]) -> bool:
    """True for the (0, 0) placeholder hosts use for a missing location."""

    return coordinate[0] == 0 and coordinate[1] == 0


def is_usable_coordinate(coordinate: Sequence[float] | None) -> bool:
    if coordinate is None:
        return False
    try:
        validate_coordinate(coordinate)
    except InvalidCoordinateError:
        return False
    return not is_null_island(coordinate)


def _as_array(points: Iterable[Sequence[float]]) -> MetricArray:
    array = np.asarray(list(points), dtype=float)
    if array.size == 0:
        return np.empty((0, 2), dtype=float)
    return array.reshape(-1, 2)


def cumulative_lengths(polyline: Sequence[Sequence[float]]) -> MetricArray:
    """Partial planar arc lengths; same length as ``polyline``, first entry 0."""

    array = _as_array(polyline)
    if len(array) == 0:
        return np.zeros(0, dtype=float)
    segment_lengths = np.hypot(*np.diff(array, axis=0).T)
    return np.concatenate(([0.0], np.cumsum(segment_lengths)))


def interpolate(
    polyline: Sequence[Sequence[float]],
    cumulative: Sequence[float],
    t: float,
) -> Coordinate:
    """Return the point at fractional arc length ``t`` along ``polyline``."""

    if len(polyline) == 0:
        raise ValueError("Cannot interpolate along an empty polyline")
    first = Coordinate(float(polyline[0][0]), float(polyline[0][1]))
    last = Coordinate(float(polyline[-1][0]), float(polyline[-1][1]))
    cum = np.asarray(cumulative, dtype=float)
    total = float(cum[-1]) if cum.size else 0.0
    if total == 0 or t <= 0:
        return first
    if t >= 1:
        return last

    target = t * total
    # Right-most vertex whose cumulative length is <= target.
    lo = int(np.searchsorted(cum, target, side="right")) - 1
    lo = min(max(lo, 0), len(cum) - 2)
    hi = lo + 1
    seg_len = float(cum[hi] - cum[lo])
    frac = (target - float(cum[lo])) / seg_len if seg_len > 0 else 0.0
    a, b = polyline[lo], polyline[hi]
    return Coordinate(
        float(a[0]) + frac * (float(b[0]) - float(a[0])),
        float(a[1]) + frac * (float(b[1]) - float(a[1])),
    )


def nearest_vertex_index(
    polyline: Sequence[Sequence[float]],
    target: Sequence[float],
    start: int = 0,
) -> int:
    """Index of the vertex closest to ``target`` searching forward from ``start``.

    Ties resolve to the earliest vertex.
    """

    array = _as_array(polyline)
    if len(array) == 0:
        raise ValueError("Cannot search an empty polyline")
    start = min(max(start, 0), len(array) - 1)
    window = array[start:]
    deltas = window - np.asarray(target[:2], dtype=float)
    squared = np.einsum("ij,ij->i", deltas, deltas)
    return start + int(np.argmin(squared))


def straight_line(
    coordinates: Sequence[Coordinate], round_trip: bool = False
) -> List[Coordinate]:
    """Synthetic route through ``coordinates``, closed for round trips."""

    line = [Coordinate(float(c[0]), float(c[1])) for c in coordinates]
    if round_trip and len(line) > 1:
        line.append(line[0])
    return line
