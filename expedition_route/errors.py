"""Central error types used across the route engine."""

from __future__ import annotations

from enum import Enum
from typing import Sequence


class DirectionsErrorKind(str, Enum):
    """Category surfaced to callers for a failed directions fetch."""

    NO_SEGMENT = "NoSegment"
    NO_ROUTE = "NoRoute"
    TIMEOUT = "Timeout"
    ABORTED = "Aborted"
    GENERIC = "Generic"


class InvalidCoordinateError(ValueError):
    """Raised when a coordinate is non-finite or outside lat/lng bounds."""


class ExpeditionFormatError(RuntimeError):
    """Raised when an expedition JSON file is missing or malformed."""


class DirectionsError(RuntimeError):
    """Base error for directions service failures (message passthrough)."""

    kind = DirectionsErrorKind.GENERIC

    def __init__(
        self,
        message: str,
        *,
        waypoints: Sequence[str] = (),
        indices: Sequence[int] = (),
    ) -> None:
        super().__init__(message)
        self.message = message
        # Names and positions of the waypoints the service could not use.
        self.waypoints = list(waypoints)
        self.indices = list(indices)


class DirectionsPermissionError(DirectionsError):
    """Raised when the service rejects the access token (HTTP 401/403)."""


class NoSegmentError(DirectionsError):
    """Raised when waypoints cannot be matched to the travel network."""

    kind = DirectionsErrorKind.NO_SEGMENT


class NoRouteError(DirectionsError):
    """Raised when no path exists between otherwise valid waypoints."""

    kind = DirectionsErrorKind.NO_ROUTE


class DirectionsTimeoutError(DirectionsError):
    """Raised when a request group exceeds the fetch ceiling."""

    kind = DirectionsErrorKind.TIMEOUT


class DirectionsAbortedError(DirectionsError):
    """Raised inside a fetch whose abort token fired.

    Not user-facing by itself: the fetcher decides whether the abort was a
    timeout or a superseded request.
    """

    kind = DirectionsErrorKind.ABORTED


class WaypointNotFoundError(KeyError):
    """Raised when a sequencer operation names an unknown waypoint id."""


__all__ = [
    "DirectionsErrorKind",
    "InvalidCoordinateError",
    "ExpeditionFormatError",
    "DirectionsError",
    "DirectionsPermissionError",
    "NoSegmentError",
    "NoRouteError",
    "DirectionsTimeoutError",
    "DirectionsAbortedError",
    "WaypointNotFoundError",
]
