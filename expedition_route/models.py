"""Dataclasses describing waypoints, route queries and route results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple


class Coordinate(NamedTuple):
    lat: float
    lng: float


class TravelMode(str, Enum):
    STRAIGHT = "straight"
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"

    @property
    def routed(self) -> bool:
        """True for modes that need geometry from the directions service."""

        return self is not TravelMode.STRAIGHT

    @property
    def display_name(self) -> str:
        return "walking/hiking" if self is TravelMode.WALKING else self.value


class WaypointKind(str, Enum):
    START = "start"
    END = "end"
    STANDARD = "standard"


@dataclass
class Waypoint:
    id: str
    coordinate: Coordinate
    name: str = ""
    sequence: int = 0
    kind: WaypointKind = WaypointKind.STANDARD
    date: date | None = None
    description: str = ""
    location: str = ""
    # Derived fields; kilometres and seconds.
    distance_from_previous: float = 0.0
    cumulative_distance: float = 0.0
    travel_time_from_previous: float = 0.0
    cumulative_travel_time: float = 0.0

    @property
    def label(self) -> str:
        return self.name or f"Waypoint {self.sequence + 1}"


@dataclass(frozen=True)
class JournalEntry:
    """Read-only journal entry supplied by the content service."""

    id: str
    title: str
    coordinate: Coordinate
    date: date | datetime | None = None
    excerpt: str = ""
    location: str = ""


@dataclass(frozen=True)
class RouteQuery:
    """Ordered coordinates plus the options that shape a directions request."""

    coordinates: Tuple[Coordinate, ...]
    mode: TravelMode
    round_trip: bool = False
    # Display names used for messages only; not part of the fingerprint.
    labels: Tuple[str, ...] = ()

    def fingerprint(self) -> str:
        coords = "|".join(f"{c.lat},{c.lng}" for c in self.coordinates)
        return f"{coords}::{self.mode.value}::{str(self.round_trip).lower()}"

    def label_for(self, index: int) -> str:
        """Return the waypoint name for an index into the request coordinates.

        The closing coordinate of a round trip maps back to the first waypoint.
        """

        count = len(self.coordinates)
        if count and index >= count:
            index = 0 if self.round_trip else count - 1
        if 0 <= index < len(self.labels) and self.labels[index]:
            return self.labels[index]
        return f"Waypoint {index + 1}"


@dataclass(slots=True)
class RouteChunk:
    """Parsed response for a single directions request."""

    geometry: List[Coordinate]
    leg_distances_km: List[float]
    leg_durations_s: List[float]
    snap_distances_m: List[float]


@dataclass(slots=True)
class RouteResult:
    """Stitched route for a whole query."""

    polyline: List[Coordinate]
    leg_distances_km: List[float]
    leg_durations_s: List[float]
    snap_distances_m: List[float]
    warnings: List[str] = field(default_factory=list)
    mode: Optional[TravelMode] = None

    @property
    def total_distance_km(self) -> float:
        return float(sum(self.leg_distances_km))

    @property
    def total_duration_s(self) -> float:
        return float(sum(self.leg_durations_s))


@dataclass(frozen=True)
class ReorderNotice:
    message: str
    waypoint_id: str
    position: int
    expires_at: float
