"""Chronological debrief tour built from waypoints and journal entries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from ..geometry import is_usable_coordinate, nearest_vertex_index, straight_line
from ..models import Coordinate, JournalEntry, Waypoint
from ..utils import to_sort_instant

LOGGER = logging.getLogger(__name__)


class StopKind(str, Enum):
    WAYPOINT = "waypoint"
    ENTRY = "entry"


@dataclass(frozen=True)
class TourStop:
    kind: StopKind
    id: str
    coordinate: Coordinate
    title: str
    date: date | datetime | None = None
    # Original waypoint index; only meaningful for waypoint stops.
    rank: int = 0
    is_return: bool = False
    location: str = ""
    excerpt: str = ""


@dataclass
class DebriefTour:
    stops: List[TourStop]
    route: List[Coordinate] = field(default_factory=list)
    indices: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.stops)

    @property
    def can_replay(self) -> bool:
        return len(self.stops) >= 2


def _sort_key(stop: TourStop) -> Tuple[int, datetime, int, int]:
    if stop.date is not None:
        return (1, to_sort_instant(stop.date), 0, 0)
    # Dateless: waypoints by original index, then entries in input order.
    if stop.kind is StopKind.WAYPOINT:
        return (0, datetime.min, 0, stop.rank)
    return (0, datetime.min, 1, 0)


def build_tour(
    waypoints: Sequence[Waypoint],
    entries: Iterable[JournalEntry] = (),
    *,
    round_trip: bool = False,
) -> DebriefTour:
    """Merge waypoints and entries into one date-ordered list of stops.

    Stops without a usable coordinate are dropped. A dateless stop sorts
    ahead of every dated stop. Round trips gain a closing ``Return:`` stop.
    """

    stops: List[TourStop] = []
    for index, waypoint in enumerate(waypoints):
        if not is_usable_coordinate(waypoint.coordinate):
            continue
        stops.append(
            TourStop(
                kind=StopKind.WAYPOINT,
                id=waypoint.id,
                coordinate=Coordinate(*waypoint.coordinate),
                title=waypoint.name or f"Waypoint {index + 1}",
                date=waypoint.date,
                rank=index,
                location=waypoint.location,
            )
        )
    for entry in entries:
        if not is_usable_coordinate(entry.coordinate):
            continue
        stops.append(
            TourStop(
                kind=StopKind.ENTRY,
                id=entry.id,
                coordinate=Coordinate(*entry.coordinate),
                title=entry.title,
                date=entry.date,
                location=entry.location,
                excerpt=entry.excerpt,
            )
        )

    stops.sort(key=_sort_key)
    if round_trip and len(stops) >= 2:
        first = stops[0]
        stops.append(
            replace(
                first,
                id=f"{first.id}-return",
                title=f"Return: {first.title}",
                is_return=True,
            )
        )
    LOGGER.debug("Built debrief tour with %d stops", len(stops))
    return DebriefTour(stops=stops)


def replay_route(
    polyline: Optional[Sequence[Coordinate]],
    waypoints: Sequence[Waypoint],
    entries: Iterable[JournalEntry] = (),
    *,
    round_trip: bool = False,
) -> List[Coordinate]:
    """Geometry the replay camera follows.

    Saved or routed geometry wins; otherwise straight lines through the
    waypoints, or through dated entries when there are no waypoints.
    """

    if polyline is not None and len(polyline) >= 2:
        return [Coordinate(*point) for point in polyline]
    points = [w.coordinate for w in waypoints if is_usable_coordinate(w.coordinate)]
    if not points:
        dated = sorted(
            (e for e in entries if e.date is not None and is_usable_coordinate(e.coordinate)),
            key=lambda e: to_sort_instant(e.date),
        )
        points = [e.coordinate for e in dated]
    return straight_line(points, round_trip)


def resolve_route_indices(
    stops: Sequence[TourStop], polyline: Sequence[Coordinate]
) -> List[int]:
    """Map each stop to a polyline vertex, never searching backwards."""

    if len(polyline) < 2 or not stops:
        return []
    indices: List[int] = []
    search_from = 0
    for stop in stops:
        index = nearest_vertex_index(polyline, stop.coordinate, search_from)
        indices.append(index)
        search_from = index
    return indices


__all__ = [
    "DebriefTour",
    "StopKind",
    "TourStop",
    "build_tour",
    "replay_route",
    "resolve_route_indices",
]
