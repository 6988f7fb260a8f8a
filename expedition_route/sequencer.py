"""Ordered waypoint collection with date-driven resequencing and rollups.

The sequencer is the single source of truth for waypoint order, coordinates
and dates. Everything else (the directions fetcher, the replay engine) reads
from it; routed leg metrics are written back through
:meth:`WaypointSequencer.apply_leg_metrics`, which never reorders.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import REORDER_NOTICE_SECONDS
from .errors import WaypointNotFoundError
from .geometry import haversine_km, validate_coordinate
from .models import Coordinate, ReorderNotice, Waypoint, WaypointKind
from .utils import parse_date

LOGGER = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset(
    {"name", "description", "location", "date", "coordinate"}
)


class WaypointSequencer:
    """Owns the waypoint list and keeps sequence, kind and distances in sync."""

    def __init__(
        self,
        waypoints: Iterable[Waypoint] | None = None,
        *,
        round_trip: bool = False,
        notice_seconds: float = REORDER_NOTICE_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock = threading.RLock()
        self._waypoints: List[Waypoint] = list(waypoints or [])
        self._round_trip = round_trip and len(self._waypoints) >= 2
        self._selected_id: Optional[str] = None
        self._notice: Optional[ReorderNotice] = None
        self._notice_seconds = notice_seconds
        self._clock = clock
        self._ids = itertools.count(1)
        self._finalize()

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------
    @property
    def waypoints(self) -> Tuple[Waypoint, ...]:
        with self._lock:
            return tuple(self._waypoints)

    def __len__(self) -> int:
        return len(self._waypoints)

    def get(self, waypoint_id: str) -> Waypoint:
        with self._lock:
            return self._waypoints[self._index_of(waypoint_id)]

    def coordinates(self) -> Tuple[Coordinate, ...]:
        with self._lock:
            return tuple(w.coordinate for w in self._waypoints)

    def labels(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(w.label for w in self._waypoints)

    @property
    def round_trip(self) -> bool:
        return self._round_trip

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected_id

    @property
    def total_distance_km(self) -> float:
        with self._lock:
            return self._waypoints[-1].cumulative_distance if self._waypoints else 0.0

    @property
    def total_travel_time_s(self) -> float:
        with self._lock:
            return (
                self._waypoints[-1].cumulative_travel_time if self._waypoints else 0.0
            )

    @property
    def notice(self) -> Optional[ReorderNotice]:
        """Current reorder notice, or None once it has expired."""

        notice = self._notice
        if notice is not None and self._clock() >= notice.expires_at:
            self._notice = None
            return None
        return notice

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def load(self, records: Iterable[Mapping[str, Any]]) -> None:
        """Replace the list with records staged from the persistence API.

        Records use the API field names (``title``, ``lat``, ``lon``,
        ``date``, ``description``). Order is taken as given.
        """

        loaded: List[Waypoint] = []
        for index, record in enumerate(records):
            coordinate = validate_coordinate(
                (record.get("lat") or 0.0, record.get("lon", record.get("lng")) or 0.0)
            )
            loaded.append(
                Waypoint(
                    id=str(record.get("id") or self._next_id()),
                    coordinate=coordinate,
                    name=str(record.get("title") or record.get("name") or f"Waypoint {index + 1}"),
                    date=parse_date(record.get("date")),
                    description=str(record.get("description") or ""),
                    location=str(record.get("location") or ""),
                )
            )
        with self._lock:
            self._waypoints = loaded
            self._selected_id = None
            if len(loaded) < 2:
                self._round_trip = False
            self._finalize()
        LOGGER.debug("Loaded %d waypoints", len(loaded))

    def append(
        self,
        coordinate: Sequence[float],
        *,
        name: str | None = None,
        waypoint_id: str | None = None,
        date: Any = None,
        description: str = "",
        location: str = "",
    ) -> Waypoint:
        """Add a waypoint at the end; never reorders by date."""

        checked = validate_coordinate(coordinate)
        with self._lock:
            waypoint = Waypoint(
                id=waypoint_id or self._next_id(),
                coordinate=checked,
                name=name or f"Waypoint {len(self._waypoints) + 1}",
                sequence=len(self._waypoints),
                date=parse_date(date),
                description=description,
                location=location,
            )
            self._waypoints.append(waypoint)
            self._finalize()
            return waypoint

    def remove(self, waypoint_id: str) -> Waypoint:
        with self._lock:
            index = self._index_of(waypoint_id)
            removed = self._waypoints.pop(index)
            if self._selected_id == waypoint_id:
                self._selected_id = None
            if len(self._waypoints) < 2:
                self._round_trip = False
            self._finalize()
            return removed

    def update(self, waypoint_id: str, **fields: Any) -> Waypoint:
        """Apply field changes; a ``date`` change triggers resequencing."""

        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise TypeError(f"Unsupported waypoint fields: {sorted(unknown)}")
        if "coordinate" in fields:
            fields["coordinate"] = validate_coordinate(fields["coordinate"])
        if "date" in fields:
            fields["date"] = parse_date(fields["date"])

        with self._lock:
            index = self._index_of(waypoint_id)
            self._waypoints[index] = replace(self._waypoints[index], **fields)
            if "date" not in fields:
                # Routed metrics stay valid unless the geometry changed.
                if "coordinate" in fields:
                    self._recompute_distances()
                return self._waypoints[index]

            before = [w.id for w in self._waypoints]
            self._waypoints = resequence_by_date(self._waypoints)
            after = [w.id for w in self._waypoints]
            if before != after or "coordinate" in fields:
                self._finalize()
            updated = self._waypoints[self._index_of(waypoint_id)]
            if before != after:
                self._publish_notice(updated)
            return updated

    def move_marker(self, waypoint_id: str, coordinate: Sequence[float]) -> Waypoint:
        """Move a waypoint (e.g. marker drag); distances only, no reordering."""

        checked = validate_coordinate(coordinate)
        with self._lock:
            index = self._index_of(waypoint_id)
            self._waypoints[index].coordinate = checked
            self._recompute_distances()
            return self._waypoints[index]

    def set_round_trip(self, enabled: bool) -> bool:
        with self._lock:
            self._round_trip = bool(enabled) and len(self._waypoints) >= 2
            self._assign_kinds()
            return self._round_trip

    def select(self, waypoint_id: str | None) -> None:
        if waypoint_id is not None:
            self._index_of(waypoint_id)
        self._selected_id = waypoint_id

    def recompute_distances(self) -> None:
        """Restore Haversine estimates and zero travel times."""

        with self._lock:
            self._recompute_distances()

    def apply_leg_metrics(
        self,
        leg_distances_km: Sequence[float],
        leg_durations_s: Sequence[float] | None = None,
    ) -> None:
        """Overwrite distance/time rollups with routed leg metrics.

        Leg ``i`` ends at waypoint ``i + 1``; a round-trip closing leg has no
        waypoint and is ignored here. Order, kind and identity are untouched.
        """

        durations = list(leg_durations_s or [])
        with self._lock:
            cum_dist = 0.0
            cum_time = 0.0
            for index, waypoint in enumerate(self._waypoints):
                if index == 0:
                    waypoint.distance_from_previous = 0.0
                    waypoint.cumulative_distance = 0.0
                    waypoint.travel_time_from_previous = 0.0
                    waypoint.cumulative_travel_time = 0.0
                    continue
                leg = index - 1
                if leg < len(leg_distances_km):
                    dist = float(leg_distances_km[leg])
                else:
                    dist = waypoint.distance_from_previous
                duration = float(durations[leg]) if leg < len(durations) else 0.0
                cum_dist += dist
                cum_time += duration
                waypoint.distance_from_previous = dist
                waypoint.cumulative_distance = cum_dist
                waypoint.travel_time_from_previous = duration
                waypoint.cumulative_travel_time = cum_time

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _next_id(self) -> str:
        existing = {w.id for w in self._waypoints}
        while True:
            candidate = f"waypoint-{next(self._ids)}"
            if candidate not in existing:
                return candidate

    def _index_of(self, waypoint_id: str) -> int:
        for index, waypoint in enumerate(self._waypoints):
            if waypoint.id == waypoint_id:
                return index
        raise WaypointNotFoundError(waypoint_id)

    def _finalize(self) -> None:
        for index, waypoint in enumerate(self._waypoints):
            waypoint.sequence = index
        self._assign_kinds()
        self._recompute_distances()

    def _assign_kinds(self) -> None:
        last = len(self._waypoints) - 1
        for index, waypoint in enumerate(self._waypoints):
            if index == 0:
                waypoint.kind = WaypointKind.START
            elif index == last and not self._round_trip:
                waypoint.kind = WaypointKind.END
            else:
                waypoint.kind = WaypointKind.STANDARD

    def _recompute_distances(self) -> None:
        cumulative = 0.0
        previous: Optional[Waypoint] = None
        for waypoint in self._waypoints:
            distance = (
                haversine_km(previous.coordinate, waypoint.coordinate)
                if previous is not None
                else 0.0
            )
            cumulative += distance
            waypoint.distance_from_previous = distance
            waypoint.cumulative_distance = cumulative
            waypoint.travel_time_from_previous = 0.0
            waypoint.cumulative_travel_time = 0.0
            previous = waypoint

    def _publish_notice(self, waypoint: Waypoint) -> None:
        position = waypoint.sequence + 1
        message = (
            f'Waypoint "{waypoint.name or "Waypoint"}" moved to position '
            f"{position} based on its date"
        )
        # A newer notice simply replaces the current one and its expiry.
        self._notice = ReorderNotice(
            message=message,
            waypoint_id=waypoint.id,
            position=position,
            expires_at=self._clock() + self._notice_seconds,
        )
        LOGGER.info(message)


def resequence_by_date(waypoints: Sequence[Waypoint]) -> List[Waypoint]:
    """Sort dated waypoints among the slots they occupy; dateless stay put."""

    dated = [(index, w) for index, w in enumerate(waypoints) if w.date is not None]
    ordered = sorted((w for _, w in dated), key=lambda w: w.date)
    result = list(waypoints)
    for (slot, _), waypoint in zip(dated, ordered):
        result[slot] = waypoint
    return result


__all__ = ["WaypointSequencer", "resequence_by_date"]
