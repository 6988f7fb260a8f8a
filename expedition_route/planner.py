"""Planner facade: one engine instance owning waypoints and route state."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .errors import DirectionsError
from .geometry import haversine_km, straight_line
from .models import (
    Coordinate,
    JournalEntry,
    RouteQuery,
    RouteResult,
    TravelMode,
    Waypoint,
)
from .replay.tour import DebriefTour, build_tour
from .sequencer import WaypointSequencer
from .services.directions_service import DirectionsFetcher
from .utils import format_distance, format_travel_time

LOGGER = logging.getLogger(__name__)


class ExpeditionPlanner:
    """Forwards waypoint edits to the sequencer and keeps the route in sync.

    Every mutation re-schedules the directions fetch; routed results are
    reconciled into the sequencer's leg metrics, failures restore Haversine
    estimates. Mutating methods must run inside an event loop when the
    mode is routed.
    """

    def __init__(
        self,
        *,
        mode: TravelMode = TravelMode.STRAIGHT,
        sequencer: WaypointSequencer | None = None,
        fetcher: DirectionsFetcher | None = None,
    ) -> None:
        self._mode = TravelMode(mode)
        self.sequencer = sequencer or WaypointSequencer()
        self.fetcher = fetcher or DirectionsFetcher()
        self.fetcher.subscribe(on_result=self._reconcile, on_fallback=self._fallback)

    @property
    def mode(self) -> TravelMode:
        return self._mode

    @property
    def waypoints(self) -> Sequence[Waypoint]:
        return self.sequencer.waypoints

    @property
    def round_trip(self) -> bool:
        return self.sequencer.round_trip

    def query(self) -> RouteQuery:
        return RouteQuery(
            coordinates=self.sequencer.coordinates(),
            mode=self._mode,
            round_trip=self.sequencer.round_trip,
            labels=self.sequencer.labels(),
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def load(
        self,
        records: Iterable[Mapping[str, Any]],
        *,
        mode: TravelMode | str | None = None,
        round_trip: bool = False,
    ) -> None:
        self.sequencer.load(records)
        self.sequencer.set_round_trip(round_trip)
        if mode is not None:
            self._mode = TravelMode(mode)
        self._reschedule()

    def append(self, coordinate: Sequence[float], **fields: Any) -> Waypoint:
        waypoint = self.sequencer.append(coordinate, **fields)
        self._reschedule()
        return waypoint

    def remove(self, waypoint_id: str) -> Waypoint:
        waypoint = self.sequencer.remove(waypoint_id)
        self._reschedule()
        return waypoint

    def update(self, waypoint_id: str, **fields: Any) -> Waypoint:
        waypoint = self.sequencer.update(waypoint_id, **fields)
        self._reschedule()
        return waypoint

    def move_marker(self, waypoint_id: str, coordinate: Sequence[float]) -> Waypoint:
        waypoint = self.sequencer.move_marker(waypoint_id, coordinate)
        self._reschedule()
        return waypoint

    def set_mode(self, mode: TravelMode | str) -> None:
        self._mode = TravelMode(mode)
        self._reschedule()

    def set_round_trip(self, enabled: bool) -> bool:
        applied = self.sequencer.set_round_trip(enabled)
        self._reschedule()
        return applied

    def _reschedule(self) -> None:
        query = self.query()
        if not query.mode.routed or len(query.coordinates) < 2:
            self.fetcher.reset()
            self.sequencer.recompute_distances()
            return
        self.fetcher.schedule(query)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _reconcile(self, query: RouteQuery, result: RouteResult) -> None:
        self.sequencer.apply_leg_metrics(
            result.leg_distances_km, result.leg_durations_s
        )

    def _fallback(self, query: RouteQuery, error: DirectionsError) -> None:
        LOGGER.info("Restoring straight-line distances after %s", error.kind.value)
        self.sequencer.recompute_distances()

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    def route_geometry(self) -> List[Coordinate]:
        """Routed polyline when available, else the straight-line fallback."""

        result = self.fetcher.result
        if self._mode.routed and result is not None and result.polyline:
            return list(result.polyline)
        return straight_line(self.sequencer.coordinates(), self.sequencer.round_trip)

    def summary(self) -> Dict[str, Any]:
        total_km = self.sequencer.total_distance_km
        total_s = self.sequencer.total_travel_time_s
        result: Optional[RouteResult] = self.fetcher.result
        # The closing leg of a round trip has no waypoint to carry it.
        if result is not None and self.sequencer.round_trip:
            total_km = result.total_distance_km
            total_s = result.total_duration_s
        elif self.sequencer.round_trip and len(self.sequencer) > 1:
            coordinates = self.sequencer.coordinates()
            total_km += haversine_km(coordinates[-1], coordinates[0])
        return {
            "mode": self._mode.value,
            "waypoints": len(self.sequencer),
            "round_trip": self.sequencer.round_trip,
            "routed": result is not None,
            "total_distance_km": total_km,
            "total_travel_time_s": total_s,
            "distance": format_distance(total_km),
            "travel_time": format_travel_time(total_s) if total_s else None,
            "warnings": self.fetcher.warnings,
            "error": self.fetcher.error,
        }

    def build_tour(self, entries: Iterable[JournalEntry] = ()) -> DebriefTour:
        return build_tour(
            self.sequencer.waypoints,
            list(entries),
            round_trip=self.sequencer.round_trip,
        )


__all__ = ["ExpeditionPlanner"]
