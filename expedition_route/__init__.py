"""Expedition route planning and debrief replay engine."""

from .errors import DirectionsError, InvalidCoordinateError
from .main import main
from .models import Coordinate, JournalEntry, RouteQuery, RouteResult, TravelMode, Waypoint
from .planner import ExpeditionPlanner
from .sequencer import WaypointSequencer

__all__ = [
    "main",
    "Coordinate",
    "DirectionsError",
    "ExpeditionPlanner",
    "InvalidCoordinateError",
    "JournalEntry",
    "RouteQuery",
    "RouteResult",
    "TravelMode",
    "Waypoint",
    "WaypointSequencer",
]
