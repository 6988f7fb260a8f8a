"""Reading expedition JSON files (waypoints, journal entries, saved route).

The layout mirrors the persistence API payload: waypoints use ``title``,
``lat``, ``lon`` and ``date``; entries use ``title``, ``lat``, ``lon``,
``date``, ``content`` and ``place``; ``routeGeometry`` is a list of
``[lng, lat]`` pairs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import ExpeditionFormatError, InvalidCoordinateError
from .geometry import validate_coordinate
from .models import Coordinate, JournalEntry, TravelMode
from .utils import parse_date

PathLike = Union[str, Path]

_EXCERPT_LENGTH = 200


@dataclass
class Expedition:
    title: str = ""
    mode: TravelMode = TravelMode.STRAIGHT
    round_trip: bool = False
    waypoints: List[Dict[str, Any]] = field(default_factory=list)
    entries: List[JournalEntry] = field(default_factory=list)
    route_geometry: Optional[List[Coordinate]] = None


def _parse_entry(raw: Dict[str, Any], index: int) -> JournalEntry:
    try:
        coordinate = Coordinate(float(raw.get("lat") or 0.0), float(raw.get("lon") or 0.0))
        date = parse_date(raw.get("date"))
    except (TypeError, ValueError) as exc:
        raise ExpeditionFormatError(f"Entry {index + 1} is malformed: {exc}") from exc
    excerpt = str(raw.get("excerpt") or raw.get("content") or "")[:_EXCERPT_LENGTH]
    return JournalEntry(
        id=str(raw.get("id") or f"entry-{index + 1}"),
        title=str(raw.get("title") or f"Entry {index + 1}"),
        coordinate=coordinate,
        date=date,
        excerpt=excerpt,
        location=str(raw.get("place") or raw.get("location") or ""),
    )


def _parse_route(raw: Any) -> Optional[List[Coordinate]]:
    if not raw:
        return None
    if not isinstance(raw, list):
        raise ExpeditionFormatError("routeGeometry must be a list of [lng, lat] pairs")
    try:
        return [validate_coordinate((point[1], point[0])) for point in raw]
    except (InvalidCoordinateError, TypeError, IndexError) as exc:
        raise ExpeditionFormatError(f"routeGeometry is malformed: {exc}") from exc


def parse_expedition(data: Dict[str, Any]) -> Expedition:
    if not isinstance(data, dict):
        raise ExpeditionFormatError("Expedition document must be a JSON object")
    waypoints = data.get("waypoints") or []
    entries = data.get("entries") or []
    if not isinstance(waypoints, list) or not isinstance(entries, list):
        raise ExpeditionFormatError("'waypoints' and 'entries' must be lists")
    try:
        mode = TravelMode(str(data.get("mode") or TravelMode.STRAIGHT.value))
    except ValueError as exc:
        raise ExpeditionFormatError(f"Unknown travel mode: {data.get('mode')}") from exc
    return Expedition(
        title=str(data.get("title") or ""),
        mode=mode,
        round_trip=bool(data.get("isRoundTrip") or data.get("round_trip")),
        waypoints=[dict(w) for w in waypoints],
        entries=[_parse_entry(e, i) for i, e in enumerate(entries)],
        route_geometry=_parse_route(data.get("routeGeometry")),
    )


def read_expedition(path: PathLike) -> Expedition:
    file_path = Path(path)
    try:
        with file_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError as exc:
        raise ExpeditionFormatError(f"Expedition file not found: {file_path}") from exc
    except json.JSONDecodeError as exc:
        raise ExpeditionFormatError(f"Invalid JSON in {file_path}: {exc}") from exc
    return parse_expedition(data)


__all__ = ["Expedition", "parse_expedition", "read_expedition"]
