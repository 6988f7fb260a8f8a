"""Rendering boundary for the replay engine plus a folium-backed adapter."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple, Union

import folium  # Using folium to build an interactive Leaflet map.

from ..models import Coordinate
from .animation import CameraKeyframe

PathLike = Union[str, Path]

_ROUTE_COLOR = "#2c7bb6"
_CAMERA_COLOR = "#fdae61"
_WAYPOINT_COLOR = "#1a9641"
_ENTRY_COLOR = "#7b3294"
_HIGHLIGHT_COLOR = "#ac6d46"


@dataclass(frozen=True)
class Marker:
    """A point marker the host draws for a waypoint or journal entry."""

    id: str
    coordinate: Coordinate
    kind: str = "waypoint"
    title: str = ""


class Renderer(Protocol):
    def current_zoom(self) -> float: ...

    def markers(self) -> Sequence[Marker]: ...

    def clear_highlights(self) -> None: ...

    def highlight(self, marker: Marker) -> None: ...

    def stop(self) -> None: ...

    async def move_camera(self, frame: CameraKeyframe) -> None: ...

    async def fit_bounds(
        self,
        coordinates: Sequence[Coordinate],
        padding: int,
        max_zoom: float,
        duration_s: float,
    ) -> None: ...


class FoliumRenderer:
    """Headless renderer that records camera moves and exports an HTML map.

    ``time_scale`` multiplies keyframe durations into real sleeps; the
    default of 0 replays instantly while still yielding to the loop.
    """

    def __init__(
        self,
        markers: Sequence[Marker] = (),
        *,
        route: Sequence[Coordinate] = (),
        zoom: float = 4.0,
        time_scale: float = 0.0,
    ) -> None:
        self._markers = list(markers)
        self._route = [Coordinate(*point) for point in route]
        self._zoom = zoom
        self._center: Optional[Coordinate] = None
        self._time_scale = time_scale
        self._highlighted: List[Marker] = []
        self._bounds: Optional[Tuple[Coordinate, Coordinate]] = None
        self.frames: List[CameraKeyframe] = []
        self.stop_calls = 0
        self._log = logging.getLogger(self.__class__.__name__)

    # ------------------------------------------------------------------
    # Renderer protocol
    # ------------------------------------------------------------------
    def current_zoom(self) -> float:
        return self._zoom

    def markers(self) -> Sequence[Marker]:
        return list(self._markers)

    def clear_highlights(self) -> None:
        self._highlighted = []

    def highlight(self, marker: Marker) -> None:
        self._highlighted.append(marker)

    def stop(self) -> None:
        self.stop_calls += 1

    async def move_camera(self, frame: CameraKeyframe) -> None:
        self.frames.append(frame)
        self._center = frame.center
        self._zoom = frame.zoom
        await asyncio.sleep(frame.duration_s * self._time_scale)

    async def fit_bounds(
        self,
        coordinates: Sequence[Coordinate],
        padding: int,
        max_zoom: float,
        duration_s: float,
    ) -> None:
        if not coordinates:
            return
        lats = [c[0] for c in coordinates]
        lngs = [c[1] for c in coordinates]
        self._bounds = (
            Coordinate(min(lats), min(lngs)),
            Coordinate(max(lats), max(lngs)),
        )
        self._center = Coordinate(
            (self._bounds[0].lat + self._bounds[1].lat) / 2,
            (self._bounds[0].lng + self._bounds[1].lng) / 2,
        )
        self._zoom = min(self._zoom, max_zoom)
        self._log.debug(
            "Fit %d markers (padding=%s max_zoom=%s)", len(coordinates), padding, max_zoom
        )
        await asyncio.sleep(duration_s * self._time_scale)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    @property
    def center(self) -> Optional[Coordinate]:
        return self._center

    @property
    def highlighted(self) -> List[Marker]:
        return list(self._highlighted)

    @property
    def bounds(self) -> Optional[Tuple[Coordinate, Coordinate]]:
        return self._bounds

    def set_route(self, route: Sequence[Coordinate]) -> None:
        self._route = [Coordinate(*point) for point in route]

    def to_map(self) -> folium.Map:
        """Build a map with the route, markers, camera path and highlight."""

        if self._center is not None:
            location = self._center
        elif self._route:
            location = self._route[0]
        elif self._markers:
            location = self._markers[0].coordinate
        else:
            location = Coordinate(0.0, 0.0)

        folium_map = folium.Map(
            location=list(location), zoom_start=round(self._zoom), control_scale=True
        )
        if len(self._route) >= 2:
            folium.PolyLine(
                [list(point) for point in self._route],
                color=_ROUTE_COLOR,
                weight=4,
                opacity=0.8,
                tooltip="Route",
            ).add_to(folium_map)
        camera_path = [list(frame.center) for frame in self.frames]
        if len(camera_path) >= 2:
            folium.PolyLine(
                camera_path,
                color=_CAMERA_COLOR,
                weight=2,
                opacity=0.7,
                dash_array="4 6",
                tooltip="Camera path",
            ).add_to(folium_map)

        highlighted_ids = {marker.id for marker in self._highlighted}
        for marker in self._markers:
            is_highlighted = marker.id in highlighted_ids
            color = (
                _HIGHLIGHT_COLOR
                if is_highlighted
                else _ENTRY_COLOR if marker.kind == "entry" else _WAYPOINT_COLOR
            )
            folium.CircleMarker(
                location=list(marker.coordinate),
                radius=9 if is_highlighted else 6,
                color=color,
                fill=True,
                fill_color=color,
                tooltip=marker.title or marker.id,
            ).add_to(folium_map)

        if self._bounds is not None:
            folium_map.fit_bounds([list(self._bounds[0]), list(self._bounds[1])])
        return folium_map

    def save(self, output_html_path: PathLike) -> Path:
        output_path = Path(output_html_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        self.to_map().save(str(output_path))
        self._log.info("Saved replay map to %s", output_path)
        return output_path


__all__ = ["FoliumRenderer", "Marker", "Renderer"]
