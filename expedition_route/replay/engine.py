"""Debrief replay: stop navigation, camera animation and highlighting."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..config import (
    FIT_BOUNDS_DURATION_S,
    FIT_BOUNDS_MAX_ZOOM,
    FIT_BOUNDS_PADDING,
    REPLAY_HIGHLIGHT_EPSILON,
)
from ..models import Coordinate
from .animation import (
    DEFAULT_SETTINGS,
    AnimationSettings,
    CameraKeyframe,
    KeyframeChain,
    direct_flight,
    plan_transition,
)
from .renderer import Marker, Renderer
from .tour import DebriefTour, TourStop, resolve_route_indices


@dataclass
class ReplayState:
    index: int = 0
    # Stop the next transition starts from.
    previous_index: int = 0
    active: bool = False
    highlighted: Optional[TourStop] = None
    chain: Optional[KeyframeChain] = None
    task: Optional["asyncio.Task[int]"] = None


class ReplayEngine:
    """Drives the camera along the route between debrief stops.

    At most one keyframe chain runs at a time; any navigation cancels the
    running chain first.
    """

    def __init__(
        self,
        renderer: Renderer,
        *,
        settings: AnimationSettings = DEFAULT_SETTINGS,
        highlight_epsilon: float = REPLAY_HIGHLIGHT_EPSILON,
    ) -> None:
        self._renderer = renderer
        self._settings = settings
        self._epsilon = highlight_epsilon
        self._tour = DebriefTour(stops=[])
        self.state = ReplayState()
        self._log = logging.getLogger(self.__class__.__name__)

    @property
    def tour(self) -> DebriefTour:
        return self._tour

    @property
    def stops(self) -> List[TourStop]:
        return list(self._tour.stops)

    def load(
        self, tour: DebriefTour, route: Optional[Sequence[Coordinate]] = None
    ) -> DebriefTour:
        """Install ``tour`` and resolve each stop onto the route once."""

        self.cancel()
        if route is not None:
            tour.route = [Coordinate(*point) for point in route]
        tour.indices = resolve_route_indices(tour.stops, tour.route)
        self._tour = tour
        self.state = ReplayState()
        self._log.info(
            "Loaded debrief tour: %d stops over %d route points",
            len(tour.stops),
            len(tour.route),
        )
        return tour

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def enter(self) -> Optional["asyncio.Task[int]"]:
        if not self._tour.stops:
            raise ValueError("Cannot enter replay without any stops")
        self.state.active = True
        self.state.previous_index = 0
        if not self._tour.indices:
            self._tour.indices = resolve_route_indices(
                self._tour.stops, self._tour.route
            )
        return self.advance_to(0)

    async def exit(self) -> None:
        """Stop animating, clear highlights and show every marker."""

        self.cancel()
        self.state.active = False
        self.state.index = 0
        self.state.highlighted = None
        self._renderer.clear_highlights()
        coordinates = [marker.coordinate for marker in self._renderer.markers()]
        if not coordinates:
            coordinates = [stop.coordinate for stop in self._tour.stops]
        await self._renderer.fit_bounds(
            coordinates,
            padding=FIT_BOUNDS_PADDING,
            max_zoom=FIT_BOUNDS_MAX_ZOOM,
            duration_s=FIT_BOUNDS_DURATION_S,
        )

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------
    def advance_to(self, index: int) -> Optional["asyncio.Task[int]"]:
        """Animate to stop ``index``; out-of-range indices are ignored."""

        stops = self._tour.stops
        if index < 0 or index >= len(stops):
            return None
        self.cancel()

        stop = stops[index]
        self.state.index = index
        self._highlight(stop)
        frames = self._frames_for(index)
        self.state.previous_index = index

        chain = KeyframeChain(frames, self._renderer)
        self.state.chain = chain
        self.state.task = asyncio.get_running_loop().create_task(chain.play())
        self._log.debug(
            "Replay stop %d/%d %r with %d keyframes",
            index + 1,
            len(stops),
            stop.title,
            len(frames),
        )
        return self.state.task

    def next(self) -> Optional["asyncio.Task[int]"]:
        target = min(self.state.index + 1, len(self._tour.stops) - 1)
        if target == self.state.index:
            return None
        return self.advance_to(target)

    def previous(self) -> Optional["asyncio.Task[int]"]:
        target = max(self.state.index - 1, 0)
        if target == self.state.index:
            return None
        return self.advance_to(target)

    def jump_to(self, index: int) -> Optional["asyncio.Task[int]"]:
        if not self._tour.stops:
            return None
        return self.advance_to(min(max(index, 0), len(self._tour.stops) - 1))

    def cancel(self) -> None:
        """Cancel the running chain, if any; safe to call repeatedly."""

        chain, self.state.chain = self.state.chain, None
        task, self.state.task = self.state.task, None
        if chain is not None:
            chain.cancel()
        if task is not None and not task.done():
            task.cancel()

    async def wait(self) -> None:
        """Wait for the current chain to finish or be cancelled."""

        task = self.state.task
        if task is not None:
            await asyncio.wait({task})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _frames_for(self, index: int) -> List[CameraKeyframe]:
        stop = self._tour.stops[index]
        route = self._tour.route
        from_index = self.state.previous_index
        if from_index == index or len(route) < 2:
            return direct_flight(stop.coordinate, self._settings)

        indices = self._tour.indices
        start = indices[from_index] if from_index < len(indices) else 0
        end = indices[index] if index < len(indices) else 0
        lo, hi = min(start, end), max(start, end)
        segment = list(route[lo : hi + 1])
        if start > end:
            segment.reverse()
        if len(segment) < 2:
            return direct_flight(stop.coordinate, self._settings)
        return plan_transition(
            segment, self._renderer.current_zoom(), stop.coordinate, self._settings
        )

    def _highlight(self, stop: TourStop) -> None:
        self._renderer.clear_highlights()
        for marker in self._matching_markers(stop):
            self._renderer.highlight(marker)
        self.state.highlighted = stop

    def _matching_markers(self, stop: TourStop) -> List[Marker]:
        lat, lng = stop.coordinate
        return [
            marker
            for marker in self._renderer.markers()
            if marker.kind == stop.kind.value
            and abs(marker.coordinate[0] - lat) < self._epsilon
            and abs(marker.coordinate[1] - lng) < self._epsilon
        ]


__all__ = ["ReplayEngine", "ReplayState"]
