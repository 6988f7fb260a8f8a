"""Debrief replay: tour construction, camera animation and rendering."""

from .animation import (
    DEFAULT_SETTINGS,
    AnimationSettings,
    CameraKeyframe,
    KeyframeChain,
    direct_flight,
    plan_transition,
)
from .engine import ReplayEngine, ReplayState
from .renderer import FoliumRenderer, Marker, Renderer
from .tour import (
    DebriefTour,
    StopKind,
    TourStop,
    build_tour,
    replay_route,
    resolve_route_indices,
)

__all__ = [
    "AnimationSettings",
    "CameraKeyframe",
    "DEFAULT_SETTINGS",
    "DebriefTour",
    "FoliumRenderer",
    "KeyframeChain",
    "Marker",
    "Renderer",
    "ReplayEngine",
    "ReplayState",
    "StopKind",
    "TourStop",
    "build_tour",
    "direct_flight",
    "plan_transition",
    "replay_route",
    "resolve_route_indices",
]
