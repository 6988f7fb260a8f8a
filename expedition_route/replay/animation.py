"""Camera keyframe planning for debrief transitions."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Sequence

from .. import config
from ..geometry import cumulative_lengths, interpolate
from ..models import Coordinate

if TYPE_CHECKING:
    from .renderer import Renderer


@dataclass(frozen=True)
class CameraKeyframe:
    center: Coordinate
    zoom: float
    duration_s: float
    # Linear easing per step; False lets the renderer use its default curve.
    linear: bool = False


@dataclass(frozen=True)
class AnimationSettings:
    stop_zoom: float = config.REPLAY_STOP_ZOOM
    fly_duration_s: float = config.REPLAY_FLY_DURATION_S
    settle_duration_s: float = config.REPLAY_SETTLE_DURATION_S
    min_steps: int = config.REPLAY_MIN_STEPS
    max_steps: int = config.REPLAY_MAX_STEPS
    steps_per_unit: float = config.REPLAY_STEPS_PER_UNIT
    min_duration_s: float = config.REPLAY_MIN_DURATION_S
    max_duration_s: float = config.REPLAY_MAX_DURATION_S
    duration_per_unit_s: float = config.REPLAY_DURATION_PER_UNIT_S
    zoom_dip_per_unit: float = config.REPLAY_ZOOM_DIP_PER_UNIT
    max_zoom_dip: float = config.REPLAY_MAX_ZOOM_DIP


DEFAULT_SETTINGS = AnimationSettings()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def direct_flight(
    destination: Coordinate, settings: AnimationSettings = DEFAULT_SETTINGS
) -> List[CameraKeyframe]:
    return [
        CameraKeyframe(
            center=Coordinate(*destination),
            zoom=settings.stop_zoom,
            duration_s=settings.fly_duration_s,
        )
    ]


def plan_transition(
    segment: Sequence[Coordinate],
    start_zoom: float,
    destination: Coordinate,
    settings: AnimationSettings = DEFAULT_SETTINGS,
) -> List[CameraKeyframe]:
    """Keyframes that follow ``segment`` and settle on ``destination``.

    Step count and total duration scale with the planar segment length;
    the zoom ramps linearly to the stop zoom with a sine-shaped dip.
    """

    if len(segment) < 2:
        return direct_flight(destination, settings)

    cumulative = cumulative_lengths(segment)
    length = float(cumulative[-1])
    zoom_out = min(settings.max_zoom_dip, max(0.0, length * settings.zoom_dip_per_unit))
    steps = min(
        settings.max_steps,
        max(settings.min_steps, _round_half_up(length * settings.steps_per_unit)),
    )
    total = min(
        settings.max_duration_s,
        max(settings.min_duration_s, length * settings.duration_per_unit_s),
    )
    step_duration = total / steps

    frames: List[CameraKeyframe] = []
    for i in range(steps + 1):
        t = i / steps
        linear_zoom = start_zoom + t * (settings.stop_zoom - start_zoom)
        frames.append(
            CameraKeyframe(
                center=interpolate(segment, cumulative, t),
                zoom=linear_zoom - math.sin(t * math.pi) * zoom_out,
                duration_s=step_duration,
                linear=True,
            )
        )
    frames.append(
        CameraKeyframe(
            center=Coordinate(*destination),
            zoom=settings.stop_zoom,
            duration_s=settings.settle_duration_s,
        )
    )
    return frames


class KeyframeChain:
    """Async iterator over keyframes; each step starts after the previous move."""

    def __init__(
        self,
        frames: Sequence[CameraKeyframe],
        renderer: Optional["Renderer"] = None,
    ) -> None:
        self._frames = list(frames)
        self._renderer = renderer
        self._position = 0
        self._cancelled = False

    @property
    def frames(self) -> List[CameraKeyframe]:
        return list(self._frames)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def completed(self) -> int:
        return self._position

    def __aiter__(self) -> "KeyframeChain":
        return self

    async def __anext__(self) -> CameraKeyframe:
        if self._cancelled or self._position >= len(self._frames):
            raise StopAsyncIteration
        frame = self._frames[self._position]
        self._position += 1
        return frame

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        if self._renderer is not None:
            self._renderer.stop()

    async def play(self) -> int:
        """Send every remaining keyframe to the renderer; returns frames played."""

        if self._renderer is None:
            raise RuntimeError("KeyframeChain has no renderer to play on")
        played = 0
        async for frame in self:
            await self._renderer.move_camera(frame)
            played += 1
        return played


__all__ = [
    "AnimationSettings",
    "CameraKeyframe",
    "DEFAULT_SETTINGS",
    "KeyframeChain",
    "direct_flight",
    "plan_transition",
]
