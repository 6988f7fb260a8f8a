"""Debounced, cancellable directions fetching with chunking and fallback.

The fetcher keeps one request group in flight at a time. Each group gets an
:class:`AbortToken`; a newer group or the timeout aborts it. Whether an abort
was a timeout or a supersede is decided by comparing the active token with
the token the request was started with.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from ..config import (
    DIRECTIONS_DEBOUNCE_SECONDS,
    DIRECTIONS_MAX_WAYPOINTS,
    DIRECTIONS_TIMEOUT_SECONDS,
    SNAP_WARNING_THRESHOLD_M,
)
from ..directions_client import (
    TIMEOUT_MESSAGE,
    DirectionsClient,
    describe_directions_error,
)
from ..errors import (
    DirectionsAbortedError,
    DirectionsError,
    DirectionsErrorKind,
    DirectionsTimeoutError,
    InvalidCoordinateError,
    NoRouteError,
    NoSegmentError,
)
from ..geometry import validate_coordinate
from ..models import Coordinate, RouteChunk, RouteQuery, RouteResult

T = TypeVar("T")

ResultCallback = Callable[[RouteQuery, RouteResult], None]
FallbackCallback = Callable[[RouteQuery, DirectionsError], None]


class AbortToken:
    """One-shot abort signal shared by every request in a group."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str = ""

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str = "aborted") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first."""

        if self.aborted:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise DirectionsAbortedError(self.reason or "Request aborted")
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if task in done:
            return task.result()
        raise DirectionsAbortedError(self.reason or "Request aborted")


def chunk_coordinates(
    coordinates: Sequence[Coordinate], limit: int = DIRECTIONS_MAX_WAYPOINTS
) -> List[Tuple[int, List[Coordinate]]]:
    """Split into windows of ``limit`` that share one coordinate at each joint.

    Returns ``(offset, window)`` pairs where ``offset`` is the index of the
    window's first coordinate in ``coordinates``.
    """

    if limit < 2:
        raise ValueError("limit must be >= 2")
    chunks: List[Tuple[int, List[Coordinate]]] = []
    for start in range(0, len(coordinates) - 1, limit - 1):
        window = list(coordinates[start : start + limit])
        if len(window) < 2:
            break
        chunks.append((start, window))
    return chunks


def stitch_chunks(chunks: Sequence[RouteChunk]) -> RouteChunk:
    """Concatenate chunk results, dropping the duplicated joint of later chunks."""

    geometry: List[Coordinate] = []
    legs: List[float] = []
    durations: List[float] = []
    snaps: List[float] = []
    for index, chunk in enumerate(chunks):
        skip = 1 if index > 0 else 0
        geometry.extend(chunk.geometry[skip if geometry else 0 :])
        legs.extend(chunk.leg_distances_km)
        durations.extend(chunk.leg_durations_s)
        snaps.extend(chunk.snap_distances_m[skip:])
    return RouteChunk(
        geometry=geometry,
        leg_distances_km=legs,
        leg_durations_s=durations,
        snap_distances_m=snaps,
    )


def _anchor(
    geometry: List[Coordinate], first: Coordinate, last: Coordinate
) -> List[Coordinate]:
    anchored = list(geometry)
    if not anchored or anchored[0] != first:
        anchored.insert(0, first)
    if anchored[-1] != last:
        anchored.append(last)
    return anchored


class DirectionsFetcher:
    """Turns route queries into routed geometry, legs and warnings.

    ``schedule`` must be called from a running event loop. Failures never
    escape the background task: they become :attr:`error` plus a call to
    ``on_fallback``.
    """

    def __init__(
        self,
        client: DirectionsClient | None = None,
        *,
        debounce_s: float = DIRECTIONS_DEBOUNCE_SECONDS,
        timeout_s: float = DIRECTIONS_TIMEOUT_SECONDS,
        max_waypoints: int = DIRECTIONS_MAX_WAYPOINTS,
        snap_threshold_m: float = SNAP_WARNING_THRESHOLD_M,
        on_result: ResultCallback | None = None,
        on_fallback: FallbackCallback | None = None,
    ) -> None:
        if max_waypoints < 2:
            raise ValueError("max_waypoints must be >= 2")
        self._client = client or DirectionsClient(snap_threshold_m=snap_threshold_m)
        self._debounce_s = debounce_s
        self._timeout_s = timeout_s
        self._max_waypoints = max_waypoints
        self._snap_threshold_m = snap_threshold_m
        self._on_result = on_result
        self._on_fallback = on_fallback
        self._log = logging.getLogger(self.__class__.__name__)

        self._fingerprint = ""
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._active_token: Optional[AbortToken] = None
        self._idle = asyncio.Event()
        self._idle.set()

        self._result: Optional[RouteResult] = None
        self._error: Optional[str] = None
        self._error_kind: Optional[DirectionsErrorKind] = None
        self._warnings: List[str] = []
        self._loading = False

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def result(self) -> Optional[RouteResult]:
        return self._result

    @property
    def error(self) -> Optional[str]:
        return self._error

    @property
    def error_kind(self) -> Optional[DirectionsErrorKind]:
        return self._error_kind

    @property
    def warnings(self) -> List[str]:
        return list(self._warnings)

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def fingerprint(self) -> str:
        return self._fingerprint

    @property
    def pending(self) -> bool:
        """True while a debounce timer is armed or a request group is running."""

        return not self._idle.is_set()

    def subscribe(
        self,
        on_result: ResultCallback | None = None,
        on_fallback: FallbackCallback | None = None,
    ) -> None:
        """Replace the result/fallback callbacks (the planner wires itself in)."""

        self._on_result = on_result
        self._on_fallback = on_fallback

    def dismiss_error(self) -> None:
        self._error = None
        self._error_kind = None

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------
    def schedule(self, query: RouteQuery) -> None:
        """Debounce a fetch for ``query``; identical fingerprints are ignored."""

        if not query.mode.routed or len(query.coordinates) < 2:
            self.reset()
            return
        fingerprint = query.fingerprint()
        if fingerprint == self._fingerprint:
            self._log.debug("Directions fingerprint unchanged; skipping fetch")
            return
        self._fingerprint = fingerprint
        # A previous result describes different waypoints now.
        self._result = None
        self._warnings = []
        self._supersede()
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._idle.clear()
        self._timer = loop.call_later(self._debounce_s, self._start, query)

    def reset(self) -> None:
        """Drop all route state; used for straight mode and short lists."""

        self.cancel()
        self._result = None
        self._warnings = []
        self._error = None
        self._error_kind = None
        self._fingerprint = ""

    def cancel(self) -> None:
        """Cancel the pending timer and abort any in-flight request group."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        token, self._active_token = self._active_token, None
        if token is not None:
            token.abort("cancelled")
        self._loading = False
        self._idle.set()

    async def wait(self) -> None:
        """Wait until no debounce timer is armed and no request is running."""

        await self._idle.wait()

    def _start(self, query: RouteQuery) -> None:
        self._timer = None
        self._task = asyncio.get_running_loop().create_task(self._run(query))

    def _supersede(self) -> None:
        previous, self._active_token = self._active_token, None
        if previous is not None:
            previous.abort("superseded")
            self._loading = False

    def _begin(self) -> AbortToken:
        self._supersede()
        token = AbortToken()
        self._active_token = token
        return token

    def _expire(self, token: AbortToken) -> None:
        if self._active_token is token:
            self._log.warning(
                "Directions request exceeded %.1fs; aborting", self._timeout_s
            )
            token.abort("timeout")

    async def _run(self, query: RouteQuery) -> None:
        token = self._begin()
        timeout_handle = asyncio.get_running_loop().call_later(
            self._timeout_s, self._expire, token
        )
        self._loading = True
        self._error = None
        self._error_kind = None
        try:
            result = await self.fetch_route(query, token)
        except DirectionsAbortedError:
            if self._active_token is token:
                self._fail(query, DirectionsTimeoutError(TIMEOUT_MESSAGE))
            else:
                self._log.debug("Superseded directions request dropped")
        except (DirectionsError, InvalidCoordinateError) as exc:
            if self._active_token is token:
                error = (
                    exc
                    if isinstance(exc, DirectionsError)
                    else DirectionsError(str(exc))
                )
                self._fail(query, error)
        except Exception as exc:  # noqa: BLE001
            if self._active_token is token:
                self._log.exception("Unexpected directions failure")
                self._fail(query, DirectionsError(str(exc) or exc.__class__.__name__))
        else:
            if self._active_token is token and not token.aborted:
                self._apply(query, result)
        finally:
            timeout_handle.cancel()
            if self._active_token is token:
                self._active_token = None
                self._loading = False
            if self._task is asyncio.current_task():
                self._task = None
                if self._timer is None and self._active_token is None:
                    self._idle.set()

    def _apply(self, query: RouteQuery, result: RouteResult) -> None:
        if query.fingerprint() != self._fingerprint:
            self._log.debug("Directions result for a stale query dropped")
            return
        self._result = result
        self._warnings = list(result.warnings)
        self._log.info(
            "Directions %s route: %d legs, %.1f km, %d warnings",
            query.mode.value,
            len(result.leg_distances_km),
            result.total_distance_km,
            len(result.warnings),
        )
        if self._on_result is not None:
            self._on_result(query, result)

    def _fail(self, query: RouteQuery, error: DirectionsError) -> None:
        if query.fingerprint() != self._fingerprint:
            self._log.debug("Directions failure for a stale query dropped")
            return
        message = error.message or describe_directions_error(
            error.kind, "", query.mode
        )
        self._result = None
        self._warnings = []
        self._error = message
        self._error_kind = error.kind
        self._log.warning("Directions fallback to straight lines: %s", message)
        if self._on_fallback is not None:
            self._on_fallback(query, error)

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------
    async def fetch_route(
        self, query: RouteQuery, token: AbortToken | None = None
    ) -> RouteResult:
        """Fetch and stitch the full route for ``query``.

        Raises :class:`DirectionsAbortedError` when ``token`` fires; a failed
        chunk raises before anything is stitched.
        """

        token = token or AbortToken()
        coordinates = [validate_coordinate(c) for c in query.coordinates]
        if len(coordinates) < 2:
            raise ValueError("A route needs at least two coordinates")
        if query.round_trip:
            coordinates.append(coordinates[0])

        chunks: List[RouteChunk] = []
        for offset, window in chunk_coordinates(coordinates, self._max_waypoints):
            chunks.append(await self._route_chunk(query, token, offset, window))
        if token.aborted:
            raise DirectionsAbortedError(token.reason or "Request aborted")

        stitched = stitch_chunks(chunks)
        return RouteResult(
            polyline=_anchor(stitched.geometry, coordinates[0], coordinates[-1]),
            leg_distances_km=stitched.leg_distances_km,
            leg_durations_s=stitched.leg_durations_s,
            snap_distances_m=stitched.snap_distances_m,
            warnings=self.snap_warnings(query, stitched.snap_distances_m),
            mode=query.mode,
        )

    async def _route_chunk(
        self,
        query: RouteQuery,
        token: AbortToken,
        offset: int,
        window: List[Coordinate],
    ) -> RouteChunk:
        try:
            return await token.guard(
                asyncio.to_thread(self._client.route, window, query.mode)
            )
        except (NoSegmentError, NoRouteError) as exc:
            raise self._locate(query, offset, exc) from exc

    def _locate(
        self, query: RouteQuery, offset: int, exc: DirectionsError
    ) -> DirectionsError:
        indices = [offset + index for index in exc.indices]
        names: List[str] = []
        for index in indices:
            name = query.label_for(index)
            if name not in names:
                names.append(name)
        message = describe_directions_error(exc.kind, exc.message, query.mode, names)
        return type(exc)(message, waypoints=names, indices=indices)

    def snap_warnings(self, query: RouteQuery, snaps: Sequence[float]) -> List[str]:
        """Warn about waypoints snapped further than the threshold."""

        # The closing coordinate of a round trip repeats the first waypoint.
        count = len(snaps) - 1 if query.round_trip else len(snaps)
        mode = query.mode.value
        warnings: List[str] = []
        for index in range(min(count, len(query.coordinates))):
            if snaps[index] > self._snap_threshold_m:
                km = snaps[index] / 1000
                warnings.append(
                    f"{query.label_for(index)} is {km:.1f} km from the nearest "
                    f"{mode} route and may be inaccessible by {mode}"
                )
        return warnings


__all__ = [
    "AbortToken",
    "DirectionsFetcher",
    "chunk_coordinates",
    "stitch_chunks",
]
