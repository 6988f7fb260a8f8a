import asyncio

import pytest

from conftest import FakeDirectionsClient, make_coordinates, make_query
from expedition_route.directions_client import TIMEOUT_MESSAGE
from expedition_route.errors import (
    DirectionsAbortedError,
    DirectionsErrorKind,
    NoRouteError,
    NoSegmentError,
)
from expedition_route.models import Coordinate, RouteChunk, TravelMode
from expedition_route.services import AbortToken, DirectionsFetcher, chunk_coordinates


def _fetcher(client, **kwargs):
    kwargs.setdefault("debounce_s", 0.01)
    kwargs.setdefault("timeout_s", 2.0)
    return DirectionsFetcher(client, **kwargs)


def _fetch(client, query, **kwargs):
    async def scenario():
        return await _fetcher(client, **kwargs).fetch_route(query)

    return asyncio.run(scenario())


class Recorder:
    def __init__(self):
        self.results = []
        self.fallbacks = []

    def on_result(self, query, result):
        self.results.append((query, result))

    def on_fallback(self, query, error):
        self.fallbacks.append((query, error))


# --- chunking & stitching ---------------------------------------------
def test_chunk_coordinates_overlaps_by_one():
    coords = make_coordinates(30)
    chunks = chunk_coordinates(coords, 25)
    assert [(offset, len(window)) for offset, window in chunks] == [(0, 25), (24, 6)]
    assert chunks[1][1][0] == chunks[0][1][-1]
    assert len(chunk_coordinates(make_coordinates(25), 25)) == 1
    assert chunk_coordinates(make_coordinates(2), 25) == [(0, list(make_coordinates(2)))]
    with pytest.raises(ValueError):
        chunk_coordinates(coords, 1)


def test_thirty_coordinates_stitch_without_duplicate_joint(fake_client):
    query = make_query(30)
    result = _fetch(fake_client, query, max_waypoints=25)

    assert [len(coords) for coords, _ in fake_client.calls] == [25, 6]
    assert result.polyline[0] == query.coordinates[0]
    assert result.polyline[-1] == query.coordinates[-1]
    assert len(result.polyline) == 30
    assert all(a != b for a, b in zip(result.polyline, result.polyline[1:]))
    assert len(result.leg_distances_km) == 29
    assert len(result.leg_durations_s) == 29
    assert len(result.snap_distances_m) == 30


def test_round_trip_closes_on_first_waypoint(fake_client):
    query = make_query(25, round_trip=True)
    result = _fetch(fake_client, query, max_waypoints=25)
    sent = [coords for coords, _ in fake_client.calls]
    assert [len(coords) for coords in sent] == [25, 2]
    assert sent[-1][-1] == query.coordinates[0]
    assert result.polyline[-1] == query.coordinates[0]
    assert len(result.leg_distances_km) == 25


def test_polyline_is_anchored_to_query_endpoints():
    class SnappingClient(FakeDirectionsClient):
        def route(self, coordinates, mode):
            chunk = super().route(coordinates, mode)
            shifted = [Coordinate(c.lat + 0.001, c.lng) for c in chunk.geometry]
            return RouteChunk(shifted, chunk.leg_distances_km, chunk.leg_durations_s, chunk.snap_distances_m)

    query = make_query(3)
    result = _fetch(SnappingClient(), query)
    assert result.polyline[0] == query.coordinates[0]
    assert result.polyline[-1] == query.coordinates[-1]
    assert len(result.polyline) == 5


# --- errors -------------------------------------------------------------
def test_chunk_failure_names_waypoint_by_global_index():
    client = FakeDirectionsClient(errors=[None, NoSegmentError("NoSegment", indices=[2])])
    query = make_query(30)
    with pytest.raises(NoSegmentError) as excinfo:
        _fetch(client, query, max_waypoints=25)
    error = excinfo.value
    assert error.indices == [26]
    assert error.waypoints == ["WP27"]
    assert error.message == (
        "No walking/hiking route found — WP27 is not reachable "
        "(may be in water or far from any walking/hiking path)"
    )


def test_round_trip_closing_index_maps_to_first_waypoint():
    client = FakeDirectionsClient(errors=[NoRouteError("NoRoute", indices=[0, 3])])
    query = make_query(3, mode=TravelMode.CYCLING, round_trip=True)
    with pytest.raises(NoRouteError) as excinfo:
        _fetch(client, query)
    assert excinfo.value.waypoints == ["WP1"]
    assert "WP1 is not reachable" in excinfo.value.message


def test_failure_falls_back_and_applies_nothing():
    recorder = Recorder()
    client = FakeDirectionsClient(errors=[None, NoSegmentError("NoSegment")])

    async def scenario():
        fetcher = _fetcher(
            client,
            max_waypoints=25,
            on_result=recorder.on_result,
            on_fallback=recorder.on_fallback,
        )
        fetcher.schedule(make_query(30))
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.result is None
    assert fetcher.error_kind is DirectionsErrorKind.NO_SEGMENT
    assert fetcher.error.startswith("One or more waypoints could not be matched")
    assert recorder.results == []
    assert len(recorder.fallbacks) == 1
    assert fetcher.loading is False
    fetcher.dismiss_error()
    assert fetcher.error is None


def test_unexpected_client_failure_falls_back():
    recorder = Recorder()
    client = FakeDirectionsClient(errors=[IndexError("list index out of range")])

    async def scenario():
        fetcher = _fetcher(
            client, on_result=recorder.on_result, on_fallback=recorder.on_fallback
        )
        fetcher.schedule(make_query(3))
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.result is None
    assert fetcher.error == "list index out of range"
    assert fetcher.error_kind is DirectionsErrorKind.GENERIC
    assert fetcher.loading is False
    assert [query for query, _ in recorder.fallbacks] == [make_query(3)]


# --- snap warnings --------------------------------------------------------
def test_snap_warning_names_far_waypoint():
    coords = make_coordinates(3)
    client = FakeDirectionsClient(snaps={coords[1]: 2500.0, coords[2]: 900.0})
    result = _fetch(client, make_query(3))
    assert result.warnings == [
        "WP2 is 2.5 km from the nearest walking route and may be inaccessible by walking"
    ]


def test_round_trip_closing_snap_is_not_double_counted():
    coords = make_coordinates(3)
    client = FakeDirectionsClient(snaps={coords[0]: 3000.0})
    result = _fetch(client, make_query(3, mode=TravelMode.DRIVING, round_trip=True))
    assert len(result.snap_distances_m) == 4
    assert result.warnings == [
        "WP1 is 3.0 km from the nearest driving route and may be inaccessible by driving"
    ]


# --- scheduling -----------------------------------------------------------
def test_debounce_coalesces_rapid_changes(fake_client):
    async def scenario():
        fetcher = _fetcher(fake_client, debounce_s=0.05)
        for count in (2, 3, 4):
            fetcher.schedule(make_query(count))
        assert fetcher.pending
        assert fake_client.calls == []
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert len(fake_client.calls) == 1
    assert len(fake_client.calls[0][0]) == 4
    assert fetcher.fingerprint == make_query(4).fingerprint()
    assert len(fetcher.result.leg_distances_km) == 3


def test_identical_fingerprint_issues_no_call(fake_client):
    async def scenario():
        fetcher = _fetcher(fake_client)
        fetcher.schedule(make_query(3))
        await fetcher.wait()
        fetcher.schedule(make_query(3, labels=("renamed", "b", "c")))
        assert not fetcher.pending
        await fetcher.wait()

    asyncio.run(scenario())
    assert len(fake_client.calls) == 1


def test_mode_switch_fires_exactly_one_new_fetch(fake_client):
    async def scenario():
        fetcher = _fetcher(fake_client)
        fetcher.schedule(make_query(3, mode=TravelMode.DRIVING))
        await fetcher.wait()
        fetcher.schedule(make_query(3, mode=TravelMode.WALKING))
        fetcher.schedule(make_query(3, mode=TravelMode.WALKING))
        await fetcher.wait()

    asyncio.run(scenario())
    assert [mode for _, mode in fake_client.calls] == [TravelMode.DRIVING, TravelMode.WALKING]


def test_straight_mode_clears_state_without_network(fake_client):
    async def scenario():
        fetcher = _fetcher(fake_client)
        fetcher.schedule(make_query(3))
        await fetcher.wait()
        assert fetcher.result is not None
        fetcher.schedule(make_query(3, mode=TravelMode.STRAIGHT))
        return fetcher

    fetcher = asyncio.run(scenario())
    assert len(fake_client.calls) == 1
    assert fetcher.result is None
    assert fetcher.fingerprint == ""
    assert fetcher.warnings == []


def test_single_waypoint_does_not_fetch(fake_client):
    async def scenario():
        fetcher = _fetcher(fake_client)
        fetcher.schedule(make_query(1))
        await fetcher.wait()

    asyncio.run(scenario())
    assert fake_client.calls == []


# --- cancellation -----------------------------------------------------------
def test_timeout_reports_error_and_falls_back():
    recorder = Recorder()
    client = FakeDirectionsClient(delays=[0.5])

    async def scenario():
        fetcher = _fetcher(
            client,
            timeout_s=0.05,
            on_result=recorder.on_result,
            on_fallback=recorder.on_fallback,
        )
        fetcher.schedule(make_query(3))
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.error == TIMEOUT_MESSAGE
    assert fetcher.error_kind is DirectionsErrorKind.TIMEOUT
    assert fetcher.result is None
    assert fetcher.loading is False
    assert len(recorder.fallbacks) == 1
    assert recorder.results == []


def test_superseded_request_is_silent():
    recorder = Recorder()
    client = FakeDirectionsClient(delays=[0.3, 0.0])
    first, second = make_query(3), make_query(4)

    async def scenario():
        fetcher = _fetcher(
            client, on_result=recorder.on_result, on_fallback=recorder.on_fallback
        )
        fetcher.schedule(first)
        await asyncio.sleep(0.1)
        assert fetcher.loading
        fetcher.schedule(second)
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.error is None
    assert recorder.fallbacks == []
    assert [query for query, _ in recorder.results] == [second]
    assert len(fetcher.result.leg_distances_km) == 3


def test_reset_during_flight_drops_result():
    recorder = Recorder()
    client = FakeDirectionsClient(delays=[0.2])

    async def scenario():
        fetcher = _fetcher(
            client, on_result=recorder.on_result, on_fallback=recorder.on_fallback
        )
        fetcher.schedule(make_query(3))
        await asyncio.sleep(0.05)
        fetcher.reset()
        await asyncio.sleep(0.3)
        return fetcher

    fetcher = asyncio.run(scenario())
    assert fetcher.result is None
    assert fetcher.error is None
    assert recorder.results == []
    assert recorder.fallbacks == []


def test_abort_token_guard():
    async def value():
        return 7

    async def scenario():
        token = AbortToken()
        assert await token.guard(value()) == 7
        token.abort("superseded")
        token.abort("timeout")
        assert token.reason == "superseded"
        with pytest.raises(DirectionsAbortedError):
            await token.guard(value())

        pending = AbortToken()
        slow = asyncio.ensure_future(pending.guard(asyncio.sleep(5, result=1)))
        await asyncio.sleep(0)
        pending.abort()
        with pytest.raises(DirectionsAbortedError):
            await slow

    asyncio.run(scenario())


def test_stale_failure_during_new_debounce_is_silent():
    recorder = Recorder()
    client = FakeDirectionsClient(delays=[0.2, 0.0], errors=[NoRouteError("NoRoute"), None])
    first, second = make_query(3), make_query(4)

    async def scenario():
        fetcher = _fetcher(
            client,
            debounce_s=0.3,
            on_result=recorder.on_result,
            on_fallback=recorder.on_fallback,
        )
        fetcher.schedule(first)
        await asyncio.sleep(0.35)
        assert fetcher.loading
        fetcher.schedule(second)
        assert not fetcher.loading
        # The first request fails inside the second one's debounce window.
        await asyncio.sleep(0.15)
        assert fetcher.error is None
        assert fetcher.pending
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert recorder.fallbacks == []
    assert [query for query, _ in recorder.results] == [second]
    assert fetcher.error is None
    assert len(fetcher.result.leg_distances_km) == 3


def test_wait_covers_request_started_right_after_supersede():
    recorder = Recorder()
    client = FakeDirectionsClient(delays=[0.2, 0.05])
    first, second = make_query(3), make_query(5)

    async def scenario():
        fetcher = _fetcher(
            client,
            debounce_s=0.0,
            on_result=recorder.on_result,
            on_fallback=recorder.on_fallback,
        )
        fetcher.schedule(first)
        await asyncio.sleep(0.05)
        fetcher.schedule(second)
        await fetcher.wait()
        return fetcher

    fetcher = asyncio.run(scenario())
    assert [query for query, _ in recorder.results] == [second]
    assert len(fetcher.result.leg_distances_km) == 4
    assert fetcher.pending is False
