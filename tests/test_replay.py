import asyncio

import pytest

from expedition_route.models import Coordinate, JournalEntry, Waypoint
from expedition_route.replay import (
    DEFAULT_SETTINGS,
    FoliumRenderer,
    KeyframeChain,
    Marker,
    ReplayEngine,
    build_tour,
    direct_flight,
    plan_transition,
)

ROUTE = [Coordinate(46.0, 7.0 + k * 0.1) for k in range(11)]


def _waypoints():
    return [
        Waypoint(id="a", coordinate=Coordinate(46.0, 7.0), name="Trailhead"),
        Waypoint(id="b", coordinate=Coordinate(46.0, 7.5), name="Hut"),
        Waypoint(id="c", coordinate=Coordinate(46.0, 8.0), name="Summit"),
    ]


def _markers():
    markers = [Marker(w.id, w.coordinate, "waypoint", w.name) for w in _waypoints()]
    # Entry sitting on top of the hut must not light up for the waypoint stop.
    markers.append(Marker("e1", Coordinate(46.0, 7.5), "entry", "Storm"))
    return markers


def _engine(time_scale=0.0, route=ROUTE):
    renderer = FoliumRenderer(_markers(), route=route, time_scale=time_scale)
    engine = ReplayEngine(renderer)
    engine.load(build_tour(_waypoints()), route)
    return engine, renderer


# --- keyframe planning -------------------------------------------------------
def test_short_segment_uses_minimum_steps_and_duration():
    segment = [Coordinate(46.0, 7.0), Coordinate(46.0, 7.1)]
    frames = plan_transition(segment, 4.0, segment[-1])
    steps = DEFAULT_SETTINGS.min_steps
    assert len(frames) == steps + 2
    assert frames[0].center == segment[0]
    assert frames[steps].center == segment[-1]
    assert all(f.linear for f in frames[:-1])
    assert sum(f.duration_s for f in frames[:-1]) == pytest.approx(
        DEFAULT_SETTINGS.min_duration_s
    )
    settle = frames[-1]
    assert settle.center == segment[-1]
    assert settle.zoom == DEFAULT_SETTINGS.stop_zoom
    assert settle.duration_s == DEFAULT_SETTINGS.settle_duration_s
    assert not settle.linear


def test_long_segment_clamps_steps_duration_and_zoom_dip():
    segment = [Coordinate(40.0, 0.0), Coordinate(40.0, 10.0)]
    frames = plan_transition(segment, 5.0, segment[-1])
    steps = DEFAULT_SETTINGS.max_steps
    assert len(frames) == steps + 2
    assert sum(f.duration_s for f in frames[:-1]) == pytest.approx(
        DEFAULT_SETTINGS.max_duration_s
    )
    midpoint = frames[steps // 2]
    expected = 5.0 + 0.5 * (DEFAULT_SETTINGS.stop_zoom - 5.0) - DEFAULT_SETTINGS.max_zoom_dip
    assert midpoint.zoom == pytest.approx(expected)
    assert frames[steps].zoom == pytest.approx(DEFAULT_SETTINGS.stop_zoom)


def test_degenerate_segment_is_a_direct_flight():
    target = Coordinate(46.0, 7.0)
    assert plan_transition([target], 3.0, target) == direct_flight(target)


def test_chain_cancel_stops_renderer_once():
    renderer = FoliumRenderer()
    chain = KeyframeChain(direct_flight(Coordinate(1.0, 1.0)) * 3, renderer)

    async def scenario():
        async for _ in chain:
            chain.cancel()
            chain.cancel()

    asyncio.run(scenario())
    assert chain.cancelled
    assert chain.completed == 1
    assert renderer.stop_calls == 1


# --- replay engine -------------------------------------------------------------
def test_enter_flies_directly_to_first_stop():
    engine, renderer = _engine()

    async def scenario():
        engine.enter()
        await engine.wait()

    asyncio.run(scenario())
    assert len(renderer.frames) == 1
    assert renderer.center == Coordinate(46.0, 7.0)
    assert engine.tour.indices == [0, 5, 10]
    assert [m.id for m in renderer.highlighted] == ["a"]


def test_next_follows_route_and_highlights_matching_kind():
    engine, renderer = _engine()

    async def scenario():
        engine.enter()
        await engine.wait()
        engine.next()
        await engine.wait()

    asyncio.run(scenario())
    transition = renderer.frames[1:]
    assert len(transition) == DEFAULT_SETTINGS.min_steps + 2
    assert transition[0].center == Coordinate(46.0, 7.0)
    assert renderer.center == Coordinate(46.0, 7.5)
    assert [m.id for m in renderer.highlighted] == ["b"]
    assert engine.state.index == 1


def test_previous_walks_the_route_backwards():
    engine, renderer = _engine()

    async def scenario():
        engine.enter()
        engine.jump_to(2)
        await engine.wait()
        renderer.frames.clear()
        engine.previous()
        await engine.wait()

    asyncio.run(scenario())
    assert renderer.frames[0].center == Coordinate(46.0, 8.0)
    assert renderer.frames[-1].center == Coordinate(46.0, 7.5)


def test_navigation_clamps_at_the_ends():
    engine, _ = _engine()

    async def scenario():
        engine.enter()
        assert engine.previous() is None
        assert engine.advance_to(7) is None
        engine.jump_to(99)
        assert engine.state.index == 2
        assert engine.next() is None
        engine.jump_to(-4)
        assert engine.state.index == 0
        engine.cancel()

    asyncio.run(scenario())


def test_cancel_is_idempotent_and_stops_animation():
    engine, renderer = _engine(time_scale=1.0)

    async def scenario():
        engine.enter()
        await asyncio.sleep(0)
        task = engine.next()
        engine.cancel()
        engine.cancel()
        await asyncio.wait({task})
        return task

    task = asyncio.run(scenario())
    assert task.cancelled()
    # One stop for the superseded enter chain, one for the cancelled next.
    assert renderer.stop_calls == 2
    assert engine.state.chain is None


def test_missing_route_falls_back_to_direct_flights():
    engine, renderer = _engine(route=[])

    async def scenario():
        engine.enter()
        engine.next()
        await engine.wait()

    asyncio.run(scenario())
    assert renderer.frames[-1] == direct_flight(Coordinate(46.0, 7.5))[0]


def test_exit_fits_every_marker_and_clears_highlight():
    engine, renderer = _engine()

    async def scenario():
        engine.enter()
        engine.next()
        await engine.wait()
        await engine.exit()

    asyncio.run(scenario())
    assert renderer.highlighted == []
    assert renderer.bounds == (Coordinate(46.0, 7.0), Coordinate(46.0, 8.0))
    assert renderer.current_zoom() <= 10.0
    assert engine.state.active is False
    assert engine.state.highlighted is None


def test_enter_requires_stops():
    engine = ReplayEngine(FoliumRenderer())
    engine.load(build_tour([]))
    with pytest.raises(ValueError):
        engine.enter()


def test_entry_stop_highlights_entry_marker():
    renderer = FoliumRenderer(_markers(), route=ROUTE)
    engine = ReplayEngine(renderer)
    entry = JournalEntry(id="e1", title="Storm", coordinate=Coordinate(46.0, 7.5))
    engine.load(build_tour(_waypoints()[:1], [entry]), ROUTE)

    async def scenario():
        engine.enter()
        engine.next()
        await engine.wait()

    asyncio.run(scenario())
    assert [m.id for m in renderer.highlighted] == ["e1"]


# --- folium export ---------------------------------------------------------------
def test_renderer_saves_html_map(tmp_path):
    engine, renderer = _engine()

    async def scenario():
        engine.enter()
        engine.next()
        await engine.wait()

    asyncio.run(scenario())
    output = renderer.save(tmp_path / "maps" / "debrief.html")
    assert output.exists()
    html = output.read_text(encoding="utf-8")
    assert "leaflet" in html.lower()
    assert "Camera path" in html
