"""Command line entry point: plan a route or replay a debrief tour."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import ExpeditionFormatError, InvalidCoordinateError
from .expedition_io import Expedition, read_expedition
from .models import TravelMode
from .planner import ExpeditionPlanner
from .replay import FoliumRenderer, Marker, ReplayEngine, replay_route
from .utils import format_distance, format_travel_time

_MODES = [mode.value for mode in TravelMode]


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="expedition-route",
        description="Plan expedition routes and replay debrief tours.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    plan = sub.add_parser("plan", help="Compute leg distances and travel times")
    plan.add_argument("expedition", type=Path, help="Expedition JSON file")
    plan.add_argument("--mode", choices=_MODES, help="Override the travel mode")
    plan.add_argument(
        "--round-trip",
        action="store_true",
        default=None,
        help="Close the route back to the first waypoint",
    )
    plan.add_argument("--map", type=Path, help="Optional output HTML map path")

    debrief = sub.add_parser("debrief", help="Replay the chronological tour")
    debrief.add_argument("expedition", type=Path, help="Expedition JSON file")
    debrief.add_argument(
        "--mode",
        choices=_MODES,
        help="Fetch a routed path when the file has no saved route geometry",
    )
    debrief.add_argument("--map", type=Path, help="Optional output HTML map path")
    return parser


async def _plan_route(
    expedition: Expedition, mode: TravelMode, round_trip: bool
) -> ExpeditionPlanner:
    planner = ExpeditionPlanner(mode=mode)
    planner.load(expedition.waypoints, mode=mode, round_trip=round_trip)
    await planner.fetcher.wait()
    return planner


def _markers(planner: ExpeditionPlanner, expedition: Expedition) -> List[Marker]:
    markers = [
        Marker(id=w.id, coordinate=w.coordinate, kind="waypoint", title=w.label)
        for w in planner.waypoints
    ]
    markers.extend(
        Marker(id=e.id, coordinate=e.coordinate, kind="entry", title=e.title)
        for e in expedition.entries
    )
    return markers


def _print_plan(planner: ExpeditionPlanner) -> None:
    for waypoint in planner.waypoints:
        line = (
            f"{waypoint.sequence + 1:>3}. {waypoint.label:<30} "
            f"{format_distance(waypoint.distance_from_previous):>10} "
            f"(total {format_distance(waypoint.cumulative_distance)})"
        )
        if waypoint.travel_time_from_previous:
            line += f" {format_travel_time(waypoint.travel_time_from_previous)}"
        print(line)
    summary = planner.summary()
    total = f"Total: {summary['distance']}"
    if summary["travel_time"]:
        total += f", {summary['travel_time']}"
    print(f"{total} ({summary['mode']}{', round trip' if summary['round_trip'] else ''})")
    for warning in summary["warnings"]:
        print(f"Warning: {warning}")
    if summary["error"]:
        print(f"Using straight lines: {summary['error']}")


async def _run_plan(args: argparse.Namespace, expedition: Expedition) -> int:
    mode = TravelMode(args.mode) if args.mode else expedition.mode
    round_trip = expedition.round_trip if args.round_trip is None else args.round_trip
    planner = await _plan_route(expedition, mode, round_trip)
    _print_plan(planner)
    if args.map:
        renderer = FoliumRenderer(
            _markers(planner, expedition), route=planner.route_geometry()
        )
        renderer.save(args.map)
    return 0


async def _run_debrief(args: argparse.Namespace, expedition: Expedition) -> int:
    mode = TravelMode(args.mode) if args.mode else TravelMode.STRAIGHT
    if expedition.route_geometry:
        mode = TravelMode.STRAIGHT
    planner = await _plan_route(expedition, mode, expedition.round_trip)
    saved = expedition.route_geometry
    if saved is None and planner.fetcher.result is not None:
        saved = planner.fetcher.result.polyline
    route = replay_route(
        saved,
        planner.waypoints,
        expedition.entries,
        round_trip=planner.round_trip,
    )

    tour = planner.build_tour(expedition.entries)
    if not tour.can_replay:
        logging.error("A debrief needs at least two stops with coordinates")
        return 1

    renderer = FoliumRenderer(_markers(planner, expedition), route=route)
    engine = ReplayEngine(renderer)
    engine.load(tour, route)
    engine.enter()
    await engine.wait()
    while True:
        stop = engine.tour.stops[engine.state.index]
        keyframes = len(engine.state.chain.frames) if engine.state.chain else 0
        logging.info(
            "Stop %d/%d: %s (%s, %d keyframes)",
            engine.state.index + 1,
            len(tour),
            stop.title,
            stop.date.isoformat() if stop.date else "undated",
            keyframes,
        )
        if engine.next() is None:
            break
        await engine.wait()
    await engine.exit()
    logging.info("Replay finished with %d camera moves", len(renderer.frames))
    if args.map:
        renderer.save(args.map)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """CLI entry point used via ``python -m expedition_route``."""

    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        expedition = read_expedition(args.expedition)
    except ExpeditionFormatError as exc:
        logging.error("Failed to load expedition '%s': %s", args.expedition, exc)
        return 1

    runner = _run_plan if args.command == "plan" else _run_debrief
    try:
        return asyncio.run(runner(args, expedition))
    except InvalidCoordinateError as exc:
        logging.error("Invalid waypoint in '%s': %s", args.expedition, exc)
        return 1


__all__ = ["main"]
