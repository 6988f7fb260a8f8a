"""Shared HTTP response helpers for directions service interactions."""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

import requests

from ..config import SNAP_WARNING_THRESHOLD_M
from ..errors import (
    DirectionsError,
    DirectionsErrorKind,
    DirectionsPermissionError,
    NoRouteError,
    NoSegmentError,
)
from ..models import TravelMode

__all__ = [
    "classify_response_status",
    "classify_payload",
    "describe_directions_error",
    "extract_error",
    "unreachable_indices",
    "TIMEOUT_MESSAGE",
]

TIMEOUT_MESSAGE = (
    "Route calculation timed out — try fewer waypoints or a different mode"
)

_NO_PATH_CODES = {
    "NoSegment": NoSegmentError,
    "NoRoute": NoRouteError,
}


def classify_response_status(
    response: requests.Response,
    context: str,
    *,
    attempt: int,
    backoff: float,
    can_retry: bool,
) -> Tuple[str, Optional[Exception]]:
    """Return action for a response status: ok, retry, or raise.

    4xx bodies carrying a routing code (``NoSegment``/``NoRoute``) are
    returned as ``ok`` so the payload classifier can name the waypoints.
    """

    status = response.status_code
    detail = extract_error(response)

    def with_detail(message: str) -> str:
        return f"{message} | {detail}" if detail else message

    if status == 429 and can_retry:
        logging.warning(
            "%s rate limited (429) attempt=%s; sleeping %.1fs",
            context,
            attempt,
            backoff,
        )
        return "retry", None

    if status in (401, 403):
        message = with_detail(f"{context} forbidden (check MAPBOX_ACCESS_TOKEN)")
        logging.warning(message)
        return "raise", DirectionsPermissionError(message)

    if 500 <= status < 600 and can_retry:
        message = with_detail(f"{context} server error {status}")
        logging.warning("%s; retrying in %.1fs", message, backoff)
        return "retry", None

    if 400 <= status < 500 and _payload_code(response) in _NO_PATH_CODES:
        return "ok", None

    if 400 <= status < 600:
        message = with_detail(f"{context} request failed (status {status})")
        logging.error(message)
        return "raise", DirectionsError(_payload_message(response) or message)

    return "ok", None


def unreachable_indices(
    waypoints: Optional[Sequence[Any]],
    threshold_m: float = SNAP_WARNING_THRESHOLD_M,
) -> List[int]:
    """Positions of snapped waypoints that are missing or snapped too far."""

    if not waypoints:
        return []
    bad: List[int] = []
    for index, waypoint in enumerate(waypoints):
        if waypoint is None:
            bad.append(index)
            continue
        distance = waypoint.get("distance") if isinstance(waypoint, dict) else None
        if distance and float(distance) > threshold_m:
            bad.append(index)
    return bad


def classify_payload(
    data: Any,
    *,
    threshold_m: float = SNAP_WARNING_THRESHOLD_M,
) -> Optional[DirectionsError]:
    """Return the error for a non-``Ok`` payload, or None when routable."""

    if not isinstance(data, dict):
        return DirectionsError("Unexpected directions response")
    code = data.get("code")
    routes = data.get("routes") or []
    if code == "Ok" and routes:
        return None
    message = str(data.get("message") or "")
    error_cls = _NO_PATH_CODES.get(str(code))
    if error_cls is not None:
        return error_cls(
            message or str(code),
            indices=unreachable_indices(data.get("waypoints"), threshold_m),
        )
    return DirectionsError(message)


def describe_directions_error(
    kind: DirectionsErrorKind,
    service_message: str,
    mode: TravelMode,
    unreachable: Sequence[str] = (),
) -> str:
    """Build the user-facing message for a failed routing request."""

    mode_name = mode.display_name
    if kind in (DirectionsErrorKind.NO_SEGMENT, DirectionsErrorKind.NO_ROUTE):
        if unreachable:
            verb = "is" if len(unreachable) == 1 else "are"
            return (
                f"No {mode_name} route found — {', '.join(unreachable)} {verb} "
                f"not reachable (may be in water or far from any {mode_name} path)"
            )
        if kind is DirectionsErrorKind.NO_SEGMENT:
            return (
                f"One or more waypoints could not be matched to a {mode_name} "
                f"path — they may be in water, on private land, or in an area "
                f"without {mode_name} infrastructure"
            )
        return (
            f"No {mode_name} route exists between these waypoints — they may be "
            f"separated by water, borders, or terrain without {mode_name} access"
        )
    if kind is DirectionsErrorKind.TIMEOUT:
        return TIMEOUT_MESSAGE
    return service_message or f"No {mode_name} route found between waypoints"


def extract_error(resp: Optional[requests.Response]) -> Optional[str]:
    """Return compact string with service error info (code + message) if present."""

    if resp is None:
        return None
    data = _safe_json(resp)
    if data is None:
        return _extract_error_text(resp)
    if not isinstance(data, dict):
        return None
    parts = [
        str(data[key]) for key in ("code", "message") if data.get(key) not in (None, "")
    ]
    return " | ".join(parts) if parts else None


def _payload_code(resp: requests.Response) -> Optional[str]:
    data = _safe_json(resp)
    if isinstance(data, dict) and data.get("code"):
        return str(data["code"])
    return None


def _payload_message(resp: requests.Response) -> Optional[str]:
    data = _safe_json(resp)
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return None


def _safe_json(resp: requests.Response) -> Optional[Any]:
    """Safely parse JSON; return None if parsing fails."""

    try:
        return resp.json()
    except ValueError as exc:
        logging.debug(
            "Failed to decode JSON from %s: %s", getattr(resp, "url", "?"), exc
        )
        return None


def _extract_error_text(resp: requests.Response) -> Optional[str]:
    text = getattr(resp, "text", None)
    if not text:
        return None
    snippet = str(text).strip()[:200]
    return snippet or None
