"""General utility helpers shared across modules."""

from __future__ import annotations

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any


def format_travel_time(seconds: float) -> str:
    """Format seconds into a short ``Xh Ym`` string."""

    if seconds < 60:
        return "< 1 min"
    hours, remainder = divmod(int(seconds), 3600)
    mins = int(round(remainder / 60))
    if mins == 60:
        hours, mins = hours + 1, 0
    if hours == 0:
        return f"{mins} min"
    if mins == 0:
        return f"{hours}h"
    return f"{hours}h {mins}m"


def format_distance(km: float) -> str:
    return f"{km:.1f} km"


def parse_date(value: Any) -> date | None:
    """Accept ``date``/``datetime``/ISO strings; empty values mean no date."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return datetime.fromisoformat(text).date()


def to_sort_instant(value: date | datetime) -> datetime:
    """Return a naive UTC datetime so dates and datetimes compare cleanly."""

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    return datetime(value.year, value.month, value.day)


def _normalise_value(value: Any) -> Any:
    """Convert enums and nested containers to JSON-friendly values."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_normalise_value(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _normalise_value(val) for key, val in value.items()}
    return value


def json_dumps_sorted(value: Any) -> str:
    """Return canonical JSON for hashing / comparisons."""

    normalised = _normalise_value(value)
    return json.dumps(normalised, sort_keys=True, separators=(",", ":"))
