"""Concurrency cap and throttle window shared by directions requests."""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Mapping, Optional

from ..config import (
    RATE_LIMIT_JITTER_RANGE,
    RATE_LIMIT_MAX_CONCURRENT,
    RATE_LIMIT_NEAR_LIMIT_BUFFER,
    RATE_LIMIT_THROTTLE_SECONDS,
)

__all__ = ["RateLimiter"]

LOGGER = logging.getLogger(__name__)

# Mapbox reports the per-minute budget with these headers; Reset is epoch seconds.
REMAINING_HEADER = "X-Rate-Limit-Remaining"
LIMIT_HEADER = "X-Rate-Limit-Limit"
RESET_HEADER = "X-Rate-Limit-Reset"


def _header_number(headers: Mapping[str, object], name: str) -> Optional[float]:
    raw = headers.get(name)
    if raw is None:
        return None
    try:
        return float(str(raw))
    except ValueError:
        LOGGER.debug("Ignoring unparseable %s header: %r", name, raw)
        return None


class RateLimiter:
    """Blocks callers past ``max_concurrent`` and while a throttle window is open.

    Directions requests run on worker threads via ``asyncio.to_thread``, so
    the limiter synchronises with a ``threading.Condition``.
    """

    def __init__(
        self,
        max_concurrent: int = RATE_LIMIT_MAX_CONCURRENT,
        jitter_range: tuple[float, float] = RATE_LIMIT_JITTER_RANGE,
        throttle_seconds: float = RATE_LIMIT_THROTTLE_SECONDS,
        near_limit_buffer: int = RATE_LIMIT_NEAR_LIMIT_BUFFER,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        self._cond = threading.Condition()
        self._capacity = max_concurrent
        self._active = 0
        self._paused_until = 0.0
        self._jitter_range = jitter_range
        self._throttle_seconds = throttle_seconds
        self._buffer = near_limit_buffer

    def resize(self, new_max: int) -> None:
        if new_max < 1:
            raise ValueError("new_max must be >= 1")
        with self._cond:
            previous, self._capacity = self._capacity, new_max
            self._cond.notify_all()
        LOGGER.info("Directions concurrency changed %s -> %s", previous, new_max)

    def before_request(self) -> None:
        with self._cond:
            self._cond.wait_for(lambda: self._active < self._capacity)
            self._active += 1
            pause = self._paused_until - time.time()
        if pause > 0:
            LOGGER.debug("Directions throttle active; waiting %.1fs", pause)
            time.sleep(pause)
        lo, hi = self._jitter_range
        if hi > 0:
            time.sleep(random.uniform(lo, hi))  # nosec B311

    def after_response(
        self, headers: Mapping[str, object] | None, status_code: int | None
    ) -> None:
        pause_until = self._pause_deadline(headers or {}, status_code)
        with self._cond:
            if pause_until is not None:
                self._paused_until = max(self._paused_until, pause_until)
            self._active = max(0, self._active - 1)
            self._cond.notify()

    def _pause_deadline(
        self, headers: Mapping[str, object], status_code: int | None
    ) -> Optional[float]:
        now = time.time()
        fallback = now + self._throttle_seconds
        if status_code == 429:
            LOGGER.warning(
                "Directions service returned 429; pausing requests %ss",
                self._throttle_seconds,
            )
            return fallback
        remaining = _header_number(headers, REMAINING_HEADER)
        if remaining is None or remaining > self._buffer:
            return None
        reset = _header_number(headers, RESET_HEADER)
        deadline = reset if reset is not None and reset > now else fallback
        LOGGER.info(
            "Directions budget nearly spent (%d of %s left); pausing %.1fs",
            int(remaining),
            headers.get(LIMIT_HEADER, "?"),
            deadline - now,
        )
        return deadline

    def snapshot(self) -> dict[str, float | int]:
        """Current limiter state for diagnostics."""

        with self._cond:
            return {
                "max_allowed": self._capacity,
                "in_flight": self._active,
                "throttle_until": self._paused_until,
            }
