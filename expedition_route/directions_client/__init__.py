"""HTTP client for the routed directions service."""

from .client import DirectionsClient, decode_geometry, format_coordinates
from .rate_limiter import RateLimiter
from .response_handling import (
    TIMEOUT_MESSAGE,
    classify_payload,
    describe_directions_error,
)
from .session import create_default_session, get_default_session

__all__ = [
    "DirectionsClient",
    "RateLimiter",
    "TIMEOUT_MESSAGE",
    "classify_payload",
    "create_default_session",
    "decode_geometry",
    "describe_directions_error",
    "format_coordinates",
    "get_default_session",
]
