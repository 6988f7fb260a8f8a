"""Service layer orchestrating directions fetching."""

from .directions_service import (
    AbortToken,
    DirectionsFetcher,
    chunk_coordinates,
    stitch_chunks,
)

__all__ = [
    "AbortToken",
    "DirectionsFetcher",
    "chunk_coordinates",
    "stitch_chunks",
]
