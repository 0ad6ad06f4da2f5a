"""Flag Correlator -- flag-to-timeline mapping and highlight resolution."""
from .engine import (
    TextSegment,
    correlate,
    flags_at,
    percent_position,
    resolve_highlights,
    segment_text,
)

__all__ = [
    "TextSegment",
    "correlate",
    "flags_at",
    "percent_position",
    "resolve_highlights",
    "segment_text",
]
