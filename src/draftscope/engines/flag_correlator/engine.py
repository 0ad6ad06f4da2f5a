"""
Flag Correlator
Places integrity flags on the timeline and resolves their highlight ranges.

Flags come from an asynchronous analysis pass and carry no sequence number,
so they are matched to the timeline entry nearest in wall-clock time (first
minimum wins on a tie).

Highlight offsets refer to the text the flag was computed against. They are
only shown when the displayed position is the flag's correlated position and
are never re-mapped across diffs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from ...domain.entities import CorrelatedFlag, Flag, HighlightRange, TimelineEntry


def correlate(flags: Sequence[Flag], timeline: Sequence[TimelineEntry]) -> list[CorrelatedFlag]:
    """Map every flag to the index of the timeline entry closest to its timestamp."""
    if not timeline:
        return []

    correlated: list[CorrelatedFlag] = []
    for flag in flags:
        closest_idx = 0
        closest_dist: Optional[float] = None
        for idx, entry in enumerate(timeline):
            dist = abs((entry.captured_at - flag.timestamp).total_seconds())
            if closest_dist is None or dist < closest_dist:
                closest_dist = dist
                closest_idx = idx
        correlated.append(CorrelatedFlag(flag=flag, timeline_index=closest_idx))
    return correlated


def flags_at(correlated: Sequence[CorrelatedFlag], position: int) -> list[Flag]:
    return [c.flag for c in correlated if c.timeline_index == position]


def percent_position(index: int, length: int) -> float:
    """Marker position along a timeline of ``length`` entries, 0-100."""
    if length <= 1:
        return 50.0
    return index / (length - 1) * 100.0


# ============================================
# HIGHLIGHT RESOLUTION
# ============================================

def resolve_highlights(
    flag: Flag,
    correlated_index: int,
    displayed_index: int,
    text: str,
) -> list[HighlightRange]:
    """Highlight ranges to draw over ``text``, or none when positions differ.

    Ranges that do not fit inside ``text`` are left out.
    """
    if correlated_index != displayed_index:
        return []
    return [r for r in flag.highlight_ranges if r.fits(len(text))]


@dataclass(frozen=True)
class TextSegment:
    start: int
    end: int
    text: str
    highlight: Optional[HighlightRange] = None


def segment_text(text: str, ranges: Sequence[HighlightRange]) -> list[TextSegment]:
    """Split ``text`` at every in-bounds range boundary.

    Each segment carries the first range that fully covers it, if any.
    """
    if not ranges:
        return [TextSegment(0, len(text), text)] if text else []

    points = {0, len(text)}
    for r in ranges:
        if 0 <= r.start <= len(text):
            points.add(r.start)
        if 0 <= r.end <= len(text):
            points.add(r.end)
    ordered = sorted(points)

    segments: list[TextSegment] = []
    for start, end in zip(ordered, ordered[1:]):
        if start == end:
            continue
        covering = next((r for r in ranges if r.start <= start and r.end >= end), None)
        segments.append(TextSegment(start, end, text[start:end], covering))
    return segments
