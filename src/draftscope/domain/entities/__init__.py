"""Replay domain entities."""
from .content import ChangeSet, ReconstructedContent, ReconstructionWarning, TextChange
from .flag import (
    CorrelatedFlag,
    Flag,
    FlagKind,
    FlagStatus,
    HighlightRange,
    Severity,
    highlight_ranges_from_evidence,
)
from .playback import PlaybackState, PlaybackStatus
from .snapshot import ContentType, Diff, Keyframe
from .timeline import EntryKind, TimelineEntry

__all__ = [
    "ChangeSet",
    "ContentType",
    "CorrelatedFlag",
    "Diff",
    "EntryKind",
    "Flag",
    "FlagKind",
    "FlagStatus",
    "HighlightRange",
    "Keyframe",
    "PlaybackState",
    "PlaybackStatus",
    "ReconstructedContent",
    "ReconstructionWarning",
    "Severity",
    "TextChange",
    "TimelineEntry",
    "highlight_ranges_from_evidence",
]
