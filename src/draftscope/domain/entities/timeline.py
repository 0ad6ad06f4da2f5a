"""TimelineEntry -- lightweight ordering record derived from keyframes and diffs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class EntryKind(str, Enum):
    KEYFRAME = "keyframe"
    DIFF = "diff"

    @property
    def sort_rank(self) -> int:
        # Keyframe wins a sequence-number tie.
        return 0 if self is EntryKind.KEYFRAME else 1


@dataclass(frozen=True)
class TimelineEntry:
    sequence_number: int
    captured_at: datetime
    kind: EntryKind

    @property
    def is_keyframe(self) -> bool:
        return self.kind is EntryKind.KEYFRAME
