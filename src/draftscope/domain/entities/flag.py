"""Flag entity -- integrity-analysis annotation tied to a point in time and text ranges."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class FlagKind(str, Enum):
    AI_GENERATED = "ai_detected"
    PLAGIARISM = "plagiarism"
    OTHER = "other"

    @classmethod
    def from_wire(cls, flag_type: str) -> "FlagKind":
        if flag_type == cls.AI_GENERATED.value:
            return cls.AI_GENERATED
        if flag_type == cls.PLAGIARISM.value:
            return cls.PLAGIARISM
        return cls.OTHER


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FlagStatus(str, Enum):
    UNREVIEWED = "unreviewed"
    FALSE_POSITIVE = "false_positive"
    NEEDS_FOLLOWUP = "needs_followup"


@dataclass(frozen=True)
class HighlightRange:
    """Character offsets ``[start, end)`` into the flag's own analyzed text."""

    start: int
    end: int
    label: str = ""
    color: str = ""

    def fits(self, text_length: int) -> bool:
        return 0 <= self.start <= self.end <= text_length


@dataclass(frozen=True)
class Flag:
    id: str
    timestamp: datetime
    kind: FlagKind
    severity: Severity = Severity.LOW
    highlight_ranges: tuple[HighlightRange, ...] = ()
    status: FlagStatus = FlagStatus.UNREVIEWED
    flag_type: str = ""
    evidence: dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    def with_status(self, status: FlagStatus) -> "Flag":
        """Return a copy carrying the reviewer's decision; nothing else changes."""
        return replace(self, status=status)

    @property
    def label(self) -> str:
        if self.kind is FlagKind.AI_GENERATED:
            return "AI Generated"
        if self.kind is FlagKind.PLAGIARISM:
            return "Plagiarism"
        return (self.flag_type or "flagged").replace("_", " ")


@dataclass(frozen=True)
class CorrelatedFlag:
    flag: Flag
    timeline_index: int


# ---------------------------------------------------------------------------
# Highlight colours per kind
# ---------------------------------------------------------------------------

AI_HIGHLIGHT_COLOR = "#7c3aed33"
PLAGIARISM_IDENTICAL_COLOR = "#ef444433"
PLAGIARISM_PARAPHRASE_COLOR = "#f9731633"


def highlight_ranges_from_evidence(kind: FlagKind, evidence: Optional[dict[str, Any]]) -> tuple[HighlightRange, ...]:
    """Build highlight ranges from a flag's ``evidence.highlighted_ranges``."""
    raw = (evidence or {}).get("highlighted_ranges") or []
    if not isinstance(raw, list):
        return ()
    ranges: list[HighlightRange] = []
    for r in raw:
        try:
            start, end = int(r["start"]), int(r["end"])
        except (KeyError, TypeError, ValueError):
            continue
        if kind is FlagKind.AI_GENERATED:
            try:
                score = float(r.get("score") or 0)
            except (TypeError, ValueError):
                score = 0.0
            if not math.isfinite(score):
                score = 0.0
            ranges.append(HighlightRange(
                start=start, end=end,
                label=f"AI confidence: {round(score * 100)}%",
                color=AI_HIGHLIGHT_COLOR,
            ))
        elif kind is FlagKind.PLAGIARISM:
            match_type = r.get("match_type") or "match"
            source = r.get("source_title") or r.get("source_url") or "unknown source"
            color = PLAGIARISM_IDENTICAL_COLOR if match_type == "identical" else PLAGIARISM_PARAPHRASE_COLOR
            ranges.append(HighlightRange(start=start, end=end, label=f"{match_type}: {source}", color=color))
    return tuple(ranges)
