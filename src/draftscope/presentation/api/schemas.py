"""Request/response schemas for the replay API."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from ...domain.entities import (
    CorrelatedFlag,
    HighlightRange,
    PlaybackState,
    ReconstructedContent,
    TimelineEntry,
)
from ...engines.flag_correlator import percent_position


class SeekRequest(BaseModel):
    index: int = Field(..., description="Timeline index; clamped to the known range.")


class StepRequest(BaseModel):
    delta: int = Field(..., description="Entries to move; negative moves back.")


class SpeedRequest(BaseModel):
    factor: float = Field(..., description="Playback speed multiplier, e.g. 0.5, 1, 2, 4.")


class PlaybackStateResponse(BaseModel):
    position: int
    is_playing: bool
    speed: float
    length: int
    sequence_number: Optional[int] = None
    captured_at: Optional[datetime] = None
    kind: Optional[str] = None
    percent: float = 0.0

    @classmethod
    def build(cls, state: PlaybackState, length: int, entry: TimelineEntry | None) -> "PlaybackStateResponse":
        return cls(
            position=state.position,
            is_playing=state.is_playing,
            speed=state.speed,
            length=length,
            sequence_number=entry.sequence_number if entry else None,
            captured_at=entry.captured_at if entry else None,
            kind=entry.kind.value if entry else None,
            percent=percent_position(state.position, length) if length else 0.0,
        )


class WarningResponse(BaseModel):
    sequence_number: int
    reason: str
    expected_base: Optional[int] = None
    actual_base: Optional[int] = None


class ContentResponse(BaseModel):
    text: str
    content_type: str
    sequence_number: Optional[int] = None
    word_count: int
    char_count: int
    possibly_incomplete: bool
    warnings: list[WarningResponse] = Field(default_factory=list)

    @classmethod
    def build(cls, content: ReconstructedContent) -> "ContentResponse":
        return cls(
            text=content.text,
            content_type=content.content_type.value,
            sequence_number=content.sequence_number,
            word_count=content.word_count,
            char_count=content.char_count,
            possibly_incomplete=content.possibly_incomplete,
            warnings=[
                WarningResponse(
                    sequence_number=w.sequence_number,
                    reason=w.reason,
                    expected_base=w.expected_base,
                    actual_base=w.actual_base,
                )
                for w in content.warnings
            ],
        )


class FlagResponse(BaseModel):
    id: str
    kind: str
    flag_type: str
    label: str
    severity: str
    status: str
    timestamp: datetime
    timeline_index: int
    percent: float

    @classmethod
    def build(cls, item: CorrelatedFlag, length: int) -> "FlagResponse":
        flag = item.flag
        return cls(
            id=flag.id,
            kind=flag.kind.value,
            flag_type=flag.flag_type,
            label=flag.label,
            severity=flag.severity.value,
            status=flag.status.value,
            timestamp=flag.timestamp,
            timeline_index=item.timeline_index,
            percent=percent_position(item.timeline_index, length),
        )


class HighlightResponse(BaseModel):
    start: int
    end: int
    label: str
    color: str

    @classmethod
    def build(cls, r: HighlightRange) -> "HighlightResponse":
        return cls(start=r.start, end=r.end, label=r.label, color=r.color)


class HighlightsResponse(BaseModel):
    flag_id: str
    suppressed: bool
    ranges: list[HighlightResponse] = Field(default_factory=list)


class ControlsResponse(BaseModel):
    speed_presets: list[float]
    step_size: int


class RefreshResponse(BaseModel):
    swapped: bool
    entries: int
