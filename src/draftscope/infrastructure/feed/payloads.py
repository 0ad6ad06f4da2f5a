"""Wire models for the upstream replay store and their normalization to entities.

The replay endpoint sometimes answers with the JSON object itself and
sometimes with that object encoded as a JSON string. Both forms are carried as
a :data:`RawReplayPayload` and go through :func:`normalize_replay_payload`,
the only place that looks at the difference.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ...domain.entities import (
    ContentType,
    Diff,
    Flag,
    FlagKind,
    FlagStatus,
    Keyframe,
    Severity,
    highlight_ranges_from_evidence,
)
from ...domain.exceptions import FetchFailure

logger = structlog.get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Wire models
# ---------------------------------------------------------------------------


class KeyframeModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sequence_number: int = Field(..., ge=0)
    captured_at: datetime
    compressed_payload: str = Field(
        ..., validation_alias=AliasChoices("compressed_payload", "compressed_content")
    )
    content_type: Literal["text", "docs_json"] = "text"

    @field_validator("captured_at")
    @classmethod
    def captured_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_entity(self) -> Keyframe:
        return Keyframe(
            sequence_number=self.sequence_number,
            captured_at=self.captured_at,
            compressed_payload=self.compressed_payload,
            content_type=ContentType(self.content_type),
        )


class DiffModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sequence_number: int = Field(..., ge=0)
    captured_at: datetime
    compressed_delta: str = Field(..., validation_alias=AliasChoices("compressed_delta", "delta"))
    base_sequence: int = Field(
        ..., ge=0, validation_alias=AliasChoices("base_sequence", "keyframe_sequence")
    )

    @field_validator("captured_at")
    @classmethod
    def captured_at_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def base_precedes_diff(self) -> "DiffModel":
        if self.sequence_number <= self.base_sequence:
            raise ValueError(
                f"diff seq={self.sequence_number} must be greater than base_sequence={self.base_sequence}"
            )
        return self

    def to_entity(self) -> Diff:
        return Diff(
            sequence_number=self.sequence_number,
            captured_at=self.captured_at,
            compressed_delta=self.compressed_delta,
            base_sequence=self.base_sequence,
        )


class ReplayPayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    file_name: str = ""
    file_id: Optional[Union[int, str]] = None
    project_id: Optional[Union[int, str]] = None
    snapshot_count: int = 0
    keyframe_count: int = 0
    # records are validated one by one in normalize_replay_payload
    keyframes: list[Any] = Field(default_factory=list)
    diffs: list[Any] = Field(default_factory=list)


class FlagModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id", "flag_id"))
    flag_type: str = "other"
    severity: str = "low"
    timestamp: datetime
    evidence: dict[str, Any] = Field(default_factory=dict)
    teacher_status: str = "unreviewed"

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    def to_entity(self) -> Flag:
        kind = FlagKind.from_wire(self.flag_type)
        try:
            severity = Severity(self.severity)
        except ValueError:
            severity = Severity.LOW
        try:
            status = FlagStatus(self.teacher_status)
        except ValueError:
            status = FlagStatus.UNREVIEWED
        return Flag(
            id=self.id,
            timestamp=self.timestamp,
            kind=kind,
            severity=severity,
            highlight_ranges=highlight_ranges_from_evidence(kind, self.evidence),
            status=status,
            flag_type=self.flag_type,
            evidence=self.evidence,
        )


class SessionSummary(BaseModel):
    """One recorded work session, for session selection."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    session_id: str = Field(..., validation_alias=AliasChoices("session_id", "id"))
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration_seconds: Optional[float] = None

    @field_validator("session_id", mode="before")
    @classmethod
    def stringify_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


# ---------------------------------------------------------------------------
# Raw payload variant
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StructuredPayload:
    data: dict[str, Any]


@dataclass(frozen=True)
class EncodedPayload:
    text: str


RawReplayPayload = Union[StructuredPayload, EncodedPayload]


@dataclass(frozen=True)
class ReplayFeed:
    """Typed replay payload: metadata plus keyframes and diffs."""

    file_name: str = ""
    file_id: Optional[str] = None
    project_id: Optional[str] = None
    snapshot_count: int = 0
    keyframe_count: int = 0
    keyframes: tuple[Keyframe, ...] = ()
    diffs: tuple[Diff, ...] = ()

    @property
    def total_entries(self) -> int:
        return len(self.keyframes) + len(self.diffs)


def raw_payload_from_body(body: Any) -> RawReplayPayload:
    """Tag a decoded response body as structured or encoded."""
    if isinstance(body, dict):
        return StructuredPayload(body)
    if isinstance(body, str):
        return EncodedPayload(body)
    raise FetchFailure(f"Invalid replay data format: {type(body).__name__}")


def _validate_records(model: type[BaseModel], raw_records: list[Any], kind: str) -> list[Any]:
    """Validate records one at a time; an invalid record is dropped, not the feed."""
    records: list[Any] = []
    for position, raw in enumerate(raw_records):
        try:
            records.append(model.model_validate(raw))
        except ValidationError as exc:
            sequence_number = raw.get("sequence_number") if isinstance(raw, dict) else None
            logger.warning(
                "record_dropped",
                kind=kind,
                position=position,
                sequence_number=sequence_number,
                errors=exc.error_count(),
            )
    return records


def normalize_replay_payload(raw: RawReplayPayload) -> ReplayFeed:
    """Turn either payload form into a :class:`ReplayFeed`.

    Raises:
        FetchFailure: The payload is not valid replay data.
    """
    if isinstance(raw, EncodedPayload):
        try:
            data = json.loads(raw.text)
        except json.JSONDecodeError as exc:
            raise FetchFailure(f"Invalid replay data format: {exc}") from exc
        if not isinstance(data, dict):
            raise FetchFailure("Invalid replay data format: encoded payload is not an object")
    else:
        data = raw.data

    try:
        model = ReplayPayloadModel.model_validate(data)
    except ValidationError as exc:
        raise FetchFailure(f"Invalid replay data: {exc.error_count()} validation error(s)") from exc

    keyframes = _validate_records(KeyframeModel, model.keyframes, "keyframe")
    diffs = _validate_records(DiffModel, model.diffs, "diff")
    return ReplayFeed(
        file_name=model.file_name,
        file_id=None if model.file_id is None else str(model.file_id),
        project_id=None if model.project_id is None else str(model.project_id),
        snapshot_count=model.snapshot_count or len(keyframes) + len(diffs),
        keyframe_count=model.keyframe_count or len(keyframes),
        keyframes=tuple(k.to_entity() for k in keyframes),
        diffs=tuple(d.to_entity() for d in diffs),
    )


def normalize_flags(body: Any) -> list[Flag]:
    """Parse a flag list; malformed flags are skipped one by one."""
    if not isinstance(body, list):
        return []
    flags: list[Flag] = []
    for raw in body:
        try:
            flags.append(FlagModel.model_validate(raw).to_entity())
        except ValidationError as exc:
            logger.warning("flag_dropped", errors=exc.error_count())
        except (TypeError, ValueError) as exc:
            logger.warning("flag_dropped", error=str(exc))
    return flags
