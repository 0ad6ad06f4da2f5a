"""Keyframe and Diff entities -- the raw capture records of a monitored document."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class ContentType(str, Enum):
    PLAIN_TEXT = "text"
    STRUCTURED_DOCUMENT = "docs_json"


@dataclass(frozen=True)
class Keyframe:
    """A complete, self-sufficient snapshot of document state."""

    sequence_number: int
    captured_at: datetime
    compressed_payload: bytes | str
    content_type: ContentType = ContentType.PLAIN_TEXT


@dataclass(frozen=True)
class Diff:
    """An incremental change that must be applied on top of ``base_sequence``."""

    sequence_number: int
    captured_at: datetime
    compressed_delta: bytes | str
    base_sequence: int

    def __post_init__(self) -> None:
        if self.sequence_number <= self.base_sequence:
            raise ValueError(
                f"Diff seq={self.sequence_number} must be greater than "
                f"its base_sequence={self.base_sequence}"
            )
