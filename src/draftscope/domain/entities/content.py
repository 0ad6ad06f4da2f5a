"""Reconstruction output value objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from .snapshot import ContentType


@dataclass(frozen=True)
class ReconstructionWarning:
    """Non-fatal note that a reconstruction may not match what was captured."""

    sequence_number: int
    reason: str  # "base_mismatch" | "corrupt_diff" | "corrupt_keyframe"
    expected_base: Optional[int] = None
    actual_base: Optional[int] = None


@dataclass(frozen=True)
class ReconstructedContent:
    """Document content as of one sequence number."""

    text: str = ""
    content_type: ContentType = ContentType.PLAIN_TEXT
    document: Optional[dict[str, Any]] = field(default=None, compare=False)
    sequence_number: Optional[int] = None
    warnings: tuple[ReconstructionWarning, ...] = ()

    @classmethod
    def empty(cls) -> "ReconstructedContent":
        return cls()

    @property
    def possibly_incomplete(self) -> bool:
        return bool(self.warnings)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def char_count(self) -> int:
        return len(self.text)


@dataclass(frozen=True)
class TextChange:
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class ChangeSet:
    """What one step added and removed, as offsets into the new and old text."""

    added: tuple[TextChange, ...] = ()
    removed: tuple[TextChange, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.added and not self.removed
