"""
Timeline Index
Merges keyframe and diff records into one strictly ordered timeline.

Entries are sorted by sequence number with keyframes ahead of diffs on a tie,
then deduplicated by sequence number keeping the first entry after the sort.
The index is immutable once built; a refresh builds a new one and the caller
decides whether to swap it in.
"""

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Optional, Sequence, Union

import structlog

from ...domain.entities import Diff, EntryKind, Keyframe, TimelineEntry

logger = structlog.get_logger(__name__)

Record = Union[Keyframe, Diff]


def _entry_for(record: Record) -> TimelineEntry:
    kind = EntryKind.KEYFRAME if isinstance(record, Keyframe) else EntryKind.DIFF
    return TimelineEntry(
        sequence_number=record.sequence_number,
        captured_at=record.captured_at,
        kind=kind,
    )


def _merge(keyframes: Iterable[Keyframe], diffs: Iterable[Diff]) -> list[tuple[TimelineEntry, Record]]:
    tagged = [(_entry_for(r), r) for r in keyframes]
    tagged.extend((_entry_for(r), r) for r in diffs)
    # sort is stable, so equal keys keep their input order
    tagged.sort(key=lambda pair: (pair[0].sequence_number, pair[0].kind.sort_rank))

    merged: list[tuple[TimelineEntry, Record]] = []
    last_seq: Optional[int] = None
    for entry, record in tagged:
        if entry.sequence_number == last_seq:
            continue
        merged.append((entry, record))
        last_seq = entry.sequence_number
    return merged


def build(keyframes: Iterable[Keyframe], diffs: Iterable[Diff]) -> list[TimelineEntry]:
    """Return the merged, deduplicated timeline for ``keyframes`` and ``diffs``."""
    return [entry for entry, _ in _merge(keyframes, diffs)]


@dataclass(frozen=True)
class TimelineIndex:
    """Ordered timeline plus lookup tables of the records that survived the merge."""

    entries: tuple[TimelineEntry, ...] = ()
    keyframes_by_seq: Mapping[int, Keyframe] = field(default_factory=dict)
    diffs_by_seq: Mapping[int, Diff] = field(default_factory=dict)

    @classmethod
    def build(cls, keyframes: Sequence[Keyframe], diffs: Sequence[Diff]) -> "TimelineIndex":
        merged = _merge(keyframes, diffs)
        keyframes_by_seq: dict[int, Keyframe] = {}
        diffs_by_seq: dict[int, Diff] = {}
        for entry, record in merged:
            if entry.kind is EntryKind.KEYFRAME:
                keyframes_by_seq[entry.sequence_number] = record  # type: ignore[assignment]
            else:
                diffs_by_seq[entry.sequence_number] = record  # type: ignore[assignment]

        dropped = len(keyframes) + len(diffs) - len(merged)
        if dropped:
            logger.debug("timeline_duplicates_dropped", dropped=dropped)
        return cls(
            entries=tuple(entry for entry, _ in merged),
            keyframes_by_seq=keyframes_by_seq,
            diffs_by_seq=diffs_by_seq,
        )

    # ------------------------------------------
    # Sequence-like access
    # ------------------------------------------

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[TimelineEntry]:
        return iter(self.entries)

    def __getitem__(self, index: int) -> TimelineEntry:
        return self.entries[index]

    @property
    def last_index(self) -> int:
        """Index of the newest entry; ``-1`` for an empty timeline."""
        return len(self.entries) - 1

    @property
    def keyframe_count(self) -> int:
        return len(self.keyframes_by_seq)

    @property
    def diff_count(self) -> int:
        return len(self.diffs_by_seq)

    def sequence_at(self, index: int) -> Optional[int]:
        if 0 <= index < len(self.entries):
            return self.entries[index].sequence_number
        return None

    def index_at_or_before(self, sequence_number: int) -> int:
        """Index of the last entry with ``sequence_number <=`` the argument, or -1."""
        seqs = [e.sequence_number for e in self.entries]
        return bisect_right(seqs, sequence_number) - 1
