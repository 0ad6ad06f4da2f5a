"""
Reconstruction Engine
Point-in-time document reconstruction from keyframes and diffs.

Given a target sequence number the engine finds the nearest keyframe at or
before it, decodes it, and applies every diff in ``(keyframe, target]`` in
sequence order. Nothing is cached between calls; every call recomputes from
the records it is given, so the function is safe to call from any thread.

Failures are recovered per entry:

* a keyframe that fails to decode is skipped and the next older one is used;
* a diff that fails to decode is skipped;
* a diff whose ``base_sequence`` does not chain onto the running state is
  still applied, best effort.

Each of these adds a :class:`ReconstructionWarning` to the result instead of
failing the call.
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

import structlog

from ...domain.entities import (
    ChangeSet,
    ContentType,
    Diff,
    EntryKind,
    Keyframe,
    ReconstructedContent,
    ReconstructionWarning,
    TextChange,
    TimelineEntry,
)
from ...domain.exceptions import CorruptPayload
from ..codec import (
    DecodedPayload,
    DocumentDelta,
    OperationsDelta,
    UnifiedDelta,
    apply_operations,
    apply_unified_diff,
    decode,
    decode_delta,
    extract_text,
)
from ..timeline_index import TimelineIndex

logger = structlog.get_logger(__name__)


# ============================================
# INTERNAL HELPERS
# ============================================

def _newest_decodable_keyframe(
    timeline: Sequence[TimelineEntry],
    keyframes_by_seq: Mapping[int, Keyframe],
    target_sequence: int,
    warnings: list[ReconstructionWarning],
) -> tuple[Optional[Keyframe], Optional[DecodedPayload]]:
    for entry in reversed(timeline):
        if entry.sequence_number > target_sequence or entry.kind is not EntryKind.KEYFRAME:
            continue
        keyframe = keyframes_by_seq.get(entry.sequence_number)
        if keyframe is None:
            continue
        try:
            return keyframe, decode(keyframe.compressed_payload, keyframe.content_type, keyframe.sequence_number)
        except CorruptPayload as exc:
            logger.warning(
                "corrupt_keyframe_dropped",
                sequence_number=keyframe.sequence_number,
                reason=exc.reason,
            )
            warnings.append(ReconstructionWarning(
                sequence_number=keyframe.sequence_number,
                reason="corrupt_keyframe",
            ))
    return None, None


def _diffs_between(
    timeline: Sequence[TimelineEntry],
    diffs_by_seq: Mapping[int, Diff],
    after_sequence: int,
    through_sequence: int,
) -> list[Diff]:
    selected = [
        diffs_by_seq[e.sequence_number]
        for e in timeline
        if e.kind is EntryKind.DIFF
        and after_sequence < e.sequence_number <= through_sequence
        and e.sequence_number in diffs_by_seq
    ]
    selected.sort(key=lambda d: d.sequence_number)
    return selected


# ============================================
# PUBLIC API
# ============================================

def reconstruct(
    timeline: Sequence[TimelineEntry],
    keyframes_by_seq: Mapping[int, Keyframe],
    diffs_by_seq: Mapping[int, Diff],
    target_sequence: int,
) -> ReconstructedContent:
    """Materialize the document as of ``target_sequence``.

    A target before the first keyframe yields an empty document; a target past
    the newest entry yields the newest known state.
    """
    warnings: list[ReconstructionWarning] = []
    keyframe, base = _newest_decodable_keyframe(timeline, keyframes_by_seq, target_sequence, warnings)
    if keyframe is None or base is None:
        return ReconstructedContent(warnings=tuple(warnings))

    text = base.text
    document = base.document
    content_type = base.content_type
    last_applied = keyframe.sequence_number

    for diff in _diffs_between(timeline, diffs_by_seq, keyframe.sequence_number, target_sequence):
        try:
            delta = decode_delta(diff.compressed_delta, diff.sequence_number)
        except CorruptPayload as exc:
            logger.warning(
                "corrupt_diff_dropped",
                sequence_number=diff.sequence_number,
                reason=exc.reason,
            )
            warnings.append(ReconstructionWarning(sequence_number=diff.sequence_number, reason="corrupt_diff"))
            continue

        if diff.base_sequence != last_applied:
            logger.warning(
                "diff_chain_gap",
                sequence_number=diff.sequence_number,
                expected_base=last_applied,
                actual_base=diff.base_sequence,
            )
            warnings.append(ReconstructionWarning(
                sequence_number=diff.sequence_number,
                reason="base_mismatch",
                expected_base=last_applied,
                actual_base=diff.base_sequence,
            ))

        if isinstance(delta, DocumentDelta):
            document = delta.document
            text = extract_text(document)
            content_type = ContentType.STRUCTURED_DOCUMENT
        elif isinstance(delta, OperationsDelta):
            text = apply_operations(text, delta.operations)
            # the tree no longer matches the text once text ops are applied
            document = None
        elif isinstance(delta, UnifiedDelta):
            text = apply_unified_diff(text, delta.patch)
            document = None
        last_applied = diff.sequence_number

    return ReconstructedContent(
        text=text,
        content_type=content_type,
        document=document,
        sequence_number=last_applied,
        warnings=tuple(warnings),
    )


def reconstruct_index(index: TimelineIndex, target_sequence: int) -> ReconstructedContent:
    return reconstruct(index.entries, index.keyframes_by_seq, index.diffs_by_seq, target_sequence)


class ReconstructionCache:
    """Caller-side memo of reconstructions for one timeline, keyed by target sequence.

    Bound to a single :class:`TimelineIndex`; build a new cache when the
    timeline is swapped.
    """

    def __init__(self, index: TimelineIndex, max_entries: int = 256) -> None:
        self.index = index
        self.max_entries = max_entries
        self._results: dict[int, ReconstructedContent] = {}

    def get(self, target_sequence: int) -> ReconstructedContent:
        cached = self._results.get(target_sequence)
        if cached is not None:
            return cached
        result = reconstruct_index(self.index, target_sequence)
        if len(self._results) >= self.max_entries:
            # drop the oldest insertion
            self._results.pop(next(iter(self._results)))
        self._results[target_sequence] = result
        return result

    def __len__(self) -> int:
        return len(self._results)


def diff_texts(previous: str, current: str) -> ChangeSet:
    """Summarize what changed between two texts by trimming common prefix and suffix."""
    if previous == current:
        return ChangeSet()

    prefix = 0
    limit = min(len(previous), len(current))
    while prefix < limit and previous[prefix] == current[prefix]:
        prefix += 1

    prev_end, curr_end = len(previous), len(current)
    while prev_end > prefix and curr_end > prefix and previous[prev_end - 1] == current[curr_end - 1]:
        prev_end -= 1
        curr_end -= 1

    added = (TextChange(prefix, curr_end, current[prefix:curr_end]),) if curr_end > prefix else ()
    removed = (TextChange(prefix, prev_end, previous[prefix:prev_end]),) if prev_end > prefix else ()
    return ChangeSet(added=added, removed=removed)
