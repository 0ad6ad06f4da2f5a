"""
Payload Codec
Decompression and parsing of keyframe payloads and diff deltas.

Keyframe payloads arrive as gzip (or zlib) streams, usually wrapped in base64
text by the feed. Plain-text keyframes inflate to UTF-8 text; structured
keyframes inflate to a Google Docs style JSON tree whose text is recovered by
flattening text-bearing leaves in document order.

Diff deltas inflate to JSON in one of three shapes:

* ``{"ops": [...]}`` -- ordered retain/insert/delete operations
* ``{"unified": "..."}`` -- a unified diff over lines (older captures)
* ``{"document": {...}}`` -- structural patch replacing the whole document

Every function here is pure; failures raise :class:`CorruptPayload`.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import zlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from ...domain.entities import ContentType
from ...domain.exceptions import CorruptPayload

# zlib window bits accepting both gzip and zlib headers.
_AUTO_HEADER_WBITS = zlib.MAX_WBITS | 32

_HUNK_RE = re.compile(r"^@@ -(\d+)")


# ============================================
# DATA STRUCTURES
# ============================================

@dataclass(frozen=True)
class DecodedPayload:
    """A decoded keyframe: flattened text plus the tree it came from, if any."""
    text: str
    content_type: ContentType
    document: Optional[dict[str, Any]] = field(default=None, compare=False)


class OpType(str, Enum):
    RETAIN = "retain"
    INSERT = "insert"
    DELETE = "delete"


@dataclass(frozen=True)
class Operation:
    op: OpType
    count: int = 0
    text: str = ""


@dataclass(frozen=True)
class OperationsDelta:
    operations: tuple[Operation, ...]


@dataclass(frozen=True)
class UnifiedDelta:
    patch: str


@dataclass(frozen=True)
class DocumentDelta:
    document: dict[str, Any]


Delta = Union[OperationsDelta, UnifiedDelta, DocumentDelta]


# ============================================
# INFLATION
# ============================================

def inflate(compressed: bytes | str, sequence_number: int | None = None) -> bytes:
    """Undo the transport encoding and the compression of a payload.

    A ``str`` is taken to be base64 text; ``bytes`` are inflated directly.
    """
    if isinstance(compressed, str):
        try:
            compressed = base64.b64decode(compressed.strip(), validate=True)
        except (binascii.Error, ValueError) as exc:
            raise CorruptPayload(f"invalid base64: {exc}", sequence_number) from exc
    if not compressed:
        raise CorruptPayload("empty payload", sequence_number)
    try:
        return zlib.decompress(compressed, _AUTO_HEADER_WBITS)
    except zlib.error as exc:
        raise CorruptPayload(f"cannot inflate: {exc}", sequence_number) from exc


def _inflate_json(compressed: bytes | str, sequence_number: int | None) -> Any:
    raw = inflate(compressed, sequence_number)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CorruptPayload(f"not valid JSON after inflation: {exc}", sequence_number) from exc


# ============================================
# STRUCTURED DOCUMENTS
# ============================================

def extract_text(document: dict[str, Any]) -> str:
    """Flatten a structured document to plain text.

    Paragraph text runs are emitted in order (they carry their own trailing
    newline, which preserves paragraph boundaries); tables are walked cell by
    cell.
    """
    parts: list[str] = []

    def walk(elements: list[dict[str, Any]]) -> None:
        for el in elements:
            if not isinstance(el, dict):
                continue
            if "paragraph" in el:
                for pe in (el["paragraph"] or {}).get("elements") or []:
                    content = ((pe or {}).get("textRun") or {}).get("content")
                    if content:
                        parts.append(content)
            elif "table" in el:
                for row in (el["table"] or {}).get("tableRows") or []:
                    for cell in (row or {}).get("tableCells") or []:
                        walk((cell or {}).get("content") or [])

    body = document.get("body") if isinstance(document, dict) else None
    walk((body or {}).get("content") or [])
    return "".join(parts)


# ============================================
# PUBLIC API
# ============================================

def decode(
    compressed: bytes | str,
    content_type: ContentType,
    sequence_number: int | None = None,
) -> DecodedPayload:
    """Decode a keyframe payload into text (and a document tree when structured).

    Raises:
        CorruptPayload: The payload cannot be inflated or parsed.
    """
    if content_type is ContentType.STRUCTURED_DOCUMENT:
        document = _inflate_json(compressed, sequence_number)
        if not isinstance(document, dict):
            raise CorruptPayload("structured document is not a JSON object", sequence_number)
        return DecodedPayload(
            text=extract_text(document),
            content_type=content_type,
            document=document,
        )

    raw = inflate(compressed, sequence_number)
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CorruptPayload(f"text is not UTF-8: {exc}", sequence_number) from exc
    return DecodedPayload(text=text, content_type=ContentType.PLAIN_TEXT)


def decode_delta(compressed: bytes | str, sequence_number: int | None = None) -> Delta:
    """Decode a diff's delta into one of the supported delta shapes.

    Raises:
        CorruptPayload: The delta cannot be inflated, is not JSON, or has an
            unknown shape.
    """
    obj = _inflate_json(compressed, sequence_number)
    if not isinstance(obj, dict):
        raise CorruptPayload("delta is not a JSON object", sequence_number)

    if "ops" in obj:
        return OperationsDelta(operations=_parse_operations(obj["ops"], sequence_number))
    if "unified" in obj:
        if not isinstance(obj["unified"], str):
            raise CorruptPayload("unified delta must be a string", sequence_number)
        return UnifiedDelta(patch=obj["unified"])
    if "document" in obj:
        if not isinstance(obj["document"], dict):
            raise CorruptPayload("document delta must be a JSON object", sequence_number)
        return DocumentDelta(document=obj["document"])
    raise CorruptPayload(f"unknown delta shape: keys={sorted(obj)}", sequence_number)


def _parse_operations(raw_ops: Any, sequence_number: int | None) -> tuple[Operation, ...]:
    if not isinstance(raw_ops, list):
        raise CorruptPayload("ops must be a list", sequence_number)
    ops: list[Operation] = []
    for idx, raw in enumerate(raw_ops):
        if not isinstance(raw, dict) or len(raw) != 1:
            raise CorruptPayload(f"op #{idx} must have exactly one key", sequence_number)
        (name, value), = raw.items()
        if name == OpType.INSERT.value and isinstance(value, str):
            ops.append(Operation(OpType.INSERT, text=value))
        elif name in (OpType.RETAIN.value, OpType.DELETE.value) and isinstance(value, int) \
                and not isinstance(value, bool) and value >= 0:
            ops.append(Operation(OpType(name), count=value))
        else:
            raise CorruptPayload(f"op #{idx} is malformed: {raw!r}", sequence_number)
    return tuple(ops)


# ============================================
# DELTA APPLICATION
# ============================================

def apply_operations(text: str, operations: tuple[Operation, ...]) -> str:
    """Apply position-based operations to ``text``.

    Retain and delete past the end of the text clamp to the end; whatever the
    operations do not reach is kept as is.
    """
    out: list[str] = []
    cursor = 0
    for op in operations:
        if op.op is OpType.INSERT:
            out.append(op.text)
        elif op.op is OpType.RETAIN:
            end = min(len(text), cursor + op.count)
            out.append(text[cursor:end])
            cursor = end
        else:
            cursor = min(len(text), cursor + op.count)
    out.append(text[cursor:])
    return "".join(out)


def apply_unified_diff(source: str, patch: str) -> str:
    """Apply a unified diff on a best-effort basis (display only, no fuzz)."""
    if not patch.strip():
        return source

    source_lines = source.split("\n")
    result: list[str] = []
    idx = 0

    for line in patch.split("\n"):
        if line.startswith("---") or line.startswith("+++"):
            continue
        if line.startswith("@@"):
            match = _HUNK_RE.match(line)
            if match:
                hunk_start = int(match.group(1)) - 1
                while idx < hunk_start and idx < len(source_lines):
                    result.append(source_lines[idx])
                    idx += 1
            continue
        if line.startswith("-"):
            idx += 1
        elif line.startswith("+"):
            result.append(line[1:])
        elif line.startswith(" "):
            result.append(source_lines[idx] if idx < len(source_lines) else line[1:])
            idx += 1

    result.extend(source_lines[idx:])
    return "\n".join(result)
