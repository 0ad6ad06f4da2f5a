"""Payload Codec -- keyframe and delta decompression."""
from .engine import (
    DecodedPayload,
    Delta,
    DocumentDelta,
    Operation,
    OperationsDelta,
    OpType,
    UnifiedDelta,
    apply_operations,
    apply_unified_diff,
    decode,
    decode_delta,
    extract_text,
    inflate,
)

__all__ = [
    "DecodedPayload",
    "Delta",
    "DocumentDelta",
    "Operation",
    "OperationsDelta",
    "OpType",
    "UnifiedDelta",
    "apply_operations",
    "apply_unified_diff",
    "decode",
    "decode_delta",
    "extract_text",
    "inflate",
]
