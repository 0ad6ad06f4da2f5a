"""Upstream replay store adapter."""
from .client import ReplayFeedClient, ReplayQuery
from .payloads import (
    EncodedPayload,
    RawReplayPayload,
    ReplayFeed,
    SessionSummary,
    StructuredPayload,
    normalize_flags,
    normalize_replay_payload,
    raw_payload_from_body,
)

__all__ = [
    "EncodedPayload",
    "RawReplayPayload",
    "ReplayFeed",
    "ReplayFeedClient",
    "ReplayQuery",
    "SessionSummary",
    "StructuredPayload",
    "normalize_flags",
    "normalize_replay_payload",
    "raw_payload_from_body",
]
