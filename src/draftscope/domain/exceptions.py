"""Domain exception hierarchy for the replay engine."""
from __future__ import annotations


class ReplayError(Exception):
    """Base replay exception."""

    def __init__(self, message: str, code: str = "REPLAY_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


# --- Payload Exceptions ---

class CorruptPayload(ReplayError):
    def __init__(self, reason: str, sequence_number: int | None = None) -> None:
        where = f" (seq={sequence_number})" if sequence_number is not None else ""
        super().__init__(
            message=f"Corrupt payload{where}: {reason}",
            code="CORRUPT_PAYLOAD",
        )
        self.reason = reason
        self.sequence_number = sequence_number


# --- Feed Exceptions ---

class FetchFailure(ReplayError):
    """The external store was unreachable or returned unusable data.

    Always surfaced to the caller; ``retryable`` tells the UI whether a retry
    button makes sense.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = True,
    ) -> None:
        super().__init__(message=message, code="FETCH_FAILURE")
        self.status_code = status_code
        self.retryable = retryable


# --- Playback / Session Exceptions ---

class InvalidPlaybackSpeed(ReplayError):
    def __init__(self, speed: float) -> None:
        super().__init__(
            message=f"Playback speed must be a positive finite number, got {speed!r}",
            code="INVALID_PLAYBACK_SPEED",
        )
        self.speed = speed


class SessionClosed(ReplayError):
    def __init__(self) -> None:
        super().__init__(message="Replay session has been closed", code="SESSION_CLOSED")


class UnknownFlag(ReplayError):
    def __init__(self, flag_id: str) -> None:
        super().__init__(message=f"Flag with id '{flag_id}' not found", code="FLAG_NOT_FOUND")
        self.flag_id = flag_id


__all__ = [
    "ReplayError",
    "CorruptPayload",
    "FetchFailure",
    "InvalidPlaybackSpeed",
    "SessionClosed",
    "UnknownFlag",
]
