"""Playback Controller -- scrub position, play/pause and speed state machine.

    PAUSED --play--> PLAYING --tick (reaching last index)--> PAUSED
    PLAYING --pause--> PAUSED

``seek``/``step`` and ``set_speed`` are valid from either state and never
change it. The end of the known timeline is not terminal: once the timeline
grows (``set_length``) playback can move forward again.
"""
from __future__ import annotations

import math
from typing import Callable

import structlog

from ...domain.entities import PlaybackState, PlaybackStatus
from ...domain.exceptions import InvalidPlaybackSpeed

logger = structlog.get_logger(__name__)

StatusListener = Callable[[PlaybackStatus, PlaybackStatus], None]

_TRANSITIONS: dict[PlaybackStatus, frozenset[PlaybackStatus]] = {
    PlaybackStatus.PAUSED: frozenset({PlaybackStatus.PLAYING}),
    PlaybackStatus.PLAYING: frozenset({PlaybackStatus.PAUSED}),
}


class PlaybackController:
    """Owns the :class:`PlaybackState` for one replay session.

    Position is an index into the timeline and always stays inside
    ``[0, last_index]`` (``0`` for an empty timeline).
    """

    def __init__(
        self,
        length: int = 0,
        speed: float = 1.0,
        base_interval_seconds: float = 1.0,
    ) -> None:
        self._validate_speed(speed)
        self._length = max(0, length)
        self._position = 0
        self._status = PlaybackStatus.PAUSED
        self._speed = float(speed)
        self.base_interval_seconds = base_interval_seconds
        self._listeners: list[StatusListener] = []

    # -- read-only view ------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return PlaybackState(
            position=self._position,
            is_playing=self._status is PlaybackStatus.PLAYING,
            speed=self._speed,
        )

    @property
    def status(self) -> PlaybackStatus:
        return self._status

    @property
    def position(self) -> int:
        return self._position

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def length(self) -> int:
        return self._length

    @property
    def last_index(self) -> int:
        return max(0, self._length - 1)

    @property
    def is_playing(self) -> bool:
        return self._status is PlaybackStatus.PLAYING

    @property
    def at_end(self) -> bool:
        return self._position >= self.last_index

    @property
    def tick_interval(self) -> float:
        """Wall-clock seconds between two ticks at the current speed."""
        return self.base_interval_seconds / self._speed

    def add_listener(self, listener: StatusListener) -> None:
        """Register ``listener(previous, current)``, called on every status change."""
        self._listeners.append(listener)

    # -- transitions ---------------------------------------------------------

    def _transition(self, target: PlaybackStatus) -> None:
        if target not in _TRANSITIONS[self._status]:
            return
        previous = self._status
        self._status = target
        logger.debug(
            "playback_state_transition",
            from_state=previous.value,
            to_state=target.value,
            position=self._position,
        )
        for listener in list(self._listeners):
            listener(previous, target)

    def play(self) -> PlaybackState:
        if self._length == 0:
            return self.state
        if self.at_end and self._length > 1 and not self.is_playing:
            # play from the end starts over
            self._position = 0
        self._transition(PlaybackStatus.PLAYING)
        return self.state

    def pause(self) -> PlaybackState:
        self._transition(PlaybackStatus.PAUSED)
        return self.state

    def toggle(self) -> PlaybackState:
        return self.pause() if self.is_playing else self.play()

    def tick(self) -> PlaybackState:
        """Advance one entry; pause once the last known entry is reached."""
        if not self.is_playing:
            return self.state
        if not self.at_end:
            self._position += 1
        if self.at_end:
            self._transition(PlaybackStatus.PAUSED)
        return self.state

    def seek(self, index: int) -> PlaybackState:
        self._position = min(max(0, int(index)), self.last_index)
        return self.state

    def step(self, delta: int) -> PlaybackState:
        return self.seek(self._position + delta)

    def seek_end(self) -> PlaybackState:
        self._position = self.last_index
        return self.pause()

    def set_speed(self, factor: float) -> PlaybackState:
        self._validate_speed(factor)
        self._speed = float(factor)
        return self.state

    def set_length(self, length: int) -> PlaybackState:
        """Follow a rebuilt timeline; the position index is kept as is when still valid."""
        self._length = max(0, length)
        if self._position > self.last_index:
            self._position = self.last_index
        return self.state

    @staticmethod
    def _validate_speed(factor: float) -> None:
        if isinstance(factor, bool) or not isinstance(factor, (int, float)) \
                or not math.isfinite(factor) or factor <= 0:
            raise InvalidPlaybackSpeed(factor)
