"""Playback state value object."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PlaybackStatus(str, Enum):
    PAUSED = "paused"
    PLAYING = "playing"


@dataclass(frozen=True)
class PlaybackState:
    position: int = 0
    is_playing: bool = False
    speed: float = 1.0

    @property
    def status(self) -> PlaybackStatus:
        return PlaybackStatus.PLAYING if self.is_playing else PlaybackStatus.PAUSED
