"""Playback Controller -- scrub/playback state machine."""
from .engine import PlaybackController, StatusListener

__all__ = ["PlaybackController", "StatusListener"]
