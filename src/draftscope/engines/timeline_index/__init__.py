"""Timeline Index -- ordered merge of keyframe and diff records."""
from .engine import TimelineIndex, build

__all__ = ["TimelineIndex", "build"]
