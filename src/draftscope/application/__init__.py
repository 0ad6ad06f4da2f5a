"""Application layer: the per-submission replay session."""
from .replay_session import LiveReplaySession, ReplayFeedSource

__all__ = ["LiveReplaySession", "ReplayFeedSource"]
