"""Draftscope -- point-in-time replay of monitored document history."""

__version__ = "1.0.0"
