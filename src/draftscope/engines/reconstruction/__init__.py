"""Reconstruction Engine -- point-in-time document state from keyframes and diffs."""
from .engine import ReconstructionCache, diff_texts, reconstruct, reconstruct_index

__all__ = ["ReconstructionCache", "diff_texts", "reconstruct", "reconstruct_index"]
