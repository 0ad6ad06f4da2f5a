"""Replay engines: codec, timeline index, reconstruction, flag correlation, playback."""
