"""Replay domain layer: entities and exceptions."""
