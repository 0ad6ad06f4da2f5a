"""Presentation layer: HTTP surface for the rendering collaborator."""
