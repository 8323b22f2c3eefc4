"""Sticky Wall: a public collaborative wall of anonymous sticky notes."""

__version__ = "1.0.0"
