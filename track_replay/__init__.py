"""Replay recorded GPS-tracker sections as an animated, seekable timeline."""

__version__ = "0.1.0"
