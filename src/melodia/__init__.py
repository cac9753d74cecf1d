"""Melodia - playback orchestration for a multi-source music player."""

__version__ = "0.1.0"
