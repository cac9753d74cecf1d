"""Playback-specific exceptions for error handling."""


class PlaybackError(Exception):
    """Base exception for audio handle operations."""

    pass


class PlayerUnavailableError(PlaybackError):
    """Raised when the audio backend (mpv) is not running."""

    pass


class LoadError(PlaybackError):
    """Raised when a source cannot be loaded or decoded."""

    pass


class PlayError(PlaybackError):
    """Raised when a loaded source refuses to start playing."""

    pass
