"""Sync layer exceptions."""


class SyncError(Exception):
    """Base exception for sync session errors."""

    pass


class ChannelError(SyncError):
    """The broadcast channel could not subscribe, send or track presence."""

    pass


class NotHostError(SyncError):
    """A host-only action was attempted by a guest."""

    pass
