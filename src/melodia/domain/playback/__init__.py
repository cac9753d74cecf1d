"""Playback domain - session state, transport and source resolution.

This domain handles:
- The immutable playback session and queue policy (shuffle, repeat, previous)
- The Transport Engine (one audio handle, position polling, load generations)
- MPV integration via JSON IPC
- Resolving songs to playable URLs (YouTube extraction with embed fallback)
"""

from .engine import TransportEngine
from .exceptions import LoadError, PlaybackError, PlayError, PlayerUnavailableError
from .handle import AudioHandle, HandleFactory, MpvBackend, MpvHandle
from .player import Player, PlayerIntent
from .resolver import ResolvedSource, TrackSourceResolver
from .state import PlaybackSession, RepeatMode
from .store import SessionStore

__all__ = [
    "AudioHandle",
    "HandleFactory",
    "MpvBackend",
    "MpvHandle",
    "TransportEngine",
    "Player",
    "PlayerIntent",
    "ResolvedSource",
    "TrackSourceResolver",
    "PlaybackSession",
    "RepeatMode",
    "SessionStore",
    "PlaybackError",
    "PlayerUnavailableError",
    "LoadError",
    "PlayError",
]
