"""Sync session data model and wire vocabulary."""

import random
import string
import time
from dataclasses import dataclass, field
from typing import Optional

from ..library.models import Song

# Broadcast events
EVENT_PLAY = "play"
EVENT_PAUSE = "pause"
EVENT_SEEK = "seek"
EVENT_LOCK = "lock"
EVENT_KICK = "kick"
EVENT_TRANSFER_HOST = "transfer_host"
EVENT_QUEUE_UPDATE = "queue_update"

DEFAULT_CHANNEL_PREFIX = "sync-"

_BASE36 = string.digits + string.ascii_lowercase


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def generate_user_id(rng: Optional[random.Random] = None) -> str:
    """Per-device id: ``user-<epoch ms>-<9 base36 chars>``."""
    rng = rng or random.Random()
    suffix = "".join(rng.choice(_BASE36) for _ in range(9))
    return f"user-{_epoch_ms()}-{suffix}"


def generate_session_id() -> str:
    return f"session-{_epoch_ms()}"


def channel_topic(session_id: str, prefix: str = DEFAULT_CHANNEL_PREFIX) -> str:
    return f"{prefix}{session_id}"


@dataclass(frozen=True)
class SyncUser:
    id: str
    name: str
    is_host: bool = False

    def to_meta(self) -> dict:
        """Presence metadata tracked for this user."""
        return {"name": self.name, "isHost": self.is_host}


@dataclass(frozen=True)
class SyncSession:
    """Local replica of a sync session.

    ``host_id`` is empty until a guest learns it from presence.
    ``current_song``/``is_playing``/``current_time`` mirror the host.
    """

    id: str
    name: str
    host_id: str = ""
    users: tuple[SyncUser, ...] = ()
    is_locked: bool = False
    shared_queue: tuple[Song, ...] = ()
    current_song: Optional[Song] = None
    is_playing: bool = False
    current_time: float = 0.0

    def user(self, user_id: str) -> Optional[SyncUser]:
        for user in self.users:
            if user.id == user_id:
                return user
        return None


def users_from_presence(state: dict[str, dict]) -> tuple[SyncUser, ...]:
    """Rebuild the participant list from a presence snapshot (unique by key)."""
    return tuple(
        SyncUser(
            id=key,
            name=(meta or {}).get("name") or "Unknown",
            is_host=bool((meta or {}).get("isHost", False)),
        )
        for key, meta in state.items()
    )


def queue_payload(queue: tuple[Song, ...]) -> dict:
    return {"queue": [song.to_dict() for song in queue]}


def queue_from_payload(payload: dict) -> tuple[Song, ...]:
    """Parse a ``queue_update`` payload.

    Raises:
        ValueError: If the payload has no song list or a song is malformed
    """
    items = payload.get("queue")
    if not isinstance(items, list):
        raise ValueError("queue_update payload has no queue list")
    if not all(isinstance(item, dict) for item in items):
        raise ValueError("queue_update payload holds a non-object song")
    return tuple(Song.from_dict(item) for item in items)


def song_from_payload(payload: dict) -> Song:
    """Parse the ``song`` of a ``play`` payload.

    Raises:
        ValueError: If the song is missing or malformed
    """
    data = payload.get("song")
    if not isinstance(data, dict):
        raise ValueError("play payload has no song object")
    return Song.from_dict(data)


@dataclass
class SyncNotice:
    """Last passive problem report from the sync layer."""

    message: str
    at: float = field(default_factory=time.time)
