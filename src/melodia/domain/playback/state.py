"""
Playback session state and queue policy.

The session is an immutable value; every transition here is a pure function
returning a new session (or the index to load next). Nothing in this module
touches the audio handle.
"""

import random
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional, Union

from ..library.models import Song

# Seconds into a track after which previous() restarts it instead of navigating
RESTART_THRESHOLD = 3.0


class RepeatMode(str, Enum):
    NONE = "none"
    ONE = "one"
    ALL = "all"


@dataclass(frozen=True)
class PlaybackSession:
    """Snapshot of the player.

    ``queue_index`` is -1 when there is no queue position. ``current_song``
    may diverge from ``queue[queue_index]`` when a song is played outside the
    queue; navigation always works relative to ``queue_index``.
    """

    current_song: Optional[Song] = None
    is_playing: bool = False
    volume: float = 0.7
    is_muted: bool = False
    current_time: float = 0.0
    duration: float = 0.0
    shuffle: bool = False
    repeat: RepeatMode = RepeatMode.NONE
    queue: tuple[Song, ...] = ()
    queue_index: int = -1
    video_mode: bool = False  # YouTube only: visible embed vs audio-only

    @property
    def effective_volume(self) -> float:
        return 0.0 if self.is_muted else self.volume

    @property
    def queued_song(self) -> Optional[Song]:
        """Song at ``queue_index``, None without a valid queue position."""
        if 0 <= self.queue_index < len(self.queue):
            return self.queue[self.queue_index]
        return None


def next_index(
    session: PlaybackSession,
    rng: Optional[random.Random] = None,
    auto: bool = False,
) -> Optional[int]:
    """Index to play after the current one, or None to stop advancing.

    Shuffle picks a uniformly random index different from the current one
    whenever the queue holds more than one song; a single-song queue yields
    index 0. When ``auto`` is set (end-of-track advance) shuffle only applies
    to queues longer than one, so a lone song does not loop forever.

    Sequential advance past the end wraps to 0 with repeat ALL, otherwise
    returns None.
    """
    queue_length = len(session.queue)
    if queue_length == 0:
        return None

    rng = rng or random
    if session.shuffle and (queue_length > 1 or not auto):
        if queue_length == 1:
            return 0
        index = rng.randrange(queue_length)
        while index == session.queue_index:
            index = rng.randrange(queue_length)
        return index

    index = session.queue_index + 1
    if index >= queue_length:
        if session.repeat == RepeatMode.ALL:
            return 0
        return None
    return index


def should_restart(session: PlaybackSession, threshold: float = RESTART_THRESHOLD) -> bool:
    """True when previous() should restart the current track."""
    return session.current_time > threshold


def previous_index(session: PlaybackSession) -> Optional[int]:
    """Index one slot back, wrapping only with repeat ALL, else clamped at 0."""
    queue_length = len(session.queue)
    if queue_length == 0:
        return None

    index = session.queue_index - 1
    if index < 0:
        return queue_length - 1 if session.repeat == RepeatMode.ALL else 0
    return index


def add_to_queue(session: PlaybackSession, songs: Union[Song, Iterable[Song]]) -> PlaybackSession:
    """Append songs without touching the queue position."""
    new_songs = (songs,) if isinstance(songs, Song) else tuple(songs)
    return replace(session, queue=session.queue + new_songs)


def remove_from_queue(session: PlaybackSession, index: int) -> PlaybackSession:
    """Remove one slot, keeping ``queue_index`` on the same logical song.

    Out-of-range indices leave the session unchanged. Removing the current
    slot is allowed; playback keeps the stale song until the next navigation.
    """
    if not 0 <= index < len(session.queue):
        return session

    queue = session.queue[:index] + session.queue[index + 1:]
    queue_index = session.queue_index
    if index < queue_index:
        queue_index -= 1
    if queue_index >= len(queue):
        queue_index = len(queue) - 1
    return replace(session, queue=queue, queue_index=queue_index)


def clear_queue(session: PlaybackSession) -> PlaybackSession:
    return replace(
        session,
        queue=(),
        queue_index=-1,
        current_song=None,
        is_playing=False,
        current_time=0.0,
        duration=0.0,
    )


def load_playlist(session: PlaybackSession, songs: Iterable[Song], start_index: int = 0) -> PlaybackSession:
    """Replace the whole queue and point at ``start_index``.

    Raises:
        IndexError: If ``start_index`` is outside a non-empty playlist
    """
    queue = tuple(songs)
    if queue and not 0 <= start_index < len(queue):
        raise IndexError(f"start_index {start_index} outside playlist of {len(queue)}")
    return replace(session, queue=queue, queue_index=start_index if queue else -1)


def cycle_repeat(mode: RepeatMode) -> RepeatMode:
    """none -> all -> one -> none."""
    order = [RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE]
    return order[(order.index(mode) + 1) % len(order)]
