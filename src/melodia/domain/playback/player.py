"""
Player: queue policy and user intents on top of the Transport Engine.

The Player is the one object UI surfaces talk to. Queue transitions are
computed by the pure functions in ``state`` and applied to the store as a
single update; loading and transport go through the engine.

Local intents (play, pause, seek) are reported to intent listeners so a sync
session can mirror them. Payloads applied from a sync broadcast go through
``apply_remote_*`` and are never reported, so they cannot echo back.
"""

import inspect
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Literal, Optional, Union

from loguru import logger

from ..library.models import Song
from . import state
from .engine import TransportEngine
from .state import PlaybackSession, RepeatMode
from .store import SessionStore


@dataclass(frozen=True)
class PlayerIntent:
    """A transport action taken on this device."""

    kind: Literal["play", "pause", "seek"]
    song: Optional[Song] = None
    time: float = 0.0


IntentListener = Callable[[PlayerIntent], Union[None, Awaitable[None]]]
UnplayableHandler = Callable[[Song], Union[None, Awaitable[None]]]


class Player:
    """Owns the playback session and its engine (one per device)."""

    def __init__(
        self,
        store: SessionStore,
        engine: TransportEngine,
        rng: Optional[random.Random] = None,
        restart_threshold: float = state.RESTART_THRESHOLD,
    ) -> None:
        self._store = store
        self._engine = engine
        self._rng = rng or random.Random()
        self._restart_threshold = restart_threshold
        self._intent_listeners: list[IntentListener] = []
        self._exhausted_handler: Optional[Callable[[], None]] = None
        self._unplayable_handler: Optional[UnplayableHandler] = None
        self._loads = 0
        engine.set_end_handler(self._on_track_end)

    @property
    def state(self) -> PlaybackSession:
        return self._store.session

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def engine(self) -> TransportEngine:
        return self._engine

    def add_intent_listener(self, listener: IntentListener) -> Callable[[], None]:
        """Register a listener for local intents; returns a remover."""
        self._intent_listeners.append(listener)

        def remove() -> None:
            if listener in self._intent_listeners:
                self._intent_listeners.remove(listener)

        return remove

    def set_exhausted_handler(self, handler: Optional[Callable[[], None]]) -> None:
        """Called when a track ends and the queue has nothing left to play."""
        self._exhausted_handler = handler

    def set_unplayable_handler(self, handler: Optional[UnplayableHandler]) -> None:
        """Called with a song whose audio could not be loaded."""
        self._unplayable_handler = handler

    async def _announce(self, intent: PlayerIntent) -> None:
        for listener in list(self._intent_listeners):
            try:
                result = listener(intent)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Intent listener failed for {intent.kind}")

    async def _load_and_announce(self, song: Song) -> None:
        self._loads += 1
        token = self._loads
        played = await self._engine.load_song(song)
        # A newer load may have replaced this song while it resolved
        if token != self._loads or self.state.current_song != song:
            return
        # The video embed fallback counts as playing
        if self.state.is_playing:
            await self._announce(PlayerIntent("play", song=song, time=0.0))
        if not played and self._unplayable_handler is not None:
            result = self._unplayable_handler(song)
            if inspect.isawaitable(result):
                await result

    # Transport intents

    async def play(self, song: Optional[Song] = None) -> None:
        """Play ``song`` (load implies play) or resume the loaded one."""
        if song is not None:
            await self._load_and_announce(song)
            return
        if self._engine.resume():
            await self._announce(PlayerIntent(
                "play", song=self.state.current_song, time=self.state.current_time
            ))

    async def pause(self) -> None:
        self._engine.pause()
        await self._announce(PlayerIntent("pause"))

    async def toggle(self) -> None:
        if self._engine.toggle():
            await self._announce(PlayerIntent(
                "play", song=self.state.current_song, time=self.state.current_time
            ))
        else:
            await self._announce(PlayerIntent("pause"))

    async def seek(self, seconds: float) -> None:
        self._engine.seek(seconds)
        await self._announce(PlayerIntent("seek", time=seconds))

    def set_volume(self, volume: float) -> None:
        self._engine.set_volume(volume)

    def toggle_mute(self) -> None:
        self._engine.toggle_mute()

    # Queue navigation

    async def next(self) -> None:
        """Advance per shuffle/repeat policy; no-op at the end of the queue."""
        index = state.next_index(self.state, self._rng)
        if index is None:
            logger.debug("next(): nothing to advance to")
            return
        await self._play_index(index)

    async def previous(self) -> None:
        """Restart the track if past the threshold, else step back one slot."""
        if state.should_restart(self.state, self._restart_threshold):
            await self.seek(0.0)
            return

        index = state.previous_index(self.state)
        if index is None:
            logger.debug("previous(): queue is empty")
            return
        await self._play_index(index)

    async def _play_index(self, index: int) -> None:
        self._store.update(queue_index=index)
        await self._load_and_announce(self.state.queue[index])

    async def _on_track_end(self) -> None:
        """End-of-track advance, called by the engine."""
        session = self.state
        if session.repeat == RepeatMode.ONE:
            if self._engine.restart():
                await self._announce(PlayerIntent("play", song=session.current_song, time=0.0))
            return

        index = state.next_index(session, self._rng, auto=True)
        if index is None:
            logger.debug("Queue exhausted, playback stopped")
            if self._exhausted_handler is not None:
                self._exhausted_handler()
            return
        await self._play_index(index)

    # Queue editing

    def add_to_queue(self, songs: Union[Song, Iterable[Song]]) -> None:
        self._store.set(state.add_to_queue(self.state, songs))

    def remove_from_queue(self, index: int) -> None:
        if not 0 <= index < len(self.state.queue):
            logger.debug(f"remove_from_queue({index}): out of range")
            return
        self._store.set(state.remove_from_queue(self.state, index))

    def clear_queue(self) -> None:
        """Stop playback, release the handle and empty the queue."""
        self._engine.release()
        self._store.set(state.clear_queue(self.state))

    async def play_playlist(self, songs: Iterable[Song], start_index: int = 0) -> None:
        """Replace the queue with ``songs`` and play ``songs[start_index]``.

        Raises:
            IndexError: If ``start_index`` is outside a non-empty playlist
        """
        session = state.load_playlist(self.state, songs, start_index)
        if not session.queue:
            logger.debug("play_playlist(): empty playlist")
            return
        self._store.set(session)
        await self._load_and_announce(session.queue[start_index])

    # Modes

    def toggle_shuffle(self) -> None:
        self._store.update(shuffle=not self.state.shuffle)

    def set_repeat(self, mode: Union[RepeatMode, str]) -> None:
        self._store.update(repeat=RepeatMode(mode))

    def cycle_repeat(self) -> None:
        self._store.update(repeat=state.cycle_repeat(self.state.repeat))

    def toggle_video_mode(self) -> None:
        self._store.update(video_mode=not self.state.video_mode)

    # Sync replica

    async def apply_remote_play(self, song: Song, time: float = 0.0) -> None:
        """Mirror a host's play: load ``song`` locally and seek to ``time``."""
        current = self.state.current_song
        if current is not None and current.id == song.id and self._engine.has_handle:
            self._engine.seek(time)
            self._engine.resume()
            return

        await self._engine.load_song(song)
        if time > 0 and self.state.current_song == song:
            self._engine.seek(time)

    def apply_remote_pause(self) -> None:
        self._engine.pause()

    def apply_remote_seek(self, seconds: float) -> None:
        self._engine.seek(seconds)

    # Media session

    def now_playing(self) -> Optional[dict[str, str]]:
        """Metadata for OS media controls, None when nothing is loaded."""
        song = self.state.current_song
        if song is None:
            return None
        return {
            "title": song.title,
            "artist": song.artist,
            "album": song.album or "",
            "artwork": song.artwork or "",
        }

    async def close(self) -> None:
        self._intent_listeners.clear()
        await self._engine.close()
