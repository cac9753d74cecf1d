"""Transport Engine: the single live audio handle and its position polling.

The engine owns exactly one ``AudioHandle`` at a time. Every ``load_song``
releases the previous handle before creating the next one and tags the load
with a generation number; a load that is superseded while it awaits source
resolution (or the handle's own load) discards its result instead of
touching state.

Position is sampled every ``poll_interval`` seconds while playing. That poll
task is the only recurring background task and is torn down on pause, end,
unload and close. Natural end of a track is handed to the end handler
(the Player's advance policy); the engine never picks the next song itself.
"""

import asyncio
from contextlib import suppress
from typing import Awaitable, Callable, Optional

from loguru import logger

from melodia.notifications import notify_error

from ..library.models import Song
from .exceptions import PlaybackError
from .handle import AudioHandle, HandleFactory
from .resolver import TrackSourceResolver
from .store import SessionStore

POLL_INTERVAL_SECONDS = 0.25

EndHandler = Callable[[], Awaitable[None]]


class TransportEngine:
    """Wraps one audio handle and publishes transport state into the store."""

    def __init__(
        self,
        store: SessionStore,
        resolver: TrackSourceResolver,
        handle_factory: HandleFactory,
        notify: Callable[[str], None] = notify_error,
        poll_interval: float = POLL_INTERVAL_SECONDS,
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._handle_factory = handle_factory
        self._notify = notify
        self._poll_interval = poll_interval
        self._handle: Optional[AudioHandle] = None
        self._generation = 0
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._end_task: Optional[asyncio.Task[None]] = None
        self._end_handled = False
        self._video_fallback = False  # video_mode was forced by a failed extraction
        self._on_end: Optional[EndHandler] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def has_handle(self) -> bool:
        return self._handle is not None

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def set_end_handler(self, handler: Optional[EndHandler]) -> None:
        self._on_end = handler

    # Loading

    async def load_song(self, song: Song) -> bool:
        """Release the current handle, load ``song`` and start playing it.

        Returns:
            True if ``song`` is now playing through a handle. False when the
            load failed, fell back to the video embed, or was superseded by a
            newer load
        """
        self.release()
        generation = self._generation
        self._store.update(
            current_song=song,
            is_playing=False,
            current_time=0.0,
            duration=song.duration,
        )

        url = song.url
        if song.is_youtube:
            source = await self._resolver.resolve(song)
            if generation != self._generation:
                logger.debug(f"Discarding stale resolution for {song.id}")
                return False
            if source is None:
                self._fall_back_to_video(song)
                return False
            url = source.url

        try:
            handle = self._handle_factory(url)
        except PlaybackError as e:
            self._report_failure(song, e)
            return False

        self._handle = handle
        self._end_handled = False

        try:
            await handle.load()
        except PlaybackError as e:
            if generation != self._generation:
                logger.debug(f"Ignoring load error of superseded {song.id}: {e}")
                return False
            self._discard(handle)
            self._report_failure(song, e)
            return False

        if generation != self._generation:
            logger.debug(f"Discarding stale handle for {song.id}")
            handle.unload()
            return False

        self._store.update(duration=handle.duration() or song.duration)
        self._apply_volume()
        return self._start(song)

    def _start(self, song: Song) -> bool:
        handle = self._handle
        if handle is None:
            return False
        try:
            handle.play()
        except PlaybackError as e:
            self._discard(handle)
            self._report_failure(song, e)
            return False

        changes = {"is_playing": True}
        if self._video_fallback:
            changes["video_mode"] = False
            self._video_fallback = False
        self._store.update(**changes)
        self._start_polling()
        return True

    def _fall_back_to_video(self, song: Song) -> None:
        logger.info(f"Falling back to video embed for {song.id}")
        self._video_fallback = True
        self._store.update(video_mode=True, is_playing=True)

    def _report_failure(self, song: Song, error: Exception) -> None:
        """YouTube failures fall back to the embed; others notify and pause."""
        if song.is_youtube:
            logger.warning(f"Audio playback failed for {song.id}: {error}")
            self._fall_back_to_video(song)
            return
        logger.error(f"Playback failed for {song.id}: {error}")
        self._notify(f"Failed to load audio: {song.title}")
        self._store.update(is_playing=False)

    def _discard(self, handle: AudioHandle) -> None:
        if self._handle is handle:
            self._stop_polling()
            self._handle = None
        try:
            handle.unload()
        except PlaybackError as e:
            logger.debug(f"Unload failed: {e}")

    def release(self) -> None:
        """Stop and drop the current handle; pending loads become stale."""
        self._generation += 1
        self._stop_polling()
        if self._handle is not None:
            self._discard(self._handle)

    # Transport

    def resume(self) -> bool:
        """Resume the loaded handle. No-op without one."""
        session = self._store.session
        if self._handle is None:
            song = session.current_song
            if song is not None and song.is_youtube and session.video_mode:
                self._store.update(is_playing=True)
                return True
            return False
        if session.current_song is None:
            return False
        return self._start(session.current_song)

    def pause(self) -> None:
        self._stop_polling()
        if self._handle is not None:
            try:
                self._handle.pause()
            except PlaybackError as e:
                logger.warning(f"Pause failed: {e}")
        self._store.update(is_playing=False)

    def toggle(self) -> bool:
        """Flip play/pause from the live handle state. Returns True if now playing."""
        if self._handle is None:
            session = self._store.session
            if session.video_mode and session.current_song is not None:
                self._store.update(is_playing=not session.is_playing)
                return not session.is_playing
            return False

        try:
            live = self._handle.playing()
        except PlaybackError:
            live = False
        if live:
            self.pause()
            return False
        return self.resume()

    def seek(self, seconds: float) -> None:
        if self._handle is not None:
            try:
                self._handle.seek(seconds)
            except PlaybackError as e:
                logger.warning(f"Seek failed: {e}")
        self._store.update(current_time=seconds)

    def restart(self) -> bool:
        """Seek to 0 and play the current handle again."""
        if self._handle is None:
            return False
        self._end_handled = False
        self.seek(0.0)
        return self.resume()

    def set_volume(self, volume: float) -> None:
        volume = min(1.0, max(0.0, volume))
        self._store.update(volume=volume, is_muted=False)
        self._apply_volume()

    def toggle_mute(self) -> None:
        self._store.update(is_muted=not self._store.session.is_muted)
        self._apply_volume()

    def _apply_volume(self) -> None:
        if self._handle is None:
            return
        try:
            self._handle.set_volume(self._store.session.effective_volume)
        except PlaybackError as e:
            logger.warning(f"Volume change failed: {e}")

    # Position polling

    def _start_polling(self) -> None:
        self._stop_polling()
        self._poll_task = asyncio.create_task(self._poll_position())

    def _stop_polling(self) -> None:
        if self._poll_task is not None:
            if self._poll_task is not asyncio.current_task():
                self._poll_task.cancel()
            self._poll_task = None

    async def _sample(self) -> bool:
        """Publish the handle position. Returns True once the track has ended."""
        handle = self._handle
        if handle is None or self._end_handled:
            return False
        try:
            await handle.refresh()
        except PlaybackError as e:
            logger.debug(f"Position refresh failed: {e}")
            return False
        # Released or replaced while refreshing
        if self._handle is not handle or self._end_handled:
            return False
        try:
            if handle.ended():
                self._end_handled = True
                return True
            if handle.playing():
                self._store.update(current_time=handle.position())
        except PlaybackError as e:
            logger.debug(f"Position sample failed: {e}")
        return False

    async def tick(self) -> None:
        """Take one position sample, handling end of track if reached."""
        if await self._sample():
            self._stop_polling()
            await self._finish_track()

    async def _poll_position(self) -> None:
        while True:
            await asyncio.sleep(self._poll_interval)
            if await self._sample():
                break
        if self._poll_task is asyncio.current_task():
            self._poll_task = None
        self._end_task = asyncio.create_task(self._finish_track())

    async def _finish_track(self) -> None:
        self._store.update(is_playing=False)
        if self._on_end is not None:
            await self._on_end()

    async def close(self) -> None:
        """Tear down the handle and every background task."""
        poll_task = self._poll_task
        self.release()
        for task in (poll_task, self._end_task):
            if task is not None and not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        self._end_task = None
