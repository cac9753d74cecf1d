"""
Sync sessions: mirror the host's playback onto guests.

The host's local intents (play, pause, seek) are broadcast on the session
channel. Guests apply incoming transport messages to their own player through
``apply_remote_*`` so every device plays audio, but never re-broadcast them.
A guest pressing play acts locally only.

Room controls (lock, kick, transfer host) and shared queue removal are host
only. Anyone may append to the shared queue. Host-only calls made by a guest
return False; ``require_host`` is the raising variant.

Channel failures are logged and kept as ``last_notice``; they never raise
into the player, and a failed subscription is not retried here.

Mirrored plays load in the background so the channel keeps delivering
pause and seek while a song resolves; once loaded, the player is brought in
line with whatever the session says by then.
"""

import asyncio
from dataclasses import replace
from typing import Optional

from loguru import logger

from ..library.models import Song
from ..playback.player import Player, PlayerIntent
from .channel import ChannelFactory, SyncChannel
from .exceptions import NotHostError, SyncError
from .models import (
    DEFAULT_CHANNEL_PREFIX,
    EVENT_KICK,
    EVENT_LOCK,
    EVENT_PAUSE,
    EVENT_PLAY,
    EVENT_QUEUE_UPDATE,
    EVENT_SEEK,
    EVENT_TRANSFER_HOST,
    SyncNotice,
    SyncSession,
    SyncUser,
    channel_topic,
    generate_session_id,
    generate_user_id,
    queue_from_payload,
    queue_payload,
    song_from_payload,
    users_from_presence,
)


class SyncController:
    """Owns this device's membership in at most one sync session."""

    def __init__(
        self,
        player: Player,
        channel_factory: ChannelFactory,
        user_id: Optional[str] = None,
        user_name: str = "User",
        channel_prefix: str = DEFAULT_CHANNEL_PREFIX,
    ) -> None:
        self._player = player
        self._channel_factory = channel_factory
        self.user_id = user_id or generate_user_id()
        self.user_name = user_name
        self._channel_prefix = channel_prefix
        self._channel: Optional[SyncChannel] = None
        self.session: Optional[SyncSession] = None
        self.last_notice: Optional[SyncNotice] = None
        self._remote_loads: set[asyncio.Task[None]] = set()
        self._remove_listener = player.add_intent_listener(self._on_local_intent)

    @property
    def in_session(self) -> bool:
        return self.session is not None

    @property
    def is_host(self) -> bool:
        return self.session is not None and self.session.host_id == self.user_id

    @property
    def is_connected(self) -> bool:
        return self._channel is not None and self._channel.subscribed

    def require_host(self) -> None:
        """Raise unless this device hosts the current session.

        Raises:
            NotHostError: If not in a session or not the host
        """
        if not self.is_host:
            raise NotHostError(f"{self.user_id} is not the host")

    # Lifecycle

    async def create_session(self, name: str, user_name: Optional[str] = None) -> Optional[str]:
        """Host a new session.

        Returns:
            The new session id, or None if the channel could not subscribe
        """
        if user_name:
            self.user_name = user_name
        await self.leave_session()

        session_id = generate_session_id()
        me = SyncUser(self.user_id, self.user_name, is_host=True)
        self.session = SyncSession(id=session_id, name=name, host_id=self.user_id, users=(me,))
        if not await self._connect(session_id, me):
            self.session = None
            return None

        logger.info(f"Created sync session {session_id}")
        return session_id

    async def join_session(self, session_id: str, user_name: Optional[str] = None) -> bool:
        """Join an existing session as a guest; the host is learned from presence."""
        if user_name:
            self.user_name = user_name
        await self.leave_session()

        me = SyncUser(self.user_id, self.user_name, is_host=False)
        self.session = SyncSession(id=session_id, name="Sync Session", users=(me,))
        if not await self._connect(session_id, me):
            self.session = None
            return False

        logger.info(f"Joined sync session {session_id}")
        return True

    async def leave_session(self) -> None:
        """Unsubscribe the channel and drop the local replica."""
        channel = self._channel
        self._channel = None
        if self.session is not None:
            logger.info(f"Leaving sync session {self.session.id}")
        self.session = None
        if channel is not None:
            try:
                await channel.unsubscribe()
            except SyncError as e:
                self._report(f"Unsubscribe failed: {e}")

    async def _connect(self, session_id: str, me: SyncUser) -> bool:
        channel = self._channel_factory(channel_topic(session_id, self._channel_prefix), self.user_id)
        channel.on_broadcast(self._on_broadcast)
        channel.on_presence(self._on_presence)
        self._channel = channel
        try:
            await channel.subscribe()
            await channel.track(me.to_meta())
        except SyncError as e:
            self._report(f"Could not connect to session {session_id}: {e}")
            self._channel = None
            try:
                await channel.unsubscribe()
            except SyncError:
                pass
            return False
        return True

    async def close(self) -> None:
        self._remove_listener()
        await self.leave_session()
        pending = list(self._remote_loads)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

    # Sending

    async def _send(self, event: str, payload: dict) -> bool:
        if self._channel is None:
            return False
        try:
            await self._channel.send(event, payload)
        except SyncError as e:
            self._report(f"Broadcast of {event} failed: {e}")
            return False
        return True

    def _report(self, message: str) -> None:
        logger.warning(message)
        self.last_notice = SyncNotice(message)

    async def _on_local_intent(self, intent: PlayerIntent) -> None:
        if not self.is_host:
            return
        if intent.kind == "play" and intent.song is not None:
            await self.sync_play(intent.song, intent.time)
        elif intent.kind == "pause":
            await self.sync_pause()
        elif intent.kind == "seek":
            await self.sync_seek(intent.time)

    async def sync_play(self, song: Song, time: float = 0.0) -> bool:
        if not self.is_host:
            return False
        self.session = replace(self.session, current_song=song, is_playing=True, current_time=time)
        return await self._send(EVENT_PLAY, {"song": song.to_dict(), "time": time})

    async def sync_pause(self) -> bool:
        if not self.is_host:
            return False
        self.session = replace(self.session, is_playing=False)
        return await self._send(EVENT_PAUSE, {})

    async def sync_seek(self, time: float) -> bool:
        if not self.is_host:
            return False
        self.session = replace(self.session, current_time=time)
        return await self._send(EVENT_SEEK, {"time": time})

    # Room controls

    async def set_locked(self, locked: bool) -> bool:
        if not self.is_host:
            return False
        self.session = replace(self.session, is_locked=locked)
        return await self._send(EVENT_LOCK, {"locked": locked})

    async def kick(self, user_id: str) -> bool:
        if not self.is_host or user_id == self.user_id:
            return False
        self.session = replace(
            self.session, users=tuple(u for u in self.session.users if u.id != user_id)
        )
        return await self._send(EVENT_KICK, {"userId": user_id})

    async def transfer_host(self, new_host_id: str) -> bool:
        if not self.is_host or new_host_id == self.user_id:
            return False
        sent = await self._send(EVENT_TRANSFER_HOST, {"newHostId": new_host_id})
        await self._apply_host(new_host_id)
        return sent

    async def _apply_host(self, new_host_id: str) -> None:
        session = self.session
        was_host = session.host_id == self.user_id
        users = tuple(replace(u, is_host=u.id == new_host_id) for u in session.users)
        self.session = replace(session, host_id=new_host_id, users=users)

        is_host = new_host_id == self.user_id
        if was_host != is_host and self._channel is not None:
            try:
                await self._channel.track(SyncUser(self.user_id, self.user_name, is_host).to_meta())
            except SyncError as e:
                self._report(f"Presence update failed: {e}")

    # Shared queue

    async def add_to_shared_queue(self, song: Song) -> bool:
        if self.session is None:
            return False
        self.session = replace(self.session, shared_queue=self.session.shared_queue + (song,))
        return await self._send(EVENT_QUEUE_UPDATE, queue_payload(self.session.shared_queue))

    async def remove_from_shared_queue(self, index: int) -> bool:
        if not self.is_host:
            return False
        queue = self.session.shared_queue
        if not 0 <= index < len(queue):
            return False
        self.session = replace(self.session, shared_queue=queue[:index] + queue[index + 1:])
        return await self._send(EVENT_QUEUE_UPDATE, queue_payload(self.session.shared_queue))

    async def clear_shared_queue(self) -> bool:
        if not self.is_host:
            return False
        self.session = replace(self.session, shared_queue=())
        return await self._send(EVENT_QUEUE_UPDATE, queue_payload(()))

    async def play_from_shared_queue(self, index: int) -> bool:
        """Play a shared-queue song on the host; the play intent is broadcast."""
        if not self.is_host:
            return False
        queue = self.session.shared_queue
        if not 0 <= index < len(queue):
            return False
        await self._player.play(queue[index])
        return True

    # Receiving

    async def _on_broadcast(self, event: str, payload: dict) -> None:
        if self.session is None:
            return
        try:
            await self._apply_broadcast(event, payload)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed {event} message: {e}")

    async def _apply_broadcast(self, event: str, payload: dict) -> None:
        if event == EVENT_PLAY:
            song = song_from_payload(payload)
            time = float(payload.get("time") or 0.0)
            self.session = replace(self.session, current_song=song, is_playing=True, current_time=time)
            if not self.is_host:
                self._start_remote_play(song, time)

        elif event == EVENT_PAUSE:
            self.session = replace(self.session, is_playing=False)
            if not self.is_host:
                self._player.apply_remote_pause()

        elif event == EVENT_SEEK:
            time = float(payload["time"])
            self.session = replace(self.session, current_time=time)
            if not self.is_host:
                self._player.apply_remote_seek(time)

        elif event == EVENT_LOCK:
            self.session = replace(self.session, is_locked=bool(payload["locked"]))

        elif event == EVENT_KICK:
            user_id = payload["userId"]
            if user_id == self.user_id:
                logger.info("Removed from the sync session by the host")
                await self.leave_session()
            else:
                self.session = replace(
                    self.session, users=tuple(u for u in self.session.users if u.id != user_id)
                )

        elif event == EVENT_TRANSFER_HOST:
            await self._apply_host(str(payload["newHostId"]))

        elif event == EVENT_QUEUE_UPDATE:
            self.session = replace(self.session, shared_queue=queue_from_payload(payload))

        else:
            logger.debug(f"Ignoring unknown sync event {event!r}")

    def _start_remote_play(self, song: Song, time: float) -> None:
        task = asyncio.create_task(self._remote_play(song, time))
        self._remote_loads.add(task)
        task.add_done_callback(self._remote_loads.discard)

    async def _remote_play(self, song: Song, time: float) -> None:
        try:
            await self._player.apply_remote_play(song, time)
        except Exception:
            logger.exception(f"Mirroring play of {song.id} failed")
            return

        # Pause or seek may have arrived while the song was loading
        session = self.session
        if session is None or self.is_host or session.current_song != song:
            return
        if not session.is_playing:
            self._player.apply_remote_pause()
        elif session.current_time != time:
            self._player.apply_remote_seek(session.current_time)

    async def wait_for_remote_loads(self) -> None:
        """Wait for mirrored plays that are still loading."""
        while self._remote_loads:
            await asyncio.gather(*list(self._remote_loads), return_exceptions=True)

    async def _on_presence(self, state: dict[str, dict]) -> None:
        if self.session is None:
            return
        users = users_from_presence(state)
        host_id = self.session.host_id
        if not host_id:
            host_id = next((u.id for u in users if u.is_host), "")
        self.session = replace(self.session, users=users, host_id=host_id)
