"""
Broadcast channels for sync sessions.

A channel is one subscription to a named topic. It carries two things:
fire-and-forget broadcast messages (``{event, payload}``, never echoed back to
the sender) and a presence map keyed by user id that every subscriber sees in
full whenever it changes.

Frames exchanged with a relay (and delivered to subscribers) are dicts:

    {"type": "broadcast", "event": str, "payload": dict}
    {"type": "track", "meta": dict}
    {"type": "presence", "state": {user_id: meta}}

``LocalBroadcastHub`` is an in-process relay used for tests and for several
players living in one process.
"""

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional, Union

from loguru import logger

from .exceptions import ChannelError

BroadcastHandler = Callable[[str, dict], Union[None, Awaitable[None]]]
PresenceHandler = Callable[[dict[str, dict]], Union[None, Awaitable[None]]]
ChannelFactory = Callable[[str, str], "SyncChannel"]


def broadcast_frame(event: str, payload: dict) -> dict:
    return {"type": "broadcast", "event": event, "payload": payload}


def presence_frame(state: dict[str, dict]) -> dict:
    return {"type": "presence", "state": state}


async def _call(handler: Callable[..., Any], *args: Any) -> None:
    result = handler(*args)
    if inspect.isawaitable(result):
        await result


class SyncChannel(ABC):
    """One subscription to ``topic`` identified by presence ``key``."""

    def __init__(self, topic: str, key: str) -> None:
        self.topic = topic
        self.key = key
        self._broadcast_handlers: list[BroadcastHandler] = []
        self._presence_handlers: list[PresenceHandler] = []
        self.presence: dict[str, dict] = {}

    def on_broadcast(self, handler: BroadcastHandler) -> None:
        self._broadcast_handlers.append(handler)

    def on_presence(self, handler: PresenceHandler) -> None:
        self._presence_handlers.append(handler)

    @property
    @abstractmethod
    def subscribed(self) -> bool:
        ...

    @abstractmethod
    async def subscribe(self) -> None:
        """Join the topic.

        Raises:
            ChannelError: If the subscription cannot be established
        """

    @abstractmethod
    async def send(self, event: str, payload: dict) -> None:
        """Broadcast to every other subscriber.

        Raises:
            ChannelError: If the channel is closed or the send fails
        """

    @abstractmethod
    async def track(self, meta: dict) -> None:
        """Publish (or replace) this subscriber's presence metadata."""

    @abstractmethod
    async def unsubscribe(self) -> None:
        """Leave the topic. Safe to call more than once."""

    async def handle_frame(self, frame: dict) -> None:
        """Dispatch one incoming frame to the registered handlers."""
        kind = frame.get("type")
        if kind == "broadcast":
            event = frame.get("event")
            payload = frame.get("payload") or {}
            if not isinstance(event, str) or not isinstance(payload, dict):
                logger.warning(f"Dropping malformed broadcast on {self.topic}: {frame}")
                return
            for handler in list(self._broadcast_handlers):
                await _call(handler, event, payload)
        elif kind == "presence":
            state = frame.get("state")
            if not isinstance(state, dict):
                logger.warning(f"Dropping malformed presence on {self.topic}")
                return
            self.presence = dict(state)
            for handler in list(self._presence_handlers):
                await _call(handler, dict(state))
        else:
            logger.debug(f"Ignoring frame of type {kind!r} on {self.topic}")


class LocalBroadcastHub:
    """In-process relay: topics, presence and per-subscriber delivery queues."""

    def __init__(self) -> None:
        self._topics: dict[str, dict[str, "LocalChannel"]] = {}
        self._presence: dict[str, dict[str, dict]] = {}
        self._pending = 0
        self._settled = asyncio.Event()
        self._settled.set()
        self.sent: list[tuple[str, str, str, dict]] = []  # (topic, sender, event, payload)

    def channel(self, topic: str, key: str) -> "LocalChannel":
        """Channel factory bound to this hub."""
        return LocalChannel(self, topic, key)

    def subscribers(self, topic: str) -> list[str]:
        return list(self._topics.get(topic, {}))

    def presence(self, topic: str) -> dict[str, dict]:
        return dict(self._presence.get(topic, {}))

    def _join(self, channel: "LocalChannel") -> None:
        members = self._topics.setdefault(channel.topic, {})
        previous = members.get(channel.key)
        if previous is not None and previous is not channel:
            raise ChannelError(f"{channel.key} is already subscribed to {channel.topic}")
        members[channel.key] = channel

    def _leave(self, channel: "LocalChannel") -> None:
        members = self._topics.get(channel.topic, {})
        if members.get(channel.key) is channel:
            del members[channel.key]
        if not members:
            self._topics.pop(channel.topic, None)

        state = self._presence.get(channel.topic, {})
        if state.pop(channel.key, None) is not None:
            self._publish_presence(channel.topic)
        if not state:
            self._presence.pop(channel.topic, None)

    def _broadcast(self, sender: "LocalChannel", event: str, payload: dict) -> None:
        self.sent.append((sender.topic, sender.key, event, payload))
        frame = broadcast_frame(event, payload)
        for key, member in self._topics.get(sender.topic, {}).items():
            if key != sender.key:
                self._deliver(member, frame)

    def _track(self, sender: "LocalChannel", meta: dict) -> None:
        self._presence.setdefault(sender.topic, {})[sender.key] = dict(meta)
        self._publish_presence(sender.topic)

    def _publish_presence(self, topic: str) -> None:
        frame = presence_frame(self.presence(topic))
        for member in self._topics.get(topic, {}).values():
            self._deliver(member, frame)

    def _deliver(self, member: "LocalChannel", frame: dict) -> None:
        self._pending += 1
        self._settled.clear()
        member.inbox.put_nowait(frame)

    def _done(self) -> None:
        self._pending -= 1
        if self._pending <= 0:
            self._pending = 0
            self._settled.set()

    async def drain(self) -> None:
        """Wait until every queued frame (and frames they trigger) is handled."""
        while not self._settled.is_set():
            await self._settled.wait()
            # Handlers may have queued follow-up frames before yielding
            await asyncio.sleep(0)


class LocalChannel(SyncChannel):
    """A subscription to a ``LocalBroadcastHub`` topic."""

    def __init__(self, hub: LocalBroadcastHub, topic: str, key: str) -> None:
        super().__init__(topic, key)
        self._hub = hub
        self.inbox: asyncio.Queue[dict] = asyncio.Queue()
        self._reader: Optional[asyncio.Task[None]] = None
        self._closed = False

    @property
    def subscribed(self) -> bool:
        return self._reader is not None and not self._closed

    async def subscribe(self) -> None:
        if self._closed:
            raise ChannelError(f"Channel {self.topic} was already closed")
        if self._reader is not None:
            return
        self._hub._join(self)
        self._reader = asyncio.create_task(self._read())

    async def send(self, event: str, payload: dict) -> None:
        if not self.subscribed:
            raise ChannelError(f"Channel {self.topic} is not subscribed")
        self._hub._broadcast(self, event, payload)

    async def track(self, meta: dict) -> None:
        if not self.subscribed:
            raise ChannelError(f"Channel {self.topic} is not subscribed")
        self._hub._track(self, meta)

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._reader is None:
            return
        self._hub._leave(self)

        while not self.inbox.empty():
            self.inbox.get_nowait()
            self._hub._done()

        if self._reader is not asyncio.current_task():
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass

    async def _read(self) -> None:
        while not self._closed:
            frame = await self.inbox.get()
            try:
                await self.handle_frame(frame)
            except Exception:
                logger.exception(f"Sync handler failed on {self.topic}")
            finally:
                self._hub._done()
