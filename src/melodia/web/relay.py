"""WebSocket relay for sync session channels.

Subscribers connect to a topic with a presence key. Broadcast frames are
forwarded to every other subscriber of the same topic; presence metadata is
kept per topic and pushed in full to all subscribers whenever it changes.
"""

from typing import Any

from fastapi import WebSocket
from loguru import logger


class SyncRelay:
    """Topics, subscribers and presence for the sync relay endpoint."""

    def __init__(self) -> None:
        # {topic: {key: ws}}
        self.topics: dict[str, dict[str, WebSocket]] = {}
        # {topic: {key: meta}}
        self.presence: dict[str, dict[str, dict[str, Any]]] = {}

    async def connect(self, topic: str, key: str, ws: WebSocket) -> None:
        """Accept a subscriber; a reconnect with the same key replaces the old socket."""
        await ws.accept()
        self.topics.setdefault(topic, {})[key] = ws
        logger.info(f"Relay subscriber {key} joined {topic}")

        state = self.presence.get(topic)
        if state:
            await self._send(topic, key, ws, {"type": "presence", "state": dict(state)})

    async def disconnect(self, topic: str, key: str, ws: WebSocket) -> None:
        """Remove a subscriber (if still current) and its presence."""
        members = self.topics.get(topic, {})
        if members.get(key) is not ws:
            return
        del members[key]
        if not members:
            self.topics.pop(topic, None)
        logger.info(f"Relay subscriber {key} left {topic}")

        state = self.presence.get(topic, {})
        if state.pop(key, None) is not None:
            await self.publish_presence(topic)
        if not state:
            self.presence.pop(topic, None)

    async def handle_frame(self, topic: str, key: str, data: dict[str, Any]) -> None:
        """Route one frame received from ``key``."""
        frame_type = data.get("type")
        if frame_type == "broadcast":
            event = data.get("event")
            if not isinstance(event, str):
                logger.warning(f"Broadcast without event from {key} on {topic}")
                return
            payload = data.get("payload")
            await self.broadcast(topic, key, event, payload if isinstance(payload, dict) else {})
        elif frame_type == "track":
            meta = data.get("meta")
            await self.track(topic, key, meta if isinstance(meta, dict) else {})
        else:
            logger.debug(f"Ignoring frame type {frame_type!r} from {key}")

    async def broadcast(self, topic: str, sender: str, event: str, payload: dict) -> None:
        """Send a broadcast to every subscriber of ``topic`` except the sender."""
        message = {"type": "broadcast", "event": event, "payload": payload}
        for key, ws in list(self.topics.get(topic, {}).items()):
            if key != sender:
                await self._send(topic, key, ws, message)

    async def track(self, topic: str, key: str, meta: dict[str, Any]) -> None:
        if key not in self.topics.get(topic, {}):
            return
        self.presence.setdefault(topic, {})[key] = meta
        await self.publish_presence(topic)

    async def publish_presence(self, topic: str) -> None:
        message = {"type": "presence", "state": dict(self.presence.get(topic, {}))}
        for key, ws in list(self.topics.get(topic, {}).items()):
            await self._send(topic, key, ws, message)

    async def _send(self, topic: str, key: str, ws: WebSocket, message: dict) -> None:
        try:
            await ws.send_json(message)
        except Exception as e:
            logger.debug(f"Dropping dead relay subscriber {key} on {topic}: {e}")
            await self.disconnect(topic, key, ws)
