"""Sync channel backed by the relay's WebSocket endpoint."""

import asyncio
import json
from typing import Any, Optional
from urllib.parse import quote

import websockets
from loguru import logger
from websockets.exceptions import ConnectionClosed, WebSocketException

from .channel import SyncChannel, broadcast_frame
from .exceptions import ChannelError

OPEN_TIMEOUT = 10.0


class WebSocketChannel(SyncChannel):
    """Subscribe to ``<relay_url>/<topic>?key=<user id>``.

    Subscription failures raise ``ChannelError`` and are not retried; a
    dropped connection is logged and leaves the channel unsubscribed.
    """

    def __init__(self, relay_url: str, topic: str, key: str) -> None:
        super().__init__(topic, key)
        self.url = f"{relay_url.rstrip('/')}/{quote(topic)}?key={quote(key)}"
        self._ws: Optional[Any] = None
        self._reader: Optional[asyncio.Task[None]] = None

    @property
    def subscribed(self) -> bool:
        return self._ws is not None

    async def subscribe(self) -> None:
        if self._ws is not None:
            return
        try:
            self._ws = await websockets.connect(self.url, open_timeout=OPEN_TIMEOUT)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            raise ChannelError(f"Could not subscribe to {self.topic}: {e}") from e
        logger.info(f"Subscribed to {self.topic}")
        self._reader = asyncio.create_task(self._read())

    async def _send_frame(self, frame: dict) -> None:
        if self._ws is None:
            raise ChannelError(f"Channel {self.topic} is not subscribed")
        try:
            await self._ws.send(json.dumps(frame))
        except (OSError, WebSocketException) as e:
            raise ChannelError(f"Send on {self.topic} failed: {e}") from e

    async def send(self, event: str, payload: dict) -> None:
        await self._send_frame(broadcast_frame(event, payload))

    async def track(self, meta: dict) -> None:
        await self._send_frame({"type": "track", "meta": meta})

    async def _read(self) -> None:
        ws = self._ws
        try:
            async for raw in ws:
                try:
                    frame = json.loads(raw)
                except json.JSONDecodeError:
                    logger.warning(f"Dropping non-JSON frame on {self.topic}")
                    continue
                if not isinstance(frame, dict):
                    continue
                try:
                    await self.handle_frame(frame)
                except Exception:
                    logger.exception(f"Sync handler failed on {self.topic}")
        except ConnectionClosed as e:
            logger.warning(f"Sync channel {self.topic} closed: {e}")
        finally:
            if self._ws is ws:
                self._ws = None

    async def unsubscribe(self) -> None:
        ws, reader = self._ws, self._reader
        self._ws = None
        self._reader = None

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if ws is not None:
            try:
                await ws.close()
            except (OSError, WebSocketException) as e:
                logger.debug(f"Closing {self.topic} failed: {e}")
            logger.info(f"Unsubscribed from {self.topic}")


def websocket_channel_factory(relay_url: str):
    """Channel factory for ``SyncController`` bound to one relay."""

    def factory(topic: str, key: str) -> WebSocketChannel:
        return WebSocketChannel(relay_url, topic, key)

    return factory
