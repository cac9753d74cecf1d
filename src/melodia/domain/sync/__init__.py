"""Sync domain - mirror one host's playback onto guest devices.

This domain handles:
- Sync session replicas (users, host, lock, shared queue)
- Broadcast channels (in-process hub, WebSocket relay client)
- The controller that broadcasts host intents and applies them on guests
"""

from .channel import ChannelFactory, LocalBroadcastHub, LocalChannel, SyncChannel
from .exceptions import ChannelError, NotHostError, SyncError
from .models import SyncSession, SyncUser, generate_session_id, generate_user_id
from .session import SyncController
from .websocket_channel import WebSocketChannel, websocket_channel_factory

__all__ = [
    "ChannelFactory",
    "SyncChannel",
    "LocalBroadcastHub",
    "LocalChannel",
    "WebSocketChannel",
    "websocket_channel_factory",
    "SyncSession",
    "SyncUser",
    "generate_session_id",
    "generate_user_id",
    "SyncController",
    "SyncError",
    "ChannelError",
    "NotHostError",
]
