"""WebSocket relay endpoint for sync sessions."""

import json
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from loguru import logger

from ..deps import get_relay
from ..relay import SyncRelay

router = APIRouter()


@router.websocket("/ws/sync/{topic}")
async def sync_websocket(
    websocket: WebSocket,
    topic: str,
    key: Optional[str] = None,
    relay: SyncRelay = Depends(get_relay),
):
    """Subscribe to ``topic`` with presence ``key``."""
    key = key or f"anon-{uuid.uuid4().hex[:9]}"
    await relay.connect(topic, key, websocket)

    try:
        while True:
            message = await websocket.receive_text()
            try:
                data = json.loads(message)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON from WebSocket: {message}")
                continue

            if isinstance(data, dict):
                await relay.handle_frame(topic, key, data)

    except WebSocketDisconnect:
        await relay.disconnect(topic, key, websocket)
