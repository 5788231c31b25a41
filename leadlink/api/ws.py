"""WebSocket transport for the notification bus."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from leadlink.common.logging import get_logger

logger = get_logger("ws.manager")


def _envelope(channel: str | None, event: str, data: dict[str, Any]) -> str:
    return json.dumps(
        {
            "event": event,
            "data": data,
            "channel": channel,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        default=str,
    )


class ConnectionManager:
    """Manages WebSocket connections grouped by notification channel.

    One connection may be joined to several channels.
    """

    def __init__(self):
        self._channels: dict[str, dict[str, WebSocket]] = {}  # channel -> {conn_id: ws}

    async def accept(self, websocket: WebSocket) -> str:
        await websocket.accept()
        return uuid.uuid4().hex[:12]

    def join(self, channel: str, conn_id: str, websocket: WebSocket) -> None:
        self._channels.setdefault(channel, {})[conn_id] = websocket
        logger.info("WS joined: channel=%s conn=%s (%d in channel)", channel, conn_id, len(self._channels[channel]))

    def leave(self, channel: str, conn_id: str) -> None:
        if channel in self._channels:
            self._channels[channel].pop(conn_id, None)
            if not self._channels[channel]:
                del self._channels[channel]

    def disconnect(self, conn_id: str) -> None:
        for channel in list(self._channels):
            self.leave(channel, conn_id)
        logger.info("WS disconnected: conn=%s", conn_id)

    async def broadcast(self, channel: str, event: str, data: dict[str, Any]) -> int:
        if channel not in self._channels:
            return 0
        message = _envelope(channel, event, data)
        delivered = 0
        dead = []
        for conn_id, ws in list(self._channels[channel].items()):
            try:
                if ws.client_state == WebSocketState.CONNECTED:
                    await ws.send_text(message)
                    delivered += 1
            except Exception as e:
                logger.warning("WS send failed: channel=%s conn=%s: %s", channel, conn_id, e)
                dead.append(conn_id)
        for conn_id in dead:
            self.leave(channel, conn_id)
        return delivered

    async def send_personal(self, websocket: WebSocket, event: str, data: dict[str, Any]) -> None:
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.send_text(_envelope(None, event, data))

    def channels_for(self, conn_id: str) -> list[str]:
        return [c for c, conns in self._channels.items() if conn_id in conns]

    @property
    def active_connections(self) -> int:
        return len({conn_id for conns in self._channels.values() for conn_id in conns})
