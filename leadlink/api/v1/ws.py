"""WebSocket endpoint for real-time lead notifications.

Clients connect with ``/api/v1/ws?token=<jwt>`` and are joined to their own
channel straight away. They may also send::

    {"action": "vendor-join", "id": "<vendor id>"}
    {"action": "user-join", "id": "<user id>"}
    {"action": "ping"}

Join requests are honoured only for the caller's own id.
"""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from leadlink.api.deps import Account, resolve_account
from leadlink.api.ws import ConnectionManager
from leadlink.common.enums import AccountKind
from leadlink.common.exceptions import LeadLinkException
from leadlink.common.logging import get_logger
from leadlink.common.security import decode_token
from leadlink.core.notifications.bus import user_channel, vendor_channel
from leadlink.db.session import async_session_factory

router = APIRouter(tags=["WebSocket"])

logger = get_logger("ws")

JOIN_ACTIONS = {
    "vendor-join": AccountKind.VENDOR,
    "user-join": AccountKind.USER,
}


def own_channel(account: Account) -> str:
    if account.is_vendor:
        return vendor_channel(account.id)
    return user_channel(account.id)


async def authenticate(token: str) -> Account | None:
    try:
        payload = decode_token(token)
    except ValueError:
        return None
    async with async_session_factory() as db:
        try:
            return await resolve_account(db, payload)
        except LeadLinkException as e:
            logger.info("WS auth rejected: %s", e.detail)
            return None


async def handle_message(
    manager: ConnectionManager, ws: WebSocket, conn_id: str, account: Account, raw: str
) -> None:
    try:
        msg = json.loads(raw)
    except json.JSONDecodeError:
        await manager.send_personal(ws, "error", {"message": "Invalid JSON"})
        return
    if not isinstance(msg, dict):
        await manager.send_personal(ws, "error", {"message": "Expected a JSON object"})
        return

    action = msg.get("action")
    if action == "ping":
        await manager.send_personal(ws, "pong", {})
        return

    kind = JOIN_ACTIONS.get(action)
    if kind is None:
        await manager.send_personal(ws, "error", {"message": f"Unknown action: {action}"})
        return

    if kind != account.kind or str(msg.get("id")) != str(account.id):
        logger.warning("WS join refused: conn=%s account=%s asked for %s %s", conn_id, account.id, action, msg.get("id"))
        await manager.send_personal(ws, "error", {"message": "You can only join your own channel"})
        return

    channel = own_channel(account)
    manager.join(channel, conn_id, ws)
    await manager.send_personal(ws, "joined", {"channel": channel})


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    """Authenticate via token query param, then stream lead notifications."""
    account = await authenticate(ws.query_params.get("token", ""))
    if account is None:
        await ws.close(code=4001, reason="Invalid token")
        return

    manager: ConnectionManager = ws.app.state.connections
    conn_id = await manager.accept(ws)
    channel = own_channel(account)
    manager.join(channel, conn_id, ws)
    await manager.send_personal(ws, "joined", {"channel": channel})

    try:
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                break
            raw = message.get("text")
            if raw is None:
                await manager.send_personal(ws, "error", {"message": "Only text frames are accepted"})
                continue
            await handle_message(manager, ws, conn_id, account, raw)
    except WebSocketDisconnect:
        logger.debug("WS closed mid-send: conn=%s", conn_id)
    finally:
        manager.disconnect(conn_id)
