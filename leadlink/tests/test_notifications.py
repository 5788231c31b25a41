import json
import uuid

import pytest
from starlette.websockets import WebSocketState

from leadlink.api.deps import Account
from leadlink.api.v1.ws import handle_message, own_channel
from leadlink.api.ws import ConnectionManager
from leadlink.common.enums import AccountKind, NotificationEvent
from leadlink.common.exceptions import NotInitializedError
from leadlink.core.notifications.bus import NotificationBus, user_channel, vendor_channel


class FakeWebSocket:
    def __init__(self, fail: bool = False):
        self.client_state = WebSocketState.CONNECTING
        self.sent: list[dict] = []
        self.fail = fail

    async def accept(self):
        self.client_state = WebSocketState.CONNECTED

    async def send_text(self, text: str):
        if self.fail:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))


def _account(kind: AccountKind) -> Account:
    return Account(id=uuid.uuid4(), kind=kind, role=kind.value, email="a@test.com", name="A", record=None)


# ---------- Bus ----------


def test_channel_names():
    some_id = uuid.UUID("12345678-1234-5678-1234-567812345678")
    assert vendor_channel(some_id) == f"vendor-{some_id}"
    assert user_channel(some_id) == f"user-{some_id}"


@pytest.mark.asyncio
async def test_publish_without_transport_raises():
    bus = NotificationBus()
    assert not bus.is_ready
    with pytest.raises(NotInitializedError):
        await bus.publish("user-1", NotificationEvent.ENQUIRY_UPDATE, {})


@pytest.mark.asyncio
async def test_publish_after_detach_raises(transport):
    bus = NotificationBus(transport)
    bus.detach()
    with pytest.raises(NotInitializedError):
        await bus.notify_user(uuid.uuid4(), NotificationEvent.ENQUIRY_UPDATE, {})


@pytest.mark.asyncio
async def test_notify_routes_to_participant_channel(bus, transport):
    vendor_id, user_id = uuid.uuid4(), uuid.uuid4()
    await bus.notify_vendor(vendor_id, NotificationEvent.NEW_ENQUIRY, {"message": "hi"})
    await bus.notify_user(user_id, NotificationEvent.ENQUIRY_UPDATE, {"status": "accepted"})

    assert transport.sent == [
        (f"vendor-{vendor_id}", "new-enquiry", {"message": "hi"}),
        (f"user-{user_id}", "enquiry-update", {"status": "accepted"}),
    ]


# ---------- WebSocket transport ----------


@pytest.mark.asyncio
async def test_broadcast_reaches_only_joined_connections():
    manager = ConnectionManager()
    a, b = FakeWebSocket(), FakeWebSocket()
    conn_a, conn_b = await manager.accept(a), await manager.accept(b)
    manager.join("vendor-1", conn_a, a)
    manager.join("vendor-2", conn_b, b)

    delivered = await manager.broadcast("vendor-1", "new-enquiry", {"message": "Leak"})

    assert delivered == 1
    assert a.sent[0]["event"] == "new-enquiry"
    assert a.sent[0]["channel"] == "vendor-1"
    assert a.sent[0]["data"] == {"message": "Leak"}
    assert b.sent == []


@pytest.mark.asyncio
async def test_broadcast_to_empty_channel_is_dropped():
    manager = ConnectionManager()
    assert await manager.broadcast("user-nobody", "enquiry-update", {}) == 0


@pytest.mark.asyncio
async def test_dead_connection_is_pruned():
    manager = ConnectionManager()
    dead = FakeWebSocket(fail=True)
    conn = await manager.accept(dead)
    manager.join("user-1", conn, dead)

    assert await manager.broadcast("user-1", "enquiry-update", {}) == 0
    assert manager.channels_for(conn) == []


@pytest.mark.asyncio
async def test_disconnect_leaves_every_channel():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)
    manager.join("user-1", conn, ws)
    manager.join("user-2", conn, ws)
    assert manager.active_connections == 1

    manager.disconnect(conn)
    assert manager.channels_for(conn) == []
    assert manager.active_connections == 0


@pytest.mark.asyncio
async def test_bus_over_websocket_transport():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)
    user_id = uuid.uuid4()
    manager.join(user_channel(user_id), conn, ws)

    bus = NotificationBus()
    bus.attach(manager)
    assert await bus.notify_user(user_id, NotificationEvent.ENQUIRY_UPDATE, {"status": "accepted"}) == 1
    assert ws.sent[0]["event"] == "enquiry-update"


# ---------- Client actions ----------


@pytest.mark.asyncio
async def test_ping_gets_pong():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)

    await handle_message(manager, ws, conn, _account(AccountKind.USER), '{"action": "ping"}')
    assert ws.sent[-1]["event"] == "pong"


@pytest.mark.asyncio
async def test_join_own_channel():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)
    vendor = _account(AccountKind.VENDOR)

    raw = json.dumps({"action": "vendor-join", "id": str(vendor.id)})
    await handle_message(manager, ws, conn, vendor, raw)

    assert manager.channels_for(conn) == [own_channel(vendor)]
    assert ws.sent[-1]["data"] == {"channel": f"vendor-{vendor.id}"}


@pytest.mark.asyncio
async def test_join_someone_elses_channel_refused():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)
    user = _account(AccountKind.USER)

    await handle_message(manager, ws, conn, user, json.dumps({"action": "user-join", "id": str(uuid.uuid4())}))
    await handle_message(manager, ws, conn, user, json.dumps({"action": "vendor-join", "id": str(user.id)}))

    assert manager.channels_for(conn) == []
    assert [m["event"] for m in ws.sent] == ["error", "error"]


@pytest.mark.asyncio
async def test_bad_messages_get_errors():
    manager = ConnectionManager()
    ws = FakeWebSocket()
    conn = await manager.accept(ws)
    user = _account(AccountKind.USER)

    await handle_message(manager, ws, conn, user, "not json")
    await handle_message(manager, ws, conn, user, "[1, 2]")
    await handle_message(manager, ws, conn, user, '{"action": "dance"}')

    assert [m["event"] for m in ws.sent] == ["error", "error", "error"]


# ---------- Endpoint ----------


def test_socket_released_after_binary_frame(monkeypatch):
    from fastapi.testclient import TestClient

    from leadlink.api.v1 import ws as ws_endpoint
    from leadlink.main import app

    user = _account(AccountKind.USER)

    async def _authenticate(token):
        return user

    monkeypatch.setattr(ws_endpoint, "authenticate", _authenticate)

    with TestClient(app) as client:
        manager = app.state.connections
        with client.websocket_connect("/api/v1/ws?token=ok") as sock:
            assert sock.receive_json()["data"] == {"channel": user_channel(user.id)}
            assert manager.active_connections == 1

            sock.send_bytes(b"\x00\x01")
            reply = sock.receive_json()
            assert reply["event"] == "error"

            sock.send_text('{"action": "ping"}')
            assert sock.receive_json()["event"] == "pong"

        assert manager.active_connections == 0
        assert user_channel(user.id) not in manager._channels


def test_socket_with_bad_token_is_closed(monkeypatch):
    from fastapi.testclient import TestClient
    from starlette.websockets import WebSocketDisconnect

    from leadlink.api.v1 import ws as ws_endpoint
    from leadlink.main import app

    async def _authenticate(token):
        return None

    monkeypatch.setattr(ws_endpoint, "authenticate", _authenticate)

    with TestClient(app) as client:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/api/v1/ws?token=bad") as sock:
                sock.receive_json()
        assert exc_info.value.code == 4001
        assert app.state.connections.active_connections == 0
