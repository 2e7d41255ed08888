"""Tests for the Socket.IO transport handlers.

Handlers are called directly on a real AsyncServer whose ``emit`` is
replaced with a recorder, so no network is involved.
"""
import pytest
import socketio

from relay.chat.socketio_server import create_socketio_server, register_handlers
from relay.config import RelayConfig


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def sio(hub, emitted):
    server = socketio.AsyncServer(async_mode="asgi")

    async def fake_emit(event, data=None, to=None, **kwargs):
        emitted.append((to, event, data))

    server.emit = fake_emit
    register_handlers(server, lambda: hub)
    return server


def handler(sio, event):
    return sio.handlers["/"][event]


async def flush(hub, *sids):
    for sid in sids:
        await hub.state.outbox(sid).flush()


def events_for(emitted, sid):
    return [(event, data) for to, event, data in emitted if to == sid]


def test_all_relay_events_registered(sio):
    registered = set(sio.handlers["/"])
    assert {"connect", "disconnect", "identify", "set_user_info", "create_room",
            "join_room", "leave_room", "message"} <= registered


def test_create_socketio_server_uses_config():
    config = RelayConfig(server={"cors_origins": ["http://example.com"], "transports": ["polling"]})
    server = create_socketio_server(config)
    assert isinstance(server, socketio.AsyncServer)
    assert server.eio.transports == ["polling"]
    assert server.eio.cors_allowed_origins == ["http://example.com"]


@pytest.mark.asyncio
async def test_connect_sends_room_list(sio, hub, emitted):
    await handler(sio, "connect")("sid-1", {})
    await flush(hub, "sid-1")

    assert events_for(emitted, "sid-1") == [
        ("room_list", [{"id": "general", "name": "General", "isPublic": True, "memberCount": 1}])
    ]
    assert "sid-1" in hub.state.rooms.members("general")


@pytest.mark.asyncio
async def test_message_round_trip_and_disconnect(sio, hub, emitted):
    await handler(sio, "connect")("sid-1", {})
    await handler(sio, "connect")("sid-2", {})
    await handler(sio, "set_user_info")("sid-1", {"name": "Ann", "email": "a@x"})
    await handler(sio, "message")("sid-1", {"content": "hi", "user": {"email": "a@x"}})
    await flush(hub, "sid-1", "sid-2")

    message1 = [data for event, data in events_for(emitted, "sid-1") if event == "message"]
    message2 = [data for event, data in events_for(emitted, "sid-2") if event == "message"]
    assert message1 == message2
    assert message1[0]["originConnectionId"] == "sid-1"
    assert message1[0]["author"] == {"email": "a@x"}

    await handler(sio, "disconnect")("sid-1", "client namespace disconnect")
    assert "sid-1" not in hub.state.connections
    assert hub.state.rooms.members("general") == {"sid-2"}
    assert hub.state.membership_consistent()


@pytest.mark.asyncio
async def test_disconnect_without_reason(sio, hub):
    await handler(sio, "connect")("sid-1", {})
    await handler(sio, "disconnect")("sid-1")
    assert len(hub.state.connections) == 0


@pytest.mark.asyncio
async def test_errors_are_emitted_to_sender(sio, hub, emitted):
    await handler(sio, "connect")("sid-1", {})
    await handler(sio, "join_room")("sid-1", "nope")
    await flush(hub, "sid-1")

    errors = [data for event, data in events_for(emitted, "sid-1") if event == "error"]
    assert errors == [{"message": "Room 'nope' not found", "detail": "room_not_found"}]
