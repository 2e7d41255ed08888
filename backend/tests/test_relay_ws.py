"""End-to-end tests for the relay over the plain WebSocket endpoint.

Frames in both directions are {"event": ..., "data": ...}. Every connection
is greeted with room_list and starts in the default room.
"""
from fastapi.testclient import TestClient

from relay.main import app


client = TestClient(app)


def receive_event(ws, expected: str):
    """Helper to receive one frame and check its event name."""
    frame = ws.receive_json()
    assert frame["event"] == expected, frame
    return frame["data"]


def open_relay(ws):
    """Helper to consume the room_list greeting."""
    return receive_event(ws, "room_list")


def send_event(ws, event: str, data=None):
    ws.send_json({"event": event, "data": data})


def test_connect_receives_room_list():
    with client.websocket_connect("/ws/relay") as ws:
        rooms = open_relay(ws)
        assert rooms == [{"id": "general", "name": "General", "isPublic": True, "memberCount": 1}]


def test_team_room_scenario(hub):
    """Create a room, chat in it, and replay history to a late joiner."""
    with client.websocket_connect("/ws/relay") as ws1, \
         client.websocket_connect("/ws/relay") as ws2:
        open_relay(ws1)
        open_relay(ws2)

        send_event(ws1, "create_room", {"id": "team", "name": "Team", "isPublic": True})
        created = receive_event(ws1, "room_created")
        assert created == {"id": "team", "name": "Team", "isPublic": True, "memberCount": 1}
        assert receive_event(ws1, "room_joined") == {"roomId": "team", "messages": []}
        assert receive_event(ws2, "room_created") == created

        send_event(ws2, "join_room", "team")
        assert receive_event(ws2, "room_history") == {"roomId": "team", "messages": []}
        assert receive_event(ws2, "room_joined") == {"roomId": "team"}

        send_event(ws1, "message", {"content": "hi", "author": {"email": "a@x"}, "roomId": "team"})
        data1 = receive_event(ws1, "message")
        data2 = receive_event(ws2, "message")

        assert data1 == data2
        assert data1["roomId"] == "team"
        assert data1["content"] == "hi"
        assert "id" in data1
        assert "timestamp" in data1

        with client.websocket_connect("/ws/relay") as ws3:
            open_relay(ws3)
            send_event(ws3, "join_room", "team")
            history = receive_event(ws3, "room_history")
            assert history["messages"] == [data1]
            receive_event(ws3, "room_joined")

    assert hub.state.membership_consistent()


def test_messages_arrive_in_send_order():
    with client.websocket_connect("/ws/relay") as ws1, \
         client.websocket_connect("/ws/relay") as ws2:
        open_relay(ws1)
        open_relay(ws2)

        for text in ("A", "B", "C"):
            send_event(ws1, "message", {"content": text, "author": {"email": "a@x"}})

        for ws in (ws1, ws2):
            received = [receive_event(ws, "message")["content"] for _ in range(3)]
            assert received == ["A", "B", "C"]


def test_join_unknown_room_reports_error_and_keeps_connection(hub):
    with client.websocket_connect("/ws/relay") as ws:
        open_relay(ws)

        send_event(ws, "join_room", "does-not-exist")
        error = receive_event(ws, "error")
        assert error["detail"] == "room_not_found"

        # Connection still works after the error
        send_event(ws, "message", {"content": "still here", "author": {"email": "a@x"}})
        assert receive_event(ws, "message")["content"] == "still here"

        rooms = {r["id"]: r["memberCount"] for r in hub.state.list_rooms()}
        assert rooms == {"general": 1}


def test_malformed_frames_are_rejected():
    with client.websocket_connect("/ws/relay") as ws:
        open_relay(ws)

        ws.send_text("not json")
        assert receive_event(ws, "error")["detail"] == "invalid_message"

        ws.send_json({"data": "missing event"})
        assert receive_event(ws, "error")["detail"] == "invalid_message"

        send_event(ws, "dance")
        assert receive_event(ws, "error")["detail"] == "unknown_event"


def test_invalid_message_error_goes_to_sender_only():
    with client.websocket_connect("/ws/relay") as ws1, \
         client.websocket_connect("/ws/relay") as ws2:
        open_relay(ws1)
        open_relay(ws2)

        send_event(ws1, "message", {"content": "", "author": {"email": "a@x"}})
        assert receive_event(ws1, "error")["detail"] == "invalid_message"

        send_event(ws2, "message", {"content": "next", "author": {"email": "b@x"}})
        # ws2's first frame is its own message, not ws1's error
        assert receive_event(ws2, "message")["content"] == "next"
        assert receive_event(ws1, "message")["content"] == "next"


def test_private_room_forbidden_over_websocket():
    with client.websocket_connect("/ws/relay") as owner, \
         client.websocket_connect("/ws/relay") as intruder:
        open_relay(owner)
        open_relay(intruder)

        send_event(owner, "identify", {"name": "Owner", "email": "owner@x"})
        send_event(owner, "create_room", {"id": "secret", "name": "Secret", "isPublic": False})
        assert receive_event(owner, "room_joined")["roomId"] == "secret"

        send_event(intruder, "identify", {"name": "Intruder", "email": "intruder@x"})
        send_event(intruder, "join_room", "secret")
        assert receive_event(intruder, "error")["detail"] == "private_room_forbidden"


def test_disconnect_updates_member_counts(hub):
    with client.websocket_connect("/ws/relay") as ws1:
        open_relay(ws1)
        with client.websocket_connect("/ws/relay") as ws2:
            rooms = open_relay(ws2)
            assert rooms[0]["memberCount"] == 2
            send_event(ws2, "create_room", {"id": "team", "name": "Team", "isPublic": True})
            receive_event(ws2, "room_created")
            receive_event(ws2, "room_joined")
            receive_event(ws1, "room_created")

        # ws2 closed: it must be gone from every room
        send_event(ws1, "join_room", "team")
        receive_event(ws1, "room_history")
        receive_event(ws1, "room_joined")

        counts = {r.id: r.memberCount for r in hub.state.list_rooms()}
        assert counts == {"general": 1, "team": 1}
        assert hub.state.membership_consistent()


# =============================================================================
# HTTP endpoints
# =============================================================================


def test_root_and_health(api_client):
    assert api_client.get("/").text == "Socket.IO server"
    assert api_client.get("/health").json() == {"status": "ok"}


def test_list_rooms_endpoint(api_client):
    response = api_client.get("/rooms")
    assert response.status_code == 200
    assert response.json() == [{"id": "general", "name": "General", "isPublic": True, "memberCount": 0}]


def test_room_history_endpoint(api_client):
    with client.websocket_connect("/ws/relay") as ws:
        open_relay(ws)
        for text in ("one", "two", "three"):
            send_event(ws, "message", {"content": text, "author": {"email": "a@x"}})
            receive_event(ws, "message")

    response = api_client.get("/rooms/general/history", params={"limit": 2})
    assert response.status_code == 200
    body = response.json()
    assert body["roomId"] == "general"
    assert [m["content"] for m in body["messages"]] == ["two", "three"]


def test_room_history_unknown_room(api_client):
    response = api_client.get("/rooms/nope/history")
    assert response.status_code == 404


def test_room_history_limit_bounds(api_client):
    assert api_client.get("/rooms/general/history", params={"limit": 0}).status_code == 422
    assert api_client.get("/rooms/general/history", params={"limit": 101}).status_code == 422
