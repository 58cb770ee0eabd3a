"""Tests for the in-process room relay and the websocket endpoint."""
import asyncio

from sosnet.ws_handlers.handler import InProcessRelay, format_event, sos_room


class FakeWebSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, message):
        if self.fail:
            raise RuntimeError("connection closed")
        self.sent.append(message)


class TestInProcessRelay:
    def test_publish_reaches_only_room_members(self):
        relay = InProcessRelay()
        inside, outside = FakeWebSocket(), FakeWebSocket()
        relay.join(inside, sos_room("a"))
        relay.join(outside, sos_room("b"))

        delivered = asyncio.run(relay.publish(sos_room("a"), "responder-update", {"status": "en_route"}))

        assert delivered == 1
        assert outside.sent == []
        message = inside.sent[0]
        assert message["event"] == "responder-update"
        assert message["type"] == "status_update"
        assert message["data"] == {"status": "en_route"}
        assert message["timestamp"]

    def test_empty_room_is_noop(self):
        relay = InProcessRelay()
        assert asyncio.run(relay.publish(sos_room("nobody"), "new-message", {})) == 0

    def test_dead_connections_pruned(self):
        relay = InProcessRelay()
        alive, dead = FakeWebSocket(), FakeWebSocket(fail=True)
        relay.join(alive, "sos_x", user_id="u1")
        relay.join(dead, "sos_x", user_id="u2")

        delivered = asyncio.run(relay.publish("sos_x", "status-update", {"status": "resolved"}))

        assert delivered == 1
        assert relay.active_connections["sos_x"] == [alive]
        assert relay.is_user_connected("u1")
        assert not relay.is_user_connected("u2")

    def test_disconnect_leaves_every_room(self):
        relay = InProcessRelay()
        ws = FakeWebSocket()
        relay.join(ws, "sos_1", user_id="u1")
        relay.join(ws, "sos_2")

        relay.disconnect(ws)

        assert relay.active_connections == {}
        assert relay.connected_count() == 0

    def test_join_is_idempotent(self):
        relay = InProcessRelay()
        ws = FakeWebSocket()
        relay.join(ws, "sos_1")
        relay.join(ws, "sos_1")

        assert relay.active_connections["sos_1"] == [ws]

    def test_format_event_unknown_type_falls_back_to_name(self):
        assert format_event("custom", {})["type"] == "custom"


class TestWebSocketEndpoint:
    def test_join_and_ping(self, client, relay):
        with client.websocket_connect("/ws/sos/abc?citizen_id=citizen-1") as ws:
            joined = ws.receive_json()
            assert joined["event"] == "room-joined"
            assert joined["data"]["room"] == "sos_abc"
            assert relay.is_user_connected("citizen-1")

            ws.send_json({"type": "PING"})
            assert ws.receive_json() == {"type": "PONG"}

            ws.send_json({"type": "join-sos-room", "sosId": "def"})
            assert ws.receive_json()["data"]["room"] == "sos_def"
            assert "sos_def" in relay.active_connections

    def test_malformed_frames_are_ignored(self, client, relay):
        with client.websocket_connect("/ws/sos/abc?citizen_id=u1") as ws:
            ws.receive_json()

            ws.send_text("not json")
            ws.send_json([1, 2, 3])
            ws.send_json({"type": "PING"})

            assert ws.receive_json() == {"type": "PONG"}

    def test_closed_socket_leaves_every_room(self, client, relay):
        with client.websocket_connect("/ws/sos/abc?citizen_id=u1") as ws:
            ws.receive_json()
            ws.send_text("not json")
            ws.send_json({"type": "join-sos-room", "sosId": "def"})
            ws.receive_json()

        assert relay.active_connections == {}
        assert not relay.is_user_connected("u1")
        assert client.get("/health").json()["websocket_clients"] == 0
