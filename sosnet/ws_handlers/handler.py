"""
SOSNet - Notification Relay
Room-per-signal real-time fan-out for SOS status, chat and location events
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import Request, WebSocket

logger = logging.getLogger(__name__)


# Relay event names pushed to SOS rooms
RESPONDER_UPDATE = "responder-update"
NEW_MESSAGE = "new-message"
LOCATION_UPDATE = "location-update"
STATUS_UPDATE = "status-update"
SOS_ESCALATED = "sos-escalated"
ROOM_JOINED = "room-joined"

EVENT_TYPES = {
    RESPONDER_UPDATE: "status_update",
    NEW_MESSAGE: "chat_message",
    LOCATION_UPDATE: "location",
    STATUS_UPDATE: "signal_status",
    SOS_ESCALATED: "escalation",
}


def sos_room(sos_id: str) -> str:
    return f"sos_{sos_id}"


def format_event(event: str, data: dict) -> dict:
    return {
        "event": event,
        "type": EVENT_TYPES.get(event, event),
        "data": data,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


class RoomRelay(ABC):
    """Publish-to-room interface; the transport behind it is swappable"""

    @abstractmethod
    async def publish(self, room: str, event: str, data: dict) -> int:
        """Push an event to every subscriber of a room. Returns delivered count."""


class InProcessRelay(RoomRelay):
    """
    Websocket connections held in process memory, keyed by room name.
    Best effort: no delivery guarantee and no replay for late joiners.
    Lost on restart.
    """

    def __init__(self):
        # Active connections by room
        self.active_connections: Dict[str, List[WebSocket]] = {}
        # Citizen/user id -> websocket
        self.connected_users: Dict[str, WebSocket] = {}

    async def connect(self, websocket: WebSocket):
        """Accept a websocket before it joins any room"""
        await websocket.accept()

    def join(self, websocket: WebSocket, room: str, user_id: Optional[str] = None):
        connections = self.active_connections.setdefault(room, [])
        if websocket not in connections:
            connections.append(websocket)
        if user_id:
            self.connected_users[user_id] = websocket
        logger.info(f"[RELAY] Joined room: {room}")

    def disconnect(self, websocket: WebSocket):
        """Remove a connection from every room it joined"""
        for room in list(self.active_connections):
            connections = self.active_connections[room]
            if websocket in connections:
                connections.remove(websocket)
            if not connections:
                del self.active_connections[room]

        for user_id, connection in list(self.connected_users.items()):
            if connection is websocket:
                del self.connected_users[user_id]

        logger.info("[RELAY] Client disconnected")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send message to specific connection"""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"[RELAY] Send error: {e}")

    async def publish(self, room: str, event: str, data: dict) -> int:
        connections = self.active_connections.get(room)
        if not connections:
            logger.debug(f"[RELAY] No subscribers for {event} in room: {room}")
            return 0

        message = format_event(event, data)
        delivered = 0
        disconnected = []
        for connection in list(connections):
            try:
                await connection.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"[RELAY] Dropping dead connection in {room}: {e}")
                disconnected.append(connection)

        # Clean up disconnected
        for conn in disconnected:
            self.disconnect(conn)

        logger.info(f"[RELAY] Sent {event} to room: {room} ({delivered} delivered)")
        return delivered

    def connected_count(self) -> int:
        return len(self.connected_users)

    def is_user_connected(self, user_id: str) -> bool:
        return user_id in self.connected_users


def get_relay(request: Request) -> RoomRelay:
    """Relay dependency; the instance is built once in create_app()"""
    return request.app.state.relay


# ==================== BROADCAST HELPERS ====================

async def notify_responder_update(relay: RoomRelay, sos_id: str, update: dict):
    """Notify a signal's watchers of responder progress"""
    await relay.publish(sos_room(sos_id), RESPONDER_UPDATE, update)


async def notify_chat_message(relay: RoomRelay, sos_id: str, message: dict):
    await relay.publish(sos_room(sos_id), NEW_MESSAGE, message)


async def notify_location_update(relay: RoomRelay, sos_id: str, location: dict):
    await relay.publish(sos_room(sos_id), LOCATION_UPDATE, location)


async def notify_status_change(relay: RoomRelay, sos_id: str, status: str, old_status: str = None, updated_by: str = None):
    await relay.publish(sos_room(sos_id), STATUS_UPDATE, {
        "sosId": sos_id,
        "status": status,
        "oldStatus": old_status,
        "updatedBy": updated_by
    })


async def notify_escalation(relay: RoomRelay, sos_id: str, escalation_level: int):
    await relay.publish(sos_room(sos_id), SOS_ESCALATED, {
        "sosId": sos_id,
        "escalation_level": escalation_level
    })
