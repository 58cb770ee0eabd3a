"""
SOSNet - WebSocket Routes
Clients subscribe to a signal room to receive live responder, chat and location events
"""
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Query

from sosnet.ws_handlers.handler import ROOM_JOINED, format_event, sos_room

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws/sos/{sos_id}")
async def sos_websocket(
    websocket: WebSocket,
    sos_id: str,
    citizen_id: str = Query(None)
):
    """
    WebSocket for real-time SOS updates.
    Victim and responders connect after submitting/accepting to follow the signal.
    """
    relay = websocket.app.state.relay
    await relay.connect(websocket)

    async def join(room_sos_id: str, user_id: str = None):
        room = sos_room(room_sos_id)
        relay.join(websocket, room, user_id)
        await relay.send_personal_message(format_event(ROOM_JOINED, {
            "room": room,
            "message": "Connected to real-time updates"
        }), websocket)

    try:
        await join(sos_id, citizen_id)

        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                logger.debug("[WS] Ignoring frame that is not JSON")
                continue
            if not isinstance(data, dict):
                continue

            if data.get("type") == "PING":
                await relay.send_personal_message({"type": "PONG"}, websocket)
            elif data.get("type") == "join-sos-room" and data.get("sosId"):
                # Follow an additional signal on the same connection
                await join(data["sosId"], data.get("citizenId"))

    except WebSocketDisconnect:
        pass
    finally:
        relay.disconnect(websocket)
