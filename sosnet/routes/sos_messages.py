"""
SOSNet - SOS Messaging Routes
Signal-level message thread and manual status changes
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
import logging

from sosnet.database import get_db
from sosnet.auth.oauth2 import get_current_user, display_name
from sosnet.models.db_models import (
    SosSignal, User, UserRole, SignalStatus, StatusUpdateType, utcnow
)
from sosnet.models.serializers import serialize_signal, serialize_status_update
from sosnet.ws_handlers.handler import (
    RoomRelay, get_relay, notify_chat_message, notify_status_change
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sos", tags=["SOS Messaging"])

TERMINAL_STATUSES = (SignalStatus.RESOLVED, SignalStatus.FALSE_ALARM)


class SignalMessageCreate(BaseModel):
    message: str = Field(min_length=1)


class SignalStatusChange(BaseModel):
    status: SignalStatus
    notes: Optional[str] = None


def get_accessible_signal(db: Session, sos_id: str, user: User) -> SosSignal:
    """Load a signal the caller owns, is assigned to, or may see by role"""
    sos = db.query(SosSignal).filter(SosSignal.id == sos_id).first()
    if not sos:
        raise HTTPException(status_code=404, detail="SOS signal not found")

    is_owner = sos.user_id == user.id
    is_assigned = sos.assigned_responder == user.id
    if not (is_owner or is_assigned or user.role in (UserRole.RESPONDER, UserRole.ADMIN)):
        raise HTTPException(status_code=403, detail="Access denied")
    return sos


@router.post("/{sos_id}/messages")
async def send_signal_message(
    sos_id: str,
    body: SignalMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    sos = get_accessible_signal(db, sos_id, current_user)

    sender_name = display_name(current_user)
    update = sos.add_status_update(
        f"{sender_name}: {body.message}",
        StatusUpdateType.CHAT_MESSAGE,
        sender_id=current_user.id,
        sender_name=sender_name,
        sender_role=current_user.role.value
    )
    db.commit()
    db.refresh(update)

    payload = serialize_status_update(update)
    await notify_chat_message(relay, sos.id, {
        "sender": sender_name,
        "sender_type": current_user.role.value,
        "message": body.message,
        "timestamp": payload["timestamp"]
    })

    return {
        "success": True,
        "message": "Message sent",
        "data": payload
    }


@router.get("/{sos_id}/messages")
async def get_signal_messages(
    sos_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    sos = get_accessible_signal(db, sos_id, current_user)

    messages = [
        serialize_status_update(update)
        for update in sos.status_updates
        if update.update_type == StatusUpdateType.CHAT_MESSAGE
    ]
    return {
        "success": True,
        "data": messages,
        "count": len(messages)
    }


@router.put("/{sos_id}/status")
async def change_signal_status(
    sos_id: str,
    body: SignalStatusChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """Manual status change. No transition validation."""
    sos = get_accessible_signal(db, sos_id, current_user)

    old_status = sos.status.value
    sos.status = body.status
    if body.status in TERMINAL_STATUSES and not sos.resolution_time:
        sos.resolution_time = utcnow()

    notice = f"Status changed to {body.status.value.replace('_', ' ')}"
    if body.notes:
        notice = f"{notice}: {body.notes}"
    sos.add_status_update(
        notice,
        StatusUpdateType.SYSTEM_UPDATE,
        sender_id=current_user.id,
        sender_name=display_name(current_user),
        sender_role=current_user.role.value
    )
    db.commit()

    logger.info(f"[SOS] {sos.id} status {old_status} -> {body.status.value} by {current_user.id}")

    await notify_status_change(relay, sos.id, body.status.value, old_status, display_name(current_user))

    db.refresh(sos)
    return {
        "success": True,
        "message": "Status updated",
        "data": serialize_signal(sos)
    }
