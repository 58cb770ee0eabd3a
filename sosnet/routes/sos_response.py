"""
SOSNet - SOS Response Routes
Discovery, civilian self-assignment, live status, victim chat, mark-safe and rescue completion.

Every handler is a load -> mutate -> commit sequence without locking or a
shared transaction. Concurrent accepts may both see the signal unassigned,
and a failure midway through mark-safe/complete leaves earlier writes in place.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
import logging

from sosnet.database import get_db
from sosnet.auth.oauth2 import get_current_user, display_name
from sosnet.models.db_models import (
    SosSignal, SosResponse, SosChatMessage, SosResponseNote, CivilianResponder,
    MissingPerson, User, UserRole, SignalStatus, ResponseStatus, ResponderType,
    ResponderVerificationStatus, StatusUpdateType, SenderType, RescueOutcome,
    VictimStatus, Gender, MissingPersonStatus, MissingPersonVerification,
    ACTIVE_SIGNAL_STATUSES, PRIORITY_RANK, utcnow
)
from sosnet.models.schemas import OptionalPoint
from sosnet.models.serializers import (
    serialize_signal, serialize_response, serialize_chat_message,
    serialize_status_update, serialize_missing_person, responder_location, iso
)
from sosnet.utils.geo import calculate_distance, distance_or_none
from sosnet.ws_handlers.handler import (
    RoomRelay, get_relay, notify_responder_update, notify_chat_message,
    notify_location_update, notify_status_change
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sos", tags=["SOS Response"])

CIVILIAN_ORGANIZATION = "Verified Civilian Responder"
SEE_ALL_ROLES = (UserRole.RESPONDER, UserRole.ADMIN)


# ==================== REQUEST SCHEMAS ====================

class ResponseStatusUpdate(BaseModel):
    status: ResponseStatus
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    estimated_arrival_time: Optional[datetime] = None


class ChatMessageCreate(BaseModel):
    message: str = Field(min_length=1)


class MarkSafeRequest(OptionalPoint):
    pass


class CompleteRescueRequest(BaseModel):
    rescue_outcome: RescueOutcome
    victim_status: VictimStatus = VictimStatus.SAFE
    relief_camp_name: Optional[str] = None
    relief_camp_id: Optional[str] = None
    hospital_name: Optional[str] = None
    create_missing_person_entry: bool = False
    victim_name: Optional[str] = None
    victim_age: Optional[int] = Field(default=None, ge=0)
    victim_gender: Gender = Gender.OTHER
    notes: Optional[str] = None


class FeedbackCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None


# ==================== HELPER FUNCTIONS ====================

def get_signal_or_404(db: Session, sos_id: str) -> SosSignal:
    sos = db.query(SosSignal).filter(SosSignal.id == sos_id).first()
    if not sos:
        raise HTTPException(status_code=404, detail="SOS signal not found")
    return sos


def get_response_or_404(db: Session, response_id: str) -> SosResponse:
    response = db.query(SosResponse).filter(SosResponse.id == response_id).first()
    if not response:
        raise HTTPException(status_code=404, detail="Response not found")
    return response


def get_civilian_profile(db: Session, user_id: str) -> Optional[CivilianResponder]:
    return db.query(CivilianResponder).filter(CivilianResponder.user_id == user_id).first()


def require_owning_responder(response: SosResponse, user: User):
    if response.responder_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Unauthorized")


def sort_nearby(items: list, has_location: bool) -> list:
    """Priority desc, then distance asc (with a location) or newest first (without)"""
    if has_location:
        items.sort(key=lambda item: item[1])
    else:
        items.sort(key=lambda item: item[0].created_at, reverse=True)
    # Stable sort keeps the secondary order within each priority
    items.sort(key=lambda item: PRIORITY_RANK[item[0].priority], reverse=True)
    return items


# ==================== DISCOVERY ====================

@router.get("/public/nearby")
async def get_nearby_sos(
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Every active signal, visible to all responders for self-assignment.
    Civilian responders only see the SOS levels their certifications allow.
    """
    signals = db.query(SosSignal).filter(
        SosSignal.status.in_(ACTIVE_SIGNAL_STATUSES),
        SosSignal.victim_safe.is_(False)
    ).all()

    has_location = lat is not None and lng is not None
    items = []
    for sos in signals:
        distance = calculate_distance(lat, lng, sos.latitude, sos.longitude) if has_location else None
        if has_location and radius_km is not None and distance > radius_km:
            continue
        items.append((sos, distance))

    civilian = get_civilian_profile(db, current_user.id)
    if civilian and current_user.role not in SEE_ALL_ROLES:
        items = [item for item in items if civilian.can_respond_to(item[0].sos_level)]

    sort_nearby(items, has_location)

    data = []
    for sos, distance in items:
        entry = serialize_signal(sos, include_updates=False)
        entry["distance_km"] = distance
        data.append(entry)

    return {
        "success": True,
        "data": data,
        "count": len(data),
        "total_active": len(signals),
        "user_is_civilian_responder": civilian is not None,
        "civilian_verification_status": civilian.verification_status.value if civilian else None,
        "allowed_levels": list(civilian.allowed_sos_levels) if civilian else ["level_1"]
    }


# ==================== ACCEPT / ASSIGN ====================

@router.post("/{sos_id}/accept")
async def accept_sos(
    sos_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """Civilian responder self-assigns to a signal"""
    responder = get_civilian_profile(db, current_user.id)

    if not responder:
        raise HTTPException(status_code=403, detail="You must be registered as a civilian responder")

    if responder.verification_status != ResponderVerificationStatus.VERIFIED:
        raise HTTPException(status_code=403, detail="Your civilian responder account is not verified yet")

    if not responder.is_available:
        raise HTTPException(status_code=400, detail="You must be marked as available to accept SOS")

    if responder.assigned_sos_id:
        raise HTTPException(status_code=400, detail="You already have an active SOS assignment")

    sos = get_signal_or_404(db, sos_id)

    if not responder.can_respond_to(sos.sos_level):
        raise HTTPException(
            status_code=403,
            detail=f"You are not authorized to respond to {sos.sos_level.value} emergencies. "
                   f"Upload relevant certifications to unlock."
        )

    # Read-then-write: a concurrent accept can also observe "unassigned"
    is_first_responder = not sos.assigned_responder

    now = utcnow()
    response = SosResponse(
        sos_signal_id=sos.id,
        responder_id=current_user.id,
        responder_type=ResponderType.CIVILIAN,
        responder_name=responder.full_name,
        responder_organization=CIVILIAN_ORGANIZATION,
        responder_phone=responder.phone,
        status=ResponseStatus.ASSIGNED,
        assigned_at=now,
        responder_lat=responder.current_lat,
        responder_lng=responder.current_lng,
        location_updated_at=now if responder.current_lat is not None else None,
        distance_to_victim_km=distance_or_none(
            responder.current_lat, responder.current_lng, sos.latitude, sos.longitude
        )
    )
    db.add(response)
    db.commit()
    db.refresh(response)

    if is_first_responder:
        sos.assigned_responder = current_user.id
        sos.response_time = now
        sos.active_response_id = response.id
        status_message = f"{responder.full_name} from {CIVILIAN_ORGANIZATION} is on the way!"
    else:
        status_message = f"Additional help: {responder.full_name} is also responding!"

    if sos.status == SignalStatus.PENDING:
        sos.status = SignalStatus.ACKNOWLEDGED
    sos.add_status_update(status_message, StatusUpdateType.RESPONDER_ASSIGNED)
    db.commit()

    responder.assigned_sos_id = sos.id
    db.commit()

    logger.info(
        f"[SOS] {current_user.id} accepted {sos.id} "
        f"({'primary' if is_first_responder else 'helper'}, response {response.id})"
    )

    await notify_responder_update(relay, sos.id, {
        "status": ResponseStatus.ASSIGNED.value,
        "message": status_message,
        "response_id": response.id,
        "responder_name": responder.full_name,
        "is_primary": is_first_responder,
        "responder_location": responder_location(response),
        "distance_to_victim_km": response.distance_to_victim_km
    })

    db.refresh(sos)
    db.refresh(response)
    return {
        "success": True,
        "message": "SOS accepted! Please update your status as you travel.",
        "data": {
            "sos": serialize_signal(sos),
            "response": serialize_response(response),
            "is_primary_responder": is_first_responder
        }
    }


# ==================== STATUS TRANSITION ====================

@router.put("/response/{response_id}/status")
async def update_response_status(
    response_id: str,
    body: ResponseStatusUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """Responder reports progress. Any status is accepted from any status."""
    response = get_response_or_404(db, response_id)
    require_owning_responder(response, current_user)

    now = utcnow()
    response.status = body.status

    if body.status == ResponseStatus.EN_ROUTE:
        response.en_route_at = now
    elif body.status == ResponseStatus.ARRIVED:
        response.arrived_at = now
    elif body.status == ResponseStatus.COMPLETED:
        response.completed_at = now

    if body.estimated_arrival_time:
        response.estimated_arrival_time = body.estimated_arrival_time

    sos = db.query(SosSignal).filter(SosSignal.id == response.sos_signal_id).first()

    location_updated = body.lat is not None and body.lng is not None
    if location_updated:
        response.responder_lat = body.lat
        response.responder_lng = body.lng
        response.location_updated_at = now
        if sos:
            response.distance_to_victim_km = calculate_distance(
                body.lat, body.lng, sos.latitude, sos.longitude
            )

    db.commit()

    if sos:
        status_message = ""
        if body.status == ResponseStatus.EN_ROUTE:
            sos.status = SignalStatus.RESPONDING
            status_message = "Responder is on the way to your location"
            sos.add_status_update(status_message, StatusUpdateType.RESPONDER_EN_ROUTE)
        elif body.status == ResponseStatus.ARRIVED:
            status_message = "Responder has arrived at your location"
            sos.add_status_update(status_message, StatusUpdateType.RESPONDER_ARRIVED)
        db.commit()

        location = responder_location(response)
        await notify_responder_update(relay, sos.id, {
            "status": body.status.value,
            "message": status_message,
            "response_id": response.id,
            "responder_location": location,
            "distance_to_victim_km": response.distance_to_victim_km,
            "estimated_arrival_time": iso(response.estimated_arrival_time)
        })
        if location_updated:
            await notify_location_update(relay, sos.id, {
                "response_id": response.id,
                "responder_location": location,
                "distance_to_victim_km": response.distance_to_victim_km
            })

    logger.info(f"[SOS] Response {response.id} -> {body.status.value}")

    db.refresh(response)
    return {
        "success": True,
        "message": "Status updated successfully",
        "data": serialize_response(response)
    }


# ==================== VICTIM <-> RESPONDER CHAT ====================

@router.post("/response/{response_id}/chat")
async def send_response_chat(
    response_id: str,
    body: ChatMessageCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """Chat between the victim and the responder handling their signal"""
    response = get_response_or_404(db, response_id)
    sos = get_signal_or_404(db, response.sos_signal_id)

    is_responder = response.responder_id == current_user.id
    is_victim = sos.user_id == current_user.id

    if not is_responder and not is_victim:
        raise HTTPException(status_code=403, detail="Unauthorized")

    sender_name = display_name(current_user)
    chat = SosChatMessage(
        sender_id=current_user.id,
        sender_name=sender_name,
        sender_type=SenderType.RESPONDER if is_responder else SenderType.VICTIM,
        message=body.message,
        timestamp=utcnow(),
        read=False
    )
    response.chat_messages.append(chat)
    db.commit()

    if is_responder:
        sos.add_status_update(
            f"Responder: {body.message}",
            StatusUpdateType.CHAT_MESSAGE,
            sender_id=current_user.id,
            sender_name=sender_name,
            sender_role=SenderType.RESPONDER.value
        )
        db.commit()

    db.refresh(chat)
    payload = serialize_chat_message(chat)
    await notify_chat_message(relay, sos.id, {
        "response_id": response.id,
        "sender": sender_name,
        "sender_type": payload["sender_type"],
        "message": body.message,
        "timestamp": payload["timestamp"]
    })

    return {
        "success": True,
        "message": "Message sent",
        "data": payload
    }


# ==================== VICTIM SELF-RESOLUTION ====================

@router.post("/{sos_id}/mark-safe")
async def mark_safe(
    sos_id: str,
    body: Optional[MarkSafeRequest] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """
    Victim confirms they are safe ("I Am Safe").
    Three separate writes: signal, active response, responder. No rollback.
    """
    sos = get_signal_or_404(db, sos_id)

    if sos.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")

    now = utcnow()
    old_status = sos.status.value
    sos.victim_safe = True
    sos.victim_safe_confirmed_at = now
    if body and body.has_point():
        sos.victim_safe_lat = body.lat
        sos.victim_safe_lng = body.lng
    sos.status = SignalStatus.RESOLVED
    sos.resolution_time = now
    sos.add_status_update("Victim confirmed they are safe", StatusUpdateType.SYSTEM_UPDATE)
    db.commit()

    if sos.active_response_id:
        response = db.query(SosResponse).filter(SosResponse.id == sos.active_response_id).first()
        if response:
            response.status = ResponseStatus.CANCELLED
            response.rescue_outcome = RescueOutcome.VICTIM_SAFE_ALREADY
            db.commit()

            # Free up the responder
            responder = get_civilian_profile(db, response.responder_id)
            if responder and responder.assigned_sos_id == sos.id:
                responder.assigned_sos_id = None
                db.commit()

    logger.info(f"[SOS] {sos.id} marked safe by victim")

    await notify_status_change(
        relay, sos.id, SignalStatus.RESOLVED.value, old_status, display_name(current_user)
    )

    db.refresh(sos)
    return {
        "success": True,
        "message": "Marked as safe! SOS has been cancelled.",
        "data": serialize_signal(sos)
    }


# ==================== COMPLETION & HANDOVER ====================

def _create_found_person_entry(
    db: Session,
    body: CompleteRescueRequest,
    sos: SosSignal,
    response: SosResponse,
    user: User
) -> MissingPerson:
    now = utcnow()
    person = MissingPerson(
        full_name=body.victim_name,
        age=body.victim_age,
        gender=body.victim_gender,
        description=f"Rescued from SOS emergency and transported to {body.relief_camp_name}",
        last_seen_date=sos.created_at,
        last_seen_lat=sos.latitude,
        last_seen_lng=sos.longitude,
        last_seen_address=sos.address or "",
        circumstances=f"Rescued during disaster emergency. Currently at {body.relief_camp_name}",
        reporter_name=response.responder_name,
        reporter_relationship="Rescue Responder",
        reporter_phone=response.responder_phone,
        status=MissingPersonStatus.FOUND_SAFE,
        found_date=now,
        found_lat=sos.latitude,
        found_lng=sos.longitude,
        found_condition=body.victim_status.value,
        resolution_details=f"Transported to relief camp: {body.relief_camp_name}",
        # Auto-verified: entered by the rescuing responder
        verification_status=MissingPersonVerification.VERIFIED,
        verified_by_user_id=user.id,
        verified_by_name=response.responder_name,
        verified_by_role=UserRole.RESPONDER.value,
        verified_at=now,
        public_visibility=True,
        created_by=user.id,
        disaster_related=True,
        source_sos_id=sos.id
    )
    db.add(person)
    db.commit()
    db.refresh(person)
    return person


@router.post("/response/{response_id}/complete")
async def complete_rescue(
    response_id: str,
    body: CompleteRescueRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    relay: RoomRelay = Depends(get_relay)
):
    """
    Complete a rescue and optionally register the victim in the missing-persons DB.
    Four independent writes: response, signal, responder, new person. No rollback.
    """
    response = get_response_or_404(db, response_id)
    require_owning_responder(response, current_user)

    transported_to_camp = body.rescue_outcome == RescueOutcome.TRANSPORTED_TO_CAMP
    wants_person_entry = body.create_missing_person_entry and transported_to_camp
    if wants_person_entry and not body.victim_name:
        raise HTTPException(status_code=400, detail="victim_name is required to create a missing person entry")

    now = utcnow()

    # 1. Response
    response.status = ResponseStatus.COMPLETED
    response.completed_at = now
    response.rescue_outcome = body.rescue_outcome
    response.victim_status = body.victim_status
    response.relief_camp_name = body.relief_camp_name
    response.relief_camp_id = body.relief_camp_id
    response.hospital_name = body.hospital_name
    if body.notes:
        response.notes.append(SosResponseNote(message=body.notes, added_by=current_user.id, timestamp=now))
    db.commit()

    # 2. Signal
    sos = get_signal_or_404(db, response.sos_signal_id)
    sos.status = SignalStatus.RESOLVED
    sos.resolution_time = now
    sos.rescue_completed = True
    if transported_to_camp:
        sos.transported_to_camp = True
        sos.relief_camp_name = body.relief_camp_name
        sos.relief_camp_id = body.relief_camp_id
    sos.add_status_update(
        f"Rescue completed: {body.rescue_outcome.value.replace('_', ' ')}",
        StatusUpdateType.SYSTEM_UPDATE
    )
    db.commit()

    # 3. Free up the responder and update their counters
    responder = get_civilian_profile(db, current_user.id)
    if responder:
        responder.assigned_sos_id = None
        responder.total_responses += 1
        if body.rescue_outcome.value.startswith("rescued"):
            responder.successful_responses += 1
        if response.assigned_at:
            minutes = (now - response.assigned_at).total_seconds() / 60
            previous = responder.average_response_time_minutes or 0
            responder.average_response_time_minutes = round(
                previous + (minutes - previous) / responder.total_responses, 2
            )
        db.commit()

    # 4. Optional found-person entry
    person = None
    if wants_person_entry:
        person = _create_found_person_entry(db, body, sos, response, current_user)
        response.created_missing_person_entry = True
        response.missing_person_id = person.id
        db.commit()

    logger.info(f"[SOS] Response {response.id} completed: {body.rescue_outcome.value}")

    await notify_responder_update(relay, sos.id, {
        "status": ResponseStatus.COMPLETED.value,
        "message": "Rescue completed",
        "response_id": response.id,
        "rescue_outcome": body.rescue_outcome.value
    })

    db.refresh(response)
    db.refresh(sos)
    return {
        "success": True,
        "message": "Rescue completed successfully!",
        "data": {
            "response": serialize_response(response),
            "sos": serialize_signal(sos),
            "missing_person_entry": serialize_missing_person(person) if person else None
        }
    }


# ==================== FEEDBACK ====================

@router.post("/response/{response_id}/feedback")
async def submit_feedback(
    response_id: str,
    body: FeedbackCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Victim rates the responder who handled their signal"""
    response = get_response_or_404(db, response_id)
    sos = get_signal_or_404(db, response.sos_signal_id)

    if sos.user_id != current_user.id:
        raise HTTPException(status_code=403, detail="Unauthorized")

    if response.feedback_rating is not None:
        raise HTTPException(status_code=400, detail="Feedback already submitted for this response")

    response.feedback_rating = body.rating
    response.feedback_comment = body.comment
    response.feedback_submitted_at = utcnow()
    db.commit()

    responder = get_civilian_profile(db, response.responder_id)
    if responder:
        total = responder.total_ratings + 1
        responder.rating = round((responder.rating * responder.total_ratings + body.rating) / total, 2)
        responder.total_ratings = total
        db.commit()

    db.refresh(response)
    return {
        "success": True,
        "message": "Thank you for your feedback",
        "data": serialize_response(response)
    }


# ==================== VICTIM STATUS POLL ====================

@router.get("/{sos_id}/status")
async def get_sos_status(
    sos_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Composite read of a signal and its active response"""
    sos = get_signal_or_404(db, sos_id)

    response = None
    if sos.active_response_id:
        response = db.query(SosResponse).filter(SosResponse.id == sos.active_response_id).first()

    return {
        "success": True,
        "data": {
            "sos_status": sos.status.value,
            "assigned_responder": sos.assigned_responder,
            "response_time": iso(sos.response_time),
            "escalation_level": sos.escalation_level,
            "victim_safe_confirmation": serialize_signal(sos, include_updates=False)["victim_safe_confirmation"],
            "victim_status_updates": [serialize_status_update(u) for u in sos.status_updates],
            "active_response": serialize_response(response) if response else None,
            "responder_location": responder_location(response) if response else None,
            "distance_to_victim_km": response.distance_to_victim_km if response else None,
            "estimated_arrival_time": iso(response.estimated_arrival_time) if response else None,
            "chat_messages": [serialize_chat_message(m) for m in response.chat_messages] if response else []
        }
    }
