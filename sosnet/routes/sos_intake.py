"""
SOSNet - SOS Intake Routes
Citizen (shadow account), anonymous and authenticated SOS submission
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
import logging

from sosnet.config import settings
from sosnet.database import get_db
from sosnet.auth.oauth2 import get_current_user, display_name
from sosnet.models.db_models import (
    SosSignal, User, SignalPriority, SignalStatus, SosLevel, EmergencyType
)
from sosnet.models.schemas import LocationInput
from sosnet.models.serializers import serialize_signal, iso
from sosnet.services import shadow_auth
from sosnet.utils.geo import reverse_geocode

logger = logging.getLogger(__name__)

router = APIRouter(tags=["SOS Intake"])

ANONYMOUS_USER_ID = "anonymous"
DEFAULT_PUBLIC_MESSAGE = "Emergency SOS - Need immediate assistance"


# ==================== REQUEST SCHEMAS ====================

class CitizenSosSubmit(BaseModel):
    name: str = Field(min_length=1)
    phone: str = Field(min_length=3)
    location: LocationInput
    message: str = Field(min_length=1)
    priority: SignalPriority = SignalPriority.HIGH
    emergency_type: EmergencyType = EmergencyType.OTHER
    sos_level: SosLevel = SosLevel.LEVEL_1


class PublicSosSubmit(BaseModel):
    location: LocationInput
    message: Optional[str] = None
    priority: SignalPriority = SignalPriority.HIGH
    emergency_type: EmergencyType = EmergencyType.OTHER
    sos_level: SosLevel = SosLevel.LEVEL_1


class SosSubmit(BaseModel):
    location: LocationInput
    message: str = Field(min_length=1)
    priority: SignalPriority = SignalPriority.MEDIUM
    emergency_type: EmergencyType = EmergencyType.OTHER
    sos_level: SosLevel = SosLevel.LEVEL_1


# ==================== HELPER FUNCTIONS ====================

async def create_signal(
    db: Session,
    user_id: str,
    location: LocationInput,
    message: str,
    priority: SignalPriority,
    emergency_type: EmergencyType,
    sos_level: SosLevel,
    citizen_name: str = None,
    citizen_phone: str = None
) -> SosSignal:
    """Persist a new pending signal. No dedup and no service-area check."""
    address = location.address or ""
    if not address and settings.GEOCODE_ON_SUBMIT:
        geocoded = await reverse_geocode(location.lat, location.lng)
        address = geocoded.get("display_name", "")

    sos = SosSignal(
        user_id=user_id,
        citizen_name=citizen_name,
        citizen_phone=citizen_phone,
        latitude=location.lat,
        longitude=location.lng,
        address=address,
        message=message,
        priority=priority,
        status=SignalStatus.PENDING,
        emergency_type=emergency_type,
        sos_level=sos_level
    )
    db.add(sos)
    db.commit()
    db.refresh(sos)
    logger.info(f"[SOS] New {priority.value} signal {sos.id} from {user_id}")
    return sos


def signal_summary(sos: SosSignal) -> dict:
    return {
        "id": sos.id,
        "status": sos.status.value,
        "priority": sos.priority.value,
        "sos_level": sos.sos_level.value,
        "created_at": iso(sos.created_at)
    }


# ==================== ENDPOINTS ====================

@router.post("/api/sos/citizen/submit")
async def submit_citizen_sos(body: CitizenSosSubmit, db: Session = Depends(get_db)):
    """
    Submit SOS without prior authentication.
    Finds or creates a shadow account by phone and returns a JWT for follow-up calls.
    """
    citizen = shadow_auth.find_or_create_citizen(db, body.phone, body.name)

    sos = await create_signal(
        db,
        user_id=citizen.id,
        location=body.location,
        message=body.message,
        priority=body.priority,
        emergency_type=body.emergency_type,
        sos_level=body.sos_level,
        citizen_name=body.name,
        citizen_phone=citizen.phone
    )

    shadow_auth.increment_activity(db, citizen)
    token = shadow_auth.generate_citizen_token(citizen)

    return {
        "success": True,
        "message": "SOS submitted successfully. Help is on the way!",
        "data": {
            "sos": signal_summary(sos),
            "citizen": {
                "id": citizen.id,
                "name": citizen.full_name,
                "phone": citizen.phone
            },
            "auth": {
                "token": token,
                "expiresIn": f"{settings.CITIZEN_TOKEN_EXPIRE_DAYS}d"
            }
        }
    }


@router.post("/api/public/sos")
async def submit_public_sos(body: PublicSosSubmit, db: Session = Depends(get_db)):
    """Fully anonymous SOS; no account is created"""
    sos = await create_signal(
        db,
        user_id=ANONYMOUS_USER_ID,
        location=body.location,
        message=body.message or DEFAULT_PUBLIC_MESSAGE,
        priority=body.priority,
        emergency_type=body.emergency_type,
        sos_level=body.sos_level
    )

    return {
        "success": True,
        "message": "SOS signal sent successfully. Emergency responders have been notified.",
        "data": signal_summary(sos)
    }


@router.post("/api/sos")
async def submit_sos(
    body: SosSubmit,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """SOS from an already authenticated user"""
    sos = await create_signal(
        db,
        user_id=current_user.id,
        location=body.location,
        message=body.message,
        priority=body.priority,
        emergency_type=body.emergency_type,
        sos_level=body.sos_level,
        citizen_name=display_name(current_user),
        citizen_phone=current_user.phone
    )
    shadow_auth.increment_activity(db, current_user)

    return {
        "success": True,
        "message": "SOS submitted successfully",
        "data": serialize_signal(sos)
    }


@router.get("/api/sos/citizen/my-sos")
async def get_my_sos(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """The caller's 20 most recent signals"""
    signals = db.query(SosSignal).filter(
        SosSignal.user_id == current_user.id
    ).order_by(SosSignal.created_at.desc()).limit(20).all()

    return {
        "success": True,
        "data": [serialize_signal(sos) for sos in signals]
    }
