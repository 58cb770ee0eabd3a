"""
SOSNet - Civilian Responder Routes
Self-registration, certifications, location and availability for civilian responders
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
from datetime import date
import logging

from sosnet.database import get_db
from sosnet.auth.oauth2 import get_current_user, display_name
from sosnet.models.db_models import (
    CivilianResponder, ResponderCertification, User, CertificationType,
    ResponderVerificationStatus, SosLevel, utcnow
)
from sosnet.models.schemas import LocationInput
from sosnet.models.serializers import serialize_responder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/civilian-responder", tags=["Civilian Responders"])


#----------------------------------------------------------
#REQUEST SCHEMAS

class ResponderRegister(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    current_location: Optional[LocationInput] = None
    availability_radius_km: float = Field(default=5, ge=1, le=20)


class CertificationCreate(BaseModel):
    type: CertificationType
    certificate_number: Optional[str] = None
    issued_by: Optional[str] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    document_url: Optional[str] = None


class AvailabilityUpdate(BaseModel):
    is_available: bool
    availability_radius_km: Optional[float] = Field(default=None, ge=1, le=20)


def get_profile_or_404(db: Session, user: User) -> CivilianResponder:
    responder = db.query(CivilianResponder).filter(CivilianResponder.user_id == user.id).first()
    if not responder:
        raise HTTPException(status_code=404, detail="Civilian responder profile not found")
    return responder


#----------------------------------------------------------
#ENDPOINTS

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_responder(
    body: ResponderRegister,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Register the caller as a civilian responder, pending admin verification"""
    existing = db.query(CivilianResponder).filter(CivilianResponder.user_id == current_user.id).first()
    if existing:
        raise HTTPException(status_code=400, detail="You are already registered as a civilian responder")

    phone = body.phone or current_user.phone
    if not phone:
        raise HTTPException(status_code=400, detail="A phone number is required")

    responder = CivilianResponder(
        user_id=current_user.id,
        full_name=body.full_name or display_name(current_user),
        phone=phone,
        email=body.email or current_user.email,
        verification_status=ResponderVerificationStatus.PENDING,
        allowed_sos_levels=[SosLevel.LEVEL_1.value],
        availability_radius_km=body.availability_radius_km,
        is_available=True
    )
    if body.current_location:
        responder.current_lat = body.current_location.lat
        responder.current_lng = body.current_location.lng
        responder.current_address = body.current_location.address
        responder.location_updated_at = utcnow()

    db.add(responder)
    db.commit()
    db.refresh(responder)

    logger.info(f"[RESPONDER] {current_user.id} registered as civilian responder {responder.id}")

    return {
        "success": True,
        "message": "Registered successfully. Your account is pending verification.",
        "data": serialize_responder(responder)
    }


@router.post("/certification", status_code=status.HTTP_201_CREATED)
async def add_certification(
    body: CertificationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Attach a certification; it unlocks nothing until an admin verifies it"""
    responder = get_profile_or_404(db, current_user)

    responder.certifications.append(ResponderCertification(
        cert_type=body.type,
        certificate_number=body.certificate_number,
        issued_by=body.issued_by,
        issue_date=body.issue_date,
        expiry_date=body.expiry_date,
        document_url=body.document_url,
        verified=False
    ))
    db.commit()
    db.refresh(responder)

    return {
        "success": True,
        "message": "Certification added. Awaiting admin verification.",
        "data": serialize_responder(responder)
    }


@router.get("/profile")
async def get_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    responder = get_profile_or_404(db, current_user)
    return {"success": True, "data": serialize_responder(responder)}


@router.put("/location")
async def update_location(
    body: LocationInput,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    responder = get_profile_or_404(db, current_user)

    responder.current_lat = body.lat
    responder.current_lng = body.lng
    responder.current_address = body.address
    responder.location_updated_at = utcnow()
    db.commit()
    db.refresh(responder)

    return {
        "success": True,
        "message": "Location updated",
        "data": serialize_responder(responder)
    }


@router.put("/availability")
async def update_availability(
    body: AvailabilityUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    responder = get_profile_or_404(db, current_user)

    responder.is_available = body.is_available
    if body.availability_radius_km is not None:
        responder.availability_radius_km = body.availability_radius_km
    db.commit()
    db.refresh(responder)

    return {
        "success": True,
        "message": f"You are now {'available' if responder.is_available else 'unavailable'}",
        "data": serialize_responder(responder)
    }


@router.get("/stats")
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    responder = get_profile_or_404(db, current_user)

    success_rate = 0.0
    if responder.total_responses:
        success_rate = round(responder.successful_responses / responder.total_responses * 100, 1)

    return {
        "success": True,
        "data": {
            "total_responses": responder.total_responses,
            "successful_responses": responder.successful_responses,
            "failed_responses": responder.failed_responses,
            "success_rate": success_rate,
            "average_response_time_minutes": responder.average_response_time_minutes,
            "rating": responder.rating,
            "total_ratings": responder.total_ratings,
            "verification_status": responder.verification_status.value,
            "allowed_sos_levels": list(responder.allowed_sos_levels or []),
            "assigned_sos_id": responder.assigned_sos_id
        }
    }
