"""
SOSNet - Missing Persons Registry
Public registry with authenticated reporting, sightings and status tracking
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from sosnet.database import get_db
from sosnet.auth.oauth2 import get_current_user, get_optional_user, require_roles, display_name
from sosnet.models.db_models import (
    MissingPerson, MissingPersonSighting, MissingPersonStatus, MissingPersonVerification,
    MissingPersonUpdateType, SignalPriority, Gender, User, UserRole, utcnow
)
from sosnet.models.schemas import LocationInput
from sosnet.models.serializers import serialize_missing_person
from sosnet.utils.geo import calculate_distance

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/missing-persons", tags=["Missing Persons"])

require_admin = require_roles(UserRole.ADMIN)

# Same name within this many degrees of the same spot in the last day is a likely duplicate
DUPLICATE_WINDOW_DEGREES = 0.01
DUPLICATE_WINDOW_HOURS = 24

SEARCH_LIMIT = 50
FOUND_STATUSES = (MissingPersonStatus.FOUND_SAFE, MissingPersonStatus.FOUND_DECEASED)


# ==================== REQUEST SCHEMAS ====================

class MissingPersonCreate(BaseModel):
    full_name: str = Field(min_length=1)
    age: Optional[int] = Field(default=None, ge=0)
    gender: Gender
    description: str = Field(min_length=1)
    last_seen_date: datetime
    last_seen_location: LocationInput
    circumstances: str = Field(min_length=1)
    reporter_name: str = Field(min_length=1)
    reporter_relationship: str = Field(min_length=1)
    reporter_phone: str = Field(min_length=3)
    priority: SignalPriority = SignalPriority.MEDIUM
    is_vulnerable: bool = False
    disaster_related: bool = False


class SightingCreate(BaseModel):
    location: LocationInput
    description: str = Field(min_length=1)
    reported_by: Optional[str] = None
    contact: Optional[str] = None


class PersonUpdateCreate(BaseModel):
    message: str = Field(min_length=1)
    update_type: MissingPersonUpdateType = MissingPersonUpdateType.GENERAL


class PersonStatusChange(BaseModel):
    status: MissingPersonStatus
    found_location: Optional[LocationInput] = None
    found_condition: Optional[str] = None
    resolution_details: Optional[str] = None


# ==================== HELPER FUNCTIONS ====================

def _can_see_unverified(user: Optional[User]) -> bool:
    return user is not None and user.role in (UserRole.RESPONDER, UserRole.ADMIN)


def visible_query(db: Session, user: Optional[User]):
    """Registry rows the caller may see: verified public entries plus their own reports"""
    query = db.query(MissingPerson)
    if _can_see_unverified(user):
        return query

    public = and_(
        MissingPerson.public_visibility.is_(True),
        MissingPerson.verification_status == MissingPersonVerification.VERIFIED
    )
    if user is None:
        return query.filter(public)
    return query.filter(or_(public, MissingPerson.created_by == user.id))


def get_person_or_404(db: Session, person_id: str, user: Optional[User]) -> MissingPerson:
    person = visible_query(db, user).filter(MissingPerson.id == person_id).first()
    if not person:
        raise HTTPException(status_code=404, detail="Missing person not found")
    return person


def require_case_editor(person: MissingPerson, user: User):
    """Only the reporter or officials may change a case"""
    if person.created_by != user.id and user.role not in (UserRole.RESPONDER, UserRole.ADMIN):
        raise HTTPException(status_code=403, detail="Not authorized to update this report")


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def find_recent_duplicates(db: Session, full_name: str, lat: float, lng: float) -> list:
    since = utcnow() - timedelta(hours=DUPLICATE_WINDOW_HOURS)
    return db.query(MissingPerson).filter(
        MissingPerson.full_name.ilike(f"%{full_name}%"),
        MissingPerson.last_seen_lat.between(lat - DUPLICATE_WINDOW_DEGREES, lat + DUPLICATE_WINDOW_DEGREES),
        MissingPerson.last_seen_lng.between(lng - DUPLICATE_WINDOW_DEGREES, lng + DUPLICATE_WINDOW_DEGREES),
        MissingPerson.created_at >= since
    ).all()


def _counts_by(query, column) -> dict:
    rows = query.with_entities(column, func.count(MissingPerson.id)).group_by(column).all()
    return {value.value: count for value, count in rows if value is not None}


# ==================== ENDPOINTS ====================

@router.get("")
async def list_missing_persons(
    status: Optional[MissingPersonStatus] = None,
    priority: Optional[SignalPriority] = None,
    disaster_related: Optional[bool] = None,
    limit: int = Query(100, ge=1, le=500),
    skip: int = Query(0, ge=0),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Public registry; officials and admins also see unverified entries"""
    query = visible_query(db, current_user)
    if status:
        query = query.filter(MissingPerson.status == status)
    if priority:
        query = query.filter(MissingPerson.priority == priority)
    if disaster_related is not None:
        query = query.filter(MissingPerson.disaster_related.is_(disaster_related))

    total = query.count()
    persons = query.order_by(MissingPerson.created_at.desc()).offset(skip).limit(limit).all()

    return {
        "success": True,
        "data": [serialize_missing_person(p) for p in persons],
        "pagination": {
            "total": total,
            "limit": limit,
            "skip": skip,
            "hasMore": skip + len(persons) < total
        }
    }


@router.get("/stats")
async def missing_person_stats(
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    query = visible_query(db, current_user)

    recent = query.filter(
        MissingPerson.status == MissingPersonStatus.MISSING
    ).order_by(MissingPerson.created_at.desc()).limit(10).all()

    return {
        "success": True,
        "data": {
            "total": query.count(),
            "by_status": _counts_by(query, MissingPerson.status),
            "by_priority": _counts_by(query, MissingPerson.priority),
            "vulnerable": query.filter(MissingPerson.is_vulnerable.is_(True)).count(),
            "disaster_related": query.filter(MissingPerson.disaster_related.is_(True)).count(),
            "recent_cases": [serialize_missing_person(p) for p in recent]
        }
    }


@router.get("/search")
async def search_missing_persons(
    q: Optional[str] = None,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: float = Query(50, gt=0),
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """
    Search open cases by text, optionally around a point.
    Text matches name, description, case number or last-seen address.
    With lat/lng, results are limited to radius_km and sorted nearest first.
    """
    query = visible_query(db, current_user).filter(MissingPerson.status == MissingPersonStatus.MISSING)
    if q:
        pattern = f"%{q}%"
        query = query.filter(or_(
            MissingPerson.full_name.ilike(pattern),
            MissingPerson.description.ilike(pattern),
            MissingPerson.case_number.ilike(pattern),
            MissingPerson.last_seen_address.ilike(pattern)
        ))

    persons = query.order_by(MissingPerson.created_at.desc()).limit(SEARCH_LIMIT).all()

    if lat is None or lng is None:
        return {"success": True, "data": [serialize_missing_person(p) for p in persons]}

    results = []
    for person in persons:
        distance = calculate_distance(lat, lng, person.last_seen_lat, person.last_seen_lng)
        if distance <= radius_km:
            item = serialize_missing_person(person)
            item["distance_km"] = round(distance, 2)
            results.append(item)
    results.sort(key=lambda item: item["distance_km"])

    return {"success": True, "data": results}


@router.get("/{person_id}")
async def get_missing_person(
    person_id: str,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    person = get_person_or_404(db, person_id, current_user)
    return {"success": True, "data": serialize_missing_person(person)}


@router.post("", status_code=201)
async def create_missing_person(
    body: MissingPersonCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    File a missing-person report. It starts unverified and stays off the public
    registry until an official verifies it.
    A report with a similar name near the same spot in the last 24 hours is refused
    with 409 POSSIBLE_DUPLICATE so the reporter can check the existing case first.
    """
    location = body.last_seen_location
    duplicates = find_recent_duplicates(db, body.full_name, location.lat, location.lng)
    if duplicates:
        logger.info(f"[MISSING] Possible duplicate report for '{body.full_name}' by {current_user.id}")
        return JSONResponse(status_code=409, content={
            "success": False,
            "message": "A similar missing person report was recently submitted. Please check existing reports.",
            "code": "POSSIBLE_DUPLICATE",
            "existing_reports": [
                {
                    "id": d.id,
                    "name": d.full_name,
                    "case_number": d.case_number,
                    "status": d.verification_status.value
                }
                for d in duplicates
            ]
        })

    person = MissingPerson(
        full_name=body.full_name,
        age=body.age,
        gender=body.gender,
        description=body.description,
        last_seen_date=to_naive_utc(body.last_seen_date),
        last_seen_lat=location.lat,
        last_seen_lng=location.lng,
        last_seen_address=location.address or "",
        circumstances=body.circumstances,
        reporter_name=body.reporter_name,
        reporter_relationship=body.reporter_relationship,
        reporter_phone=body.reporter_phone,
        priority=body.priority,
        is_vulnerable=body.is_vulnerable,
        disaster_related=body.disaster_related,
        status=MissingPersonStatus.MISSING,
        verification_status=MissingPersonVerification.UNVERIFIED,
        created_by=current_user.id
    )
    db.add(person)
    db.commit()
    db.refresh(person)

    logger.info(f"[MISSING] Report {person.case_number} filed by {current_user.id}")

    return {
        "success": True,
        "message": "Missing person report created successfully",
        "data": serialize_missing_person(person)
    }


@router.post("/{person_id}/sightings")
async def add_sighting(
    person_id: str,
    body: SightingCreate,
    current_user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Anyone may report a sighting of a listed person"""
    person = get_person_or_404(db, person_id, current_user)

    reported_by = body.reported_by or (display_name(current_user) if current_user else None)
    person.sightings.append(MissingPersonSighting(
        lat=body.location.lat,
        lng=body.location.lng,
        address=body.location.address,
        description=body.description,
        reported_by=reported_by,
        contact=body.contact,
        date=utcnow()
    ))
    person.add_update(
        f"New sighting reported: {body.description}",
        MissingPersonUpdateType.SIGHTING,
        added_by=reported_by or "Anonymous"
    )
    db.commit()
    db.refresh(person)

    return {
        "success": True,
        "message": "Sighting added successfully",
        "data": serialize_missing_person(person)
    }


@router.post("/{person_id}/updates")
async def add_case_update(
    person_id: str,
    body: PersonUpdateCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    person = get_person_or_404(db, person_id, current_user)
    require_case_editor(person, current_user)

    person.add_update(body.message, body.update_type, added_by=display_name(current_user))
    db.commit()
    db.refresh(person)

    return {
        "success": True,
        "message": "Update added successfully",
        "data": serialize_missing_person(person)
    }


@router.put("/{person_id}/status")
async def change_case_status(
    person_id: str,
    body: PersonStatusChange,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Found statuses stamp found_date and record where and how the person was found"""
    person = get_person_or_404(db, person_id, current_user)
    require_case_editor(person, current_user)

    person.status = body.status
    if body.status in FOUND_STATUSES:
        person.found_date = utcnow()
        if body.found_location:
            person.found_lat = body.found_location.lat
            person.found_lng = body.found_location.lng
            person.found_address = body.found_location.address
        if body.found_condition:
            person.found_condition = body.found_condition
        if body.resolution_details:
            person.resolution_details = body.resolution_details

    person.add_update(
        f"Status changed to: {body.status.value}",
        MissingPersonUpdateType.STATUS_CHANGE,
        added_by=display_name(current_user)
    )
    db.commit()
    db.refresh(person)

    logger.info(f"[MISSING] {person.case_number} -> {body.status.value} by {current_user.id}")

    return {
        "success": True,
        "message": "Status updated successfully",
        "data": serialize_missing_person(person)
    }


@router.delete("/{person_id}")
async def delete_missing_person(
    person_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    person = db.query(MissingPerson).filter(MissingPerson.id == person_id).first()
    if not person:
        raise HTTPException(status_code=404, detail="Missing person not found")

    db.delete(person)
    db.commit()
    logger.info(f"[MISSING] {person_id} deleted by admin {current_user.id}")

    return {
        "success": True,
        "message": "Missing person report deleted successfully"
    }
