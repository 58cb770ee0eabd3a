"""
SOSNet - Admin Civilian Responder Routes
Verification of civilian responder accounts and certifications
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Literal, Optional
import math
import logging

from sosnet.database import get_db
from sosnet.auth.oauth2 import require_roles, display_name
from sosnet.models.db_models import (
    CivilianResponder, User, UserRole, ResponderVerificationStatus, utcnow
)
from sosnet.models.serializers import serialize_responder

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin/civilian-responders", tags=["Admin - Civilian Responders"])

require_admin = require_roles(UserRole.ADMIN)


class CertificationVerify(BaseModel):
    verified: bool = True


class ResponderVerify(BaseModel):
    action: Literal["approve", "reject"]


class ResponderSuspend(BaseModel):
    reason: str


def get_responder_or_404(db: Session, responder_id: str) -> CivilianResponder:
    responder = db.query(CivilianResponder).filter(CivilianResponder.id == responder_id).first()
    if not responder:
        raise HTTPException(status_code=404, detail="Civilian responder not found")
    return responder


@router.get("")
async def list_responders(
    verification_status: Optional[ResponderVerificationStatus] = None,
    is_available: Optional[bool] = None,
    limit: int = Query(50, ge=1, le=200),
    page: int = Query(1, ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    query = db.query(CivilianResponder)
    if verification_status:
        query = query.filter(CivilianResponder.verification_status == verification_status)
    if is_available is not None:
        query = query.filter(CivilianResponder.is_available.is_(is_available))

    total = query.count()
    responders = query.order_by(CivilianResponder.created_at.desc()) \
        .offset((page - 1) * limit).limit(limit).all()

    return {
        "success": True,
        "data": [serialize_responder(r) for r in responders],
        "pagination": {
            "total": total,
            "page": page,
            "limit": limit,
            "pages": math.ceil(total / limit)
        }
    }


@router.get("/pending")
async def list_pending_responders(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    responders = db.query(CivilianResponder).filter(
        CivilianResponder.verification_status == ResponderVerificationStatus.PENDING
    ).order_by(CivilianResponder.created_at.desc()).all()

    return {
        "success": True,
        "data": [serialize_responder(r) for r in responders],
        "count": len(responders)
    }


@router.put("/{responder_id}/verify-certification/{cert_index}")
async def verify_certification(
    responder_id: str,
    cert_index: int,
    body: CertificationVerify,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """Verify or reject one certification (by position) and recompute allowed levels"""
    responder = get_responder_or_404(db, responder_id)

    if cert_index < 0 or cert_index >= len(responder.certifications):
        raise HTTPException(status_code=400, detail="Invalid certification index")

    responder.certifications[cert_index].verified = body.verified
    responder.update_allowed_levels()
    db.commit()
    db.refresh(responder)

    logger.info(
        f"[ADMIN] {admin.id} {'verified' if body.verified else 'rejected'} "
        f"certification {cert_index} of responder {responder.id}"
    )

    return {
        "success": True,
        "message": f"Certification {'verified' if body.verified else 'rejected'}",
        "data": serialize_responder(responder)
    }


@router.put("/{responder_id}/verify")
async def verify_responder(
    responder_id: str,
    body: ResponderVerify,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    responder = get_responder_or_404(db, responder_id)

    if body.action == "approve":
        responder.verification_status = ResponderVerificationStatus.VERIFIED
        responder.verified_at = utcnow()
        responder.verified_by_admin_id = admin.id
        responder.verified_by_admin_name = display_name(admin)
        responder.suspension_reason = None
        responder.update_allowed_levels()
    else:
        responder.verification_status = ResponderVerificationStatus.REJECTED

    db.commit()
    db.refresh(responder)

    logger.info(f"[ADMIN] Responder {responder.id} {body.action}d by {admin.id}")

    return {
        "success": True,
        "message": f"Civilian responder {body.action}d",
        "data": serialize_responder(responder)
    }


@router.put("/{responder_id}/suspend")
async def suspend_responder(
    responder_id: str,
    body: ResponderSuspend,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    responder = get_responder_or_404(db, responder_id)

    responder.verification_status = ResponderVerificationStatus.SUSPENDED
    responder.is_available = False
    responder.suspension_reason = body.reason
    db.commit()
    db.refresh(responder)

    logger.info(f"[ADMIN] Responder {responder.id} suspended by {admin.id}: {body.reason}")

    return {
        "success": True,
        "message": "Civilian responder suspended",
        "data": serialize_responder(responder)
    }


@router.get("/stats/overview")
async def get_stats_overview(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db)
):
    by_status = {
        status.value: count
        for status, count in db.query(
            CivilianResponder.verification_status, func.count(CivilianResponder.id)
        ).group_by(CivilianResponder.verification_status).all()
    }

    verified = db.query(CivilianResponder).filter(
        CivilianResponder.verification_status == ResponderVerificationStatus.VERIFIED
    )
    available = verified.filter(CivilianResponder.is_available.is_(True)).count()
    top_rated = verified.order_by(CivilianResponder.rating.desc()).limit(10).all()
    average_rating = verified.filter(CivilianResponder.total_ratings > 0) \
        .with_entities(func.avg(CivilianResponder.rating)).scalar()
    total_responses = db.query(func.sum(CivilianResponder.total_responses)).scalar() or 0

    return {
        "success": True,
        "data": {
            "by_status": by_status,
            "available": available,
            "top_rated": [
                {
                    "id": r.id,
                    "full_name": r.full_name,
                    "rating": r.rating,
                    "total_responses": r.total_responses,
                    "successful_responses": r.successful_responses
                }
                for r in top_rated
            ],
            "total_responses": total_responses,
            "average_rating": round(average_rating, 2) if average_rating is not None else None
        }
    }
