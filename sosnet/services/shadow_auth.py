"""
SOSNet - Shadow Authentication Service
Implicit citizen accounts keyed by phone number, created on first SOS
"""
import logging
import re
from datetime import timedelta

from sqlalchemy.orm import Session

from sosnet.config import settings
from sosnet.errors import APIError
from sosnet.models.db_models import User, UserRole, AccountType, utcnow
from sosnet.utils.security import create_access_token

logger = logging.getLogger(__name__)


def normalize_phone(phone: str) -> str:
    """Remove spaces and dashes so '077-123 4567' and '0771234567' match"""
    return re.sub(r"[\s\-]", "", phone)


def find_or_create_citizen(db: Session, phone: str, name: str) -> User:
    """
    Reuse the shadow citizen registered under this phone, or create one.
    Phones that belong to a registered account must sign in instead.
    """
    normalized_phone = normalize_phone(phone)

    citizen = db.query(User).filter(User.phone == normalized_phone).first()

    if citizen and (citizen.account_type != AccountType.SHADOW or citizen.role != UserRole.CITIZEN):
        logger.warning(f"[SHADOW AUTH] Refused shadow login for registered account {citizen.id}")
        raise APIError(
            status_code=409,
            message="This phone number is already registered. Please sign in to submit an SOS.",
            code="PHONE_REGISTERED"
        )

    if citizen:
        citizen.last_active = utcnow()
        # They might have typed their name differently this time
        if name and name != citizen.full_name:
            citizen.full_name = name
        db.commit()
        logger.info(f"[SHADOW AUTH] Existing citizen found: {citizen.id}")
    else:
        citizen = User(
            phone=normalized_phone,
            full_name=name,
            role=UserRole.CITIZEN,
            account_type=AccountType.SHADOW
        )
        db.add(citizen)
        db.commit()
        logger.info(f"[SHADOW AUTH] New shadow account created: {citizen.id}")

    db.refresh(citizen)
    return citizen


def generate_citizen_token(citizen: User) -> str:
    """Long-lived JWT so a citizen can follow their SOS without signing up"""
    return create_access_token(
        data={
            "user_id": citizen.id,
            "phone": citizen.phone,
            "name": citizen.full_name,
            "role": citizen.role.value,
            "account_type": citizen.account_type.value
        },
        expires_delta=timedelta(days=settings.CITIZEN_TOKEN_EXPIRE_DAYS)
    )


def increment_activity(db: Session, citizen: User):
    citizen.sos_submitted = (citizen.sos_submitted or 0) + 1
    citizen.last_active = utcnow()
    db.commit()
