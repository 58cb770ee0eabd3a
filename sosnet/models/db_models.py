"""
SOSNet - SQLAlchemy Database Models
Signals, responses, civilian responders and the missing-persons registry
"""
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, Text, Float,
    ForeignKey, Enum as SQLEnum, JSON, Date
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import random
import uuid
import enum

from sosnet.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


def new_case_number() -> str:
    """Registry reference such as MP-202610-0421"""
    return f"MP-{utcnow():%Y%m}-{random.randint(0, 9999):04d}"


# ==================== ENUMS ====================

class UserRole(str, enum.Enum):
    CITIZEN = "citizen"
    RESPONDER = "responder"
    ADMIN = "admin"

class AccountType(str, enum.Enum):
    SHADOW = "shadow"
    REGISTERED = "registered"

class SignalPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class SignalStatus(str, enum.Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    RESPONDING = "responding"
    RESOLVED = "resolved"
    FALSE_ALARM = "false_alarm"

class SosLevel(str, enum.Enum):
    LEVEL_1 = "level_1"  # food / water
    LEVEL_2 = "level_2"  # medical emergency
    LEVEL_3 = "level_3"  # drowning / life-threatening

class EmergencyType(str, enum.Enum):
    MEDICAL = "medical"
    FIRE = "fire"
    ACCIDENT = "accident"
    CRIME = "crime"
    NATURAL_DISASTER = "natural_disaster"
    OTHER = "other"

class StatusUpdateType(str, enum.Enum):
    RESPONDER_ASSIGNED = "responder_assigned"
    RESPONDER_EN_ROUTE = "responder_en_route"
    RESPONDER_ARRIVED = "responder_arrived"
    CHAT_MESSAGE = "chat_message"
    SYSTEM_UPDATE = "system_update"

class ResponderType(str, enum.Enum):
    OFFICIAL = "official"
    CIVILIAN = "civilian"
    VOLUNTEER = "volunteer"

class ResponseStatus(str, enum.Enum):
    ASSIGNED = "assigned"
    EN_ROUTE = "en_route"
    ARRIVED = "arrived"
    ASSISTING = "assisting"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

class RescueOutcome(str, enum.Enum):
    RESCUED_SAFE = "rescued_safe"
    RESCUED_INJURED = "rescued_injured"
    RESCUED_CRITICAL = "rescued_critical"
    TRANSPORTED_TO_HOSPITAL = "transported_to_hospital"
    TRANSPORTED_TO_CAMP = "transported_to_camp"
    VICTIM_SAFE_ALREADY = "victim_safe_already"
    VICTIM_RELOCATED = "victim_relocated"
    VICTIM_NOT_FOUND = "victim_not_found"
    OTHER = "other"

class VictimStatus(str, enum.Enum):
    SAFE = "safe"
    INJURED = "injured"
    CRITICAL = "critical"
    DECEASED = "deceased"
    MISSING = "missing"

class SenderType(str, enum.Enum):
    VICTIM = "victim"
    RESPONDER = "responder"

class ResponderVerificationStatus(str, enum.Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"
    SUSPENDED = "suspended"

class CertificationType(str, enum.Enum):
    RED_CROSS = "red_cross"
    LIFE_SAVING = "life_saving"
    HEAVY_VEHICLE = "heavy_vehicle"
    MEDICAL_PROFESSIONAL = "medical_professional"
    FIRE_SAFETY = "fire_safety"
    SEARCH_RESCUE = "search_rescue"
    BOAT_LICENSE = "boat_license"
    OTHER = "other"

class Gender(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"

class MissingPersonStatus(str, enum.Enum):
    MISSING = "missing"
    FOUND_SAFE = "found_safe"
    FOUND_DECEASED = "found_deceased"
    SIGHTING_REPORTED = "sighting_reported"
    INVESTIGATION_ONGOING = "investigation_ongoing"

class MissingPersonVerification(str, enum.Enum):
    UNVERIFIED = "unverified"
    VERIFIED = "verified"
    REJECTED = "rejected"

class MissingPersonUpdateType(str, enum.Enum):
    GENERAL = "general"
    SIGHTING = "sighting"
    STATUS_CHANGE = "status_change"
    INVESTIGATION = "investigation"


# Verified certification type -> SOS levels it unlocks
CERTIFICATION_LEVELS = {
    CertificationType.MEDICAL_PROFESSIONAL: (SosLevel.LEVEL_2,),
    CertificationType.RED_CROSS: (SosLevel.LEVEL_2,),
    CertificationType.LIFE_SAVING: (SosLevel.LEVEL_2, SosLevel.LEVEL_3),
    CertificationType.SEARCH_RESCUE: (SosLevel.LEVEL_2, SosLevel.LEVEL_3),
    CertificationType.BOAT_LICENSE: (SosLevel.LEVEL_2, SosLevel.LEVEL_3),
}

PRIORITY_RANK = {
    SignalPriority.LOW: 0,
    SignalPriority.MEDIUM: 1,
    SignalPriority.HIGH: 2,
    SignalPriority.CRITICAL: 3,
}

ACTIVE_SIGNAL_STATUSES = (
    SignalStatus.PENDING,
    SignalStatus.ACKNOWLEDGED,
    SignalStatus.RESPONDING,
)

MAX_ESCALATION_LEVEL = 2

# ==================== USER MODEL ====================

class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, index=True, nullable=True)
    username = Column(String(100), unique=True, index=True, nullable=True)
    hashed_password = Column(String(255), nullable=True)  # Null for shadow accounts
    full_name = Column(String(255), nullable=True)
    phone = Column(String(30), unique=True, index=True, nullable=True)
    role = Column(SQLEnum(UserRole), default=UserRole.CITIZEN, nullable=False)
    account_type = Column(SQLEnum(AccountType), default=AccountType.REGISTERED, nullable=False)
    is_active = Column(Boolean, default=True)
    sos_submitted = Column(Integer, default=0)
    last_active = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)

# ==================== SOS SIGNAL ====================

class SosSignal(Base):
    __tablename__ = "sos_signals"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)  # not a strict FK, may be "anonymous"
    citizen_name = Column(String(255), nullable=True)
    citizen_phone = Column(String(30), nullable=True)

    # Location
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(Text, default="")

    message = Column(Text, nullable=False)
    priority = Column(SQLEnum(SignalPriority), default=SignalPriority.MEDIUM, nullable=False)
    status = Column(SQLEnum(SignalStatus), default=SignalStatus.PENDING, nullable=False, index=True)
    emergency_type = Column(SQLEnum(EmergencyType), default=EmergencyType.OTHER)
    sos_level = Column(SQLEnum(SosLevel), default=SosLevel.LEVEL_1, nullable=False)

    # Assignment
    assigned_responder = Column(String(64), nullable=True, index=True)
    response_time = Column(DateTime, nullable=True)
    resolution_time = Column(DateTime, nullable=True)
    active_response_id = Column(String(36), nullable=True)

    # Escalation (0=normal, 1=escalated, 2=critical escalation)
    escalation_level = Column(Integer, default=0, nullable=False)
    auto_escalated_at = Column(DateTime, nullable=True)

    # "I Am Safe" check-in
    victim_safe = Column(Boolean, default=False, nullable=False)
    victim_safe_confirmed_at = Column(DateTime, nullable=True)
    victim_safe_lat = Column(Float, nullable=True)
    victim_safe_lng = Column(Float, nullable=True)

    # Post-rescue handover
    rescue_completed = Column(Boolean, default=False)
    transported_to_camp = Column(Boolean, default=False)
    relief_camp_id = Column(String(64), nullable=True)
    relief_camp_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=utcnow, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    status_updates = relationship(
        "SosStatusUpdate",
        back_populates="signal",
        order_by="SosStatusUpdate.id",
        cascade="all, delete-orphan"
    )

    def add_status_update(self, message: str, update_type: StatusUpdateType, **sender) -> "SosStatusUpdate":
        """Append a victim-visible notice to the signal timeline"""
        update = SosStatusUpdate(
            message=message,
            update_type=update_type,
            sender_id=sender.get("sender_id"),
            sender_name=sender.get("sender_name"),
            sender_role=sender.get("sender_role"),
            timestamp=utcnow()
        )
        self.status_updates.append(update)
        return update


class SosStatusUpdate(Base):
    __tablename__ = "sos_status_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sos_signal_id = Column(String(36), ForeignKey("sos_signals.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    update_type = Column(SQLEnum(StatusUpdateType), nullable=False)
    sender_id = Column(String(64), nullable=True)
    sender_name = Column(String(255), nullable=True)
    sender_role = Column(String(50), nullable=True)
    timestamp = Column(DateTime, default=utcnow)

    signal = relationship("SosSignal", back_populates="status_updates")

# ==================== SOS RESPONSE ====================

class SosResponse(Base):
    __tablename__ = "sos_responses"

    id = Column(String(36), primary_key=True, default=new_id)
    sos_signal_id = Column(String(36), ForeignKey("sos_signals.id", ondelete="CASCADE"), nullable=False, index=True)

    # Responder
    responder_id = Column(String(64), nullable=False, index=True)
    responder_type = Column(SQLEnum(ResponderType), nullable=False)
    responder_name = Column(String(255), nullable=False)
    responder_organization = Column(String(255), nullable=True)
    responder_phone = Column(String(30), nullable=True)

    status = Column(SQLEnum(ResponseStatus), default=ResponseStatus.ASSIGNED, nullable=False)

    # Timeline
    assigned_at = Column(DateTime, default=utcnow)
    en_route_at = Column(DateTime, nullable=True)
    arrived_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Live tracking
    responder_lat = Column(Float, nullable=True)
    responder_lng = Column(Float, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)
    estimated_arrival_time = Column(DateTime, nullable=True)
    distance_to_victim_km = Column(Float, nullable=True)

    # Post-rescue
    rescue_outcome = Column(SQLEnum(RescueOutcome), nullable=True)
    victim_status = Column(SQLEnum(VictimStatus), default=VictimStatus.SAFE)
    relief_camp_id = Column(String(64), nullable=True)
    relief_camp_name = Column(String(255), nullable=True)
    hospital_name = Column(String(255), nullable=True)
    created_missing_person_entry = Column(Boolean, default=False)
    missing_person_id = Column(String(36), ForeignKey("missing_persons.id", ondelete="SET NULL"), nullable=True)

    # Victim feedback
    feedback_rating = Column(Integer, nullable=True)  # 1-5
    feedback_comment = Column(Text, nullable=True)
    feedback_submitted_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    signal = relationship("SosSignal")
    chat_messages = relationship(
        "SosChatMessage",
        back_populates="response",
        order_by="SosChatMessage.id",
        cascade="all, delete-orphan"
    )
    notes = relationship(
        "SosResponseNote",
        back_populates="response",
        order_by="SosResponseNote.id",
        cascade="all, delete-orphan"
    )


class SosChatMessage(Base):
    __tablename__ = "sos_chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(String(36), ForeignKey("sos_responses.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(64), nullable=False)
    sender_name = Column(String(255), nullable=True)
    sender_type = Column(SQLEnum(SenderType), nullable=False)
    message = Column(Text, nullable=False)
    timestamp = Column(DateTime, default=utcnow)
    read = Column(Boolean, default=False)

    response = relationship("SosResponse", back_populates="chat_messages")


class SosResponseNote(Base):
    __tablename__ = "sos_response_notes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(String(36), ForeignKey("sos_responses.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    added_by = Column(String(64), nullable=True)
    timestamp = Column(DateTime, default=utcnow)

    response = relationship("SosResponse", back_populates="notes")

# ==================== CIVILIAN RESPONDER ====================

class CivilianResponder(Base):
    __tablename__ = "civilian_responders"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)

    # Verification layer
    verification_status = Column(
        SQLEnum(ResponderVerificationStatus),
        default=ResponderVerificationStatus.PENDING,
        nullable=False,
        index=True
    )
    verified_at = Column(DateTime, nullable=True)
    verified_by_admin_id = Column(String(64), nullable=True)
    verified_by_admin_name = Column(String(255), nullable=True)
    suspension_reason = Column(Text, nullable=True)

    allowed_sos_levels = Column(JSON, default=lambda: [SosLevel.LEVEL_1.value])

    # Location
    current_lat = Column(Float, nullable=True)
    current_lng = Column(Float, nullable=True)
    current_address = Column(Text, nullable=True)
    location_updated_at = Column(DateTime, nullable=True)

    # Availability
    is_available = Column(Boolean, default=True, nullable=False)
    availability_radius_km = Column(Float, default=5)

    # Response history
    total_responses = Column(Integer, default=0, nullable=False)
    successful_responses = Column(Integer, default=0, nullable=False)
    failed_responses = Column(Integer, default=0, nullable=False)
    average_response_time_minutes = Column(Float, default=0)

    assigned_sos_id = Column(String(36), nullable=True)

    rating = Column(Float, default=0, nullable=False)
    total_ratings = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    certifications = relationship(
        "ResponderCertification",
        back_populates="responder",
        order_by="ResponderCertification.id",
        cascade="all, delete-orphan"
    )

    def update_allowed_levels(self):
        """Recompute allowed SOS levels from verified certifications. level_1 is implicit."""
        levels = {SosLevel.LEVEL_1}
        for cert in self.certifications:
            if cert.verified:
                levels.update(CERTIFICATION_LEVELS.get(cert.cert_type, ()))
        self.allowed_sos_levels = sorted(level.value for level in levels)

    def can_respond_to(self, level: SosLevel) -> bool:
        return SosLevel(level).value in (self.allowed_sos_levels or [])


class ResponderCertification(Base):
    __tablename__ = "responder_certifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    responder_id = Column(String(36), ForeignKey("civilian_responders.id", ondelete="CASCADE"), nullable=False, index=True)
    cert_type = Column(SQLEnum(CertificationType), nullable=False)
    certificate_number = Column(String(100), nullable=True)
    issued_by = Column(String(255), nullable=True)
    issue_date = Column(Date, nullable=True)
    expiry_date = Column(Date, nullable=True)
    document_url = Column(String(500), nullable=True)
    verified = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    responder = relationship("CivilianResponder", back_populates="certifications")

# ==================== MISSING PERSON ====================

class MissingPerson(Base):
    __tablename__ = "missing_persons"

    id = Column(String(36), primary_key=True, default=new_id)
    case_number = Column(String(32), unique=True, index=True, default=new_case_number)
    full_name = Column(String(255), nullable=False)
    age = Column(Integer, nullable=True)
    gender = Column(SQLEnum(Gender), default=Gender.OTHER, nullable=False)
    description = Column(Text, nullable=False)

    last_seen_date = Column(DateTime, nullable=False)
    last_seen_lat = Column(Float, nullable=False)
    last_seen_lng = Column(Float, nullable=False)
    last_seen_address = Column(Text, default="")
    circumstances = Column(Text, nullable=False)

    reporter_name = Column(String(255), nullable=False)
    reporter_relationship = Column(String(100), nullable=False)
    reporter_phone = Column(String(30), nullable=True)

    status = Column(SQLEnum(MissingPersonStatus), default=MissingPersonStatus.MISSING, nullable=False)
    priority = Column(SQLEnum(SignalPriority), default=SignalPriority.MEDIUM)
    is_vulnerable = Column(Boolean, default=False)

    found_date = Column(DateTime, nullable=True)
    found_lat = Column(Float, nullable=True)
    found_lng = Column(Float, nullable=True)
    found_address = Column(Text, nullable=True)
    found_condition = Column(String(50), nullable=True)
    resolution_details = Column(Text, nullable=True)

    verification_status = Column(
        SQLEnum(MissingPersonVerification),
        default=MissingPersonVerification.UNVERIFIED,
        nullable=False
    )
    verified_by_user_id = Column(String(64), nullable=True)
    verified_by_name = Column(String(255), nullable=True)
    verified_by_role = Column(String(50), nullable=True)
    verified_at = Column(DateTime, nullable=True)

    public_visibility = Column(Boolean, default=True)
    created_by = Column(String(64), nullable=True)
    disaster_related = Column(Boolean, default=False)
    source_sos_id = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sightings = relationship(
        "MissingPersonSighting",
        back_populates="person",
        order_by="MissingPersonSighting.id",
        cascade="all, delete-orphan"
    )
    updates = relationship(
        "MissingPersonUpdate",
        back_populates="person",
        order_by="MissingPersonUpdate.id",
        cascade="all, delete-orphan"
    )

    def add_update(self, message: str, update_type: MissingPersonUpdateType, added_by: str = None) -> "MissingPersonUpdate":
        update = MissingPersonUpdate(
            message=message,
            update_type=update_type,
            added_by=added_by,
            timestamp=utcnow()
        )
        self.updates.append(update)
        return update


class MissingPersonSighting(Base):
    __tablename__ = "missing_person_sightings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(String(36), ForeignKey("missing_persons.id", ondelete="CASCADE"), nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    address = Column(Text, nullable=True)
    description = Column(Text, nullable=False)
    reported_by = Column(String(255), nullable=True)
    contact = Column(String(100), nullable=True)
    verified = Column(Boolean, default=False)
    date = Column(DateTime, default=utcnow)

    person = relationship("MissingPerson", back_populates="sightings")


class MissingPersonUpdate(Base):
    __tablename__ = "missing_person_updates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    person_id = Column(String(36), ForeignKey("missing_persons.id", ondelete="CASCADE"), nullable=False, index=True)
    message = Column(Text, nullable=False)
    added_by = Column(String(255), nullable=True)
    update_type = Column(SQLEnum(MissingPersonUpdateType), default=MissingPersonUpdateType.GENERAL, nullable=False)
    timestamp = Column(DateTime, default=utcnow)

    person = relationship("MissingPerson", back_populates="updates")
