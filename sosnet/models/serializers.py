"""
SOSNet - Response Serializers
Convert ORM rows into the JSON shapes returned by the API
"""
from datetime import date, datetime
from typing import Optional

from sosnet.models.db_models import (
    SosSignal, SosStatusUpdate, SosResponse, SosChatMessage, SosResponseNote,
    CivilianResponder, ResponderCertification, MissingPerson, MissingPersonSighting,
    MissingPersonUpdate, User
)


def iso(value) -> Optional[str]:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return None


def enum_value(value):
    return value.value if hasattr(value, "value") else value


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "username": user.username,
        "full_name": user.full_name,
        "phone": user.phone,
        "role": enum_value(user.role),
        "account_type": enum_value(user.account_type),
        "is_active": user.is_active,
        "created_at": iso(user.created_at)
    }


def serialize_status_update(update: SosStatusUpdate) -> dict:
    return {
        "id": update.id,
        "message": update.message,
        "update_type": enum_value(update.update_type),
        "sender_id": update.sender_id,
        "sender_name": update.sender_name,
        "sender_role": update.sender_role,
        "timestamp": iso(update.timestamp)
    }


def serialize_signal(sos: SosSignal, include_updates: bool = True) -> dict:
    data = {
        "id": sos.id,
        "user_id": sos.user_id,
        "citizen_name": sos.citizen_name,
        "citizen_phone": sos.citizen_phone,
        "location": {
            "lat": sos.latitude,
            "lng": sos.longitude,
            "address": sos.address or ""
        },
        "message": sos.message,
        "priority": enum_value(sos.priority),
        "status": enum_value(sos.status),
        "emergency_type": enum_value(sos.emergency_type),
        "sos_level": enum_value(sos.sos_level),
        "assigned_responder": sos.assigned_responder,
        "response_time": iso(sos.response_time),
        "resolution_time": iso(sos.resolution_time),
        "active_response_id": sos.active_response_id,
        "escalation_level": sos.escalation_level,
        "auto_escalated_at": iso(sos.auto_escalated_at),
        "victim_safe_confirmation": {
            "is_safe": bool(sos.victim_safe),
            "confirmed_at": iso(sos.victim_safe_confirmed_at),
            "location": {
                "lat": sos.victim_safe_lat,
                "lng": sos.victim_safe_lng
            }
        },
        "rescue_completed": bool(sos.rescue_completed),
        "transported_to_camp": bool(sos.transported_to_camp),
        "relief_camp_id": sos.relief_camp_id,
        "relief_camp_name": sos.relief_camp_name,
        "created_at": iso(sos.created_at),
        "updated_at": iso(sos.updated_at)
    }
    if include_updates:
        data["victim_status_updates"] = [serialize_status_update(u) for u in sos.status_updates]
    return data


def serialize_chat_message(message: SosChatMessage) -> dict:
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "sender_name": message.sender_name,
        "sender_type": enum_value(message.sender_type),
        "message": message.message,
        "timestamp": iso(message.timestamp),
        "read": bool(message.read)
    }


def serialize_note(note: SosResponseNote) -> dict:
    return {
        "message": note.message,
        "added_by": note.added_by,
        "timestamp": iso(note.timestamp)
    }


def responder_location(response: SosResponse) -> Optional[dict]:
    if response.responder_lat is None or response.responder_lng is None:
        return None
    return {
        "lat": response.responder_lat,
        "lng": response.responder_lng,
        "last_updated": iso(response.location_updated_at)
    }


def serialize_response(response: SosResponse) -> dict:
    feedback = None
    if response.feedback_rating is not None:
        feedback = {
            "rating": response.feedback_rating,
            "comment": response.feedback_comment,
            "submitted_at": iso(response.feedback_submitted_at)
        }
    return {
        "id": response.id,
        "sos_signal_id": response.sos_signal_id,
        "responder_id": response.responder_id,
        "responder_type": enum_value(response.responder_type),
        "responder_name": response.responder_name,
        "responder_organization": response.responder_organization,
        "responder_phone": response.responder_phone,
        "status": enum_value(response.status),
        "assigned_at": iso(response.assigned_at),
        "en_route_at": iso(response.en_route_at),
        "arrived_at": iso(response.arrived_at),
        "completed_at": iso(response.completed_at),
        "responder_location": responder_location(response),
        "estimated_arrival_time": iso(response.estimated_arrival_time),
        "distance_to_victim_km": response.distance_to_victim_km,
        "rescue_outcome": enum_value(response.rescue_outcome),
        "victim_status": enum_value(response.victim_status),
        "relief_camp_id": response.relief_camp_id,
        "relief_camp_name": response.relief_camp_name,
        "hospital_name": response.hospital_name,
        "created_missing_person_entry": bool(response.created_missing_person_entry),
        "missing_person_id": response.missing_person_id,
        "feedback": feedback,
        "notes": [serialize_note(n) for n in response.notes],
        "chat_messages": [serialize_chat_message(m) for m in response.chat_messages],
        "created_at": iso(response.created_at),
        "updated_at": iso(response.updated_at)
    }


def serialize_certification(cert: ResponderCertification) -> dict:
    return {
        "id": cert.id,
        "type": enum_value(cert.cert_type),
        "certificate_number": cert.certificate_number,
        "issued_by": cert.issued_by,
        "issue_date": iso(cert.issue_date),
        "expiry_date": iso(cert.expiry_date),
        "document_url": cert.document_url,
        "verified": bool(cert.verified)
    }


def serialize_responder(responder: CivilianResponder) -> dict:
    location = None
    if responder.current_lat is not None and responder.current_lng is not None:
        location = {
            "lat": responder.current_lat,
            "lng": responder.current_lng,
            "address": responder.current_address,
            "last_updated": iso(responder.location_updated_at)
        }
    return {
        "id": responder.id,
        "user_id": responder.user_id,
        "full_name": responder.full_name,
        "phone": responder.phone,
        "email": responder.email,
        "verification_status": enum_value(responder.verification_status),
        "verified_at": iso(responder.verified_at),
        "verified_by": {
            "admin_id": responder.verified_by_admin_id,
            "admin_name": responder.verified_by_admin_name
        } if responder.verified_by_admin_id else None,
        "suspension_reason": responder.suspension_reason,
        "certifications": [serialize_certification(c) for c in responder.certifications],
        "allowed_sos_levels": list(responder.allowed_sos_levels or []),
        "current_location": location,
        "is_available": responder.is_available,
        "availability_radius_km": responder.availability_radius_km,
        "total_responses": responder.total_responses,
        "successful_responses": responder.successful_responses,
        "failed_responses": responder.failed_responses,
        "average_response_time_minutes": responder.average_response_time_minutes,
        "assigned_sos_id": responder.assigned_sos_id,
        "rating": responder.rating,
        "total_ratings": responder.total_ratings,
        "created_at": iso(responder.created_at)
    }


def serialize_sighting(sighting: MissingPersonSighting) -> dict:
    return {
        "id": sighting.id,
        "location": {
            "lat": sighting.lat,
            "lng": sighting.lng,
            "address": sighting.address
        },
        "date": iso(sighting.date),
        "description": sighting.description,
        "reported_by": sighting.reported_by,
        "contact": sighting.contact,
        "verified": bool(sighting.verified)
    }


def serialize_person_update(update: MissingPersonUpdate) -> dict:
    return {
        "id": update.id,
        "message": update.message,
        "added_by": update.added_by,
        "update_type": enum_value(update.update_type),
        "timestamp": iso(update.timestamp)
    }


def serialize_missing_person(person: MissingPerson) -> dict:
    return {
        "id": person.id,
        "case_number": person.case_number,
        "full_name": person.full_name,
        "age": person.age,
        "gender": enum_value(person.gender),
        "description": person.description,
        "last_seen_date": iso(person.last_seen_date),
        "last_seen_location": {
            "lat": person.last_seen_lat,
            "lng": person.last_seen_lng,
            "address": person.last_seen_address or ""
        },
        "circumstances": person.circumstances,
        "reporter_name": person.reporter_name,
        "reporter_relationship": person.reporter_relationship,
        "reporter_phone": person.reporter_phone,
        "status": enum_value(person.status),
        "priority": enum_value(person.priority),
        "is_vulnerable": bool(person.is_vulnerable),
        "found_date": iso(person.found_date),
        "found_location": {
            "lat": person.found_lat,
            "lng": person.found_lng,
            "address": person.found_address
        } if person.found_lat is not None else None,
        "found_condition": person.found_condition,
        "resolution_details": person.resolution_details,
        "verification_status": enum_value(person.verification_status),
        "verified_by": {
            "user_id": person.verified_by_user_id,
            "username": person.verified_by_name,
            "role": person.verified_by_role,
            "verified_at": iso(person.verified_at)
        } if person.verified_by_user_id else None,
        "public_visibility": person.public_visibility,
        "disaster_related": person.disaster_related,
        "source_sos_id": person.source_sos_id,
        "created_by": person.created_by,
        "sightings": [serialize_sighting(s) for s in person.sightings],
        "updates": [serialize_person_update(u) for u in person.updates],
        "created_at": iso(person.created_at),
        "updated_at": iso(person.updated_at)
    }
