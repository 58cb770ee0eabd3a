"""Tests for civilian responder self-service endpoints."""
from sosnet.models.db_models import CivilianResponder, ResponderVerificationStatus

from conftest import auth_headers


class TestRegistration:
    def test_register_starts_pending_with_level_1(self, client, make_user):
        user = make_user(full_name="Chamara")

        response = client.post(
            "/api/civilian-responder/register",
            headers=auth_headers(user),
            json={"current_location": {"lat": 6.9, "lng": 79.8, "address": "Dehiwala"}}
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["full_name"] == "Chamara"
        assert data["phone"] == user.phone
        assert data["verification_status"] == "pending"
        assert data["allowed_sos_levels"] == ["level_1"]
        assert data["current_location"]["address"] == "Dehiwala"
        assert data["availability_radius_km"] == 5

    def test_cannot_register_twice(self, client, make_user):
        user = make_user()
        client.post("/api/civilian-responder/register", headers=auth_headers(user), json={})

        response = client.post("/api/civilian-responder/register", headers=auth_headers(user), json={})

        assert response.status_code == 400

    def test_radius_bounds(self, client, make_user):
        response = client.post(
            "/api/civilian-responder/register",
            headers=auth_headers(make_user()),
            json={"availability_radius_km": 50}
        )
        assert response.status_code == 400

    def test_registered_but_pending_cannot_accept(self, client, db, make_user, make_signal):
        user = make_user()
        client.post("/api/civilian-responder/register", headers=auth_headers(user), json={})
        sos = make_signal()

        response = client.post(f"/api/sos/{sos.id}/accept", headers=auth_headers(user))

        assert response.status_code == 403


class TestProfile:
    def test_add_certification_is_unverified(self, client, make_user, make_responder):
        user = make_user()
        make_responder(user)

        response = client.post(
            "/api/civilian-responder/certification",
            headers=auth_headers(user),
            json={
                "type": "life_saving",
                "certificate_number": "LS-2291",
                "issued_by": "Sri Lanka Life Saving",
                "expiry_date": "2027-06-30",
                "document_url": "https://files.example.com/ls-2291.pdf",
            }
        )

        assert response.status_code == 201
        data = response.json()["data"]
        assert data["certifications"] == [{
            "id": data["certifications"][0]["id"],
            "type": "life_saving",
            "certificate_number": "LS-2291",
            "issued_by": "Sri Lanka Life Saving",
            "issue_date": None,
            "expiry_date": "2027-06-30",
            "document_url": "https://files.example.com/ls-2291.pdf",
            "verified": False,
        }]
        assert data["allowed_sos_levels"] == ["level_1"]

    def test_profile_missing(self, client, make_user):
        response = client.get("/api/civilian-responder/profile", headers=auth_headers(make_user()))
        assert response.status_code == 404

    def test_update_location(self, client, db, make_user, make_responder):
        user = make_user()
        make_responder(user)

        response = client.put(
            "/api/civilian-responder/location",
            headers=auth_headers(user),
            json={"lat": 7.0, "lng": 80.0, "address": "Gampaha"}
        )

        assert response.status_code == 200
        location = response.json()["data"]["current_location"]
        assert (location["lat"], location["lng"]) == (7.0, 80.0)
        assert location["last_updated"] is not None

    def test_toggle_availability(self, client, db, make_user, make_responder):
        user = make_user()
        make_responder(user)

        response = client.put(
            "/api/civilian-responder/availability",
            headers=auth_headers(user),
            json={"is_available": False, "availability_radius_km": 12}
        )

        assert response.status_code == 200
        db.expire_all()
        profile = db.query(CivilianResponder).filter(CivilianResponder.user_id == user.id).one()
        assert profile.is_available is False
        assert profile.availability_radius_km == 12

    def test_stats_success_rate(self, client, make_user, make_responder):
        user = make_user()
        make_responder(user, total_responses=4, successful_responses=3, rating=4.5, total_ratings=2)

        data = client.get("/api/civilian-responder/stats", headers=auth_headers(user)).json()["data"]

        assert data["success_rate"] == 75.0
        assert data["rating"] == 4.5
        assert data["verification_status"] == ResponderVerificationStatus.VERIFIED.value

    def test_stats_without_responses(self, client, make_user, make_responder):
        user = make_user()
        make_responder(user)

        data = client.get("/api/civilian-responder/stats", headers=auth_headers(user)).json()["data"]

        assert data["success_rate"] == 0.0
