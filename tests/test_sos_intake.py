"""Tests for SOS submission: shadow citizens, anonymous and authenticated."""
from datetime import timedelta

import pytest

from sosnet.models.db_models import SosSignal, User, UserRole, AccountType, utcnow

from conftest import auth_headers

CITIZEN_SOS = {
    "name": "Kamal Silva",
    "phone": "077-555 1234",
    "location": {"lat": 6.9271, "lng": 79.8612, "address": "Colombo 07"},
    "message": "Water rising fast",
}


class TestCitizenSubmit:
    def test_creates_shadow_account_and_signal(self, client, db):
        response = client.post("/api/sos/citizen/submit", json=CITIZEN_SOS)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["sos"]["status"] == "pending"
        assert data["sos"]["priority"] == "high"
        assert data["citizen"]["phone"] == "0775551234"
        assert data["auth"]["token"]
        assert data["auth"]["expiresIn"] == "30d"

        db.expire_all()
        citizen = db.query(User).filter(User.id == data["citizen"]["id"]).one()
        assert citizen.account_type == AccountType.SHADOW
        assert citizen.hashed_password is None
        assert citizen.sos_submitted == 1

        sos = db.query(SosSignal).filter(SosSignal.id == data["sos"]["id"]).one()
        assert sos.user_id == citizen.id
        assert sos.address == "Colombo 07"

    def test_same_phone_reuses_citizen(self, client, db):
        first = client.post("/api/sos/citizen/submit", json=CITIZEN_SOS).json()["data"]
        second = client.post(
            "/api/sos/citizen/submit",
            json={**CITIZEN_SOS, "phone": "0775551234", "name": "Kamal S."}
        ).json()["data"]

        assert first["citizen"]["id"] == second["citizen"]["id"]
        assert second["citizen"]["name"] == "Kamal S."
        db.expire_all()
        assert db.query(User).count() == 1
        assert db.query(User).one().sos_submitted == 2

    @pytest.mark.parametrize("role", [UserRole.ADMIN, UserRole.RESPONDER, UserRole.CITIZEN])
    def test_registered_phone_must_sign_in(self, client, db, make_user, role):
        owner = make_user(role=role, full_name="Account Owner", phone="0771112222")

        response = client.post(
            "/api/sos/citizen/submit",
            json={**CITIZEN_SOS, "phone": "077-111 2222", "name": "Someone Else"}
        )

        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "PHONE_REGISTERED"
        assert "data" not in body
        db.expire_all()
        stored = db.query(User).filter(User.id == owner.id).one()
        assert stored.full_name == "Account Owner"
        assert stored.role == role
        assert db.query(SosSignal).count() == 0

    def test_token_follows_own_signals(self, client):
        data = client.post("/api/sos/citizen/submit", json=CITIZEN_SOS).json()["data"]
        headers = {"Authorization": f"Bearer {data['auth']['token']}"}

        response = client.get("/api/sos/citizen/my-sos", headers=headers)

        assert response.status_code == 200
        assert [s["id"] for s in response.json()["data"]] == [data["sos"]["id"]]

    def test_missing_message_rejected(self, client, db):
        payload = {k: v for k, v in CITIZEN_SOS.items() if k != "message"}
        response = client.post("/api/sos/citizen/submit", json=payload)

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert "message" in response.json()["message"]
        assert db.query(SosSignal).count() == 0

    def test_latitude_out_of_range(self, client):
        response = client.post(
            "/api/sos/citizen/submit",
            json={**CITIZEN_SOS, "location": {"lat": 120, "lng": 79.8}}
        )
        assert response.status_code == 400


class TestPublicSubmit:
    def test_anonymous_signal_with_default_message(self, client, db):
        response = client.post("/api/public/sos", json={"location": {"lat": 7.29, "lng": 80.63}})

        assert response.status_code == 200
        sos_id = response.json()["data"]["id"]
        sos = db.query(SosSignal).filter(SosSignal.id == sos_id).one()
        assert sos.user_id == "anonymous"
        assert sos.message == "Emergency SOS - Need immediate assistance"
        assert db.query(User).count() == 0

    def test_location_required(self, client):
        response = client.post("/api/public/sos", json={"message": "help"})
        assert response.status_code == 400


class TestAuthenticatedSubmit:
    def test_submit_defaults_to_medium(self, client, make_user):
        user = make_user()
        response = client.post("/api/sos", headers=auth_headers(user), json={
            "location": {"lat": 6.9, "lng": 79.8},
            "message": "Trapped on roof",
            "sos_level": "level_3",
        })

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user_id"] == user.id
        assert data["priority"] == "medium"
        assert data["sos_level"] == "level_3"
        assert data["victim_status_updates"] == []

    def test_requires_token(self, client):
        response = client.post("/api/sos", json={"location": {"lat": 6.9, "lng": 79.8}, "message": "x"})
        assert response.status_code == 401

    def test_my_sos_is_newest_first(self, client, make_user, make_signal):
        user = make_user()
        older = make_signal(user_id=user.id, created_at=utcnow() - timedelta(hours=1))
        newer = make_signal(user_id=user.id)
        make_signal(user_id="someone-else")

        response = client.get("/api/sos/citizen/my-sos", headers=auth_headers(user))

        assert [s["id"] for s in response.json()["data"]] == [newer.id, older.id]
