"""Tests for registration, login and token handling."""
from datetime import timedelta

from sosnet.models.db_models import User, AccountType

from conftest import auth_headers, token_for


REGISTRATION = {
    "email": "amali@example.com",
    "full_name": "Amali Perera",
    "username": "amali",
    "password": "correct-horse",
}


class TestRegister:
    def test_register_creates_user(self, client):
        response = client.post("/auth/register", json=REGISTRATION)

        assert response.status_code == 201
        data = response.json()
        assert data["success"] is True
        assert data["data"]["email"] == "amali@example.com"
        assert data["data"]["role"] == "citizen"
        assert data["data"]["account_type"] == "registered"

    def test_duplicate_email_rejected(self, client):
        client.post("/auth/register", json=REGISTRATION)
        response = client.post("/auth/register", json={**REGISTRATION, "username": "other"})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["message"] == "Email already registered"

    def test_short_password_is_validation_error(self, client):
        response = client.post("/auth/register", json={**REGISTRATION, "password": "short"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_upgrades_shadow_account_with_same_phone(self, client, db):
        submit = client.post("/api/sos/citizen/submit", json={
            "name": "Amali",
            "phone": "077 123-4567",
            "location": {"lat": 6.9, "lng": 79.8},
            "message": "Flooding",
        })
        shadow_id = submit.json()["data"]["citizen"]["id"]

        response = client.post("/auth/register", json={**REGISTRATION, "phone": "0771234567"})

        assert response.status_code == 201
        assert response.json()["data"]["id"] == shadow_id
        db.expire_all()
        user = db.query(User).filter(User.id == shadow_id).one()
        assert user.account_type == AccountType.REGISTERED
        assert db.query(User).count() == 1


class TestLogin:
    def test_login_returns_token(self, client):
        client.post("/auth/register", json=REGISTRATION)
        response = client.post("/auth/login", data={"username": "amali@example.com", "password": "correct-horse"})

        assert response.status_code == 200
        token = response.json()["access_token"]
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["data"]["username"] == "amali"

    def test_wrong_password(self, client):
        client.post("/auth/register", json=REGISTRATION)
        response = client.post("/auth/login", data={"username": "amali@example.com", "password": "nope-nope"})

        assert response.status_code == 401
        assert response.json()["message"] == "Invalid credentials"


class TestTokens:
    def test_missing_token(self, client):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_REQUIRED"

    def test_expired_token(self, client, make_user):
        user = make_user()
        token = token_for(user, expires_delta=timedelta(minutes=-5))
        response = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["code"] == "SESSION_EXPIRED"

    def test_garbage_token(self, client):
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})

        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_inactive_user_forbidden(self, client, make_user):
        user = make_user(is_active=False)
        response = client.get("/auth/me", headers=auth_headers(user))

        assert response.status_code == 403
