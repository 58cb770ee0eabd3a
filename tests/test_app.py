"""Tests for app wiring: health endpoints and error envelope."""


class TestHealthEndpoints:
    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["status"] == "online"
        assert response.json()["app"] == "SOSNet"

    def test_health(self, client):
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["websocket_clients"] == 0


class TestErrorEnvelope:
    def test_unknown_route_uses_envelope(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Not Found"}

    def test_relay_is_shared_per_app(self, app, relay):
        assert app.state.relay is relay
