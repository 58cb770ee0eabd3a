"""Tests for the signal message thread and manual status changes."""
from sosnet.models.db_models import SosSignal, SignalStatus, StatusUpdateType, UserRole

from conftest import auth_headers


class TestSignalMessages:
    def test_owner_posts_and_lists(self, client, relay, make_user, make_signal):
        victim = make_user(full_name="Dilani")
        sos = make_signal(user_id=victim.id)
        headers = auth_headers(victim)

        posted = client.post(f"/api/sos/{sos.id}/messages", headers=headers, json={"message": "Still waiting"})
        listed = client.get(f"/api/sos/{sos.id}/messages", headers=headers)

        assert posted.status_code == 200
        assert posted.json()["data"]["sender_name"] == "Dilani"
        assert [m["message"] for m in listed.json()["data"]] == ["Dilani: Still waiting"]
        room, _, payload = relay.named("new-message")[0]
        assert room == f"sos_{sos.id}"
        assert payload["message"] == "Still waiting"

    def test_listing_skips_system_notices(self, client, db, make_user, make_signal):
        victim = make_user()
        sos = make_signal(user_id=victim.id)
        sos.add_status_update("Responder assigned", StatusUpdateType.RESPONDER_ASSIGNED)
        db.commit()

        client.post(f"/api/sos/{sos.id}/messages", headers=auth_headers(victim), json={"message": "hello"})
        body = client.get(f"/api/sos/{sos.id}/messages", headers=auth_headers(victim)).json()

        assert body["count"] == 1

    def test_official_responder_may_post(self, client, make_user, make_signal):
        official = make_user(role=UserRole.RESPONDER)
        sos = make_signal()

        response = client.post(f"/api/sos/{sos.id}/messages", headers=auth_headers(official), json={"message": "Unit 4 dispatched"})

        assert response.status_code == 200
        assert response.json()["data"]["sender_role"] == "responder"

    def test_other_citizen_forbidden(self, client, make_user, make_signal):
        victim, other = make_user(), make_user()
        sos = make_signal(user_id=victim.id)

        assert client.get(f"/api/sos/{sos.id}/messages", headers=auth_headers(other)).status_code == 403

    def test_empty_message_rejected(self, client, make_user, make_signal):
        victim = make_user()
        sos = make_signal(user_id=victim.id)

        response = client.post(f"/api/sos/{sos.id}/messages", headers=auth_headers(victim), json={"message": ""})

        assert response.status_code == 400


class TestManualStatusChange:
    def test_admin_resolves_signal(self, client, db, relay, make_user, make_signal):
        admin = make_user(role=UserRole.ADMIN)
        sos = make_signal()

        response = client.put(
            f"/api/sos/{sos.id}/status",
            headers=auth_headers(admin),
            json={"status": "resolved", "notes": "Family reached safety"}
        )

        assert response.status_code == 200
        db.expire_all()
        stored = db.query(SosSignal).filter(SosSignal.id == sos.id).one()
        assert stored.status == SignalStatus.RESOLVED
        assert stored.resolution_time is not None
        assert stored.status_updates[-1].update_type == StatusUpdateType.SYSTEM_UPDATE
        assert stored.status_updates[-1].message.endswith("Family reached safety")

        event = relay.named("status-update")[0][2]
        assert event == {
            "sosId": sos.id,
            "status": "resolved",
            "oldStatus": "pending",
            "updatedBy": admin.full_name,
        }

    def test_invalid_status(self, client, make_user, make_signal):
        admin = make_user(role=UserRole.ADMIN)
        sos = make_signal()

        response = client.put(f"/api/sos/{sos.id}/status", headers=auth_headers(admin), json={"status": "lost"})

        assert response.status_code == 400

    def test_citizen_cannot_change_others_signal(self, client, make_user, make_signal):
        sos = make_signal(user_id="someone")
        response = client.put(f"/api/sos/{sos.id}/status", headers=auth_headers(make_user()), json={"status": "resolved"})
        assert response.status_code == 403
