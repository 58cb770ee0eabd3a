"""Tests for nearby signal discovery."""
from datetime import timedelta

import pytest

from sosnet.models.db_models import SignalPriority, SignalStatus, SosLevel, UserRole, utcnow

from conftest import COLOMBO, KANDY, auth_headers


def nearby(client, user, **params):
    response = client.get("/api/sos/public/nearby", headers=auth_headers(user), params=params)
    assert response.status_code == 200
    return response.json()


class TestCandidates:
    def test_only_active_unsafe_signals(self, client, make_user, make_signal):
        viewer = make_user()
        pending = make_signal(status=SignalStatus.PENDING)
        responding = make_signal(status=SignalStatus.RESPONDING)
        make_signal(status=SignalStatus.RESOLVED)
        make_signal(status=SignalStatus.FALSE_ALARM)
        make_signal(status=SignalStatus.PENDING, victim_safe=True)

        body = nearby(client, viewer)

        assert {s["id"] for s in body["data"]} == {pending.id, responding.id}
        assert body["count"] == 2
        assert body["total_active"] == 2
        assert body["user_is_civilian_responder"] is False
        assert body["allowed_levels"] == ["level_1"]

    def test_requires_authentication(self, client):
        response = client.get("/api/sos/public/nearby")
        assert response.status_code == 401
        assert response.json()["code"] == "TOKEN_REQUIRED"


class TestOrdering:
    def test_priority_then_recency_without_location(self, client, make_user, make_signal):
        viewer = make_user()
        now = utcnow()
        low = make_signal(priority=SignalPriority.LOW, created_at=now)
        old_high = make_signal(priority=SignalPriority.HIGH, created_at=now - timedelta(minutes=30))
        new_high = make_signal(priority=SignalPriority.HIGH, created_at=now)
        critical = make_signal(priority=SignalPriority.CRITICAL, created_at=now - timedelta(hours=2))

        body = nearby(client, viewer)

        assert [s["id"] for s in body["data"]] == [critical.id, new_high.id, old_high.id, low.id]
        assert all(s["distance_km"] is None for s in body["data"])

    def test_priority_then_distance_with_location(self, client, make_user, make_signal):
        viewer = make_user()
        far_high = make_signal(location=KANDY, priority=SignalPriority.HIGH)
        near_high = make_signal(location=COLOMBO, priority=SignalPriority.HIGH)
        far_critical = make_signal(location=KANDY, priority=SignalPriority.CRITICAL)

        body = nearby(client, viewer, lat=COLOMBO[0], lng=COLOMBO[1])

        assert [s["id"] for s in body["data"]] == [far_critical.id, near_high.id, far_high.id]
        assert body["data"][1]["distance_km"] == pytest.approx(0.0)

    def test_radius_filter(self, client, make_user, make_signal):
        viewer = make_user()
        near = make_signal(location=COLOMBO)
        make_signal(location=KANDY)

        body = nearby(client, viewer, lat=COLOMBO[0], lng=COLOMBO[1], radius_km=10)

        assert [s["id"] for s in body["data"]] == [near.id]
        assert body["total_active"] == 2

    def test_radius_ignored_without_location(self, client, make_user, make_signal):
        viewer = make_user()
        make_signal(location=COLOMBO)
        make_signal(location=KANDY)

        body = nearby(client, viewer, radius_km=10)

        assert body["count"] == 2


class TestLevelFiltering:
    def test_civilian_sees_only_allowed_levels(self, client, make_user, make_signal, make_responder):
        user = make_user()
        make_responder(user, levels=(SosLevel.LEVEL_1,))
        level_1 = make_signal(sos_level=SosLevel.LEVEL_1)
        make_signal(sos_level=SosLevel.LEVEL_3)

        body = nearby(client, user)

        assert [s["id"] for s in body["data"]] == [level_1.id]
        assert body["user_is_civilian_responder"] is True
        assert body["civilian_verification_status"] == "verified"
        assert body["allowed_levels"] == ["level_1"]

    def test_certified_civilian_sees_higher_levels(self, client, make_user, make_signal, make_responder):
        user = make_user()
        make_responder(user, levels=(SosLevel.LEVEL_1, SosLevel.LEVEL_2, SosLevel.LEVEL_3))
        make_signal(sos_level=SosLevel.LEVEL_1)
        make_signal(sos_level=SosLevel.LEVEL_3)

        assert nearby(client, user)["count"] == 2

    @pytest.mark.parametrize("role", [UserRole.RESPONDER, UserRole.ADMIN])
    def test_officials_and_admins_see_everything(self, client, make_user, make_signal, make_responder, role):
        user = make_user(role=role)
        make_responder(user, levels=(SosLevel.LEVEL_1,))
        make_signal(sos_level=SosLevel.LEVEL_1)
        make_signal(sos_level=SosLevel.LEVEL_3)

        assert nearby(client, user)["count"] == 2
