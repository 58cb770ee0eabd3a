"""Shared fixtures: in-memory database, app with recording relay, row factories."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from sosnet.database import Base, get_db
from sosnet.main import create_app
from sosnet.models.db_models import (
    User, UserRole, AccountType, SosSignal, SignalPriority, SignalStatus, SosLevel,
    CivilianResponder, ResponderVerificationStatus, utcnow
)
from sosnet.utils.security import create_access_token
from sosnet.ws_handlers.handler import InProcessRelay

COLOMBO = (6.9271, 79.8612)
KANDY = (7.2906, 80.6337)


class RecordingRelay(InProcessRelay):
    """InProcessRelay that remembers every publish"""

    def __init__(self):
        super().__init__()
        self.events = []

    async def publish(self, room, event, data):
        self.events.append((room, event, data))
        return await super().publish(room, event, data)

    def named(self, event):
        return [e for e in self.events if e[1] == event]


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def relay():
    return RecordingRelay()


@pytest.fixture
def app(session_factory, relay):
    app = create_app()
    app.state.relay = relay

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest.fixture
def client(app):
    # No context manager: the lifespan (create_all on the real engine, sweep task) stays off
    return TestClient(app)


def token_for(user, expires_delta=timedelta(minutes=30)):
    return create_access_token(
        {"user_id": user.id, "email": user.email, "role": user.role.value},
        expires_delta=expires_delta
    )


def auth_headers(user):
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role=UserRole.CITIZEN, full_name=None, phone=None, **fields):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=fields.pop("email", f"user{n}@example.com"),
            username=fields.pop("username", f"user{n}"),
            full_name=full_name or f"User {n}",
            phone=phone or f"07700000{n:02d}",
            role=role,
            account_type=AccountType.REGISTERED,
            **fields
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_signal(db):
    def factory(user_id="anonymous", location=COLOMBO, priority=SignalPriority.HIGH,
                status=SignalStatus.PENDING, sos_level=SosLevel.LEVEL_1, **fields):
        sos = SosSignal(
            user_id=user_id,
            latitude=location[0],
            longitude=location[1],
            address="",
            message=fields.pop("message", "Need help"),
            priority=priority,
            status=status,
            sos_level=sos_level,
            **fields
        )
        db.add(sos)
        db.commit()
        db.refresh(sos)
        return sos

    return factory


@pytest.fixture
def make_responder(db):
    def factory(user, verified=True, available=True, levels=(SosLevel.LEVEL_1,), location=None, **fields):
        responder = CivilianResponder(
            user_id=user.id,
            full_name=user.full_name,
            phone=user.phone,
            email=user.email,
            verification_status=(
                ResponderVerificationStatus.VERIFIED if verified else ResponderVerificationStatus.PENDING
            ),
            allowed_sos_levels=[level.value for level in levels],
            is_available=available,
            current_lat=location[0] if location else None,
            current_lng=location[1] if location else None,
            location_updated_at=utcnow() if location else None,
            **fields
        )
        db.add(responder)
        db.commit()
        db.refresh(responder)
        return responder

    return factory
