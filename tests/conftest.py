"""Shared fixtures: a file-backed SQLite app, isolated limiter state and data factories.

``app.models.db`` is imported before ``create_all`` so every table is registered.
"""
import os
import secrets
from datetime import date, timedelta
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.main import app
from app.database import Base
from app.api import deps
from app.config import SESSION_SETTINGS
from app.models.db import Group, Participant, WebSession
from app.services.notifications import LoggingEmailProvider, set_email_provider
from app.utils.time import utc_now

# File-based SQLite so the threadpool (sync endpoints) and the test thread share data.
SQLALCHEMY_TEST_URL = "sqlite+pysqlite:///./test_secret_santa.db"
engine = create_engine(
    SQLALCHEMY_TEST_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

import app.database as _app_database  # noqa: E402
_app_database.SessionLocal = TestingSessionLocal  # type: ignore

@pytest.fixture(scope="session", autouse=True)
def create_test_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    try:
        os.remove("test_secret_santa.db")
    except OSError:
        pass

@pytest.fixture()
def db_session():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

@pytest.fixture(autouse=True)
def outbox():
    """Fresh logging email provider per test; yields its outbox list."""
    provider = LoggingEmailProvider()
    set_email_provider(provider)
    yield provider.outbox
    set_email_provider(None)

@pytest.fixture(autouse=True)
def _isolate_governance_state():
    """Rate limit counters are process-wide; reset them around every test."""
    deps.governor.rate_limiter.store.clear()
    yield
    deps.governor.rate_limiter.store.clear()

# Override dependency
def _override_get_db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()

app.dependency_overrides[deps.get_db] = _override_get_db

@pytest.fixture()
def client():
    return TestClient(app)

# ---------- Helpers ----------

@pytest.fixture()
def fresh_ip():
    """Random private address so tests never share an IP budget."""
    def _ip() -> str:
        return "10." + ".".join(str(secrets.randbelow(254) + 1) for _ in range(3))
    return _ip

@pytest.fixture()
def csrf_headers(client):
    """Fetch a CSRF token for the client's session and return ready-to-use headers."""
    def _get(ip: str | None = None) -> dict:
        resp = client.get("/api/v1/csrf/token")
        assert resp.status_code == 200
        headers = {"X-CSRF-Token": resp.json()["token"]}
        if ip:
            headers["X-Forwarded-For"] = ip
        return headers
    return _get

# ---------- Data factory helpers ----------

@pytest.fixture()
def participant_factory(db_session):
    def _create(group: Group, name: str, email: str | None = None) -> Participant:
        if email is None:
            email = f"{name.lower()}-{secrets.token_hex(3)}@example.com"
        p = Participant(group_id=group.id, name=name, email=email)
        db_session.add(p)
        db_session.commit()
        db_session.refresh(p)
        return p
    return _create

@pytest.fixture()
def group_factory(db_session, participant_factory):
    """Create a group owned by its first participant; returns (group, participants)."""
    def _create(participant_names: list[str] = ("Alice", "Bob", "Carol")):
        owner_email = f"owner-{secrets.token_hex(4)}@example.com"
        group = Group(
            name=f"Party {secrets.token_hex(2)}",
            budget="$25",
            event_date=date.today() + timedelta(days=30),
            place="Office",
            owner_email=owner_email,
            invite_id=secrets.token_urlsafe(12),
        )
        db_session.add(group)
        db_session.commit()
        db_session.refresh(group)
        participants = []
        for i, name in enumerate(participant_names):
            participants.append(participant_factory(group, name, owner_email if i == 0 else None))
        return group, participants
    return _create

@pytest.fixture()
def sign_in(client, db_session):
    """Attach a signed-in server-side session for ``participant`` to the client.

    Returns headers carrying the session's CSRF token.
    """
    def _sign_in(participant: Participant, ip: str | None = None) -> dict:
        token = secrets.token_hex(32)
        record = WebSession(
            id=secrets.token_urlsafe(32),
            participant_id=participant.id,
            csrf_token=token,
            expires_at=utc_now() + timedelta(days=1),
        )
        db_session.add(record)
        db_session.commit()
        client.cookies.set(str(SESSION_SETTINGS["cookie_name"]), record.id)
        headers = {"X-CSRF-Token": token}
        if ip:
            headers["X-Forwarded-For"] = ip
        return headers
    return _sign_in
