import os
os.environ["TESTING"] = "1"
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid

sys.path.append(str(Path(__file__).resolve().parents[2]))

from schooldesk.main import app
from schooldesk.database import Base, engine, get_db
from schooldesk import auth, models, notify

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

DEFAULT_PASSWORD = "secret-pass"


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clear_outbox():
    notify.EMAIL_OUTBOX.clear()
    yield
    notify.EMAIL_OUTBOX.clear()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeSender(notify.EmailSender):
    """Records every attempt and fails for the addresses in ``fail_for``."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.attempts = []

    def send(self, to_email, from_email, subject, body):
        self.attempts.append((to_email, from_email, subject, body))
        if to_email in self.fail_for:
            raise notify.UpstreamSendError(f"mailbox unavailable: {to_email}")


def create_location(name: str | None = None):
    db = TestingSessionLocal()
    loc = models.Location(name=name or f"School {uuid.uuid4().hex[:8]}")
    db.add(loc)
    db.commit()
    db.refresh(loc)
    db.close()
    return loc


def create_user(role=models.Role.TEACHER, locations=(), email: str | None = None, password: str = DEFAULT_PASSWORD):
    """
    purpose: seed an account directly in the store, bypassing the API
    outputs: the persisted models.User (detached)
    """
    db = TestingSessionLocal()
    user = models.User(
        email=email or f"{role.value}-{uuid.uuid4().hex[:8]}@example.com",
        hashed_password=auth.get_password_hash(password),
        role=role,
    )
    user.locations = [db.get(models.Location, loc.id) for loc in locations]
    db.add(user)
    db.commit()
    db.refresh(user)
    db.expunge(user)
    db.close()
    return user


def auth_headers(user) -> dict:
    db = TestingSessionLocal()
    try:
        fresh = db.get(models.User, user.id)
        token = auth.create_access_token(fresh, auth.accessible_location_ids(db, fresh))
    finally:
        db.close()
    return {"Authorization": f"Bearer {token}"}


def identity_for(user) -> auth.Identity:
    db = TestingSessionLocal()
    try:
        return auth.identity_for(db, db.get(models.User, user.id))
    finally:
        db.close()
