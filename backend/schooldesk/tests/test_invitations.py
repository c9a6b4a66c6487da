import uuid
from datetime import datetime, timedelta, timezone

from .conftest import (
    DEFAULT_PASSWORD,
    TestingSessionLocal,
    auth_headers,
    client,
    create_location,
    create_user,
)
from schooldesk import models, notify


def _token_from_outbox():
    return notify.EMAIL_OUTBOX[-1][2].split("token=")[-1].strip()


def _invite(client, inviter, loc, email, role="teacher"):
    return client.post(
        "/api/locations/invite",
        json={"email": email, "location_id": str(loc.id), "role": role},
        headers=auth_headers(inviter),
    )


def test_invitation_creates_account_and_membership(client):
    loc = create_location("Grundschule Mitte")
    lead = create_user(models.Role.LEAD, [loc])
    resp = _invite(client, lead, loc, "New.Colleague@example.com", role="office")
    assert resp.status_code == 201
    body = resp.json()
    assert body["invitation_sent"] is True
    assert body["invitation"]["role"] == "office"
    assert notify.EMAIL_OUTBOX[-1][0] == "New.Colleague@example.com"
    assert "Grundschule Mitte" in notify.EMAIL_OUTBOX[-1][1]
    token = _token_from_outbox()

    accepted = client.post("/api/locations/accept-invitation", json={"token": token, "password": "Welcome123"})
    assert accepted.status_code == 200

    login = client.post("/api/auth/login", json={"email": "New.Colleague@example.com", "password": "Welcome123"})
    assert login.status_code == 200
    assert login.json()["user"]["role"] == "office"
    assert login.json()["user"]["created_by"] == str(lead.id)
    assert login.json()["location_ids"] == [str(loc.id)]

    again = client.post("/api/locations/accept-invitation", json={"token": token, "password": "Welcome123"})
    assert again.status_code == 400


def test_invitation_stores_only_token_digest(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    _invite(client, lead, loc, "digest@example.com")
    token = _token_from_outbox()
    db = TestingSessionLocal()
    stored = db.query(models.LocationInvitation).filter(models.LocationInvitation.email == "digest@example.com").one()
    db.close()
    assert stored.token != token
    assert stored.invited_by == lead.id


def test_existing_account_joins_with_current_password(client):
    home = create_location()
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    teacher = create_user(models.Role.TEACHER, [home])
    assert _invite(client, lead, loc, teacher.email).status_code == 201

    accepted = client.post("/api/locations/accept-invitation", json={"token": _token_from_outbox()})
    assert accepted.status_code == 200

    login = client.post("/api/auth/login", json={"email": teacher.email, "password": DEFAULT_PASSWORD})
    assert login.status_code == 200
    assert set(login.json()["location_ids"]) == {str(home.id), str(loc.id)}


def test_invitation_for_existing_member_is_rejected(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    member = create_user(models.Role.TEACHER, [loc])
    resp = _invite(client, lead, loc, member.email)
    assert resp.status_code == 409
    assert notify.EMAIL_OUTBOX == []


def test_expired_invitation_is_rejected(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    _invite(client, lead, loc, "late@example.com")
    token = _token_from_outbox()

    db = TestingSessionLocal()
    invitation = db.query(models.LocationInvitation).filter(models.LocationInvitation.email == "late@example.com").one()
    invitation.expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()
    db.close()

    resp = client.post("/api/locations/accept-invitation", json={"token": token, "password": "Welcome123"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid or expired token"
    db = TestingSessionLocal()
    assert db.query(models.User).filter(models.User.email == "late@example.com").first() is None
    db.close()


def test_new_account_needs_valid_password(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    _invite(client, lead, loc, "pw@example.com")
    token = _token_from_outbox()

    assert client.post("/api/locations/accept-invitation", json={"token": token}).status_code == 422
    short = client.post("/api/locations/accept-invitation", json={"token": token, "password": "short"})
    assert short.status_code == 422
    ok = client.post("/api/locations/accept-invitation", json={"token": token, "password": "LongEnough1"})
    assert ok.status_code == 200


def test_newer_invitation_replaces_older(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    _invite(client, lead, loc, "twice@example.com")
    first = _token_from_outbox()
    _invite(client, lead, loc, "twice@example.com")
    second = _token_from_outbox()

    assert client.post("/api/locations/accept-invitation", json={"token": first, "password": "Welcome123"}).status_code == 400
    assert client.post("/api/locations/accept-invitation", json={"token": second, "password": "Welcome123"}).status_code == 200


def test_invite_permissions(client):
    loc = create_location()
    other = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    office = create_user(models.Role.OFFICE, [loc])
    assert _invite(client, lead, other, "x@example.com").status_code == 403
    assert _invite(client, lead, loc, "x@example.com", role="developer").status_code == 403
    assert _invite(client, office, loc, "x@example.com").status_code == 403
    missing = client.post(
        "/api/locations/invite",
        json={"email": "x@example.com", "location_id": str(uuid.uuid4())},
        headers=auth_headers(lead),
    )
    assert missing.status_code == 404


def test_inactive_membership_removes_location_access(client):
    loc = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    teacher = create_user(models.Role.TEACHER, [loc])
    teacher_headers = auth_headers(teacher)
    assert client.get(f"/api/buttons/location/{loc.id}", headers=teacher_headers).status_code == 200

    resp = client.post(
        "/api/locations/user-status",
        json={"user_id": str(teacher.id), "location_id": str(loc.id), "is_active": False},
        headers=auth_headers(lead),
    )
    assert resp.status_code == 200
    assert resp.json()["is_active"] is False

    assert client.get("/api/locations/mine", headers=teacher_headers).json() == []
    assert client.get(f"/api/buttons/location/{loc.id}", headers=teacher_headers).status_code == 403
    inactive = client.get(f"/api/locations/inactive-locations/{teacher.id}", headers=auth_headers(lead))
    assert [l["id"] for l in inactive.json()] == [str(loc.id)]

    back = client.post(
        "/api/locations/user-status",
        json={"user_id": str(teacher.id), "location_id": str(loc.id), "is_active": True},
        headers=auth_headers(lead),
    )
    assert back.status_code == 200
    assert [l["id"] for l in client.get("/api/locations/mine", headers=teacher_headers).json()] == [str(loc.id)]
    assert client.get(f"/api/locations/inactive-locations/{teacher.id}", headers=auth_headers(lead)).json() == []


def test_membership_status_rules(client):
    loc = create_location()
    other = create_location()
    lead = create_user(models.Role.LEAD, [loc])
    outsider = create_user(models.Role.TEACHER, [other])
    dev = create_user(models.Role.DEVELOPER)
    office = create_user(models.Role.OFFICE, [loc])

    def set_status(actor, target, location):
        return client.post(
            "/api/locations/user-status",
            json={"user_id": str(target.id), "location_id": str(location.id), "is_active": False},
            headers=auth_headers(actor),
        )

    assert set_status(lead, lead, loc).status_code == 403
    assert set_status(lead, outsider, other).status_code == 403
    assert set_status(lead, dev, loc).status_code == 403
    assert set_status(office, lead, loc).status_code == 403
    assert set_status(lead, outsider, loc).status_code == 404
    assert set_status(dev, outsider, other).status_code == 200
