"""Account lifecycle: creation, activation state and password resets."""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, notify, rbac, schemas
from ..auth import Identity, accessible_location_ids, get_password_hash
from ..config import settings
from ..database import SessionLocal, transaction
from ..errors import ConflictError, InvalidOrExpiredToken, NotFound, ValidationError

# purpose: own account state transitions behind rbac decisions
# status: active

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


def token_digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def issue_password_reset_token(db: Session, email: str) -> str | None:
    """Store a fresh single-use reset token for an active account.

    Returns the raw token, or None when no active account matches. Issuing a
    new token replaces any outstanding one.
    """

    user = (
        db.query(models.User)
        .filter(models.User.email == email, models.User.is_active.is_(True))
        .first()
    )
    if user is None:
        return None
    token = secrets.token_urlsafe(32)
    with transaction(db):
        user.temporary_reset_token = token_digest(token)
        user.temporary_reset_token_expiry = datetime.now(timezone.utc) + timedelta(
            minutes=settings.reset_token_expire_minutes
        )
        db.add(user)
    return token


def request_password_reset(db: Session, email: str, sender: notify.EmailSender | None = None) -> None:
    """Issue and mail a reset link; unknown addresses are a silent no-op."""

    token = issue_password_reset_token(db, email)
    if token is None:
        logger.info("Password reset requested for unknown or inactive account")
        return
    link = f"{settings.frontend_url}/reset-password?token={token}"
    notify.send_email(
        email,
        "Password reset",
        f"Use the following link within {settings.reset_token_expire_minutes} minutes "
        f"to choose a new password: {link}",
        sender=sender,
    )


def request_password_reset_job(email: str, sender: notify.EmailSender | None = None) -> None:
    """Background entry point: handles a reset request on its own session."""

    db = SessionLocal()
    try:
        request_password_reset(db, email, sender=sender)
    finally:
        db.close()


def reset_password(db: Session, token: str, new_password: str) -> None:
    validate_password(new_password)
    digest = token_digest(token)
    user = db.query(models.User).filter(models.User.temporary_reset_token == digest).first()
    if user is None or user.temporary_reset_token_expiry is None:
        raise InvalidOrExpiredToken()
    if as_utc(user.temporary_reset_token_expiry) <= datetime.now(timezone.utc):
        raise InvalidOrExpiredToken()
    with transaction(db):
        # compare-and-clear so two concurrent consumers cannot both succeed
        updated = (
            db.query(models.User)
            .filter(models.User.id == user.id, models.User.temporary_reset_token == digest)
            .update(
                {
                    models.User.hashed_password: get_password_hash(new_password),
                    models.User.temporary_reset_token: None,
                    models.User.temporary_reset_token_expiry: None,
                    models.User.updated_at: datetime.now(timezone.utc),
                },
                synchronize_session=False,
            )
        )
        if updated != 1:
            raise InvalidOrExpiredToken()
        audit.log_action(db, user.id, "password_reset", "user", user.id)
    db.expire(user)


def create_account(
    db: Session,
    identity: Identity,
    payload: schemas.UserCreate,
    sender: notify.EmailSender | None = None,
) -> tuple[models.User, bool]:
    """Create an account with a temporary password and its memberships.

    The account and membership rows commit together. Mailing the temporary
    password happens afterwards; its outcome is returned, never raised.
    """

    location_ids = list(dict.fromkeys(payload.location_ids))
    rbac.ensure_can_create_account(identity, payload.role, location_ids)
    locations = db.query(models.Location).filter(models.Location.id.in_(location_ids)).all()
    if len(locations) != len(location_ids):
        raise NotFound("Location not found")
    if db.query(models.User).filter(models.User.email == payload.email).first():
        raise ConflictError("Email already registered")

    temporary_password = secrets.token_urlsafe(9)
    with transaction(db):
        user = models.User(
            email=payload.email,
            hashed_password=get_password_hash(temporary_password),
            role=payload.role,
            is_active=True,
            created_by=identity.user_id,
        )
        user.locations = locations
        db.add(user)
        db.flush()
        audit.log_action(
            db,
            identity.user_id,
            "create_user",
            "user",
            user.id,
            {"role": payload.role.value, "locations": [str(loc) for loc in location_ids]},
        )
    db.refresh(user)

    sent = notify.send_email(
        user.email,
        "Your temporary password",
        f"Your temporary password is: {temporary_password}\n"
        "Please change it right after your first sign-in.",
        sender=sender,
    )
    return user, sent


def list_location_accounts(db: Session, identity: Identity, location_id: UUID) -> list[models.User]:
    rbac.ensure_can_view_location_accounts(identity, location_id)
    if db.get(models.Location, location_id) is None:
        raise NotFound("Location not found")
    return (
        db.query(models.User)
        .join(models.user_locations, models.user_locations.c.user_id == models.User.id)
        .filter(
            models.user_locations.c.location_id == location_id,
            models.User.is_active.is_(True),
        )
        .order_by(models.User.email)
        .all()
    )


def list_deactivated_accounts(db: Session, identity: Identity) -> list[models.User]:
    rbac.require_manager(identity)
    query = db.query(models.User).filter(models.User.is_active.is_(False))
    if not identity.is_developer:
        query = (
            query.join(models.user_locations, models.user_locations.c.user_id == models.User.id)
            .filter(
                models.user_locations.c.location_id.in_(list(identity.location_ids)),
                models.User.role != models.Role.DEVELOPER,
            )
            .distinct()
        )
    return query.order_by(models.User.deactivated_at.desc()).all()


def _membership_ids(db: Session, user: models.User) -> Sequence[UUID]:
    rows = (
        db.query(models.user_locations.c.location_id)
        .filter(models.user_locations.c.user_id == user.id)
        .all()
    )
    return [r[0] for r in rows]


def set_account_active(db: Session, identity: Identity, user_id: UUID, active: bool) -> models.User:
    target = db.get(models.User, user_id)
    if target is None:
        raise NotFound("User not found")
    rbac.ensure_can_change_activation(identity, target, _membership_ids(db, target))
    if target.is_active == active:
        return target

    now = datetime.now(timezone.utc)
    with transaction(db):
        target.is_active = active
        if active:
            target.deactivated_by = None
            target.deactivated_at = None
        else:
            target.deactivated_by = identity.user_id
            target.deactivated_at = now
        target.updated_at = now
        db.add(target)
        audit.log_action(
            db,
            identity.user_id,
            "reactivate_user" if active else "deactivate_user",
            "user",
            target.id,
        )
    db.refresh(target)
    return target


def load_profile(db: Session, identity: Identity) -> tuple[models.User, list[models.Location]]:
    user = db.get(models.User, identity.user_id)
    if user is None:
        raise NotFound("User not found")
    location_ids = accessible_location_ids(db, user)
    locations = (
        db.query(models.Location)
        .filter(models.Location.id.in_(location_ids))
        .order_by(models.Location.name)
        .all()
    )
    return user, locations
