"""Location invitations.

A manager invites an email address to one of their locations. The address
receives a single-use link; accepting it creates the account when none exists
yet and adds the membership. Only the sha256 digest of the token is stored.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from .. import audit, models, notify, rbac, schemas
from ..auth import Identity, get_password_hash
from ..config import settings
from ..database import transaction
from ..errors import ConflictError, InvalidOrExpiredToken, NotFound, ValidationError
from . import accounts
from .locations import get_membership, memberships

# purpose: grant location membership through emailed single-use links
# status: active

logger = logging.getLogger(__name__)


def invite(
    db: Session,
    identity: Identity,
    payload: schemas.InvitationCreate,
    sender: notify.EmailSender | None = None,
) -> tuple[models.LocationInvitation, bool]:
    """Store an invitation and mail its link; a newer invitation replaces older ones."""

    location = db.get(models.Location, payload.location_id)
    if location is None:
        raise NotFound("Location not found")
    rbac.ensure_can_invite(identity, payload.role, location.id)
    existing = db.query(models.User).filter(models.User.email == payload.email).first()
    if existing is not None and get_membership(db, existing.id, location.id) is not None:
        raise ConflictError("User already assigned to this location")

    token = secrets.token_urlsafe(32)
    location_name = location.name
    with transaction(db):
        db.query(models.LocationInvitation).filter(
            models.LocationInvitation.email == payload.email,
            models.LocationInvitation.location_id == location.id,
        ).delete(synchronize_session=False)
        invitation = models.LocationInvitation(
            email=payload.email,
            location_id=location.id,
            role=payload.role,
            invited_by=identity.user_id,
            token=accounts.token_digest(token),
            expires_at=datetime.now(timezone.utc) + timedelta(hours=settings.invitation_expire_hours),
        )
        db.add(invitation)
        db.flush()
        audit.log_action(
            db,
            identity.user_id,
            "invite_to_location",
            "location",
            location.id,
            {"email": payload.email, "role": payload.role.value},
        )
    db.refresh(invitation)

    link = f"{settings.frontend_url}/accept-invitation?token={token}"
    sent = notify.send_email(
        payload.email,
        f"Invitation to {location_name}",
        f"You have been invited to {location_name}. Accept the invitation within "
        f"{settings.invitation_expire_hours} hours: {link}",
        sender=sender,
    )
    return invitation, sent


def accept(db: Session, token: str, password: str | None = None) -> models.User:
    digest = accounts.token_digest(token)
    invitation = (
        db.query(models.LocationInvitation)
        .filter(models.LocationInvitation.token == digest)
        .first()
    )
    if invitation is None or accounts.as_utc(invitation.expires_at) <= datetime.now(timezone.utc):
        raise InvalidOrExpiredToken()

    invitation_id = invitation.id
    email = invitation.email
    location_id = invitation.location_id
    invited_by = invitation.invited_by
    role = invitation.role

    user = db.query(models.User).filter(models.User.email == email).first()
    if user is None:
        if password is None:
            raise ValidationError("A password is required to create the account")
        accounts.validate_password(password)

    now = datetime.now(timezone.utc)
    with transaction(db):
        # claim the invitation first so a second acceptance finds nothing
        claimed = (
            db.query(models.LocationInvitation)
            .filter(
                models.LocationInvitation.id == invitation_id,
                models.LocationInvitation.token == digest,
            )
            .delete(synchronize_session=False)
        )
        if claimed != 1:
            raise InvalidOrExpiredToken()
        if user is None:
            user = models.User(
                email=email,
                hashed_password=get_password_hash(password),
                role=role,
                is_active=True,
                created_by=invited_by,
            )
            db.add(user)
            db.flush()
        membership = get_membership(db, user.id, location_id)
        if membership is None:
            db.execute(
                memberships.insert().values(
                    user_id=user.id,
                    location_id=location_id,
                    is_active=True,
                    invited_by=invited_by,
                    invited_at=now,
                )
            )
        elif not membership.is_active:
            db.execute(
                memberships.update()
                .where(memberships.c.user_id == user.id, memberships.c.location_id == location_id)
                .values(is_active=True)
            )
        audit.log_action(db, user.id, "accept_invitation", "location", location_id)
    db.refresh(user)
    logger.info("Invitation %s accepted for location %s", invitation_id, location_id)
    return user
