"""Location (tenant) management and per-location membership state."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, rbac
from ..auth import Identity
from ..database import transaction
from ..errors import ConflictError, NotFound

memberships = models.user_locations


def list_all_locations(db: Session, identity: Identity) -> list[models.Location]:
    rbac.require_developer(identity)
    return db.query(models.Location).order_by(models.Location.name).all()


def list_my_locations(db: Session, identity: Identity) -> list[models.Location]:
    query = db.query(models.Location)
    if not identity.is_developer:
        if not identity.location_ids:
            return []
        query = query.filter(models.Location.id.in_(list(identity.location_ids)))
    return query.order_by(models.Location.name).all()


def create_location(db: Session, identity: Identity, name: str) -> models.Location:
    rbac.require_developer(identity)
    with transaction(db):
        location = models.Location(name=name, created_by=identity.user_id)
        db.add(location)
        db.flush()
        audit.log_action(db, identity.user_id, "create_location", "location", location.id, {"name": name})
    db.refresh(location)
    return location


def get_membership(db: Session, user_id: UUID, location_id: UUID):
    """Return the membership row for a user at a location, active or not."""
    return (
        db.query(memberships)
        .filter(memberships.c.user_id == user_id, memberships.c.location_id == location_id)
        .first()
    )


def add_member(db: Session, identity: Identity, location_id: UUID, user_id: UUID) -> models.User:
    rbac.require_developer(identity)
    location = db.get(models.Location, location_id)
    if location is None:
        raise NotFound("Location not found")
    user = db.get(models.User, user_id)
    if user is None:
        raise NotFound("User not found")
    if get_membership(db, user_id, location_id) is not None:
        raise ConflictError("User already assigned to this location")
    with transaction(db):
        db.execute(
            memberships.insert().values(
                user_id=user_id,
                location_id=location_id,
                is_active=True,
                invited_by=identity.user_id,
                invited_at=datetime.now(timezone.utc),
            )
        )
        audit.log_action(db, identity.user_id, "add_location_member", "location", location_id, {"user_id": str(user_id)})
    db.refresh(user)
    return user


def set_membership_status(db: Session, identity: Identity, user_id: UUID, location_id: UUID, active: bool):
    """Switch one membership on or off without touching the account itself."""

    target = db.get(models.User, user_id)
    if target is None:
        raise NotFound("User not found")
    rbac.ensure_can_change_membership(identity, target, location_id)
    with transaction(db):
        result = db.execute(
            memberships.update()
            .where(memberships.c.user_id == user_id, memberships.c.location_id == location_id)
            .values(is_active=active)
        )
        if result.rowcount != 1:
            raise NotFound("Membership not found")
        audit.log_action(
            db,
            identity.user_id,
            "activate_membership" if active else "deactivate_membership",
            "user",
            user_id,
            {"location_id": str(location_id)},
        )
    return get_membership(db, user_id, location_id)


def list_inactive_locations(db: Session, identity: Identity, user_id: UUID) -> list[models.Location]:
    """Locations where the user's membership is switched off, limited to the caller's reach."""

    rbac.require_manager(identity)
    locations = (
        db.query(models.Location)
        .join(memberships, memberships.c.location_id == models.Location.id)
        .filter(memberships.c.user_id == user_id, memberships.c.is_active.is_(False))
        .order_by(models.Location.name)
        .all()
    )
    return [loc for loc in locations if rbac.has_location_access(identity, loc.id)]
