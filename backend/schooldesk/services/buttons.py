"""Custom quick-access buttons and their visibility grants."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from .. import audit, models, rbac, schemas
from ..auth import Identity
from ..database import transaction
from ..errors import NotFound, ValidationError

# purpose: location scoped link buttons with role or account grants
# status: active


def list_visible_buttons(db: Session, identity: Identity, location_id: UUID) -> list[models.CustomButton]:
    """Return the buttons at a location the caller may see, ordered by name."""

    rbac.ensure_location_access(identity, location_id)
    buttons = (
        db.query(models.CustomButton)
        .options(selectinload(models.CustomButton.permissions))
        .filter(models.CustomButton.location_id == location_id)
        .order_by(models.CustomButton.name)
        .all()
    )
    return [b for b in buttons if rbac.can_view_button(identity, b, b.permissions)]


def create_button(db: Session, identity: Identity, payload: schemas.ButtonCreate) -> models.CustomButton:
    rbac.ensure_manager_at(identity, payload.location_id)
    if db.get(models.Location, payload.location_id) is None:
        raise NotFound("Location not found")
    with transaction(db):
        button = models.CustomButton(
            name=payload.name,
            url=payload.url,
            location_id=payload.location_id,
            created_by=identity.user_id,
        )
        db.add(button)
    db.refresh(button)
    return button


def _load_button(db: Session, button_id: UUID) -> models.CustomButton:
    button = db.get(models.CustomButton, button_id)
    if button is None:
        raise NotFound("Button not found")
    return button


def read_permissions(button: models.CustomButton) -> schemas.ButtonPermissionSet:
    roles = sorted({p.role for p in button.permissions if p.role is not None}, key=lambda r: r.value)
    user_ids = sorted({p.user_id for p in button.permissions if p.user_id is not None}, key=str)
    return schemas.ButtonPermissionSet(roles=roles, user_ids=user_ids)


def get_permissions(db: Session, identity: Identity, button_id: UUID) -> schemas.ButtonPermissionSet:
    button = _load_button(db, button_id)
    rbac.ensure_can_manage_button(identity, button)
    return read_permissions(button)


def set_permissions(
    db: Session,
    identity: Identity,
    button_id: UUID,
    permissions: schemas.ButtonPermissionSet,
) -> schemas.ButtonPermissionSet:
    """Replace the full grant set of a button in one transaction."""

    button = _load_button(db, button_id)
    rbac.ensure_can_manage_button(identity, button)

    roles = list(dict.fromkeys(permissions.roles))
    user_ids = list(dict.fromkeys(permissions.user_ids))
    if user_ids:
        known = {
            row[0]
            for row in db.query(models.User.id).filter(models.User.id.in_(user_ids)).all()
        }
        missing = [str(u) for u in user_ids if u not in known]
        if missing:
            raise ValidationError(f"Unknown user ids: {', '.join(missing)}")

    with transaction(db):
        db.query(models.ButtonPermission).filter(
            models.ButtonPermission.button_id == button.id
        ).delete(synchronize_session=False)
        for role in roles:
            db.add(models.ButtonPermission(button_id=button.id, role=role))
        for user_id in user_ids:
            db.add(models.ButtonPermission(button_id=button.id, user_id=user_id))
        audit.log_action(
            db,
            identity.user_id,
            "set_button_permissions",
            "button",
            button.id,
            {"roles": [r.value for r in roles], "user_ids": [str(u) for u in user_ids]},
        )
    db.refresh(button)
    return read_permissions(button)
