from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from .. import models, rbac, schemas
from ..auth import Identity
from ..database import transaction
from ..errors import NotFound


def list_templates(db: Session, identity: Identity, location_id: UUID) -> list[models.EmailTemplate]:
    rbac.ensure_location_access(identity, location_id)
    return (
        db.query(models.EmailTemplate)
        .filter(models.EmailTemplate.location_id == location_id)
        .order_by(models.EmailTemplate.name)
        .all()
    )


def create_template(db: Session, identity: Identity, payload: schemas.EmailTemplateCreate) -> models.EmailTemplate:
    rbac.ensure_manager_at(identity, payload.location_id)
    if db.get(models.Location, payload.location_id) is None:
        raise NotFound("Location not found")
    with transaction(db):
        template = models.EmailTemplate(
            name=payload.name,
            subject=payload.subject,
            body=payload.body,
            location_id=payload.location_id,
            created_by=identity.user_id,
        )
        db.add(template)
    db.refresh(template)
    return template
