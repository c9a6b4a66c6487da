from datetime import datetime, timezone
from uuid import UUID
from sqlalchemy.orm import Session
from . import models


def log_action(
    db: Session,
    user_id: str | UUID | None,
    action: str,
    target_type: str | None = None,
    target_id: str | UUID | None = None,
    details: dict | None = None,
):
    """Stage an audit row in the caller's unit of work; the caller commits."""
    log = models.AuditLog(
        user_id=UUID(str(user_id)) if user_id else None,
        action=action,
        target_type=target_type,
        target_id=UUID(str(target_id)) if target_id else None,
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(log)
    return log


def list_actions(db: Session, *, target_id: UUID | None = None, action: str | None = None):
    query = db.query(models.AuditLog)
    if target_id:
        query = query.filter(models.AuditLog.target_id == target_id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    return query.order_by(models.AuditLog.created_at.asc()).all()
