"""Email templates, bulk sends and the sent-mail log."""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import notify, schemas
from ..auth import Identity, get_current_user
from ..database import get_db
from ..services import bulk_email, email_templates

router = APIRouter(prefix="/api/emails", tags=["emails"])


def _batch_out(result: bulk_email.BatchResult) -> schemas.BatchResultOut:
    return schemas.BatchResultOut(
        sent=result.sent,
        failed=result.failed,
        skipped=result.skipped,
        failed_recipients=result.failed_recipients,
        records=[schemas.SentEmailOut.model_validate(r) for r in result.records],
    )


@router.get("/templates/location/{location_id}", response_model=List[schemas.EmailTemplateOut])
async def list_templates(
    location_id: UUID,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return email_templates.list_templates(db, user, location_id)


@router.post("/templates", response_model=schemas.EmailTemplateOut, status_code=201)
async def create_template(
    payload: schemas.EmailTemplateCreate,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return email_templates.create_template(db, user, payload)


@router.post("/send-bulk", response_model=schemas.BatchResultOut)
def send_bulk(
    payload: schemas.BulkEmailRequest,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
    sender: notify.EmailSender = Depends(notify.get_email_sender),
):
    result = bulk_email.send_bulk(db, user, payload.template_id, payload.recipients, sender)
    return _batch_out(result)


@router.get("/sent", response_model=List[schemas.SentEmailOut])
async def list_sent(
    location_id: UUID,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return bulk_email.list_sent(db, user, location_id)


@router.post("/resend", response_model=schemas.BatchResultOut)
def resend(
    payload: schemas.ResendRequest,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
    sender: notify.EmailSender = Depends(notify.get_email_sender),
):
    result = bulk_email.resend_failed(db, user, payload.email_ids, sender)
    return _batch_out(result)
