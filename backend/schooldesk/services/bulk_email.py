"""Templated bulk email with a durable per-recipient outcome."""

from __future__ import annotations

import logging
from concurrent import futures
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, notify, rbac, schemas
from ..auth import Identity
from ..config import settings
from ..database import transaction
from ..errors import TemplateNotFound

# purpose: render, dispatch and record template mailings one recipient at a time
# status: active

logger = logging.getLogger(__name__)

NAME_PLACEHOLDER = "{{name}}"

# a send that overruns its deadline keeps its worker until the transport gives up
_send_pool = futures.ThreadPoolExecutor(max_workers=8, thread_name_prefix="email-send")


@dataclass
class BatchResult:
    sent: int = 0
    failed: int = 0
    skipped: list[UUID] = field(default_factory=list)
    failed_recipients: list[str] = field(default_factory=list)
    records: list[models.SentEmail] = field(default_factory=list)


def render(text: str, name: str) -> str:
    """Substitute every ``{{name}}``; anything else is left verbatim."""

    return text.replace(NAME_PLACEHOLDER, name)


def _deliver(
    sender: notify.EmailSender,
    to_email: str,
    from_email: str,
    subject: str,
    body: str,
    timeout: float,
) -> str | None:
    """Attempt one send within ``timeout`` seconds; return the error text, or None on success."""

    future = _send_pool.submit(sender.send, to_email, from_email, subject, body)
    try:
        future.result(timeout=timeout)
    except futures.TimeoutError:
        future.cancel()
        logger.warning("Email to %s timed out after %ss", to_email, timeout)
        return f"Timed out after {timeout:g}s"
    except Exception as exc:
        logger.warning("Email to %s failed: %s", to_email, exc)
        return str(exc) or exc.__class__.__name__
    return None


def send_bulk(
    db: Session,
    identity: Identity,
    template_id: UUID,
    recipients: Sequence[schemas.Recipient],
    sender: notify.EmailSender,
    timeout: float | None = None,
) -> BatchResult:
    """Send a template to every recipient, recording each outcome.

    A failing recipient never stops the batch; each record is committed on its
    own so outcomes survive whatever happens to later recipients.
    """

    template = db.get(models.EmailTemplate, template_id)
    if template is None:
        raise TemplateNotFound()
    rbac.ensure_can_send_template(identity, template)

    deadline = settings.email_send_timeout if timeout is None else timeout
    result = BatchResult()
    for recipient in recipients:
        subject = render(template.subject, recipient.name)
        body = render(template.body, recipient.name)
        error = _deliver(sender, recipient.email, identity.email, subject, body, deadline)
        with transaction(db):
            record = models.SentEmail(
                recipient_email=recipient.email,
                recipient_name=recipient.name,
                template_id=template.id,
                sender=identity.email,
                subject=subject,
                body=body,
                status=models.EmailStatus.FAILED if error else models.EmailStatus.SENT,
                error_message=error,
                location_id=template.location_id,
                sent_at=datetime.now(timezone.utc),
            )
            db.add(record)
        result.records.append(record)
        if error:
            result.failed += 1
            result.failed_recipients.append(recipient.email)
        else:
            result.sent += 1

    with transaction(db):
        audit.log_action(
            db,
            identity.user_id,
            "send_bulk_email",
            "email_template",
            template.id,
            {"sent": result.sent, "failed": result.failed},
        )
    logger.info("Bulk email for template %s: %d sent, %d failed", template.id, result.sent, result.failed)
    return result


def resend_failed(
    db: Session,
    identity: Identity,
    record_ids: Iterable[UUID],
    sender: notify.EmailSender,
    timeout: float | None = None,
) -> BatchResult:
    """Retry failed records using their stored subject and body.

    Unknown ids and records that are not in ``failed`` state are skipped and
    reported. Access to every found record is checked before any send.
    """

    rbac.require_manager(identity)
    deadline = settings.email_send_timeout if timeout is None else timeout
    result = BatchResult()
    records: list[models.SentEmail] = []
    for record_id in dict.fromkeys(record_ids):
        record = db.get(models.SentEmail, record_id)
        if record is None:
            result.skipped.append(record_id)
            continue
        rbac.ensure_location_access(identity, record.location_id)
        records.append(record)

    for record in records:
        if record.status is not models.EmailStatus.FAILED:
            result.skipped.append(record.id)
            continue
        error = _deliver(sender, record.recipient_email, record.sender, record.subject, record.body, deadline)
        with transaction(db):
            if error:
                record.status = models.EmailStatus.FAILED
                record.error_message = error
            else:
                record.status = models.EmailStatus.RESENT
                record.error_message = None
                record.sent_at = datetime.now(timezone.utc)
            db.add(record)
        result.records.append(record)
        if error:
            result.failed += 1
            result.failed_recipients.append(record.recipient_email)
        else:
            result.sent += 1

    with transaction(db):
        audit.log_action(
            db,
            identity.user_id,
            "resend_emails",
            details={"sent": result.sent, "failed": result.failed, "skipped": [str(s) for s in result.skipped]},
        )
    return result


def list_sent(db: Session, identity: Identity, location_id: UUID) -> list[models.SentEmail]:
    rbac.ensure_location_access(identity, location_id)
    return (
        db.query(models.SentEmail)
        .filter(models.SentEmail.location_id == location_id)
        .order_by(models.SentEmail.sent_at.desc())
        .all()
    )
