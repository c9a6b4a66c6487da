"""Outbound email senders.

Every sender exposes ``send(to_email, from_email, subject, body)`` and raises
``UpstreamSendError`` on any delivery problem, timeouts included. The sender a
process uses is chosen once from settings by ``build_email_sender``.
"""

import logging
import smtplib
from email.message import EmailMessage

import requests

from .config import Settings, settings
from .errors import UpstreamSendError

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailSender:
    def send(self, to_email: str, from_email: str, subject: str, body: str) -> None:
        raise NotImplementedError


class SmtpEmailSender(EmailSender):
    def __init__(self, server: str, port: int = 25, timeout: float = 10.0):
        self.server = server
        self.port = port
        self.timeout = timeout

    def send(self, to_email, from_email, subject, body):
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = from_email
        msg["To"] = to_email
        msg.set_content(body)
        try:
            with smtplib.SMTP(self.server, self.port, timeout=self.timeout) as s:
                s.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise UpstreamSendError(f"SMTP delivery to {to_email} failed: {exc}") from exc


class SendGridEmailSender(EmailSender):
    def __init__(self, api_key: str, timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout

    def send(self, to_email, from_email, subject, body):
        payload = {
            "personalizations": [{"to": [{"email": to_email}]}],
            "from": {"email": from_email},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        try:
            r = requests.post(
                SENDGRID_URL,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as exc:
            raise UpstreamSendError(f"SendGrid delivery to {to_email} failed: {exc}") from exc


class OutboxEmailSender(EmailSender):
    """Collects messages in ``EMAIL_OUTBOX``; used while testing."""

    def send(self, to_email, from_email, subject, body):
        EMAIL_OUTBOX.append((to_email, subject, body))


class LoggingEmailSender(EmailSender):
    """Degraded-mode strategy: record the message in the log, deliver nothing."""

    def send(self, to_email, from_email, subject, body):
        logger.info("Simulated email to=%s from=%s subject=%r", to_email, from_email, subject)


def build_email_sender(config: Settings) -> EmailSender:
    if config.testing or config.email_backend == "outbox":
        return OutboxEmailSender()
    if config.operating_mode == "degraded":
        logger.warning("Operating in degraded mode; outbound email is logged only")
        return LoggingEmailSender()
    if config.email_backend == "sendgrid":
        if not config.sendgrid_api_key:
            raise RuntimeError("SENDGRID_API_KEY is required for the sendgrid email backend")
        return SendGridEmailSender(config.sendgrid_api_key, timeout=config.email_send_timeout)
    if not config.smtp_server:
        logger.warning("SMTP_SERVER not set; outbound email is logged only")
        return LoggingEmailSender()
    return SmtpEmailSender(config.smtp_server, config.smtp_port, timeout=config.email_send_timeout)


_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is None:
        _sender = build_email_sender(settings)
    return _sender


def send_email(to_email: str, subject: str, message: str, sender: EmailSender | None = None) -> bool:
    """Send a system message (reset links, temporary passwords).

    Returns False instead of raising so callers can report partial success.
    """
    sender = sender or get_email_sender()
    try:
        sender.send(to_email, settings.email_from, subject, message)
    except UpstreamSendError as exc:
        logger.warning("System email to %s failed: %s", to_email, exc)
        return False
    return True
