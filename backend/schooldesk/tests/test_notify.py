import smtplib

import pytest
import requests

from schooldesk import notify
from schooldesk.config import Settings
from schooldesk.errors import UpstreamSendError


def _settings(**overrides):
    values = {"testing": False, "email_backend": "smtp", "smtp_server": None, "operating_mode": "normal"}
    values.update(overrides)
    return Settings(**values)


def test_sender_selection():
    assert isinstance(notify.build_email_sender(_settings(testing=True)), notify.OutboxEmailSender)
    assert isinstance(notify.build_email_sender(_settings(email_backend="outbox")), notify.OutboxEmailSender)
    assert isinstance(
        notify.build_email_sender(_settings(operating_mode="degraded", smtp_server="mail.local")),
        notify.LoggingEmailSender,
    )
    assert isinstance(notify.build_email_sender(_settings()), notify.LoggingEmailSender)
    smtp = notify.build_email_sender(_settings(smtp_server="mail.local", smtp_port=2525, email_send_timeout=3))
    assert isinstance(smtp, notify.SmtpEmailSender)
    assert (smtp.server, smtp.port, smtp.timeout) == ("mail.local", 2525, 3)
    grid = notify.build_email_sender(_settings(email_backend="sendgrid", sendgrid_api_key="SG.key"))
    assert isinstance(grid, notify.SendGridEmailSender)


def test_sendgrid_requires_key():
    with pytest.raises(RuntimeError):
        notify.build_email_sender(_settings(email_backend="sendgrid"))


def test_smtp_errors_become_upstream_errors(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(notify.smtplib, "SMTP", refuse)
    with pytest.raises(UpstreamSendError):
        notify.SmtpEmailSender("mail.local").send("a@example.com", "b@example.com", "s", "b")


def test_smtp_sends_message(monkeypatch):
    sent = []

    class FakeSMTP:
        def __init__(self, server, port, timeout):
            assert timeout == 5
        def __enter__(self):
            return self
        def __exit__(self, *exc):
            return False
        def send_message(self, msg):
            sent.append(msg)

    monkeypatch.setattr(notify.smtplib, "SMTP", FakeSMTP)
    notify.SmtpEmailSender("mail.local", timeout=5).send("a@example.com", "lead@example.com", "Hi Ana", "Dear Ana")
    assert sent[0]["To"] == "a@example.com"
    assert sent[0]["From"] == "lead@example.com"
    assert sent[0]["Subject"] == "Hi Ana"


def test_sendgrid_timeout_becomes_upstream_error(monkeypatch):
    def slow(*args, **kwargs):
        assert kwargs["timeout"] == 2
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(notify.requests, "post", slow)
    with pytest.raises(UpstreamSendError):
        notify.SendGridEmailSender("SG.key", timeout=2).send("a@example.com", "b@example.com", "s", "b")


def test_send_email_reports_failure_without_raising():
    class Broken(notify.EmailSender):
        def send(self, to_email, from_email, subject, body):
            raise UpstreamSendError("smtp down")

    assert notify.send_email("a@example.com", "s", "b", sender=Broken()) is False
    assert notify.send_email("a@example.com", "s", "b", sender=notify.OutboxEmailSender()) is True
    assert notify.EMAIL_OUTBOX == [("a@example.com", "s", "b")]
