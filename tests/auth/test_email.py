"""
Tests for verification email rendering and transports.
"""
import smtplib
from datetime import datetime, timedelta, timezone

import pytest

from screening_access.auth import utils
from screening_access.auth.schemas import ClinicianAccount, PendingVerification
from screening_access.auth.utils import (
    EmailTransport,
    RecordingEmailTransport,
    SmtpEmailTransport,
    UnconfiguredEmailTransport,
    build_email_transport,
    build_verification_email,
    email_configured,
)
from screening_access.config import Settings


@pytest.fixture
def pending():
    registered_at = datetime(2024, 1, 16, 10, 0, tzinfo=timezone.utc)
    account = ClinicianAccount(
        id="doc_1",
        email="doc@clinic.com",
        name="Dr. Irina Sokolova",
        specialty="Psychiatry",
        password_hash="hash",
        registered_at=registered_at,
    )
    return PendingVerification(
        account=account,
        code="482913",
        expires_at=registered_at + timedelta(minutes=10),
        sent_at=registered_at,
    )


def mail_settings(**overrides):
    values = {"mail_server": "smtp.clinic.com", "mail_from": "noreply@clinic.com", "mail_username": "noreply"}
    values.update(overrides)
    return Settings(**values)


def test_verification_email_contents(pending):
    message = build_verification_email(pending)

    assert message.to == "doc@clinic.com"
    assert "482913" in message.body
    assert "10:10 UTC" in message.body
    assert "Psychiatry" in message.body
    assert "Clinic: Not specified" in message.body
    assert "16.01.2024" in message.body
    assert "New verification code" in build_verification_email(pending, is_resend=True).subject


def test_transport_selection():
    assert not email_configured(mail_settings(mail_server=None))
    assert isinstance(build_email_transport(mail_settings(mail_server=None)), UnconfiguredEmailTransport)
    assert isinstance(build_email_transport(mail_settings()), SmtpEmailTransport)


async def test_unconfigured_transport_always_fails(pending):
    result = await UnconfiguredEmailTransport().send_verification_email(pending)
    assert not result.success
    assert result.error == "Email configuration is incomplete"


async def test_recording_transport_keeps_outbox(pending):
    transport = RecordingEmailTransport()
    assert transport.last_message is None

    await transport.send_verification_email(pending, is_resend=True)

    assert transport.last_message.to == "doc@clinic.com"
    assert transport.outbox[0][1] is True


class FakeSMTP:
    """Stands in for smtplib.SMTP; records what the transport does."""

    instances = []
    fail_login = False
    fail_connect = False

    def __init__(self, host, port, timeout=None):
        if FakeSMTP.fail_connect:
            raise ConnectionRefusedError("connection refused")
        self.host = host
        self.port = port
        self.sent = []
        self.started_tls = False
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def ehlo(self):
        pass

    def starttls(self, context=None):
        self.started_tls = True

    def login(self, username, password):
        if FakeSMTP.fail_login:
            raise smtplib.SMTPAuthenticationError(535, b"Authentication failed")

    def send_message(self, msg):
        self.sent.append(msg)


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.instances = []
    FakeSMTP.fail_login = False
    FakeSMTP.fail_connect = False
    monkeypatch.setattr(utils.smtplib, "SMTP", FakeSMTP)
    monkeypatch.setattr(utils, "RETRY_DELAY", 0)
    return FakeSMTP


async def test_smtp_transport_sends_message(pending, fake_smtp):
    result = await SmtpEmailTransport(mail_settings()).send_verification_email(pending)

    assert result.success
    server = fake_smtp.instances[0]
    assert server.host == "smtp.clinic.com"
    assert server.started_tls
    assert server.sent[0]["To"] == "doc@clinic.com"


async def test_smtp_authentication_failure_is_not_retried(pending, fake_smtp):
    fake_smtp.fail_login = True

    result = await SmtpEmailTransport(mail_settings()).send_verification_email(pending)

    assert not result.success
    assert "1 attempt(s)" in result.error
    assert len(fake_smtp.instances) == 1


async def test_smtp_connection_failure_is_retried(pending, fake_smtp):
    fake_smtp.fail_connect = True

    result = await SmtpEmailTransport(mail_settings()).send_verification_email(pending)

    assert not result.success
    assert f"{utils.MAX_RETRIES} attempt(s)" in result.error


def test_transport_interface_is_abstract():
    with pytest.raises(TypeError):
        EmailTransport()
