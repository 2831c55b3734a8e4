"""
Tests for clinician registration: validation, email dispatch and code verification.
"""
import asyncio
import threading

import pytest

from screening_access.auth.exceptions import (
    EmailAlreadyExistsException,
    FieldValidationException,
    VerificationCodeExpiredException,
    VerificationCodeInvalidException,
    VerificationNotStartedException,
)
from screening_access.auth import flow as flow_module
from screening_access.auth.flow import FlowRegistry, VerificationFlow
from screening_access.auth.schemas import DeliveryResult, FlowState, RegistrationInput
from screening_access.auth.store import InMemoryCredentialStore
from screening_access.auth.utils import EmailTransport, RecordingEmailTransport
from screening_access.core.security import hash_password, verify_password


def registration(**overrides):
    values = {
        "name": "Dr. Irina Sokolova",
        "email": "Doc@Clinic.com",
        "password": "secret1",
        "specialty": "Psychiatry",
        "clinic": "City Clinic",
    }
    values.update(overrides)
    return RegistrationInput(**values)


class RaisingTransport(EmailTransport):
    async def send_verification_email(self, pending, is_resend=False):
        raise ConnectionError("SMTP server unreachable")


async def test_begin_registration_sends_code_and_awaits_it(flow, transport, store, clock):
    step = await flow.begin_registration(registration())

    assert step.state == FlowState.AWAITING_CODE
    assert step.email == "doc@clinic.com"
    assert step.delivery == DeliveryResult(success=True)
    assert step.preview is None
    assert flow.pending.expires_at == clock.now() + flow.code_ttl
    assert len(flow.pending.code) == 6 and flow.pending.code.isdigit()

    message, is_resend = transport.outbox[0]
    assert not is_resend
    assert message.to == "doc@clinic.com"
    assert flow.pending.code in message.body
    assert "City Clinic" in message.body

    # nothing is committed before verification
    assert store.all() == []


async def test_validation_reports_every_field_at_once(flow):
    with pytest.raises(FieldValidationException) as exc_info:
        await flow.begin_registration(registration(name=" A ", email="not-an-email", password="abc"))

    assert exc_info.value.errors == {
        "name": "Name is too short",
        "email": "Enter a valid email address",
        "password": "Password must be at least 6 characters",
    }
    assert flow.state == FlowState.FORM


@pytest.mark.parametrize("password, message", [
    ("", "Enter a password"),
    ("123456", "Password must contain both letters and digits"),
    ("abcdef", "Password must contain both letters and digits"),
])
async def test_password_rules(flow, password, message):
    with pytest.raises(FieldValidationException) as exc_info:
        await flow.begin_registration(registration(password=password))
    assert exc_info.value.errors == {"password": message}


async def test_empty_form_is_fully_reported(flow):
    with pytest.raises(FieldValidationException) as exc_info:
        await flow.begin_registration(RegistrationInput())
    assert set(exc_info.value.errors) == {"name", "email", "password"}


async def test_duplicate_email_never_reaches_awaiting_code(flow, store, transport):
    await flow.begin_registration(registration())
    await flow.verify(flow.pending.code)

    second = VerificationFlow(store=store, transport=transport, clock=flow.clock, latency=0)
    with pytest.raises(EmailAlreadyExistsException) as exc_info:
        await second.begin_registration(registration(email="DOC@clinic.com", password="x"))

    assert exc_info.value.errors["email"] == "This email is already registered"
    assert "password" in exc_info.value.errors
    assert second.state == FlowState.FORM
    assert second.pending is None
    assert len(transport.outbox) == 1


async def test_verify_commits_verified_account_without_code_fields(flow, store):
    await flow.begin_registration(registration())
    step = await flow.verify(flow.pending.code)

    assert step.state == FlowState.VERIFIED
    assert flow.pending is None
    account = store.find_by_email("doc@clinic.com")
    assert account.is_verified
    assert account.name == "Dr. Irina Sokolova"
    assert verify_password("secret1", account.password_hash)
    assert account.password_hash != "secret1"
    dumped = account.model_dump()
    assert "code" not in dumped and "expires_at" not in dumped


async def test_verify_rejects_wrong_code(flow, store):
    await flow.begin_registration(registration())
    wrong = "000000" if flow.pending.code != "000000" else "111111"

    with pytest.raises(VerificationCodeInvalidException) as exc_info:
        await flow.verify(wrong)

    assert exc_info.value.errors == {"code": "Invalid verification code"}
    assert flow.state == FlowState.AWAITING_CODE
    assert store.all() == []


async def test_correct_code_fails_once_expired(flow, clock, store):
    await flow.begin_registration(registration())
    code = flow.pending.code

    clock.advance(minutes=12)
    with pytest.raises(VerificationCodeExpiredException) as exc_info:
        await flow.verify(code)

    assert "request a new code" in exc_info.value.detail
    assert store.all() == []


async def test_code_is_accepted_up_to_expiry(flow, clock):
    await flow.begin_registration(registration())
    clock.set(flow.pending.expires_at)
    step = await flow.verify(flow.pending.code)
    assert step.state == FlowState.VERIFIED


@pytest.mark.parametrize("code, message", [
    ("", "Enter the verification code"),
    ("12345", "The code must contain 6 digits"),
    ("12a456", "The code must contain digits only"),
])
async def test_verify_checks_code_format(flow, code, message):
    await flow.begin_registration(registration())
    with pytest.raises(FieldValidationException) as exc_info:
        await flow.verify(code)
    assert exc_info.value.errors == {"code": message}


async def test_verify_without_registration(flow):
    with pytest.raises(VerificationNotStartedException):
        await flow.verify("123456")


async def test_failed_delivery_falls_back_to_preview(store, clock):
    transport = RecordingEmailTransport(fail_with="Email configuration is incomplete")
    flow = VerificationFlow(store=store, transport=transport, clock=clock, latency=0)

    step = await flow.begin_registration(registration())

    assert step.state == FlowState.AWAITING_CODE
    assert step.delivery.success is False
    assert step.preview is not None
    assert flow.pending.code in step.preview.body


async def test_raising_transport_is_not_fatal(store, clock):
    flow = VerificationFlow(store=store, transport=RaisingTransport(), clock=clock, latency=0)

    step = await flow.begin_registration(registration())

    assert step.state == FlowState.AWAITING_CODE
    assert step.delivery.error == "SMTP server unreachable"
    assert flow.pending.code in step.preview.body


async def test_reset_returns_to_form(flow):
    await flow.begin_registration(registration())
    step = flow.reset()
    assert step.state == FlowState.FORM
    assert flow.pending is None
    with pytest.raises(VerificationNotStartedException):
        await flow.verify("123456")


async def test_verification_landing_after_reset_is_ignored(store, transport, clock):
    flow = VerificationFlow(store=store, transport=transport, clock=clock, latency=0.05)
    await flow.begin_registration(registration())
    code = flow.pending.code

    pending_verify = asyncio.create_task(flow.verify(code))
    await asyncio.sleep(0)
    flow.reset()
    step = await pending_verify

    assert step.stale
    assert step.state == FlowState.FORM
    assert store.all() == []


async def test_second_registration_racing_to_commit_is_rejected(store, transport, clock):
    first = VerificationFlow(store=store, transport=transport, clock=clock, latency=0)
    second = VerificationFlow(store=store, transport=transport, clock=clock, latency=0)
    await first.begin_registration(registration())
    await second.begin_registration(registration(email="doc@clinic.com", name="Someone Else"))

    await first.verify(first.pending.code)
    with pytest.raises(EmailAlreadyExistsException):
        await second.verify(second.pending.code)

    assert second.state == FlowState.FORM
    assert [account.name for account in store.all()] == ["Dr. Irina Sokolova"]


async def test_handle_reports_errors_in_step(flow):
    step = await flow.handle("register", name="", email="x@y.z", password="abc123")
    assert step.state == FlowState.FORM
    assert step.errors == {"name": "Enter your full name"}

    step = await flow.handle("register", name="Dr. Lee", email="lee@clinic.com", password="abc123")
    assert step.state == FlowState.AWAITING_CODE
    assert step.errors == {}

    step = await flow.handle("verify", code="abc")
    assert step.state == FlowState.AWAITING_CODE
    assert "code" in step.errors

    step = await flow.handle("verify", code=flow.pending.code)
    assert step.state == FlowState.VERIFIED


async def test_password_is_hashed_off_the_event_loop(flow, monkeypatch):
    hashing_threads = []

    def recording_hash(password):
        hashing_threads.append(threading.get_ident())
        return hash_password(password)

    monkeypatch.setattr(flow_module, "hash_password", recording_hash)
    await flow.begin_registration(registration())

    assert hashing_threads
    assert threading.get_ident() not in hashing_threads
    assert verify_password("secret1", flow.pending.account.password_hash)


async def test_operations_use_the_store_they_are_given(transport, clock):
    flows = FlowRegistry(transport, clock=clock)
    flow_id, flow = flows.create()
    first_request_store = InMemoryCredentialStore()
    second_request_store = InMemoryCredentialStore()

    await flow.begin_registration(registration(), store=first_request_store)
    step = await flow.verify(flow.pending.code, store=second_request_store)

    assert step.state == FlowState.VERIFIED
    assert flow.store is None
    assert first_request_store.all() == []
    assert second_request_store.find_by_email("doc@clinic.com") is not None
    assert flows.get(flow_id) is flow


async def test_flow_without_any_store_refuses_to_run(transport, clock):
    flow = VerificationFlow(store=None, transport=transport, clock=clock, latency=0)
    with pytest.raises(RuntimeError):
        await flow.begin_registration(registration())
