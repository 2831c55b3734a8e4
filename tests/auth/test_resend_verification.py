"""
Tests for resending verification codes and the resend cooldown.
"""
import asyncio

from screening_access.auth.schemas import FlowState, RegistrationInput


async def start(flow):
    await flow.begin_registration(RegistrationInput(
        name="Dr. Irina Sokolova",
        email="doc@clinic.com",
        password="secret1",
    ))
    return flow.pending


async def test_resend_without_registration_is_noop(flow, transport):
    step = await flow.resend()
    assert step.state == FlowState.FORM
    assert not step.resent
    assert transport.outbox == []


async def test_first_resend_is_available_immediately(flow, transport, clock):
    original = await start(flow)
    assert flow.cooldown_remaining() == 0

    step = await flow.resend()

    assert step.resent
    assert step.cooldown_seconds == 60
    assert flow.pending.resent_at == clock.now()
    assert flow.pending.account == original.account
    assert [is_resend for _, is_resend in transport.outbox] == [False, True]


async def test_resend_within_cooldown_is_noop(flow, transport, clock):
    await start(flow)
    await flow.resend()
    after_first = flow.pending

    clock.advance(seconds=30)
    step = await flow.resend()

    assert not step.resent
    assert step.cooldown_seconds == 30
    assert flow.pending == after_first
    assert len(transport.outbox) == 2


async def test_resend_after_cooldown_issues_new_code(flow, transport, clock):
    await start(flow)
    await flow.resend()
    original = flow.pending

    clock.advance(seconds=60)
    step = await flow.resend()

    assert step.resent
    assert step.cooldown_seconds == 60
    assert flow.pending.sent_at == clock.now()
    assert flow.pending.expires_at == clock.now() + flow.code_ttl
    assert flow.pending.expires_at > original.expires_at
    assert flow.pending.account == original.account

    message, is_resend = transport.outbox[-1]
    assert is_resend
    assert flow.pending.code in message.body


async def test_two_resends_within_a_minute(flow, transport, clock):
    await start(flow)

    first = await flow.resend()
    after_first = flow.pending
    clock.advance(seconds=10)
    second = await flow.resend()

    assert first.resent
    assert not second.resent
    assert flow.pending == after_first
    assert len(transport.outbox) == 2


async def test_old_code_stops_working_after_resend(flow, clock):
    original = await start(flow)
    clock.advance(seconds=60)
    await flow.resend()

    if original.code != flow.pending.code:
        step = await flow.handle("verify", code=original.code)
        assert step.errors == {"code": "Invalid verification code"}

    step = await flow.verify(flow.pending.code)
    assert step.state == FlowState.VERIFIED


async def test_resend_extends_an_expired_code(flow, clock):
    await start(flow)
    clock.advance(minutes=11)
    await flow.resend()
    step = await flow.verify(flow.pending.code)
    assert step.state == FlowState.VERIFIED


async def test_cooldown_ticks_count_down_to_zero(flow, clock):
    await start(flow)
    await flow.resend()
    clock.advance(seconds=57)

    ticks = [tick async for tick in flow.cooldown_ticks(interval=0)]

    assert ticks == [3, 2, 1, 0]


async def test_cooldown_ticks_stop_when_flow_is_reset(flow):
    await start(flow)
    await flow.resend()
    seen = []

    async def consume():
        async for tick in flow.cooldown_ticks(interval=0.01):
            seen.append(tick)

    task = asyncio.create_task(consume())
    await asyncio.sleep(0.025)
    flow.reset()
    await task

    assert seen
    assert seen[0] == 60
    assert 0 not in seen
    assert seen == sorted(seen, reverse=True)


async def test_cooldown_is_zero_without_pending_registration(flow):
    assert flow.cooldown_remaining() == 0
    assert [tick async for tick in flow.cooldown_ticks(interval=0)] == [0]
