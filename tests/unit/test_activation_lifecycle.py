import asyncio
import re
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from common.types import ActivationCodeStatus, AuditEventType, IdentifierType, UserRole
from core.exceptions import (
    AttemptLimitExceeded,
    CodeAlreadyUsed,
    CodeExpired,
    CodeInactiveError,
    ConflictError,
    ConflictingActiveCode,
    SupervisorRequired,
    ValidationError,
)
from models.database.activation import ActivationAuditLog, ActivationCode, WhitelistEntry
from models.database.base import Base
from models.schemas.responses.activation import ActivationCodeResponse, AuditEntryResponse
from services.activation.audit_service import ActivationAuditService, AuditFilter
from services.activation.lifecycle_service import ActivationCodeManager
from utils.secret_utils import normalize_activation_code, verify_activation_code

from conftest import make_entry, make_user

CODE_PATTERN = re.compile(r"[A-HJ-NP-Z2-9]{4}-[A-HJ-NP-Z2-9]{4}")
WRONG_CODE = "0000-0000"


async def _events(session, code_id):
    result = await session.execute(
        select(ActivationAuditLog.event_type)
        .where(ActivationAuditLog.activation_code_id == code_id)
        .order_by(ActivationAuditLog.id)
    )
    return list(result.scalars().all())


@pytest.mark.asyncio
async def test_generate_returns_plaintext_exactly_once(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)

    generated = await manager.generate(entry.id, ttl_hours=48)

    assert CODE_PATTERN.fullmatch(generated.code)
    assert generated.expires_at == clock.now + timedelta(hours=48)
    assert generated.code not in repr(generated)

    plaintext = generated.code
    raw = normalize_activation_code(plaintext)

    code = await manager.get(generated.code_id)
    assert verify_activation_code(plaintext, code.code_hash)

    by_id = ActivationCodeResponse.from_model(code, clock.now).model_dump_json()
    listed = await manager.list()
    by_list = [ActivationCodeResponse.from_model(c, clock.now).model_dump_json() for c in listed.items]
    audit = await ActivationAuditService(db_session).list(AuditFilter(activation_code_id=generated.code_id))
    by_audit = [AuditEntryResponse.from_model(log).model_dump_json() for log in audit.items]

    for rendered in [by_id, *by_list, *by_audit]:
        assert plaintext not in rendered
        assert raw not in rendered


@pytest.mark.asyncio
async def test_ttl_is_clamped_and_defaults(db_session, clock, mailer):
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)

    low = await manager.generate((await make_entry(db_session, "a@example.com")).id, ttl_hours=0)
    high = await manager.generate((await make_entry(db_session, "b@example.com")).id, ttl_hours=5000)
    default = await manager.generate((await make_entry(db_session, "c@example.com")).id)

    assert low.expires_in_hours == 1
    assert high.expires_in_hours == 720
    assert default.expires_in_hours == 72
    assert default.expires_at == clock.now + timedelta(hours=72)


@pytest.mark.asyncio
async def test_second_active_code_is_a_conflict(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    first = await manager.generate(entry.id, ttl_hours=24)

    with pytest.raises(ConflictingActiveCode) as exc_info:
        await manager.generate(entry.id)
    assert exc_info.value.details["code_id"] == str(first.code_id)

    clock.advance(hours=25)
    second = await manager.generate(entry.id)

    old = await db_session.get(ActivationCode, first.code_id)
    assert old.status == ActivationCodeStatus.EXPIRED.value
    assert second.code_id != first.code_id
    assert AuditEventType.EXPIRED.value in await _events(db_session, first.code_id)


@pytest.mark.asyncio
async def test_field_agent_generation_requires_supervisor(db_session, clock, mailer):
    entry = WhitelistEntry(
        identifier="brigadista@example.com",
        identifier_type=IdentifierType.EMAIL.value,
        full_name="Luis Torres",
        assigned_role=UserRole.FIELD_AGENT.value,
        assigned_supervisor_id=None,
    )
    db_session.add(entry)
    await db_session.commit()
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)

    with pytest.raises(SupervisorRequired):
        await manager.generate(entry.id)

    encargado = await make_user(db_session, role="encargado")
    entry.assigned_supervisor_id = encargado.id
    await db_session.commit()

    generated = await manager.generate(entry.id)
    assert generated.whitelist_entry.id == entry.id


@pytest.mark.asyncio
async def test_inactive_supervisor_is_rejected(db_session, clock, mailer):
    supervisor = await make_user(db_session, role="supervisor")
    entry = await make_entry(db_session, role=UserRole.FIELD_AGENT, supervisor=supervisor)
    supervisor.is_active = False
    await db_session.commit()

    with pytest.raises(SupervisorRequired):
        await ActivationCodeManager(db_session, mailer=mailer, clock=clock).generate(entry.id)


@pytest.mark.asyncio
async def test_extend_validates_hours_and_keeps_expiry_on_rejection(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id, ttl_hours=24)
    original = generated.expires_at

    for hours in (0, 721, -5, True, "12"):
        with pytest.raises(ValidationError):
            await manager.extend(generated.code_id, hours)
        code = await db_session.get(ActivationCode, generated.code_id)
        assert code.expires_at == original

    result = await manager.extend(generated.code_id, 1)
    assert result.new_expires_at == original + timedelta(hours=1)
    result = await manager.extend(generated.code_id, 720)
    assert result.new_expires_at == original + timedelta(hours=721)
    assert AuditEventType.EXTENDED.value in await _events(db_session, generated.code_id)


@pytest.mark.asyncio
async def test_extend_accepts_overdue_active_code(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id, ttl_hours=2)

    clock.advance(hours=3)
    result = await manager.extend(generated.code_id, 24)

    assert result.new_expires_at == generated.expires_at + timedelta(hours=24)
    code = await manager.get(generated.code_id)
    assert code.effective_status(clock.now) is ActivationCodeStatus.ACTIVE


@pytest.mark.asyncio
async def test_lockout_after_max_attempts(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock, max_attempts=3)
    generated = await manager.generate(entry.id)

    with pytest.raises(ValidationError) as first:
        await manager.redeem(entry.identifier, WRONG_CODE)
    assert first.value.details["remaining_attempts"] == 2
    with pytest.raises(ValidationError):
        await manager.redeem(entry.identifier, WRONG_CODE)
    with pytest.raises(AttemptLimitExceeded):
        await manager.redeem(entry.identifier, WRONG_CODE)

    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.LOCKED.value
    assert code.failed_attempts == 3

    for attempt in (WRONG_CODE, generated.code):
        with pytest.raises(AttemptLimitExceeded):
            await manager.redeem(entry.identifier, attempt)
        code = await db_session.get(ActivationCode, generated.code_id)
        assert code.status == ActivationCodeStatus.LOCKED.value
        assert code.failed_attempts == 3

    assert not entry.is_activated
    assert AuditEventType.LOCKED.value in await _events(db_session, generated.code_id)


@pytest_asyncio.fixture
async def shared_factory(tmp_path):
    """Separate connections to one database file, like concurrent requests"""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'activation.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


async def _concurrent_wrong_guesses(factory, clock, mailer, identifier, attempts, max_attempts):
    async def guess():
        async with factory() as session:
            manager = ActivationCodeManager(session, mailer=mailer, clock=clock, max_attempts=max_attempts)
            await manager.redeem(identifier, WRONG_CODE)

    return await asyncio.gather(*(guess() for _ in range(attempts)), return_exceptions=True)


@pytest.mark.asyncio
async def test_concurrent_wrong_guesses_are_all_counted(shared_factory, clock, mailer):
    async with shared_factory() as session:
        entry = await make_entry(session)
        generated = await ActivationCodeManager(session, mailer=mailer, clock=clock, max_attempts=5).generate(entry.id)

    results = await _concurrent_wrong_guesses(shared_factory, clock, mailer, entry.identifier, 5, 5)

    assert sorted(type(r).__name__ for r in results) == ["AttemptLimitExceeded"] + ["ValidationError"] * 4
    async with shared_factory() as session:
        code = await session.get(ActivationCode, generated.code_id)
        assert code.failed_attempts == 5
        assert code.status == ActivationCodeStatus.LOCKED.value
        events = await _events(session, generated.code_id)
    assert events.count(AuditEventType.LOCKED.value) == 1


@pytest.mark.asyncio
async def test_concurrent_guesses_past_the_limit_never_exceed_it(shared_factory, clock, mailer):
    async with shared_factory() as session:
        entry = await make_entry(session)
        generated = await ActivationCodeManager(session, mailer=mailer, clock=clock, max_attempts=3).generate(entry.id)

    results = await _concurrent_wrong_guesses(shared_factory, clock, mailer, entry.identifier, 8, 3)

    assert [type(r) for r in results].count(ValidationError) == 2
    assert all(isinstance(r, (ValidationError, AttemptLimitExceeded)) for r in results)
    async with shared_factory() as session:
        code = await session.get(ActivationCode, generated.code_id)
        assert code.failed_attempts == 3
        assert code.status == ActivationCodeStatus.LOCKED.value


@pytest.mark.asyncio
async def test_revoke_used_code_is_a_conflict(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id)
    await manager.redeem(entry.identifier, generated.code)

    with pytest.raises(ConflictError):
        await manager.revoke(generated.code_id, "operator mistake")

    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.USED.value
    assert code.revoked_at is None


@pytest.mark.asyncio
async def test_revoke_requires_reason(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id)

    with pytest.raises(ValidationError):
        await manager.revoke(generated.code_id, "   ")

    result = await manager.revoke(generated.code_id, "sent to the wrong person")
    assert result.new_code_required is True

    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.REVOKED.value
    assert code.revoke_reason == "sent to the wrong person"

    with pytest.raises(ConflictError):
        await manager.revoke(generated.code_id, "again")


@pytest.mark.asyncio
async def test_generate_then_redeem_round_trip(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id)
    assert entry.is_activated is False

    # Users may type the code in lowercase without the dash
    result = await manager.redeem("MARIA@Example.com", generated.code.replace("-", "").lower(), ip_address="10.0.0.7")

    assert result.whitelist_entry.is_activated is True
    assert result.activated_at == clock.now
    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.USED.value
    assert code.used_at == clock.now
    assert code.used_by_ip == "10.0.0.7"

    with pytest.raises(CodeInactiveError) as second:
        await manager.redeem(entry.identifier, generated.code)
    assert isinstance(second.value, CodeAlreadyUsed)

    events = await _events(db_session, generated.code_id)
    assert events.count(AuditEventType.SUCCESSFUL_USE.value) == 1
    assert events[-1] == AuditEventType.FAILED_USE.value


@pytest.mark.asyncio
async def test_redeem_expired_code(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id, ttl_hours=1)

    clock.advance(hours=2)
    with pytest.raises(CodeExpired):
        await manager.redeem(entry.identifier, generated.code)

    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.EXPIRED.value
    assert entry.is_activated is False


@pytest.mark.asyncio
async def test_redeem_unknown_identifier_is_generic(db_session, clock, mailer):
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)

    with pytest.raises(ValidationError) as exc_info:
        await manager.redeem("nobody@example.com", "ABCD-EFGH", ip_address="10.0.0.9")
    assert exc_info.value.message == "Invalid identifier or activation code"

    rows = (await db_session.execute(select(ActivationAuditLog))).scalars().all()
    assert [row.event_type for row in rows] == [
        AuditEventType.ATTEMPTED_USE.value,
        AuditEventType.FAILED_USE.value,
    ]
    assert all(row.identifier_attempted == "no***@example.com" for row in rows)


@pytest.mark.asyncio
async def test_regenerate_revokes_previous(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    first = await manager.generate(entry.id)

    second = await manager.regenerate(entry.id, ttl_hours=12)

    old = await db_session.get(ActivationCode, first.code_id)
    assert old.status == ActivationCodeStatus.REVOKED.value
    assert old.revoke_reason == "regenerated"
    assert second.code_id != first.code_id
    assert (await manager.get(second.code_id)).status == ActivationCodeStatus.ACTIVE.value

    log = (await db_session.execute(
        select(ActivationAuditLog).where(
            ActivationAuditLog.activation_code_id == second.code_id,
            ActivationAuditLog.event_type == AuditEventType.REGENERATED.value,
        )
    )).scalar_one()
    assert log.details["previous_code_id"] == str(first.code_id)


@pytest.mark.asyncio
async def test_generation_for_activated_entry_is_rejected(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id)
    await manager.redeem(entry.identifier, generated.code)

    with pytest.raises(ConflictError) as exc_info:
        await manager.generate(entry.id)
    assert exc_info.value.error_code == "ENTRY_ALREADY_ACTIVATED"


@pytest.mark.asyncio
async def test_generate_sends_code_once_by_email(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)

    generated = await manager.generate(entry.id, send_email=True, custom_message="Bienvenida")

    assert generated.email_sent is True
    assert mailer.codes == [{"to": entry.identifier, "code": generated.code, "custom_message": "Bienvenida"}]
    assert AuditEventType.EMAIL_SENT.value in await _events(db_session, generated.code_id)


@pytest.mark.asyncio
async def test_email_failure_does_not_fail_generation(db_session, clock):
    from conftest import RecordingMailer

    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=RecordingMailer(sent=False), clock=clock)

    generated = await manager.generate(entry.id, send_email=True)

    assert generated.email_sent is False
    assert generated.email_status == "smtp_down"
    log = (await db_session.execute(
        select(ActivationAuditLog).where(ActivationAuditLog.event_type == AuditEventType.EMAIL_SENT.value)
    )).scalar_one()
    assert log.success is False


@pytest.mark.asyncio
async def test_resend_sends_reminder_without_code(db_session, clock, mailer):
    entry = await make_entry(db_session)
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    generated = await manager.generate(entry.id, ttl_hours=5)

    result = await manager.resend_email(generated.code_id, custom_message="Recordatorio")

    assert result.email_sent is True
    assert mailer.reminders == [{"to": entry.identifier, "custom_message": "Recordatorio"}]
    assert AuditEventType.EMAIL_RESENT.value in await _events(db_session, generated.code_id)

    clock.advance(hours=6)
    with pytest.raises(CodeExpired):
        await manager.resend_email(generated.code_id)
    code = await db_session.get(ActivationCode, generated.code_id)
    assert code.status == ActivationCodeStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_list_summary_and_stats(db_session, clock, mailer):
    manager = ActivationCodeManager(db_session, mailer=mailer, clock=clock)
    used_entry = await make_entry(db_session, "used@example.com")
    used = await manager.generate(used_entry.id)
    await manager.redeem(used_entry.identifier, used.code)
    soon = await manager.generate((await make_entry(db_session, "soon@example.com")).id, ttl_hours=3)
    await manager.generate((await make_entry(db_session, "later@example.com")).id, ttl_hours=100)

    result = await manager.list()
    assert result.summary["active_codes"] == 2
    assert result.summary["used_codes"] == 1
    assert result.summary["expiring_in_24h"] == 1

    expiring = await manager.list(expiring_within_hours=24)
    assert [c.id for c in expiring.items] == [soon.code_id]

    with pytest.raises(ValidationError):
        await manager.list(limit=0)

    stats = await manager.stats()
    assert stats["overview"]["total_whitelisted"] == 3
    assert stats["overview"]["total_activated"] == 1
    assert stats["codes"]["total_generated"] == 3
    assert stats["trends"]["activations_by_day"] == [{"date": clock.now.date().isoformat(), "count": 1}]
