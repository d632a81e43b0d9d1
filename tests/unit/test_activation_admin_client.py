from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio

from client.activation import ActivationAdminClient
from client.http import ConsoleApiClient
from config.database import get_db
from core.exceptions import (
    CodeAlreadyUsed,
    CodeRevoked,
    ConflictingActiveCode,
    PermissionDenied,
    SessionExpired,
    SupervisorRequired,
    ValidationError,
)
from services.session.custodian import SessionCustodian, get_session_custodian
from utils.datetime_utils import DateTimeManager

from conftest import FakePlatform

import main


@pytest.fixture
def platform():
    return FakePlatform()


@pytest_asyncio.fixture
async def app_transport(platform, session_factory):
    custodian = SessionCustodian(backend=platform.backend())

    async def override_db():
        async with session_factory() as session:
            yield session

    main.app.dependency_overrides[get_session_custodian] = lambda: custodian
    main.app.dependency_overrides[get_db] = override_db
    yield httpx.ASGITransport(app=main.app)
    main.app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def admin(app_transport):
    async with ConsoleApiClient("http://testserver", transport=app_transport) as api:
        await api.login("admin@example.com", "s3cret")
        yield ActivationAdminClient(api)


async def _supervisor_entry(admin, identifier="maria@example.com"):
    return await admin.create_whitelist_entry(
        identifier=identifier,
        full_name="María Gómez",
        assigned_role="supervisor",
    )


def _parse(value):
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@pytest.mark.asyncio
async def test_whitelist_entries_are_managed_through_the_session_cookie(admin):
    entry = await _supervisor_entry(admin)
    assert entry["identifier"] == "maria@example.com"
    assert entry["is_activated"] is False

    listing = await admin.list_whitelist(status="pending", search="maria")
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == entry["id"]
    assert (await admin.list_whitelist(role="admin"))["total"] == 0

    updated = await admin.update_whitelist_entry(entry["id"], full_name="María G. Gómez", notes="Turno tarde")
    assert updated["full_name"] == "María G. Gómez"
    assert updated["notes"] == "Turno tarde"

    removed = await admin.delete_whitelist_entry(entry["id"])
    assert removed["success"] is True
    assert (await admin.list_whitelist())["total"] == 0


@pytest.mark.asyncio
async def test_field_agent_supervisor_is_resolved_with_the_cookie_token(admin, platform):
    supervisor_id = platform.add_user(rol="encargado")

    entry = await admin.create_whitelist_entry(
        identifier="pedro@example.com",
        full_name="Pedro Ruiz",
        assigned_role="brigadista",
        assigned_supervisor_id=supervisor_id,
    )

    assert entry["assigned_role"] == "field_agent"
    assert entry["assigned_supervisor_id"] == supervisor_id
    assert platform.user_lookups == 1

    with pytest.raises(SupervisorRequired):
        await admin.create_whitelist_entry(
            identifier="otro@example.com",
            full_name="Otro Agente",
            assigned_role="field_agent",
        )


@pytest.mark.asyncio
async def test_code_lifecycle(admin):
    entry = await _supervisor_entry(admin)

    generated = await admin.generate(entry["id"], expires_in_hours=24)
    assert generated["expires_in_hours"] == 24
    assert generated["code"]
    code_id = generated["code_id"]

    detail = await admin.get_code(code_id)
    assert detail["status"] == "active"
    assert detail["remaining_attempts"] == detail["max_attempts"]
    assert generated["code"] not in str(detail)

    active = await admin.list_codes(status="active")
    assert [item["id"] for item in active["items"]] == [code_id]
    assert active["summary"]["active_codes"] == 1
    assert (await admin.list_codes(expiring_within_hours=48))["items"][0]["id"] == code_id
    assert (await admin.list_codes(whitelist_id=entry["id"], status="revoked"))["items"] == []

    with pytest.raises(ConflictingActiveCode):
        await admin.generate(entry["id"])

    extended = await admin.extend(code_id, additional_hours=12)
    assert extended["success"] is True
    assert _parse((await admin.get_code(code_id))["expires_at"]) > _parse(detail["expires_at"])

    reminder = await admin.resend_email(code_id, custom_message="Recuerda activar tu cuenta")
    assert reminder["email_sent"] is False

    regenerated = await admin.regenerate(entry["id"], expires_in_hours=48)
    assert regenerated["code_id"] != code_id
    assert regenerated["code"] != generated["code"]
    assert (await admin.get_code(code_id))["status"] == "revoked"

    revoked = await admin.revoke(regenerated["code_id"], reason="Issued by mistake")
    assert revoked["success"] is True
    assert revoked["new_code_required"] is True
    assert (await admin.get_code(regenerated["code_id"]))["revoke_reason"] == "Issued by mistake"

    audit = await admin.list_audit(activation_code_id=regenerated["code_id"], event_type="revoked")
    assert len(audit["items"]) == 1
    assert audit["items"][0]["success"] is True

    with pytest.raises(CodeRevoked):
        await admin.redeem("maria@example.com", regenerated["code"])


@pytest.mark.asyncio
async def test_redeem_and_audit_filters(admin):
    entry = await _supervisor_entry(admin)
    generated = await admin.generate(entry["id"])
    started = DateTimeManager.utc_now() - timedelta(minutes=5)

    with pytest.raises(ValidationError):
        await admin.redeem("maria@example.com", "0000-0000")
    assert (await admin.get_code(generated["code_id"]))["failed_attempts"] == 1

    redeemed = await admin.redeem("MARIA@example.com", generated["code"])
    assert redeemed["whitelist_id"] == entry["id"]
    assert redeemed["assigned_role"] == "supervisor"

    with pytest.raises(CodeAlreadyUsed):
        await admin.redeem("maria@example.com", generated["code"])

    failures = await admin.list_audit(whitelist_id=entry["id"], success=False, from_date=started)
    assert failures["items"]
    assert all(item["success"] is False for item in failures["items"])
    assert {item["event_type"] for item in failures["items"]} == {"failed_use"}

    later = await admin.list_audit(from_date=DateTimeManager.utc_now() + timedelta(hours=1))
    assert later["items"] == []

    stats = await admin.stats(trend_days=7)
    assert stats["overview"]["total_activated"] == 1
    assert stats["codes"]["used_codes"] == 1
    assert stats["security"]["failed_attempts_24h"] >= 1


@pytest.mark.asyncio
async def test_non_admin_session_is_denied(app_transport):
    platform = FakePlatform(role="supervisor")
    main.app.dependency_overrides[get_session_custodian] = lambda: SessionCustodian(backend=platform.backend())

    async with ConsoleApiClient("http://testserver", transport=app_transport) as api:
        await api.login("admin@example.com", "s3cret")
        with pytest.raises(PermissionDenied):
            await ActivationAdminClient(api).list_codes()
        assert not api.session_dead


@pytest.mark.asyncio
async def test_calls_without_a_session_end_it(app_transport):
    async with ConsoleApiClient("http://testserver", transport=app_transport) as api:
        with pytest.raises(SessionExpired):
            await ActivationAdminClient(api).list_codes()
        assert api.session_dead
