from datetime import datetime, timedelta, timezone

import pytest

from common.types import IdentifierType, UserRole
from core.exceptions import AuthenticationError
from models.database.activation import WhitelistEntry
from services.activation.notification_service import ActivationMailer
from utils.email_utils import render_template
from utils.jwt_utils import JWTManager
from utils.masking import mask_identifier
from utils.request_utils import is_safe_redirect
from utils.secret_utils import (
    format_activation_code,
    generate_activation_code,
    hash_activation_code,
    normalize_activation_code,
    verify_activation_code,
)


class TestMasking:

    def test_email(self):
        assert mask_identifier("juan.perez@example.com") == "ju***@example.com"

    def test_other_identifiers_keep_last_four(self):
        assert mask_identifier("+525512345678") == "***5678"
        assert mask_identifier("1234") == "***"
        assert mask_identifier(None) == ""


class TestActivationSecrets:

    def test_generated_codes_use_unambiguous_alphabet(self):
        codes = {generate_activation_code() for _ in range(50)}
        assert len(codes) == 50
        for code in codes:
            assert len(code) == 9 and code[4] == "-"
            assert not set(code.replace("-", "")) & set("01IO")

    def test_normalization(self):
        assert normalize_activation_code(" k7qm-4pxa ") == "K7QM4PXA"
        assert format_activation_code("k7qm4pxa") == "K7QM-4PXA"

    def test_hash_is_salted_and_verifies_loose_input(self):
        first, second = hash_activation_code("K7QM-4PXA"), hash_activation_code("K7QM-4PXA")
        assert first != second
        assert "K7QM4PXA" not in first
        assert verify_activation_code("k7qm 4pxa", first)
        assert not verify_activation_code("K7QM-4PXB", first)
        assert not verify_activation_code("", first)
        assert not verify_activation_code("K7QM-4PXA", "not-a-hash")


class TestJWT:

    def test_expiry_from_claims(self):
        token = JWTManager.encode_token({"sub": "1"}, timedelta(minutes=5))
        expiry = JWTManager.get_expiry(token)

        assert expiry is not None
        assert not JWTManager.is_expired(token)
        assert JWTManager.is_expired(token, now=expiry + timedelta(seconds=1))

    def test_missing_or_malformed_tokens_count_as_expired(self):
        assert JWTManager.is_expired(None)
        assert JWTManager.is_expired("garbage")
        assert JWTManager.is_expired(JWTManager.encode_token({"sub": "1"}))

    def test_decode_rejects_foreign_signature(self):
        from jose import jwt

        forged = jwt.encode({"sub": "1", "role": "admin"}, "another-secret", algorithm="HS256")
        with pytest.raises(AuthenticationError):
            JWTManager.decode_token(forged)


@pytest.mark.parametrize("target,safe", [
    ("/dashboard", True),
    ("/dashboard/reports?page=2", True),
    ("//evil.example.com", False),
    ("https://evil.example.com", False),
    ("/\\evil", False),
    (None, False),
])
def test_safe_redirect(target, safe):
    assert is_safe_redirect(target) is safe


def test_role_aliases():
    assert UserRole.parse("Encargado") is UserRole.SUPERVISOR
    assert UserRole.parse("brigadista") is UserRole.FIELD_AGENT
    with pytest.raises(ValueError):
        UserRole.parse("superuser")


def test_templates_render_code_only_where_intended():
    context = {"full_name": "María", "code": "K7QM-4PXA", "expires_at": "2026-01-18 12:00 UTC",
               "custom_message": "<b>hola</b>", "activation_url": "http://localhost/activate", "role": "supervisor"}

    with_code = render_template(ActivationMailer.CODE_TEMPLATE, context)
    reminder = render_template(ActivationMailer.REMINDER_TEMPLATE, context)

    assert "K7QM-4PXA" in with_code
    assert "K7QM-4PXA" not in reminder
    assert "<b>hola</b>" not in with_code


@pytest.mark.asyncio
async def test_mailer_reports_missing_smtp_without_raising():
    entry = WhitelistEntry(
        identifier="maria@example.com",
        identifier_type=IdentifierType.EMAIL.value,
        full_name="María Gómez",
        assigned_role=UserRole.SUPERVISOR.value,
    )

    result = await ActivationMailer().send_code(entry, "K7QM-4PXA", datetime(2026, 1, 18, tzinfo=timezone.utc))

    assert result.sent is False
    assert result.status == "SMTP is not configured"


@pytest.mark.asyncio
async def test_mailer_skips_non_email_identifiers():
    entry = WhitelistEntry(
        identifier="5512345678",
        identifier_type=IdentifierType.PHONE.value,
        full_name="Luis Torres",
        assigned_role=UserRole.SUPERVISOR.value,
    )

    result = await ActivationMailer().send_reminder(entry, None)

    assert result.sent is False
    assert result.status == "no_email_address"
