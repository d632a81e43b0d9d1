"""
Activation code lifecycle.

States: active -> used | expired | revoked | locked, all terminal.
The plaintext code exists only inside `generate`/`regenerate` and the
one-time email; only its salted hash is persisted. Every transition
appends an audit entry.
"""
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from common.types import ActivationCodeStatus, AuditEventType, UserRole
from config.settings import get_settings
from core.exceptions import (
    AttemptLimitExceeded,
    CodeAlreadyUsed,
    CodeExpired,
    CodeRevoked,
    ConflictError,
    ConflictingActiveCode,
    NotFoundError,
    ValidationError,
)
from models.database.activation import ActivationAuditLog, ActivationCode, WhitelistEntry
from services.activation.notification_service import ActivationMailer
from services.activation.user_directory import UserDirectory
from services.activation.whitelist_service import WhitelistService, parse_uuid
from utils.datetime_utils import Clock, DateTimeManager
from utils.logging import get_logger
from utils.masking import mask_identifier
from utils.secret_utils import generate_activation_code, hash_activation_code, verify_activation_code

logger = get_logger(__name__)
settings = get_settings()

INVALID_CODE_MESSAGE = "Invalid identifier or activation code"


@dataclass(frozen=True)
class GeneratedCode:
    code: str = field(repr=False)
    code_id: uuid.UUID
    whitelist_entry: WhitelistEntry
    expires_at: Optional[datetime]
    expires_in_hours: int
    email_sent: bool = False
    email_status: Optional[str] = None


@dataclass(frozen=True)
class RedeemResult:
    code_id: uuid.UUID
    whitelist_entry: WhitelistEntry
    activated_at: datetime


@dataclass(frozen=True)
class RevokeResult:
    success: bool
    code_id: uuid.UUID
    revoked_at: datetime
    new_code_required: bool


@dataclass(frozen=True)
class ExtendResult:
    success: bool
    code_id: uuid.UUID
    new_expires_at: datetime


@dataclass(frozen=True)
class ResendResult:
    success: bool
    email_sent: bool
    email_status: Optional[str] = None


@dataclass
class CodeListResult:
    items: List[ActivationCode]
    summary: Dict[str, int]


_INACTIVE_ERRORS = {
    ActivationCodeStatus.USED: CodeAlreadyUsed,
    ActivationCodeStatus.REVOKED: CodeRevoked,
    ActivationCodeStatus.LOCKED: AttemptLimitExceeded,
    ActivationCodeStatus.EXPIRED: CodeExpired,
}

_ATTEMPT_COLUMNS = ["failed_attempts", "status", "last_attempt_at", "updated_at"]


class ActivationCodeManager:
    """
    Activation code lifecycle manager
    - Generation with one-time plaintext and optional one-time email
    - Redemption with attempt limiting and lockout
    - Revocation, extension and reminder delivery
    """

    def __init__(
        self,
        db: AsyncSession,
        mailer: Optional[ActivationMailer] = None,
        clock: Optional[Clock] = None,
        max_attempts: Optional[int] = None,
        directory: Optional[UserDirectory] = None,
    ):
        self.db = db
        self.whitelist = WhitelistService(db, directory)
        self.mailer = mailer or ActivationMailer()
        self._clock = clock or DateTimeManager.utc_now
        self.max_attempts = max_attempts or settings.activation.max_attempts

    def _now(self) -> datetime:
        return DateTimeManager.ensure_utc(self._clock())

    @staticmethod
    def clamp_ttl(ttl_hours: Optional[int]) -> int:
        """Omitted ttl uses the default; supplied values are clamped into range"""
        cfg = settings.activation
        if ttl_hours is None:
            return cfg.default_ttl_hours
        return max(cfg.min_hours, min(cfg.max_hours, int(ttl_hours)))

    @staticmethod
    def validate_hours(hours: Any) -> int:
        cfg = settings.activation
        if isinstance(hours, bool) or not isinstance(hours, int) or not cfg.min_hours <= hours <= cfg.max_hours:
            raise ValidationError(
                f"Hours must be between {cfg.min_hours} and {cfg.max_hours}",
                details={"hours": hours}
            )
        return hours

    def _audit(
        self,
        event_type: AuditEventType,
        code: Optional[ActivationCode] = None,
        entry: Optional[WhitelistEntry] = None,
        success: bool = True,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        identifier_attempted: Optional[str] = None,
        failure_reason: Optional[str] = None,
        actor_user_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> ActivationAuditLog:
        whitelist_id = entry.id if entry is not None else (code.whitelist_id if code is not None else None)
        log_entry = ActivationAuditLog(
            activation_code_id=code.id if code is not None else None,
            whitelist_id=whitelist_id,
            event_type=event_type.value,
            success=success,
            created_at=self._now(),
            ip_address=ip_address,
            user_agent=user_agent,
            identifier_attempted=identifier_attempted,
            failure_reason=failure_reason,
            actor_user_id=actor_user_id,
            details=details,
        )
        self.db.add(log_entry)
        return log_entry

    async def _get_code(self, code_id: Union[str, uuid.UUID]) -> ActivationCode:
        code = await self.db.get(ActivationCode, parse_uuid(code_id, "activation code id"))
        if code is None:
            raise NotFoundError("Activation code not found")
        return code

    async def _get_active_code(self, whitelist_id: uuid.UUID) -> Optional[ActivationCode]:
        result = await self.db.execute(
            select(ActivationCode).where(
                ActivationCode.whitelist_id == whitelist_id,
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
            )
        )
        return result.scalar_one_or_none()

    async def _latest_code(self, whitelist_id: uuid.UUID) -> Optional[ActivationCode]:
        """The active code when one exists, otherwise the most recent one"""
        active = await self._get_active_code(whitelist_id)
        if active is not None:
            return active
        result = await self.db.execute(
            select(ActivationCode)
            .where(ActivationCode.whitelist_id == whitelist_id)
            .order_by(ActivationCode.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def _observe_expiry(self, code: ActivationCode, now: datetime) -> bool:
        """Persist a stored-active code past its expiry as expired, once"""
        if code.status_enum is ActivationCodeStatus.ACTIVE and DateTimeManager.is_past(code.expires_at, now):
            code.status = ActivationCodeStatus.EXPIRED.value
            self._audit(
                AuditEventType.EXPIRED,
                code=code,
                details={"expires_at": code.expires_at.isoformat()},
            )
            logger.info("Activation code expired", extra={"activation_code_id": str(code.id)})
            return True
        return False

    async def _expire_overdue(self, now: datetime) -> int:
        result = await self.db.execute(
            select(ActivationCode).where(
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
                ActivationCode.expires_at.is_not(None),
                ActivationCode.expires_at < now,
            )
        )
        expired = [code for code in result.scalars().all() if self._observe_expiry(code, now)]
        if expired:
            await self.db.commit()
        return len(expired)

    async def _check_generation_allowed(self, entry: WhitelistEntry) -> None:
        if entry.is_activated:
            raise ConflictError("Whitelist entry is already activated", error_code="ENTRY_ALREADY_ACTIVATED")
        if entry.role_enum is UserRole.FIELD_AGENT:
            await self.whitelist.resolve_supervisor(entry.assigned_supervisor_id)

    async def _issue(
        self,
        entry: WhitelistEntry,
        hours: int,
        event_type: AuditEventType,
        send_email: bool,
        custom_message: Optional[str],
        actor_user_id: Optional[uuid.UUID],
        now: datetime,
        extra_details: Optional[Dict[str, Any]] = None,
    ) -> GeneratedCode:
        plaintext = generate_activation_code()
        code = ActivationCode(
            whitelist_id=entry.id,
            whitelist_entry=entry,
            code_hash=hash_activation_code(plaintext),
            status=ActivationCodeStatus.ACTIVE.value,
            expires_at=now + timedelta(hours=hours),
            failed_attempts=0,
            max_attempts=self.max_attempts,
            created_by=actor_user_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(code)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictingActiveCode()

        details = {"expires_in_hours": hours, "send_email": send_email}
        details.update(extra_details or {})
        self._audit(event_type, code=code, entry=entry, actor_user_id=actor_user_id, details=details)
        await self.db.commit()

        email_sent, email_status = False, None
        if send_email:
            delivery = await self.mailer.send_code(entry, plaintext, code.expires_at, custom_message)
            email_sent, email_status = delivery.sent, delivery.status
            self._audit(
                AuditEventType.EMAIL_SENT,
                code=code,
                entry=entry,
                success=delivery.sent,
                failure_reason=None if delivery.sent else delivery.status,
                actor_user_id=actor_user_id,
            )
            await self.db.commit()

        logger.info(
            f"Activation code {event_type.value} for {mask_identifier(entry.identifier)}",
            extra={"activation_code_id": str(code.id), "whitelist_id": str(entry.id)}
        )
        return GeneratedCode(
            code=plaintext,
            code_id=code.id,
            whitelist_entry=entry,
            expires_at=code.expires_at,
            expires_in_hours=hours,
            email_sent=email_sent,
            email_status=email_status,
        )

    async def generate(
        self,
        whitelist_id: Union[str, uuid.UUID],
        ttl_hours: Optional[int] = None,
        send_email: bool = False,
        custom_message: Optional[str] = None,
        actor_user_id: Union[str, uuid.UUID, None] = None,
    ) -> GeneratedCode:
        """
        Issue a new code for a whitelist entry. The returned plaintext is
        never obtainable again.
        """
        hours = self.clamp_ttl(ttl_hours)
        actor = parse_uuid(actor_user_id, "user id")
        entry = await self.whitelist.get(whitelist_id)
        await self._check_generation_allowed(entry)

        now = self._now()
        current = await self._get_active_code(entry.id)
        if current is not None and not self._observe_expiry(current, now):
            raise ConflictingActiveCode(code_id=str(current.id))
        if current is not None:
            await self.db.flush()

        return await self._issue(entry, hours, AuditEventType.GENERATED, send_email, custom_message, actor, now)

    async def regenerate(
        self,
        whitelist_id: Union[str, uuid.UUID],
        ttl_hours: Optional[int] = None,
        send_email: bool = False,
        custom_message: Optional[str] = None,
        actor_user_id: Union[str, uuid.UUID, None] = None,
    ) -> GeneratedCode:
        """Revoke the active code, if any, and issue a replacement"""
        hours = self.clamp_ttl(ttl_hours)
        actor = parse_uuid(actor_user_id, "user id")
        entry = await self.whitelist.get(whitelist_id)
        await self._check_generation_allowed(entry)

        now = self._now()
        previous_id = None
        current = await self._get_active_code(entry.id)
        if current is not None and not self._observe_expiry(current, now):
            current.status = ActivationCodeStatus.REVOKED.value
            current.revoked_at = now
            current.revoked_by = actor
            current.revoke_reason = "regenerated"
            self._audit(
                AuditEventType.REVOKED,
                code=current,
                entry=entry,
                actor_user_id=actor,
                details={"reason": "regenerated"},
            )
            previous_id = str(current.id)
        if current is not None:
            await self.db.flush()

        return await self._issue(
            entry,
            hours,
            AuditEventType.REGENERATED,
            send_email,
            custom_message,
            actor,
            now,
            extra_details={"previous_code_id": previous_id},
        )

    async def redeem(
        self,
        identifier: str,
        code: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RedeemResult:
        """
        Redeem the latest code of the entry matching identifier.
        Failed attempts are persisted before the error is raised.
        """
        now = self._now()
        masked = mask_identifier(identifier)
        request_info = {"ip_address": ip_address, "user_agent": user_agent, "identifier_attempted": masked}

        entry = await self.whitelist.find_by_identifier(identifier)
        target = await self._latest_code(entry.id) if entry is not None else None

        self._audit(AuditEventType.ATTEMPTED_USE, code=target, entry=entry, **request_info)

        if target is None:
            self._audit(
                AuditEventType.FAILED_USE,
                entry=entry,
                success=False,
                failure_reason="no_matching_code",
                **request_info
            )
            await self.db.commit()
            raise ValidationError(INVALID_CODE_MESSAGE)

        self._observe_expiry(target, now)
        status = target.status_enum
        if status is not ActivationCodeStatus.ACTIVE or entry.is_activated:
            self._audit(
                AuditEventType.FAILED_USE,
                code=target,
                entry=entry,
                success=False,
                failure_reason=status.value,
                **request_info
            )
            await self.db.commit()
            error_cls = _INACTIVE_ERRORS.get(status, CodeAlreadyUsed)
            raise error_cls(code_id=str(target.id))

        if not verify_activation_code(code, target.code_hash):
            return await self._record_failed_attempt(target, entry, now, request_info)

        result = await self.db.execute(
            update(ActivationCode)
            .where(
                ActivationCode.id == target.id,
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
            )
            .values(
                status=ActivationCodeStatus.USED.value,
                used_at=now,
                used_by_ip=ip_address,
                used_user_agent=user_agent,
                last_attempt_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.commit()
            raise CodeAlreadyUsed(code_id=str(target.id))
        await self.db.refresh(target, ["status", "used_at", "used_by_ip", "used_user_agent", "last_attempt_at", "updated_at"])

        entry.is_activated = True
        entry.activated_at = now
        self._audit(AuditEventType.SUCCESSFUL_USE, code=target, entry=entry, **request_info)
        await self.db.commit()

        logger.info(
            f"Activation code redeemed for {masked}",
            extra={"activation_code_id": str(target.id), "whitelist_id": str(entry.id)}
        )
        return RedeemResult(code_id=target.id, whitelist_entry=entry, activated_at=now)

    async def _record_failed_attempt(
        self,
        code: ActivationCode,
        entry: WhitelistEntry,
        now: datetime,
        request_info: Dict[str, Any],
    ):
        # Counted in the database so concurrent wrong guesses are never lost
        counted = await self.db.execute(
            update(ActivationCode)
            .where(
                ActivationCode.id == code.id,
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
                ActivationCode.failed_attempts < ActivationCode.max_attempts,
            )
            .values(
                failed_attempts=ActivationCode.failed_attempts + 1,
                last_attempt_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(code, _ATTEMPT_COLUMNS)

        if counted.rowcount != 1:
            # Settled by a concurrent request between the read and the update
            self._audit(
                AuditEventType.FAILED_USE,
                code=code,
                entry=entry,
                success=False,
                failure_reason=code.status,
                **request_info
            )
            await self.db.commit()
            error_cls = _INACTIVE_ERRORS.get(code.status_enum, AttemptLimitExceeded)
            raise error_cls(code_id=str(code.id))

        self._audit(
            AuditEventType.FAILED_USE,
            code=code,
            entry=entry,
            success=False,
            failure_reason="invalid_code",
            details={"failed_attempts": code.failed_attempts},
            **request_info
        )

        if code.failed_attempts >= code.max_attempts:
            await self.db.execute(
                update(ActivationCode)
                .where(
                    ActivationCode.id == code.id,
                    ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
                )
                .values(status=ActivationCodeStatus.LOCKED.value, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            await self.db.refresh(code, _ATTEMPT_COLUMNS)
            self._audit(
                AuditEventType.LOCKED,
                code=code,
                entry=entry,
                success=False,
                failure_reason="max_attempts_reached",
                **request_info
            )
            await self.db.commit()
            logger.warning("Activation code locked", extra={"activation_code_id": str(code.id)})
            raise AttemptLimitExceeded(code_id=str(code.id))

        await self.db.commit()
        raise ValidationError(INVALID_CODE_MESSAGE, details={"remaining_attempts": code.remaining_attempts})

    async def revoke(
        self,
        code_id: Union[str, uuid.UUID],
        reason: str,
        actor_user_id: Union[str, uuid.UUID, None] = None,
    ) -> RevokeResult:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A revocation reason is required")

        actor = parse_uuid(actor_user_id, "user id")
        code = await self._get_code(code_id)
        if code.status_enum is not ActivationCodeStatus.ACTIVE:
            raise ConflictError(
                f"Cannot revoke a code with status '{code.status}'",
                error_code="CODE_NOT_REVOCABLE",
                details={"code_id": str(code.id), "status": code.status}
            )

        now = self._now()
        code.status = ActivationCodeStatus.REVOKED.value
        code.revoked_at = now
        code.revoked_by = actor
        code.revoke_reason = reason
        self._audit(AuditEventType.REVOKED, code=code, actor_user_id=actor, details={"reason": reason})
        await self.db.commit()

        entry = code.whitelist_entry
        logger.info("Activation code revoked", extra={"activation_code_id": str(code.id)})
        return RevokeResult(
            success=True,
            code_id=code.id,
            revoked_at=now,
            new_code_required=entry is not None and not entry.is_activated,
        )

    async def extend(
        self,
        code_id: Union[str, uuid.UUID],
        additional_hours: int,
        actor_user_id: Union[str, uuid.UUID, None] = None,
    ) -> ExtendResult:
        """
        Push expires_at forward. Accepted on a stored-active code even when
        it is already past its expiry.
        """
        hours = self.validate_hours(additional_hours)
        actor = parse_uuid(actor_user_id, "user id")
        code = await self._get_code(code_id)

        if code.status_enum is not ActivationCodeStatus.ACTIVE:
            raise ConflictError(
                f"Cannot extend a code with status '{code.status}'",
                error_code="CODE_NOT_EXTENDABLE",
                details={"code_id": str(code.id), "status": code.status}
            )
        if code.expires_at is None:
            raise ConflictError("Code has no expiry to extend", error_code="CODE_NOT_EXTENDABLE")

        previous = code.expires_at
        code.expires_at = previous + timedelta(hours=hours)
        self._audit(
            AuditEventType.EXTENDED,
            code=code,
            actor_user_id=actor,
            details={
                "additional_hours": hours,
                "previous_expires_at": previous.isoformat(),
                "new_expires_at": code.expires_at.isoformat(),
            },
        )
        await self.db.commit()
        return ExtendResult(success=True, code_id=code.id, new_expires_at=code.expires_at)

    async def resend_email(
        self,
        code_id: Union[str, uuid.UUID],
        custom_message: Optional[str] = None,
        actor_user_id: Union[str, uuid.UUID, None] = None,
    ) -> ResendResult:
        """Reminder delivery for an active code; the code itself is not included"""
        actor = parse_uuid(actor_user_id, "user id")
        code = await self._get_code(code_id)

        if self._observe_expiry(code, self._now()):
            await self.db.commit()
            raise CodeExpired(code_id=str(code.id))
        if code.status_enum is not ActivationCodeStatus.ACTIVE:
            raise ConflictError(
                f"Cannot resend for a code with status '{code.status}'",
                error_code="CODE_NOT_ACTIVE",
                details={"code_id": str(code.id), "status": code.status}
            )

        entry = code.whitelist_entry
        delivery = await self.mailer.send_reminder(entry, code.expires_at, custom_message)
        self._audit(
            AuditEventType.EMAIL_RESENT,
            code=code,
            entry=entry,
            success=delivery.sent,
            failure_reason=None if delivery.sent else delivery.status,
            actor_user_id=actor,
            details={"custom_message": bool(custom_message)},
        )
        await self.db.commit()
        return ResendResult(success=delivery.sent, email_sent=delivery.sent, email_status=delivery.status)

    async def get(self, code_id: Union[str, uuid.UUID]) -> ActivationCode:
        code = await self._get_code(code_id)
        if self._observe_expiry(code, self._now()):
            await self.db.commit()
        return code

    async def list(
        self,
        status: Optional[ActivationCodeStatus] = None,
        whitelist_id: Union[str, uuid.UUID, None] = None,
        expiring_within_hours: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> CodeListResult:
        cfg = settings.activation
        limit = cfg.audit_default_limit if limit is None else limit
        if not 1 <= limit <= cfg.audit_max_limit:
            raise ValidationError(f"limit must be between 1 and {cfg.audit_max_limit}")

        now = self._now()
        await self._expire_overdue(now)

        query = select(ActivationCode)
        if status is not None:
            query = query.where(ActivationCode.status == status.value)
        if whitelist_id is not None:
            query = query.where(ActivationCode.whitelist_id == parse_uuid(whitelist_id, "whitelist id"))
        if expiring_within_hours is not None:
            query = query.where(
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
                ActivationCode.expires_at.is_not(None),
                ActivationCode.expires_at <= now + timedelta(hours=expiring_within_hours),
            )
        query = query.order_by(ActivationCode.created_at.desc()).limit(limit)
        items = list((await self.db.execute(query)).scalars().all())

        counts, expiring_24h = await self._status_counts(now)
        summary = {
            "active_codes": counts.get(ActivationCodeStatus.ACTIVE.value, 0),
            "expired_codes": counts.get(ActivationCodeStatus.EXPIRED.value, 0),
            "used_codes": counts.get(ActivationCodeStatus.USED.value, 0),
            "revoked_codes": counts.get(ActivationCodeStatus.REVOKED.value, 0),
            "locked_codes": counts.get(ActivationCodeStatus.LOCKED.value, 0),
            "expiring_in_24h": expiring_24h,
        }
        return CodeListResult(items=items, summary=summary)

    async def _status_counts(self, now: datetime) -> Tuple[Dict[str, int], int]:
        rows = await self.db.execute(
            select(ActivationCode.status, func.count(ActivationCode.id)).group_by(ActivationCode.status)
        )
        counts = {status: count for status, count in rows.all()}
        expiring = await self.db.execute(
            select(func.count(ActivationCode.id)).where(
                ActivationCode.status == ActivationCodeStatus.ACTIVE.value,
                ActivationCode.expires_at.is_not(None),
                ActivationCode.expires_at <= now + timedelta(hours=24),
            )
        )
        return counts, expiring.scalar_one()

    async def stats(self, trend_days: int = 30) -> Dict[str, Any]:
        """Dashboard figures: onboarding progress, code states and security signals"""
        now = self._now()
        await self._expire_overdue(now)

        total_whitelisted = (await self.db.execute(select(func.count(WhitelistEntry.id)))).scalar_one()
        total_activated = (await self.db.execute(
            select(func.count(WhitelistEntry.id)).where(WhitelistEntry.is_activated.is_(True))
        )).scalar_one()

        counts, _ = await self._status_counts(now)
        total_generated = sum(counts.values())
        average_attempts = (await self.db.execute(select(func.avg(ActivationCode.failed_attempts)))).scalar()

        since = now - timedelta(hours=24)
        failed_24h = (await self.db.execute(
            select(func.count(ActivationAuditLog.id)).where(
                ActivationAuditLog.event_type == AuditEventType.FAILED_USE.value,
                ActivationAuditLog.created_at >= since,
            )
        )).scalar_one()
        failing_ips_24h = (await self.db.execute(
            select(func.count(func.distinct(ActivationAuditLog.ip_address))).where(
                ActivationAuditLog.event_type == AuditEventType.FAILED_USE.value,
                ActivationAuditLog.created_at >= since,
                ActivationAuditLog.ip_address.is_not(None),
            )
        )).scalar_one()

        activated_since = now - timedelta(days=trend_days)
        activated_rows = await self.db.execute(
            select(WhitelistEntry.activated_at).where(
                WhitelistEntry.activated_at.is_not(None),
                WhitelistEntry.activated_at >= activated_since,
            )
        )
        per_day = Counter(
            DateTimeManager.ensure_utc(activated_at).date().isoformat()
            for activated_at in activated_rows.scalars().all()
        )

        return {
            "overview": {
                "total_whitelisted": total_whitelisted,
                "total_activated": total_activated,
                "pending_activation": total_whitelisted - total_activated,
                "activation_rate_pct": round(100.0 * total_activated / total_whitelisted, 1) if total_whitelisted else 0.0,
            },
            "codes": {
                "total_generated": total_generated,
                "active_codes": counts.get(ActivationCodeStatus.ACTIVE.value, 0),
                "expired_codes": counts.get(ActivationCodeStatus.EXPIRED.value, 0),
                "used_codes": counts.get(ActivationCodeStatus.USED.value, 0),
                "revoked_codes": counts.get(ActivationCodeStatus.REVOKED.value, 0),
                "locked_codes": counts.get(ActivationCodeStatus.LOCKED.value, 0),
                "average_attempts_per_code": round(float(average_attempts or 0), 2),
            },
            "security": {
                "failed_attempts_24h": failed_24h,
                "failing_ips_24h": failing_ips_24h,
                "locked_codes": counts.get(ActivationCodeStatus.LOCKED.value, 0),
            },
            "trends": {
                "activations_by_day": [
                    {"date": day, "count": per_day[day]} for day in sorted(per_day)
                ],
            },
        }
