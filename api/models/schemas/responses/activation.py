"""
Activation response schemas.
Only GenerateCodeResponse carries a plaintext code; every other view of a
code exposes its state, never its secret.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from common.types import ActivationCodeStatus
from models.database.activation import ActivationAuditLog, ActivationCode, WhitelistEntry
from utils.masking import mask_identifier


class WhitelistEntryResponse(BaseModel):
    id: str
    identifier: str
    identifier_type: str
    full_name: str
    assigned_role: str
    assigned_supervisor_id: Optional[str] = None
    supervisor_name: Optional[str] = None
    phone: Optional[str] = None
    is_activated: bool
    activated_at: Optional[datetime] = None
    notes: Optional[str] = None
    has_active_code: Optional[bool] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, entry: WhitelistEntry, has_active_code: Optional[bool] = None) -> "WhitelistEntryResponse":
        supervisor = entry.supervisor
        return cls(
            id=str(entry.id),
            identifier=entry.identifier,
            identifier_type=entry.identifier_type,
            full_name=entry.full_name,
            assigned_role=entry.assigned_role,
            assigned_supervisor_id=str(entry.assigned_supervisor_id) if entry.assigned_supervisor_id else None,
            supervisor_name=supervisor.full_name if supervisor is not None else None,
            phone=entry.phone,
            is_activated=entry.is_activated,
            activated_at=entry.activated_at,
            notes=entry.notes,
            has_active_code=has_active_code,
            created_at=entry.created_at,
        )


class WhitelistListResponse(BaseModel):
    items: List[WhitelistEntryResponse]
    total: int


class ActivationCodeResponse(BaseModel):
    """State of a code; status is the effective one, expiry applied"""
    id: str
    whitelist_id: str
    identifier_masked: Optional[str] = None
    full_name: Optional[str] = None
    assigned_role: Optional[str] = None
    status: ActivationCodeStatus
    expires_at: Optional[datetime] = None
    used_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    revoke_reason: Optional[str] = None
    failed_attempts: int
    max_attempts: int
    remaining_attempts: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, code: ActivationCode, now: Optional[datetime] = None) -> "ActivationCodeResponse":
        entry = code.whitelist_entry
        return cls(
            id=str(code.id),
            whitelist_id=str(code.whitelist_id),
            identifier_masked=mask_identifier(entry.identifier) if entry is not None else None,
            full_name=entry.full_name if entry is not None else None,
            assigned_role=entry.assigned_role if entry is not None else None,
            status=code.effective_status(now),
            expires_at=code.expires_at,
            used_at=code.used_at,
            revoked_at=code.revoked_at,
            revoke_reason=code.revoke_reason,
            failed_attempts=code.failed_attempts,
            max_attempts=code.max_attempts,
            remaining_attempts=code.remaining_attempts,
            created_at=code.created_at,
        )


class CodeListSummary(BaseModel):
    active_codes: int = 0
    expired_codes: int = 0
    used_codes: int = 0
    revoked_codes: int = 0
    locked_codes: int = 0
    expiring_in_24h: int = 0


class ActivationCodeListResponse(BaseModel):
    items: List[ActivationCodeResponse]
    summary: CodeListSummary


class GenerateCodeResponse(BaseModel):
    """The only response that ever contains the plaintext code"""
    code: str = Field(..., description="Plaintext activation code, shown once")
    code_id: str
    whitelist_id: str
    full_name: str
    assigned_role: str
    expires_at: Optional[datetime] = None
    expires_in_hours: int
    email_sent: bool = False
    email_status: Optional[str] = None


class RevokeCodeResponse(BaseModel):
    success: bool
    code_id: str
    revoked_at: datetime
    new_code_required: bool


class ExtendCodeResponse(BaseModel):
    success: bool
    code_id: str
    new_expires_at: datetime


class ResendEmailResponse(BaseModel):
    success: bool
    email_sent: bool
    email_status: Optional[str] = None


class RedeemCodeResponse(BaseModel):
    success: bool = True
    whitelist_id: str
    full_name: str
    assigned_role: str
    assigned_supervisor_id: Optional[str] = None
    activated_at: datetime


class AuditEntryResponse(BaseModel):
    id: int
    activation_code_id: Optional[str] = None
    whitelist_id: Optional[str] = None
    event_type: str
    success: bool
    created_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    identifier_attempted: Optional[str] = None
    failure_reason: Optional[str] = None
    actor_user_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_model(cls, log: ActivationAuditLog) -> "AuditEntryResponse":
        return cls(
            id=log.id,
            activation_code_id=str(log.activation_code_id) if log.activation_code_id else None,
            whitelist_id=str(log.whitelist_id) if log.whitelist_id else None,
            event_type=log.event_type,
            success=log.success,
            created_at=log.created_at,
            ip_address=log.ip_address,
            user_agent=log.user_agent,
            identifier_attempted=log.identifier_attempted,
            failure_reason=log.failure_reason,
            actor_user_id=str(log.actor_user_id) if log.actor_user_id else None,
            metadata=log.details,
        )


class AuditDateRange(BaseModel):
    from_: Optional[datetime] = Field(None, alias="from")
    to: Optional[datetime] = None

    model_config = {"populate_by_name": True}


class AuditSummary(BaseModel):
    total_events: int
    successful_events: int
    failed_events: int
    unique_ips: int
    date_range: AuditDateRange


class AuditListResponse(BaseModel):
    items: List[AuditEntryResponse]
    summary: AuditSummary


class ActivationStatsResponse(BaseModel):
    overview: Dict[str, Any]
    codes: Dict[str, Any]
    security: Dict[str, Any]
    trends: Dict[str, Any]


class OperationResult(BaseModel):
    success: bool = True
    message: str = "OK"
