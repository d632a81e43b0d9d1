"""
Administrative activation code endpoints (role admin).
The plaintext code appears only in the generate/regenerate responses.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.endpoints.admin_whitelist import get_user_directory
from api.v1.middleware.auth_middleware import AdminOnly, actor_id
from common.types import ActivationCodeStatus, AuditEventType
from config.database import get_db
from models.schemas.request.activation import (
    ExtendCodeRequest,
    GenerateCodeRequest,
    RegenerateCodeRequest,
    ResendEmailRequest,
    RevokeCodeRequest,
)
from models.schemas.responses.activation import (
    ActivationCodeListResponse,
    ActivationCodeResponse,
    ActivationStatsResponse,
    AuditEntryResponse,
    AuditListResponse,
    ExtendCodeResponse,
    GenerateCodeResponse,
    ResendEmailResponse,
    RevokeCodeResponse,
)
from services.activation.audit_service import ActivationAuditService, AuditFilter
from services.activation.lifecycle_service import ActivationCodeManager, GeneratedCode
from services.activation.user_directory import UserDirectory
from utils.datetime_utils import DateTimeManager
from utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()
audit_router = APIRouter()


def get_activation_manager(
    db: AsyncSession = Depends(get_db),
    directory: UserDirectory = Depends(get_user_directory),
) -> ActivationCodeManager:
    return ActivationCodeManager(db, directory=directory)


def get_audit_service(db: AsyncSession = Depends(get_db)) -> ActivationAuditService:
    return ActivationAuditService(db)


def _generated_response(result: GeneratedCode) -> GenerateCodeResponse:
    entry = result.whitelist_entry
    return GenerateCodeResponse(
        code=result.code,
        code_id=str(result.code_id),
        whitelist_id=str(entry.id),
        full_name=entry.full_name,
        assigned_role=entry.assigned_role,
        expires_at=result.expires_at,
        expires_in_hours=result.expires_in_hours,
        email_sent=result.email_sent,
        email_status=result.email_status,
    )


@router.get(
    "",
    response_model=ActivationCodeListResponse,
    operation_id="activation_codes_list",
    summary="List activation codes",
)
async def list_codes(
    status: Optional[ActivationCodeStatus] = Query(None),
    whitelist_id: Optional[str] = Query(None),
    expiring_within_hours: Optional[int] = Query(None, ge=1, le=720),
    limit: int = Query(100, ge=1, le=500),
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await manager.list(
        status=status,
        whitelist_id=whitelist_id,
        expiring_within_hours=expiring_within_hours,
        limit=limit,
    )
    now = DateTimeManager.utc_now()
    return ActivationCodeListResponse(
        items=[ActivationCodeResponse.from_model(code, now) for code in result.items],
        summary=result.summary,
    )


@router.post(
    "/generate",
    response_model=GenerateCodeResponse,
    status_code=201,
    operation_id="activation_codes_generate",
    summary="Generate an activation code",
)
async def generate_code(
    payload: GenerateCodeRequest,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await manager.generate(
        payload.whitelist_id,
        ttl_hours=payload.expires_in_hours,
        send_email=payload.send_email,
        custom_message=payload.custom_message,
        actor_user_id=actor_id(user),
    )
    return _generated_response(result)


@router.post(
    "/regenerate",
    response_model=GenerateCodeResponse,
    status_code=201,
    operation_id="activation_codes_regenerate",
    summary="Revoke the active code and issue a new one",
)
async def regenerate_code(
    payload: RegenerateCodeRequest,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await manager.regenerate(
        payload.whitelist_id,
        ttl_hours=payload.expires_in_hours,
        send_email=payload.send_email,
        custom_message=payload.custom_message,
        actor_user_id=actor_id(user),
    )
    return _generated_response(result)


@router.get(
    "/{code_id}",
    response_model=ActivationCodeResponse,
    operation_id="activation_codes_get",
    summary="Get an activation code",
)
async def get_code(
    code_id: str,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    code = await manager.get(code_id)
    return ActivationCodeResponse.from_model(code)


@router.post(
    "/{code_id}/revoke",
    response_model=RevokeCodeResponse,
    operation_id="activation_codes_revoke",
    summary="Revoke an activation code",
)
async def revoke_code(
    code_id: str,
    payload: RevokeCodeRequest,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await manager.revoke(code_id, payload.reason, actor_user_id=actor_id(user))
    return RevokeCodeResponse(
        success=result.success,
        code_id=str(result.code_id),
        revoked_at=result.revoked_at,
        new_code_required=result.new_code_required,
    )


@router.post(
    "/{code_id}/extend",
    response_model=ExtendCodeResponse,
    operation_id="activation_codes_extend",
    summary="Extend an activation code",
)
async def extend_code(
    code_id: str,
    payload: ExtendCodeRequest,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await manager.extend(code_id, payload.additional_hours, actor_user_id=actor_id(user))
    return ExtendCodeResponse(success=result.success, code_id=str(result.code_id), new_expires_at=result.new_expires_at)


@router.post(
    "/{code_id}/resend-email",
    response_model=ResendEmailResponse,
    operation_id="activation_codes_resend_email",
    summary="Send a reminder for an active code",
)
async def resend_email(
    code_id: str,
    payload: Optional[ResendEmailRequest] = None,
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    custom_message = payload.custom_message if payload else None
    result = await manager.resend_email(code_id, custom_message, actor_user_id=actor_id(user))
    return ResendEmailResponse(success=result.success, email_sent=result.email_sent, email_status=result.email_status)


@audit_router.get(
    "",
    response_model=AuditListResponse,
    operation_id="activation_audit_list",
    summary="List activation audit entries",
)
async def list_audit(
    activation_code_id: Optional[str] = Query(None),
    whitelist_id: Optional[str] = Query(None),
    event_type: Optional[AuditEventType] = Query(None),
    success: Optional[bool] = Query(None),
    ip_address: Optional[str] = Query(None),
    actor_user_id: Optional[str] = Query(None),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    service: ActivationAuditService = Depends(get_audit_service),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    result = await service.list(AuditFilter(
        activation_code_id=activation_code_id,
        whitelist_id=whitelist_id,
        event_type=event_type,
        success=success,
        ip_address=ip_address,
        actor_user_id=actor_user_id,
        from_date=from_date,
        to_date=to_date,
        limit=limit,
    ))
    return AuditListResponse(
        items=[AuditEntryResponse.from_model(log) for log in result.items],
        summary=result.summary,
    )


@audit_router.get(
    "/stats",
    response_model=ActivationStatsResponse,
    operation_id="activation_audit_stats",
    summary="Onboarding and security statistics",
)
async def activation_stats(
    trend_days: int = Query(30, ge=1, le=365),
    manager: ActivationCodeManager = Depends(get_activation_manager),
    user: Dict[str, Any] = Depends(AdminOnly),
):
    return ActivationStatsResponse(**await manager.stats(trend_days=trend_days))
